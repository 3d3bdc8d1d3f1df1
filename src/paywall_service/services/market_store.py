"""SQLite-backed storage for vendors, products, payments, tasks, credential grants, and API keys."""

from __future__ import annotations

import contextlib
import sqlite3
from datetime import UTC, datetime
from pathlib import Path
from threading import RLock
from typing import Any

from paywall_service.domain.catalog import (
    Product,
    ProductKind,
    ProductStatus,
    Vendor,
    VendorStatus,
)
from paywall_service.domain.credential import ApiKey, ApiKeyStatus, CredentialGrant, GrantStatus
from paywall_service.domain.payment import Payment, PaymentStatus
from paywall_service.domain.task import Task, TaskStatus


class DuplicateRecordError(Exception):
    """Raised when an insert collides with an existing primary or unique key."""


def _to_iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.astimezone(UTC).isoformat(timespec="microseconds").replace("+00:00", "Z")


def _from_iso(value: str | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _require_iso(value: str) -> datetime:
    parsed = _from_iso(value)
    if parsed is None:
        msg = "Expected a timestamp column value"
        raise ValueError(msg)
    return parsed


class MarketStore:
    """
    SQLite-backed storage for the paywall.

    Status updates are compare-and-set: ``update_payment`` and ``update_task``
    only write when the stored status still equals ``expected_status`` and
    return the number of affected rows, so a caller working from a stale
    snapshot sees 0 and can reject its transition.
    """

    _PAYMENT_COLUMNS: tuple[str, ...] = (
        "payment_id",
        "product_id",
        "vendor_id",
        "amount",
        "network",
        "payer",
        "transaction_ref",
        "status",
        "created_at",
        "release_transaction",
        "refund_transaction",
        "released_at",
        "refunded_at",
        "expires_at",
    )
    _TASK_COLUMNS: tuple[str, ...] = (
        "task_id",
        "payment_id",
        "product_id",
        "vendor_id",
        "buyer_address",
        "request_payload",
        "status",
        "result",
        "error_message",
        "created_at",
        "updated_at",
    )
    _VENDOR_COLUMNS: tuple[str, ...] = (
        "vendor_id",
        "name",
        "settlement_address",
        "api_key_hash",
        "status",
        "created_at",
    )
    _PRODUCT_COLUMNS: tuple[str, ...] = (
        "product_id",
        "vendor_id",
        "path",
        "price",
        "network",
        "description",
        "mime_type",
        "data",
        "kind",
        "status",
        "created_at",
    )
    _GRANT_COLUMNS: tuple[str, ...] = (
        "grant_id",
        "token",
        "vendor_id",
        "payment_id",
        "label",
        "wallet_address",
        "status",
        "created_at",
        "expires_at",
        "redeemed_at",
    )
    _API_KEY_COLUMNS: tuple[str, ...] = (
        "api_key_id",
        "vendor_id",
        "grant_id",
        "key_hash",
        "label",
        "wallet_address",
        "status",
        "created_at",
    )

    def __init__(self, db_path: str) -> None:
        self._lock = RLock()
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._db = sqlite3.connect(db_path, check_same_thread=False)
        self._db.row_factory = sqlite3.Row
        self._db.execute("PRAGMA journal_mode=WAL")
        self._db.execute("PRAGMA foreign_keys=ON")
        self._db.execute("PRAGMA busy_timeout=5000")
        self._init_schema()

    def _init_schema(self) -> None:
        with self._lock:
            self._db.executescript(
                """
                CREATE TABLE IF NOT EXISTS vendors (
                    vendor_id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    settlement_address TEXT NOT NULL,
                    api_key_hash TEXT NOT NULL UNIQUE,
                    status TEXT NOT NULL,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS products (
                    product_id TEXT PRIMARY KEY,
                    vendor_id TEXT NOT NULL REFERENCES vendors(vendor_id),
                    path TEXT NOT NULL,
                    price TEXT NOT NULL,
                    network TEXT NOT NULL,
                    description TEXT NOT NULL,
                    mime_type TEXT NOT NULL,
                    data TEXT NOT NULL,
                    kind TEXT NOT NULL,
                    status TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    UNIQUE(vendor_id, path)
                );

                CREATE TABLE IF NOT EXISTS payments (
                    payment_id TEXT PRIMARY KEY,
                    product_id TEXT NOT NULL,
                    vendor_id TEXT NOT NULL,
                    amount TEXT NOT NULL,
                    network TEXT NOT NULL,
                    payer TEXT NOT NULL,
                    transaction_ref TEXT NOT NULL,
                    status TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    release_transaction TEXT,
                    refund_transaction TEXT,
                    released_at TEXT,
                    refunded_at TEXT,
                    expires_at TEXT
                );

                CREATE INDEX IF NOT EXISTS idx_payments_status_expiry
                    ON payments(status, expires_at);

                CREATE TABLE IF NOT EXISTS tasks (
                    task_id TEXT PRIMARY KEY,
                    payment_id TEXT NOT NULL UNIQUE REFERENCES payments(payment_id),
                    product_id TEXT NOT NULL,
                    vendor_id TEXT NOT NULL,
                    buyer_address TEXT NOT NULL,
                    request_payload TEXT NOT NULL,
                    status TEXT NOT NULL,
                    result TEXT,
                    error_message TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_tasks_vendor_status
                    ON tasks(vendor_id, status);

                CREATE TABLE IF NOT EXISTS credential_grants (
                    grant_id TEXT PRIMARY KEY,
                    token TEXT NOT NULL UNIQUE,
                    vendor_id TEXT NOT NULL,
                    payment_id TEXT NOT NULL UNIQUE REFERENCES payments(payment_id),
                    label TEXT NOT NULL,
                    wallet_address TEXT NOT NULL,
                    status TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    expires_at TEXT NOT NULL,
                    redeemed_at TEXT
                );

                CREATE TABLE IF NOT EXISTS api_keys (
                    api_key_id TEXT PRIMARY KEY,
                    vendor_id TEXT NOT NULL,
                    grant_id TEXT NOT NULL UNIQUE REFERENCES credential_grants(grant_id),
                    key_hash TEXT NOT NULL UNIQUE,
                    label TEXT NOT NULL,
                    wallet_address TEXT NOT NULL,
                    status TEXT NOT NULL,
                    created_at TEXT NOT NULL
                );
                """
            )
            self._db.commit()

    # ------------------------------------------------------------------
    # Row mapping
    # ------------------------------------------------------------------

    @staticmethod
    def _vendor_values(vendor: Vendor) -> tuple[Any, ...]:
        return (
            vendor.id,
            vendor.name,
            vendor.settlement_address,
            vendor.api_key_hash,
            vendor.status.value,
            _to_iso(vendor.created_at),
        )

    @staticmethod
    def _row_to_vendor(row: sqlite3.Row) -> Vendor:
        return Vendor(
            id=row["vendor_id"],
            name=row["name"],
            settlement_address=row["settlement_address"],
            api_key_hash=row["api_key_hash"],
            status=VendorStatus(row["status"]),
            created_at=_require_iso(row["created_at"]),
        )

    @staticmethod
    def _product_values(product: Product) -> tuple[Any, ...]:
        return (
            product.id,
            product.vendor_id,
            product.path,
            product.price,
            product.network,
            product.description,
            product.mime_type,
            product.data,
            product.kind.value,
            product.status.value,
            _to_iso(product.created_at),
        )

    @staticmethod
    def _row_to_product(row: sqlite3.Row) -> Product:
        return Product(
            id=row["product_id"],
            vendor_id=row["vendor_id"],
            path=row["path"],
            price=row["price"],
            network=row["network"],
            description=row["description"],
            mime_type=row["mime_type"],
            data=row["data"],
            kind=ProductKind(row["kind"]),
            status=ProductStatus(row["status"]),
            created_at=_require_iso(row["created_at"]),
        )

    @staticmethod
    def _payment_values(payment: Payment) -> tuple[Any, ...]:
        return (
            payment.id,
            payment.product_id,
            payment.vendor_id,
            payment.amount,
            payment.network,
            payment.payer,
            payment.transaction,
            payment.status.value,
            _to_iso(payment.created_at),
            payment.release_transaction,
            payment.refund_transaction,
            _to_iso(payment.released_at),
            _to_iso(payment.refunded_at),
            _to_iso(payment.expires_at),
        )

    @staticmethod
    def _row_to_payment(row: sqlite3.Row) -> Payment:
        return Payment(
            id=row["payment_id"],
            product_id=row["product_id"],
            vendor_id=row["vendor_id"],
            amount=row["amount"],
            network=row["network"],
            payer=row["payer"],
            transaction=row["transaction_ref"],
            status=PaymentStatus(row["status"]),
            created_at=_require_iso(row["created_at"]),
            release_transaction=row["release_transaction"],
            refund_transaction=row["refund_transaction"],
            released_at=_from_iso(row["released_at"]),
            refunded_at=_from_iso(row["refunded_at"]),
            expires_at=_from_iso(row["expires_at"]),
        )

    @staticmethod
    def _task_values(task: Task) -> tuple[Any, ...]:
        return (
            task.id,
            task.payment_id,
            task.product_id,
            task.vendor_id,
            task.buyer_address,
            task.request_payload,
            task.status.value,
            task.result,
            task.error_message,
            _to_iso(task.created_at),
            _to_iso(task.updated_at),
        )

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> Task:
        return Task(
            id=row["task_id"],
            payment_id=row["payment_id"],
            product_id=row["product_id"],
            vendor_id=row["vendor_id"],
            buyer_address=row["buyer_address"],
            request_payload=row["request_payload"],
            status=TaskStatus(row["status"]),
            result=row["result"],
            error_message=row["error_message"],
            created_at=_require_iso(row["created_at"]),
            updated_at=_require_iso(row["updated_at"]),
        )

    @staticmethod
    def _grant_values(grant: CredentialGrant) -> tuple[Any, ...]:
        return (
            grant.id,
            grant.token,
            grant.vendor_id,
            grant.payment_id,
            grant.label,
            grant.wallet_address,
            grant.status.value,
            _to_iso(grant.created_at),
            _to_iso(grant.expires_at),
            _to_iso(grant.redeemed_at),
        )

    @staticmethod
    def _row_to_grant(row: sqlite3.Row) -> CredentialGrant:
        return CredentialGrant(
            id=row["grant_id"],
            token=row["token"],
            vendor_id=row["vendor_id"],
            payment_id=row["payment_id"],
            label=row["label"],
            wallet_address=row["wallet_address"],
            status=GrantStatus(row["status"]),
            created_at=_require_iso(row["created_at"]),
            expires_at=_require_iso(row["expires_at"]),
            redeemed_at=_from_iso(row["redeemed_at"]),
        )

    @staticmethod
    def _api_key_values(api_key: ApiKey) -> tuple[Any, ...]:
        return (
            api_key.id,
            api_key.vendor_id,
            api_key.grant_id,
            api_key.key_hash,
            api_key.label,
            api_key.wallet_address,
            api_key.status.value,
            _to_iso(api_key.created_at),
        )

    @staticmethod
    def _row_to_api_key(row: sqlite3.Row) -> ApiKey:
        return ApiKey(
            id=row["api_key_id"],
            vendor_id=row["vendor_id"],
            grant_id=row["grant_id"],
            key_hash=row["key_hash"],
            label=row["label"],
            wallet_address=row["wallet_address"],
            status=ApiKeyStatus(row["status"]),
            created_at=_require_iso(row["created_at"]),
        )

    # ------------------------------------------------------------------
    # Write helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _insert_sql(table: str, columns: tuple[str, ...]) -> str:
        placeholders = ", ".join("?" for _ in columns)
        return f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})"  # nosec B608

    def _insert_all(self, statements: list[tuple[str, tuple[Any, ...]]]) -> None:
        """Run inserts in one transaction; all rows land or none do."""
        with self._lock:
            try:
                self._db.execute("BEGIN IMMEDIATE")
                for sql, values in statements:
                    self._db.execute(sql, values)
                self._db.commit()
            except sqlite3.IntegrityError as exc:
                with contextlib.suppress(sqlite3.Error):
                    self._db.execute("ROLLBACK")
                if "unique" in str(exc).lower():
                    raise DuplicateRecordError(str(exc)) from exc
                raise
            except Exception:
                with contextlib.suppress(sqlite3.Error):
                    self._db.execute("ROLLBACK")
                raise

    def _compare_and_set(
        self,
        table: str,
        key_column: str,
        columns: tuple[str, ...],
        values: tuple[Any, ...],
        expected_status: str,
    ) -> int:
        assignments = ", ".join(f"{column} = ?" for column in columns[1:])
        sql = (
            f"UPDATE {table} SET {assignments} "  # nosec B608
            f"WHERE {key_column} = ? AND status = ?"
        )
        params = (*values[1:], values[0], expected_status)
        with self._lock:
            try:
                self._db.execute("BEGIN IMMEDIATE")
                cursor = self._db.execute(sql, params)
                self._db.commit()
            except Exception:
                with contextlib.suppress(sqlite3.Error):
                    self._db.execute("ROLLBACK")
                raise
        return cursor.rowcount

    def _fetch_one(self, sql: str, params: tuple[Any, ...]) -> sqlite3.Row | None:
        with self._lock:
            cursor = self._db.execute(sql, params)
            row: sqlite3.Row | None = cursor.fetchone()
        return row

    def _fetch_all(self, sql: str, params: tuple[Any, ...]) -> list[sqlite3.Row]:
        with self._lock:
            cursor = self._db.execute(sql, params)
            rows: list[sqlite3.Row] = cursor.fetchall()
        return rows

    # ------------------------------------------------------------------
    # Vendors and products
    # ------------------------------------------------------------------

    def insert_vendor(self, vendor: Vendor) -> None:
        self._insert_all(
            [(self._insert_sql("vendors", self._VENDOR_COLUMNS), self._vendor_values(vendor))]
        )

    def get_vendor(self, vendor_id: str) -> Vendor | None:
        row = self._fetch_one("SELECT * FROM vendors WHERE vendor_id = ?", (vendor_id,))
        return None if row is None else self._row_to_vendor(row)

    def get_vendor_by_api_key_hash(self, api_key_hash: str) -> Vendor | None:
        row = self._fetch_one("SELECT * FROM vendors WHERE api_key_hash = ?", (api_key_hash,))
        return None if row is None else self._row_to_vendor(row)

    def insert_product(self, product: Product) -> None:
        """Insert a product; raises DuplicateRecordError if the vendor already has the path."""
        self._insert_all(
            [(self._insert_sql("products", self._PRODUCT_COLUMNS), self._product_values(product))]
        )

    def get_product(self, vendor_id: str, path: str) -> Product | None:
        row = self._fetch_one(
            "SELECT * FROM products WHERE vendor_id = ? AND path = ?",
            (vendor_id, path),
        )
        return None if row is None else self._row_to_product(row)

    def list_products(self, vendor_id: str) -> list[Product]:
        rows = self._fetch_all(
            "SELECT * FROM products WHERE vendor_id = ? ORDER BY created_at ASC",
            (vendor_id,),
        )
        return [self._row_to_product(row) for row in rows]

    # ------------------------------------------------------------------
    # Payments, tasks, and grants
    # ------------------------------------------------------------------

    def insert_payment(self, payment: Payment) -> None:
        self._insert_all(
            [(self._insert_sql("payments", self._PAYMENT_COLUMNS), self._payment_values(payment))]
        )

    def insert_payment_with_task(self, payment: Payment, task: Task) -> None:
        """Persist a settled purchase and its fulfillment task atomically."""
        self._insert_all(
            [
                (self._insert_sql("payments", self._PAYMENT_COLUMNS), self._payment_values(payment)),
                (self._insert_sql("tasks", self._TASK_COLUMNS), self._task_values(task)),
            ]
        )

    def insert_payment_with_grant(self, payment: Payment, grant: CredentialGrant) -> None:
        """Persist a settled purchase and its credential grant atomically."""
        self._insert_all(
            [
                (self._insert_sql("payments", self._PAYMENT_COLUMNS), self._payment_values(payment)),
                (
                    self._insert_sql("credential_grants", self._GRANT_COLUMNS),
                    self._grant_values(grant),
                ),
            ]
        )

    def get_payment(self, payment_id: str) -> Payment | None:
        row = self._fetch_one("SELECT * FROM payments WHERE payment_id = ?", (payment_id,))
        return None if row is None else self._row_to_payment(row)

    def update_payment(self, payment: Payment, *, expected_status: PaymentStatus) -> int:
        """Write ``payment`` if the stored row is still in ``expected_status``."""
        return self._compare_and_set(
            "payments",
            "payment_id",
            self._PAYMENT_COLUMNS,
            self._payment_values(payment),
            expected_status.value,
        )

    def list_expired_pending_escrow(self, now: datetime) -> list[Payment]:
        """Payments still held in custody whose hold deadline is before ``now``."""
        rows = self._fetch_all(
            "SELECT * FROM payments WHERE status = ? AND expires_at IS NOT NULL "
            "AND expires_at < ? ORDER BY expires_at ASC",
            (PaymentStatus.PENDING_ESCROW.value, _to_iso(now)),
        )
        return [self._row_to_payment(row) for row in rows]

    def get_task(self, task_id: str) -> Task | None:
        row = self._fetch_one("SELECT * FROM tasks WHERE task_id = ?", (task_id,))
        return None if row is None else self._row_to_task(row)

    def update_task(self, task: Task, *, expected_status: TaskStatus) -> int:
        """Write ``task`` if the stored row is still in ``expected_status``."""
        return self._compare_and_set(
            "tasks",
            "task_id",
            self._TASK_COLUMNS,
            self._task_values(task),
            expected_status.value,
        )

    def list_tasks(self, vendor_id: str, status: TaskStatus | None = None) -> list[Task]:
        if status is None:
            rows = self._fetch_all(
                "SELECT * FROM tasks WHERE vendor_id = ? ORDER BY created_at ASC",
                (vendor_id,),
            )
        else:
            rows = self._fetch_all(
                "SELECT * FROM tasks WHERE vendor_id = ? AND status = ? ORDER BY created_at ASC",
                (vendor_id, status.value),
            )
        return [self._row_to_task(row) for row in rows]

    def get_credential_grant(self, token: str) -> CredentialGrant | None:
        row = self._fetch_one("SELECT * FROM credential_grants WHERE token = ?", (token,))
        return None if row is None else self._row_to_grant(row)

    def redeem_grant(self, grant: CredentialGrant, api_key: ApiKey) -> int:
        """
        Mark ``grant`` redeemed and store the key minted from it, atomically.

        The grant row is only written while it is still pending. Returns 0,
        and stores no key, when another redemption got there first.
        """
        with self._lock:
            try:
                self._db.execute("BEGIN IMMEDIATE")
                cursor = self._db.execute(
                    "UPDATE credential_grants SET status = ?, redeemed_at = ? "
                    "WHERE grant_id = ? AND status = ?",
                    (
                        grant.status.value,
                        _to_iso(grant.redeemed_at),
                        grant.id,
                        GrantStatus.PENDING.value,
                    ),
                )
                if cursor.rowcount == 0:
                    self._db.execute("ROLLBACK")
                    return 0
                self._db.execute(
                    self._insert_sql("api_keys", self._API_KEY_COLUMNS),
                    self._api_key_values(api_key),
                )
                self._db.commit()
            except Exception:
                with contextlib.suppress(sqlite3.Error):
                    self._db.execute("ROLLBACK")
                raise
        return 1

    def get_api_key_by_hash(self, key_hash: str) -> ApiKey | None:
        row = self._fetch_one("SELECT * FROM api_keys WHERE key_hash = ?", (key_hash,))
        return None if row is None else self._row_to_api_key(row)

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def count_tasks_by_status(self) -> dict[str, int]:
        rows = self._fetch_all("SELECT status, COUNT(*) AS n FROM tasks GROUP BY status", ())
        return {str(row["status"]): int(row["n"]) for row in rows}

    def count_payments_by_status(self) -> dict[str, int]:
        rows = self._fetch_all("SELECT status, COUNT(*) AS n FROM payments GROUP BY status", ())
        return {str(row["status"]): int(row["n"]) for row in rows}

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._db.close()
