"""Unit tests for MarketStore persistence."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from paywall_service.domain.catalog import ProductKind, hash_api_key
from paywall_service.domain.credential import ApiKey, CredentialGrant, GrantStatus
from paywall_service.domain.payment import PaymentStatus
from paywall_service.domain.task import TaskStatus
from paywall_service.services.market_store import DuplicateRecordError, MarketStore
from tests.helpers import make_direct_payment, make_held_payment, make_product, make_task, make_vendor


@pytest.fixture
def store(tmp_path: Path):
    market = MarketStore(str(tmp_path / "nested" / "paywall.db"))
    yield market
    market.close()


@pytest.mark.unit
def test_creates_parent_directory(tmp_path: Path) -> None:
    MarketStore(str(tmp_path / "a" / "b" / "paywall.db")).close()
    assert (tmp_path / "a" / "b" / "paywall.db").exists()


@pytest.mark.unit
def test_vendor_roundtrip_and_api_key_lookup(store: MarketStore) -> None:
    vendor, api_key = make_vendor()
    store.insert_vendor(vendor)

    assert store.get_vendor(vendor.id) == vendor
    assert store.get_vendor_by_api_key_hash(hash_api_key(api_key)) == vendor
    assert store.get_vendor_by_api_key_hash(hash_api_key("wrong")) is None
    assert store.get_vendor("v-missing") is None


@pytest.mark.unit
def test_product_roundtrip_and_duplicate_path(store: MarketStore) -> None:
    vendor, _ = make_vendor()
    store.insert_vendor(vendor)
    product = make_product(vendor, kind=ProductKind.CREDENTIAL)
    store.insert_product(product)

    assert store.get_product(vendor.id, "weather") == product
    assert store.get_product(vendor.id, "other") is None
    assert store.list_products(vendor.id) == [product]

    with pytest.raises(DuplicateRecordError):
        store.insert_product(make_product(vendor))
    assert len(store.list_products(vendor.id)) == 1


@pytest.mark.unit
def test_same_path_allowed_for_different_vendors(store: MarketStore) -> None:
    first, _ = make_vendor("First")
    second, _ = make_vendor("Second")
    store.insert_vendor(first)
    store.insert_vendor(second)

    store.insert_product(make_product(first))
    store.insert_product(make_product(second))

    assert store.get_product(first.id, "weather") is not None
    assert store.get_product(second.id, "weather") is not None


@pytest.mark.unit
def test_payment_with_task_roundtrip(store: MarketStore) -> None:
    payment = make_held_payment()
    task = make_task(payment)

    store.insert_payment_with_task(payment, task)

    assert store.get_payment(payment.id) == payment
    assert store.get_task(task.id) == task


@pytest.mark.unit
def test_payment_with_task_is_atomic(store: MarketStore) -> None:
    first = make_held_payment()
    store.insert_payment_with_task(first, make_task(first))

    second = make_held_payment()
    # a second task for the first payment violates the one-task-per-payment rule
    clashing_task = make_task(first)

    with pytest.raises(DuplicateRecordError):
        store.insert_payment_with_task(second, clashing_task)

    assert store.get_payment(second.id) is None
    assert store.get_task(clashing_task.id) is None


@pytest.mark.unit
def test_payment_with_grant_roundtrip(store: MarketStore) -> None:
    payment = make_direct_payment()
    grant = CredentialGrant.issue(
        vendor_id=payment.vendor_id,
        payment_id=payment.id,
        label="API Key",
        wallet_address=payment.payer,
        expires_in=timedelta(hours=24),
    )

    store.insert_payment_with_grant(payment, grant)

    assert store.get_payment(payment.id) == payment
    assert store.get_credential_grant(grant.token) == grant
    assert store.get_credential_grant("missing") is None


@pytest.mark.unit
def test_redeem_grant_compare_and_set(store: MarketStore) -> None:
    payment = make_direct_payment()
    grant = CredentialGrant.issue(
        vendor_id=payment.vendor_id,
        payment_id=payment.id,
        label="API Key",
        wallet_address=payment.payer,
        expires_in=timedelta(hours=24),
    )
    store.insert_payment_with_grant(payment, grant)
    first_key, first_plaintext = ApiKey.mint(grant)
    second_key, second_plaintext = ApiKey.mint(grant)

    assert store.redeem_grant(grant.redeem(), first_key) == 1
    assert store.redeem_grant(grant.redeem(), second_key) == 0

    stored = store.get_credential_grant(grant.token)
    assert stored is not None
    assert stored.status is GrantStatus.REDEEMED
    assert store.get_api_key_by_hash(hash_api_key(first_plaintext)) == first_key
    assert store.get_api_key_by_hash(hash_api_key(second_plaintext)) is None


@pytest.mark.unit
def test_update_payment_compare_and_set(store: MarketStore) -> None:
    payment = make_held_payment()
    store.insert_payment(payment)
    released = payment.release("0xrelease")

    assert store.update_payment(released, expected_status=PaymentStatus.PENDING_ESCROW) == 1
    assert store.get_payment(payment.id) == released

    # stale writer still believes the payment is held
    refunded = payment.refund("0xrefund")
    assert store.update_payment(refunded, expected_status=PaymentStatus.PENDING_ESCROW) == 0
    assert store.get_payment(payment.id) == released


@pytest.mark.unit
def test_update_task_compare_and_set(store: MarketStore) -> None:
    payment = make_held_payment()
    task = make_task(payment)
    store.insert_payment_with_task(payment, task)

    processing = task.start_processing()
    assert store.update_task(processing, expected_status=TaskStatus.PENDING) == 1
    assert store.update_task(processing, expected_status=TaskStatus.PENDING) == 0
    assert store.get_task(task.id) == processing


@pytest.mark.unit
def test_list_tasks_filters_by_vendor_and_status(store: MarketStore) -> None:
    mine = make_held_payment(vendor_id="v-mine")
    other = make_held_payment(vendor_id="v-other")
    started = make_held_payment(vendor_id="v-mine")
    mine_task = make_task(mine)
    started_task = make_task(started)
    store.insert_payment_with_task(mine, mine_task)
    store.insert_payment_with_task(other, make_task(other))
    store.insert_payment_with_task(started, started_task)
    store.update_task(started_task.start_processing(), expected_status=TaskStatus.PENDING)

    assert [t.id for t in store.list_tasks("v-mine")] == [mine_task.id, started_task.id]
    assert [t.id for t in store.list_tasks("v-mine", TaskStatus.PENDING)] == [mine_task.id]
    assert store.list_tasks("v-nobody") == []


@pytest.mark.unit
def test_list_expired_pending_escrow(store: MarketStore) -> None:
    now = datetime.now(UTC)
    expired = make_held_payment(expires_at=now - timedelta(hours=1))
    live = make_held_payment(expires_at=now + timedelta(hours=1))
    released = make_held_payment(expires_at=now - timedelta(hours=2))
    direct = make_direct_payment()
    for payment in (expired, live, released, direct):
        store.insert_payment(payment)
    store.update_payment(released.release("0xr"), expected_status=PaymentStatus.PENDING_ESCROW)

    assert [p.id for p in store.list_expired_pending_escrow(now)] == [expired.id]


@pytest.mark.unit
def test_status_counts(store: MarketStore) -> None:
    held = make_held_payment()
    store.insert_payment_with_task(held, make_task(held))
    store.insert_payment(make_direct_payment())

    assert store.count_payments_by_status() == {"pending_escrow": 1, "settled": 1}
    assert store.count_tasks_by_status() == {"pending": 1}
