"""Catalog entities: vendors and the priced resources they sell."""

from __future__ import annotations

import hashlib
import secrets
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum

from eth_utils import is_hex_address

from paywall_service.domain.errors import ValidationFailed
from paywall_service.domain.pricing import parse_price

DEFAULT_NETWORK = "eip155:84532"
DEFAULT_MIME_TYPE = "application/json"


class ProductKind(StrEnum):
    """What a successful payment for a product produces."""

    CREDENTIAL = "credential"
    ASYNC = "async"


class VendorStatus(StrEnum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class ProductStatus(StrEnum):
    ACTIVE = "active"
    INACTIVE = "inactive"


def validate_evm_address(value: str, field: str) -> str:
    """Require a 0x-prefixed, 40 hex character address."""
    if not value.startswith("0x") or not is_hex_address(value):
        raise ValidationFailed(field, "must be a 0x-prefixed 40 character hex address")
    return value


def hash_api_key(api_key: str) -> str:
    return hashlib.sha256(api_key.encode()).hexdigest()


@dataclass(frozen=True)
class Vendor:
    """A seller whose settlement address receives released or direct payments."""

    id: str
    name: str
    settlement_address: str
    api_key_hash: str
    status: VendorStatus
    created_at: datetime

    @classmethod
    def register(cls, name: str, settlement_address: str) -> tuple[Vendor, str]:
        """
        Create a vendor and its API key.

        Returns:
            The vendor and the plaintext API key. Only the hash is stored,
            so the key can be shown to the vendor exactly once.
        """
        if not name.strip():
            raise ValidationFailed("name", "must not be empty")
        validate_evm_address(settlement_address, "settlement_address")
        api_key = secrets.token_hex(32)
        vendor = cls(
            id=f"v-{uuid.uuid4()}",
            name=name.strip(),
            settlement_address=settlement_address,
            api_key_hash=hash_api_key(api_key),
            status=VendorStatus.ACTIVE,
            created_at=datetime.now(UTC),
        )
        return vendor, api_key

    @property
    def is_active(self) -> bool:
        return self.status is VendorStatus.ACTIVE


@dataclass(frozen=True)
class Product:
    """
    A priced resource at ``/{vendor_id}/{path}``.

    ``kind`` is fixed at registration; ``data`` is opaque vendor metadata
    and is never inspected to decide what a purchase produces.
    """

    id: str
    vendor_id: str
    path: str
    price: str
    network: str
    description: str
    mime_type: str
    data: str
    kind: ProductKind
    status: ProductStatus
    created_at: datetime

    @classmethod
    def register(
        cls,
        vendor_id: str,
        path: str,
        price: str,
        description: str,
        data: str = "",
        kind: ProductKind = ProductKind.ASYNC,
        network: str | None = None,
        mime_type: str | None = None,
    ) -> Product:
        normalized_path = normalize_path(path)
        if not normalized_path:
            raise ValidationFailed("path", "must not be empty")
        parse_price(price)
        return cls(
            id=f"p-{uuid.uuid4()}",
            vendor_id=vendor_id,
            path=normalized_path,
            price=price,
            network=network or DEFAULT_NETWORK,
            description=description,
            mime_type=mime_type or DEFAULT_MIME_TYPE,
            data=data,
            kind=kind,
            status=ProductStatus.ACTIVE,
            created_at=datetime.now(UTC),
        )

    @property
    def is_active(self) -> bool:
        return self.status is ProductStatus.ACTIVE


def normalize_path(path: str) -> str:
    """Strip surrounding whitespace and slashes so "/weather/" and "weather" match."""
    return path.strip().strip("/")
