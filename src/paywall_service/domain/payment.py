"""Payment entity: one fund movement for one priced-resource purchase."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from enum import StrEnum

from paywall_service.domain.errors import InvalidStateTransition
from paywall_service.domain.pricing import parse_price


class PaymentStatus(StrEnum):
    """Payment lifecycle states."""

    PENDING_ESCROW = "pending_escrow"
    SETTLED = "settled"
    REFUNDED = "refunded"
    FAILED = "failed"


@dataclass(frozen=True)
class Payment:
    """
    Immutable payment snapshot.

    A payment is created either ``settled`` (direct capture) or
    ``pending_escrow`` (held by the custody service until the linked task
    reaches a terminal state). Only a ``pending_escrow`` payment can be
    released or refunded, and every transition returns a new snapshot.
    """

    id: str
    product_id: str
    vendor_id: str
    amount: str
    network: str
    payer: str
    transaction: str
    status: PaymentStatus
    created_at: datetime
    release_transaction: str | None = None
    refund_transaction: str | None = None
    released_at: datetime | None = None
    refunded_at: datetime | None = None
    expires_at: datetime | None = None

    @classmethod
    def create_direct(
        cls,
        product_id: str,
        vendor_id: str,
        amount: str,
        network: str,
        payer: str,
        transaction: str,
    ) -> Payment:
        """Create a payment captured straight to the vendor."""
        parse_price(amount, field="amount")
        return cls(
            id=f"pay-{uuid.uuid4()}",
            product_id=product_id,
            vendor_id=vendor_id,
            amount=amount,
            network=network,
            payer=payer,
            transaction=transaction,
            status=PaymentStatus.SETTLED,
            created_at=datetime.now(UTC),
        )

    @classmethod
    def create_with_custody(
        cls,
        product_id: str,
        vendor_id: str,
        amount: str,
        network: str,
        payer: str,
        transaction: str,
        expires_at: datetime,
    ) -> Payment:
        """Create a payment whose funds sit in custody until fulfillment resolves."""
        parse_price(amount, field="amount")
        return cls(
            id=f"pay-{uuid.uuid4()}",
            product_id=product_id,
            vendor_id=vendor_id,
            amount=amount,
            network=network,
            payer=payer,
            transaction=transaction,
            status=PaymentStatus.PENDING_ESCROW,
            created_at=datetime.now(UTC),
            expires_at=expires_at,
        )

    def release(self, release_transaction: str) -> Payment:
        """Pay the held funds out to the vendor."""
        if self.status is not PaymentStatus.PENDING_ESCROW:
            raise InvalidStateTransition("payment", self.status.value, "release")
        return replace(
            self,
            status=PaymentStatus.SETTLED,
            release_transaction=release_transaction,
            released_at=datetime.now(UTC),
        )

    def refund(self, refund_transaction: str) -> Payment:
        """Return the held funds to the buyer."""
        if self.status is not PaymentStatus.PENDING_ESCROW:
            raise InvalidStateTransition("payment", self.status.value, "refund")
        return replace(
            self,
            status=PaymentStatus.REFUNDED,
            refund_transaction=refund_transaction,
            refunded_at=datetime.now(UTC),
        )

    def mark_failed(self) -> Payment:
        return replace(self, status=PaymentStatus.FAILED)

    def is_expired(self, now: datetime | None = None) -> bool:
        """True when a custody hold exists and its deadline has passed."""
        if self.expires_at is None:
            return False
        current = now if now is not None else datetime.now(UTC)
        return current > self.expires_at
