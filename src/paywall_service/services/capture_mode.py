"""How settled funds are captured: held in custody, or paid straight to the vendor."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Protocol

from paywall_service.domain.payment import Payment

if TYPE_CHECKING:
    from paywall_service.clients.custody_client import CustodyResult
    from paywall_service.domain.catalog import Product, Vendor

CUSTODY_TIMEOUT = timedelta(days=7)


class CustodyService(Protocol):
    """Holds settled funds and later releases or refunds them."""

    def custody_address(self) -> str: ...

    async def release(self, payment: Payment, vendor_address: str) -> CustodyResult: ...

    async def refund(self, payment: Payment) -> CustodyResult: ...


@dataclass(frozen=True)
class DirectCapture:
    """Buyers pay the vendor directly; payments are final at settlement."""

    @property
    def name(self) -> str:
        return "direct"

    def pay_to(self, vendor: Vendor) -> str:
        return vendor.settlement_address

    def open_payment(
        self,
        product: Product,
        payer: str,
        transaction: str,
        network: str,
    ) -> Payment:
        return Payment.create_direct(
            product_id=product.id,
            vendor_id=product.vendor_id,
            amount=product.price,
            network=network,
            payer=payer,
            transaction=transaction,
        )


@dataclass(frozen=True)
class CustodyCapture:
    """Buyers pay the custody wallet; funds wait there until fulfillment resolves."""

    custody: CustodyService
    hold_timeout: timedelta = CUSTODY_TIMEOUT

    @property
    def name(self) -> str:
        return "custody"

    def pay_to(self, _vendor: Vendor) -> str:
        return self.custody.custody_address()

    def open_payment(
        self,
        product: Product,
        payer: str,
        transaction: str,
        network: str,
    ) -> Payment:
        return Payment.create_with_custody(
            product_id=product.id,
            vendor_id=product.vendor_id,
            amount=product.price,
            network=network,
            payer=payer,
            transaction=transaction,
            expires_at=datetime.now(UTC) + self.hold_timeout,
        )


CaptureMode = DirectCapture | CustodyCapture
