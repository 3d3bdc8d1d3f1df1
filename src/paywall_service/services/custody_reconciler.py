"""Finds custody holds that outlived their deadline and hands them to a handler."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Protocol

from paywall_service.logging import get_logger

if TYPE_CHECKING:
    from paywall_service.domain.payment import Payment
    from paywall_service.services.market_store import MarketStore


class ExpiredHoldHandler(Protocol):
    """Decides what to do with one expired ``pending_escrow`` payment."""

    async def handle(self, payment: Payment) -> None: ...


class LogExpiredHold:
    """Default handler: reports the hold and leaves it untouched for an operator."""

    def __init__(self) -> None:
        self._logger = get_logger(__name__)

    async def handle(self, payment: Payment) -> None:
        self._logger.warning(
            "Custody hold expired without a fulfillment outcome",
            extra={
                "payment_id": payment.id,
                "vendor_id": payment.vendor_id,
                "expires_at": payment.expires_at,
                "amount": payment.amount,
            },
        )


class CustodyReconciler:
    """
    Reconciliation hook for expired custody holds.

    Nothing here moves funds. ``reconcile`` is meant to be called
    periodically (or on demand from the admin API); what happens to an
    expired hold is entirely up to the handler it was built with.
    """

    def __init__(self, store: MarketStore, handler: ExpiredHoldHandler | None = None) -> None:
        self._store = store
        self._handler: ExpiredHoldHandler = handler if handler is not None else LogExpiredHold()

    def find_expired_holds(self, now: datetime | None = None) -> list[Payment]:
        current = now if now is not None else datetime.now(UTC)
        return self._store.list_expired_pending_escrow(current)

    async def reconcile(self, now: datetime | None = None) -> list[Payment]:
        """Pass every expired hold to the handler and return the holds handled."""
        expired = self.find_expired_holds(now)
        for payment in expired:
            await self._handler.handle(payment)
        return expired
