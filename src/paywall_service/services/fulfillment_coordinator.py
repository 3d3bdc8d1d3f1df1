"""Drives fulfillment tasks and reconciles their custody holds."""

from __future__ import annotations

from typing import TYPE_CHECKING

from paywall_service.core.exceptions import ServiceError
from paywall_service.domain.errors import InvalidStateTransition, NotFoundError
from paywall_service.domain.payment import PaymentStatus
from paywall_service.domain.task import Task, TaskStatus
from paywall_service.logging import get_logger
from paywall_service.services.capture_mode import CustodyCapture

if TYPE_CHECKING:
    from paywall_service.clients.custody_client import CustodyResult
    from paywall_service.domain.payment import Payment
    from paywall_service.services.capture_mode import CaptureMode, CustodyService
    from paywall_service.services.market_store import MarketStore


class FulfillmentCoordinator:
    """
    Vendor-facing task lifecycle plus best-effort custody settlement.

    ``complete`` and ``fail`` first record the fulfillment outcome, then try
    to release (or refund) the linked payment if it is still held in
    custody. A custody failure is logged and leaves the payment in
    ``pending_escrow``; it never undoes the recorded task outcome and is
    not retried here.
    """

    def __init__(self, store: MarketStore, capture_mode: CaptureMode) -> None:
        self._store = store
        self._custody: CustodyService | None = (
            capture_mode.custody if isinstance(capture_mode, CustodyCapture) else None
        )
        self._logger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_task(self, task_id: str) -> Task:
        task = self._store.get_task(task_id)
        if task is None:
            raise NotFoundError("task", task_id)
        return task

    def get_vendor_task(self, task_id: str, vendor_id: str) -> Task:
        """Load a task, hiding tasks that belong to other vendors."""
        task = self._store.get_task(task_id)
        if task is None or task.vendor_id != vendor_id:
            raise NotFoundError("task", task_id)
        return task

    def list_pending_tasks(self, vendor_id: str) -> list[Task]:
        return self._store.list_tasks(vendor_id, TaskStatus.PENDING)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start_processing(self, task_id: str, vendor_id: str) -> Task:
        task = self.get_vendor_task(task_id, vendor_id)
        updated = task.start_processing()
        self._save_task(updated, task.status, "start processing")
        self._logger.info(
            "Task processing started",
            extra={"task_id": task_id, "vendor_id": vendor_id},
        )
        return updated

    async def complete(self, task_id: str, vendor_id: str, result: str) -> Task:
        """Record a successful fulfillment and release the held payment to the vendor."""
        task = self.get_vendor_task(task_id, vendor_id)
        updated = task.complete(result)
        self._save_task(updated, task.status, "complete")
        self._logger.info(
            "Task completed",
            extra={"task_id": task_id, "vendor_id": vendor_id},
        )
        await self._settle_held_payment(updated, release=True)
        return updated

    async def fail(self, task_id: str, vendor_id: str, error_message: str) -> Task:
        """Record a failed fulfillment and refund the held payment to the buyer."""
        task = self.get_vendor_task(task_id, vendor_id)
        updated = task.fail(error_message)
        self._save_task(updated, task.status, "fail")
        self._logger.info(
            "Task failed",
            extra={"task_id": task_id, "vendor_id": vendor_id},
        )
        await self._settle_held_payment(updated, release=False)
        return updated

    def _save_task(self, updated: Task, expected_status: TaskStatus, action: str) -> None:
        changed = self._store.update_task(updated, expected_status=expected_status)
        if changed == 0:
            current = self._store.get_task(updated.id)
            current_status = current.status.value if current is not None else "unknown"
            raise InvalidStateTransition("task", current_status, action)

    # ------------------------------------------------------------------
    # Custody
    # ------------------------------------------------------------------

    async def _settle_held_payment(self, task: Task, *, release: bool) -> None:
        payment = self._store.get_payment(task.payment_id)
        if payment is None:
            self._logger.warning(
                "Task has no payment record",
                extra={"task_id": task.id, "payment_id": task.payment_id},
            )
            return
        if payment.status is not PaymentStatus.PENDING_ESCROW:
            return

        if self._custody is None:
            self._logger.warning(
                "Payment is held in custody but no custody service is configured",
                extra={"task_id": task.id, "payment_id": payment.id},
            )
            return

        action = "release" if release else "refund"
        try:
            if release:
                vendor = self._store.get_vendor(payment.vendor_id)
                if vendor is None:
                    self._logger.warning(
                        "Vendor missing for custody release",
                        extra={"payment_id": payment.id, "vendor_id": payment.vendor_id},
                    )
                    return
                result = await self._call_custody(payment, vendor.settlement_address)
            else:
                result = await self._call_custody(payment, None)
        except ServiceError as exc:
            self._logger.warning(
                "Custody call failed, payment left in pending_escrow",
                extra={
                    "task_id": task.id,
                    "payment_id": payment.id,
                    "action": action,
                    "error_code": exc.error,
                },
            )
            return

        if not result.success:
            self._logger.warning(
                "Custody declined, payment left in pending_escrow",
                extra={
                    "task_id": task.id,
                    "payment_id": payment.id,
                    "action": action,
                    "reason": result.reason,
                },
            )
            return

        transaction = result.transaction or ""
        settled = payment.release(transaction) if release else payment.refund(transaction)
        changed = self._store.update_payment(settled, expected_status=PaymentStatus.PENDING_ESCROW)
        if changed == 0:
            self._logger.warning(
                "Payment changed before custody result was recorded",
                extra={"payment_id": payment.id, "action": action, "transaction": transaction},
            )
            return
        self._logger.info(
            "Custody hold settled",
            extra={
                "task_id": task.id,
                "payment_id": payment.id,
                "action": action,
                "transaction": transaction,
            },
        )

    async def _call_custody(self, payment: Payment, vendor_address: str | None) -> CustodyResult:
        """
        Release to ``vendor_address``, or refund when it is None.

        Raises ServiceError("CUSTODY_UNAVAILABLE", ..., 502) on failure.
        """
        if self._custody is None:
            msg = "Custody service not configured"
            raise RuntimeError(msg)
        try:
            if vendor_address is not None:
                return await self._custody.release(payment, vendor_address)
            return await self._custody.refund(payment)
        except ServiceError:
            raise
        except Exception as exc:
            raise ServiceError(
                "CUSTODY_UNAVAILABLE",
                "Custody executor call failed",
                502,
                {},
            ) from exc
