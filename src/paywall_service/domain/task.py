"""Task entity: one unit of asynchronous fulfillment work tied to one payment."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta
from enum import StrEnum

from paywall_service.domain.errors import InvalidStateTransition


class TaskStatus(StrEnum):
    """Task lifecycle states."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_TASK_STATUSES: frozenset[TaskStatus] = frozenset({TaskStatus.COMPLETED, TaskStatus.FAILED})


def _advance(previous: datetime) -> datetime:
    # updated_at must move forward even when two transitions land in the same clock tick
    return max(datetime.now(UTC), previous + timedelta(microseconds=1))


@dataclass(frozen=True)
class Task:
    """
    Immutable task snapshot.

    Legal transitions: pending -> processing -> completed | failed.
    """

    id: str
    payment_id: str
    product_id: str
    vendor_id: str
    buyer_address: str
    request_payload: str
    status: TaskStatus
    created_at: datetime
    updated_at: datetime
    result: str | None = None
    error_message: str | None = None

    @classmethod
    def create(
        cls,
        payment_id: str,
        product_id: str,
        vendor_id: str,
        buyer_address: str,
        request_payload: str,
    ) -> Task:
        now = datetime.now(UTC)
        return cls(
            id=f"t-{uuid.uuid4()}",
            payment_id=payment_id,
            product_id=product_id,
            vendor_id=vendor_id,
            buyer_address=buyer_address,
            request_payload=request_payload,
            status=TaskStatus.PENDING,
            created_at=now,
            updated_at=now,
        )

    def start_processing(self) -> Task:
        if self.status is not TaskStatus.PENDING:
            raise InvalidStateTransition("task", self.status.value, "start processing")
        return replace(self, status=TaskStatus.PROCESSING, updated_at=_advance(self.updated_at))

    def complete(self, result: str) -> Task:
        if self.status is not TaskStatus.PROCESSING:
            raise InvalidStateTransition("task", self.status.value, "complete")
        return replace(
            self,
            status=TaskStatus.COMPLETED,
            result=result,
            updated_at=_advance(self.updated_at),
        )

    def fail(self, error_message: str) -> Task:
        if self.status is not TaskStatus.PROCESSING:
            raise InvalidStateTransition("task", self.status.value, "fail")
        return replace(
            self,
            status=TaskStatus.FAILED,
            error_message=error_message,
            updated_at=_advance(self.updated_at),
        )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_TASK_STATUSES
