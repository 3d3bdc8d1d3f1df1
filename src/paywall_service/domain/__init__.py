"""Domain entities and their lifecycle rules."""

from paywall_service.domain.catalog import Product, ProductKind, Vendor
from paywall_service.domain.credential import CredentialGrant
from paywall_service.domain.errors import (
    DomainError,
    InvalidStateTransition,
    NotFoundError,
    ValidationFailed,
)
from paywall_service.domain.payment import Payment, PaymentStatus
from paywall_service.domain.task import Task, TaskStatus

__all__ = [
    "CredentialGrant",
    "DomainError",
    "InvalidStateTransition",
    "NotFoundError",
    "Payment",
    "PaymentStatus",
    "Product",
    "ProductKind",
    "Task",
    "TaskStatus",
    "ValidationFailed",
    "Vendor",
]
