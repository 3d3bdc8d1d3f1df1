"""Pydantic request/response models for the API."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, ConfigDict

if TYPE_CHECKING:
    from paywall_service.domain.catalog import Product, Vendor
    from paywall_service.domain.credential import ApiKey
    from paywall_service.domain.payment import Payment
    from paywall_service.domain.task import Task


def _iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat(timespec="seconds").replace("+00:00", "Z")


class HealthResponse(BaseModel):
    """Response model for GET /health."""

    model_config = ConfigDict(extra="forbid")
    status: Literal["ok"]
    uptime_seconds: float
    started_at: str
    capture_mode: Literal["custody", "direct"]
    total_tasks: int
    tasks_by_status: dict[str, int]
    payments_by_status: dict[str, int]


class ErrorResponse(BaseModel):
    """Standard error response model."""

    model_config = ConfigDict(extra="forbid")
    error: str
    message: str
    details: dict[str, object]


class VendorResponse(BaseModel):
    """Response model for POST /admin/vendors. ``api_key`` is only ever returned here."""

    model_config = ConfigDict(extra="forbid")
    vendor_id: str
    name: str
    settlement_address: str
    status: str
    created_at: str
    api_key: str

    @classmethod
    def from_vendor(cls, vendor: Vendor, api_key: str) -> VendorResponse:
        return cls(
            vendor_id=vendor.id,
            name=vendor.name,
            settlement_address=vendor.settlement_address,
            status=vendor.status.value,
            created_at=_iso(vendor.created_at) or "",
            api_key=api_key,
        )


class ProductResponse(BaseModel):
    """Product as registered in the catalog."""

    model_config = ConfigDict(extra="forbid")
    product_id: str
    vendor_id: str
    path: str
    price: str
    network: str
    description: str
    mime_type: str
    kind: Literal["credential", "async"]
    status: str
    created_at: str

    @classmethod
    def from_product(cls, product: Product) -> ProductResponse:
        return cls(
            product_id=product.id,
            vendor_id=product.vendor_id,
            path=product.path,
            price=product.price,
            network=product.network,
            description=product.description,
            mime_type=product.mime_type,
            kind=product.kind.value,
            status=product.status.value,
            created_at=_iso(product.created_at) or "",
        )


class ProductListResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")
    vendor_id: str
    products: list[ProductResponse]


class TaskStatusResponse(BaseModel):
    """Response model for GET /tasks/{task_id}."""

    model_config = ConfigDict(extra="forbid")
    task_id: str
    status: str
    created_at: str
    updated_at: str

    @classmethod
    def from_task(cls, task: Task) -> TaskStatusResponse:
        return cls(
            task_id=task.id,
            status=task.status.value,
            created_at=_iso(task.created_at) or "",
            updated_at=_iso(task.updated_at) or "",
        )


class VendorTaskResponse(BaseModel):
    """Full task view for the owning vendor."""

    model_config = ConfigDict(extra="forbid")
    task_id: str
    payment_id: str
    product_id: str
    buyer_address: str
    request_payload: str
    status: str
    result: str | None
    error_message: str | None
    created_at: str
    updated_at: str

    @classmethod
    def from_task(cls, task: Task) -> VendorTaskResponse:
        return cls(
            task_id=task.id,
            payment_id=task.payment_id,
            product_id=task.product_id,
            buyer_address=task.buyer_address,
            request_payload=task.request_payload,
            status=task.status.value,
            result=task.result,
            error_message=task.error_message,
            created_at=_iso(task.created_at) or "",
            updated_at=_iso(task.updated_at) or "",
        )


class VendorTaskListResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")
    tasks: list[VendorTaskResponse]


class HeldPaymentResponse(BaseModel):
    """A payment still held in custody."""

    model_config = ConfigDict(extra="forbid")
    payment_id: str
    vendor_id: str
    product_id: str
    amount: str
    network: str
    payer: str
    transaction: str
    created_at: str
    expires_at: str | None

    @classmethod
    def from_payment(cls, payment: Payment) -> HeldPaymentResponse:
        return cls(
            payment_id=payment.id,
            vendor_id=payment.vendor_id,
            product_id=payment.product_id,
            amount=payment.amount,
            network=payment.network,
            payer=payment.payer,
            transaction=payment.transaction,
            created_at=_iso(payment.created_at) or "",
            expires_at=_iso(payment.expires_at),
        )


class ExpiredHoldListResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")
    payments: list[HeldPaymentResponse]


class RedeemResponse(BaseModel):
    """Response model for GET /redeem/{token}. ``api_key`` is only ever returned here."""

    model_config = ConfigDict(extra="forbid")
    vendor_id: str
    api_key: str
    name: str
    wallet_address: str
    created_at: str

    @classmethod
    def from_api_key(cls, api_key: ApiKey, plaintext: str) -> RedeemResponse:
        return cls(
            vendor_id=api_key.vendor_id,
            api_key=plaintext,
            name=api_key.label,
            wallet_address=api_key.wallet_address,
            created_at=_iso(api_key.created_at) or "",
        )
