"""Decides the outcome of one request for a priced resource."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar, Literal

from paywall_service.core.exceptions import ServiceError
from paywall_service.domain.catalog import ProductKind, normalize_path
from paywall_service.domain.errors import ValidationFailed
from paywall_service.domain.payment import Payment
from paywall_service.domain.task import Task
from paywall_service.logging import get_logger
from paywall_service.services.payment_gateway import (
    ResourceConfig,
    ResourceInfo,
    SettlementResult,
)

if TYPE_CHECKING:
    from paywall_service.domain.catalog import Product, Vendor
    from paywall_service.services.capture_mode import CaptureMode
    from paywall_service.services.credential_issuer import CredentialIssuer
    from paywall_service.services.market_store import MarketStore
    from paywall_service.services.payment_gateway import PaymentGateway


@dataclass(frozen=True)
class PaywallRequest:
    """One incoming request for ``/{vendor_id}/{path}``."""

    vendor_id: str
    path: str
    resource_url: str
    payment_header: str | None = None
    request_payload: str = ""


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PaymentRequired:
    """No usable payment was presented; ``payment_required`` tells the buyer how to pay."""

    outcome: ClassVar[str] = "payment_required"
    payment_required: dict[str, Any]


@dataclass(frozen=True)
class CredentialIssued:
    outcome: ClassVar[str] = "credential_issued"
    redeem_url: str
    grant_id: str
    payment_id: str
    settlement: SettlementResult


@dataclass(frozen=True)
class TaskCreated:
    outcome: ClassVar[str] = "task_created"
    task_id: str
    payment_id: str
    settlement: SettlementResult


@dataclass(frozen=True)
class VerificationFailed:
    outcome: ClassVar[str] = "verification_failed"
    reason: str
    payment_required: dict[str, Any]


@dataclass(frozen=True)
class SettlementFailed:
    outcome: ClassVar[str] = "settlement_failed"
    reason: str


@dataclass(frozen=True)
class ResourceUnavailable:
    """The resource exists but cannot be priced under the configured assets."""

    outcome: ClassVar[str] = "resource_unavailable"
    reason: str


@dataclass(frozen=True)
class RecordingFailed:
    """
    Settlement succeeded but the purchase could not be recorded.

    ``transaction`` is the settlement reference the buyer paid under;
    ``payment_id`` names the failed payment record, when one could be written.
    """

    outcome: ClassVar[str] = "recording_failed"
    reason: str
    transaction: str
    payment_id: str
    settlement: SettlementResult


@dataclass(frozen=True)
class NotFound:
    outcome: ClassVar[str] = "not_found"
    missing: Literal["vendor", "resource"]
    reason: str


Outcome = (
    PaymentRequired
    | CredentialIssued
    | TaskCreated
    | VerificationFailed
    | SettlementFailed
    | NotFound
    | ResourceUnavailable
    | RecordingFailed
)


class RequestOrchestrator:
    """
    Runs the paywall decision procedure for one request.

    Steps, each short-circuiting to an outcome:
    1. Resolve the vendor and product.
    2. Build the payment terms, paying into custody or to the vendor
       depending on the capture mode.
    3. No payment header: ``PaymentRequired``.
    4. Decode the header and pick the matching terms; unusable proof is
       answered with ``PaymentRequired`` and fresh terms.
    5. Verify, then settle, each exactly once.
    6. Record the purchase: a settled payment plus a credential grant, or a
       payment (held or settled) plus a pending task.

    Declines and facilitator outages come back as outcome values, and so
    does a purchase that settled but could not be recorded. Nothing about
    the buyer's payment is raised to the caller.
    """

    def __init__(
        self,
        store: MarketStore,
        gateway: PaymentGateway,
        capture_mode: CaptureMode,
        credential_issuer: CredentialIssuer,
    ) -> None:
        self._store = store
        self._gateway = gateway
        self._capture_mode = capture_mode
        self._credential_issuer = credential_issuer
        self._logger = get_logger(__name__)

    @property
    def capture_mode(self) -> CaptureMode:
        return self._capture_mode

    async def process(self, request: PaywallRequest) -> Outcome:
        vendor = self._store.get_vendor(request.vendor_id)
        if vendor is None or not vendor.is_active:
            return NotFound(missing="vendor", reason="Vendor not found")

        product = self._store.get_product(vendor.id, normalize_path(request.path))
        if product is None or not product.is_active:
            return NotFound(missing="resource", reason="Resource not found")

        resource_info = ResourceInfo(
            url=request.resource_url,
            description=product.description,
            mime_type=product.mime_type,
        )
        try:
            requirements = self._build_requirements(vendor, product)
        except ValidationFailed as exc:
            self._logger.warning(
                "Resource cannot be priced",
                extra={"vendor_id": vendor.id, "product_id": product.id, "reason": str(exc)},
            )
            return ResourceUnavailable(reason=str(exc))

        if request.payment_header is None:
            return PaymentRequired(
                self._gateway.build_unpaid_response(requirements, resource_info)
            )

        try:
            payload = self._gateway.parse_payment_proof(request.payment_header)
        except ValidationFailed as exc:
            self._logger.info(
                "Unreadable payment header",
                extra={"vendor_id": vendor.id, "path": product.path, "rule": exc.rule},
            )
            return PaymentRequired(
                self._gateway.build_unpaid_response(
                    requirements,
                    resource_info,
                    error="Payment header could not be decoded",
                )
            )

        requirement = self._gateway.match_requirement(requirements, payload)
        if requirement is None:
            return PaymentRequired(
                self._gateway.build_unpaid_response(
                    requirements,
                    resource_info,
                    error="No matching payment requirements",
                )
            )

        try:
            verification = await self._gateway.verify(payload, requirement)
        except ServiceError as exc:
            return VerificationFailed(
                reason=exc.message,
                payment_required=self._gateway.build_unpaid_response(
                    requirements, resource_info, error=exc.message
                ),
            )
        if not verification.valid:
            reason = verification.reason or "Unknown verification error"
            return VerificationFailed(
                reason=reason,
                payment_required=self._gateway.build_unpaid_response(
                    requirements, resource_info, error=reason
                ),
            )

        try:
            settlement = await self._gateway.settle(payload, requirement)
        except ServiceError as exc:
            return SettlementFailed(reason=exc.message)
        if not settlement.success:
            return SettlementFailed(reason=settlement.reason or "Unknown settlement error")

        payer = verification.payer or settlement.payer or ""
        network = str(requirement["network"])
        transaction = settlement.transaction or ""

        if product.kind is ProductKind.CREDENTIAL:
            # Credential purchases have nothing to fulfill later, so they never sit in custody.
            payment = Payment.create_direct(
                product_id=product.id,
                vendor_id=product.vendor_id,
                amount=product.price,
                network=network,
                payer=payer,
                transaction=transaction,
            )
        else:
            payment = self._capture_mode.open_payment(product, payer, transaction, network)

        try:
            if product.kind is ProductKind.CREDENTIAL:
                return self._issue_credential(payment, request, settlement)
            return self._create_task(payment, product, request, settlement)
        except Exception:
            self._logger.exception(
                "Settled payment could not be recorded",
                extra={
                    "vendor_id": vendor.id,
                    "product_id": product.id,
                    "payment_id": payment.id,
                    "transaction": transaction,
                    "payer": payer,
                },
            )
            return self._record_failure(payment, settlement)

    def _build_requirements(self, vendor: Vendor, product: Product) -> list[dict[str, Any]]:
        return self._gateway.build_requirements(
            ResourceConfig(
                price=product.price,
                network=product.network,
                pay_to=self._capture_mode.pay_to(vendor),
            )
        )

    def _issue_credential(
        self,
        payment: Payment,
        request: PaywallRequest,
        settlement: SettlementResult,
    ) -> CredentialIssued:
        grant = self._credential_issuer.issue(payment, request.request_payload)
        return CredentialIssued(
            redeem_url=grant.redeem_url,
            grant_id=grant.id,
            payment_id=payment.id,
            settlement=settlement,
        )

    def _create_task(
        self,
        payment: Payment,
        product: Product,
        request: PaywallRequest,
        settlement: SettlementResult,
    ) -> TaskCreated:
        task = Task.create(
            payment_id=payment.id,
            product_id=product.id,
            vendor_id=product.vendor_id,
            buyer_address=payment.payer,
            request_payload=request.request_payload,
        )
        self._store.insert_payment_with_task(payment, task)
        self._logger.info(
            "Task created for settled payment",
            extra={
                "task_id": task.id,
                "payment_id": payment.id,
                "payment_status": payment.status.value,
                "capture_mode": self._capture_mode.name,
            },
        )
        return TaskCreated(task_id=task.id, payment_id=payment.id, settlement=settlement)

    def _record_failure(self, payment: Payment, settlement: SettlementResult) -> RecordingFailed:
        """Keep a failed payment row carrying the settlement reference, if the store allows."""
        failed = payment.mark_failed()
        try:
            self._store.insert_payment(failed)
        except Exception:
            self._logger.exception(
                "Failed payment could not be recorded",
                extra={"payment_id": failed.id, "transaction": failed.transaction},
            )
        return RecordingFailed(
            reason="Payment settled but the purchase could not be recorded",
            transaction=failed.transaction,
            payment_id=failed.id,
            settlement=settlement,
        )
