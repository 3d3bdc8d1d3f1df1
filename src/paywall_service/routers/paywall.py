"""Paywalled resource endpoint: GET|POST /{vendor_id}/{path}.

Registered last so the catch-all path never shadows the fixed routes.
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from paywall_service.core.state import get_app_state
from paywall_service.services.payment_gateway import encode_header
from paywall_service.services.request_orchestrator import (
    CredentialIssued,
    NotFound,
    PaymentRequired,
    PaywallRequest,
    RecordingFailed,
    ResourceUnavailable,
    SettlementFailed,
    TaskCreated,
    VerificationFailed,
)

router = APIRouter()

PAYMENT_HEADERS: tuple[str, ...] = ("payment-signature", "x-payment")
PAYMENT_REQUIRED_HEADER = "PAYMENT-REQUIRED"
PAYMENT_RESPONSE_HEADER = "PAYMENT-RESPONSE"


def _payment_header(request: Request) -> str | None:
    for name in PAYMENT_HEADERS:
        value = request.headers.get(name)
        if value:
            return value
    return None


@router.api_route("/{vendor_id}/{path:path}", methods=["GET", "POST"])
async def paywalled_resource(vendor_id: str, path: str, request: Request) -> JSONResponse:
    """Answer with payment terms, or settle the presented payment and deliver."""
    body = await request.body()

    state = get_app_state()
    if state.orchestrator is None:
        msg = "RequestOrchestrator not initialized"
        raise RuntimeError(msg)

    outcome = await state.orchestrator.process(
        PaywallRequest(
            vendor_id=vendor_id,
            path=path,
            resource_url=str(request.url),
            payment_header=_payment_header(request),
            request_payload=body.decode("utf-8", errors="replace"),
        )
    )

    if isinstance(outcome, PaymentRequired):
        return JSONResponse(
            status_code=402,
            content=outcome.payment_required,
            headers={PAYMENT_REQUIRED_HEADER: encode_header(outcome.payment_required)},
        )

    if isinstance(outcome, VerificationFailed):
        return JSONResponse(
            status_code=402,
            content={
                "error": "PAYMENT_VERIFICATION_FAILED",
                "message": outcome.reason,
                "details": {},
            },
            headers={PAYMENT_REQUIRED_HEADER: encode_header(outcome.payment_required)},
        )

    if isinstance(outcome, SettlementFailed):
        return JSONResponse(
            status_code=502,
            content={"error": "PAYMENT_SETTLEMENT_FAILED", "message": outcome.reason, "details": {}},
        )

    if isinstance(outcome, NotFound):
        return JSONResponse(
            status_code=404,
            content={
                "error": f"{outcome.missing.upper()}_NOT_FOUND",
                "message": outcome.reason,
                "details": {},
            },
        )

    if isinstance(outcome, ResourceUnavailable):
        return JSONResponse(
            status_code=503,
            content={"error": "RESOURCE_UNAVAILABLE", "message": outcome.reason, "details": {}},
        )

    if isinstance(outcome, RecordingFailed):
        return JSONResponse(
            status_code=500,
            content={
                "error": "PURCHASE_NOT_RECORDED",
                "message": outcome.reason,
                "details": {
                    "transaction": outcome.transaction,
                    "payment_id": outcome.payment_id,
                },
            },
            headers={
                PAYMENT_RESPONSE_HEADER: encode_header(outcome.settlement.to_header_payload())
            },
        )

    if isinstance(outcome, TaskCreated):
        return JSONResponse(
            status_code=200,
            content={
                "task_id": outcome.task_id,
                "status": "pending",
                "status_url": f"/tasks/{outcome.task_id}",
                "result_url": f"/tasks/{outcome.task_id}/result",
            },
            headers={
                PAYMENT_RESPONSE_HEADER: encode_header(outcome.settlement.to_header_payload())
            },
        )

    if isinstance(outcome, CredentialIssued):
        return JSONResponse(
            status_code=200,
            content={"grant_id": outcome.grant_id, "redeem_url": outcome.redeem_url},
            headers={
                PAYMENT_RESPONSE_HEADER: encode_header(outcome.settlement.to_header_payload())
            },
        )

    msg = f"Unhandled paywall outcome: {type(outcome).__name__}"
    raise RuntimeError(msg)
