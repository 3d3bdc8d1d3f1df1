"""Credential redemption endpoint: GET /redeem/{token}."""

from __future__ import annotations

from fastapi import APIRouter

from paywall_service.core.state import get_app_state
from paywall_service.schemas import RedeemResponse

router = APIRouter()


@router.get("/redeem/{token}", response_model=RedeemResponse)
async def redeem_credential(token: str) -> RedeemResponse:
    """Exchange a one-time grant token for a vendor-scoped API key."""
    state = get_app_state()
    if state.credential_issuer is None:
        msg = "CredentialIssuer not initialized"
        raise RuntimeError(msg)

    api_key, plaintext = state.credential_issuer.redeem(token)
    return RedeemResponse.from_api_key(api_key, plaintext)
