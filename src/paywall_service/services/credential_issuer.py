"""Issues credential grants for paid credential products and redeems them for API keys."""

from __future__ import annotations

import json
from datetime import timedelta
from typing import TYPE_CHECKING

from paywall_service.core.exceptions import ServiceError
from paywall_service.domain.credential import ApiKey, CredentialGrant
from paywall_service.domain.errors import NotFoundError
from paywall_service.logging import get_logger

if TYPE_CHECKING:
    from paywall_service.domain.payment import Payment
    from paywall_service.services.market_store import MarketStore


class CredentialIssuer:
    """
    Turns a settled credential purchase into a redeemable grant, and a
    redeemed grant into a vendor-scoped API key.

    The buyer may pass ``{"name": ..., "walletAddress": ...}`` as the request
    body to label the credential and bind it to a wallet; anything missing
    or unparseable falls back to the default label and the paying address.
    """

    def __init__(self, store: MarketStore, default_label: str, expiry_hours: int) -> None:
        self._store = store
        self._default_label = default_label
        self._expires_in = timedelta(hours=expiry_hours)
        self._logger = get_logger(__name__)

    def issue(self, payment: Payment, request_payload: str) -> CredentialGrant:
        """Persist the payment together with a fresh grant and return the grant."""
        label, wallet_address = self._issuance_parameters(request_payload, payment.payer)
        grant = CredentialGrant.issue(
            vendor_id=payment.vendor_id,
            payment_id=payment.id,
            label=label,
            wallet_address=wallet_address,
            expires_in=self._expires_in,
        )
        self._store.insert_payment_with_grant(payment, grant)
        self._logger.info(
            "Credential grant issued",
            extra={
                "grant_id": grant.id,
                "payment_id": payment.id,
                "vendor_id": payment.vendor_id,
            },
        )
        return grant

    def _issuance_parameters(self, request_payload: str, payer: str) -> tuple[str, str]:
        try:
            parsed = json.loads(request_payload) if request_payload else {}
        except ValueError:
            parsed = {}
        if not isinstance(parsed, dict):
            parsed = {}

        name = parsed.get("name")
        wallet = parsed.get("walletAddress")
        label = name if isinstance(name, str) and name.strip() else self._default_label
        wallet_address = wallet if isinstance(wallet, str) and wallet else payer
        return label, wallet_address

    def redeem(self, token: str) -> tuple[ApiKey, str]:
        """
        Exchange a pending grant for a freshly minted API key.

        Returns:
            The stored key and its plaintext, which is not kept anywhere.

        Raises:
            NotFoundError: If no grant carries ``token``
            ServiceError: GRANT_NOT_REDEEMABLE (400) if the grant expired or
                was already redeemed
        """
        grant = self._store.get_credential_grant(token)
        if grant is None:
            raise NotFoundError("credential_grant", token)
        if not grant.can_redeem():
            raise self._not_redeemable(grant)

        api_key, plaintext = ApiKey.mint(grant)
        if self._store.redeem_grant(grant.redeem(), api_key) == 0:
            raise self._not_redeemable(grant)

        self._logger.info(
            "Credential grant redeemed",
            extra={
                "grant_id": grant.id,
                "api_key_id": api_key.id,
                "vendor_id": grant.vendor_id,
            },
        )
        return api_key, plaintext

    @staticmethod
    def _not_redeemable(grant: CredentialGrant) -> ServiceError:
        return ServiceError(
            "GRANT_NOT_REDEEMABLE",
            "Token expired or already redeemed",
            400,
            {"grant_id": grant.id},
        )
