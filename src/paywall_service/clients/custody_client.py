"""Async HTTP client for the custody executor that holds settled funds."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import httpx

from paywall_service.core.exceptions import ServiceError
from paywall_service.domain.payment import PaymentStatus
from paywall_service.domain.pricing import to_base_units
from paywall_service.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Mapping

    from paywall_service.clients.platform_signer import PlatformSigner
    from paywall_service.config import AssetConfig
    from paywall_service.domain.payment import Payment


_DECLINED_STATUSES: frozenset[int] = frozenset({400, 404, 409, 422})


@dataclass(frozen=True)
class CustodyResult:
    """Outcome of one release or refund instruction."""

    success: bool
    transaction: str | None = None
    reason: str | None = None


class CustodyClient:
    """
    Client for the custody executor.

    The executor holds buyer funds at ``custody_address()`` until the
    platform instructs it to release them to the vendor or refund them to
    the buyer. Each instruction is a platform-signed JWS carrying the
    payment id, the token, the amount in base units, and the recipient.

    Declines (the executor answered but refused) come back as
    ``CustodyResult(success=False)``. Transport failures and unexpected
    statuses raise ``ServiceError("CUSTODY_UNAVAILABLE", ..., 502)``.
    """

    def __init__(
        self,
        base_url: str,
        address: str,
        release_path: str,
        refund_path: str,
        timeout_seconds: int,
        platform_signer: PlatformSigner,
        assets: Mapping[str, AssetConfig],
    ) -> None:
        self._base_url = base_url
        self._address = address
        self._release_path = release_path
        self._refund_path = refund_path
        self._platform_signer = platform_signer
        self._assets = assets
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout_seconds),
        )

    def custody_address(self) -> str:
        """Wallet that buyers pay into while funds are held."""
        return self._address

    async def release(self, payment: Payment, vendor_address: str) -> CustodyResult:
        """Pay a held payment out to the vendor's settlement address."""
        if payment.status is not PaymentStatus.PENDING_ESCROW:
            return CustodyResult(
                success=False,
                reason="Cannot release: payment is not in pending_escrow status",
            )
        return await self._instruct("custody_release", self._release_path, payment, vendor_address)

    async def refund(self, payment: Payment) -> CustodyResult:
        """Return a held payment to the buyer who paid it."""
        if payment.status is not PaymentStatus.PENDING_ESCROW:
            return CustodyResult(
                success=False,
                reason="Cannot refund: payment is not in pending_escrow status",
            )
        if not payment.payer:
            return CustodyResult(success=False, reason="Cannot refund: payment has no payer address")
        return await self._instruct("custody_refund", self._refund_path, payment, payment.payer)

    async def _instruct(
        self,
        action: str,
        path: str,
        payment: Payment,
        recipient: str,
    ) -> CustodyResult:
        logger = get_logger(__name__)

        asset = self._assets.get(payment.network)
        if asset is None:
            return CustodyResult(
                success=False,
                reason=f"No custody asset configured for network {payment.network}",
            )

        signed_token = self._platform_signer.sign(
            {
                "action": action,
                "payment_id": payment.id,
                "network": payment.network,
                "asset": asset.address,
                "amount": str(to_base_units(payment.amount, asset.decimals)),
                "recipient": recipient,
            }
        )

        try:
            response = await self._client.post(path, json={"token": signed_token})
        except (httpx.ConnectError, httpx.TimeoutException) as exc:
            logger.warning(
                "Custody executor connection failed",
                extra={
                    "error": str(exc),
                    "action": action,
                    "payment_id": payment.id,
                    "base_url": self._base_url,
                },
            )
            raise ServiceError(
                error="CUSTODY_UNAVAILABLE",
                message="Cannot connect to custody executor",
                status_code=502,
                details={},
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning(
                "Custody executor HTTP error",
                extra={
                    "error": str(exc),
                    "action": action,
                    "payment_id": payment.id,
                    "base_url": self._base_url,
                },
            )
            raise ServiceError(
                error="CUSTODY_UNAVAILABLE",
                message="Custody executor request failed",
                status_code=502,
                details={},
            ) from exc

        if response.status_code == 200:
            body: dict[str, Any] = response.json()
            success = bool(body.get("success"))
            return CustodyResult(
                success=success,
                transaction=body.get("transaction"),
                reason=None if success else body.get("error_reason", "Custody executor declined"),
            )

        if response.status_code in _DECLINED_STATUSES:
            error_body: dict[str, Any] = response.json()
            return CustodyResult(
                success=False,
                reason=error_body.get("message", "Custody executor declined"),
            )

        logger.warning(
            "Custody executor unexpected status",
            extra={
                "status_code": response.status_code,
                "action": action,
                "payment_id": payment.id,
                "base_url": self._base_url,
            },
        )
        raise ServiceError(
            error="CUSTODY_UNAVAILABLE",
            message="Custody executor returned unexpected status",
            status_code=502,
            details={},
        )

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()
