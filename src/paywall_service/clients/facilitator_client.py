"""Async HTTP client for the x402 payment facilitator."""

from __future__ import annotations

from typing import Any

import httpx

from paywall_service.core.exceptions import ServiceError
from paywall_service.logging import get_logger


class FacilitatorClient:
    """
    Client for the facilitator's ``/verify`` and ``/settle`` endpoints.

    Both endpoints take the same body::

        {"x402Version": 2, "paymentPayload": {...}, "paymentRequirements": {...}}

    A facilitator that answers with a non-200 status, or cannot be reached,
    raises ``ServiceError("FACILITATOR_UNAVAILABLE", ..., 502)``. A 200 answer
    is returned as-is; deciding whether it means "valid" or "settled" is the
    caller's job.
    """

    def __init__(
        self,
        base_url: str,
        verify_path: str,
        settle_path: str,
        timeout_seconds: int,
    ) -> None:
        self._base_url = base_url
        self._verify_path = verify_path
        self._settle_path = settle_path
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout_seconds),
        )

    async def verify(self, body: dict[str, Any]) -> dict[str, Any]:
        """Ask the facilitator whether a payment payload satisfies the requirements."""
        return await self._post(self._verify_path, body, operation="verify")

    async def settle(self, body: dict[str, Any]) -> dict[str, Any]:
        """Ask the facilitator to capture a verified payment on-chain."""
        return await self._post(self._settle_path, body, operation="settle")

    async def _post(self, path: str, body: dict[str, Any], operation: str) -> dict[str, Any]:
        logger = get_logger(__name__)

        try:
            response = await self._client.post(path, json=body)
        except (httpx.ConnectError, httpx.TimeoutException) as exc:
            logger.warning(
                "Facilitator connection failed",
                extra={"error": str(exc), "operation": operation, "base_url": self._base_url},
            )
            raise ServiceError(
                error="FACILITATOR_UNAVAILABLE",
                message=f"Cannot connect to facilitator for {operation}",
                status_code=502,
                details={},
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning(
                "Facilitator HTTP error",
                extra={"error": str(exc), "operation": operation, "base_url": self._base_url},
            )
            raise ServiceError(
                error="FACILITATOR_UNAVAILABLE",
                message=f"Facilitator {operation} request failed",
                status_code=502,
                details={},
            ) from exc

        if response.status_code != 200:
            logger.warning(
                "Facilitator unexpected status",
                extra={
                    "status_code": response.status_code,
                    "operation": operation,
                    "base_url": self._base_url,
                },
            )
            raise ServiceError(
                error="FACILITATOR_UNAVAILABLE",
                message=f"Facilitator returned unexpected status on {operation}",
                status_code=502,
                details={"status_code": response.status_code},
            )

        try:
            result = response.json()
        except ValueError as exc:
            raise ServiceError(
                error="FACILITATOR_UNAVAILABLE",
                message=f"Facilitator returned a non-JSON {operation} response",
                status_code=502,
                details={},
            ) from exc

        if not isinstance(result, dict):
            raise ServiceError(
                error="FACILITATOR_UNAVAILABLE",
                message=f"Facilitator returned a malformed {operation} response",
                status_code=502,
                details={},
            )
        return result

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()
