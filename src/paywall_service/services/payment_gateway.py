"""x402 payment terms, header codec, and facilitator-backed verify/settle."""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from paywall_service.domain.errors import ValidationFailed
from paywall_service.domain.pricing import to_base_units
from paywall_service.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Mapping

    from paywall_service.clients.facilitator_client import FacilitatorClient
    from paywall_service.config import AssetConfig


@dataclass(frozen=True)
class ResourceConfig:
    """What a resource costs and where the money must go."""

    price: str
    network: str
    pay_to: str


@dataclass(frozen=True)
class ResourceInfo:
    """Resource metadata echoed back in a payment-required envelope."""

    url: str
    description: str
    mime_type: str


@dataclass(frozen=True)
class VerifyResult:
    valid: bool
    payer: str | None = None
    reason: str | None = None


@dataclass(frozen=True)
class SettlementResult:
    """Facilitator settlement answer; ``raw`` keeps the full response body."""

    success: bool
    transaction: str | None
    network: str | None
    payer: str | None = None
    reason: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_response(cls, payload: dict[str, Any]) -> SettlementResult:
        success = bool(payload.get("success"))
        return cls(
            success=success,
            transaction=payload.get("transaction"),
            network=payload.get("network"),
            payer=payload.get("payer"),
            reason=None if success else payload.get("errorReason", "Unknown settlement error"),
            raw=payload,
        )

    def to_header_payload(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "transaction": self.transaction,
            "network": self.network,
            "payer": self.payer,
        }


def encode_header(value: dict[str, Any]) -> str:
    """Serialize a JSON object into a base64 header value."""
    return base64.b64encode(json.dumps(value, separators=(",", ":")).encode()).decode()


def decode_header(value: str) -> dict[str, Any]:
    """
    Decode a base64 JSON header value.

    Raises:
        ValidationFailed: If the value is not base64-encoded JSON object text
    """
    try:
        decoded = base64.b64decode(value.strip(), validate=True)
        data = json.loads(decoded)
    except (binascii.Error, ValueError, RecursionError) as exc:
        raise ValidationFailed("payment_header", "must be base64-encoded JSON") from exc
    if not isinstance(data, dict):
        raise ValidationFailed("payment_header", "must encode a JSON object")
    return data


def declared_terms(payload: dict[str, Any]) -> tuple[str | None, str | None]:
    """
    Scheme and network a payment payload claims to satisfy.

    Version 2 payloads nest them under ``accepted``; version 1 payloads
    carry them at the top level.
    """
    accepted = payload.get("accepted")
    source = accepted if isinstance(accepted, dict) else payload
    scheme = source.get("scheme")
    network = source.get("network")
    return (
        scheme if isinstance(scheme, str) else None,
        network if isinstance(network, str) else None,
    )


class PaymentGateway:
    """
    Builds the payment terms for a resource and delegates verification and
    settlement of a presented payment to the facilitator.

    Facilitator transport failures surface as ``ServiceError``; declines
    come back as ``VerifyResult(valid=False)`` or
    ``SettlementResult(success=False)``.
    """

    def __init__(
        self,
        facilitator: FacilitatorClient,
        scheme: str,
        x402_version: int,
        max_timeout_seconds: int,
        assets: Mapping[str, AssetConfig],
    ) -> None:
        self._facilitator = facilitator
        self._scheme = scheme
        self._x402_version = x402_version
        self._max_timeout_seconds = max_timeout_seconds
        self._assets = assets
        self._logger = get_logger(__name__)

    @property
    def x402_version(self) -> int:
        return self._x402_version

    def build_requirements(self, resource: ResourceConfig) -> list[dict[str, Any]]:
        """Terms a buyer may pay under, one entry per accepted scheme and network."""
        asset = self._assets.get(resource.network)
        if asset is None:
            raise ValidationFailed("network", f"no asset configured for {resource.network}")
        return [
            {
                "scheme": self._scheme,
                "network": resource.network,
                "amount": str(to_base_units(resource.price, asset.decimals)),
                "asset": asset.address,
                "payTo": resource.pay_to,
                "maxTimeoutSeconds": self._max_timeout_seconds,
                "extra": {"name": asset.name, "version": asset.version},
            }
        ]

    def build_unpaid_response(
        self,
        requirements: list[dict[str, Any]],
        resource: ResourceInfo,
        error: str = "Payment required",
    ) -> dict[str, Any]:
        return {
            "x402Version": self._x402_version,
            "error": error,
            "resource": {
                "url": resource.url,
                "description": resource.description,
                "mimeType": resource.mime_type,
            },
            "accepts": requirements,
        }

    def parse_payment_proof(self, header_value: str) -> dict[str, Any]:
        """Decode a PAYMENT-SIGNATURE / X-PAYMENT header into a payment payload."""
        return decode_header(header_value)

    def match_requirement(
        self,
        requirements: list[dict[str, Any]],
        payload: dict[str, Any],
    ) -> dict[str, Any] | None:
        """First requirement whose scheme and network match the payload's."""
        scheme, network = declared_terms(payload)
        for requirement in requirements:
            if requirement["scheme"] == scheme and requirement["network"] == network:
                return requirement
        return None

    async def verify(self, payload: dict[str, Any], requirement: dict[str, Any]) -> VerifyResult:
        response = await self._facilitator.verify(self._facilitator_body(payload, requirement))
        valid = bool(response.get("isValid"))
        payer = response.get("payer")
        if not valid:
            reason = response.get("invalidReason") or "Unknown verification error"
            self._logger.info(
                "Payment verification declined",
                extra={"reason": reason, "network": requirement["network"]},
            )
            return VerifyResult(valid=False, payer=payer, reason=reason)
        return VerifyResult(valid=True, payer=payer)

    async def settle(self, payload: dict[str, Any], requirement: dict[str, Any]) -> SettlementResult:
        response = await self._facilitator.settle(self._facilitator_body(payload, requirement))
        result = SettlementResult.from_response(response)
        if not result.success:
            self._logger.warning(
                "Payment settlement declined",
                extra={"reason": result.reason, "network": requirement["network"]},
            )
        return result

    def _facilitator_body(
        self,
        payload: dict[str, Any],
        requirement: dict[str, Any],
    ) -> dict[str, Any]:
        return {
            "x402Version": self._x402_version,
            "paymentPayload": payload,
            "paymentRequirements": requirement,
        }
