"""Credential grants and the API keys they are redeemed for."""

from __future__ import annotations

import secrets
import uuid
from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta
from enum import StrEnum

from paywall_service.domain.catalog import hash_api_key
from paywall_service.domain.errors import InvalidStateTransition

API_KEY_PREFIX = "ak_"


class GrantStatus(StrEnum):
    PENDING = "pending"
    REDEEMED = "redeemed"


@dataclass(frozen=True)
class CredentialGrant:
    """Pending right to mint one API key for ``vendor_id``, bound to ``wallet_address``."""

    id: str
    token: str
    vendor_id: str
    payment_id: str
    label: str
    wallet_address: str
    status: GrantStatus
    created_at: datetime
    expires_at: datetime
    redeemed_at: datetime | None = None

    @classmethod
    def issue(
        cls,
        vendor_id: str,
        payment_id: str,
        label: str,
        wallet_address: str,
        expires_in: timedelta,
    ) -> CredentialGrant:
        now = datetime.now(UTC)
        return cls(
            id=f"cg-{uuid.uuid4()}",
            token=secrets.token_hex(32),
            vendor_id=vendor_id,
            payment_id=payment_id,
            label=label,
            wallet_address=wallet_address,
            status=GrantStatus.PENDING,
            created_at=now,
            expires_at=now + expires_in,
        )

    @property
    def redeem_url(self) -> str:
        return f"/redeem/{self.token}"

    def is_expired(self, now: datetime | None = None) -> bool:
        current = now if now is not None else datetime.now(UTC)
        return current > self.expires_at

    def can_redeem(self, now: datetime | None = None) -> bool:
        return self.status is GrantStatus.PENDING and not self.is_expired(now)

    def redeem(self, now: datetime | None = None) -> CredentialGrant:
        """Mark the grant used. Expired or already redeemed grants are rejected."""
        if not self.can_redeem(now):
            state = "expired" if self.status is GrantStatus.PENDING else self.status.value
            raise InvalidStateTransition("credential_grant", state, "redeem")
        return replace(
            self,
            status=GrantStatus.REDEEMED,
            redeemed_at=now if now is not None else datetime.now(UTC),
        )


class ApiKeyStatus(StrEnum):
    ACTIVE = "active"
    REVOKED = "revoked"


@dataclass(frozen=True)
class ApiKey:
    """
    A vendor-scoped API key minted from a redeemed grant.

    Only the hash is stored. The plaintext key is returned once, from
    ``mint``, and never again.
    """

    id: str
    vendor_id: str
    grant_id: str
    key_hash: str
    label: str
    wallet_address: str
    status: ApiKeyStatus
    created_at: datetime

    @classmethod
    def mint(cls, grant: CredentialGrant) -> tuple[ApiKey, str]:
        plaintext = f"{API_KEY_PREFIX}{uuid.uuid4().hex}"
        api_key = cls(
            id=f"ak-{uuid.uuid4()}",
            vendor_id=grant.vendor_id,
            grant_id=grant.id,
            key_hash=hash_api_key(plaintext),
            label=grant.label,
            wallet_address=grant.wallet_address,
            status=ApiKeyStatus.ACTIVE,
            created_at=datetime.now(UTC),
        )
        return api_key, plaintext

    @property
    def is_active(self) -> bool:
        return self.status is ApiKeyStatus.ACTIVE
