"""Unit tests for the CredentialGrant and ApiKey entities."""

from __future__ import annotations

from datetime import timedelta

import pytest

from paywall_service.domain.catalog import hash_api_key
from paywall_service.domain.credential import ApiKey, ApiKeyStatus, CredentialGrant, GrantStatus
from paywall_service.domain.errors import InvalidStateTransition
from tests.helpers import BUYER_ADDRESS


def _grant(expires_in: timedelta = timedelta(hours=24)) -> CredentialGrant:
    return CredentialGrant.issue(
        vendor_id="v-1",
        payment_id="pay-1",
        label="API Key",
        wallet_address=BUYER_ADDRESS,
        expires_in=expires_in,
    )


@pytest.mark.unit
def test_redeem_marks_grant_redeemed() -> None:
    grant = _grant()

    redeemed = grant.redeem()

    assert grant.can_redeem()
    assert redeemed.status is GrantStatus.REDEEMED
    assert redeemed.redeemed_at is not None
    assert not redeemed.can_redeem()
    assert grant.status is GrantStatus.PENDING


@pytest.mark.unit
def test_redeemed_grant_cannot_be_redeemed_again() -> None:
    with pytest.raises(InvalidStateTransition) as exc_info:
        _grant().redeem().redeem()

    assert exc_info.value.from_state == "redeemed"


@pytest.mark.unit
def test_expired_grant_cannot_be_redeemed() -> None:
    grant = _grant(expires_in=timedelta(hours=-1))

    assert grant.is_expired()
    with pytest.raises(InvalidStateTransition) as exc_info:
        grant.redeem()

    assert exc_info.value.from_state == "expired"


@pytest.mark.unit
def test_mint_binds_key_to_grant() -> None:
    grant = _grant()

    api_key, plaintext = ApiKey.mint(grant)

    assert plaintext.startswith("ak_")
    assert api_key.key_hash == hash_api_key(plaintext)
    assert api_key.grant_id == grant.id
    assert api_key.vendor_id == "v-1"
    assert api_key.wallet_address == BUYER_ADDRESS
    assert api_key.status is ApiKeyStatus.ACTIVE
    assert api_key.is_active
