"""Unit tests for the Payment entity."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from paywall_service.domain.errors import InvalidStateTransition, ValidationFailed
from paywall_service.domain.payment import Payment, PaymentStatus
from tests.helpers import BUYER_ADDRESS, NETWORK, make_direct_payment, make_held_payment


@pytest.mark.unit
def test_create_direct_is_settled_without_expiry() -> None:
    payment = make_direct_payment()

    assert payment.status is PaymentStatus.SETTLED
    assert payment.expires_at is None
    assert payment.release_transaction is None
    assert payment.released_at is None
    assert payment.id.startswith("pay-")


@pytest.mark.unit
def test_create_with_custody_is_pending_escrow_with_expiry() -> None:
    expires_at = datetime.now(UTC) + timedelta(days=7)
    payment = make_held_payment(expires_at=expires_at)

    assert payment.status is PaymentStatus.PENDING_ESCROW
    assert payment.expires_at == expires_at
    assert payment.payer == BUYER_ADDRESS
    assert payment.network == NETWORK


@pytest.mark.unit
def test_create_rejects_malformed_amount() -> None:
    with pytest.raises(ValidationFailed) as exc_info:
        Payment.create_direct(
            product_id="p-1",
            vendor_id="v-1",
            amount="0.10",
            network=NETWORK,
            payer=BUYER_ADDRESS,
            transaction="0xsettle",
        )
    assert exc_info.value.field == "amount"


@pytest.mark.unit
def test_release_from_pending_escrow() -> None:
    payment = make_held_payment()

    released = payment.release("0xrelease")

    assert released.status is PaymentStatus.SETTLED
    assert released.release_transaction == "0xrelease"
    assert released.released_at is not None
    assert released.refund_transaction is None
    # original snapshot untouched
    assert payment.status is PaymentStatus.PENDING_ESCROW
    assert payment.release_transaction is None


@pytest.mark.unit
def test_refund_from_pending_escrow() -> None:
    payment = make_held_payment()

    refunded = payment.refund("0xrefund")

    assert refunded.status is PaymentStatus.REFUNDED
    assert refunded.refund_transaction == "0xrefund"
    assert refunded.refunded_at is not None
    assert refunded.release_transaction is None


@pytest.mark.unit
@pytest.mark.parametrize("action", ["release", "refund"])
def test_release_and_refund_rejected_for_settled_payment(action: str) -> None:
    payment = make_direct_payment()

    with pytest.raises(InvalidStateTransition) as exc_info:
        getattr(payment, action)("0xtx")

    assert exc_info.value.entity == "payment"
    assert exc_info.value.from_state == "settled"
    assert exc_info.value.action == action
    assert payment.status is PaymentStatus.SETTLED


@pytest.mark.unit
def test_second_release_is_rejected() -> None:
    released = make_held_payment().release("0xrelease")

    with pytest.raises(InvalidStateTransition):
        released.release("0xagain")
    with pytest.raises(InvalidStateTransition):
        released.refund("0xrefund")


@pytest.mark.unit
def test_refunded_payment_cannot_be_released() -> None:
    refunded = make_held_payment().refund("0xrefund")

    with pytest.raises(InvalidStateTransition) as exc_info:
        refunded.release("0xrelease")

    assert exc_info.value.from_state == "refunded"


@pytest.mark.unit
def test_mark_failed_is_unconditional() -> None:
    assert make_direct_payment().mark_failed().status is PaymentStatus.FAILED
    assert make_held_payment().mark_failed().status is PaymentStatus.FAILED


@pytest.mark.unit
def test_is_expired() -> None:
    now = datetime.now(UTC)
    past = make_held_payment(expires_at=now - timedelta(seconds=1))
    future = make_held_payment(expires_at=now + timedelta(days=1))

    assert past.is_expired() is True
    assert future.is_expired() is False
    assert future.is_expired(now=now + timedelta(days=2)) is True
    assert make_direct_payment().is_expired(now=now + timedelta(days=365)) is False
