"""Unit tests for PaymentGateway and the x402 header codec."""

from __future__ import annotations

import base64

import pytest

from paywall_service.domain.errors import ValidationFailed
from paywall_service.services.payment_gateway import (
    PaymentGateway,
    ResourceConfig,
    ResourceInfo,
    SettlementResult,
    declared_terms,
    decode_header,
    encode_header,
)
from tests.helpers import (
    ASSETS,
    BUYER_ADDRESS,
    NETWORK,
    USDC_ADDRESS,
    VENDOR_ADDRESS,
    make_facilitator_mock,
    make_payment_payload,
)


def _gateway(facilitator=None) -> PaymentGateway:
    return PaymentGateway(
        facilitator=facilitator or make_facilitator_mock(),
        scheme="exact",
        x402_version=2,
        max_timeout_seconds=60,
        assets=ASSETS,
    )


def _requirements(gateway: PaymentGateway) -> list[dict]:
    return gateway.build_requirements(
        ResourceConfig(price="$0.10", network=NETWORK, pay_to=VENDOR_ADDRESS)
    )


@pytest.mark.unit
def test_build_requirements() -> None:
    requirements = _requirements(_gateway())

    assert requirements == [
        {
            "scheme": "exact",
            "network": NETWORK,
            "amount": "100000",
            "asset": USDC_ADDRESS,
            "payTo": VENDOR_ADDRESS,
            "maxTimeoutSeconds": 60,
            "extra": {"name": "USDC", "version": "2"},
        }
    ]


@pytest.mark.unit
def test_build_requirements_unknown_network() -> None:
    with pytest.raises(ValidationFailed) as exc_info:
        _gateway().build_requirements(
            ResourceConfig(price="$1", network="eip155:1", pay_to=VENDOR_ADDRESS)
        )
    assert exc_info.value.field == "network"


@pytest.mark.unit
def test_build_unpaid_response() -> None:
    gateway = _gateway()
    requirements = _requirements(gateway)

    envelope = gateway.build_unpaid_response(
        requirements,
        ResourceInfo(url="http://test/v-1/weather", description="Weather", mime_type="application/json"),
    )

    assert envelope == {
        "x402Version": 2,
        "error": "Payment required",
        "resource": {
            "url": "http://test/v-1/weather",
            "description": "Weather",
            "mimeType": "application/json",
        },
        "accepts": requirements,
    }


@pytest.mark.unit
def test_header_codec() -> None:
    encoded = encode_header({"a": 1})

    assert decode_header(encoded) == {"a": 1}
    assert decode_header(f"  {encoded}\n") == {"a": 1}


@pytest.mark.unit
@pytest.mark.parametrize(
    "value",
    [
        "not base64!",
        base64.b64encode(b"not json").decode(),
        base64.b64encode(b"[1, 2]").decode(),
    ],
)
def test_decode_header_rejects_malformed(value: str) -> None:
    with pytest.raises(ValidationFailed) as exc_info:
        decode_header(value)
    assert exc_info.value.field == "payment_header"


@pytest.mark.unit
def test_declared_terms_for_both_payload_versions() -> None:
    assert declared_terms(make_payment_payload()) == ("exact", NETWORK)
    assert declared_terms({"x402Version": 1, "scheme": "exact", "network": "base"}) == (
        "exact",
        "base",
    )
    assert declared_terms({"accepted": {"scheme": 5}}) == (None, None)


@pytest.mark.unit
def test_match_requirement() -> None:
    gateway = _gateway()
    requirements = _requirements(gateway)

    assert gateway.match_requirement(requirements, make_payment_payload()) == requirements[0]
    assert gateway.match_requirement(requirements, make_payment_payload(scheme="upto")) is None
    assert gateway.match_requirement(requirements, make_payment_payload(network="eip155:1")) is None


@pytest.mark.unit
async def test_verify_valid_sends_facilitator_body() -> None:
    facilitator = make_facilitator_mock()
    gateway = _gateway(facilitator)
    requirement = _requirements(gateway)[0]
    payload = make_payment_payload()

    result = await gateway.verify(payload, requirement)

    assert result.valid is True
    assert result.payer == BUYER_ADDRESS
    facilitator.verify.assert_awaited_once_with(
        {"x402Version": 2, "paymentPayload": payload, "paymentRequirements": requirement}
    )


@pytest.mark.unit
async def test_verify_invalid_carries_reason() -> None:
    gateway = _gateway(make_facilitator_mock(verify={"isValid": False, "invalidReason": "expired"}))

    result = await gateway.verify(make_payment_payload(), _requirements(gateway)[0])

    assert result.valid is False
    assert result.reason == "expired"


@pytest.mark.unit
async def test_verify_invalid_without_reason() -> None:
    gateway = _gateway(make_facilitator_mock(verify={"isValid": False}))

    result = await gateway.verify(make_payment_payload(), _requirements(gateway)[0])

    assert result.reason == "Unknown verification error"


@pytest.mark.unit
async def test_settle_success() -> None:
    gateway = _gateway()

    result = await gateway.settle(make_payment_payload(), _requirements(gateway)[0])

    assert result.success is True
    assert result.transaction == "0xsettle"
    assert result.reason is None
    assert result.to_header_payload() == {
        "success": True,
        "transaction": "0xsettle",
        "network": NETWORK,
        "payer": BUYER_ADDRESS,
    }


@pytest.mark.unit
async def test_settle_declined() -> None:
    gateway = _gateway(
        make_facilitator_mock(settle={"success": False, "errorReason": "insufficient_funds"})
    )

    result = await gateway.settle(make_payment_payload(), _requirements(gateway)[0])

    assert result.success is False
    assert result.reason == "insufficient_funds"


@pytest.mark.unit
def test_settlement_result_default_reason() -> None:
    assert SettlementResult.from_response({"success": False}).reason == "Unknown settlement error"
