"""Shared test helpers: entity factories, payment headers, and custody fakes."""

from __future__ import annotations

import base64
import json
from datetime import UTC, datetime, timedelta
from typing import Any
from unittest.mock import AsyncMock, MagicMock

from paywall_service.clients.custody_client import CustodyResult
from paywall_service.config import AssetConfig
from paywall_service.domain.catalog import Product, ProductKind, Vendor
from paywall_service.domain.payment import Payment
from paywall_service.domain.task import Task

NETWORK = "eip155:84532"
USDC_ADDRESS = "0x036CbD53842c5426634e7929541eC2318f3dCF7e"
VENDOR_ADDRESS = "0x1111111111111111111111111111111111111111"
CUSTODY_ADDRESS = "0x2222222222222222222222222222222222222222"
BUYER_ADDRESS = "0x3333333333333333333333333333333333333333"

ASSETS: dict[str, AssetConfig] = {
    NETWORK: AssetConfig(address=USDC_ADDRESS, name="USDC", version="2", decimals=6),
}


def make_vendor(name: str = "Weather Co") -> tuple[Vendor, str]:
    """Return (vendor, plaintext api key)."""
    return Vendor.register(name, VENDOR_ADDRESS)


def make_product(
    vendor: Vendor,
    path: str = "weather",
    price: str = "$0.10",
    kind: ProductKind = ProductKind.ASYNC,
) -> Product:
    return Product.register(
        vendor_id=vendor.id,
        path=path,
        price=price,
        description=f"{path} data",
        data='{"endpoint": "https://vendor.example/run"}',
        kind=kind,
    )


def make_held_payment(
    vendor_id: str = "v-1",
    product_id: str = "p-1",
    expires_at: datetime | None = None,
) -> Payment:
    return Payment.create_with_custody(
        product_id=product_id,
        vendor_id=vendor_id,
        amount="$0.10",
        network=NETWORK,
        payer=BUYER_ADDRESS,
        transaction="0xsettle",
        expires_at=expires_at or datetime.now(UTC) + timedelta(days=7),
    )


def make_direct_payment(vendor_id: str = "v-1", product_id: str = "p-1") -> Payment:
    return Payment.create_direct(
        product_id=product_id,
        vendor_id=vendor_id,
        amount="$0.10",
        network=NETWORK,
        payer=BUYER_ADDRESS,
        transaction="0xsettle",
    )


def make_task(payment: Payment, payload: str = '{"city": "Berlin"}') -> Task:
    return Task.create(
        payment_id=payment.id,
        product_id=payment.product_id,
        vendor_id=payment.vendor_id,
        buyer_address=payment.payer,
        request_payload=payload,
    )


def make_payment_payload(scheme: str = "exact", network: str = NETWORK) -> dict[str, Any]:
    """A version 2 payment payload as a buyer's client would send it."""
    return {
        "x402Version": 2,
        "accepted": {"scheme": scheme, "network": network},
        "payload": {
            "signature": "0xsig",
            "authorization": {"from": BUYER_ADDRESS, "to": CUSTODY_ADDRESS, "value": "100000"},
        },
    }


def make_payment_header(scheme: str = "exact", network: str = NETWORK) -> str:
    payload = make_payment_payload(scheme, network)
    return base64.b64encode(json.dumps(payload).encode()).decode()


def decode_header(value: str) -> dict[str, Any]:
    decoded: dict[str, Any] = json.loads(base64.b64decode(value))
    return decoded


def make_custody_mock(
    release: CustodyResult | None = None,
    refund: CustodyResult | None = None,
) -> MagicMock:
    """Custody service double; release/refund succeed unless told otherwise."""
    custody = MagicMock()
    custody.custody_address = MagicMock(return_value=CUSTODY_ADDRESS)
    custody.release = AsyncMock(
        return_value=release or CustodyResult(success=True, transaction="0xrelease")
    )
    custody.refund = AsyncMock(
        return_value=refund or CustodyResult(success=True, transaction="0xrefund")
    )
    return custody


def make_facilitator_mock(
    verify: dict[str, Any] | None = None,
    settle: dict[str, Any] | None = None,
) -> MagicMock:
    """Facilitator double; verification and settlement succeed unless told otherwise."""
    facilitator = MagicMock()
    facilitator.verify = AsyncMock(
        return_value=verify or {"isValid": True, "payer": BUYER_ADDRESS}
    )
    facilitator.settle = AsyncMock(
        return_value=settle
        or {
            "success": True,
            "transaction": "0xsettle",
            "network": NETWORK,
            "payer": BUYER_ADDRESS,
        }
    )
    facilitator.close = AsyncMock()
    return facilitator
