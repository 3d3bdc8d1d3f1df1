"""Router test fixtures with mocked facilitator and custody services."""

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

import pytest
from httpx import ASGITransport, AsyncClient

from paywall_service.app import create_app
from paywall_service.config import clear_settings_cache
from paywall_service.core.lifespan import lifespan
from paywall_service.core.state import get_app_state, reset_app_state
from paywall_service.services.capture_mode import CustodyCapture
from tests.helpers import (
    CUSTODY_ADDRESS,
    VENDOR_ADDRESS,
    make_custody_mock,
    make_facilitator_mock,
    make_payment_header,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path

ADMIN_KEY = "test-admin-key"
MAX_BODY_SIZE = 4096


def _config(tmp_path: Path, *, custody: bool) -> str:
    custody_section = f"""\
custody:
  base_url: "http://localhost:8011"
  address: "{CUSTODY_ADDRESS}"
  release_path: "/custody/release"
  refund_path: "/custody/refund"
  timeout_seconds: 10
  hold_seconds: 604800
"""
    return f"""\
service:
  name: "paywall"
  version: "0.1.0"
server:
  host: "0.0.0.0"
  port: 8010
  log_level: "info"
logging:
  level: "WARNING"
  directory: "{tmp_path / "logs"}"
database:
  path: "{tmp_path / "test.db"}"
facilitator:
  base_url: "http://localhost:8402"
  verify_path: "/verify"
  settle_path: "/settle"
  timeout_seconds: 10
payment:
  scheme: "exact"
  x402_version: 2
  max_timeout_seconds: 60
  assets:
    "eip155:84532":
      address: "0x036CbD53842c5426634e7929541eC2318f3dCF7e"
      name: "USDC"
      version: "2"
      decimals: 6
platform:
  agent_id: "a-platform-test-id"
  private_key_path: "{tmp_path / "platform.pem"}"
admin:
  api_key: "{ADMIN_KEY}"
credentials:
  redeem_token_expiry_hours: 24
  default_label: "API Key"
request:
  max_body_size: {MAX_BODY_SIZE}
{custody_section if custody else ""}"""


@asynccontextmanager
async def _running_app(tmp_path: Path, *, custody: bool) -> AsyncIterator[Any]:
    config_path = tmp_path / "config.yaml"
    config_path.write_text(_config(tmp_path, custody=custody))

    old_config = os.environ.get("CONFIG_PATH")
    os.environ["CONFIG_PATH"] = str(config_path)

    clear_settings_cache()
    reset_app_state()

    test_app = create_app()
    async with lifespan(test_app):
        state = get_app_state()

        # Facilitator mock: verification and settlement succeed by default
        facilitator = make_facilitator_mock()
        if state.orchestrator is not None:
            state.orchestrator._gateway._facilitator = facilitator
        test_app.state.facilitator = facilitator

        # Custody mock: release and refund succeed by default
        if custody:
            custody_mock = make_custody_mock()
            if state.orchestrator is not None:
                state.orchestrator._capture_mode = CustodyCapture(custody_mock)
            if state.coordinator is not None:
                state.coordinator._custody = custody_mock
            test_app.state.custody = custody_mock

        yield test_app

    reset_app_state()
    clear_settings_cache()
    if old_config is None:
        os.environ.pop("CONFIG_PATH", None)
    else:
        os.environ["CONFIG_PATH"] = old_config


@pytest.fixture
async def app(tmp_path: Path) -> AsyncIterator[Any]:
    """App running in custody mode with mocked external services."""
    async with _running_app(tmp_path, custody=True) as test_app:
        yield test_app


@pytest.fixture
async def direct_app(tmp_path: Path) -> AsyncIterator[Any]:
    """App running without a custody section: buyers pay vendors directly."""
    async with _running_app(tmp_path, custody=False) as test_app:
        yield test_app


@pytest.fixture
async def client(app: Any) -> AsyncIterator[AsyncClient]:
    """Create an async HTTP client for the test app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture
async def direct_client(direct_app: Any) -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=direct_app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


# ---------------------------------------------------------------------------
# Request helpers
# ---------------------------------------------------------------------------
async def register_vendor(client: AsyncClient, name: str = "Weather Co") -> tuple[str, str]:
    """Register a vendor through the admin API. Returns (vendor_id, api_key)."""
    response = await client.post(
        "/admin/vendors",
        json={"name": name, "settlement_address": VENDOR_ADDRESS},
        headers={"X-Admin-Key": ADMIN_KEY},
    )
    assert response.status_code == 201, response.text
    data = response.json()
    return data["vendor_id"], data["api_key"]


async def register_product(
    client: AsyncClient,
    vendor_id: str,
    path: str = "weather",
    price: str = "$0.10",
    kind: str = "async",
) -> dict[str, Any]:
    response = await client.post(
        f"/admin/vendors/{vendor_id}/products",
        json={"path": path, "price": price, "description": f"{path} data", "kind": kind},
        headers={"X-Admin-Key": ADMIN_KEY},
    )
    assert response.status_code == 201, response.text
    result: dict[str, Any] = response.json()
    return result


async def purchase(
    client: AsyncClient,
    vendor_id: str,
    path: str = "weather",
    body: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Pay for a resource with a valid header and return the JSON response body."""
    response = await client.post(
        f"/{vendor_id}/{path}",
        json=body or {"city": "Berlin"},
        headers={"PAYMENT-SIGNATURE": make_payment_header()},
    )
    assert response.status_code == 200, response.text
    result: dict[str, Any] = response.json()
    return result
