"""Application lifecycle management."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import timedelta
from pathlib import Path
from typing import TYPE_CHECKING

from paywall_service.clients.custody_client import CustodyClient
from paywall_service.clients.facilitator_client import FacilitatorClient
from paywall_service.clients.platform_signer import PlatformSigner, ensure_private_key
from paywall_service.config import get_settings
from paywall_service.core.state import init_app_state
from paywall_service.logging import get_logger, setup_logging
from paywall_service.services.capture_mode import CaptureMode, CustodyCapture, DirectCapture
from paywall_service.services.catalog_service import CatalogService
from paywall_service.services.credential_issuer import CredentialIssuer
from paywall_service.services.custody_reconciler import CustodyReconciler
from paywall_service.services.fulfillment_coordinator import FulfillmentCoordinator
from paywall_service.services.market_store import MarketStore
from paywall_service.services.payment_gateway import PaymentGateway
from paywall_service.services.request_orchestrator import RequestOrchestrator

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from fastapi import FastAPI


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifecycle."""
    # === STARTUP ===
    settings = get_settings()

    setup_logging(settings.logging.level, settings.service.name, settings.logging.directory)
    logger = get_logger(__name__)

    state = init_app_state()
    state.admin_api_key = settings.admin.api_key

    db_path = settings.database.path
    store = MarketStore(db_path=db_path)
    state.store = store

    # Facilitator client (x402 verify/settle)
    facilitator_client = FacilitatorClient(
        base_url=settings.facilitator.base_url,
        verify_path=settings.facilitator.verify_path,
        settle_path=settings.facilitator.settle_path,
        timeout_seconds=settings.facilitator.timeout_seconds,
    )
    state.facilitator_client = facilitator_client

    gateway = PaymentGateway(
        facilitator=facilitator_client,
        scheme=settings.payment.scheme,
        x402_version=settings.payment.x402_version,
        max_timeout_seconds=settings.payment.max_timeout_seconds,
        assets=settings.payment.assets,
    )

    # Capture mode is fixed for the lifetime of the process
    capture_mode: CaptureMode
    custody_client: CustodyClient | None = None
    if settings.custody is not None:
        private_key_path = settings.platform.private_key_path
        if not private_key_path:
            private_key_path = str(Path(db_path).parent / "platform.pem")
        ensure_private_key(private_key_path)

        platform_signer = PlatformSigner(
            platform_agent_id=settings.platform.agent_id,
            private_key_path=private_key_path,
        )
        state.platform_signer = platform_signer

        custody_client = CustodyClient(
            base_url=settings.custody.base_url,
            address=settings.custody.address,
            release_path=settings.custody.release_path,
            refund_path=settings.custody.refund_path,
            timeout_seconds=settings.custody.timeout_seconds,
            platform_signer=platform_signer,
            assets=settings.payment.assets,
        )
        state.custody_client = custody_client
        capture_mode = CustodyCapture(
            custody=custody_client,
            hold_timeout=timedelta(seconds=settings.custody.hold_seconds),
        )
    else:
        capture_mode = DirectCapture()

    credential_issuer = CredentialIssuer(
        store=store,
        default_label=settings.credentials.default_label,
        expiry_hours=settings.credentials.redeem_token_expiry_hours,
    )
    state.credential_issuer = credential_issuer
    state.catalog = CatalogService(store=store, assets=settings.payment.assets)
    state.orchestrator = RequestOrchestrator(
        store=store,
        gateway=gateway,
        capture_mode=capture_mode,
        credential_issuer=credential_issuer,
    )
    state.coordinator = FulfillmentCoordinator(store=store, capture_mode=capture_mode)
    state.reconciler = CustodyReconciler(store=store)

    logger.info(
        "Service starting",
        extra={
            "service": settings.service.name,
            "version": settings.service.version,
            "port": settings.server.port,
            "db_path": db_path,
            "facilitator_base_url": settings.facilitator.base_url,
            "capture_mode": capture_mode.name,
            "networks": sorted(settings.payment.assets),
        },
    )

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Service shutting down", extra={"uptime_seconds": state.uptime_seconds})

    store.close()
    await facilitator_client.close()
    if custody_client is not None:
        await custody_client.close()
