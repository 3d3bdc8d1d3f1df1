"""Application state management."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from paywall_service.clients.custody_client import CustodyClient
    from paywall_service.clients.facilitator_client import FacilitatorClient
    from paywall_service.clients.platform_signer import PlatformSigner
    from paywall_service.services.catalog_service import CatalogService
    from paywall_service.services.credential_issuer import CredentialIssuer
    from paywall_service.services.custody_reconciler import CustodyReconciler
    from paywall_service.services.fulfillment_coordinator import FulfillmentCoordinator
    from paywall_service.services.market_store import MarketStore
    from paywall_service.services.request_orchestrator import RequestOrchestrator


@dataclass
class AppState:
    """Runtime application state."""

    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    store: MarketStore | None = None
    facilitator_client: FacilitatorClient | None = None
    custody_client: CustodyClient | None = None
    platform_signer: PlatformSigner | None = None
    catalog: CatalogService | None = None
    credential_issuer: CredentialIssuer | None = None
    orchestrator: RequestOrchestrator | None = None
    coordinator: FulfillmentCoordinator | None = None
    reconciler: CustodyReconciler | None = None
    admin_api_key: str | None = None

    @property
    def uptime_seconds(self) -> float:
        """Calculate uptime in seconds."""
        return (datetime.now(UTC) - self.start_time).total_seconds()

    @property
    def started_at(self) -> str:
        """ISO format start time."""
        return self.start_time.isoformat(timespec="seconds").replace("+00:00", "Z")


# Global application state container
_state_container: dict[str, AppState | None] = {"app_state": None}


def get_app_state() -> AppState:
    """Get the current application state."""
    app_state = _state_container["app_state"]
    if app_state is None:
        msg = "Application state not initialized"
        raise RuntimeError(msg)
    return app_state


def init_app_state() -> AppState:
    """Initialize application state. Called during startup."""
    app_state = AppState()
    _state_container["app_state"] = app_state
    return app_state


def reset_app_state() -> None:
    """Reset application state. Used in testing."""
    _state_container["app_state"] = None
