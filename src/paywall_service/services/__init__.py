"""Service layer components."""

from paywall_service.services.capture_mode import CustodyCapture, DirectCapture
from paywall_service.services.catalog_service import CatalogService
from paywall_service.services.credential_issuer import CredentialIssuer
from paywall_service.services.custody_reconciler import CustodyReconciler
from paywall_service.services.fulfillment_coordinator import FulfillmentCoordinator
from paywall_service.services.market_store import MarketStore
from paywall_service.services.payment_gateway import PaymentGateway
from paywall_service.services.request_orchestrator import RequestOrchestrator

__all__ = [
    "CatalogService",
    "CredentialIssuer",
    "CustodyCapture",
    "CustodyReconciler",
    "DirectCapture",
    "FulfillmentCoordinator",
    "MarketStore",
    "PaymentGateway",
    "RequestOrchestrator",
]
