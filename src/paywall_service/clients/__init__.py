"""HTTP clients for the facilitator and custody executor, and platform signing."""

from paywall_service.clients.custody_client import CustodyClient, CustodyResult
from paywall_service.clients.facilitator_client import FacilitatorClient
from paywall_service.clients.platform_signer import PlatformSigner

__all__ = ["CustodyClient", "CustodyResult", "FacilitatorClient", "PlatformSigner"]
