"""Vendor and product registration, and vendor API-key authentication."""

from __future__ import annotations

from typing import TYPE_CHECKING

from paywall_service.core.exceptions import ServiceError
from paywall_service.domain.catalog import Product, ProductKind, Vendor, hash_api_key
from paywall_service.domain.errors import NotFoundError, ValidationFailed
from paywall_service.domain.pricing import to_base_units
from paywall_service.logging import get_logger
from paywall_service.services.market_store import DuplicateRecordError

if TYPE_CHECKING:
    from collections.abc import Mapping

    from paywall_service.config import AssetConfig
    from paywall_service.services.market_store import MarketStore


class CatalogService:
    """Registers vendors and the priced resources they expose behind the paywall."""

    def __init__(self, store: MarketStore, assets: Mapping[str, AssetConfig]) -> None:
        self._store = store
        self._assets = assets
        self._logger = get_logger(__name__)

    def register_vendor(self, name: str, settlement_address: str) -> tuple[Vendor, str]:
        """Create a vendor. Returns the vendor and its plaintext API key."""
        vendor, api_key = Vendor.register(name, settlement_address)
        self._store.insert_vendor(vendor)
        self._logger.info("Vendor registered", extra={"vendor_id": vendor.id})
        return vendor, api_key

    def register_product(
        self,
        vendor_id: str,
        path: str,
        price: str,
        description: str,
        data: str = "",
        kind: ProductKind = ProductKind.ASYNC,
        network: str | None = None,
        mime_type: str | None = None,
    ) -> Product:
        if self._store.get_vendor(vendor_id) is None:
            raise NotFoundError("vendor", vendor_id)

        product = Product.register(
            vendor_id=vendor_id,
            path=path,
            price=price,
            description=description,
            data=data,
            kind=kind,
            network=network,
            mime_type=mime_type,
        )
        asset = self._assets.get(product.network)
        if asset is None:
            raise ValidationFailed("network", f"{product.network} is not an accepted network")
        # Price must be expressible in the asset's base units
        to_base_units(product.price, asset.decimals)

        try:
            self._store.insert_product(product)
        except DuplicateRecordError as exc:
            raise ServiceError(
                "PRODUCT_EXISTS",
                "Product with this path already exists",
                409,
                {"vendor_id": vendor_id, "path": product.path},
            ) from exc

        self._logger.info(
            "Product registered",
            extra={
                "vendor_id": vendor_id,
                "product_id": product.id,
                "path": product.path,
                "kind": product.kind.value,
            },
        )
        return product

    def list_products(self, vendor_id: str) -> list[Product]:
        if self._store.get_vendor(vendor_id) is None:
            raise NotFoundError("vendor", vendor_id)
        return self._store.list_products(vendor_id)

    def authenticate_vendor(self, api_key: str | None) -> Vendor:
        """
        Resolve the vendor an API key acts for; raises 401 for missing or unknown keys.

        Accepts the key issued at vendor registration and active keys minted
        from redeemed credential grants.
        """
        if not api_key:
            raise ServiceError("UNAUTHORIZED", "Missing X-API-Key header", 401, {})
        key_hash = hash_api_key(api_key)
        vendor = self._store.get_vendor_by_api_key_hash(key_hash)
        if vendor is None:
            minted = self._store.get_api_key_by_hash(key_hash)
            if minted is not None and minted.is_active:
                vendor = self._store.get_vendor(minted.vendor_id)
        if vendor is None or not vendor.is_active:
            raise ServiceError("UNAUTHORIZED", "Invalid API key", 401, {})
        return vendor
