"""Operator endpoints: catalog registration and custody hold inspection."""

from __future__ import annotations

from fastapi import APIRouter, Header, Request
from fastapi.responses import JSONResponse

from paywall_service.core.exceptions import ServiceError
from paywall_service.core.state import get_app_state
from paywall_service.domain.catalog import ProductKind
from paywall_service.routers.validation import (
    extract_opaque,
    extract_string,
    parse_json_body,
    require_admin_key,
)
from paywall_service.schemas import (
    ExpiredHoldListResponse,
    HeldPaymentResponse,
    ProductListResponse,
    ProductResponse,
    VendorResponse,
)

router = APIRouter()


def _parse_kind(raw: str | None) -> ProductKind:
    if raw is None:
        return ProductKind.ASYNC
    try:
        return ProductKind(raw)
    except ValueError as exc:
        allowed = ", ".join(kind.value for kind in ProductKind)
        raise ServiceError(
            "INVALID_PAYLOAD",
            f"Field 'kind' must be one of: {allowed}",
            400,
            {},
        ) from exc


# ---------------------------------------------------------------------------
# Vendors and products
# ---------------------------------------------------------------------------


@router.post("/admin/vendors", status_code=201)
async def register_vendor(
    request: Request,
    x_admin_key: str | None = Header(default=None),
) -> JSONResponse:
    """Register a vendor; the response carries its API key, shown only once."""
    state = get_app_state()
    require_admin_key(x_admin_key, state.admin_api_key)
    if state.catalog is None:
        msg = "CatalogService not initialized"
        raise RuntimeError(msg)

    data = parse_json_body(await request.body())
    name = extract_string(data, "name") or ""
    settlement_address = extract_string(data, "settlement_address") or ""

    vendor, api_key = state.catalog.register_vendor(name, settlement_address)
    return JSONResponse(
        status_code=201,
        content=VendorResponse.from_vendor(vendor, api_key).model_dump(),
    )


@router.post("/admin/vendors/{vendor_id}/products", status_code=201)
async def register_product(
    vendor_id: str,
    request: Request,
    x_admin_key: str | None = Header(default=None),
) -> JSONResponse:
    """Put a new priced resource behind the paywall."""
    state = get_app_state()
    require_admin_key(x_admin_key, state.admin_api_key)
    if state.catalog is None:
        msg = "CatalogService not initialized"
        raise RuntimeError(msg)

    data = parse_json_body(await request.body())
    path = extract_string(data, "path") or ""
    price = extract_string(data, "price") or ""
    description = extract_string(data, "description", required=False) or ""
    kind = _parse_kind(extract_string(data, "kind", required=False))
    network = extract_string(data, "network", required=False)
    mime_type = extract_string(data, "mime_type", required=False)
    product_data = extract_opaque(data, "data", required=False) or ""

    product = state.catalog.register_product(
        vendor_id=vendor_id,
        path=path,
        price=price,
        description=description,
        data=product_data,
        kind=kind,
        network=network,
        mime_type=mime_type,
    )
    return JSONResponse(status_code=201, content=ProductResponse.from_product(product).model_dump())


@router.get("/admin/vendors/{vendor_id}/products", response_model=ProductListResponse)
async def list_products(
    vendor_id: str,
    x_admin_key: str | None = Header(default=None),
) -> ProductListResponse:
    state = get_app_state()
    require_admin_key(x_admin_key, state.admin_api_key)
    if state.catalog is None:
        msg = "CatalogService not initialized"
        raise RuntimeError(msg)

    products = state.catalog.list_products(vendor_id)
    return ProductListResponse(
        vendor_id=vendor_id,
        products=[ProductResponse.from_product(product) for product in products],
    )


# ---------------------------------------------------------------------------
# Custody holds
# ---------------------------------------------------------------------------


@router.get("/admin/custody/expired", response_model=ExpiredHoldListResponse)
async def list_expired_holds(
    x_admin_key: str | None = Header(default=None),
) -> ExpiredHoldListResponse:
    """Payments still held in custody past their hold deadline."""
    state = get_app_state()
    require_admin_key(x_admin_key, state.admin_api_key)
    if state.reconciler is None:
        msg = "CustodyReconciler not initialized"
        raise RuntimeError(msg)

    expired = state.reconciler.find_expired_holds()
    return ExpiredHoldListResponse(
        payments=[HeldPaymentResponse.from_payment(payment) for payment in expired]
    )


@router.post("/admin/custody/reconcile", response_model=ExpiredHoldListResponse)
async def reconcile_expired_holds(
    x_admin_key: str | None = Header(default=None),
) -> ExpiredHoldListResponse:
    """Hand every expired hold to the configured handler."""
    state = get_app_state()
    require_admin_key(x_admin_key, state.admin_api_key)
    if state.reconciler is None:
        msg = "CustodyReconciler not initialized"
        raise RuntimeError(msg)

    handled = await state.reconciler.reconcile()
    return ExpiredHoldListResponse(
        payments=[HeldPaymentResponse.from_payment(payment) for payment in handled]
    )
