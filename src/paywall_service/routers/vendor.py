"""Vendor task desk: pull pending work and report fulfillment outcomes."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, Header, Request

from paywall_service.core.state import get_app_state
from paywall_service.routers.validation import extract_opaque, extract_string, parse_json_body
from paywall_service.schemas import VendorTaskListResponse, VendorTaskResponse

if TYPE_CHECKING:
    from paywall_service.domain.catalog import Vendor
    from paywall_service.services.fulfillment_coordinator import FulfillmentCoordinator

router = APIRouter()


def _authenticated(api_key: str | None) -> tuple[Vendor, FulfillmentCoordinator]:
    state = get_app_state()
    if state.catalog is None or state.coordinator is None:
        msg = "Vendor task desk not initialized"
        raise RuntimeError(msg)
    vendor = state.catalog.authenticate_vendor(api_key)
    return vendor, state.coordinator


# ---------------------------------------------------------------------------
# GET /vendor/tasks: pending work for the calling vendor
# ---------------------------------------------------------------------------


@router.get("/vendor/tasks", response_model=VendorTaskListResponse)
async def list_pending_tasks(
    x_api_key: str | None = Header(default=None),
) -> VendorTaskListResponse:
    vendor, coordinator = _authenticated(x_api_key)
    tasks = coordinator.list_pending_tasks(vendor.id)
    return VendorTaskListResponse(tasks=[VendorTaskResponse.from_task(task) for task in tasks])


@router.get("/vendor/tasks/{task_id}", response_model=VendorTaskResponse)
async def get_vendor_task(
    task_id: str,
    x_api_key: str | None = Header(default=None),
) -> VendorTaskResponse:
    vendor, coordinator = _authenticated(x_api_key)
    return VendorTaskResponse.from_task(coordinator.get_vendor_task(task_id, vendor.id))


# ---------------------------------------------------------------------------
# Lifecycle transitions
# ---------------------------------------------------------------------------


@router.post("/vendor/tasks/{task_id}/start", response_model=VendorTaskResponse)
async def start_task(
    task_id: str,
    x_api_key: str | None = Header(default=None),
) -> VendorTaskResponse:
    """Claim a pending task for processing."""
    vendor, coordinator = _authenticated(x_api_key)
    task = coordinator.start_processing(task_id, vendor.id)
    return VendorTaskResponse.from_task(task)


@router.post("/vendor/tasks/{task_id}/complete", response_model=VendorTaskResponse)
async def complete_task(
    task_id: str,
    request: Request,
    x_api_key: str | None = Header(default=None),
) -> VendorTaskResponse:
    """Report a finished task; a held payment is then released to the vendor."""
    vendor, coordinator = _authenticated(x_api_key)
    data = parse_json_body(await request.body())
    result = extract_opaque(data, "result", required=True) or ""

    task = await coordinator.complete(task_id, vendor.id, result)
    return VendorTaskResponse.from_task(task)


@router.post("/vendor/tasks/{task_id}/fail", response_model=VendorTaskResponse)
async def fail_task(
    task_id: str,
    request: Request,
    x_api_key: str | None = Header(default=None),
) -> VendorTaskResponse:
    """Report a task that could not be fulfilled; a held payment is then refunded."""
    vendor, coordinator = _authenticated(x_api_key)
    data = parse_json_body(await request.body())
    error_message = extract_string(data, "error_message") or ""

    task = await coordinator.fail(task_id, vendor.id, error_message)
    return VendorTaskResponse.from_task(task)
