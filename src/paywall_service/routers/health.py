"""Health check endpoint."""

from __future__ import annotations

from fastapi import APIRouter

from paywall_service.core.state import get_app_state
from paywall_service.schemas import HealthResponse

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Check service health and return statistics."""
    state = get_app_state()
    tasks_by_status: dict[str, int] = {}
    payments_by_status: dict[str, int] = {}
    if state.store is not None:
        tasks_by_status = state.store.count_tasks_by_status()
        payments_by_status = state.store.count_payments_by_status()
    capture_mode = "direct"
    if state.orchestrator is not None:
        capture_mode = state.orchestrator.capture_mode.name
    return HealthResponse(
        status="ok",
        uptime_seconds=state.uptime_seconds,
        started_at=state.started_at,
        capture_mode=capture_mode,
        total_tasks=sum(tasks_by_status.values()),
        tasks_by_status=tasks_by_status,
        payments_by_status=payments_by_status,
    )
