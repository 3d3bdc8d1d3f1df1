"""Buyer-facing task polling endpoints."""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from paywall_service.core.state import get_app_state
from paywall_service.domain.task import TaskStatus
from paywall_service.schemas import TaskStatusResponse

router = APIRouter()


@router.get("/tasks/{task_id}", response_model=TaskStatusResponse)
async def get_task_status(task_id: str) -> TaskStatusResponse:
    """Current status of a purchased task."""
    state = get_app_state()
    if state.coordinator is None:
        msg = "FulfillmentCoordinator not initialized"
        raise RuntimeError(msg)

    task = state.coordinator.get_task(task_id)
    return TaskStatusResponse.from_task(task)


@router.get("/tasks/{task_id}/result")
async def get_task_result(task_id: str) -> JSONResponse:
    """Task result once fulfilled; 202 while the vendor is still working."""
    state = get_app_state()
    if state.coordinator is None:
        msg = "FulfillmentCoordinator not initialized"
        raise RuntimeError(msg)

    task = state.coordinator.get_task(task_id)
    if task.status is TaskStatus.COMPLETED:
        return JSONResponse(
            status_code=200,
            content={"task_id": task.id, "status": task.status.value, "result": task.result},
        )
    if task.status is TaskStatus.FAILED:
        return JSONResponse(
            status_code=200,
            content={
                "task_id": task.id,
                "status": task.status.value,
                "error_message": task.error_message,
            },
        )
    return JSONResponse(
        status_code=202,
        content={"task_id": task.id, "status": task.status.value},
    )
