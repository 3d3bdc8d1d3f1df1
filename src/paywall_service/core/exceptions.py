"""Service error type and exception handlers for consistent error responses."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, cast

from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from paywall_service.domain.errors import InvalidStateTransition, NotFoundError, ValidationFailed
from paywall_service.logging import get_logger

if TYPE_CHECKING:
    from fastapi import FastAPI, Request
    from starlette.types import ExceptionHandler

__all__ = ["ServiceError", "register_exception_handlers"]


class ServiceError(Exception):
    """
    Error raised by the service layer and rendered as a JSON error response.

    Args:
        error: Machine-readable error code (e.g. "TASK_NOT_FOUND")
        message: Human-readable description
        status_code: HTTP status returned to the caller
        details: Extra structured context
    """

    def __init__(
        self,
        error: str,
        message: str,
        status_code: int,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.error = error
        self.message = message
        self.status_code = status_code
        self.details: dict[str, Any] = details if details is not None else {}


def _error_response(status_code: int, error: str, message: str, details: dict[str, Any]) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "message": message, "details": details},
    )


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """Handle ServiceError exceptions."""
    logger = get_logger(__name__)
    logger.warning(
        "Service error",
        extra={
            "error_code": exc.error,
            "status_code": exc.status_code,
            "path": str(request.url.path),
        },
    )
    return _error_response(exc.status_code, exc.error, exc.message, exc.details)


async def not_found_handler(_request: Request, exc: NotFoundError) -> JSONResponse:
    """Handle domain lookups that found nothing."""
    return _error_response(
        404,
        f"{exc.entity.upper()}_NOT_FOUND",
        str(exc),
        {"entity": exc.entity, "id": exc.identifier},
    )


async def invalid_transition_handler(_request: Request, exc: InvalidStateTransition) -> JSONResponse:
    """Handle illegal lifecycle transitions."""
    return _error_response(
        409,
        "INVALID_STATE_TRANSITION",
        str(exc),
        {"entity": exc.entity, "from_state": exc.from_state, "action": exc.action},
    )


async def validation_failed_handler(_request: Request, exc: ValidationFailed) -> JSONResponse:
    """Handle entity construction failures."""
    return _error_response(
        400,
        "VALIDATION_FAILED",
        str(exc),
        {"field": exc.field, "rule": exc.rule},
    )


async def unhandled_exception_handler(request: Request, _exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger = get_logger(__name__)
    logger.exception("Unhandled exception", extra={"path": str(request.url.path)})
    return _error_response(500, "INTERNAL_ERROR", "An unexpected error occurred", {})


async def http_exception_handler(
    _request: Request,
    exc: StarletteHTTPException,
) -> JSONResponse:
    """Handle Starlette HTTP exceptions (e.g., 405 from router)."""
    if exc.status_code == 405:
        return _error_response(405, "METHOD_NOT_ALLOWED", "Method not allowed", {})
    if exc.status_code == 404:
        return _error_response(404, "NOT_FOUND", "Resource not found", {})
    return _error_response(exc.status_code, "HTTP_ERROR", str(exc.detail), {})


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers on the app."""
    app.add_exception_handler(ServiceError, cast("ExceptionHandler", service_error_handler))
    app.add_exception_handler(NotFoundError, cast("ExceptionHandler", not_found_handler))
    app.add_exception_handler(
        InvalidStateTransition,
        cast("ExceptionHandler", invalid_transition_handler),
    )
    app.add_exception_handler(ValidationFailed, cast("ExceptionHandler", validation_failed_handler))
    app.add_exception_handler(
        StarletteHTTPException,
        cast("ExceptionHandler", http_exception_handler),
    )
    app.add_exception_handler(Exception, unhandled_exception_handler)
