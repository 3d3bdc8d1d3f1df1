"""FastAPI application factory."""

from __future__ import annotations

from fastapi import FastAPI

from paywall_service.config import get_settings
from paywall_service.core.exceptions import register_exception_handlers
from paywall_service.core.lifespan import lifespan
from paywall_service.core.middleware import RequestValidationMiddleware
from paywall_service.routers import admin, health, paywall, redeem, tasks, vendor


def create_app() -> FastAPI:
    """
    Create and configure FastAPI application.

    Returns:
        Configured FastAPI instance with all routers registered.
    """
    settings = get_settings()

    app = FastAPI(
        title=f"{settings.service.name} Service",
        version=settings.service.version,
        lifespan=lifespan,
    )

    register_exception_handlers(app)

    app.include_router(health.router, tags=["Operations"])
    app.include_router(admin.router, tags=["Admin"])
    app.include_router(vendor.router, tags=["Vendor"])
    app.include_router(tasks.router, tags=["Tasks"])
    app.include_router(redeem.router, tags=["Credentials"])
    # Catch-all /{vendor_id}/{path} must stay last
    app.include_router(paywall.router, tags=["Paywall"])

    app.add_middleware(
        RequestValidationMiddleware,
        max_body_size=settings.request.max_body_size,
    )

    return app
