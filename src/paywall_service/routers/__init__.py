"""API routers."""

from paywall_service.routers import admin, health, paywall, tasks, vendor

__all__ = ["admin", "health", "paywall", "tasks", "vendor"]
