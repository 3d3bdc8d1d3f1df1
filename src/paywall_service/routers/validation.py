"""Shared request validation helpers for paywall routers."""

from __future__ import annotations

import json
import secrets
from typing import Any

from paywall_service.core.exceptions import ServiceError


def parse_json_body(raw_body: bytes) -> dict[str, Any]:
    """Parse JSON body, raising ServiceError on failure."""
    try:
        data = json.loads(raw_body)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ServiceError(
            "INVALID_JSON",
            "Request body is not valid JSON",
            400,
            {},
        ) from exc

    if not isinstance(data, dict):
        raise ServiceError(
            "INVALID_JSON",
            "Request body must be a JSON object",
            400,
            {},
        )

    return data


def extract_string(data: dict[str, Any], field_name: str, *, required: bool = True) -> str | None:
    """Extract a string field from a parsed JSON body."""
    if field_name not in data or data[field_name] is None:
        if required:
            raise ServiceError(
                "INVALID_PAYLOAD",
                f"Missing required field: {field_name}",
                400,
                {},
            )
        return None

    value = data[field_name]
    if not isinstance(value, str):
        raise ServiceError(
            "INVALID_PAYLOAD",
            f"Field '{field_name}' must be a string",
            400,
            {},
        )

    if required and not value.strip():
        raise ServiceError(
            "INVALID_PAYLOAD",
            f"Field '{field_name}' must not be empty",
            400,
            {},
        )

    return value


def extract_opaque(data: dict[str, Any], field_name: str, *, required: bool) -> str | None:
    """Extract a free-form field, serializing non-string JSON values to text."""
    if field_name not in data:
        if required:
            raise ServiceError(
                "INVALID_PAYLOAD",
                f"Missing required field: {field_name}",
                400,
                {},
            )
        return None

    value = data[field_name]
    if isinstance(value, str):
        return value
    return json.dumps(value, separators=(",", ":"))


def require_admin_key(provided: str | None, expected: str | None) -> None:
    """Check the X-Admin-Key header against the configured operator key."""
    if expected is None:
        msg = "Admin API key not initialized"
        raise RuntimeError(msg)
    if not provided:
        raise ServiceError("UNAUTHORIZED", "Missing X-Admin-Key header", 401, {})
    if not secrets.compare_digest(provided.encode(), expected.encode()):
        raise ServiceError("UNAUTHORIZED", "Invalid admin key", 401, {})
