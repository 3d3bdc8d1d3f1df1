"""
Configuration management for the paywall service.

Loads configuration from YAML with ZERO defaults.
Every value must be explicitly specified or startup fails.
The only optional section is ``custody``: leaving it out runs the
service in direct-capture mode.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict

REDACTION_MARKER = "***REDACTED***"

_SENSITIVE_KEY_FRAGMENTS: tuple[str, ...] = ("api_key", "private_key", "secret", "password")


class ServiceConfig(BaseModel):
    """Service identity configuration."""

    model_config = ConfigDict(extra="forbid")
    name: str
    version: str


class ServerConfig(BaseModel):
    """HTTP server configuration."""

    model_config = ConfigDict(extra="forbid")
    host: str
    port: int
    log_level: str


class LoggingConfig(BaseModel):
    """Logging configuration."""

    model_config = ConfigDict(extra="forbid")
    level: str
    directory: str


class DatabaseConfig(BaseModel):
    """Database configuration."""

    model_config = ConfigDict(extra="forbid")
    path: str


class FacilitatorConfig(BaseModel):
    """x402 facilitator connection configuration."""

    model_config = ConfigDict(extra="forbid")
    base_url: str
    verify_path: str
    settle_path: str
    timeout_seconds: int


class AssetConfig(BaseModel):
    """Stablecoin accepted on one network."""

    model_config = ConfigDict(extra="forbid")
    address: str
    name: str
    version: str
    decimals: int


class PaymentConfig(BaseModel):
    """Payment terms advertised to buyers."""

    model_config = ConfigDict(extra="forbid")
    scheme: str
    x402_version: int
    max_timeout_seconds: int
    assets: dict[str, AssetConfig]


class CustodyConfig(BaseModel):
    """Custody executor connection configuration."""

    model_config = ConfigDict(extra="forbid")
    base_url: str
    address: str
    release_path: str
    refund_path: str
    timeout_seconds: int
    hold_seconds: int


class PlatformConfig(BaseModel):
    """Platform identity used to sign custody instructions."""

    model_config = ConfigDict(extra="forbid")
    agent_id: str
    private_key_path: str | None = None


class AdminConfig(BaseModel):
    """Operator access configuration."""

    model_config = ConfigDict(extra="forbid")
    api_key: str


class CredentialsConfig(BaseModel):
    """Credential grant configuration."""

    model_config = ConfigDict(extra="forbid")
    redeem_token_expiry_hours: int
    default_label: str


class RequestConfig(BaseModel):
    """Request handling configuration."""

    model_config = ConfigDict(extra="forbid")
    max_body_size: int


class Settings(BaseModel):
    """
    Root configuration container.

    All fields except ``custody`` are REQUIRED. No defaults exist.
    Missing fields cause immediate startup failure.
    """

    model_config = ConfigDict(extra="forbid")
    service: ServiceConfig
    server: ServerConfig
    logging: LoggingConfig
    database: DatabaseConfig
    facilitator: FacilitatorConfig
    payment: PaymentConfig
    platform: PlatformConfig
    admin: AdminConfig
    credentials: CredentialsConfig
    request: RequestConfig
    custody: CustodyConfig | None = None


def get_config_path() -> Path:
    """Determine configuration file path (CONFIG_PATH, else config.yaml at the project root)."""
    env_path = os.environ.get("CONFIG_PATH")
    if env_path:
        return Path(env_path)
    return Path(__file__).resolve().parents[2] / "config.yaml"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Load and validate settings from the YAML config file.

    Cached after the first call; use ``clear_settings_cache`` to reload.

    Raises:
        FileNotFoundError: If the config file does not exist
        pydantic.ValidationError: If the config is incomplete or has unknown keys
    """
    config_path = get_config_path()
    with config_path.open(encoding="utf-8") as handle:
        raw = yaml.safe_load(handle)
    if not isinstance(raw, dict):
        msg = f"Config file {config_path} must contain a YAML mapping"
        raise ValueError(msg)
    return Settings.model_validate(raw)


def clear_settings_cache() -> None:
    """Drop the cached settings."""
    get_settings.cache_clear()


def _redact(value: Any) -> Any:
    if isinstance(value, dict):
        redacted: dict[str, Any] = {}
        for key, item in value.items():
            if any(fragment in key for fragment in _SENSITIVE_KEY_FRAGMENTS) and item is not None:
                redacted[key] = REDACTION_MARKER
            else:
                redacted[key] = _redact(item)
        return redacted
    if isinstance(value, list):
        return [_redact(item) for item in value]
    return value


def get_safe_config() -> dict[str, Any]:
    """Get configuration with sensitive values redacted."""
    redacted: dict[str, Any] = _redact(get_settings().model_dump())
    return redacted
