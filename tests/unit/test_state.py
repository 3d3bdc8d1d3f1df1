"""Unit tests for AppState lifecycle helpers."""

from __future__ import annotations

import time

import pytest

from paywall_service.core.state import AppState, get_app_state, init_app_state, reset_app_state


@pytest.mark.unit
def test_app_state_init() -> None:
    """AppState initializes with empty dependency fields."""
    state = AppState()
    assert state.store is None
    assert state.facilitator_client is None
    assert state.custody_client is None
    assert state.platform_signer is None
    assert state.orchestrator is None
    assert state.coordinator is None
    assert state.reconciler is None


@pytest.mark.unit
def test_app_state_uptime() -> None:
    state = AppState()
    time.sleep(0.001)
    assert state.uptime_seconds > 0


@pytest.mark.unit
def test_app_state_started_at() -> None:
    state = AppState()
    assert state.started_at.endswith("Z")
    assert "T" in state.started_at


@pytest.mark.unit
def test_get_app_state_uninitialized() -> None:
    reset_app_state()
    with pytest.raises(RuntimeError):
        get_app_state()


@pytest.mark.unit
def test_init_app_state() -> None:
    state = init_app_state()
    assert get_app_state() is state
