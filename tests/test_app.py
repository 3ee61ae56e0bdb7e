"""
Smoke tests for FastAPI application startup.

Verifies the lifespan loads settings and builds BearerAuth, and that a
missing or empty METER_TOKENS stops startup.

CHANGELOG:
- 2026-10-16: Initial creation (STORY-028)
"""

import pytest
from fastapi.testclient import TestClient

from gridbill.auth.bearer import BearerAuth


def test_app_starts_and_root_returns_ok(client: TestClient) -> None:
    """App starts without errors and root returns status ok."""
    response = client.get("/")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_meter_tokens_parsed_into_auth_at_startup(client: TestClient) -> None:
    """METER_TOKENS end up as a BearerAuth instance on app.state."""
    from gridbill.api.main import app

    assert isinstance(app.state.auth, BearerAuth)
    assert app.state.auth.token_map == {"test-token-abc": "meter-001"}


def test_settings_stored_on_app_state(client: TestClient) -> None:
    """Validated settings are available to route handlers."""
    from gridbill.api.main import app

    assert app.state.settings.cache_ttl_s == 60
    assert app.state.settings.redis_url == "redis://localhost:6379/0"


def test_startup_fails_without_meter_tokens(monkeypatch: pytest.MonkeyPatch) -> None:
    """A missing METER_TOKENS variable aborts startup."""
    from gridbill.api.main import app

    monkeypatch.delenv("METER_TOKENS")
    with pytest.raises(RuntimeError, match="METER_TOKENS"):
        with TestClient(app):
            pass


def test_startup_fails_with_only_malformed_tokens(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """METER_TOKENS that parse to nothing abort startup."""
    from gridbill.api.main import app

    monkeypatch.setenv("METER_TOKENS", "no-colon-here")
    with pytest.raises(RuntimeError, match="no valid token"):
        with TestClient(app):
            pass
