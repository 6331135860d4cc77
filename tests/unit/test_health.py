"""
Tests for health check endpoints.
"""

from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.routes import health


def _client() -> TestClient:
    app = FastAPI()
    app.include_router(health.router)
    return TestClient(app)


def test_healthz_endpoint():
    """Test the basic health check endpoint."""
    response = _client().get("/healthz")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_readyz_all_configured(monkeypatch, patched_redis):
    monkeypatch.setattr("app.routes.health.settings.LINE_CHANNEL_ID", "1234567890")
    monkeypatch.setattr("app.routes.health.settings.LINE_CHANNEL_SECRET", "secret")
    monkeypatch.setattr("app.routes.health.settings.LINE_MESSAGING_CHANNEL_ACCESS_TOKEN", "tok")
    monkeypatch.setattr("app.routes.health.settings.LINE_MESSAGING_CHANNEL_SECRET", "secret")
    monkeypatch.setattr("app.routes.health.settings.SESSION_TOKEN_SECRET", "x" * 32)

    response = _client().get("/readyz")

    assert response.status_code == 200
    data = response.json()
    assert data["overall_ok"] is True
    assert data["checks"]["redis"]["ok"] is True
    assert data["checks"]["configuration"]["issues"] is None


def test_readyz_reports_redis_down(monkeypatch, patched_redis):
    async def down():
        return False

    monkeypatch.setattr(patched_redis, "ping", down)

    data = _client().get("/readyz").json()

    assert data["overall_ok"] is False
    assert data["checks"]["redis"]["ok"] is False
