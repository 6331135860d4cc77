import json

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.routes import webhook
from app.security.signature import compute_signature
from app.services.webhook_service import event_router

SECRET = "messaging-channel-secret"


@pytest.fixture
def client(monkeypatch, patched_redis, make_messaging_client):
    monkeypatch.setattr("app.routes.webhook.settings.LINE_MESSAGING_CHANNEL_SECRET", SECRET)
    monkeypatch.setattr(event_router, "client", make_messaging_client())
    app = FastAPI()
    app.include_router(webhook.router)
    return TestClient(app)


def _body(*events) -> bytes:
    return json.dumps({"destination": "U-bot", "events": list(events)}).encode("utf-8")


def _follow(user_id: str) -> dict:
    return {"type": "follow", "replyToken": "rt-1", "source": {"type": "user", "userId": user_id}}


def test_webhook_valid_signature(client):
    raw = _body()

    response = client.post(
        "/webhook",
        content=raw,
        headers={"x-line-signature": compute_signature(SECRET, raw)},
    )

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_webhook_accepts_provider_signature_header(client):
    raw = _body()

    response = client.post(
        "/webhook",
        content=raw,
        headers={"x-provider-signature": compute_signature(SECRET, raw)},
    )

    assert response.status_code == 200


def test_webhook_invalid_signature(client, patched_redis):
    raw = _body(_follow("U1"))

    response = client.post("/webhook", content=raw, headers={"x-line-signature": "bad"})

    assert response.status_code == 401
    assert patched_redis.store == {}


def test_webhook_missing_signature(client):
    response = client.post("/webhook", content=_body())
    assert response.status_code == 401


def test_webhook_missing_secret(client, monkeypatch):
    monkeypatch.setattr("app.routes.webhook.settings.LINE_MESSAGING_CHANNEL_SECRET", None)
    raw = _body()

    response = client.post(
        "/webhook", content=raw, headers={"x-line-signature": compute_signature(SECRET, raw)}
    )

    assert response.status_code == 401


def test_webhook_signature_covers_raw_bytes(client):
    raw = _body()
    reformatted = json.dumps(json.loads(raw), indent=2).encode("utf-8")

    response = client.post(
        "/webhook",
        content=reformatted,
        headers={"x-line-signature": compute_signature(SECRET, raw)},
    )

    assert response.status_code == 401


def test_follow_event_registers_recipient(client, patched_redis):
    raw = _body(_follow("U1"))

    response = client.post(
        "/webhook", content=raw, headers={"x-line-signature": compute_signature(SECRET, raw)}
    )

    assert response.status_code == 200
    assert "U1" in patched_redis.sets["recipients:active"]


def test_handler_failure_still_returns_200(client, monkeypatch):
    async def broken(event):
        raise RuntimeError("handler bug")

    monkeypatch.setitem(event_router.handlers, "follow", broken)
    raw = _body(_follow("U1"))

    response = client.post(
        "/webhook", content=raw, headers={"x-line-signature": compute_signature(SECRET, raw)}
    )

    assert response.status_code == 200
    assert response.json()["failed"] == 1
