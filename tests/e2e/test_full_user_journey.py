import json
import time
from urllib.parse import parse_qs, urlparse

import httpx
import jwt
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.routes import line_auth, messages, webhook
from app.security.signature import compute_signature
from app.services.line_login_service import LINE_TOKEN_URL, line_login_service
from app.services.messaging.batch_dispatcher import batch_dispatcher
from app.services.webhook_service import event_router

WEBHOOK_SECRET = "messaging-channel-secret"


def test_follow_login_and_broadcast(
    monkeypatch, patched_redis, session_secret, make_messaging_client
):
    nonce_holder = {}

    def line_login(request: httpx.Request) -> httpx.Response:
        if str(request.url) == LINE_TOKEN_URL:
            id_token = jwt.encode(
                {"sub": "U-alice", "nonce": nonce_holder["nonce"], "exp": int(time.time()) + 60},
                "line-signing-key-for-tests-0123456789",
                algorithm="HS256",
            )
            return httpx.Response(200, json={"access_token": "at-1", "id_token": id_token})
        return httpx.Response(200, json={"userId": "U-alice", "displayName": "Alice"})

    messaging = make_messaging_client()
    monkeypatch.setattr(line_login_service, "client_id", "1234567890")
    monkeypatch.setattr(line_login_service, "client_secret", "channel-secret")
    monkeypatch.setattr(line_login_service, "redirect_uri", "https://app.example.com/callback")
    monkeypatch.setattr(line_login_service, "_transport", httpx.MockTransport(line_login))
    monkeypatch.setattr("app.routes.webhook.settings.LINE_MESSAGING_CHANNEL_SECRET", WEBHOOK_SECRET)
    monkeypatch.setattr(event_router, "client", messaging)
    monkeypatch.setattr(batch_dispatcher, "client", messaging)
    monkeypatch.setattr(batch_dispatcher, "window_pause_seconds", 0)

    app = FastAPI()
    app.include_router(line_auth.router)
    app.include_router(webhook.router)
    app.include_router(messages.router)
    client = TestClient(app, base_url="https://testserver")

    # 1) Two accounts follow the channel
    events = [
        {"type": "follow", "replyToken": f"rt-{uid}", "source": {"type": "user", "userId": uid}}
        for uid in ("U-alice", "U-bob")
    ]
    raw = json.dumps({"destination": "U-bot", "events": events}).encode("utf-8")
    follow = client.post(
        "/webhook", content=raw, headers={"x-line-signature": compute_signature(WEBHOOK_SECRET, raw)}
    )
    assert follow.status_code == 200
    assert len(messaging.replies) == 2

    # 2) Alice signs in with LINE
    started = client.get("/auth/line/url").json()
    nonce_holder["nonce"] = parse_qs(urlparse(started["auth_url"]).query)["nonce"][0]
    callback = client.post("/line-callback", json={"code": "code-1", "state": started["state"]})
    assert callback.status_code == 200
    token = callback.json()["customToken"]

    # 3) She broadcasts to every follower with the minted credential
    auth = {"Authorization": f"Bearer {token}"}
    sent = client.post(
        "/send-message",
        json={"content": {"type": "text", "text": "news"}, "target": {"type": "all"}},
        headers=auth,
    )
    assert sent.status_code == 200
    assert sorted(user_id for user_id, _ in messaging.pushed) == ["U-alice", "U-bob"]

    users = client.get("/users", headers=auth).json()
    assert users["count"] == 2

    job = client.get("/messages", headers=auth).json()["messages"][0]
    assert job["id"] == sent.json()["messageId"]
    assert job["status"] == "completed"
    assert job["successCount"] == 2
    assert job["createdBy"] == "U-alice"
