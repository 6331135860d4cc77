import json

import pytest

from app.auth.nonce import hash_nonce
from app.config import settings
from app.services.auth_session_service import (
    AuthSessionService,
    CsrfMismatch,
    SessionExpiredOrReplayed,
    SessionStoreUnavailable,
    validate_callback,
)


@pytest.mark.asyncio
async def test_create_session_persists_with_ttl(fake_redis):
    service = AuthSessionService(redis=fake_redis)

    session = await service.create_session("link")

    key = f"line_auth_session:{session.session_id}"
    stored = json.loads(fake_redis.store[key])
    assert stored["state"] == session.state
    assert stored["pending_action"] == "link"
    assert fake_redis.ttls[key] == settings.AUTH_SESSION_TTL_SECONDS
    assert session.hashed_nonce == hash_nonce(session.raw_nonce)


@pytest.mark.asyncio
async def test_session_is_consumed_exactly_once(fake_redis):
    service = AuthSessionService(redis=fake_redis)
    session = await service.create_session()

    first = await service.consume_session(session.session_id)
    second = await service.consume_session(session.session_id)

    assert first is not None
    assert first.state == session.state
    assert second is None
    assert fake_redis.store == {}


@pytest.mark.asyncio
async def test_consume_without_cookie_returns_none(fake_redis):
    service = AuthSessionService(redis=fake_redis)
    assert await service.consume_session(None) is None
    assert await service.consume_session("unknown") is None


@pytest.mark.asyncio
async def test_create_session_fails_when_store_rejects(fake_redis):
    async def refuse(*args, **kwargs):
        return False

    fake_redis.set_with_ttl = refuse
    service = AuthSessionService(redis=fake_redis)

    with pytest.raises(SessionStoreUnavailable):
        await service.create_session()


@pytest.mark.asyncio
async def test_validate_callback_forwards_session_values(fake_redis):
    session = await AuthSessionService(redis=fake_redis).create_session("link")

    validated = validate_callback("code-1", session.state, session)

    assert validated.code == "code-1"
    assert validated.raw_nonce == session.raw_nonce
    assert validated.hashed_nonce == session.hashed_nonce
    assert validated.pending_action == "link"


@pytest.mark.asyncio
async def test_validate_callback_rejects_state_mismatch(fake_redis):
    session = await AuthSessionService(redis=fake_redis).create_session()

    with pytest.raises(CsrfMismatch):
        validate_callback("code-1", "attacker-state", session)

    with pytest.raises(CsrfMismatch):
        validate_callback("code-1", "", session)

    # Non-ASCII input must be rejected, not crash the comparison
    with pytest.raises(CsrfMismatch):
        validate_callback("code-1", "ステート", session)


def test_validate_callback_fails_closed_without_session():
    with pytest.raises(SessionExpiredOrReplayed):
        validate_callback("code-1", "any-state", None)
