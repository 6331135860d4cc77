import asyncio

import pytest

from app.auth.verify import auth_dependency
from app.config import settings
from app.models.domain.auth_domain import ExternalProfile
from app.models.domain.messaging_domain import SendResult

# Every module that reaches Redis through the shared client
REDIS_USERS = [
    "app.services.auth_session_service.fast_redis",
    "app.repositories.identity_repository.fast_redis",
    "app.repositories.recipient_repository.fast_redis",
    "app.repositories.message_repository.fast_redis",
    "app.routes.health.fast_redis",
]


@pytest.fixture
def auth_override():
    def _override():
        return {"sub": "user-123"}

    return _override


class FakeRedis:
    def __init__(self):
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int | None] = {}
        self.sets: dict[str, set[str]] = {}
        self.zsets: dict[str, dict[str, float]] = {}

    async def ping(self) -> bool:
        return True

    async def set_with_ttl(self, key: str, value: str, ttl_s: int | None = None) -> bool:
        self.store[key] = value
        self.ttls[key] = ttl_s
        return True

    async def set_nx(self, key: str, value: str, ttl_s: int | None = None) -> bool:
        if key in self.store:
            return False
        return await self.set_with_ttl(key, value, ttl_s)

    async def get(self, key: str) -> str | None:
        return self.store.get(key)

    async def getdel(self, key: str) -> str | None:
        self.ttls.pop(key, None)
        return self.store.pop(key, None)

    async def delete(self, key: str) -> bool:
        return self.store.pop(key, None) is not None

    async def mget(self, keys: list[str]) -> list[str | None]:
        return [self.store.get(key) for key in keys]

    async def sadd(self, key: str, member: str) -> bool:
        self.sets.setdefault(key, set()).add(member)
        return True

    async def srem(self, key: str, member: str) -> bool:
        self.sets.get(key, set()).discard(member)
        return True

    async def smembers(self, key: str) -> set[str]:
        return set(self.sets.get(key, set()))

    async def zadd(self, key: str, member: str, score: float) -> bool:
        self.zsets.setdefault(key, {})[member] = score
        return True

    async def zrem(self, key: str, member: str) -> bool:
        return self.zsets.get(key, {}).pop(member, None) is not None

    async def zrevrange(self, key: str, start: int, stop: int) -> list[str]:
        ordered = sorted(self.zsets.get(key, {}).items(), key=lambda item: item[1], reverse=True)
        members = [member for member, _ in ordered]
        return members[start : stop + 1]

    async def zrangebyscore(self, key: str, min_score: float, max_score: float) -> list[str]:
        ordered = sorted(self.zsets.get(key, {}).items(), key=lambda item: item[1])
        return [member for member, score in ordered if min_score <= score <= max_score]


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def patched_redis(monkeypatch, fake_redis):
    """Route every repository and session store at the in-memory fake."""
    for target in REDIS_USERS:
        monkeypatch.setattr(target, fake_redis)
    return fake_redis


@pytest.fixture
def session_secret(monkeypatch):
    secret = "test-session-secret-0123456789-abcdef"
    monkeypatch.setattr(settings, "SESSION_TOKEN_SECRET", secret)
    return secret


@pytest.fixture
def apply_auth_override(auth_override):
    def _apply(app):
        app.dependency_overrides[auth_dependency] = auth_override

    return _apply


class FakeMessagingClient:
    """Records pushes and replies; fails or raises for chosen users."""

    def __init__(self, failing: set[str] = frozenset(), raising: set[str] = frozenset()):
        self.failing = failing
        self.raising = raising
        self.pushed: list[tuple[str, list[dict]]] = []
        self.replies: list[tuple[str, list[dict]]] = []
        self.profiles: dict = {}
        self.in_flight = 0
        self.max_in_flight = 0

    async def push(self, user_id, messages):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        await asyncio.sleep(0)
        self.in_flight -= 1
        self.pushed.append((user_id, messages))

        if user_id in self.raising:
            raise RuntimeError("connection reset")
        if user_id in self.failing:
            return SendResult(success=False, user_id=user_id, error="HTTP 400: {}")
        return SendResult(success=True, user_id=user_id)

    async def reply(self, reply_token, messages):
        self.replies.append((reply_token, messages))
        return True

    async def get_follower_profile(self, user_id):
        profile = self.profiles.get(user_id)
        if isinstance(profile, Exception):
            raise profile
        return profile or ExternalProfile(subject_id=user_id)


@pytest.fixture
def make_messaging_client():
    return FakeMessagingClient
