import asyncio

import pytest

from app.models.domain.auth_domain import ExternalProfile, LocalIdentity
from app.repositories.identity_repository import IdentityRepository
from app.services.identity_service import IdentityService


def _profile(uid: str = "U-alice") -> ExternalProfile:
    return ExternalProfile(subject_id=uid, display_name="Alice", avatar_url="https://img/a.png")


@pytest.mark.asyncio
async def test_first_login_creates_identity(fake_redis):
    service = IdentityService(IdentityRepository(redis=fake_redis))

    resolution = await service.resolve(_profile())

    assert resolution.is_existing_user is False
    assert resolution.link_info is None
    assert resolution.identity.uid == "U-alice"
    assert resolution.identity.linked_providers == {"line"}
    assert "identity:U-alice" in fake_redis.store


@pytest.mark.asyncio
async def test_repeat_login_reports_existing_user_without_duplicates(fake_redis):
    service = IdentityService(IdentityRepository(redis=fake_redis))

    await service.resolve(_profile())
    second = await service.resolve(_profile())

    assert second.is_existing_user is True
    assert second.link_info.is_linked_with_line is True
    assert second.link_info.is_linked_with_google is False
    assert second.link_info.is_linked_with_password is False
    assert [key for key in fake_redis.store if key.startswith("identity:")] == ["identity:U-alice"]


@pytest.mark.asyncio
async def test_concurrent_first_logins_create_one_identity(fake_redis):
    service = IdentityService(IdentityRepository(redis=fake_redis))

    results = await asyncio.gather(*(service.resolve(_profile()) for _ in range(5)))

    assert sum(1 for r in results if not r.is_existing_user) == 1
    assert len([key for key in fake_redis.store if key.startswith("identity:")]) == 1


@pytest.mark.asyncio
async def test_link_adds_line_to_existing_identity(fake_redis):
    repository = IdentityRepository(redis=fake_redis)
    await repository.create_if_absent(
        LocalIdentity(uid="U-alice", display_name="Alice", linked_providers={"google"})
    )
    service = IdentityService(repository)

    resolution = await service.resolve(_profile(), pending_action="link")

    assert resolution.is_existing_user is True
    assert resolution.link_info.is_linked_with_google is True
    assert resolution.link_result.success is True
    assert resolution.identity.linked_providers == {"google", "line"}
    stored = await repository.get("U-alice")
    assert stored.is_linked_with("line")


@pytest.mark.asyncio
async def test_link_when_already_linked_is_a_successful_noop(fake_redis):
    service = IdentityService(IdentityRepository(redis=fake_redis))
    await service.resolve(_profile())

    resolution = await service.resolve(_profile(), pending_action="link")

    assert resolution.link_result.success is True
    assert "already" in resolution.link_result.message
