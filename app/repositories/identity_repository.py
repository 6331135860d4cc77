"""
Storage for local identities, one JSON document per subject id.
"""

from datetime import UTC, datetime

from app.infrastructure.observability.logging import get_logger, preview
from app.models.domain.auth_domain import LocalIdentity
from app.services.redis_client import fast_redis

logger = get_logger(__name__)

IDENTITY_KEY_PREFIX = "identity"


class IdentityRepositoryError(Exception):
    """Raised when an identity document cannot be written."""


class IdentityRepository:
    def __init__(self, redis=None):
        self._redis = redis

    @property
    def redis(self):
        return self._redis or fast_redis

    def _key(self, uid: str) -> str:
        return f"{IDENTITY_KEY_PREFIX}:{uid}"

    async def get(self, uid: str) -> LocalIdentity | None:
        raw = await self.redis.get(self._key(uid))
        if raw is None:
            return None
        return LocalIdentity.model_validate_json(raw)

    async def create_if_absent(self, identity: LocalIdentity) -> bool:
        """
        Insert the identity unless one already exists for its uid.

        Returns:
            True if this call created it, False if it was already there
        """
        return await self.redis.set_nx(self._key(identity.uid), identity.model_dump_json())

    async def add_provider(self, uid: str, provider: str) -> LocalIdentity | None:
        """Record that an identity is linked with a provider."""
        identity = await self.get(uid)
        if identity is None:
            return None
        if provider in identity.linked_providers:
            return identity

        identity.linked_providers.add(provider)
        identity.updated_at = datetime.now(UTC)
        if not await self.redis.set_with_ttl(self._key(uid), identity.model_dump_json()):
            raise IdentityRepositoryError(f"Failed to update identity {uid}")

        logger.info("Provider linked to identity", uid_preview=preview(uid), provider=provider)
        return identity


identity_repository = IdentityRepository()
