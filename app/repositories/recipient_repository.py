"""
Roster of LINE accounts following the channel.

Each recipient is a JSON document; the ids of active recipients are also kept
in a set so "everyone active" is a single lookup.
"""

from datetime import UTC, datetime

from app.infrastructure.observability.logging import get_logger, preview
from app.models.domain.messaging_domain import Recipient
from app.services.redis_client import fast_redis

logger = get_logger(__name__)

RECIPIENT_KEY_PREFIX = "recipient"
ACTIVE_RECIPIENTS_KEY = "recipients:active"


class RecipientRepositoryError(Exception):
    """Raised when a roster write does not go through."""


class RecipientRepository:
    def __init__(self, redis=None):
        self._redis = redis

    @property
    def redis(self):
        return self._redis or fast_redis

    def _key(self, user_id: str) -> str:
        return f"{RECIPIENT_KEY_PREFIX}:{user_id}"

    async def get(self, user_id: str) -> Recipient | None:
        raw = await self.redis.get(self._key(user_id))
        if raw is None:
            return None
        return Recipient.model_validate_json(raw)

    async def get_many(self, user_ids: list[str]) -> list[Recipient]:
        """Fetch several recipients; unknown ids are skipped."""
        raws = await self.redis.mget([self._key(user_id) for user_id in user_ids])
        return [Recipient.model_validate_json(raw) for raw in raws if raw]

    async def list_active(self) -> list[Recipient]:
        user_ids = sorted(await self.redis.smembers(ACTIVE_RECIPIENTS_KEY))
        recipients = await self.get_many(user_ids)
        return [recipient for recipient in recipients if recipient.is_active]

    async def save(self, recipient: Recipient) -> Recipient:
        """Write the document and keep the active index in step with it."""
        if not await self.redis.set_with_ttl(
            self._key(recipient.external_user_id), recipient.model_dump_json()
        ):
            raise RecipientRepositoryError(
                f"Failed to save recipient {recipient.external_user_id}"
            )

        if recipient.is_active:
            await self.redis.sadd(ACTIVE_RECIPIENTS_KEY, recipient.external_user_id)
        else:
            await self.redis.srem(ACTIVE_RECIPIENTS_KEY, recipient.external_user_id)
        return recipient

    async def upsert_follower(
        self, user_id: str, display_name: str | None, avatar_url: str | None
    ) -> Recipient:
        """Create or reactivate a recipient after a follow event."""
        existing = await self.get(user_id)
        recipient = existing or Recipient(external_user_id=user_id)
        recipient.display_name = display_name or recipient.display_name or "Unknown User"
        recipient.avatar_url = avatar_url or recipient.avatar_url
        recipient.is_active = True
        recipient.followed_at = datetime.now(UTC)

        await self.save(recipient)
        logger.info(
            "Recipient saved as follower",
            user_preview=preview(user_id),
            reactivated=existing is not None,
        )
        return recipient

    async def deactivate(self, user_id: str) -> bool:
        """Mark a recipient inactive. False if it was never on the roster."""
        recipient = await self.get(user_id)
        if recipient is None:
            return False
        recipient.is_active = False
        await self.save(recipient)
        return True

    async def touch_last_message(self, user_id: str) -> bool:
        recipient = await self.get(user_id)
        if recipient is None:
            return False
        recipient.last_message_at = datetime.now(UTC)
        await self.save(recipient)
        return True


recipient_repository = RecipientRepository()
