"""
Expands a message target (all / single / list) into concrete recipients.
"""

from app.config import settings
from app.infrastructure.observability.logging import get_logger, preview
from app.models.domain.messaging_domain import MessageTarget, Recipient
from app.repositories.recipient_repository import RecipientRepository, recipient_repository

logger = get_logger(__name__)


class TargetResolutionError(Exception):
    """Base class for target resolution failures."""

    error_code = "target_resolution_error"


class InvalidMessageTarget(TargetResolutionError):
    error_code = "invalid_target"


class UnsupportedTargetType(TargetResolutionError):
    error_code = "unsupported_target_type"


class RecipientNotFound(TargetResolutionError):
    error_code = "recipient_not_found"


class RecipientInactive(TargetResolutionError):
    error_code = "recipient_inactive"


SUPPORTED_TARGET_TYPES = ("all", "single", "list")


def validate_target(target: MessageTarget) -> None:
    """
    Shape check that needs no lookups, run when a job is accepted.

    Raises:
        UnsupportedTargetType, InvalidMessageTarget
    """
    if target.type not in SUPPORTED_TARGET_TYPES:
        raise UnsupportedTargetType(f"Unsupported target type: {target.type}")
    if target.type == "single" and len(target.user_ids or []) != 1:
        raise InvalidMessageTarget("Single target requires exactly one userId")
    if target.type == "list" and not target.user_ids:
        raise InvalidMessageTarget("List target requires at least one userId")


class TargetResolver:
    def __init__(
        self,
        repository: RecipientRepository | None = None,
        lookup_batch_size: int | None = None,
    ):
        self.repository = repository or recipient_repository
        self.lookup_batch_size = (
            lookup_batch_size or settings.get_dispatch_config()["lookup_batch_size"]
        )

    async def resolve(self, target: MessageTarget) -> list[Recipient]:
        """
        Raises:
            InvalidMessageTarget: Wrong number of ids for the target type
            RecipientNotFound, RecipientInactive: single target unusable
            UnsupportedTargetType: Anything other than all / single / list
        """
        validate_target(target)

        if target.type == "all":
            recipients = await self.repository.list_active()
        elif target.type == "single":
            recipients = await self._resolve_single(target.user_ids[0])
        else:
            recipients = await self._resolve_list(target.user_ids)

        logger.info("Target resolved", target_type=target.type, recipient_count=len(recipients))
        return recipients

    async def _resolve_single(self, user_id: str) -> list[Recipient]:
        recipient = await self.repository.get(user_id)
        if recipient is None:
            raise RecipientNotFound(f"User {user_id} not found")
        if not recipient.is_active:
            raise RecipientInactive(f"User {user_id} is not active")
        return [recipient]

    async def _resolve_list(self, user_ids: list[str]) -> list[Recipient]:
        resolved: dict[str, Recipient] = {}
        size = self.lookup_batch_size
        for start in range(0, len(user_ids), size):
            batch = user_ids[start : start + size]
            found = await self.repository.get_many(batch)
            for recipient in found:
                if recipient.is_active:
                    resolved.setdefault(recipient.external_user_id, recipient)

            skipped = len(batch) - len([r for r in found if r.is_active])
            if skipped:
                logger.info(
                    "Skipped unknown or inactive recipients",
                    batch_start=start,
                    skipped=skipped,
                    first_id_preview=preview(batch[0]),
                )

        return list(resolved.values())


target_resolver = TargetResolver()
