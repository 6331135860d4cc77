"""
Identity linking for LINE Login.

Resolves the local identity for an external subject id, creating it on first
sign-in, and records provider links when the login was started as a link
operation.
"""

from app.infrastructure.observability.logging import get_logger, preview
from app.models.domain.auth_domain import (
    LINE_PROVIDER,
    ExternalProfile,
    IdentityResolution,
    LinkOutcome,
    LinkReport,
    LocalIdentity,
    PendingAction,
)
from app.repositories.identity_repository import IdentityRepository, identity_repository

logger = get_logger(__name__)


class IdentityService:
    def __init__(self, repository: IdentityRepository | None = None):
        self.repository = repository or identity_repository

    async def resolve(
        self, profile: ExternalProfile, pending_action: PendingAction = "login"
    ) -> IdentityResolution:
        """
        Look up the identity for `profile.subject_id`, creating it if absent.

        For a link action the identity is also marked as linked with LINE and
        a LinkOutcome is attached; callers must not mint a login credential for
        such a resolution.
        """
        uid = profile.subject_id
        identity = await self.repository.get(uid)
        is_existing_user = identity is not None

        if identity is None:
            identity, created = await self._create(profile)
            # Lost a creation race: the document already existed
            is_existing_user = not created

        link_info = LinkReport.from_providers(identity.linked_providers) if is_existing_user else None

        logger.info(
            "Identity resolved",
            uid_preview=preview(uid),
            is_existing_user=is_existing_user,
            linked_providers=sorted(identity.linked_providers),
            pending_action=pending_action,
        )

        resolution = IdentityResolution(
            identity=identity, is_existing_user=is_existing_user, link_info=link_info
        )

        if pending_action == "link":
            resolution.link_result = await self._link_line(identity)
            refreshed = await self.repository.get(uid)
            if refreshed is not None:
                resolution.identity = refreshed

        return resolution

    async def _create(self, profile: ExternalProfile) -> tuple[LocalIdentity, bool]:
        identity = LocalIdentity(
            uid=profile.subject_id,
            display_name=profile.display_name,
            avatar_url=profile.avatar_url,
            linked_providers={LINE_PROVIDER},
        )
        if await self.repository.create_if_absent(identity):
            logger.info("Local identity created", uid_preview=preview(identity.uid))
            return identity, True

        existing = await self.repository.get(identity.uid)
        if existing is None:
            raise RuntimeError(f"Identity {identity.uid} could not be created")
        return existing, False

    async def _link_line(self, identity: LocalIdentity) -> LinkOutcome:
        if identity.is_linked_with(LINE_PROVIDER):
            return LinkOutcome(success=True, message="LINE account is already linked")

        updated = await self.repository.add_provider(identity.uid, LINE_PROVIDER)
        if updated is None:
            return LinkOutcome(success=False, message="Account to link was not found")
        return LinkOutcome(success=True, message="LINE account linked")


identity_service = IdentityService()
