"""
LINE Login flow orchestration.

start_line_login:   session (state + nonce) -> authorization URL
complete_line_login: validated callback -> token exchange -> nonce check ->
                     profile -> identity resolution -> session credential

The caller owns the session object: it is consumed from the store before this
module ever sees it, so every exit path leaves no reusable artifacts behind.
"""

from app.auth.id_token import verify_id_token_nonce
from app.infrastructure.observability.logging import get_logger, preview
from app.models.domain.auth_domain import (
    LINE_PROVIDER,
    LINE_PROVIDER_ID,
    AuthResult,
    AuthSession,
    PartialProfileOnly,
    PendingAction,
    SessionCredential,
)
from app.services.auth_session_service import (
    AuthSessionService,
    auth_session_service,
    validate_callback,
)
from app.services.credential_service import CredentialIssuanceUnavailable, issue_session_token
from app.services.identity_service import IdentityService, identity_service
from app.services.line_login_service import LineLoginService, line_login_service

logger = get_logger(__name__)


class LineAuthService:
    def __init__(
        self,
        login_client: LineLoginService | None = None,
        sessions: AuthSessionService | None = None,
        identities: IdentityService | None = None,
    ):
        self.login_client = login_client or line_login_service
        self.sessions = sessions or auth_session_service
        self.identities = identities or identity_service

    async def start_login(self, pending_action: PendingAction = "login") -> tuple[str, AuthSession]:
        """
        Create a login session and the URL to send the browser to.

        Raises:
            MissingConfiguration: If the channel id or callback URL is empty
            SessionStoreUnavailable: If the session cannot be persisted
        """
        # Fail on configuration before anything is persisted
        self.login_client.validate_config(require_secret=False)

        session = await self.sessions.create_session(pending_action)
        auth_url = self.login_client.build_authorization_url(session.state, session.hashed_nonce)
        return auth_url, session

    async def complete_login(
        self, code: str, state: str, session: AuthSession | None
    ) -> AuthResult:
        """
        Run the callback half of the login.

        Raises:
            SessionExpiredOrReplayed, CsrfMismatch: Before any network call
            TokenExchangeFailed, NonceVerificationFailed, ProfileFetchFailed
        """
        validated = validate_callback(code, state, session)

        tokens = await self.login_client.exchange_code_for_tokens(validated.code)

        if tokens.id_token:
            verify_id_token_nonce(tokens.id_token, validated.hashed_nonce)

        profile = await self.login_client.fetch_profile(tokens.access_token)

        resolution = await self.identities.resolve(profile, validated.pending_action)

        if validated.pending_action == "link":
            logger.info(
                "Link flow completed without minting a credential",
                uid_preview=preview(profile.subject_id),
                link_success=resolution.link_result.success if resolution.link_result else None,
            )
            return PartialProfileOnly(
                id_token=tokens.id_token, profile=profile, resolution=resolution
            )

        try:
            custom_token = issue_session_token(
                profile.subject_id,
                {
                    "provider": LINE_PROVIDER,
                    "providerId": LINE_PROVIDER_ID,
                    "displayName": profile.display_name,
                    "photoURL": profile.avatar_url,
                },
            )
        except CredentialIssuanceUnavailable as e:
            logger.error(
                "Credential issuance unavailable; returning profile only",
                uid_preview=preview(profile.subject_id),
                error=str(e),
            )
            return PartialProfileOnly(
                id_token=tokens.id_token,
                profile=profile,
                resolution=resolution,
                credential_error=str(e),
            )

        return SessionCredential(
            custom_token=custom_token,
            id_token=tokens.id_token,
            profile=profile,
            resolution=resolution,
        )


# Singleton instance for application use
line_auth_service = LineAuthService()


# Convenience functions for easy import
async def start_line_login(pending_action: PendingAction = "login") -> tuple[str, AuthSession]:
    return await line_auth_service.start_login(pending_action)


async def consume_login_session(session_id: str | None) -> AuthSession | None:
    return await line_auth_service.sessions.consume_session(session_id)


async def complete_line_login(code: str, state: str, session: AuthSession | None) -> AuthResult:
    return await line_auth_service.complete_login(code, state, session)
