"""
Auth Session Service for LINE Login CSRF and replay protection.
Creates the single-use login session (state + nonce), hands it back exactly
once at callback time, and validates the callback against it.
"""

import hmac
import json
import secrets

from app.auth.nonce import generate_nonce_pair, generate_state
from app.config import settings
from app.infrastructure.observability.logging import get_logger, preview
from app.models.domain.auth_domain import AuthSession, PendingAction, ValidatedCallback
from app.services.redis_client import fast_redis

logger = get_logger(__name__)

SESSION_KEY_PREFIX = "line_auth_session"
SESSION_ID_BYTES = 32
SESSION_COOKIE_NAME = "line_auth_session"


class AuthSessionError(Exception):
    """Base class for login session failures."""

    error_code = "auth_session_error"


class SessionStoreUnavailable(AuthSessionError):
    error_code = "session_store_unavailable"


class SessionExpiredOrReplayed(AuthSessionError):
    """No session artifacts exist: expired, never created, or already consumed."""

    error_code = "session_expired_or_replayed"


class CsrfMismatch(AuthSessionError):
    """The state returned by the provider does not match the stored one."""

    error_code = "csrf_mismatch"


class AuthSessionService:
    """
    Redis-backed store for transient login sessions.

    A session is keyed by an opaque id carried in an HttpOnly cookie, expires
    after AUTH_SESSION_TTL_SECONDS, and is deleted the first time it is read.
    """

    def __init__(self, redis=None):
        self._redis = redis

    @property
    def redis(self):
        return self._redis or fast_redis

    def _redis_key(self, session_id: str) -> str:
        return f"{SESSION_KEY_PREFIX}:{session_id}"

    async def create_session(self, pending_action: PendingAction = "login") -> AuthSession:
        """
        Generate state and nonce and persist them for one authorization attempt.

        Raises:
            SessionStoreUnavailable: If the session cannot be stored
        """
        raw_nonce, hashed_nonce = generate_nonce_pair()
        session = AuthSession(
            session_id=secrets.token_urlsafe(SESSION_ID_BYTES),
            state=generate_state(),
            raw_nonce=raw_nonce,
            hashed_nonce=hashed_nonce,
            pending_action=pending_action,
        )

        stored = await self.redis.set_with_ttl(
            self._redis_key(session.session_id),
            session.model_dump_json(),
            settings.AUTH_SESSION_TTL_SECONDS,
        )
        if not stored:
            logger.error("Failed to store login session", pending_action=pending_action)
            raise SessionStoreUnavailable("Login session could not be stored")

        logger.info(
            "Login session created",
            state_preview=preview(session.state),
            pending_action=pending_action,
            ttl_seconds=settings.AUTH_SESSION_TTL_SECONDS,
        )
        return session

    async def consume_session(self, session_id: str | None) -> AuthSession | None:
        """
        Load and erase a session in one step. A second call for the same id
        always returns None.
        """
        if not session_id:
            return None

        raw = await self.redis.getdel(self._redis_key(session_id))
        if raw is None:
            logger.warning("Login session not found", session_preview=preview(session_id))
            return None

        try:
            return AuthSession.model_validate(json.loads(raw))
        except (ValueError, TypeError) as e:
            logger.error("Stored login session is corrupt", error=str(e))
            return None


def validate_callback(
    code: str, received_state: str, session: AuthSession | None
) -> ValidatedCallback:
    """
    Check a provider callback against the session it claims to belong to.

    Raises:
        SessionExpiredOrReplayed: No session was supplied
        CsrfMismatch: The received state differs from the stored one
    """
    if session is None:
        logger.warning("Callback without login session", state_preview=preview(received_state))
        raise SessionExpiredOrReplayed("Login session expired or already used")

    if not received_state or not hmac.compare_digest(
        received_state.encode(), session.state.encode()
    ):
        logger.warning(
            "OAuth state validation failed",
            received_state_preview=preview(received_state),
            stored_state_preview=preview(session.state),
        )
        raise CsrfMismatch("State parameter does not match the login session")

    logger.info("OAuth state validated", state_preview=preview(session.state))
    return ValidatedCallback(
        code=code,
        raw_nonce=session.raw_nonce,
        hashed_nonce=session.hashed_nonce,
        pending_action=session.pending_action,
    )


# Singleton instance for application use
auth_session_service = AuthSessionService()
