"""
Session credential minting.

Credentials are HS256 JWTs signed with SESSION_TOKEN_SECRET. The subject is
the local identity's uid and provider details travel in the `claims` claim.
"""

import time

import jwt

from app.config import settings
from app.infrastructure.observability.logging import get_logger, preview

logger = get_logger(__name__)

SESSION_TOKEN_ALGORITHM = "HS256"
SECRET_MIN_LENGTH = 16  # catch obvious misconfiguration


class CredentialIssuanceUnavailable(Exception):
    """The credential service cannot mint tokens right now."""

    error_code = "credential_issuance_unavailable"


def _signing_secret() -> str:
    secret = settings.SESSION_TOKEN_SECRET
    if not secret:
        raise CredentialIssuanceUnavailable("SESSION_TOKEN_SECRET is not configured")
    if len(secret) < SECRET_MIN_LENGTH:
        raise CredentialIssuanceUnavailable("SESSION_TOKEN_SECRET is too short; please rotate it")
    return secret


def issue_session_token(subject_id: str, claims: dict | None = None) -> str:
    """
    Mint an opaque bearer credential for `subject_id`.

    Args:
        subject_id: Local identity uid
        claims: Extra claims such as {"provider": "line", "providerId": "oidc.line"}

    Raises:
        CredentialIssuanceUnavailable: If no signing secret is configured or signing fails
    """
    secret = _signing_secret()
    now = int(time.time())
    payload = {
        "iss": settings.SESSION_TOKEN_ISSUER,
        "aud": settings.SESSION_TOKEN_AUDIENCE,
        "sub": subject_id,
        "uid": subject_id,
        "iat": now,
        "exp": now + settings.SESSION_TOKEN_TTL_SECONDS,
        "claims": claims or {},
    }

    try:
        token = jwt.encode(payload, secret, algorithm=SESSION_TOKEN_ALGORITHM)
    except (jwt.PyJWTError, TypeError, ValueError) as e:
        logger.error("Session token signing failed", error=str(e), error_type=type(e).__name__)
        raise CredentialIssuanceUnavailable(f"Session token signing failed: {e}") from e

    logger.info(
        "Session token issued",
        uid_preview=preview(subject_id),
        provider=(claims or {}).get("provider"),
        ttl_seconds=settings.SESSION_TOKEN_TTL_SECONDS,
    )
    return token


def decode_session_token(token: str) -> dict:
    """
    Verify a credential minted by issue_session_token and return its claims.

    Raises:
        CredentialIssuanceUnavailable: If no signing secret is configured
        jwt.PyJWTError: If the token is invalid or expired
    """
    return jwt.decode(
        token,
        _signing_secret(),
        algorithms=[SESSION_TOKEN_ALGORITHM],
        audience=settings.SESSION_TOKEN_AUDIENCE,
        issuer=settings.SESSION_TOKEN_ISSUER,
        options={"verify_exp": True},
    )
