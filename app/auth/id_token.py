"""
id_token.py
-----------
Purpose:
    Nonce check for LINE Login ID tokens.

Notes:
    - By default the payload is decoded WITHOUT signature verification and only
      the `nonce` claim is read. No authorization decision rests on any other
      unverified claim.
    - A payload that cannot be decoded is logged and tolerated; the login then
      continues without nonce assurance.
    - With LINE_VERIFY_ID_TOKEN_SIGNATURE enabled the HS256 signature (channel
      secret) and audience (channel id) are verified and any failure is fatal.
"""

import hmac

import jwt

from app.config import settings
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

LINE_ID_TOKEN_ALGORITHMS = ["HS256"]


class NonceVerificationFailed(Exception):
    """The ID token's nonce does not match the one issued for this session."""

    def __init__(self, message: str, error_code: str = "nonce_mismatch"):
        super().__init__(message)
        self.error_code = error_code


def _decode_verified(id_token: str) -> dict:
    try:
        return jwt.decode(
            id_token,
            settings.LINE_CHANNEL_SECRET,
            algorithms=LINE_ID_TOKEN_ALGORITHMS,
            audience=settings.LINE_CHANNEL_ID,
            options={"verify_exp": True},
        )
    except jwt.PyJWTError as e:
        raise NonceVerificationFailed(
            f"ID token verification failed: {e}", error_code="id_token_invalid"
        ) from e


def decode_id_token_payload(id_token: str) -> dict | None:
    """
    Decode the payload segment of a three-part token without verifying it.

    Returns:
        The claims dict, or None if the token is malformed.
    """
    try:
        return jwt.decode(id_token, options={"verify_signature": False})
    except jwt.PyJWTError as e:
        logger.warning(
            "ID token payload could not be decoded",
            error=str(e),
            error_type=type(e).__name__,
        )
        return None


def verify_id_token_nonce(id_token: str, expected_hashed_nonce: str) -> dict | None:
    """
    Check that the nonce embedded in the ID token equals the expected hash.

    Args:
        id_token: Raw ID token returned by the token endpoint
        expected_hashed_nonce: SHA-256 hex of the session's raw nonce

    Returns:
        The decoded claims, or None when decoding failed (non-fatal)

    Raises:
        NonceVerificationFailed: On nonce mismatch, or on any failure in strict mode
    """
    if settings.LINE_VERIFY_ID_TOKEN_SIGNATURE:
        payload = _decode_verified(id_token)
    else:
        payload = decode_id_token_payload(id_token)
        if payload is None:
            logger.warning("Continuing login without nonce assurance")
            return None

    token_nonce = payload.get("nonce")
    if not isinstance(token_nonce, str) or not hmac.compare_digest(
        token_nonce.encode(), expected_hashed_nonce.encode()
    ):
        logger.warning(
            "ID token nonce mismatch",
            has_nonce=token_nonce is not None,
            subject_preview=str(payload.get("sub", ""))[:8] + "...",
        )
        raise NonceVerificationFailed("ID token nonce does not match the login session")

    logger.info("ID token nonce verified", subject_preview=str(payload.get("sub", ""))[:8] + "...")
    return payload
