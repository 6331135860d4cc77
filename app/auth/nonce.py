"""
One-time values for the OIDC login flow.

The raw nonce stays on our side; only its SHA-256 hex digest is sent to LINE,
which echoes it back inside the signed ID token.
"""

import hashlib
import secrets

TOKEN_BYTES = 32  # bytes of entropy for state and nonce


def generate_state() -> str:
    """Generate a CSRF state value bound to one authorization attempt."""
    return secrets.token_urlsafe(TOKEN_BYTES)


def generate_nonce() -> str:
    """Generate a raw nonce."""
    return secrets.token_urlsafe(TOKEN_BYTES)


def hash_nonce(raw_nonce: str) -> str:
    """SHA-256 hex digest of a raw nonce, as sent in the authorize URL."""
    return hashlib.sha256(raw_nonce.encode("utf-8")).hexdigest()


def generate_nonce_pair() -> tuple[str, str]:
    """Return (raw_nonce, hashed_nonce)."""
    raw_nonce = generate_nonce()
    return raw_nonce, hash_nonce(raw_nonce)
