"""
HMAC-SHA256 signature checks for inbound LINE webhooks.

The signature covers the exact request bytes; callers must pass the raw body,
never a re-serialized JSON document.
"""

from __future__ import annotations

import base64
import hashlib
import hmac

__all__ = [
    "SignatureInvalid",
    "compute_signature",
    "verify_signature",
]


class SignatureInvalid(RuntimeError):
    """Raised when a webhook signature is missing or does not match."""


def compute_signature(secret: str, body: bytes) -> str:
    """Base64-encoded HMAC-SHA256 of `body` keyed with `secret`."""
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_signature(body: bytes, signature: str | None, secret: str | None) -> None:
    """
    Check a webhook signature header against the raw request body.

    Raises:
        SignatureInvalid: Missing secret, missing signature or mismatch
    """
    if not secret:
        raise SignatureInvalid("Webhook signing secret is not configured")
    if not signature:
        raise SignatureInvalid("Missing signature")

    expected = compute_signature(secret, body)
    if not hmac.compare_digest(expected.encode("ascii"), signature.encode("utf-8")):
        raise SignatureInvalid("Invalid signature")
