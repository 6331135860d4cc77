import base64
import hashlib
import hmac

import pytest

from app.security.signature import SignatureInvalid, compute_signature, verify_signature

SECRET = "messaging-channel-secret"
BODY = '{"destination":"U0","events":[{"type":"follow"}]}'.encode()


def test_compute_signature_is_base64_hmac_sha256():
    expected = base64.b64encode(hmac.new(SECRET.encode(), BODY, hashlib.sha256).digest()).decode()
    assert compute_signature(SECRET, BODY) == expected


def test_valid_signature_passes():
    verify_signature(BODY, compute_signature(SECRET, BODY), SECRET)


def test_signature_over_different_bytes_fails():
    reserialized = b'{"destination": "U0", "events": [{"type": "follow"}]}'
    with pytest.raises(SignatureInvalid):
        verify_signature(reserialized, compute_signature(SECRET, BODY), SECRET)


@pytest.mark.parametrize(
    "signature,secret",
    [
        (None, SECRET),
        ("", SECRET),
        ("bm90LXRoZS1zaWduYXR1cmU=", SECRET),
        ("any", None),
    ],
)
def test_missing_or_wrong_inputs_fail(signature, secret):
    with pytest.raises(SignatureInvalid):
        verify_signature(BODY, signature, secret)
