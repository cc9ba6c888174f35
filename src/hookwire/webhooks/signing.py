"""HMAC-SHA256 signing of webhook bodies.

The signature covers the exact bytes transmitted as the request body.
Re-serializing the payload before sending (different key order, spacing or
escaping) breaks verification on the subscriber side.
"""

from __future__ import annotations

import hashlib
import hmac


def sign(raw_body: bytes, secret: str | None) -> str:
    """Compute the HMAC-SHA256 signature for a webhook body.

    Args:
        raw_body: Body bytes exactly as they will be sent.
        secret: Subscriber secret. Unsigned delivery is allowed, so a
            missing or empty secret yields an empty signature.

    Returns:
        Hex digest, or "" when no secret is configured.
    """
    if not secret:
        return ""
    return hmac.new(
        key=secret.encode("utf-8"),
        msg=raw_body,
        digestmod=hashlib.sha256,
    ).hexdigest()


def verify_signature(raw_body: bytes, secret: str | None, signature: str) -> bool:
    """Verify a webhook signature in constant time.

    Args:
        raw_body: Body bytes as received.
        secret: Shared secret.
        signature: Hex digest from the signature header.

    Returns:
        True if the signature matches, False otherwise.
    """
    expected = sign(raw_body, secret)
    return hmac.compare_digest(expected, signature)
