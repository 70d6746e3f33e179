"""HMAC-SHA256 signing for outbound webhook bodies."""

from __future__ import annotations

import hashlib
import hmac

SIGNATURE_HEADER = "X-Webhook-Signature"


def _as_bytes(value: str | bytes) -> bytes:
    return value if isinstance(value, bytes) else value.encode("utf-8")


def sign_payload(payload: str | bytes, secret: str) -> str:
    """Hex HMAC-SHA256 of the exact payload bytes."""
    return hmac.new(_as_bytes(secret), _as_bytes(payload), hashlib.sha256).hexdigest()


def verify_signature(payload: str | bytes, signature: str | None, secret: str | None) -> bool:
    """Constant-time check of a received signature.

    Accepts an optional ``sha256=`` prefix. Malformed input returns False.
    """
    if not signature or not secret or not isinstance(signature, str):
        return False
    provided = signature.strip()
    if provided.lower().startswith("sha256="):
        provided = provided.split("=", 1)[1]
    try:
        provided_bytes = provided.encode("ascii")
    except UnicodeEncodeError:
        return False
    expected = sign_payload(payload, secret).encode("ascii")
    return hmac.compare_digest(provided_bytes, expected)
