"""HMAC-SHA256 payload signatures.

Receivers verify a delivery by recomputing the HMAC of the raw request body
with their copy of the hook secret and comparing it to the
``X-Hook-Signature`` header.
"""

from __future__ import annotations

import hashlib
import hmac

SIGNATURE_HEADER = "X-Hook-Signature"
SIGNATURE_PREFIX = "sha256="


def _to_bytes(value: str | bytes) -> bytes:
    return value if isinstance(value, bytes) else value.encode("utf-8")


def compute_signature(payload: str | bytes, secret: str) -> str:
    """Compute the HMAC-SHA256 signature for a webhook body.

    Args:
        payload: Exact body bytes (or their UTF-8 string) that are sent.
        secret: Shared secret for HMAC.

    Returns:
        Signature in format "sha256=<hex_digest>".
    """
    signature = hmac.new(
        key=_to_bytes(secret),
        msg=_to_bytes(payload),
        digestmod=hashlib.sha256,
    ).hexdigest()
    return f"{SIGNATURE_PREFIX}{signature}"


def verify_signature(payload: str | bytes, secret: str, signature: str) -> bool:
    """Verify an HMAC-SHA256 signature in constant time.

    Args:
        payload: Body that was signed.
        secret: Shared secret for HMAC.
        signature: Signature to verify (format: "sha256=<hex_digest>").

    Returns:
        True if signature is valid, False otherwise.
    """
    expected = compute_signature(payload, secret)
    return hmac.compare_digest(expected, signature)
