"""GitHub webhook signature verification.

GitHub signs each delivery with HMAC-SHA256 over the raw request body using
the webhook secret, and sends the digest in the ``X-Hub-Signature-256``
header as ``sha256=<hexdigest>``.
"""

import hashlib
import hmac
from typing import Optional

SIGNATURE_HEADER = "X-Hub-Signature-256"
SIGNATURE_PREFIX = "sha256="


def compute_signature(secret: str, body: bytes) -> str:
    """Compute the X-Hub-Signature-256 header value for a body."""
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return SIGNATURE_PREFIX + digest


def verify_signature(secret: str, body: bytes, signature_header: Optional[str]) -> bool:
    """Check a delivery signature against the shared secret.

    Args:
        secret: The webhook secret configured on GitHub.
        body: The raw request body, exactly as received.
        signature_header: The X-Hub-Signature-256 header value.

    Returns:
        True if the header matches the expected digest.
    """
    if not secret or not signature_header:
        return False
    if not signature_header.startswith(SIGNATURE_PREFIX):
        return False
    return hmac.compare_digest(compute_signature(secret, body), signature_header)
