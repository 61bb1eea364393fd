"""
Creem webhook signature verification.

Creem signs the raw request body with HMAC-SHA256 using the endpoint's
webhook secret; the hex digest arrives in one of several headers, optionally
prefixed with "sha256=".
"""
import hashlib
import hmac
import logging
from typing import Mapping, Optional

logger = logging.getLogger(__name__)

SIGNATURE_HEADERS = ("x-creem-signature", "x-signature", "x-webhook-signature")
SIGNATURE_PREFIX = "sha256="


def compute_signature(raw_body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()


def verify(raw_body: bytes, signature_header: Optional[str], secret: str) -> bool:
    """
    Validate an HMAC-SHA256 signature over the raw body.
    Returns False for any mismatch, malformed header or internal error.
    """
    if not secret or not signature_header:
        return False

    sig = signature_header.strip()
    if sig.lower().startswith(SIGNATURE_PREFIX):
        sig = sig[len(SIGNATURE_PREFIX):]

    try:
        expected = compute_signature(raw_body, secret)
        return hmac.compare_digest(expected.encode("ascii"), sig.lower().encode("ascii"))
    except Exception as e:
        logger.error("Webhook signature validation error: %s", str(e))
        return False


def extract_signature(headers: Mapping[str, str]) -> Optional[str]:
    """First signature header present wins; Authorization: Bearer is the last resort"""
    for name in SIGNATURE_HEADERS:
        value = headers.get(name)
        if value:
            return value

    authorization = headers.get("authorization")
    if authorization:
        if authorization.lower().startswith("bearer "):
            token = authorization[len("bearer "):].strip()
            return token or None
        return authorization.strip() or None
    return None
