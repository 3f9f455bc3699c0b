"""Payment gateway webhook signature verification.

Paystack signs the raw request body with HMAC-SHA512 keyed by the account
secret and sends the hex digest in ``x-paystack-signature``.
"""

import hashlib
import hmac
import logging

from backend.core import errors

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-paystack-signature"


def constant_time_compare(a: str, b: str) -> bool:
    if not a or not b:
        return False
    return hmac.compare_digest(a, b)


def compute_hmac_sha512(secret: str, payload: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha512).hexdigest()


def verify_paystack_signature(raw_body: bytes, signature: str | None, secret: str) -> None:
    """Raise SignatureMismatchError unless ``signature`` signs ``raw_body``."""
    expected = compute_hmac_sha512(secret, raw_body)
    if not constant_time_compare(expected, (signature or "").strip().lower()):
        logger.warning("Rejected payment webhook with invalid signature")
        raise errors.SignatureMismatchError("Invalid webhook signature.")
