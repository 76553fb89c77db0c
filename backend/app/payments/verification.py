"""Razorpay signature verification.

Webhooks are signed with HMAC-SHA256 over the raw request body using the
webhook secret. Checkout callbacks are signed over ``"{order_id}|{payment_id}"``
using the API key secret. Both signatures are lowercase hex.
"""

import hashlib
import hmac
import logging

from .errors import AuthenticationError, ConfigurationError

logger = logging.getLogger(__name__)


def compute_signature(message: bytes | str, secret: str) -> str:
    """HMAC-SHA256 of ``message`` keyed by ``secret``, hex encoded."""
    if isinstance(message, str):
        message = message.encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify_signature(raw_body: bytes | str, provided_signature: str | None, shared_secret: str) -> bool:
    """Check a webhook signature in constant time.

    Returns False for a missing or wrongly sized signature instead of raising.
    """
    if not provided_signature:
        return False
    expected = compute_signature(raw_body, shared_secret)
    return hmac.compare_digest(expected, provided_signature.strip().lower())


def ensure_valid_signature(
    raw_body: bytes | str, provided_signature: str | None, shared_secret: str | None
) -> None:
    """Raising form of :func:`verify_signature`.

    Raises:
        ConfigurationError: If the shared secret is not configured
        AuthenticationError: If the signature is missing or does not match
    """
    if not shared_secret:
        raise ConfigurationError("Webhook secret is not configured")
    if not verify_signature(raw_body, provided_signature, shared_secret):
        # Never log the expected value
        logger.warning("Rejected payload with invalid signature")
        raise AuthenticationError("Invalid signature")


def verify_checkout_signature(order_id: str, payment_id: str, signature: str | None, secret: str) -> bool:
    """Check the signature returned to the client after checkout."""
    return verify_signature(f"{order_id}|{payment_id}", signature, secret)
