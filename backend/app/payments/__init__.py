"""Razorpay payment verification and idempotent crediting."""

from .errors import (
    AuthenticationError,
    ConfigurationError,
    MalformedEventError,
    OrderOwnershipError,
    PaymentError,
    UpstreamError,
)
from .gate import (
    ApplyResult,
    EffectKind,
    PaymentEffect,
    PaymentEvent,
    PaymentGate,
    build_effect,
    parse_webhook,
    resolve_idempotency_key,
)
from .ledger import IdempotencyLedger, InMemoryLedger, SupabaseLedger
from .provider import RazorpayClient
from .verification import (
    compute_signature,
    ensure_valid_signature,
    verify_checkout_signature,
    verify_signature,
)

__all__ = [
    # Errors
    "PaymentError",
    "AuthenticationError",
    "MalformedEventError",
    "ConfigurationError",
    "OrderOwnershipError",
    "UpstreamError",
    # Gate
    "PaymentGate",
    "PaymentEvent",
    "PaymentEffect",
    "EffectKind",
    "ApplyResult",
    "parse_webhook",
    "build_effect",
    "resolve_idempotency_key",
    # Ledger
    "IdempotencyLedger",
    "SupabaseLedger",
    "InMemoryLedger",
    # Provider
    "RazorpayClient",
    # Signatures
    "compute_signature",
    "verify_signature",
    "ensure_valid_signature",
    "verify_checkout_signature",
]
