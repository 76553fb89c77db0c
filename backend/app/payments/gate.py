"""Payment idempotency gate.

Turns a verified provider notification into exactly one credit or plan
activation. The idempotency key is the payment id when present (shared by
the webhook and the direct checkout verification path, so the two collapse)
and the provider event id otherwise.
"""

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from ..subscriptions.models import SubscriptionPlan, resolve_plan
from .errors import (
    AuthenticationError,
    ConfigurationError,
    MalformedEventError,
    OrderOwnershipError,
    PaymentError,
    UpstreamError,
)
from .ledger import IdempotencyLedger
from .provider import RazorpayClient
from .verification import ensure_valid_signature, verify_checkout_signature

logger = logging.getLogger(__name__)

PROCESSED_EVENT_TYPES = frozenset({"order.paid"})


class EffectKind(str, Enum):
    """What a payment buys, from the order's ``type`` note."""

    COINS = "coins"
    PREMIUM = "premium"


@dataclass(frozen=True)
class PaymentEvent:
    """A paid order, from a webhook or a direct checkout verification."""

    event_type: str
    kind: EffectKind
    user_id: Optional[str] = None
    order_id: Optional[str] = None
    payment_id: Optional[str] = None
    event_id: Optional[str] = None
    coins: int = 0
    amount_paise: Optional[int] = None
    plan_id: Optional[str] = None
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_order(
        cls,
        order: dict[str, Any],
        payment_id: str,
        *,
        event_type: str = "order.paid",
        event_id: Optional[str] = None,
        payment: Optional[dict[str, Any]] = None,
        raw: Optional[dict[str, Any]] = None,
    ) -> "PaymentEvent":
        """Build from provider order (and optional payment) entities.

        Raises:
            MalformedEventError: If notes carry an unknown type or bad numbers
        """
        payment = payment or {}
        notes = _notes(order) or _notes(payment)

        type_note = str(notes.get("type") or EffectKind.COINS.value).lower()
        try:
            kind = EffectKind(type_note)
        except ValueError:
            raise MalformedEventError(f"Unknown payment type: {type_note}")

        amount = payment.get("amount")
        if amount is None:
            amount = order.get("amount_paid") or order.get("amount")

        return cls(
            event_type=event_type,
            kind=kind,
            user_id=notes.get("userId"),
            order_id=order.get("id") or payment.get("order_id"),
            payment_id=payment_id or payment.get("id"),
            event_id=event_id,
            coins=_as_int(notes.get("coins"), "coins") or 0,
            amount_paise=_as_int(amount, "amount"),
            plan_id=notes.get("planId"),
            raw=raw if raw is not None else {},
        )


@dataclass(frozen=True)
class PaymentEffect:
    """The balance credit or plan activation an event entitles the user to."""

    kind: EffectKind
    user_id: str
    order_id: str
    coins: int = 0
    plan: Optional[SubscriptionPlan] = None


@dataclass(frozen=True)
class ApplyResult:
    """Outcome of :meth:`PaymentGate.apply`."""

    key: str
    applied: bool  # False when the key had already been recorded
    effect: PaymentEffect

    @property
    def duplicate(self) -> bool:
        return not self.applied

    def to_dict(self) -> dict[str, Any]:
        return {
            "received": True,
            "idempotency_key": self.key,
            "applied": self.applied,
            "duplicate": self.duplicate,
            "kind": self.effect.kind.value,
            "coins": self.effect.coins,
            "plan": self.effect.plan.value if self.effect.plan else None,
        }


def _notes(entity: dict[str, Any]) -> dict[str, Any]:
    # The provider sends an empty list when an entity has no notes.
    notes = entity.get("notes")
    return notes if isinstance(notes, dict) else {}


def _as_int(value: Any, name: str) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise MalformedEventError(f"Invalid {name}: {value!r}")


# =============================================================================
# Pure helpers
# =============================================================================


def resolve_idempotency_key(event: PaymentEvent) -> str:
    """Payment id if present, else the provider event id.

    Raises:
        MalformedEventError: If neither is available
    """
    key = event.payment_id or event.event_id
    if not key:
        raise MalformedEventError("Event has neither a payment id nor an event id")
    return key


def parse_webhook(payload: dict[str, Any], header_event_id: Optional[str]) -> Optional[PaymentEvent]:
    """Extract a :class:`PaymentEvent` from a webhook body.

    Returns None for event types that are acknowledged but not processed.
    """
    event_type = payload.get("event")
    if event_type not in PROCESSED_EVENT_TYPES:
        return None

    body = payload.get("payload")
    if not isinstance(body, dict):
        raise MalformedEventError("Webhook payload is missing")
    order = (body.get("order") or {}).get("entity") or {}
    payment = (body.get("payment") or {}).get("entity") or {}
    if not order and not payment:
        raise MalformedEventError("Webhook payload has no order or payment entity")

    return PaymentEvent.from_order(
        order,
        payment.get("id"),
        event_type=event_type,
        event_id=header_event_id,
        payment=payment,
        raw=payload,
    )


def build_effect(event: PaymentEvent) -> PaymentEffect:
    """Derive the effect an event entitles its user to.

    Raises:
        MalformedEventError: Missing user id, no positive coin count for a
            coin purchase, or no resolvable plan for a premium purchase
    """
    if not event.user_id:
        raise MalformedEventError("Missing userId in order notes")
    order_id = event.order_id or "unknown"

    if event.kind == EffectKind.PREMIUM:
        plan = resolve_plan(event.amount_paise, event.plan_id)
        if plan is None:
            raise MalformedEventError(
                f"No plan for premium payment (amount={event.amount_paise}, plan={event.plan_id})"
            )
        if event.plan_id and event.plan_id.upper() != plan.value:
            logger.warning(
                f"Requested plan {event.plan_id} differs from paid tier {plan.value} "
                f"for order {order_id}; using paid tier"
            )
        return PaymentEffect(kind=EffectKind.PREMIUM, user_id=event.user_id, order_id=order_id, plan=plan)

    if event.coins <= 0:
        raise MalformedEventError("Missing or non-positive coins in order notes")
    return PaymentEffect(kind=EffectKind.COINS, user_id=event.user_id, order_id=order_id, coins=event.coins)


# =============================================================================
# Gate
# =============================================================================


class PaymentGate:
    """Verifies payment notifications and applies each one at most once.

    Args:
        ledger: Atomic check-and-record store
        webhook_secret: Secret the provider signs webhooks with
        key_secret: API key secret that signs checkout callbacks
        provider: Client for authoritative order lookups
    """

    def __init__(
        self,
        ledger: IdempotencyLedger,
        webhook_secret: Optional[str] = None,
        key_secret: Optional[str] = None,
        provider: Optional[RazorpayClient] = None,
    ):
        self.ledger = ledger
        self.webhook_secret = webhook_secret
        self.key_secret = key_secret
        self.provider = provider

    async def apply(self, event: PaymentEvent, key: str) -> ApplyResult:
        """Apply an event's effect unless ``key`` was already recorded.

        Raises:
            MalformedEventError: If the event lacks required metadata
            UpstreamError: If the ledger call fails (not retried here)
        """
        effect = build_effect(event)
        try:
            if await self.ledger.has_applied(key):
                logger.info(f"Duplicate payment ignored | key={key} | order={effect.order_id}")
                return ApplyResult(key=key, applied=False, effect=effect)
            applied = await self.ledger.record_and_apply(key, effect, event.raw)
        except PaymentError:
            raise
        except Exception as e:
            logger.error(f"Ledger failure for key {key}: {e}")
            raise UpstreamError(f"Failed to apply payment: {e}") from e

        if applied:
            logger.info(
                f"Payment applied | key={key} | user={effect.user_id} | kind={effect.kind.value} "
                f"| coins={effect.coins} | plan={effect.plan.value if effect.plan else None}"
            )
        else:
            logger.info(f"Duplicate payment collapsed by ledger | key={key}")
        return ApplyResult(key=key, applied=applied, effect=effect)

    async def handle_webhook(
        self, raw_body: bytes, signature: Optional[str], event_id: Optional[str]
    ) -> Optional[ApplyResult]:
        """Verify and process a webhook delivery.

        Returns None for acknowledged-but-ignored event types.

        Raises:
            ConfigurationError: Webhook secret or event id header missing
            AuthenticationError: Signature missing or wrong
            MalformedEventError: Body is not a usable event
            UpstreamError: Ledger failure
        """
        ensure_valid_signature(raw_body, signature, self.webhook_secret)
        if not event_id:
            raise ConfigurationError("Missing event id header")

        try:
            payload = json.loads(raw_body)
        except ValueError as e:
            raise MalformedEventError(f"Body is not valid JSON: {e}") from e
        if not isinstance(payload, dict):
            raise MalformedEventError("Body is not a JSON object")

        event = parse_webhook(payload, event_id)
        if event is None:
            logger.info(f"Webhook acknowledged without processing | event={payload.get('event')} | id={event_id}")
            return None
        return await self.apply(event, resolve_idempotency_key(event))

    async def verify_checkout(
        self, order_id: str, payment_id: str, signature: Optional[str], user_id: str
    ) -> ApplyResult:
        """Credit a checkout the client reports, using the provider's order as truth.

        Raises:
            ConfigurationError: Key secret or provider not configured
            AuthenticationError: Signature mismatch
            OrderOwnershipError: The order belongs to someone else
            UpstreamError: Provider lookup or ledger failure
        """
        if not self.key_secret or self.provider is None:
            raise ConfigurationError("Payment provider credentials are not configured")
        if not verify_checkout_signature(order_id, payment_id, signature, self.key_secret):
            logger.warning(f"Checkout signature mismatch | order={order_id} | user={user_id}")
            raise AuthenticationError("Invalid payment signature")

        order = await self.provider.fetch_order(order_id)
        if _notes(order).get("userId") != user_id:
            logger.warning(f"Checkout user mismatch | order={order_id} | user={user_id}")
            raise OrderOwnershipError("User ID mismatch between order and request")

        event = PaymentEvent.from_order(
            order,
            payment_id,
            raw={"source": "direct_verification", "payment_id": payment_id, "order": order},
        )
        return await self.apply(event, payment_id)
