"""Tests for the payment idempotency gate."""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.payments import (
    AuthenticationError,
    ConfigurationError,
    EffectKind,
    InMemoryLedger,
    MalformedEventError,
    OrderOwnershipError,
    PaymentEvent,
    PaymentGate,
    UpstreamError,
    build_effect,
    compute_signature,
    parse_webhook,
    resolve_idempotency_key,
)
from app.subscriptions import SubscriptionPlan

SECRET = "whsec_unit"
KEY_SECRET = "rzp_secret_unit"


def _webhook(
    notes=None,
    payment_id="pay_1",
    order_id="order_1",
    amount=10000,
    event="order.paid",
):
    payload = {"event": event, "payload": {"order": {"entity": {"id": order_id, "amount": amount, "notes": notes or {}}}}}
    if payment_id:
        payload["payload"]["payment"] = {"entity": {"id": payment_id, "order_id": order_id, "amount": amount}}
    return payload


def _body(payload) -> bytes:
    return json.dumps(payload).encode()


@pytest.fixture
def ledger():
    return InMemoryLedger()


@pytest.fixture
def gate(ledger):
    return PaymentGate(ledger, webhook_secret=SECRET)


class TestPaymentEvent:
    def test_notes_from_order(self):
        event = parse_webhook(_webhook({"userId": "u1", "coins": "50"}), "evt_1")
        assert event.kind == EffectKind.COINS
        assert event.user_id == "u1"
        assert event.coins == 50
        assert event.payment_id == "pay_1"
        assert event.event_id == "evt_1"
        assert event.amount_paise == 10000

    def test_notes_fall_back_to_payment(self):
        payload = _webhook()
        payload["payload"]["order"]["entity"]["notes"] = []
        payload["payload"]["payment"]["entity"]["notes"] = {"userId": "u1", "type": "premium"}
        event = parse_webhook(payload, "evt_1")
        assert event.kind == EffectKind.PREMIUM
        assert event.user_id == "u1"

    def test_unknown_type_malformed(self):
        with pytest.raises(MalformedEventError):
            parse_webhook(_webhook({"userId": "u1", "type": "gift"}), "evt_1")

    def test_non_numeric_coins_malformed(self):
        with pytest.raises(MalformedEventError):
            parse_webhook(_webhook({"userId": "u1", "coins": "lots"}), "evt_1")

    def test_ignored_event_types(self):
        assert parse_webhook(_webhook(event="payment.failed"), "evt_1") is None
        assert parse_webhook({"event": "payment.captured"}, "evt_1") is None

    def test_missing_entities_malformed(self):
        with pytest.raises(MalformedEventError):
            parse_webhook({"event": "order.paid"}, "evt_1")
        with pytest.raises(MalformedEventError):
            parse_webhook({"event": "order.paid", "payload": {}}, "evt_1")


class TestIdempotencyKey:
    def test_payment_id_preferred(self):
        event = PaymentEvent(event_type="order.paid", kind=EffectKind.COINS, payment_id="pay_1", event_id="evt_1")
        assert resolve_idempotency_key(event) == "pay_1"

    def test_event_id_fallback(self):
        event = PaymentEvent(event_type="order.paid", kind=EffectKind.COINS, event_id="evt_1")
        assert resolve_idempotency_key(event) == "evt_1"

    def test_neither_malformed(self):
        with pytest.raises(MalformedEventError):
            resolve_idempotency_key(PaymentEvent(event_type="order.paid", kind=EffectKind.COINS))


class TestBuildEffect:
    """Effects derive from order notes and the paid amount."""

    def _event(self, **kwargs):
        defaults = {"event_type": "order.paid", "kind": EffectKind.COINS, "user_id": "u1", "order_id": "order_1"}
        defaults.update(kwargs)
        return PaymentEvent(**defaults)

    def test_coin_credit(self):
        effect = build_effect(self._event(coins=50))
        assert (effect.kind, effect.user_id, effect.coins) == (EffectKind.COINS, "u1", 50)

    def test_missing_user(self):
        with pytest.raises(MalformedEventError):
            build_effect(self._event(user_id=None, coins=50))

    def test_zero_coins(self):
        with pytest.raises(MalformedEventError):
            build_effect(self._event(coins=0))

    def test_missing_order_id_defaults(self):
        assert build_effect(self._event(order_id=None, coins=1)).order_id == "unknown"

    @pytest.mark.parametrize(
        "amount,expected",
        [
            (12900, SubscriptionPlan.SUPER),
            (12000, SubscriptionPlan.SUPER),
            (9900, SubscriptionPlan.PRO_POSTER),
            (4900, SubscriptionPlan.WORKER_PLUS),
        ],
    )
    def test_premium_tier_from_amount(self, amount, expected):
        effect = build_effect(self._event(kind=EffectKind.PREMIUM, amount_paise=amount))
        assert effect.plan == expected

    def test_paid_amount_beats_requested_plan(self):
        effect = build_effect(self._event(kind=EffectKind.PREMIUM, amount_paise=4900, plan_id="SUPER"))
        assert effect.plan == SubscriptionPlan.WORKER_PLUS

    def test_requested_plan_used_without_amount(self):
        effect = build_effect(self._event(kind=EffectKind.PREMIUM, plan_id="pro_poster"))
        assert effect.plan == SubscriptionPlan.PRO_POSTER

    def test_premium_below_cheapest_tier(self):
        with pytest.raises(MalformedEventError):
            build_effect(self._event(kind=EffectKind.PREMIUM, amount_paise=100))


class TestApply:
    """At-most-once application."""

    @pytest.mark.asyncio
    async def test_redelivery_applies_once(self, gate, ledger):
        body = _body(_webhook({"userId": "u1", "coins": 50}))
        signature = compute_signature(body, SECRET)

        first = await gate.handle_webhook(body, signature, "evt_1")
        second = await gate.handle_webhook(body, signature, "evt_2")

        assert first.applied and not first.duplicate
        assert second.duplicate
        assert first.key == second.key == "pay_1"
        assert ledger.balances == {"u1": 50}

    @pytest.mark.asyncio
    async def test_concurrent_deliveries_apply_once(self, gate, ledger):
        body = _body(_webhook({"userId": "u1", "coins": 50}))
        signature = compute_signature(body, SECRET)
        results = await asyncio.gather(
            *(gate.handle_webhook(body, signature, f"evt_{i}") for i in range(5))
        )
        assert sum(1 for r in results if r.applied) == 1
        assert ledger.balances == {"u1": 50}

    @pytest.mark.asyncio
    async def test_premium_activation(self, gate, ledger):
        body = _body(_webhook({"userId": "u1", "type": "premium", "planId": "PRO_POSTER"}, amount=9900))
        result = await gate.handle_webhook(body, compute_signature(body, SECRET), "evt_1")
        assert result.effect.plan == SubscriptionPlan.PRO_POSTER
        assert ledger.plans == {"u1": "PRO_POSTER"}
        assert ledger.balances == {}

    @pytest.mark.asyncio
    async def test_ledger_collapse_reported_as_duplicate(self):
        ledger = MagicMock()
        ledger.has_applied = AsyncMock(return_value=False)
        ledger.record_and_apply = AsyncMock(return_value=False)
        gate = PaymentGate(ledger, webhook_secret=SECRET)
        event = parse_webhook(_webhook({"userId": "u1", "coins": 5}), "evt_1")
        result = await gate.apply(event, "pay_1")
        assert result.duplicate

    @pytest.mark.asyncio
    async def test_ledger_failure_is_upstream_error(self):
        ledger = MagicMock()
        ledger.has_applied = AsyncMock(side_effect=ConnectionError("db down"))
        gate = PaymentGate(ledger, webhook_secret=SECRET)
        event = parse_webhook(_webhook({"userId": "u1", "coins": 5}), "evt_1")
        with pytest.raises(UpstreamError):
            await gate.apply(event, "pay_1")

    @pytest.mark.asyncio
    async def test_malformed_event_never_reaches_ledger(self):
        ledger = MagicMock()
        ledger.has_applied = AsyncMock()
        gate = PaymentGate(ledger, webhook_secret=SECRET)
        event = parse_webhook(_webhook({"coins": 5}), "evt_1")
        with pytest.raises(MalformedEventError):
            await gate.apply(event, "pay_1")
        ledger.has_applied.assert_not_awaited()


class TestHandleWebhook:
    @pytest.mark.asyncio
    async def test_bad_signature_checked_first(self, gate, ledger):
        with pytest.raises(AuthenticationError):
            await gate.handle_webhook(b"not json", "0" * 64, None)
        assert ledger.applied == {}

    @pytest.mark.asyncio
    async def test_missing_signature(self, gate):
        with pytest.raises(AuthenticationError):
            await gate.handle_webhook(_body(_webhook()), None, "evt_1")

    @pytest.mark.asyncio
    async def test_missing_secret(self, ledger):
        gate = PaymentGate(ledger)
        body = _body(_webhook())
        with pytest.raises(ConfigurationError):
            await gate.handle_webhook(body, compute_signature(body, SECRET), "evt_1")

    @pytest.mark.asyncio
    async def test_missing_event_id(self, gate):
        body = _body(_webhook({"userId": "u1", "coins": 5}))
        with pytest.raises(ConfigurationError):
            await gate.handle_webhook(body, compute_signature(body, SECRET), None)

    @pytest.mark.asyncio
    async def test_invalid_json(self, gate):
        body = b"{not json"
        with pytest.raises(MalformedEventError):
            await gate.handle_webhook(body, compute_signature(body, SECRET), "evt_1")

    @pytest.mark.asyncio
    async def test_non_object_json(self, gate):
        body = b"[1, 2]"
        with pytest.raises(MalformedEventError):
            await gate.handle_webhook(body, compute_signature(body, SECRET), "evt_1")

    @pytest.mark.asyncio
    async def test_ignored_event_acknowledged(self, gate, ledger):
        body = _body(_webhook(event="payment.authorized"))
        assert await gate.handle_webhook(body, compute_signature(body, SECRET), "evt_1") is None
        assert ledger.applied == {}

    @pytest.mark.asyncio
    async def test_event_id_key_without_payment(self, gate, ledger):
        body = _body(_webhook({"userId": "u1", "coins": 5}, payment_id=None))
        result = await gate.handle_webhook(body, compute_signature(body, SECRET), "evt_9")
        assert result.key == "evt_9"


class TestVerifyCheckout:
    """Direct verification shares the payment id key with the webhook."""

    def _gate(self, ledger, order):
        provider = MagicMock()
        provider.fetch_order = AsyncMock(return_value=order)
        return PaymentGate(ledger, webhook_secret=SECRET, key_secret=KEY_SECRET, provider=provider)

    @pytest.mark.asyncio
    async def test_credits_once_across_both_paths(self, ledger):
        order = {"id": "order_1", "amount": 10000, "notes": {"userId": "u1", "coins": "50"}}
        gate = self._gate(ledger, order)
        signature = compute_signature("order_1|pay_1", KEY_SECRET)

        direct = await gate.verify_checkout("order_1", "pay_1", signature, "u1")
        assert direct.applied

        body = _body(_webhook({"userId": "u1", "coins": 50}))
        webhook = await gate.handle_webhook(body, compute_signature(body, SECRET), "evt_1")
        assert webhook.duplicate
        assert ledger.balances == {"u1": 50}

    @pytest.mark.asyncio
    async def test_bad_signature_skips_provider(self, ledger):
        gate = self._gate(ledger, {})
        with pytest.raises(AuthenticationError):
            await gate.verify_checkout("order_1", "pay_1", "0" * 64, "u1")
        gate.provider.fetch_order.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_order_of_other_user_rejected(self, ledger):
        order = {"id": "order_1", "amount": 10000, "notes": {"userId": "u2", "coins": "50"}}
        gate = self._gate(ledger, order)
        signature = compute_signature("order_1|pay_1", KEY_SECRET)
        with pytest.raises(OrderOwnershipError):
            await gate.verify_checkout("order_1", "pay_1", signature, "u1")
        assert ledger.applied == {}

    @pytest.mark.asyncio
    async def test_unconfigured(self, ledger):
        gate = PaymentGate(ledger, webhook_secret=SECRET)
        with pytest.raises(ConfigurationError):
            await gate.verify_checkout("order_1", "pay_1", "sig", "u1")
