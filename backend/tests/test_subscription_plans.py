"""Tests for subscription plan tiers."""

import pytest

from app.subscriptions import (
    PLAN_CONFIGS,
    SubscriptionPlan,
    get_plan_config,
    parse_plan,
    plan_for_amount,
    resolve_plan,
)


class TestPlanConfigs:
    def test_every_plan_configured(self):
        assert set(PLAN_CONFIGS) == set(SubscriptionPlan)

    def test_thresholds_below_list_price(self):
        for config in PLAN_CONFIGS.values():
            assert config.min_paid_paise <= config.price_paise

    def test_get_plan_config(self):
        assert get_plan_config(SubscriptionPlan.SUPER).price_paise == 12900


class TestPlanForAmount:
    """Tier is the highest threshold the paid amount meets."""

    @pytest.mark.parametrize(
        "amount,expected",
        [
            (0, SubscriptionPlan.FREE),
            (3999, SubscriptionPlan.FREE),
            (4000, SubscriptionPlan.WORKER_PLUS),
            (8999, SubscriptionPlan.WORKER_PLUS),
            (9000, SubscriptionPlan.PRO_POSTER),
            (11999, SubscriptionPlan.PRO_POSTER),
            (12000, SubscriptionPlan.SUPER),
            (50000, SubscriptionPlan.SUPER),
        ],
    )
    def test_thresholds(self, amount, expected):
        assert plan_for_amount(amount) == expected


class TestParsePlan:
    def test_case_insensitive(self):
        assert parse_plan(" worker_plus ") == SubscriptionPlan.WORKER_PLUS

    def test_unknown_or_empty(self):
        assert parse_plan("GOLD") is None
        assert parse_plan(None) is None
        assert parse_plan("") is None


class TestResolvePlan:
    def test_amount_wins_over_request(self):
        assert resolve_plan(9900, "SUPER") == SubscriptionPlan.PRO_POSTER

    def test_request_used_without_amount(self):
        assert resolve_plan(None, "SUPER") == SubscriptionPlan.SUPER

    def test_free_is_not_a_paid_plan(self):
        assert resolve_plan(100, "SUPER") is None
        assert resolve_plan(None, "FREE") is None
        assert resolve_plan(None, None) is None
