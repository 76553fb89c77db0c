"""Subscription plans for Chowkar premium."""

from .models import (
    PLAN_CONFIGS,
    PlanConfig,
    SubscriptionPlan,
    get_plan_config,
    parse_plan,
    plan_for_amount,
    resolve_plan,
)

__all__ = [
    # Enums
    "SubscriptionPlan",
    # Config
    "PlanConfig",
    "PLAN_CONFIGS",
    "get_plan_config",
    # Derivation
    "plan_for_amount",
    "parse_plan",
    "resolve_plan",
]
