"""Subscription plans for Chowkar.

Amounts are integer paise (1 INR = 100 paise). The tier a payment buys is
derived from the amount actually paid, never from a client-supplied field.
"""

from enum import Enum

from pydantic import BaseModel


# =============================================================================
# Enums
# =============================================================================


class SubscriptionPlan(str, Enum):
    """Available subscription plans."""

    FREE = "FREE"
    WORKER_PLUS = "WORKER_PLUS"
    PRO_POSTER = "PRO_POSTER"
    SUPER = "SUPER"


# =============================================================================
# Plan Configuration
# =============================================================================


class PlanConfig(BaseModel):
    """Static configuration for a plan."""

    plan: SubscriptionPlan
    price_paise: int
    # Smallest paid amount that buys this plan (allows for discounts/fees)
    min_paid_paise: int

    class Config:
        frozen = True


# Canonical plan definitions, highest tier first
PLAN_CONFIGS: dict[SubscriptionPlan, PlanConfig] = {
    SubscriptionPlan.SUPER: PlanConfig(
        plan=SubscriptionPlan.SUPER,
        price_paise=12900,
        min_paid_paise=12000,
    ),
    SubscriptionPlan.PRO_POSTER: PlanConfig(
        plan=SubscriptionPlan.PRO_POSTER,
        price_paise=9900,
        min_paid_paise=9000,
    ),
    SubscriptionPlan.WORKER_PLUS: PlanConfig(
        plan=SubscriptionPlan.WORKER_PLUS,
        price_paise=4900,
        min_paid_paise=4000,
    ),
    SubscriptionPlan.FREE: PlanConfig(
        plan=SubscriptionPlan.FREE,
        price_paise=0,
        min_paid_paise=0,
    ),
}


def get_plan_config(plan: SubscriptionPlan) -> PlanConfig:
    """Look up the config for a plan. Raises KeyError for unknown plans."""
    return PLAN_CONFIGS[plan]


def plan_for_amount(amount_paise: int) -> SubscriptionPlan:
    """Highest plan whose threshold ``amount_paise`` meets; FREE below all."""
    for config in PLAN_CONFIGS.values():
        if config.plan != SubscriptionPlan.FREE and amount_paise >= config.min_paid_paise:
            return config.plan
    return SubscriptionPlan.FREE


def parse_plan(value: str | None) -> SubscriptionPlan | None:
    """Parse a plan id from order notes. Unknown values give None."""
    if not value:
        return None
    try:
        return SubscriptionPlan(value.strip().upper())
    except ValueError:
        return None


def resolve_plan(amount_paise: int | None, requested: str | None) -> SubscriptionPlan | None:
    """Plan to activate for a premium payment.

    The amount-derived tier wins whenever the paid amount is known; the
    requested plan id is only consulted when it is not. Returns None when
    neither yields a paid plan.
    """
    if amount_paise is not None:
        plan = plan_for_amount(amount_paise)
    else:
        plan = parse_plan(requested)
    if plan is None or plan == SubscriptionPlan.FREE:
        return None
    return plan
