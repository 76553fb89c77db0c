"""Idempotency ledger for processed payments.

Recording the key and applying the effect happen in one atomic operation;
the ledger is the only concurrently written resource in payment handling.
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Protocol

from supabase import Client

from ..database import PROCESSED_PAYMENT_EVENTS_TABLE, first_row, rpc

if TYPE_CHECKING:
    from .gate import PaymentEffect

logger = logging.getLogger(__name__)

CREDIT_COINS_RPC = "admin_process_payment_webhook"
ACTIVATE_PREMIUM_RPC = "admin_activate_premium"


class IdempotencyLedger(Protocol):
    """Protocol for idempotency ledgers."""

    async def has_applied(self, key: str) -> bool:
        ...

    async def record_and_apply(self, key: str, effect: "PaymentEffect", raw_event: dict[str, Any]) -> bool:
        """Record ``key`` and apply ``effect`` atomically.

        Returns False if the key was recorded concurrently, in which case
        nothing was applied.
        """
        ...


def _was_duplicate(data: Any) -> bool:
    row = first_row(data)
    if not isinstance(row, dict):
        return False
    return bool(row.get("duplicate")) or row.get("status") == "duplicate"


class SupabaseLedger:
    """Ledger backed by ``processed_payment_events`` and two Postgres functions.

    Both functions insert the key into ``processed_payment_events`` and apply
    the effect in a single transaction, reporting ``{"duplicate": true}`` when
    the key already exists.
    """

    def __init__(self, db: Client):
        self.db = db

    async def has_applied(self, key: str) -> bool:
        result = (
            self.db.table(PROCESSED_PAYMENT_EVENTS_TABLE)
            .select("event_id")
            .eq("event_id", key)
            .limit(1)
            .execute()
        )
        return bool(result.data)

    async def record_and_apply(self, key: str, effect: "PaymentEffect", raw_event: dict[str, Any]) -> bool:
        from .gate import EffectKind

        if effect.kind == EffectKind.PREMIUM:
            name = ACTIVATE_PREMIUM_RPC
            params = {
                "p_event_id": key,
                "p_user_id": effect.user_id,
                "p_order_id": effect.order_id,
                "p_plan_id": effect.plan.value if effect.plan else None,
                "p_raw_event": raw_event,
            }
        else:
            name = CREDIT_COINS_RPC
            params = {
                "p_event_id": key,
                "p_user_id": effect.user_id,
                "p_amount": effect.coins,
                "p_order_id": effect.order_id,
                "p_raw_event": raw_event,
            }
        logger.debug(f"Calling {name} for key {key}")
        data = rpc(self.db, name, params)
        return not _was_duplicate(data)


class InMemoryLedger:
    """In-process ledger for tests and local development."""

    def __init__(self):
        self._lock = asyncio.Lock()
        self.applied: dict[str, "PaymentEffect"] = {}
        self.balances: dict[str, int] = {}
        self.plans: dict[str, str] = {}

    async def has_applied(self, key: str) -> bool:
        async with self._lock:
            return key in self.applied

    async def record_and_apply(self, key: str, effect: "PaymentEffect", raw_event: dict[str, Any]) -> bool:
        from .gate import EffectKind

        async with self._lock:
            if key in self.applied:
                return False
            self.applied[key] = effect
            if effect.kind == EffectKind.PREMIUM and effect.plan is not None:
                self.plans[effect.user_id] = effect.plan.value
            else:
                self.balances[effect.user_id] = self.balances.get(effect.user_id, 0) + effect.coins
            return True
