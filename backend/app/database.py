"""Database utilities for Supabase integration."""

from typing import Annotated, Any

from fastapi import Depends

from supabase import Client, create_client

from .config import Settings, get_settings

_supabase_client: Client | None = None


def get_supabase_client(settings: Settings | None = None) -> Client:
    """Get cached Supabase client."""
    global _supabase_client
    if _supabase_client is None:
        if settings is None:
            settings = get_settings()
        # Prefer new secret key, fall back to legacy service_role_key
        api_key = settings.supabase_secret_key or settings.supabase_service_role_key
        if not api_key:
            raise ValueError("Either SUPABASE_SECRET_KEY or SUPABASE_SERVICE_ROLE_KEY must be set")
        _supabase_client = create_client(settings.supabase_url, api_key)
    return _supabase_client


def get_db(settings: Annotated[Settings, Depends(get_settings)]) -> Client:
    """FastAPI dependency for Supabase client."""
    return get_supabase_client(settings)


# Type alias for dependency injection
Database = Annotated[Client, Depends(get_db)]


# =============================================================================
# Table Names
# =============================================================================

JOBS_TABLE = "jobs"
BIDS_TABLE = "bids"
CHAT_MESSAGES_TABLE = "chat_messages"
PROCESSED_PAYMENT_EVENTS_TABLE = "processed_payment_events"
NOTIFICATIONS_TABLE = "notifications"


# =============================================================================
# Helpers
# =============================================================================


def rpc(db: Client, name: str, params: dict[str, Any] | None = None) -> Any:
    """Call a Postgres function and return its data."""
    result = db.rpc(name, params or {}).execute()
    return result.data


def first_row(data: Any) -> dict | None:
    """Normalise RPC output that may be a row, a list of rows or empty."""
    if isinstance(data, list):
        return data[0] if data else None
    return data or None
