"""FastAPI dependencies for marketplace services."""

from typing import Annotated

from fastapi import Depends

from chowkar.marketplace.negotiation import NegotiationService

from ..database import Database
from .notifications import review_prompt_hook
from .storage import SupabaseBidStorage


def get_negotiation_service(db: Database) -> NegotiationService:
    """Negotiation service persisting through Supabase RPCs."""
    return NegotiationService(
        SupabaseBidStorage(db),
        on_review_prompt=review_prompt_hook(db),
    )


# Type alias for dependency injection
Negotiation = Annotated[NegotiationService, Depends(get_negotiation_service)]
