"""API routes."""

from .marketplace import chat_router, inbox_router, jobs_router
from .payments import router as payments_router

__all__ = [
    "jobs_router",
    "chat_router",
    "inbox_router",
    "payments_router",
]
