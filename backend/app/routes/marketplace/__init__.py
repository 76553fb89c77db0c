"""Marketplace API routes."""

from .chat import router as chat_router
from .inbox import router as inbox_router
from .jobs import router as jobs_router

__all__ = ["jobs_router", "chat_router", "inbox_router"]
