"""
Inbox reconciliation.

Models:
- InboxChatSummary: Preview of one job's conversation
- InboxTab / InboxEntryState: Role filter and visibility state

Engine:
- InboxEngine: Bulk load, live events, overlays and unread counts
- InboxClient: HTTP backend for the engine
"""

from chowkar.marketplace.errors import InboxActionError
from chowkar.marketplace.inbox.client import InboxClient
from chowkar.marketplace.inbox.engine import (
    PREFETCH_INTERVAL_SECONDS,
    PREFETCH_LIMIT,
    RELOAD_DEBOUNCE_SECONDS,
    InboxBackend,
    InboxEngine,
)
from chowkar.marketplace.inbox.models import (
    Counterpart,
    InboxChatSummary,
    InboxEntryState,
    InboxTab,
    LastMessage,
    Notification,
    OverlayState,
)

__all__ = [
    # Models
    "Counterpart",
    "InboxChatSummary",
    "InboxEntryState",
    "InboxTab",
    "LastMessage",
    "Notification",
    "OverlayState",
    # Engine
    "InboxBackend",
    "InboxEngine",
    "InboxClient",
    "InboxActionError",
    "RELOAD_DEBOUNCE_SECONDS",
    "PREFETCH_LIMIT",
    "PREFETCH_INTERVAL_SECONDS",
]
