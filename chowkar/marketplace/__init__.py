"""
Marketplace core.

Subpackages:
- negotiation: Bid lifecycle state machine, service and storage
- chat: Chat session gate and messages
- inbox: Inbox reconciliation engine
"""

from chowkar.marketplace.errors import (
    BidNotFoundError,
    ChatUnavailableError,
    InboxActionError,
    InvalidStateError,
    JobNotFoundError,
    MarketplaceError,
    NotAParticipantError,
    ReceiverUnresolvedError,
    UnauthorizedError,
    UpstreamError,
)

__all__ = [
    "MarketplaceError",
    "InvalidStateError",
    "UnauthorizedError",
    "JobNotFoundError",
    "BidNotFoundError",
    "ChatUnavailableError",
    "NotAParticipantError",
    "ReceiverUnresolvedError",
    "UpstreamError",
    "InboxActionError",
]
