"""Chat subsystem: session gate and message model."""

from chowkar.marketplace.chat.gate import (
    AuthDecision,
    ChatAvailability,
    can_open_chat,
    require_chat_access,
    resolve_receiver,
)
from chowkar.marketplace.chat.messaging import (
    DELETED_MESSAGE_TEXT,
    MESSAGES_PER_PAGE,
    ChatMessage,
    MessageEvent,
    MessageEventType,
    compose_message,
    mark_deleted,
    merge_message,
)

__all__ = [
    # Gate
    "AuthDecision",
    "ChatAvailability",
    "can_open_chat",
    "require_chat_access",
    "resolve_receiver",
    # Messaging
    "ChatMessage",
    "MessageEvent",
    "MessageEventType",
    "compose_message",
    "merge_message",
    "mark_deleted",
    "DELETED_MESSAGE_TEXT",
    "MESSAGES_PER_PAGE",
]
