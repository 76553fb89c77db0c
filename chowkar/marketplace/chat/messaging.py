"""
Chat messages and realtime message events.

Message ids are minted on the client before sending and become the durable
row id, so an optimistic local copy and the server's broadcast of the same
message are one record.
"""

import uuid
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

from chowkar.marketplace.chat.gate import resolve_receiver
from chowkar.marketplace.negotiation.models import Job, now_ms, to_epoch_ms

DELETED_MESSAGE_TEXT = "This message was deleted"
MESSAGES_PER_PAGE = 50


@dataclass(frozen=True)
class ChatMessage:
    """A message in a job's chat thread."""

    id: str
    job_id: str
    sender_id: str
    receiver_id: str
    text: str
    timestamp: int
    is_deleted: bool = False
    read: bool = False
    translated_text: Optional[str] = None

    @property
    def display_text(self) -> str:
        return DELETED_MESSAGE_TEXT if self.is_deleted else self.text

    def to_row(self) -> dict:
        """Convert to a ``chat_messages`` insert row."""
        return {
            "id": self.id,
            "job_id": self.job_id,
            "sender_id": self.sender_id,
            "receiver_id": self.receiver_id,
            "text": self.text,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "job_id": self.job_id,
            "sender_id": self.sender_id,
            "receiver_id": self.receiver_id,
            "text": self.display_text,
            "timestamp": self.timestamp,
            "is_deleted": self.is_deleted,
            "read": self.read,
            "translated_text": self.translated_text,
        }

    @classmethod
    def from_row(cls, row: dict) -> "ChatMessage":
        """Create a message from a ``chat_messages`` row."""
        return cls(
            id=str(row["id"]),
            job_id=row["job_id"],
            sender_id=row["sender_id"],
            receiver_id=row.get("receiver_id") or "",
            text=row.get("text") or "",
            timestamp=to_epoch_ms(row.get("created_at")),
            is_deleted=bool(row.get("is_deleted", False)),
            read=bool(row.get("read", False)),
            translated_text=row.get("translated_text"),
        )


def compose_message(
    job: Job,
    sender_id: str,
    text: str,
    receiver_id: Optional[str] = None,
    client_id: Optional[str] = None,
) -> ChatMessage:
    """Build an outgoing message with a client-generated id.

    The receiver is resolved from the job when not given.

    Raises:
        ValueError: If the text is blank
        ReceiverUnresolvedError: If no receiver can be derived
    """
    if not text or not text.strip():
        raise ValueError("Message text must not be empty")
    return ChatMessage(
        id=client_id or str(uuid.uuid4()),
        job_id=job.id,
        sender_id=sender_id,
        receiver_id=receiver_id or resolve_receiver(job, sender_id),
        text=text,
        timestamp=now_ms(),
    )


def merge_message(messages: list[ChatMessage], incoming: ChatMessage) -> list[ChatMessage]:
    """Upsert ``incoming`` by id, keeping chronological order."""
    merged = [m for m in messages if m.id != incoming.id]
    merged.append(incoming)
    merged.sort(key=lambda m: m.timestamp)
    return merged


class MessageEventType(str, Enum):
    """Change type carried by the realtime message stream."""

    INSERT = "INSERT"
    UPDATE = "UPDATE"


@dataclass(frozen=True)
class MessageEvent:
    """A live insert or update of a chat message."""

    type: MessageEventType
    job_id: str
    sender_id: str
    text: str
    timestamp: int
    is_deleted: bool = False
    read: bool = False
    message_id: Optional[str] = None

    @property
    def display_text(self) -> str:
        return DELETED_MESSAGE_TEXT if self.is_deleted else self.text

    @classmethod
    def from_payload(cls, payload: dict) -> Optional["MessageEvent"]:
        """Parse a ``postgres_changes`` payload for ``chat_messages``.

        Returns None for deletes or payloads without a new row.
        """
        event_type = str(payload.get("eventType") or payload.get("type") or "").upper()
        if event_type not in MessageEventType.__members__:
            return None
        row = payload.get("new") or payload.get("record")
        if not row or not row.get("job_id"):
            return None
        return cls(
            type=MessageEventType(event_type),
            job_id=row["job_id"],
            sender_id=row.get("sender_id") or "",
            text=row.get("text") or "",
            timestamp=to_epoch_ms(row.get("created_at")),
            is_deleted=bool(row.get("is_deleted", False)),
            read=bool(row.get("read", False)),
            message_id=str(row["id"]) if row.get("id") is not None else None,
        )

    def as_message(self, receiver_id: str = "") -> ChatMessage:
        """The message this event describes."""
        return ChatMessage(
            id=self.message_id or "",
            job_id=self.job_id,
            sender_id=self.sender_id,
            receiver_id=receiver_id,
            text=self.text,
            timestamp=self.timestamp,
            is_deleted=self.is_deleted,
            read=self.read,
        )


def mark_deleted(message: ChatMessage) -> ChatMessage:
    """Soft-delete a message; the row stays, its text is hidden."""
    return replace(message, is_deleted=True, translated_text=None)
