"""
Inbox data models.

An inbox holds one :class:`InboxChatSummary` per job the user takes part in,
as returned by the bulk ``get_inbox_summaries`` RPC.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from chowkar.marketplace.negotiation.models import (
    TERMINAL_JOB_STATUSES,
    JobStatus,
    to_epoch_ms,
)


class InboxTab(str, Enum):
    """Role filter for the inbox list."""

    ALL = "all"
    AS_WORKER = "as_worker"
    AS_POSTER = "as_poster"


class InboxEntryState(str, Enum):
    """Visibility state of an inbox entry."""

    ACTIVE = "active"
    ARCHIVED = "archived"
    DELETED = "deleted"  # terminal


@dataclass(frozen=True)
class Counterpart:
    """The other party of a conversation."""

    id: str
    name: str = ""
    photo: Optional[str] = None
    rating: Optional[float] = None


@dataclass(frozen=True)
class LastMessage:
    """Snapshot of the most recent message in a conversation."""

    text: str
    timestamp: int
    sender_id: str
    is_read: bool = False


@dataclass(frozen=True)
class InboxChatSummary:
    """Preview of one job's conversation."""

    job_id: str
    job_title: str
    job_status: JobStatus
    poster_id: str
    counterpart: Counterpart
    last_message: Optional[LastMessage] = None
    unread_count: int = 0
    is_archived: Optional[bool] = None  # None: server has no explicit flag
    is_deleted: bool = False

    @property
    def sort_key(self) -> int:
        return self.last_message.timestamp if self.last_message else 0

    @property
    def job_is_terminal(self) -> bool:
        return self.job_status in TERMINAL_JOB_STATUSES

    def is_poster(self, user_id: str) -> bool:
        return (self.poster_id or "").lower() == (user_id or "").lower()

    def to_dict(self) -> dict[str, Any]:
        last = self.last_message
        return {
            "job_id": self.job_id,
            "job_title": self.job_title,
            "job_status": self.job_status.value,
            "poster_id": self.poster_id,
            "counterpart_id": self.counterpart.id,
            "counterpart_name": self.counterpart.name,
            "counterpart_photo": self.counterpart.photo,
            "counterpart_rating": self.counterpart.rating,
            "last_message_text": last.text if last else None,
            "last_message_time": last.timestamp if last else None,
            "last_message_sender_id": last.sender_id if last else None,
            "last_message_is_read": last.is_read if last else None,
            "unread_count": self.unread_count,
            "is_archived": self.is_archived,
            "is_deleted": self.is_deleted,
        }

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "InboxChatSummary":
        """Create from a ``get_inbox_summaries`` row."""
        last = None
        if row.get("last_message_time") is not None:
            last = LastMessage(
                text=row.get("last_message_text") or "",
                timestamp=to_epoch_ms(row["last_message_time"]),
                sender_id=row.get("last_message_sender_id") or "",
                is_read=bool(row.get("last_message_is_read", False)),
            )
        rating = row.get("counterpart_rating")
        return cls(
            job_id=row["job_id"],
            job_title=row.get("job_title") or "",
            job_status=JobStatus(str(row.get("job_status") or JobStatus.OPEN.value).upper()),
            poster_id=row.get("poster_id") or "",
            counterpart=Counterpart(
                id=row.get("counterpart_id") or "",
                name=row.get("counterpart_name") or "",
                photo=row.get("counterpart_photo"),
                rating=float(rating) if rating is not None else None,
            ),
            last_message=last,
            unread_count=int(row.get("unread_count") or 0),
            is_archived=row.get("is_archived"),
            is_deleted=bool(row.get("is_deleted", False)),
        )


@dataclass
class OverlayState:
    """Local archive/delete flags applied on top of server data.

    Cleared on every successful bulk load.
    """

    archived: set[str] = field(default_factory=set)
    unarchived: set[str] = field(default_factory=set)
    deleted: set[str] = field(default_factory=set)

    def clear(self) -> None:
        self.archived.clear()
        self.unarchived.clear()
        self.deleted.clear()


@dataclass(frozen=True)
class Notification:
    """An in-app notification, used for live unread counts."""

    id: str
    job_id: Optional[str] = None
    read: bool = False

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Notification":
        return cls(
            id=str(row["id"]),
            job_id=row.get("related_job_id") or row.get("job_id"),
            read=bool(row.get("read", False)),
        )
