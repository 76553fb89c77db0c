"""
Negotiation data models.

Jobs own bids; bids own an append-only negotiation history. All models are
immutable so state transitions always produce new values.
"""

import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, Optional

from dateutil.parser import parse


class Role(str, Enum):
    """Party making a move in a negotiation."""

    POSTER = "POSTER"
    WORKER = "WORKER"

    @classmethod
    def parse(cls, value: "str | Role") -> "Role":
        """Parse a role, ignoring case."""
        if isinstance(value, Role):
            return value
        try:
            return cls(str(value).upper())
        except ValueError:
            raise ValueError(f"Unknown role: {value!r}")


class JobStatus(str, Enum):
    """Job lifecycle status."""

    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class BidStatus(str, Enum):
    """Bid lifecycle status."""

    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"


TERMINAL_JOB_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.CANCELLED})

# Valid job status transitions
VALID_JOB_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.OPEN: frozenset({JobStatus.IN_PROGRESS, JobStatus.CANCELLED}),
    JobStatus.IN_PROGRESS: frozenset({JobStatus.COMPLETED, JobStatus.CANCELLED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.CANCELLED: frozenset(),
}


def can_transition(from_status: JobStatus, to_status: JobStatus) -> bool:
    """Check if a job status transition is valid."""
    return to_status in VALID_JOB_TRANSITIONS.get(from_status, frozenset())


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


def to_epoch_ms(value: Any) -> int:
    """Normalise a stored timestamp (epoch ms or ISO-8601 string) to epoch ms.

    Missing values map to 0 so they sort as the oldest.
    """
    if value is None or value == "":
        return 0
    if isinstance(value, datetime):
        dt = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
        return int(dt.timestamp() * 1000)
    if isinstance(value, (int, float)):
        return int(value)
    text = str(value).strip()
    if text.lstrip("-").isdigit():
        return int(text)
    dt = parse(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


@dataclass(frozen=True)
class NegotiationEntry:
    """One move in a bid's back-and-forth."""

    amount: int
    by: Role
    timestamp: int
    agreed: bool = False
    message: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to the stored JSON shape."""
        data: dict[str, Any] = {
            "amount": self.amount,
            "by": self.by.value,
            "timestamp": self.timestamp,
            "agreed": self.agreed,
        }
        if self.message:
            data["message"] = self.message
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "NegotiationEntry":
        """Create an entry from its stored JSON shape."""
        return cls(
            amount=int(data["amount"]),
            by=Role.parse(data["by"]),
            timestamp=to_epoch_ms(data.get("timestamp")),
            agreed=bool(data.get("agreed", False)),
            message=data.get("message"),
        )


@dataclass(frozen=True)
class Bid:
    """A worker's priced offer against a job."""

    id: str
    job_id: str
    worker_id: str
    amount: int
    message: str = ""
    status: BidStatus = BidStatus.PENDING
    negotiation_history: tuple[NegotiationEntry, ...] = ()
    created_at: int = 0
    poster_id: Optional[str] = None
    worker_name: Optional[str] = None

    @property
    def is_live(self) -> bool:
        """A bid is live until it is rejected."""
        return self.status != BidStatus.REJECTED

    @property
    def last_entry(self) -> Optional[NegotiationEntry]:
        """Most recent negotiation move, if any."""
        return self.negotiation_history[-1] if self.negotiation_history else None

    @property
    def has_agreement(self) -> bool:
        """True once the worker has agreed to an amount."""
        return any(entry.agreed for entry in self.negotiation_history)

    def append(self, entry: NegotiationEntry, **changes: Any) -> "Bid":
        """Return a copy with ``entry`` appended to the history."""
        return replace(
            self,
            negotiation_history=self.negotiation_history + (entry,),
            **changes,
        )

    def to_dict(self) -> dict:
        """Convert to the ``bids`` row shape."""
        return {
            "id": self.id,
            "job_id": self.job_id,
            "worker_id": self.worker_id,
            "worker_name": self.worker_name,
            "poster_id": self.poster_id,
            "amount": self.amount,
            "message": self.message,
            "status": self.status.value,
            "negotiation_history": [e.to_dict() for e in self.negotiation_history],
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Bid":
        """Create a bid from a ``bids`` row."""
        history = data.get("negotiation_history") or []
        return cls(
            id=data["id"],
            job_id=data["job_id"],
            worker_id=data["worker_id"],
            amount=int(data["amount"]),
            message=data.get("message") or "",
            status=BidStatus(str(data.get("status", "PENDING")).upper()),
            negotiation_history=tuple(NegotiationEntry.from_dict(e) for e in history),
            created_at=to_epoch_ms(data.get("created_at")),
            poster_id=data.get("poster_id"),
            worker_name=data.get("worker_name"),
        )


@dataclass(frozen=True)
class Job:
    """A work listing created by a poster."""

    id: str
    poster_id: str
    title: str
    budget: int
    status: JobStatus = JobStatus.OPEN
    accepted_bid_id: Optional[str] = None
    bids: tuple[Bid, ...] = field(default_factory=tuple)
    created_at: int = 0
    description: Optional[str] = None
    category: Optional[str] = None

    def get_bid(self, bid_id: str) -> Optional[Bid]:
        """Look up a bid on this job by id."""
        for bid in self.bids:
            if bid.id == bid_id:
                return bid
        return None

    @property
    def live_bids(self) -> tuple[Bid, ...]:
        return tuple(b for b in self.bids if b.is_live)

    @property
    def accepted_bid(self) -> Optional[Bid]:
        """The hired bid, if the job has one."""
        if self.accepted_bid_id is None:
            return None
        return self.get_bid(self.accepted_bid_id)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_JOB_STATUSES

    def bid_for_worker(self, worker_id: str) -> Optional[Bid]:
        """The worker's live bid on this job, if any."""
        for bid in self.bids:
            if bid.worker_id == worker_id and bid.is_live:
                return bid
        return None

    def with_bids(self, bids: Iterable[Bid], **changes: Any) -> "Job":
        """Return a copy with the bid set replaced."""
        return replace(self, bids=tuple(bids), **changes)

    def to_dict(self) -> dict:
        """Convert to a job row with embedded bids."""
        return {
            "id": self.id,
            "poster_id": self.poster_id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "budget": self.budget,
            "status": self.status.value,
            "accepted_bid_id": self.accepted_bid_id,
            "created_at": self.created_at,
            "bids": [b.to_dict() for b in self.bids],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Job":
        """Create a job from a row with an optional embedded ``bids`` array."""
        return cls(
            id=data["id"],
            poster_id=data["poster_id"],
            title=data.get("title") or "",
            budget=int(data.get("budget") or 0),
            status=JobStatus(str(data.get("status", "OPEN")).upper()),
            accepted_bid_id=data.get("accepted_bid_id"),
            bids=tuple(Bid.from_dict(b) for b in data.get("bids") or []),
            created_at=to_epoch_ms(data.get("created_at")),
            description=data.get("description"),
            category=data.get("category"),
        )
