"""
Chat session gate.

Chat opens only once a job has a hire, and only between its two parties.
Availability never regresses after the hire: a completed job's thread stays
readable.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from chowkar.marketplace.errors import (
    ChatUnavailableError,
    NotAParticipantError,
    ReceiverUnresolvedError,
)
from chowkar.marketplace.negotiation.models import Job, JobStatus

CHAT_OPEN_STATUSES = frozenset({JobStatus.IN_PROGRESS, JobStatus.COMPLETED})


class ChatAvailability(str, Enum):
    """Outcome of a chat access check."""

    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"  # nobody hired yet
    NOT_PARTICIPANT = "not_participant"


@dataclass(frozen=True)
class AuthDecision:
    """Whether a user may open the chat thread for a job."""

    availability: ChatAvailability
    job_id: str
    user_id: str
    counterpart_id: Optional[str] = None
    reason: Optional[str] = None

    @property
    def allowed(self) -> bool:
        return self.availability == ChatAvailability.AVAILABLE

    def to_dict(self) -> dict:
        return {
            "availability": self.availability.value,
            "allowed": self.allowed,
            "job_id": self.job_id,
            "user_id": self.user_id,
            "counterpart_id": self.counterpart_id,
            "reason": self.reason,
        }


def _hired_worker_id(job: Job) -> Optional[str]:
    bid = job.accepted_bid
    return bid.worker_id if bid is not None else None


def can_open_chat(job: Job, requesting_user_id: str) -> AuthDecision:
    """Decide whether ``requesting_user_id`` may open the job's chat.

    Fails closed with a decision rather than an exception.
    """
    if job.status not in CHAT_OPEN_STATUSES:
        return AuthDecision(
            availability=ChatAvailability.UNAVAILABLE,
            job_id=job.id,
            user_id=requesting_user_id,
            reason="Chat is only available after a worker is hired",
        )

    worker_id = _hired_worker_id(job)
    if requesting_user_id == job.poster_id:
        counterpart = worker_id
    elif worker_id is not None and requesting_user_id == worker_id:
        counterpart = job.poster_id
    else:
        return AuthDecision(
            availability=ChatAvailability.NOT_PARTICIPANT,
            job_id=job.id,
            user_id=requesting_user_id,
            reason="You are not a participant in this job",
        )

    return AuthDecision(
        availability=ChatAvailability.AVAILABLE,
        job_id=job.id,
        user_id=requesting_user_id,
        counterpart_id=counterpart,
    )


def require_chat_access(job: Job, user_id: str) -> AuthDecision:
    """Raising form of :func:`can_open_chat`.

    Raises:
        ChatUnavailableError: If nobody has been hired yet
        NotAParticipantError: If the user is not the poster or hired worker
    """
    decision = can_open_chat(job, user_id)
    if decision.availability == ChatAvailability.UNAVAILABLE:
        raise ChatUnavailableError(decision.reason)
    if decision.availability == ChatAvailability.NOT_PARTICIPANT:
        raise NotAParticipantError(decision.reason)
    return decision


def resolve_receiver(job: Job, sender_id: str) -> str:
    """Work out who a message from ``sender_id`` is addressed to.

    The poster writes to the hired worker, or, in the window between worker
    agreement and the poster's finalization, to the worker who agreed.
    Anyone else writes to the poster.

    Raises:
        ReceiverUnresolvedError: If no receiver can be determined
    """
    if sender_id != job.poster_id:
        return job.poster_id

    worker_id = _hired_worker_id(job)
    if worker_id:
        return worker_id
    for bid in job.bids:
        if bid.has_agreement:
            return bid.worker_id
    raise ReceiverUnresolvedError(f"Could not find a receiver for job {job.id}")
