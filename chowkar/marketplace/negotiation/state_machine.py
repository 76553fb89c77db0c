"""
Bid negotiation state machine.

Pure functions over immutable ``Job`` / ``Bid`` values. Nothing here performs
I/O or mutates its inputs; callers persist the returned values through a
single atomic store operation.

Lifecycle::

    propose -> PENDING --counter--> PENDING (amount changes, history grows)
                       --accept_as_worker--> PENDING (agreed entry, awaits poster)
                       --finalize_hire--> ACCEPTED (job IN_PROGRESS, rivals REJECTED)
                       --reject_bid--> REJECTED (final)
"""

import uuid
from dataclasses import replace
from typing import Optional

from chowkar.marketplace.errors import InvalidStateError, UnauthorizedError
from chowkar.marketplace.negotiation.models import (
    Bid,
    BidStatus,
    Job,
    JobStatus,
    NegotiationEntry,
    Role,
    can_transition,
    now_ms,
)


def _require_pending(bid: Bid, action: str) -> None:
    if bid.status != BidStatus.PENDING:
        raise InvalidStateError(f"Cannot {action} bid {bid.id} in status {bid.status.value}")


def propose(
    job: Job,
    worker_id: str,
    amount: int,
    message: str = "",
    *,
    bid_id: Optional[str] = None,
    at: Optional[int] = None,
    worker_name: Optional[str] = None,
) -> Bid:
    """Create a worker's opening bid on an open job.

    Raises:
        ValueError: If the amount is not positive
        InvalidStateError: If the job is not open, the worker is the poster,
            or the worker already holds a live bid on this job
    """
    if amount <= 0:
        raise ValueError("Bid amount must be positive")
    if job.status != JobStatus.OPEN:
        raise InvalidStateError(f"Cannot bid on job {job.id} in status {job.status.value}")
    if worker_id == job.poster_id:
        raise InvalidStateError("Cannot bid on your own job")
    if job.bid_for_worker(worker_id) is not None:
        raise InvalidStateError(f"Worker {worker_id} already has a live bid on job {job.id}")

    return Bid(
        id=bid_id or str(uuid.uuid4()),
        job_id=job.id,
        worker_id=worker_id,
        amount=amount,
        message=message,
        status=BidStatus.PENDING,
        negotiation_history=(),
        created_at=at if at is not None else now_ms(),
        poster_id=job.poster_id,
        worker_name=worker_name,
    )


def counter(
    bid: Bid,
    by_role: Role,
    new_amount: int,
    *,
    message: Optional[str] = None,
    at: Optional[int] = None,
) -> Bid:
    """Counter-offer a new amount. The bid stays PENDING."""
    if new_amount <= 0:
        raise ValueError("Counter amount must be positive")
    _require_pending(bid, "counter")
    entry = NegotiationEntry(
        amount=new_amount,
        by=Role.parse(by_role),
        timestamp=at if at is not None else now_ms(),
        agreed=False,
        message=message,
    )
    return bid.append(entry, amount=new_amount)


def accept_as_worker(bid: Bid, *, at: Optional[int] = None) -> Bid:
    """Record the worker's agreement to the current amount.

    Agreement alone does not hire; the poster must still call
    :func:`finalize_hire`.
    """
    _require_pending(bid, "accept")
    entry = NegotiationEntry(
        amount=bid.amount,
        by=Role.WORKER,
        timestamp=at if at is not None else now_ms(),
        agreed=True,
    )
    return bid.append(entry)


def finalize_hire(job: Job, bid: Bid) -> Job:
    """Hire the worker behind ``bid``.

    The bid becomes ACCEPTED, the job moves to IN_PROGRESS and every other
    live bid on the job is REJECTED.
    """
    _require_pending(bid, "hire")
    if job.status != JobStatus.OPEN:
        raise InvalidStateError(f"Cannot hire on job {job.id} in status {job.status.value}")
    stored = job.get_bid(bid.id)
    if stored is None:
        raise InvalidStateError(f"Bid {bid.id} does not belong to job {job.id}")
    # The job's copy is authoritative; a stale pending view cannot revive it.
    _require_pending(stored, "hire")

    bids = []
    for existing in job.bids:
        if existing.id == bid.id:
            # The caller's copy wins: it may carry a just-appended agreement.
            bids.append(replace(bid, status=BidStatus.ACCEPTED))
        elif existing.is_live:
            bids.append(replace(existing, status=BidStatus.REJECTED))
        else:
            bids.append(existing)

    return job.with_bids(bids, status=JobStatus.IN_PROGRESS, accepted_bid_id=bid.id)


def reject_bid(bid: Bid) -> Bid:
    """Reject a bid. Rejecting an already rejected bid is a no-op."""
    if bid.status == BidStatus.REJECTED:
        return bid
    if bid.status == BidStatus.ACCEPTED:
        raise InvalidStateError(f"Cannot reject accepted bid {bid.id}")
    return replace(bid, status=BidStatus.REJECTED)


def withdraw(job: Job, bid: Bid, worker_id: str) -> Job:
    """Remove a worker's own pending bid from the job."""
    if bid.worker_id != worker_id:
        raise UnauthorizedError("Only the bidding worker can withdraw a bid")
    _require_pending(bid, "withdraw")
    stored = job.get_bid(bid.id)
    if stored is None:
        raise InvalidStateError(f"Bid {bid.id} does not belong to job {job.id}")
    _require_pending(stored, "withdraw")
    return job.with_bids(b for b in job.bids if b.id != bid.id)


def compute_action_required(bid: Bid, for_role: Role) -> bool:
    """Whether ``for_role`` owes the next move on ``bid``.

    The ball is in the court of whoever did not make the last move. A fresh
    bid with no history awaits the poster.
    """
    if bid.status != BidStatus.PENDING:
        return False
    role = Role.parse(for_role)
    last = bid.last_entry
    if last is None:
        return role == Role.POSTER
    return last.by != role


def action_required_count(job: Job, for_role: Role = Role.POSTER) -> int:
    """Number of bids on ``job`` awaiting a move from ``for_role``."""
    return sum(1 for bid in job.bids if compute_action_required(bid, for_role))


def complete(job: Job) -> Job:
    """Mark an in-progress job as completed."""
    if job.status != JobStatus.IN_PROGRESS:
        raise InvalidStateError(f"Cannot complete job {job.id} in status {job.status.value}")
    return replace(job, status=JobStatus.COMPLETED)


def cancel(job: Job) -> Job:
    """Cancel an open or in-progress job."""
    if not can_transition(job.status, JobStatus.CANCELLED):
        raise InvalidStateError(f"Cannot cancel job {job.id} in status {job.status.value}")
    return replace(job, status=JobStatus.CANCELLED)
