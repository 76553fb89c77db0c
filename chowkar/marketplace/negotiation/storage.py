"""
Negotiation storage layer.

Describes the persistent-store RPC surface the negotiation service relies
on. Every write is a single atomic operation: either the whole transition
is visible to other parties or none of it is.
"""

import logging
import threading
from dataclasses import replace
from typing import Optional, Protocol

from chowkar.marketplace.errors import BidNotFoundError, InvalidStateError, JobNotFoundError
from chowkar.marketplace.negotiation.models import Bid, BidStatus, Job, JobStatus

logger = logging.getLogger(__name__)


class BidStorage(Protocol):
    """Protocol for negotiation persistence backends."""

    def get_job(self, job_id: str) -> Optional[Job]:
        """Get a job with all of its bids."""
        ...

    def propose_bid(self, bid: Bid) -> Bid:
        """Insert a new bid. Rejects a second live bid from the same worker."""
        ...

    def counter_bid(self, bid: Bid) -> Bid:
        """Persist a counter-offer (new amount plus appended history entry)."""
        ...

    def accept_bid_as_worker(self, bid: Bid) -> Bid:
        """Persist a worker agreement entry."""
        ...

    def finalize_hire(self, job_id: str, bid_id: str) -> Job:
        """Accept one bid, reject its rivals and start the job."""
        ...

    def reject_bid(self, bid_id: str) -> Bid:
        """Mark a bid rejected."""
        ...

    def withdraw_bid(self, bid_id: str, worker_id: str) -> bool:
        """Delete a worker's pending bid. Returns True if a bid was removed."""
        ...

    def complete_job(self, job_id: str) -> Job:
        """Mark a job completed."""
        ...

    def cancel_job(self, job_id: str) -> Job:
        """Mark a job cancelled."""
        ...


class InMemoryBidStorage:
    """In-memory negotiation storage for testing and local development.

    Each write re-validates the stored state under a lock before swapping in
    the new job value, so concurrent writers see all-or-nothing transitions.
    """

    def __init__(self, jobs: Optional[list[Job]] = None):
        self._jobs: dict[str, Job] = {}
        self._bid_index: dict[str, str] = {}  # bid_id -> job_id
        self._lock = threading.Lock()
        for job in jobs or []:
            self.save_job(job)

    # === Helpers ===

    def save_job(self, job: Job) -> str:
        """Insert or replace a job and index its bids."""
        with self._lock:
            self._store(job)
        return job.id

    def _store(self, job: Job) -> None:
        previous = self._jobs.get(job.id)
        if previous is not None:
            for bid in previous.bids:
                self._bid_index.pop(bid.id, None)
        self._jobs[job.id] = job
        for bid in job.bids:
            self._bid_index[bid.id] = job.id

    def _job_for_bid(self, bid_id: str) -> Job:
        job_id = self._bid_index.get(bid_id)
        if job_id is None:
            raise BidNotFoundError(f"Bid not found: {bid_id}")
        return self._jobs[job_id]

    def _require_job(self, job_id: str) -> Job:
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(f"Job not found: {job_id}")
        return job

    def _replace_bid(self, job: Job, bid: Bid) -> None:
        self._store(job.with_bids(bid if b.id == bid.id else b for b in job.bids))

    def _require_pending(self, job: Job, bid_id: str) -> Bid:
        stored = job.get_bid(bid_id)
        if stored is None:
            raise BidNotFoundError(f"Bid not found: {bid_id}")
        if stored.status != BidStatus.PENDING:
            raise InvalidStateError(f"Bid {bid_id} is {stored.status.value}")
        return stored

    # === Reads ===

    def get_job(self, job_id: str) -> Optional[Job]:
        """Get a job by ID."""
        return self._jobs.get(job_id)

    # === Writes ===

    def propose_bid(self, bid: Bid) -> Bid:
        """Insert a new bid."""
        with self._lock:
            job = self._require_job(bid.job_id)
            if job.status != JobStatus.OPEN:
                raise InvalidStateError(f"Job {job.id} is {job.status.value}")
            if job.bid_for_worker(bid.worker_id) is not None:
                raise InvalidStateError(f"Worker {bid.worker_id} already bid on job {job.id}")
            self._store(job.with_bids(job.bids + (bid,)))
        return bid

    def counter_bid(self, bid: Bid) -> Bid:
        """Persist a counter-offer.

        Only the newest history entry of ``bid`` is written, appended to the
        stored history, so counters computed from the same snapshot all land.
        """
        with self._lock:
            job = self._job_for_bid(bid.id)
            stored = self._require_pending(job, bid.id)
            entry = bid.last_entry
            if entry is None:
                raise InvalidStateError(f"Bid {bid.id} has no negotiation entry to record")
            saved = stored.append(entry, amount=entry.amount)
            self._replace_bid(job, saved)
        return saved

    def accept_bid_as_worker(self, bid: Bid) -> Bid:
        """Persist a worker agreement."""
        return self.counter_bid(bid)

    def finalize_hire(self, job_id: str, bid_id: str) -> Job:
        """Accept one bid, reject the rest and start the job."""
        with self._lock:
            job = self._require_job(job_id)
            if job.status != JobStatus.OPEN:
                raise InvalidStateError(f"Job {job_id} is {job.status.value}")
            self._require_pending(job, bid_id)
            bids = []
            for bid in job.bids:
                if bid.id == bid_id:
                    bids.append(replace(bid, status=BidStatus.ACCEPTED))
                elif bid.is_live:
                    bids.append(replace(bid, status=BidStatus.REJECTED))
                else:
                    bids.append(bid)
            hired = job.with_bids(bids, status=JobStatus.IN_PROGRESS, accepted_bid_id=bid_id)
            self._store(hired)
        return hired

    def reject_bid(self, bid_id: str) -> Bid:
        """Mark a bid rejected."""
        with self._lock:
            job = self._job_for_bid(bid_id)
            stored = job.get_bid(bid_id)
            if stored.status == BidStatus.ACCEPTED:
                raise InvalidStateError(f"Bid {bid_id} is ACCEPTED")
            rejected = replace(stored, status=BidStatus.REJECTED)
            self._replace_bid(job, rejected)
        return rejected

    def withdraw_bid(self, bid_id: str, worker_id: str) -> bool:
        """Delete a worker's pending bid."""
        with self._lock:
            job_id = self._bid_index.get(bid_id)
            if job_id is None:
                return False
            job = self._jobs[job_id]
            stored = job.get_bid(bid_id)
            if stored.worker_id != worker_id or stored.status != BidStatus.PENDING:
                return False
            self._store(job.with_bids(b for b in job.bids if b.id != bid_id))
        return True

    def complete_job(self, job_id: str) -> Job:
        """Mark a job completed."""
        return self._set_status(job_id, JobStatus.IN_PROGRESS, JobStatus.COMPLETED)

    def cancel_job(self, job_id: str) -> Job:
        """Mark a job cancelled."""
        with self._lock:
            job = self._require_job(job_id)
            if job.is_terminal:
                raise InvalidStateError(f"Job {job_id} is {job.status.value}")
            cancelled = replace(job, status=JobStatus.CANCELLED)
            self._store(cancelled)
        return cancelled

    def _set_status(self, job_id: str, expected: JobStatus, new_status: JobStatus) -> Job:
        """Compare-and-set on job status."""
        with self._lock:
            job = self._require_job(job_id)
            if job.status != expected:
                logger.warning(
                    f"Status conflict on job {job_id}: expected '{expected.value}', "
                    f"found '{job.status.value}'"
                )
                raise InvalidStateError(f"Job {job_id} is {job.status.value}")
            updated = replace(job, status=new_status)
            self._store(updated)
        return updated
