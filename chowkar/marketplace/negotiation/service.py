"""
Negotiation service.

Applies the pure state machine on behalf of an acting user and persists the
result through a :class:`BidStorage`. Authorization (who may make which
move) lives here; transition rules live in ``state_machine``.
"""

import logging
from typing import Callable, Optional

from chowkar.marketplace.errors import (
    BidNotFoundError,
    JobNotFoundError,
    MarketplaceError,
    UnauthorizedError,
    UpstreamError,
)
from chowkar.marketplace.negotiation import state_machine
from chowkar.marketplace.negotiation.models import Bid, Job, Role
from chowkar.marketplace.negotiation.storage import BidStorage

logger = logging.getLogger(__name__)

JobHook = Callable[[Job], None]


class NegotiationService:
    """Bid lifecycle operations for one marketplace.

    Args:
        storage: Persistence backend exposing one atomic call per transition
        on_review_prompt: Called with the completed job when it had a hire
        on_refund: Called with the cancelled job
    """

    def __init__(
        self,
        storage: BidStorage,
        on_review_prompt: Optional[JobHook] = None,
        on_refund: Optional[JobHook] = None,
    ):
        self.storage = storage
        self.on_review_prompt = on_review_prompt
        self.on_refund = on_refund

    # === Lookups ===

    def get_job(self, job_id: str) -> Job:
        """Get a job with its bids.

        Raises:
            JobNotFoundError: If job doesn't exist
        """
        job = self._call("get_job", job_id)
        if job is None:
            raise JobNotFoundError(f"Job not found: {job_id}")
        return job

    def _get_bid(self, job: Job, bid_id: str) -> Bid:
        bid = job.get_bid(bid_id)
        if bid is None:
            raise BidNotFoundError(f"Bid {bid_id} not found on job {job.id}")
        return bid

    def role_of(self, job: Job, bid: Bid, user_id: str) -> Role:
        """Which side of ``bid`` the user is on.

        Raises:
            UnauthorizedError: If the user is neither the poster nor the bidder
        """
        if user_id == job.poster_id:
            return Role.POSTER
        if user_id == bid.worker_id:
            return Role.WORKER
        raise UnauthorizedError("Only the poster or the bidding worker can negotiate")

    def _require_poster(self, job: Job, user_id: str, action: str) -> None:
        if user_id != job.poster_id:
            raise UnauthorizedError(f"Only the job poster can {action}")

    def _call(self, method: str, *args):
        """Invoke a storage operation, wrapping transport failures."""
        try:
            return getattr(self.storage, method)(*args)
        except MarketplaceError:
            raise
        except Exception as e:
            logger.error(f"Storage call {method} failed: {e}")
            raise UpstreamError(f"{method} failed: {e}") from e

    # === Bids ===

    def place_bid(
        self,
        job_id: str,
        worker_id: str,
        amount: int,
        message: str = "",
        worker_name: Optional[str] = None,
    ) -> Bid:
        """Propose a bid on an open job."""
        job = self.get_job(job_id)
        bid = state_machine.propose(job, worker_id, amount, message, worker_name=worker_name)
        saved = self._call("propose_bid", bid)
        logger.info(f"Bid proposed | job={job_id} | bid={bid.id} | worker={worker_id} | amount={amount}")
        return saved

    def counter(self, job_id: str, bid_id: str, user_id: str, amount: int, message: Optional[str] = None) -> Bid:
        """Counter-offer on a bid; the caller's role is derived from the job."""
        job = self.get_job(job_id)
        bid = self._get_bid(job, bid_id)
        role = self.role_of(job, bid, user_id)
        updated = state_machine.counter(bid, role, amount, message=message)
        saved = self._call("counter_bid", updated)
        logger.info(f"Bid countered | job={job_id} | bid={bid_id} | by={role.value} | amount={amount}")
        return saved

    def accept_as_worker(self, job_id: str, bid_id: str, worker_id: str) -> Bid:
        """Worker agrees to the current amount (poster must still hire)."""
        job = self.get_job(job_id)
        bid = self._get_bid(job, bid_id)
        if bid.worker_id != worker_id:
            raise UnauthorizedError("Only the bidding worker can accept the offer")
        updated = state_machine.accept_as_worker(bid)
        saved = self._call("accept_bid_as_worker", updated)
        logger.info(f"Bid agreed by worker | job={job_id} | bid={bid_id} | amount={bid.amount}")
        return saved

    def hire(self, job_id: str, bid_id: str, poster_id: str) -> Job:
        """Poster finalizes the hire for one bid."""
        job = self.get_job(job_id)
        self._require_poster(job, poster_id, "hire")
        bid = self._get_bid(job, bid_id)
        # Validate locally first so a stale view fails before touching the store.
        state_machine.finalize_hire(job, bid)
        hired = self._call("finalize_hire", job_id, bid_id)
        logger.info(f"Worker hired | job={job_id} | bid={bid_id} | worker={bid.worker_id}")
        return hired

    def reject(self, job_id: str, bid_id: str, poster_id: str) -> Bid:
        """Poster rejects a bid. Rejecting twice is a no-op."""
        job = self.get_job(job_id)
        self._require_poster(job, poster_id, "reject bids")
        bid = self._get_bid(job, bid_id)
        rejected = state_machine.reject_bid(bid)
        if rejected is bid:
            return bid
        saved = self._call("reject_bid", bid_id)
        logger.info(f"Bid rejected | job={job_id} | bid={bid_id}")
        return saved

    def withdraw(self, job_id: str, bid_id: str, worker_id: str) -> Job:
        """Worker withdraws their own pending bid."""
        job = self.get_job(job_id)
        bid = self._get_bid(job, bid_id)
        updated = state_machine.withdraw(job, bid, worker_id)
        if not self._call("withdraw_bid", bid_id, worker_id):
            raise BidNotFoundError(f"Bid {bid_id} could not be withdrawn")
        logger.info(f"Bid withdrawn | job={job_id} | bid={bid_id} | worker={worker_id}")
        return updated

    def action_required_count(self, job_id: str, for_role: Role = Role.POSTER) -> int:
        """Badge count of bids awaiting a move from ``for_role``."""
        return state_machine.action_required_count(self.get_job(job_id), for_role)

    # === Job lifecycle ===

    def complete(self, job_id: str, poster_id: str) -> Job:
        """Poster marks the hired job as done."""
        job = self.get_job(job_id)
        self._require_poster(job, poster_id, "complete the job")
        state_machine.complete(job)
        completed = self._call("complete_job", job_id)
        logger.info(f"Job completed | id={job_id}")
        if completed.accepted_bid_id and self.on_review_prompt is not None:
            self._notify(self.on_review_prompt, completed, "review prompt")
        return completed

    def cancel(self, job_id: str, poster_id: str) -> Job:
        """Poster cancels an open or in-progress job."""
        job = self.get_job(job_id)
        self._require_poster(job, poster_id, "cancel the job")
        state_machine.cancel(job)
        cancelled = self._call("cancel_job", job_id)
        logger.info(f"Job cancelled | id={job_id}")
        if self.on_refund is not None:
            self._notify(self.on_refund, cancelled, "refund")
        return cancelled

    def _notify(self, hook: JobHook, job: Job, name: str) -> None:
        # The transition is already committed; a failing collaborator must not undo it.
        try:
            hook(job)
        except Exception:
            logger.exception(f"{name} hook failed for job {job.id}")
