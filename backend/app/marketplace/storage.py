"""Supabase-backed negotiation storage.

Each write is one Postgres function call, so every transition commits or
fails as a whole. The functions re-check state server-side and raise:

* ``P0002`` (no_data_found) when the job or bid does not exist
* ``P0001`` (raise_exception) or ``23505`` (unique_violation) when the
  transition is not allowed from the current state
"""

from typing import Any, Optional

from supabase import Client

from chowkar.marketplace.errors import InvalidStateError, JobNotFoundError
from chowkar.marketplace.negotiation import Bid, Job

from ..database import first_row, rpc
from ..logging_config import get_logger

logger = get_logger("chowkar.storage")

NOT_FOUND_CODES = {"P0002"}
INVALID_STATE_CODES = {"P0001", "23505"}


def _translate(e: Exception, context: str) -> Exception:
    """Map a database error to a marketplace error where one applies."""
    code = getattr(e, "code", None)
    message = getattr(e, "message", None) or str(e)
    if code in NOT_FOUND_CODES:
        return JobNotFoundError(f"{context}: {message}")
    if code in INVALID_STATE_CODES:
        logger.warning(f"Transition rejected by database | {context} | {message}")
        return InvalidStateError(message)
    return e


class SupabaseBidStorage:
    """:class:`~chowkar.marketplace.negotiation.BidStorage` over Supabase RPCs."""

    def __init__(self, db: Client):
        self.db = db

    def _call(self, name: str, params: dict[str, Any]) -> Any:
        try:
            return rpc(self.db, name, params)
        except Exception as e:
            translated = _translate(e, name)
            if translated is e:
                raise
            raise translated from e

    def _bid(self, name: str, params: dict[str, Any]) -> Bid:
        row = first_row(self._call(name, params))
        if row is None:
            raise InvalidStateError(f"{name} returned no bid")
        return Bid.from_dict(row)

    def _job(self, name: str, params: dict[str, Any]) -> Job:
        row = first_row(self._call(name, params))
        if row is None:
            raise JobNotFoundError(f"{name} returned no job")
        return Job.from_dict(row)

    def get_job(self, job_id: str) -> Optional[Job]:
        row = first_row(self._call("get_job_with_bids", {"p_job_id": job_id}))
        return Job.from_dict(row) if row else None

    def propose_bid(self, bid: Bid) -> Bid:
        return self._bid(
            "propose_bid",
            {
                "p_bid_id": bid.id,
                "p_job_id": bid.job_id,
                "p_worker_id": bid.worker_id,
                "p_amount": bid.amount,
                "p_message": bid.message,
                "p_worker_name": bid.worker_name,
            },
        )

    def counter_bid(self, bid: Bid) -> Bid:
        # The function appends the entry itself so concurrent counters cannot lose history.
        return self._bid(
            "counter_bid",
            {"p_bid_id": bid.id, "p_amount": bid.amount, "p_entry": bid.last_entry.to_dict()},
        )

    def accept_bid_as_worker(self, bid: Bid) -> Bid:
        return self._bid(
            "accept_bid_as_worker",
            {"p_bid_id": bid.id, "p_entry": bid.last_entry.to_dict()},
        )

    def finalize_hire(self, job_id: str, bid_id: str) -> Job:
        return self._job("finalize_hire", {"p_job_id": job_id, "p_bid_id": bid_id})

    def reject_bid(self, bid_id: str) -> Bid:
        return self._bid("reject_bid", {"p_bid_id": bid_id})

    def withdraw_bid(self, bid_id: str, worker_id: str) -> bool:
        return bool(self._call("withdraw_bid", {"p_bid_id": bid_id, "p_worker_id": worker_id}))

    def complete_job(self, job_id: str) -> Job:
        return self._job("complete_job", {"p_job_id": job_id})

    def cancel_job(self, job_id: str) -> Job:
        return self._job("cancel_job", {"p_job_id": job_id})
