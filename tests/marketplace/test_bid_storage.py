"""
Tests for InMemoryBidStorage.
"""

import threading

import pytest

from chowkar.marketplace.errors import BidNotFoundError, InvalidStateError, JobNotFoundError
from chowkar.marketplace.negotiation import BidStatus, JobStatus, Role, counter, propose


class TestInMemoryBidStorage:
    def test_get_missing_job_returns_none(self, storage):
        assert storage.get_job("missing") is None

    def test_propose_requires_job(self, storage, make_job):
        bid = propose(make_job("job-2"), "worker-3", 300)
        with pytest.raises(JobNotFoundError):
            storage.propose_bid(bid)

    def test_counter_unknown_bid(self, storage, make_bid):
        with pytest.raises(BidNotFoundError):
            storage.counter_bid(make_bid("bid-9"))

    def test_counter_persists(self, storage, open_job):
        updated = counter(open_job.get_bid("bid-1"), Role.POSTER, 420)
        storage.counter_bid(updated)
        assert storage.get_job("job-1").get_bid("bid-1").amount == 420

    def test_counters_from_same_snapshot_keep_full_history(self, storage, open_job):
        snapshot = open_job.get_bid("bid-1")
        storage.counter_bid(counter(snapshot, Role.POSTER, 450, at=1))
        saved = storage.counter_bid(counter(snapshot, Role.WORKER, 480, at=2))

        stored = storage.get_job("job-1").get_bid("bid-1")
        assert stored == saved
        assert [(e.amount, e.by) for e in stored.negotiation_history] == [
            (450, Role.POSTER),
            (480, Role.WORKER),
        ]
        assert stored.amount == 480

    def test_finalize_hire_is_atomic(self, storage):
        hired = storage.finalize_hire("job-1", "bid-2")
        assert hired.status == JobStatus.IN_PROGRESS
        assert storage.get_job("job-1") == hired
        with pytest.raises(InvalidStateError):
            storage.finalize_hire("job-1", "bid-1")

    def test_concurrent_hires_accept_exactly_one(self, storage):
        """Two posters' tabs racing to hire: one wins, the other sees a conflict."""
        outcomes = []

        def hire(bid_id):
            try:
                storage.finalize_hire("job-1", bid_id)
                outcomes.append(bid_id)
            except InvalidStateError:
                outcomes.append("conflict")

        threads = [threading.Thread(target=hire, args=(b,)) for b in ("bid-1", "bid-2")]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert outcomes.count("conflict") == 1
        job = storage.get_job("job-1")
        assert [b.status for b in job.bids].count(BidStatus.ACCEPTED) == 1

    def test_reject_accepted_bid_fails(self, storage):
        storage.finalize_hire("job-1", "bid-1")
        with pytest.raises(InvalidStateError):
            storage.reject_bid("bid-1")

    def test_withdraw_wrong_worker_returns_false(self, storage):
        assert storage.withdraw_bid("bid-1", "worker-2") is False
        assert storage.withdraw_bid("bid-9", "worker-1") is False
        assert storage.withdraw_bid("bid-1", "worker-1") is True

    def test_complete_requires_in_progress(self, storage):
        with pytest.raises(InvalidStateError):
            storage.complete_job("job-1")

    def test_cancel_terminal_fails(self, storage):
        storage.cancel_job("job-1")
        with pytest.raises(InvalidStateError):
            storage.cancel_job("job-1")
