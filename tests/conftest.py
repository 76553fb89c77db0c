"""
Pytest fixtures and test configuration for Chowkar tests.
"""

import pytest

from chowkar.marketplace.negotiation import (
    Bid,
    BidStatus,
    InMemoryBidStorage,
    Job,
    JobStatus,
    NegotiationEntry,
    NegotiationService,
    Role,
)

POSTER_ID = "poster-1"
WORKER_ID = "worker-1"
OTHER_WORKER_ID = "worker-2"


def _make_bid(
    bid_id: str = "bid-1",
    job_id: str = "job-1",
    worker_id: str = WORKER_ID,
    amount: int = 500,
    status: BidStatus = BidStatus.PENDING,
    history=(),
    **kwargs,
) -> Bid:
    """Build a bid with sensible defaults."""
    return Bid(
        id=bid_id,
        job_id=job_id,
        worker_id=worker_id,
        amount=amount,
        status=status,
        negotiation_history=tuple(history),
        created_at=1_700_000_000_000,
        poster_id=POSTER_ID,
        **kwargs,
    )


def _make_job(
    job_id: str = "job-1",
    status: JobStatus = JobStatus.OPEN,
    bids=(),
    accepted_bid_id=None,
    **kwargs,
) -> Job:
    """Build a job with sensible defaults."""
    return Job(
        id=job_id,
        poster_id=POSTER_ID,
        title="Fix kitchen sink",
        budget=600,
        status=status,
        accepted_bid_id=accepted_bid_id,
        bids=tuple(bids),
        created_at=1_700_000_000_000,
        **kwargs,
    )


def _entry(amount: int, by: Role, agreed: bool = False, timestamp: int = 1_700_000_001_000) -> NegotiationEntry:
    return NegotiationEntry(amount=amount, by=by, timestamp=timestamp, agreed=agreed)


def _hired_job(status: JobStatus = JobStatus.IN_PROGRESS) -> Job:
    """A job whose bid-1 from worker-1 was accepted."""
    accepted = _make_bid(status=BidStatus.ACCEPTED)
    rejected = _make_bid("bid-2", worker_id=OTHER_WORKER_ID, amount=450, status=BidStatus.REJECTED)
    return _make_job(status=status, bids=[accepted, rejected], accepted_bid_id="bid-1")


@pytest.fixture
def open_job():
    """An open job with two pending bids."""
    return _make_job(
        bids=[
            _make_bid(),
            _make_bid("bid-2", worker_id=OTHER_WORKER_ID, amount=450),
        ]
    )


@pytest.fixture
def storage(open_job):
    """In-memory storage seeded with the open job."""
    return InMemoryBidStorage([open_job])


@pytest.fixture
def service(storage):
    """Negotiation service over in-memory storage."""
    return NegotiationService(storage)


@pytest.fixture
def make_bid():
    return _make_bid


@pytest.fixture
def make_job():
    return _make_job


@pytest.fixture
def make_entry():
    return _entry


@pytest.fixture
def in_progress_job():
    return _hired_job()


@pytest.fixture
def completed_job():
    return _hired_job(JobStatus.COMPLETED)
