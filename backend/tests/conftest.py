"""Pytest configuration and fixtures."""

import os
import secrets
import sys
from unittest.mock import MagicMock

import pytest

# Generate a unique test secret for this test run to prevent token forgery
_TEST_JWT_SECRET = f"test-only-{secrets.token_urlsafe(32)}"
TEST_WEBHOOK_SECRET = "whsec_test_only"

# For unit tests, set mock values ONLY if not running integration tests
if not os.environ.get("RUN_INTEGRATION"):
    os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
    os.environ.setdefault("SUPABASE_SECRET_KEY", "test-secret-key")
    os.environ.setdefault("JWT_SECRET_KEY", _TEST_JWT_SECRET)
    os.environ.setdefault("RAZORPAY_WEBHOOK_SECRET", TEST_WEBHOOK_SECRET)
    os.environ.setdefault("RAZORPAY_KEY_SECRET", "rzp_key_secret_test")
else:
    # For integration tests, load from .env
    from pathlib import Path

    from dotenv import load_dotenv

    env_path = Path(__file__).parent.parent / ".env"

    # Safety check: require explicit confirmation for integration tests
    if not os.environ.get("CONFIRM_INTEGRATION_CREDENTIALS"):
        print(
            "\nIntegration tests use REAL credentials from .env and may move real money.\n"
            "Set CONFIRM_INTEGRATION_CREDENTIALS=yes to proceed.\n",
            file=sys.stderr,
        )
        pytest.exit(
            "Integration tests require CONFIRM_INTEGRATION_CREDENTIALS=yes",
            returncode=1,
        )
    load_dotenv(env_path, override=True)

from app.database import get_db  # noqa: E402
from app.main import app  # noqa: E402
from app.marketplace.dependencies import get_negotiation_service  # noqa: E402
from app.rate_limit import limiter  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from chowkar.marketplace.negotiation import (  # noqa: E402
    Bid,
    BidStatus,
    InMemoryBidStorage,
    Job,
    JobStatus,
    NegotiationService,
)

POSTER_ID = "usr_TEST_POSTER"
WORKER_ID = "usr_TEST_WORKER"
OTHER_WORKER_ID = "usr_TEST_WORKER_2"


def _token_headers(user_id: str) -> dict:
    from app.auth import create_access_token
    from app.config import get_settings

    token = create_access_token(get_settings(), user_id=user_id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client():
    """Create a test client."""
    return TestClient(app)


@pytest.fixture(autouse=True)
def reset_app_state():
    """Fresh rate-limit counters and dependency overrides for every test."""
    limiter.reset()
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    """Auth headers for the job poster."""
    return _token_headers(POSTER_ID)


@pytest.fixture
def worker_headers():
    return _token_headers(WORKER_ID)


@pytest.fixture
def other_worker_headers():
    """Auth headers for a worker whose bid lost."""
    return _token_headers(OTHER_WORKER_ID)


@pytest.fixture
def mock_db():
    """Replace the Supabase client dependency with a MagicMock."""
    db = MagicMock()
    app.dependency_overrides[get_db] = lambda: db
    return db


def _bid(bid_id, worker_id, amount, status=BidStatus.PENDING):
    return Bid(
        id=bid_id,
        job_id="job-1",
        worker_id=worker_id,
        amount=amount,
        status=status,
        poster_id=POSTER_ID,
        created_at=1_700_000_000_000,
    )


@pytest.fixture
def open_job():
    """Open job with pending bids from two workers."""
    return Job(
        id="job-1",
        poster_id=POSTER_ID,
        title="Fix kitchen sink",
        budget=600,
        bids=(_bid("bid-1", WORKER_ID, 500), _bid("bid-2", OTHER_WORKER_ID, 450)),
        created_at=1_700_000_000_000,
    )


@pytest.fixture
def hired_job(open_job):
    """The open job after bid-1 was hired."""
    return open_job.with_bids(
        (
            _bid("bid-1", WORKER_ID, 500, BidStatus.ACCEPTED),
            _bid("bid-2", OTHER_WORKER_ID, 450, BidStatus.REJECTED),
        ),
        status=JobStatus.IN_PROGRESS,
        accepted_bid_id="bid-1",
    )


@pytest.fixture
def marketplace(mock_db):
    """Install an in-memory negotiation service; returns a seeding function."""
    storage = InMemoryBidStorage()
    service = NegotiationService(storage)
    app.dependency_overrides[get_negotiation_service] = lambda: service

    def seed(*jobs):
        for job in jobs:
            storage.save_job(job)
        return service

    return seed
