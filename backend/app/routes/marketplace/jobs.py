"""Job and bid negotiation routes.

Every mutation is a single storage RPC; the acting user's role is derived
from the job, never taken from the request body.
"""

from typing import Literal

from fastapi import APIRouter, Request, status
from pydantic import BaseModel, Field

from chowkar.marketplace.errors import MarketplaceError
from chowkar.marketplace.negotiation import (
    Bid,
    Job,
    Role,
    action_required_count,
    compute_action_required,
)

from ...auth import CurrentUser
from ...logging_config import get_logger
from ...marketplace.dependencies import Negotiation
from ...marketplace.errors import to_http_exception
from ...rate_limit import READ_LIMIT, WRITE_LIMIT, limiter

logger = get_logger("chowkar.jobs")
router = APIRouter(prefix="/jobs", tags=["jobs", "bids"])


# =============================================================================
# Request/Response Models
# =============================================================================

RoleName = Literal["POSTER", "WORKER"]
BidStatusName = Literal["PENDING", "ACCEPTED", "REJECTED"]
JobStatusName = Literal["OPEN", "IN_PROGRESS", "COMPLETED", "CANCELLED"]


class BidCreate(BaseModel):
    """Request to place a bid."""

    amount: int = Field(..., gt=0, description="Offer in whole rupees")
    message: str = Field("", max_length=1000)
    worker_name: str | None = Field(None, max_length=100)


class CounterOffer(BaseModel):
    """Request to counter the current amount."""

    amount: int = Field(..., gt=0)
    message: str | None = Field(None, max_length=1000)


class NegotiationEntryResponse(BaseModel):
    amount: int
    by: RoleName
    timestamp: int
    agreed: bool = False
    message: str | None = None


class BidResponse(BaseModel):
    """Bid details, with the caller's pending-move flag."""

    id: str
    job_id: str
    worker_id: str
    worker_name: str | None = None
    amount: int
    message: str
    status: BidStatusName
    negotiation_history: list[NegotiationEntryResponse]
    created_at: int
    action_required: bool = False


class JobResponse(BaseModel):
    """Job details with the bids visible to the caller."""

    id: str
    poster_id: str
    title: str
    description: str | None = None
    category: str | None = None
    budget: int
    status: JobStatusName
    accepted_bid_id: str | None = None
    created_at: int
    bids: list[BidResponse]
    action_required_count: int = 0


# =============================================================================
# Helper Functions
# =============================================================================


def _caller_role(job: Job, user_id: str) -> Role:
    return Role.POSTER if user_id == job.poster_id else Role.WORKER


def _pending_moves(job: Job, bids: list[Bid], role: Role) -> int:
    if role == Role.POSTER:
        return action_required_count(job, Role.POSTER)
    return sum(1 for b in bids if compute_action_required(b, Role.WORKER))


def to_bid_response(bid: Bid, role: Role) -> BidResponse:
    """Convert a bid to its response, flagged for the caller's role."""
    return BidResponse(
        id=bid.id,
        job_id=bid.job_id,
        worker_id=bid.worker_id,
        worker_name=bid.worker_name,
        amount=bid.amount,
        message=bid.message,
        status=bid.status.value,
        negotiation_history=[
            NegotiationEntryResponse(**entry.to_dict()) for entry in bid.negotiation_history
        ],
        created_at=bid.created_at,
        action_required=compute_action_required(bid, role),
    )


def to_job_response(job: Job, user_id: str) -> JobResponse:
    """Convert a job to its response.

    The poster sees every bid; anyone else sees only their own.
    """
    role = _caller_role(job, user_id)
    if role == Role.POSTER:
        bids = list(job.bids)
    else:
        bids = [b for b in job.bids if b.worker_id == user_id]
    return JobResponse(
        id=job.id,
        poster_id=job.poster_id,
        title=job.title,
        description=job.description,
        category=job.category,
        budget=job.budget,
        status=job.status.value,
        accepted_bid_id=job.accepted_bid_id,
        created_at=job.created_at,
        bids=[to_bid_response(b, role) for b in bids],
        action_required_count=_pending_moves(job, bids, role),
    )


# =============================================================================
# Job Endpoints
# =============================================================================


@router.get("/{job_id}", response_model=JobResponse)
@limiter.limit(READ_LIMIT)
async def get_job(request: Request, job_id: str, auth: CurrentUser, service: Negotiation):
    """Get a job with its bids."""
    try:
        job = service.get_job(job_id)
    except MarketplaceError as e:
        raise to_http_exception(e)
    return to_job_response(job, auth.user_id)


@router.post("/{job_id}/complete", response_model=JobResponse)
@limiter.limit(WRITE_LIMIT)
async def complete_job(request: Request, job_id: str, auth: CurrentUser, service: Negotiation):
    """Mark the hired job as done (poster only)."""
    logger.info(f"POST /jobs/{job_id}/complete | user={auth.user_id}")
    try:
        job = service.complete(job_id, auth.user_id)
    except MarketplaceError as e:
        raise to_http_exception(e)
    return to_job_response(job, auth.user_id)


@router.post("/{job_id}/cancel", response_model=JobResponse)
@limiter.limit(WRITE_LIMIT)
async def cancel_job(request: Request, job_id: str, auth: CurrentUser, service: Negotiation):
    """Cancel an open or in-progress job (poster only)."""
    logger.info(f"POST /jobs/{job_id}/cancel | user={auth.user_id}")
    try:
        job = service.cancel(job_id, auth.user_id)
    except MarketplaceError as e:
        raise to_http_exception(e)
    return to_job_response(job, auth.user_id)


# =============================================================================
# Bid Endpoints
# =============================================================================


@router.post("/{job_id}/bids", response_model=BidResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(WRITE_LIMIT)
async def place_bid(
    request: Request, job_id: str, body: BidCreate, auth: CurrentUser, service: Negotiation
):
    """Place a bid on an open job."""
    logger.info(f"POST /jobs/{job_id}/bids | user={auth.user_id} | amount={body.amount}")
    try:
        bid = service.place_bid(
            job_id, auth.user_id, body.amount, body.message, worker_name=body.worker_name
        )
    except MarketplaceError as e:
        raise to_http_exception(e)
    return to_bid_response(bid, Role.WORKER)


@router.post("/{job_id}/bids/{bid_id}/counter", response_model=BidResponse)
@limiter.limit(WRITE_LIMIT)
async def counter_bid(
    request: Request,
    job_id: str,
    bid_id: str,
    body: CounterOffer,
    auth: CurrentUser,
    service: Negotiation,
):
    """Counter the current amount. Either party may counter."""
    logger.info(f"POST /jobs/{job_id}/bids/{bid_id}/counter | user={auth.user_id} | amount={body.amount}")
    try:
        bid = service.counter(job_id, bid_id, auth.user_id, body.amount, message=body.message)
    except MarketplaceError as e:
        raise to_http_exception(e)
    role = Role.WORKER if bid.worker_id == auth.user_id else Role.POSTER
    return to_bid_response(bid, role)


@router.post("/{job_id}/bids/{bid_id}/agree", response_model=BidResponse)
@limiter.limit(WRITE_LIMIT)
async def agree_to_bid(
    request: Request, job_id: str, bid_id: str, auth: CurrentUser, service: Negotiation
):
    """Worker agrees to the current amount. The poster still has to hire."""
    logger.info(f"POST /jobs/{job_id}/bids/{bid_id}/agree | user={auth.user_id}")
    try:
        bid = service.accept_as_worker(job_id, bid_id, auth.user_id)
    except MarketplaceError as e:
        raise to_http_exception(e)
    return to_bid_response(bid, Role.WORKER)


@router.post("/{job_id}/bids/{bid_id}/hire", response_model=JobResponse)
@limiter.limit(WRITE_LIMIT)
async def hire_bid(
    request: Request, job_id: str, bid_id: str, auth: CurrentUser, service: Negotiation
):
    """Poster hires the worker behind a bid; rival bids are rejected."""
    logger.info(f"POST /jobs/{job_id}/bids/{bid_id}/hire | user={auth.user_id}")
    try:
        job = service.hire(job_id, bid_id, auth.user_id)
    except MarketplaceError as e:
        raise to_http_exception(e)
    return to_job_response(job, auth.user_id)


@router.post("/{job_id}/bids/{bid_id}/reject", response_model=BidResponse)
@limiter.limit(WRITE_LIMIT)
async def reject_bid(
    request: Request, job_id: str, bid_id: str, auth: CurrentUser, service: Negotiation
):
    """Poster rejects a bid. Rejecting twice succeeds without change."""
    logger.info(f"POST /jobs/{job_id}/bids/{bid_id}/reject | user={auth.user_id}")
    try:
        bid = service.reject(job_id, bid_id, auth.user_id)
    except MarketplaceError as e:
        raise to_http_exception(e)
    return to_bid_response(bid, Role.POSTER)


@router.delete("/{job_id}/bids/{bid_id}", response_model=JobResponse)
@limiter.limit(WRITE_LIMIT)
async def withdraw_bid(
    request: Request, job_id: str, bid_id: str, auth: CurrentUser, service: Negotiation
):
    """Worker withdraws their own pending bid."""
    logger.info(f"DELETE /jobs/{job_id}/bids/{bid_id} | user={auth.user_id}")
    try:
        job = service.withdraw(job_id, bid_id, auth.user_id)
    except MarketplaceError as e:
        raise to_http_exception(e)
    return to_job_response(job, auth.user_id)
