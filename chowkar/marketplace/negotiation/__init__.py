"""Bid negotiation subsystem.

Models:
- Job: A work listing owned by a poster
- Bid: A worker's offer, with its negotiation history
- NegotiationEntry: One move in the back-and-forth
- Role, JobStatus, BidStatus: Lifecycle enums

State machine (pure):
- propose, counter, accept_as_worker, finalize_hire, reject_bid, withdraw,
  compute_action_required, action_required_count, complete, cancel

Service:
- NegotiationService: State machine plus authorization and persistence
"""

from chowkar.marketplace.negotiation.models import (
    TERMINAL_JOB_STATUSES,
    VALID_JOB_TRANSITIONS,
    Bid,
    BidStatus,
    Job,
    JobStatus,
    NegotiationEntry,
    Role,
)
from chowkar.marketplace.negotiation.service import NegotiationService
from chowkar.marketplace.negotiation.state_machine import (
    accept_as_worker,
    action_required_count,
    cancel,
    complete,
    compute_action_required,
    counter,
    finalize_hire,
    propose,
    reject_bid,
    withdraw,
)
from chowkar.marketplace.negotiation.storage import BidStorage, InMemoryBidStorage

__all__ = [
    # Models
    "Job",
    "Bid",
    "NegotiationEntry",
    "Role",
    "JobStatus",
    "BidStatus",
    "TERMINAL_JOB_STATUSES",
    "VALID_JOB_TRANSITIONS",
    # State machine
    "propose",
    "counter",
    "accept_as_worker",
    "finalize_hire",
    "reject_bid",
    "withdraw",
    "compute_action_required",
    "action_required_count",
    "complete",
    "cancel",
    # Service / storage
    "NegotiationService",
    "BidStorage",
    "InMemoryBidStorage",
]
