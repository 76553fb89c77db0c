"""Inbox routes.

The bulk summary is one RPC for all of a user's conversations; archive,
unarchive and delete are idempotent per (job, user).
"""

from fastapi import APIRouter, HTTPException, Request, status
from pydantic import BaseModel

from chowkar.marketplace.inbox import InboxChatSummary

from ...auth import CurrentUser
from ...database import Database, rpc
from ...logging_config import get_logger
from ...rate_limit import READ_LIMIT, WRITE_LIMIT, limiter

logger = get_logger("chowkar.inbox")
router = APIRouter(prefix="/inbox", tags=["inbox"])


# =============================================================================
# Request/Response Models
# =============================================================================


class InboxChatResponse(BaseModel):
    """One conversation preview."""

    job_id: str
    job_title: str
    job_status: str
    poster_id: str
    counterpart_id: str
    counterpart_name: str
    counterpart_photo: str | None = None
    counterpart_rating: float | None = None
    last_message_text: str | None = None
    last_message_time: int | None = None
    last_message_sender_id: str | None = None
    last_message_is_read: bool | None = None
    unread_count: int = 0
    is_archived: bool | None = None
    is_deleted: bool = False


class InboxResponse(BaseModel):
    chats: list[InboxChatResponse]
    total: int


class InboxActionResponse(BaseModel):
    job_id: str
    action: str
    success: bool = True


# =============================================================================
# Database Operations
# =============================================================================

INBOX_ACTION_RPCS = {
    "archive": "archive_chat",
    "unarchive": "unarchive_chat",
    "delete": "delete_chat",
}


async def get_inbox_summaries(db, user_id: str) -> list[dict]:
    """All conversation previews for a user in one round trip."""
    return rpc(db, "get_inbox_summaries", {"p_user_id": user_id}) or []


async def apply_inbox_action(db, action: str, job_id: str, user_id: str) -> None:
    rpc(db, INBOX_ACTION_RPCS[action], {"p_job_id": job_id, "p_user_id": user_id})


# =============================================================================
# Endpoints
# =============================================================================


@router.get("", response_model=InboxResponse)
@limiter.limit(READ_LIMIT)
async def get_inbox(request: Request, auth: CurrentUser, db: Database):
    """Get the caller's conversation previews."""
    try:
        rows = await get_inbox_summaries(db, auth.user_id)
    except Exception as e:
        logger.error(f"Inbox fetch failed | user={auth.user_id} | {e}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Could not load inbox")

    chats = [InboxChatResponse(**InboxChatSummary.from_row(r).to_dict()) for r in rows]
    logger.info(f"GET /inbox | user={auth.user_id} | chats={len(chats)}")
    return InboxResponse(chats=chats, total=len(chats))


async def _inbox_action(action: str, job_id: str, auth, db) -> InboxActionResponse:
    try:
        await apply_inbox_action(db, action, job_id, auth.user_id)
    except Exception as e:
        logger.error(f"Inbox {action} failed | job={job_id} | user={auth.user_id} | {e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Could not {action} this chat. Please try again.",
        )
    logger.info(f"POST /inbox/{job_id}/{action} | user={auth.user_id}")
    return InboxActionResponse(job_id=job_id, action=action)


@router.post("/{job_id}/archive", response_model=InboxActionResponse)
@limiter.limit(WRITE_LIMIT)
async def archive_chat(request: Request, job_id: str, auth: CurrentUser, db: Database):
    """Archive a conversation for the caller."""
    return await _inbox_action("archive", job_id, auth, db)


@router.post("/{job_id}/unarchive", response_model=InboxActionResponse)
@limiter.limit(WRITE_LIMIT)
async def unarchive_chat(request: Request, job_id: str, auth: CurrentUser, db: Database):
    """Restore a manually archived conversation."""
    return await _inbox_action("unarchive", job_id, auth, db)


@router.post("/{job_id}/delete", response_model=InboxActionResponse)
@limiter.limit(WRITE_LIMIT)
async def delete_chat(request: Request, job_id: str, auth: CurrentUser, db: Database):
    """Hide a conversation from the caller's inbox for good."""
    return await _inbox_action("delete", job_id, auth, db)
