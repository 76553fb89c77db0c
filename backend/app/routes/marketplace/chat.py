"""Chat routes.

A job's thread opens once someone is hired and only between its two
parties; every endpoint runs the chat session gate first.
"""

from fastapi import APIRouter, HTTPException, Query, Request, status
from pydantic import BaseModel, Field

from chowkar.marketplace.chat import (
    MESSAGES_PER_PAGE,
    ChatMessage,
    can_open_chat,
    compose_message,
    require_chat_access,
)
from chowkar.marketplace.errors import MarketplaceError, NotAParticipantError

from ...auth import CurrentUser
from ...database import CHAT_MESSAGES_TABLE, Database
from ...logging_config import get_logger
from ...marketplace.dependencies import Negotiation
from ...marketplace.errors import to_http_exception
from ...rate_limit import MESSAGE_LIMIT, READ_LIMIT, limiter

logger = get_logger("chowkar.chat")
router = APIRouter(prefix="/jobs", tags=["chat"])


# =============================================================================
# Request/Response Models
# =============================================================================


class ChatAccessResponse(BaseModel):
    """Chat gate decision for the caller."""

    availability: str
    allowed: bool
    job_id: str
    user_id: str
    counterpart_id: str | None = None
    reason: str | None = None


class MessageCreate(BaseModel):
    """Request to send a message."""

    text: str = Field(..., min_length=1, max_length=4000)
    receiver_id: str | None = None
    # Client-generated id; becomes the row id so retries and echoes collapse
    id: str | None = Field(None, max_length=64)


class MessageEdit(BaseModel):
    text: str = Field(..., min_length=1, max_length=4000)


class MessageResponse(BaseModel):
    id: str
    job_id: str
    sender_id: str
    receiver_id: str
    text: str
    timestamp: int
    is_deleted: bool = False
    read: bool = False
    translated_text: str | None = None


class MessageListResponse(BaseModel):
    """One page of a thread, oldest first."""

    messages: list[MessageResponse]
    page: int
    has_more: bool


# =============================================================================
# Database Operations
# =============================================================================


async def fetch_messages(db, job_id: str, page: int = 0) -> list[dict]:
    """Fetch one page of messages, newest page first."""
    start = page * MESSAGES_PER_PAGE
    result = (
        db.table(CHAT_MESSAGES_TABLE)
        .select("*")
        .eq("job_id", job_id)
        .order("created_at", desc=True)
        .range(start, start + MESSAGES_PER_PAGE - 1)
        .execute()
    )
    return result.data or []


async def insert_message(db, message: ChatMessage) -> dict | None:
    """Insert a message. Re-sending the same client id is a no-op."""
    result = (
        db.table(CHAT_MESSAGES_TABLE)
        .upsert(message.to_row(), on_conflict="id", ignore_duplicates=True)
        .execute()
    )
    return result.data[0] if result.data else None


async def get_message(db, message_id: str) -> dict | None:
    result = db.table(CHAT_MESSAGES_TABLE).select("*").eq("id", message_id).execute()
    return result.data[0] if result.data else None


async def update_message(db, message_id: str, sender_id: str, **updates) -> dict | None:
    """Update a message the sender owns."""
    result = (
        db.table(CHAT_MESSAGES_TABLE)
        .update(updates)
        .eq("id", message_id)
        .eq("sender_id", sender_id)
        .execute()
    )
    return result.data[0] if result.data else None


async def mark_messages_read(db, job_id: str, receiver_id: str) -> int:
    """Mark every unread message addressed to ``receiver_id`` as read."""
    result = (
        db.table(CHAT_MESSAGES_TABLE)
        .update({"read": True})
        .eq("job_id", job_id)
        .eq("receiver_id", receiver_id)
        .eq("read", False)
        .execute()
    )
    return len(result.data or [])


# =============================================================================
# Helper Functions
# =============================================================================


def to_message_response(message: ChatMessage) -> MessageResponse:
    return MessageResponse(**message.to_dict())


def _open_thread(service, job_id: str, user_id: str):
    """Load the job and run the gate; returns (job, decision)."""
    try:
        job = service.get_job(job_id)
        decision = require_chat_access(job, user_id)
    except MarketplaceError as e:
        raise to_http_exception(e)
    return job, decision


async def _own_message(db, job_id: str, message_id: str, user_id: str) -> ChatMessage:
    row = await get_message(db, message_id)
    if not row or row.get("job_id") != job_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Message not found")
    message = ChatMessage.from_row(row)
    if message.sender_id != user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You can only change your own messages")
    return message


# =============================================================================
# Endpoints
# =============================================================================


@router.get("/{job_id}/chat", response_model=ChatAccessResponse)
@limiter.limit(READ_LIMIT)
async def get_chat_access(request: Request, job_id: str, auth: CurrentUser, service: Negotiation):
    """Whether the caller may open this job's chat. Never an error for a known job."""
    try:
        job = service.get_job(job_id)
    except MarketplaceError as e:
        raise to_http_exception(e)
    return ChatAccessResponse(**can_open_chat(job, auth.user_id).to_dict())


@router.get("/{job_id}/messages", response_model=MessageListResponse)
@limiter.limit(READ_LIMIT)
async def list_messages(
    request: Request,
    job_id: str,
    auth: CurrentUser,
    service: Negotiation,
    db: Database,
    page: int = Query(0, ge=0),
):
    """One page of the thread. Page 0 holds the newest messages."""
    _open_thread(service, job_id, auth.user_id)
    rows = await fetch_messages(db, job_id, page)
    messages = [ChatMessage.from_row(r) for r in reversed(rows)]
    return MessageListResponse(
        messages=[to_message_response(m) for m in messages],
        page=page,
        has_more=len(rows) == MESSAGES_PER_PAGE,
    )


@router.post("/{job_id}/messages", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(MESSAGE_LIMIT)
async def send_message(
    request: Request,
    job_id: str,
    body: MessageCreate,
    auth: CurrentUser,
    service: Negotiation,
    db: Database,
):
    """Send a message. The receiver is derived from the job when omitted."""
    job, decision = _open_thread(service, job_id, auth.user_id)
    try:
        if body.receiver_id and body.receiver_id != decision.counterpart_id:
            raise NotAParticipantError("Messages can only be sent to the other party of this job")
        message = compose_message(
            job, auth.user_id, body.text, receiver_id=body.receiver_id, client_id=body.id
        )
    except MarketplaceError as e:
        raise to_http_exception(e)

    row = await insert_message(db, message)
    logger.info(f"Message sent | job={job_id} | id={message.id} | from={auth.user_id} | to={message.receiver_id}")
    return to_message_response(ChatMessage.from_row(row) if row else message)


@router.patch("/{job_id}/messages/{message_id}", response_model=MessageResponse)
@limiter.limit(MESSAGE_LIMIT)
async def edit_message(
    request: Request,
    job_id: str,
    message_id: str,
    body: MessageEdit,
    auth: CurrentUser,
    service: Negotiation,
    db: Database,
):
    """Edit the text of one of the caller's messages."""
    _open_thread(service, job_id, auth.user_id)
    message = await _own_message(db, job_id, message_id, auth.user_id)
    if message.is_deleted:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Deleted messages cannot be edited")
    row = await update_message(db, message_id, auth.user_id, text=body.text)
    if not row:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Message not found")
    return to_message_response(ChatMessage.from_row(row))


@router.delete("/{job_id}/messages/{message_id}", response_model=MessageResponse)
@limiter.limit(MESSAGE_LIMIT)
async def delete_message(
    request: Request,
    job_id: str,
    message_id: str,
    auth: CurrentUser,
    service: Negotiation,
    db: Database,
):
    """Soft-delete one of the caller's messages."""
    _open_thread(service, job_id, auth.user_id)
    await _own_message(db, job_id, message_id, auth.user_id)
    row = await update_message(db, message_id, auth.user_id, is_deleted=True)
    if not row:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Message not found")
    logger.info(f"Message deleted | job={job_id} | id={message_id}")
    return to_message_response(ChatMessage.from_row(row))


@router.post("/{job_id}/messages/read")
@limiter.limit(MESSAGE_LIMIT)
async def mark_read(request: Request, job_id: str, auth: CurrentUser, service: Negotiation, db: Database):
    """Mark the caller's incoming messages on this job as read."""
    _open_thread(service, job_id, auth.user_id)
    updated = await mark_messages_read(db, job_id, auth.user_id)
    return {"job_id": job_id, "marked_read": updated}
