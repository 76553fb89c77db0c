"""HTTP mapping for marketplace errors."""

from fastapi import HTTPException, status

from chowkar.marketplace.errors import (
    BidNotFoundError,
    ChatUnavailableError,
    InvalidStateError,
    JobNotFoundError,
    MarketplaceError,
    NotAParticipantError,
    ReceiverUnresolvedError,
    UnauthorizedError,
    UpstreamError,
)

from ..logging_config import get_logger

logger = get_logger("chowkar.errors")

RETRY_SAFE_MESSAGE = "This job has changed since you last loaded it. Please refresh and try again."

_STATUS_BY_ERROR: list[tuple[type[MarketplaceError], int]] = [
    (JobNotFoundError, status.HTTP_404_NOT_FOUND),
    (BidNotFoundError, status.HTTP_404_NOT_FOUND),
    (UnauthorizedError, status.HTTP_403_FORBIDDEN),
    (NotAParticipantError, status.HTTP_403_FORBIDDEN),
    (InvalidStateError, status.HTTP_409_CONFLICT),
    (ChatUnavailableError, status.HTTP_409_CONFLICT),
    (ReceiverUnresolvedError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (UpstreamError, status.HTTP_502_BAD_GATEWAY),
]


def to_http_exception(e: MarketplaceError) -> HTTPException:
    """Translate a marketplace error into the response the client sees."""
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(e, error_type):
            break
    else:
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    if isinstance(e, InvalidStateError):
        logger.info(f"Stale transition rejected: {e}")
        return HTTPException(status_code=status_code, detail=RETRY_SAFE_MESSAGE)
    if isinstance(e, UpstreamError):
        logger.error(f"Upstream failure: {e}")
        return HTTPException(status_code=status_code, detail="Storage is temporarily unavailable")
    return HTTPException(status_code=status_code, detail=str(e))
