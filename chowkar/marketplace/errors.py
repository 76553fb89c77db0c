"""Error taxonomy shared by the marketplace subsystems."""


class MarketplaceError(Exception):
    """Base exception for marketplace operations."""

    pass


class InvalidStateError(MarketplaceError):
    """Raised when a job or bid is not in a state that permits the operation.

    Usually a stale client view; safe to refresh and retry.
    """

    pass


class UnauthorizedError(MarketplaceError):
    """Raised when the acting user may not perform the operation."""

    pass


class JobNotFoundError(MarketplaceError):
    """Raised when a job is not found."""

    pass


class BidNotFoundError(MarketplaceError):
    """Raised when a bid is not found on its job."""

    pass


class ChatUnavailableError(MarketplaceError):
    """Raised when chat is requested before anyone was hired."""

    pass


class NotAParticipantError(MarketplaceError):
    """Raised when a user who is neither poster nor hired worker opens a chat."""

    pass


class ReceiverUnresolvedError(MarketplaceError):
    """Raised when no receiver can be derived for a chat message."""

    pass


class UpstreamError(MarketplaceError):
    """Raised when the persistent store or a remote API fails.

    Propagated to the caller, which decides whether to retry.
    """

    pass


class InboxActionError(MarketplaceError):
    """Raised when an archive, unarchive or delete call fails.

    The message is safe to show to the user.
    """

    pass
