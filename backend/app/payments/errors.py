"""Payment error taxonomy."""


class PaymentError(Exception):
    """Base exception for payment processing."""

    pass


class AuthenticationError(PaymentError):
    """Signature mismatch. Fatal to the request, never retried."""

    pass


class MalformedEventError(PaymentError):
    """Event lacks required metadata. The provider will redeliver."""

    pass


class ConfigurationError(PaymentError):
    """A required secret or header is missing. Operators must be alerted."""

    pass


class UpstreamError(PaymentError):
    """The ledger RPC or the provider API failed."""

    pass


class OrderOwnershipError(PaymentError):
    """A valid checkout for an order that belongs to another user."""

    pass
