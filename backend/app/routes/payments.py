"""Payment routes: provider webhook and direct checkout verification.

Redelivery of an already applied payment is a success (200), so the provider
stops retrying. Rejections carry no detail that would help forge a request.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field

from ..auth import CurrentUser
from ..config import Settings, get_settings
from ..database import Database
from ..logging_config import get_logger
from ..payments import (
    AuthenticationError,
    ConfigurationError,
    MalformedEventError,
    OrderOwnershipError,
    PaymentError,
    PaymentGate,
    RazorpayClient,
    SupabaseLedger,
    UpstreamError,
)
from ..rate_limit import WEBHOOK_LIMIT, WRITE_LIMIT, limiter

logger = get_logger("chowkar.payments")
router = APIRouter(tags=["payments"])

SIGNATURE_HEADERS = ("x-signature", "x-razorpay-signature")
EVENT_ID_HEADERS = ("x-event-id", "x-razorpay-event-id")


# =============================================================================
# Request/Response Models
# =============================================================================


class WebhookResponse(BaseModel):
    received: bool = True
    processed: bool
    duplicate: bool = False
    idempotency_key: str | None = None


class CheckoutVerification(BaseModel):
    """Values the checkout widget hands back to the client."""

    razorpay_order_id: str = Field(..., min_length=1)
    razorpay_payment_id: str = Field(..., min_length=1)
    razorpay_signature: str = Field(..., min_length=1)


class CheckoutVerificationResponse(BaseModel):
    success: bool = True
    duplicate: bool
    kind: str
    coins: int = 0
    plan: str | None = None


# =============================================================================
# Dependencies
# =============================================================================


def get_payment_gate(
    db: Database, settings: Annotated[Settings, Depends(get_settings)]
) -> PaymentGate:
    """Payment gate wired to the Supabase ledger and Razorpay."""
    provider = None
    if settings.razorpay_key_id and settings.razorpay_key_secret:
        provider = RazorpayClient(
            settings.razorpay_key_id,
            settings.razorpay_key_secret,
            api_url=settings.razorpay_api_url,
        )
    return PaymentGate(
        SupabaseLedger(db),
        webhook_secret=settings.razorpay_webhook_secret,
        key_secret=settings.razorpay_key_secret,
        provider=provider,
    )


Gate = Annotated[PaymentGate, Depends(get_payment_gate)]


def _first_header(request: Request, names: tuple[str, ...]) -> str | None:
    for name in names:
        value = request.headers.get(name)
        if value:
            return value
    return None


def _payment_http_error(e: PaymentError) -> HTTPException:
    if isinstance(e, AuthenticationError):
        return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature")
    if isinstance(e, OrderOwnershipError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Order belongs to another user")
    if isinstance(e, MalformedEventError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if isinstance(e, ConfigurationError):
        logger.critical(f"Payment configuration error: {e}")
        return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Payment processing is misconfigured")
    if isinstance(e, UpstreamError):
        return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Payment could not be applied")
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Payment error")


# =============================================================================
# Endpoints
# =============================================================================


@router.post("/webhooks/razorpay", response_model=WebhookResponse)
@limiter.limit(WEBHOOK_LIMIT)
async def razorpay_webhook(request: Request, gate: Gate):
    """Receive a Razorpay webhook.

    The raw body is verified before parsing, so it must not be re-serialised.
    """
    raw_body = await request.body()
    signature = _first_header(request, SIGNATURE_HEADERS)
    event_id = _first_header(request, EVENT_ID_HEADERS)

    try:
        result = await gate.handle_webhook(raw_body, signature, event_id)
    except PaymentError as e:
        logger.warning(f"Webhook rejected | event_id={event_id} | {type(e).__name__}: {e}")
        raise _payment_http_error(e)

    if result is None:
        return WebhookResponse(processed=False)
    logger.info(f"Webhook handled | event_id={event_id} | key={result.key} | duplicate={result.duplicate}")
    return WebhookResponse(processed=True, duplicate=result.duplicate, idempotency_key=result.key)


@router.post("/payments/verify", response_model=CheckoutVerificationResponse)
@limiter.limit(WRITE_LIMIT)
async def verify_payment(request: Request, body: CheckoutVerification, auth: CurrentUser, gate: Gate):
    """Credit a completed checkout without waiting for the webhook.

    Uses the payment id as idempotency key, so whichever of this call and the
    webhook arrives second is a no-op.
    """
    logger.info(f"POST /payments/verify | user={auth.user_id} | order={body.razorpay_order_id}")
    try:
        result = await gate.verify_checkout(
            body.razorpay_order_id,
            body.razorpay_payment_id,
            body.razorpay_signature,
            auth.user_id,
        )
    except PaymentError as e:
        logger.warning(f"Checkout verification failed | user={auth.user_id} | {type(e).__name__}: {e}")
        raise _payment_http_error(e)

    return CheckoutVerificationResponse(
        duplicate=result.duplicate,
        kind=result.effect.kind.value,
        coins=result.effect.coins,
        plan=result.effect.plan.value if result.effect.plan else None,
    )
