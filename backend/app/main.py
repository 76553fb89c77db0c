"""Chowkar Backend API - FastAPI application."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from .config import get_settings
from .logging_config import configure_logging, get_logger
from .rate_limit import limiter
from .routes import chat_router, inbox_router, jobs_router, payments_router

logger = get_logger("chowkar.app")

API_PREFIX = "/api/v1"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    settings = get_settings()
    configure_logging(settings.debug)
    logger.info(f"Starting Chowkar Backend API (debug={settings.debug})")
    if not settings.razorpay_webhook_secret:
        logger.warning("RAZORPAY_WEBHOOK_SECRET is not set; webhooks will be rejected")
    yield
    logger.info("Shutting down Chowkar Backend API")


app = FastAPI(
    title="Chowkar Backend API",
    description="Bid negotiation, chat and payments for the Chowkar marketplace",
    version="0.1.0",
    lifespan=lifespan,
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# CORS middleware
settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(jobs_router, prefix=API_PREFIX)
app.include_router(chat_router, prefix=API_PREFIX)
app.include_router(inbox_router, prefix=API_PREFIX)
app.include_router(payments_router, prefix=API_PREFIX)


@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "service": "chowkar-backend",
        "version": "0.1.0",
        "status": "ok",
    }


@app.get("/health")
async def health():
    """Detailed health check with actual database verification."""
    from .database import JOBS_TABLE, get_supabase_client

    db_status = "disconnected"
    try:
        db = get_supabase_client()
        db.table(JOBS_TABLE).select("id").limit(1).execute()
        db_status = "connected"
    except Exception as e:
        db_status = f"error: {str(e)[:50]}"

    overall_status = "healthy" if db_status == "connected" else "degraded"

    return {
        "status": overall_status,
        "database": db_status,
    }
