"""Configuration settings for Chowkar backend."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # Supabase
    supabase_url: str
    supabase_secret_key: str | None = None  # Backend/admin access
    supabase_service_role_key: str | None = None  # Legacy name for the same key

    # JWT (reads the bearer token issued by the auth provider)
    jwt_secret_key: str  # Required - no default for security
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 60 * 24 * 7  # 1 week

    # Razorpay
    razorpay_key_id: str | None = None
    razorpay_key_secret: str | None = None
    # Missing secret is reported per request, not at startup
    razorpay_webhook_secret: str | None = None
    razorpay_api_url: str = "https://api.razorpay.com/v1"

    # App
    debug: bool = False
    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "https://chowkar.in",
        "https://www.chowkar.in",
    ]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"  # Ignore extra env vars not in model


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
