from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import Optional


class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    ENVIRONMENT: str = "dev"  # "dev" | "test" | "prod"

    # Database & Cache
    DATABASE_URL: Optional[str] = None
    TEST_DATABASE_URL: Optional[str] = None
    REDIS_URL: str = "redis://localhost:6379/0"

    # Auth provider JWTs (HS256, sub = user id)
    AUTH_JWT_SECRET: Optional[str] = None
    AUTH_JWT_AUDIENCE: Optional[str] = None  # e.g. "authenticated"

    # Admin access
    ADMIN_KEY: Optional[str] = None  # service key for schedulers
    ADMIN_AUTH_MODE: str = "hybrid"  # "jwt" | "legacy" | "hybrid"

    # Streaks
    STREAK_TIMEZONE: str = "America/Denver"
    BONUS_CARD_EXPIRY_DAYS: int = 7

    # AfterShip
    AFTERSHIP_API_KEY: Optional[str] = None
    AFTERSHIP_BASE_URL: str = "https://api.aftership.com/v4"
    AFTERSHIP_REQUEST_DELAY_SECONDS: float = 0.2

    # Stripe (pledges carry their own mode)
    STRIPE_SECRET_KEY_LIVE: Optional[str] = None
    STRIPE_SECRET_KEY_TEST: Optional[str] = None
    PLEDGE_RECONCILE_AFTER_MINUTES: int = 30
    PLEDGE_AUTO_CANCEL_AFTER_HOURS: int = 24
    PLEDGE_EMAIL_WEBHOOK_URL: Optional[str] = None

    # App
    CORS_ALLOWED_ORIGINS: str = "http://localhost:5173"  # comma-separated

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()
