# settings.py
from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from uuid import UUID
from typing import Literal


DEV_JWT_SECRET = "dev-secret-change-me"
DEV_BLOB_SECRET = "dev-blob-secret-change-me"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    ENV: str = "dev"

    # -----------------------
    # DB
    # -----------------------
    DATABASE_URL: str = ""
    STORE_BACKEND: Literal["postgres", "memory"] = "postgres"

    # Actor recorded in status history for webhook-driven transitions
    WEBHOOK_ACTOR_ID: UUID = Field(default=UUID("00000000-0000-0000-0000-000000000001"))

    # -----------------------
    # JWT
    # -----------------------
    JWT_SECRET: str = Field(default=DEV_JWT_SECRET, min_length=16)
    JWT_ALG: str = Field(default="HS256")
    JWT_ACCESS_MINUTES: int = Field(default=60)
    # checked when set, to match what the identity provider puts in its tokens
    JWT_AUDIENCE: str = ""
    JWT_ISSUER: str = ""

    # -----------------------
    # Stripe
    # -----------------------
    STRIPE_SECRET_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""
    STRIPE_API_BASE: str = "https://api.stripe.com"
    STRIPE_HTTP_TIMEOUT_S: float = 10.0
    STRIPE_WEBHOOK_TOLERANCE_S: int = 300

    APPLICATION_FEE_CENTS: int = 2000
    APPLICATION_FEE_CURRENCY: str = "usd"

    # -----------------------
    # Blob storage
    # -----------------------
    BLOB_STORAGE_ROOT: str = "./var/blobs"
    BLOB_SIGNING_SECRET: str = DEV_BLOB_SECRET
    BLOB_URL_TTL_S: int = 3600
    MAX_UPLOAD_BYTES: int = 10 * 1024 * 1024

    # -----------------------
    # Payment confirmation wait
    # -----------------------
    PAYMENT_POLL_MAX_ATTEMPTS: int = 20
    PAYMENT_POLL_INTERVAL_S: float = 1.0

    # -----------------------
    # HTTP
    # -----------------------
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_PAYMENT_INTENT_PER_MIN: int = 10
    CORS_ALLOW_ORIGINS: str = "http://localhost:5173,http://127.0.0.1:5173"
    METRICS_TOKEN: str = ""


settings = Settings()


def cors_origins() -> list[str]:
    return [o.strip() for o in (settings.CORS_ALLOW_ORIGINS or "").split(",") if o.strip()]


def validate_env_settings() -> None:
    """
    Fail fast outside dev when secrets are missing or still on their dev defaults.
    """
    env = (settings.ENV or "dev").strip().lower()
    if env not in ("staging", "prod", "production"):
        return

    missing: list[str] = []
    if settings.STORE_BACKEND == "postgres" and not (settings.DATABASE_URL or "").strip():
        missing.append("DATABASE_URL")
    if not settings.JWT_SECRET or settings.JWT_SECRET == DEV_JWT_SECRET:
        missing.append("JWT_SECRET")
    if not (settings.STRIPE_SECRET_KEY or "").strip():
        missing.append("STRIPE_SECRET_KEY")
    if not (settings.STRIPE_WEBHOOK_SECRET or "").strip():
        missing.append("STRIPE_WEBHOOK_SECRET")
    if not settings.BLOB_SIGNING_SECRET or settings.BLOB_SIGNING_SECRET == DEV_BLOB_SECRET:
        missing.append("BLOB_SIGNING_SECRET")

    if missing:
        raise RuntimeError(f"Missing or insecure settings for ENV={env}: {', '.join(missing)}")
