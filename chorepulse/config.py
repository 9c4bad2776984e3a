"""
Configuration and settings for the ChorePulse API.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")
    app_url: str = Field(default="https://chorepulse.com")
    environment: str = Field(default="production")

    # Database (Postgres expected)
    database_url: Optional[str] = Field(default=None)

    # Sessions
    session_secret: str = Field(default="change-me")
    session_ttl_seconds: int = Field(default=60 * 60 * 24 * 30)
    session_cookie_name: str = Field(default="chorepulse_session")

    # S3-compatible storage for task photos
    cos_endpoint: Optional[str] = Field(default=None)
    cos_region: Optional[str] = Field(default=None)
    cos_bucket: Optional[str] = Field(default=None)
    aws_access_key_id: Optional[str] = Field(default=None)
    aws_secret_access_key: Optional[str] = Field(default=None)

    # LLM / Gemini
    gemini_api_key: Optional[str] = Field(default=None)
    gemini_model: str = Field(default="gemini-2.5-flash")
    ai_enabled: bool = Field(default=False)

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)

    # Queue (Redis)
    redis_url: Optional[str] = Field(default=None)
    redis_email_queue_key: str = Field(default="chorepulse:emails")

    # Email delivery (Resend)
    resend_api_key: Optional[str] = Field(default=None)
    email_from: str = Field(default="ChorePulse <noreply@chorepulse.com>")
    pro_pricing: str = Field(default="$9.99")
    premium_pricing: str = Field(default="$19.99")

    # Google Calendar
    google_client_id: Optional[str] = Field(default=None)
    google_client_secret: Optional[str] = Field(default=None)
    calendar_timezone: str = Field(default="America/New_York")
    cron_secret: Optional[str] = Field(default=None)

    # Property data
    rentcast_api_key: Optional[str] = Field(default=None)

    # Ads
    ads_enabled: bool = Field(default=False)
    adsense_client_id: Optional[str] = Field(default=None)
    adsense_slot_banner: Optional[str] = Field(default=None)
    adsense_slot_rectangle: Optional[str] = Field(default=None)
    adsense_slot_native: Optional[str] = Field(default=None)
    adsense_slot_interstitial: Optional[str] = Field(default=None)
    adsense_slot_leaderboard: Optional[str] = Field(default=None)

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"

    @property
    def calendar_redirect_uri(self) -> str:
        return f"{self.app_url.rstrip('/')}{self.api_prefix}/integrations/google-calendar/callback"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
