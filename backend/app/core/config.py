"""
Environment configuration — single source of truth for all settings.

Uses pydantic-settings for type-safe config with .env file support.
All values have sensible defaults for local development.

Usage:
    from backend.app.core.config import settings
    print(settings.LOOKBACK_DAYS)
"""

from __future__ import annotations

from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application-wide settings loaded from environment variables or .env file.

    Precedence: env var > .env file > default value
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # ── Application ──
    APP_NAME: str = "Climate Risk Monitor"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"  # development | staging | production
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"  # DEBUG | INFO | WARNING | ERROR | CRITICAL
    LOG_FORMAT: str = "auto"  # auto | json | pretty

    # ── Server ──
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # ── CORS ──
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]
    CORS_ALLOW_ALL: bool = True  # False in production

    # ── Climate data provider (hosted PostgREST / Supabase) ──
    SUPABASE_URL: Optional[str] = None
    SUPABASE_ANON_KEY: Optional[str] = None
    CLIMATE_READINGS_TABLE: str = "climate_readings"
    DATA_FETCH_TIMEOUT: float = 30.0  # seconds
    LATEST_READINGS_LIMIT: int = Field(default=100, ge=1)

    # ── Scoring pipeline ──
    LOOKBACK_DAYS: int = Field(default=15, ge=1, le=90)  # analysis window fed to the pattern analyzer
    FORECAST_DAYS: int = Field(default=7, ge=1, le=30)  # weekly forecast horizon
    SIGNAL_SEED: Optional[int] = None  # seed for placeholder signals

    # ── Periodic re-assessment ──
    ENABLE_SCHEDULER: bool = False
    ASSESSMENT_INTERVAL_SECONDS: int = Field(default=300, ge=1)  # 5 min
    ASSESSMENT_HISTORY_SIZE: int = Field(default=10, ge=1)

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def provider_configured(self) -> bool:
        return bool(self.SUPABASE_URL and self.SUPABASE_ANON_KEY)


@lru_cache()
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()


settings = get_settings()
