"""Application settings loaded from environment variables.

Uses pydantic-settings for validation and type coercion. All keys use the
``SAFEGUARD_`` prefix. These are process-level knobs (timeouts, logging,
storage location); the user-facing emergency preferences live in
:class:`safeguard.models.user_settings.UserSettings`.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(StrEnum):
    DEVELOPMENT = "development"
    PRODUCTION = "production"


class Settings(BaseSettings):
    """Central configuration for the SafeGuard alert engine.

    Environment variables are loaded from a ``.env`` file when present.
    """

    model_config = SettingsConfigDict(
        env_prefix="SAFEGUARD_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # ── App ────────────────────────────────────────────────────────────
    env: Literal["development", "production"] = "development"

    # ── API ────────────────────────────────────────────────────────────
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    # Comma-separated; only consulted in production.
    cors_origins: str = ""

    # ── Logging ────────────────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: str = "json"

    # ── Engine timing (seconds) ────────────────────────────────────────
    countdown_tick_seconds: float = Field(default=1.0, gt=0)
    location_timeout_seconds: float = Field(default=5.0, gt=0)
    send_timeout_seconds: float = Field(default=10.0, gt=0)
    send_retry_backoff_seconds: float = Field(default=2.0, ge=0)

    # ── Analytics ──────────────────────────────────────────────────────
    analytics_window_days: int = Field(default=30, gt=0)
    score_penalty_per_event: int = Field(default=10, ge=0)
    hotspot_radius_meters: float = Field(default=500.0, gt=0)

    # ── Persistence ────────────────────────────────────────────────────
    # Empty means in-memory only.
    event_log_path: str = ""

    # ── Host location adapter ──────────────────────────────────────────
    static_latitude: float | None = None
    static_longitude: float | None = None
    static_accuracy_meters: float = 25.0

    # ── Derived Properties ─────────────────────────────────────────────

    @property
    def is_production(self) -> bool:
        return self.env == Environment.PRODUCTION

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


# Module-level singleton: import ``settings`` everywhere.
settings = Settings()
