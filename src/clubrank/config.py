# src/clubrank/config.py

"""Application settings for ClubRank.

Domain tunables (validation timings, rating constants, decay) are loaded from
environment variables prefixed with ``CLUBRANK_`` or from a ``.env`` file.
Database connection settings are read here as well and turned into an
engine by ``clubrank.db.session``.

Usage:
    from clubrank.config import get_settings
    settings = get_settings()
    print(settings.auto_validate_hours)
"""

from functools import lru_cache

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration for the validation workflow and rating engine."""

    model_config = SettingsConfigDict(
        env_prefix="CLUBRANK_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # Database
    # ==========================================================================

    database_url: str = Field(
        default="sqlite+aiosqlite:///./clubrank.db",
        validation_alias=AliasChoices("CLUBRANK_DATABASE_URL", "DATABASE_URL"),
        description="Async SQLAlchemy URL (aiosqlite or asyncpg)",
    )
    db_echo: bool = Field(default=False, description="Log every SQL statement")
    db_pool_size: int = Field(
        default=20, description="Connections kept in the pool (not used for SQLite)"
    )
    db_max_overflow: int = Field(
        default=10, description="Max additional connections beyond pool_size"
    )
    db_pool_recycle: int = Field(
        default=3600, description="Seconds before a pooled connection is replaced"
    )

    log_level: str = Field(default="INFO", description="Level of the clubrank loggers")

    # ==========================================================================
    # Match validation workflow
    # ==========================================================================

    auto_validate_hours: int = Field(
        default=24, ge=1, description="Hours before a pending match auto-validates"
    )
    reminder_after_hours: int = Field(
        default=6, ge=1, description="Hours before the passive player is reminded"
    )
    contestation_window_days: int = Field(
        default=7, ge=0, description="Days after finalization a match can be contested"
    )
    max_contestations_per_month: int = Field(
        default=3, ge=0, description="Contestations allowed per player per month"
    )
    match_max_age_days: int = Field(
        default=183, ge=1, description="Oldest accepted played_at, in days"
    )

    # ==========================================================================
    # Rating engine
    # ==========================================================================

    default_rating: int = 1200
    min_rating: int = 100
    upset_threshold: int = Field(
        default=100, description="Rating gap for a win to count as an upset"
    )
    repetition_window_days: int = 30
    diversity_window_days: int = 7

    # ==========================================================================
    # Inactivity decay
    # ==========================================================================

    inactivity_days_threshold: int = 14
    inactivity_decay_per_day: int = 5
    max_inactivity_decay: int = 100

    # ==========================================================================
    # Scheduled jobs
    # ==========================================================================

    cron_secret: str | None = Field(
        default=None,
        description="Bearer token required by the /jobs endpoints",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure log level is valid."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_v = v.upper()
        if upper_v not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return upper_v


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()
