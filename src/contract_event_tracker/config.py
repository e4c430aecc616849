"""Configuration management service with Pydantic Settings.

This module provides centralized configuration management for the
Contract Event Tracker, loading and validating environment variables
at startup.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_ENV_FILE = ".env"
_ENV_FILE_ENCODING = "utf-8"

DEFAULT_AMOUNT_THRESHOLDS: dict[str, float] = {
    "FundsLocked": 3.0,
    "FundsReleased": 3.0,
    "FundsRefunded": 3.0,
    "ProgramFundsLocked": 3.0,
    "BatchPayout": 2.0,
}

DEFAULT_SLA_THRESHOLDS_MS: dict[str, float] = {
    "lock_funds": 1000.0,
    "release_funds": 1000.0,
    "refund_funds": 1000.0,
    "batch_payout": 5000.0,
}


class DatabaseSettings(BaseSettings):
    """Database connection settings."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    url: str = Field(
        alias="DATABASE_URL",
        description="SQLAlchemy connection string for the event store",
    )
    pool_size: int = Field(
        default=5,
        alias="DATABASE_POOL_SIZE",
        ge=1,
        le=100,
        description="Connection pool size",
    )
    max_overflow: int = Field(
        default=10,
        alias="DATABASE_MAX_OVERFLOW",
        ge=0,
        le=100,
        description="Maximum overflow connections above pool_size",
    )
    echo: bool = Field(
        default=False,
        alias="DATABASE_ECHO",
        description="Echo SQL statements for debugging",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate database URL format."""
        if not v.startswith(("postgresql://", "postgresql+asyncpg://", "sqlite+aiosqlite://")):
            raise ValueError("DATABASE_URL must be a PostgreSQL or sqlite+aiosqlite connection string")
        return v


class DetectorSettings(BaseSettings):
    """Anomaly detector configuration."""

    model_config = SettingsConfigDict(env_prefix="DETECTOR_", extra="ignore")

    history_size: int = Field(
        default=1000,
        alias="DETECTOR_HISTORY_SIZE",
        ge=1,
        le=1_000_000,
        description="Rolling history kept per event type",
    )
    min_history: int = Field(
        default=5,
        alias="DETECTOR_MIN_HISTORY",
        ge=1,
        description="Prior events with an amount required before amount anomalies fire",
    )
    amount_thresholds: dict[str, float] = Field(
        default_factory=lambda: dict(DEFAULT_AMOUNT_THRESHOLDS),
        alias="DETECTOR_AMOUNT_THRESHOLDS",
        description="Event type -> multiple of the historical mean that counts as anomalous (JSON)",
    )
    sla_thresholds_ms: dict[str, float] = Field(
        default_factory=lambda: dict(DEFAULT_SLA_THRESHOLDS_MS),
        alias="DETECTOR_SLA_THRESHOLDS_MS",
        description="Operation -> SLA duration in milliseconds (JSON)",
    )
    default_sla_ms: float = Field(
        default=2000.0,
        alias="DETECTOR_DEFAULT_SLA_MS",
        gt=0.0,
        description="SLA applied to operations missing from the SLA table",
    )

    @field_validator("amount_thresholds", "sla_thresholds_ms")
    @classmethod
    def validate_positive(cls, v: dict[str, float]) -> dict[str, float]:
        for key, value in v.items():
            if value <= 0:
                raise ValueError(f"threshold for {key!r} must be > 0")
        return v


class IndexerSettings(BaseSettings):
    """Event store query limits."""

    model_config = SettingsConfigDict(env_prefix="INDEXER_", extra="ignore")

    default_limit: int = Field(
        default=1000,
        alias="INDEXER_DEFAULT_LIMIT",
        ge=1,
        description="Page size used when a query does not set a limit",
    )
    max_limit: int = Field(
        default=10000,
        alias="INDEXER_MAX_LIMIT",
        ge=1,
        description="Hard cap on a single query page",
    )
    default_window_days: int = Field(
        default=30,
        alias="INDEXER_DEFAULT_WINDOW_DAYS",
        ge=1,
        le=3650,
        description="Time window substituted into filters without time bounds",
    )
    unindexed_batch_limit: int = Field(
        default=100,
        alias="INDEXER_UNINDEXED_BATCH_LIMIT",
        ge=1,
        le=1000,
        description="Default batch size when fetching events pending post-processing",
    )


class RetentionSettings(BaseSettings):
    """Retention periods per event category."""

    model_config = SettingsConfigDict(env_prefix="RETENTION_", extra="ignore")

    financial_days: int = Field(
        default=2555,
        alias="RETENTION_FINANCIAL_DAYS",
        ge=1,
        description="Retention for fund movement events (7 years)",
    )
    operational_days: int = Field(
        default=90,
        alias="RETENTION_OPERATIONAL_DAYS",
        ge=1,
        description="Retention for operation metrics",
    )
    performance_days: int = Field(
        default=30,
        alias="RETENTION_PERFORMANCE_DAYS",
        ge=1,
        description="Retention for performance metrics",
    )


class Settings(BaseSettings):
    """Main application settings.

    Loads configuration from environment variables with support for
    .env files via python-dotenv.

    Example:
        ```python
        from contract_event_tracker.config import get_settings

        settings = get_settings()
        print(settings.database.url)
        print(settings.detector.amount_thresholds)
        ```
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding=_ENV_FILE_ENCODING,
        extra="ignore",
    )

    # Each nested BaseSettings must be given the same env_file, otherwise it
    # only reads from the process environment.
    database: DatabaseSettings = Field(
        default_factory=lambda: DatabaseSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    detector: DetectorSettings = Field(
        default_factory=lambda: DetectorSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    indexer: IndexerSettings = Field(
        default_factory=lambda: IndexerSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    retention: RetentionSettings = Field(
        default_factory=lambda: RetentionSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level",
    )

    def get_logging_level(self) -> int:
        """Get the numeric logging level."""
        level: int = getattr(logging, self.log_level)
        return level

    def redacted_summary(self) -> dict[str, str | dict[str, str]]:
        """Get a summary of settings with secrets redacted.

        Returns:
            Dictionary of settings with sensitive values masked.
        """
        return {
            "database_url": self._redact_url(self.database.url),
            "detector": {
                "history_size": str(self.detector.history_size),
                "min_history": str(self.detector.min_history),
                "default_sla_ms": str(self.detector.default_sla_ms),
            },
            "indexer": {
                "default_limit": str(self.indexer.default_limit),
                "max_limit": str(self.indexer.max_limit),
            },
            "retention": {
                "financial_days": str(self.retention.financial_days),
                "operational_days": str(self.retention.operational_days),
                "performance_days": str(self.retention.performance_days),
            },
            "log_level": self.log_level,
        }

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact password from URL if present."""
        if "@" in url and "://" in url:
            protocol_end = url.index("://") + 3
            at_pos = url.index("@")
            creds_part = url[protocol_end:at_pos]
            if ":" in creds_part:
                username = creds_part.split(":")[0]
                return f"{url[:protocol_end]}{username}:***@{url[at_pos + 1 :]}"
        return url


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the application settings singleton.

    Returns:
        The Settings instance.

    Raises:
        ValidationError: If required environment variables are missing
            or have invalid values.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Useful for testing when you need to reload settings with
    different environment variables.
    """
    get_settings.cache_clear()
