"""Tests for configuration loading."""

import logging
from collections.abc import Iterator
from pathlib import Path

import pytest
from pydantic import ValidationError

from contract_event_tracker.config import (
    DEFAULT_AMOUNT_THRESHOLDS,
    DetectorSettings,
    Settings,
    clear_settings_cache,
    get_settings,
)
from contract_event_tracker.detector.anomaly import DetectorConfig


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Iterator[None]:
    """Run each test away from any developer .env file."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("DATABASE_URL", "postgresql+asyncpg://tracker:s3cret@db:5432/events")
    clear_settings_cache()
    yield
    clear_settings_cache()


class TestSettings:
    """Tests for the root Settings object."""

    def test_defaults(self) -> None:
        settings = Settings()

        assert settings.database.pool_size == 5
        assert settings.detector.history_size == 1000
        assert settings.detector.min_history == 5
        assert settings.detector.amount_thresholds == DEFAULT_AMOUNT_THRESHOLDS
        assert settings.indexer.default_limit == 1000
        assert settings.indexer.max_limit == 10000
        assert settings.indexer.default_window_days == 30
        assert settings.retention.financial_days == 2555
        assert settings.retention.operational_days == 90
        assert settings.retention.performance_days == 30
        assert settings.get_logging_level() == logging.INFO

    def test_env_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DETECTOR_MIN_HISTORY", "10")
        monkeypatch.setenv("DETECTOR_AMOUNT_THRESHOLDS", '{"FundsLocked": 4.5}')
        monkeypatch.setenv("RETENTION_OPERATIONAL_DAYS", "14")
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")

        settings = Settings()

        assert settings.detector.min_history == 10
        assert settings.detector.amount_thresholds == {"FundsLocked": 4.5}
        assert settings.retention.operational_days == 14
        assert settings.get_logging_level() == logging.DEBUG

    def test_rejects_unsupported_database_url(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DATABASE_URL", "mysql://user:pw@localhost/events")
        with pytest.raises(ValidationError):
            Settings()

    def test_rejects_non_positive_threshold(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DETECTOR_AMOUNT_THRESHOLDS", '{"FundsLocked": 0}')
        with pytest.raises(ValidationError):
            DetectorSettings()

    def test_redacted_summary_masks_password(self) -> None:
        summary = Settings().redacted_summary()

        assert summary["database_url"] == "postgresql+asyncpg://tracker:***@db:5432/events"
        assert "s3cret" not in str(summary)

    def test_get_settings_is_cached(self) -> None:
        assert get_settings() is get_settings()
        clear_settings_cache()
        assert get_settings() is not None


class TestDetectorConfigFromSettings:
    """Settings are turned into an explicit detector configuration."""

    def test_from_settings(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DETECTOR_HISTORY_SIZE", "50")
        config = DetectorConfig.from_settings(DetectorSettings())

        assert config.history_size == 50
        assert config.amount_thresholds["BatchPayout"] == 2.0
        assert config.sla_for("batch_payout") == 5000.0
        assert config.sla_for("unknown_operation") == 2000.0
