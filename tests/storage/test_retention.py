"""Tests for retention periods."""

import pytest

from contract_event_tracker.config import RetentionSettings
from contract_event_tracker.errors import ValidationError
from contract_event_tracker.storage.retention import (
    FINANCIAL_RETENTION_DAYS,
    OPERATIONAL_RETENTION_DAYS,
    PERFORMANCE_RETENTION_DAYS,
    RetentionPolicy,
)


class TestRetentionPolicy:
    """Tests for RetentionPolicy."""

    def test_defaults(self) -> None:
        policy = RetentionPolicy()

        assert policy.financial_days == FINANCIAL_RETENTION_DAYS == 2555
        assert policy.operational_days == OPERATIONAL_RETENTION_DAYS == 90
        assert policy.performance_days == PERFORMANCE_RETENTION_DAYS == 30

    @pytest.mark.parametrize(
        ("event_type", "expected"),
        [
            ("FundsLocked", 2555),
            ("BatchPayout", 2555),
            ("SomethingNew", 2555),
            ("OperationMetric", 90),
            ("PerformanceMetric", 30),
        ],
    )
    def test_days_for(self, event_type: str, expected: int) -> None:
        assert RetentionPolicy().days_for(event_type) == expected

    def test_rejects_non_positive(self) -> None:
        with pytest.raises(ValidationError):
            RetentionPolicy(performance_days=0)

    def test_from_settings(self) -> None:
        settings = RetentionSettings(
            RETENTION_FINANCIAL_DAYS=400,
            RETENTION_OPERATIONAL_DAYS=60,
            RETENTION_PERFORMANCE_DAYS=7,
        )

        policy = RetentionPolicy.from_settings(settings)

        assert policy == RetentionPolicy(financial_days=400, operational_days=60, performance_days=7)
