"""Retention periods by event category."""

from __future__ import annotations

from dataclasses import dataclass

from contract_event_tracker.config import RetentionSettings
from contract_event_tracker.errors import ValidationError
from contract_event_tracker.ingestor.models import OPERATIONAL_EVENT_TYPES, PERFORMANCE_EVENT_TYPES

FINANCIAL_RETENTION_DAYS = 2555  # 7 years
OPERATIONAL_RETENTION_DAYS = 90
PERFORMANCE_RETENTION_DAYS = 30


@dataclass(frozen=True)
class RetentionPolicy:
    """How long each category of event is kept.

    Operation metrics use the operational period, performance metrics the
    performance period, and every other type (fund movements included) the
    financial period.
    """

    financial_days: int = FINANCIAL_RETENTION_DAYS
    operational_days: int = OPERATIONAL_RETENTION_DAYS
    performance_days: int = PERFORMANCE_RETENTION_DAYS

    def __post_init__(self) -> None:
        for name in ("financial_days", "operational_days", "performance_days"):
            if getattr(self, name) < 1:
                raise ValidationError(f"{name} must be >= 1")

    @classmethod
    def from_settings(cls, settings: RetentionSettings) -> RetentionPolicy:
        return cls(
            financial_days=settings.financial_days,
            operational_days=settings.operational_days,
            performance_days=settings.performance_days,
        )

    def days_for(self, event_type: str) -> int:
        if event_type in OPERATIONAL_EVENT_TYPES:
            return self.operational_days
        if event_type in PERFORMANCE_EVENT_TYPES:
            return self.performance_days
        return self.financial_days
