"""Rolling-history anomaly detection for contract events.

This module provides the AnomalyDetector class that keeps a bounded history
per event type and flags events that deviate from it:
- Amount anomalies: amount above a multiple of the historical mean
- Operation failures: operation metrics reporting ``success == false``
- SLA violations: performance metrics slower than the operation's SLA
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from decimal import Decimal
from types import MappingProxyType

from contract_event_tracker.config import (
    DEFAULT_AMOUNT_THRESHOLDS,
    DEFAULT_SLA_THRESHOLDS_MS,
    DetectorSettings,
)
from contract_event_tracker.detector.models import Alert, AlertKind, Severity, new_alert_id
from contract_event_tracker.errors import ValidationError
from contract_event_tracker.ingestor.models import (
    OPERATION_METRIC,
    PERFORMANCE_METRIC,
    ContractEvent,
    OperationMetricPayload,
    PerformanceMetricPayload,
)

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_SIZE = 1000
DEFAULT_MIN_HISTORY = 5
DEFAULT_SLA_MS = 2000.0


def _frozen(mapping: Mapping[str, float]) -> Mapping[str, float]:
    return MappingProxyType(dict(mapping))


@dataclass(frozen=True)
class DetectorConfig:
    """Explicit detector configuration.

    Attributes:
        amount_thresholds: Event type -> multiple of the historical mean
            above which an amount is anomalous. Only these types are
            checked for amount anomalies.
        sla_thresholds_ms: Operation name -> SLA in milliseconds.
        default_sla_ms: SLA for operations missing from the table.
        history_size: Events retained per type (oldest evicted first).
        min_history: Prior events with an amount needed before amount
            anomalies can fire.
    """

    amount_thresholds: Mapping[str, float] = field(
        default_factory=lambda: _frozen(DEFAULT_AMOUNT_THRESHOLDS)
    )
    sla_thresholds_ms: Mapping[str, float] = field(
        default_factory=lambda: _frozen(DEFAULT_SLA_THRESHOLDS_MS)
    )
    default_sla_ms: float = DEFAULT_SLA_MS
    history_size: int = DEFAULT_HISTORY_SIZE
    min_history: int = DEFAULT_MIN_HISTORY

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount_thresholds", _frozen(self.amount_thresholds))
        object.__setattr__(self, "sla_thresholds_ms", _frozen(self.sla_thresholds_ms))
        if self.history_size < 1:
            raise ValidationError("history_size must be >= 1")
        if self.min_history < 1:
            raise ValidationError("min_history must be >= 1")

    @classmethod
    def from_settings(cls, settings: DetectorSettings) -> DetectorConfig:
        return cls(
            amount_thresholds=settings.amount_thresholds,
            sla_thresholds_ms=settings.sla_thresholds_ms,
            default_sla_ms=settings.default_sla_ms,
            history_size=settings.history_size,
            min_history=settings.min_history,
        )

    def with_threshold(self, event_type: str, threshold: float) -> DetectorConfig:
        """Return a copy with one amount threshold replaced or added."""
        if threshold <= 0:
            raise ValidationError(f"threshold must be > 0: {threshold!r}")
        return replace(self, amount_thresholds={**self.amount_thresholds, event_type: threshold})

    def sla_for(self, operation: str) -> float:
        return self.sla_thresholds_ms.get(operation, self.default_sla_ms)


class AnomalyDetector:
    """Detector for statistically unusual contract events.

    Every event passed to ``detect`` is recorded into its type's history,
    whether or not it produces an alert. Amount anomalies compare the
    current amount against the mean over *prior* events of the same type
    that carry an amount, and stay silent until ``min_history`` such
    events have been seen.

    Safe for concurrent callers: history and configuration are guarded by a
    single lock, so arrival order defines history order.

    Example:
        ```python
        detector = AnomalyDetector(DetectorConfig(min_history=10))
        for alert in detector.detect(event):
            print(alert.message)
        ```
    """

    def __init__(self, config: DetectorConfig | None = None) -> None:
        self._config = config or DetectorConfig()
        self._lock = threading.Lock()
        self._history: dict[str, deque[ContractEvent]] = {}

    @property
    def config(self) -> DetectorConfig:
        with self._lock:
            return self._config

    def set_threshold(self, event_type: str, threshold: float) -> None:
        """Replace the amount threshold for an event type.

        Applies to subsequent evaluations only; recorded history is not
        re-evaluated.

        Raises:
            ValidationError: If ``threshold`` is not positive.
        """
        with self._lock:
            self._config = self._config.with_threshold(event_type, threshold)
        logger.info("Amount threshold for %s set to %.2fx", event_type, threshold)

    def history(self, event_type: str) -> list[ContractEvent]:
        """Return a snapshot of the recorded history for an event type."""
        with self._lock:
            return list(self._history.get(event_type, ()))

    def detect(self, event: ContractEvent) -> list[Alert]:
        """Record an event into history and return any alerts it triggers."""
        with self._lock:
            config = self._config
            history = self._history.get(event.event_type)
            if history is None:
                history = deque(maxlen=config.history_size)
                self._history[event.event_type] = history

            alerts: list[Alert] = []
            if event.event_type in config.amount_thresholds:
                alert = self._detect_amount_anomaly(event, history, config)
                if alert is not None:
                    alerts.append(alert)

            history.append(event)

        if event.event_type == OPERATION_METRIC:
            alert = self._detect_operation_failure(event)
            if alert is not None:
                alerts.append(alert)
        elif event.event_type == PERFORMANCE_METRIC:
            alert = self._detect_performance_anomaly(event, config)
            if alert is not None:
                alerts.append(alert)

        for alert in alerts:
            logger.info(
                "Anomaly detected: kind=%s, event_type=%s, event_id=%s, message=%s",
                alert.kind.value,
                alert.event_type,
                alert.event_id,
                alert.message,
            )
        return alerts

    def _detect_amount_anomaly(
        self,
        event: ContractEvent,
        prior: deque[ContractEvent],
        config: DetectorConfig,
    ) -> Alert | None:
        amount = event.amount
        if amount is None:
            return None

        prior_amounts = [a for a in (e.amount for e in prior) if a is not None]
        if len(prior_amounts) < config.min_history:
            return None

        average = sum(prior_amounts, Decimal("0")) / len(prior_amounts)
        threshold = Decimal(str(config.amount_thresholds[event.event_type]))
        if amount <= average * threshold:
            return None

        multiplier = amount / average if average > 0 else None
        return Alert(
            id=new_alert_id(AlertKind.AMOUNT_ANOMALY),
            kind=AlertKind.AMOUNT_ANOMALY,
            severity=Severity.INFO,
            message=f"Unusual transaction amount: {amount:.0f} (avg: {average:.0f})",
            event_type=event.event_type,
            event_id=event.id,
            data={
                "amount": amount,
                "average": average,
                "threshold": threshold,
                "multiplier": multiplier,
                "sample_size": len(prior_amounts),
            },
        )

    def _detect_operation_failure(self, event: ContractEvent) -> Alert | None:
        payload = event.payload
        if not isinstance(payload, OperationMetricPayload) or payload.success:
            return None

        return Alert(
            id=new_alert_id(AlertKind.OPERATION_FAILURE),
            kind=AlertKind.OPERATION_FAILURE,
            severity=Severity.WARNING,
            message=f"Operation failed: {payload.operation}",
            event_type=event.event_type,
            event_id=event.id,
            data={
                "operation": payload.operation,
                "caller": payload.caller,
                "error": payload.error,
            },
        )

    def _detect_performance_anomaly(
        self,
        event: ContractEvent,
        config: DetectorConfig,
    ) -> Alert | None:
        payload = event.payload
        if not isinstance(payload, PerformanceMetricPayload):
            return None

        sla = Decimal(str(config.sla_for(payload.operation)))
        if payload.duration_ms <= sla:
            return None

        return Alert(
            id=new_alert_id(AlertKind.SLA_VIOLATION),
            kind=AlertKind.SLA_VIOLATION,
            severity=Severity.WARNING,
            message=(
                f"SLA violation: {payload.operation} took {payload.duration_ms:.0f}ms "
                f"(SLA: {sla:.0f}ms)"
            ),
            event_type=event.event_type,
            event_id=event.id,
            data={
                "operation": payload.operation,
                "duration": payload.duration_ms,
                "sla": sla,
                "exceeded": payload.duration_ms - sla,
            },
        )
