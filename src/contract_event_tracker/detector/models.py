"""Data models for the detector module."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class Severity(str, Enum):
    """Alert severity levels."""

    INFO = "INFO"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


class AlertKind(str, Enum):
    """Which heuristic produced an alert."""

    AMOUNT_ANOMALY = "amount_anomaly"
    OPERATION_FAILURE = "operation_failure"
    SLA_VIOLATION = "sla_violation"


def new_alert_id(kind: AlertKind) -> str:
    return f"{kind.value}-{uuid.uuid4().hex}"


def _jsonable(value: Any) -> Any:
    if value is None or isinstance(value, (str, bool, int, float)):
        return value
    return str(value)


@dataclass(frozen=True)
class Alert:
    """Signal emitted when an event deviates from recent history or a rule.

    Alerts are ephemeral: the detector creates them and hands them to alert
    handlers; persisting them is a handler's concern.

    Attributes:
        id: Unique alert identifier.
        kind: Heuristic that produced the alert.
        severity: INFO, WARNING or CRITICAL.
        message: Human-readable description.
        event_type: Type of the triggering event.
        event_id: Id of the triggering event (a reference, not ownership).
        data: Supporting evidence.
        timestamp: When this alert was generated.
    """

    id: str
    kind: AlertKind
    severity: Severity
    message: str
    event_type: str
    event_id: str
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def is_critical(self) -> bool:
        return self.severity is Severity.CRITICAL

    def to_dict(self) -> dict[str, object]:
        """Serialize to a JSON-friendly dictionary."""
        return {
            "id": self.id,
            "kind": self.kind.value,
            "severity": self.severity.value,
            "message": self.message,
            "event_type": self.event_type,
            "event_id": self.event_id,
            "data": {k: _jsonable(v) for k, v in self.data.items()},
            "timestamp": self.timestamp.isoformat(),
        }
