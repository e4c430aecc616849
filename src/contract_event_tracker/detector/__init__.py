"""Anomaly detection layer - Rolling-history heuristics over contract events."""

from contract_event_tracker.detector.anomaly import AnomalyDetector, DetectorConfig
from contract_event_tracker.detector.models import Alert, AlertKind, Severity

__all__ = [
    "Alert",
    "AlertKind",
    "AnomalyDetector",
    "DetectorConfig",
    "Severity",
]
