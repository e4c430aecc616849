"""Alerter layer - Alert formatting and handlers."""

from contract_event_tracker.alerter.formatter import AlertFormatter
from contract_event_tracker.alerter.handlers import AlertRecorder, LoggingAlertHandler
from contract_event_tracker.alerter.models import FormattedAlert

__all__ = [
    "AlertFormatter",
    "AlertRecorder",
    "FormattedAlert",
    "LoggingAlertHandler",
]
