"""Alert message formatter.

This module turns detector Alerts into human-readable, actionable messages
in plain-text and structured form.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Literal

from contract_event_tracker.alerter.models import FormattedAlert
from contract_event_tracker.detector.models import Alert, AlertKind, Severity

# Embed colors (decimal values)
COLOR_CRITICAL = 15158332  # Red (#E74C3C)
COLOR_WARNING = 15105570  # Orange (#E67E22)
COLOR_INFO = 3447003  # Blue (#3498DB)

SEVERITY_COLORS = {
    Severity.CRITICAL: COLOR_CRITICAL,
    Severity.WARNING: COLOR_WARNING,
    Severity.INFO: COLOR_INFO,
}

KIND_TITLES = {
    AlertKind.AMOUNT_ANOMALY: "Unusual Amount",
    AlertKind.OPERATION_FAILURE: "Operation Failed",
    AlertKind.SLA_VIOLATION: "SLA Violation",
}


def truncate_id(value: str, chars: int = 8) -> str:
    """Shorten a long identifier to its first ``chars`` characters."""
    if len(value) <= chars + 3:
        return value
    return f"{value[:chars]}..."


def format_amount(amount: object) -> str:
    """Format an amount with thousands separators and 2 decimal places."""
    try:
        return f"{Decimal(str(amount)):,.2f}"
    except ArithmeticError:
        return str(amount)


def get_severity_color(severity: Severity) -> int:
    return SEVERITY_COLORS.get(severity, COLOR_INFO)


def get_details(alert: Alert) -> list[str]:
    """Kind-specific evidence lines."""
    data = alert.data
    if alert.kind is AlertKind.AMOUNT_ANOMALY:
        return [
            f"Amount: {format_amount(data.get('amount'))}",
            f"Average: {format_amount(data.get('average'))} over {data.get('sample_size')} events",
            f"Threshold: {data.get('threshold')}x",
        ]
    if alert.kind is AlertKind.OPERATION_FAILURE:
        lines = [f"Operation: {data.get('operation')}"]
        if data.get("caller"):
            lines.append(f"Caller: {data['caller']}")
        if data.get("error"):
            lines.append(f"Error: {data['error']}")
        return lines
    if alert.kind is AlertKind.SLA_VIOLATION:
        return [
            f"Operation: {data.get('operation')}",
            f"Duration: {data.get('duration')}ms (SLA {data.get('sla')}ms)",
            f"Exceeded by: {data.get('exceeded')}ms",
        ]
    return [f"{key}: {value}" for key, value in sorted(data.items())]


class AlertFormatter:
    """Formats Alerts into delivery-ready messages.

    Supports two verbosity levels:
    - compact: Severity, kind and message only
    - detailed: Full context (evidence, event reference, timestamp)
    """

    def __init__(
        self,
        verbosity: Literal["compact", "detailed"] = "detailed",
    ) -> None:
        """Initialize the formatter.

        Args:
            verbosity: Level of detail in formatted messages.
        """
        self.verbosity = verbosity

    def format(self, alert: Alert) -> FormattedAlert:
        """Format an alert.

        Args:
            alert: The alert to format.

        Returns:
            FormattedAlert with every rendering.
        """
        kind_title = KIND_TITLES.get(alert.kind, alert.kind.value)
        title = f"[{alert.severity.value}] {kind_title} - {alert.event_type}"
        details = get_details(alert)

        return FormattedAlert(
            title=title,
            body=self._build_body(alert, details),
            plain_text=self._build_plain_text(alert, title, details),
            structured=self._build_structured(alert, title, details),
        )

    def _build_body(self, alert: Alert, details: list[str]) -> str:
        if self.verbosity == "compact":
            return alert.message

        lines = [alert.message, *details]
        lines.append(f"Event: {truncate_id(alert.event_id)}")
        return "\n".join(lines)

    def _build_structured(
        self,
        alert: Alert,
        title: str,
        details: list[str],
    ) -> dict[str, object]:
        fields: list[dict[str, object]] = [
            {"name": "Event Type", "value": alert.event_type, "inline": True},
            {"name": "Severity", "value": alert.severity.value, "inline": True},
        ]
        if self.verbosity == "detailed":
            fields.append({"name": "Details", "value": "\n".join(details), "inline": False})
            fields.append({"name": "Event", "value": f"`{alert.event_id}`", "inline": False})

        return {
            "title": title,
            "description": alert.message,
            "color": get_severity_color(alert.severity),
            "fields": fields,
            "timestamp": alert.timestamp.isoformat(),
            "footer": {"text": f"Alert {alert.id}"},
        }

    def _build_plain_text(self, alert: Alert, title: str, details: list[str]) -> str:
        lines = [title, "=" * len(title), "", alert.message]

        if self.verbosity == "detailed":
            lines.extend(details)
            lines.append("")
            lines.append(f"Event: {alert.event_id}")
            lines.append(f"Raised: {alert.timestamp.isoformat()}")

        return "\n".join(lines)
