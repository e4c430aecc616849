"""Export of filtered event sets as JSON, CSV or a summary document."""

from __future__ import annotations

import csv
import io
import json
import logging
from collections.abc import Sequence
from typing import Any

from contract_event_tracker.errors import EmptyInputError
from contract_event_tracker.filtering.statistics import calculate_statistics
from contract_event_tracker.ingestor.models import ContractEvent

logger = logging.getLogger(__name__)

CSV_COLUMNS = ("id", "contract_id", "event_type", "version", "correlation_id", "timestamp", "data")


def _require_events(events: Sequence[ContractEvent]) -> None:
    if not events:
        raise EmptyInputError("no events to export")


class EventExporter:
    """Renders event sequences for download or reporting.

    Every export preserves input order and refuses an empty input.
    """

    def __init__(self, *, indent: int | None = 2) -> None:
        self._indent = indent

    def to_json(self, events: Sequence[ContractEvent]) -> str:
        """Render events as a JSON array of normalized event objects.

        Raises:
            EmptyInputError: If ``events`` is empty.
        """
        _require_events(events)
        return json.dumps(
            [e.to_dict() for e in events],
            indent=self._indent,
            sort_keys=True,
            default=str,
        )

    def to_csv(self, events: Sequence[ContractEvent]) -> str:
        """Render events as CSV: a header row, then one row per event.

        The payload is serialized as a single JSON field, quoted and escaped
        by the csv writer.

        Raises:
            EmptyInputError: If ``events`` is empty.
        """
        _require_events(events)
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(CSV_COLUMNS)
        for event in events:
            writer.writerow(
                (
                    event.id,
                    event.contract_id,
                    event.event_type,
                    event.version,
                    event.correlation_id or "",
                    event.timestamp,
                    json.dumps(dict(event.data), sort_keys=True, default=str),
                )
            )
        logger.debug("Exported %d events as CSV", len(events))
        return buffer.getvalue()

    def summary(self, events: Sequence[ContractEvent]) -> dict[str, Any]:
        """Summarize events: counts, amount statistics and time range.

        Raises:
            EmptyInputError: If ``events`` is empty.
        """
        _require_events(events)
        stats = calculate_statistics(events)
        timestamps = [e.timestamp for e in events]
        return {
            "total_events": stats.total_matched,
            "events_by_type": stats.matched_by_type,
            "amount_statistics": stats.amount.to_dict(),
            "unique_contracts": len(stats.contract_stats),
            "time_range": {
                "earliest": min(timestamps),
                "latest": max(timestamps),
            },
        }
