"""Ready-made filters for common monitoring questions."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from decimal import Decimal

from contract_event_tracker.filtering.advanced import AdvancedEventFilter, Operator
from contract_event_tracker.filtering.filters import EventFilter, FilterBuilder
from contract_event_tracker.ingestor.models import (
    FUNDS_LOCKED,
    FUNDS_RELEASED,
    OPERATION_METRIC,
    PERFORMANCE_METRIC,
    PROGRAM_FUNDS_RELEASED,
)

LARGE_TRANSACTION_TYPES = (FUNDS_LOCKED, FUNDS_RELEASED, PROGRAM_FUNDS_RELEASED)


def large_transactions(threshold: Decimal | float | int) -> EventFilter:
    """Fund movements of at least ``threshold``."""
    return FilterBuilder().with_event_types(*LARGE_TRANSACTION_TYPES).with_min_amount(threshold).build()


def recent_events(hours: int, *, now: datetime | None = None) -> EventFilter:
    """Everything emitted in the trailing ``hours`` hours."""
    now = now or datetime.now(UTC)
    return FilterBuilder().with_time_range(now - timedelta(hours=hours), now).build()


def failed_operations() -> AdvancedEventFilter:
    """Operation metrics reporting ``success == false``."""
    base = FilterBuilder().with_event_types(OPERATION_METRIC).build()
    return AdvancedEventFilter(base).with_condition("success", False, Operator.EQ)


def performance_issues(threshold_ms: float | int) -> AdvancedEventFilter:
    """Performance metrics slower than ``threshold_ms``."""
    base = FilterBuilder().with_event_types(PERFORMANCE_METRIC).build()
    return AdvancedEventFilter(base).with_condition("duration_ms", threshold_ms, Operator.GT)
