"""Event filtering layer - Predicates, statistics and export."""

from contract_event_tracker.filtering.advanced import AdvancedEventFilter, DataCondition, Operator
from contract_event_tracker.filtering.export import EventExporter
from contract_event_tracker.filtering.filters import (
    EventFilter,
    EventFilterChain,
    FilterBuilder,
    optimize_filter,
    validate_filter,
)
from contract_event_tracker.filtering.statistics import (
    AggregatedStats,
    AmountStatistics,
    EventAggregator,
    FilterStatistics,
    calculate_statistics,
)

__all__ = [
    "AdvancedEventFilter",
    "AggregatedStats",
    "AmountStatistics",
    "DataCondition",
    "EventAggregator",
    "EventExporter",
    "EventFilter",
    "EventFilterChain",
    "FilterBuilder",
    "FilterStatistics",
    "Operator",
    "calculate_statistics",
    "optimize_filter",
    "validate_filter",
]
