"""Descriptive statistics over in-memory event collections.

Unlike the store's server-side aggregation, everything here works on events
that have already been fetched or filtered.
"""

from __future__ import annotations

import threading
from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal

from contract_event_tracker.ingestor.models import ContractEvent

HOUR_BUCKET_FORMAT = "%Y-%m-%d %H:00"


def hour_bucket(timestamp: int) -> str:
    """Truncate a Unix timestamp to its UTC date and hour."""
    return datetime.fromtimestamp(timestamp, tz=UTC).strftime(HOUR_BUCKET_FORMAT)


@dataclass
class AggregatedStats:
    """Summary of an EventAggregator's contents.

    ``min_amount``/``max_amount`` stay None until an amount is observed.
    """

    total_events: int = 0
    events_by_type: dict[str, int] = field(default_factory=dict)
    total_amount: Decimal = Decimal("0")
    average_amount: Decimal = Decimal("0")
    min_amount: Decimal | None = None
    max_amount: Decimal | None = None
    time_range: tuple[int, int] | None = None
    unique_contracts: int = 0


class EventAggregator:
    """Thread-safe accumulator of events for reporting."""

    def __init__(self, events: Iterable[ContractEvent] = ()) -> None:
        self._lock = threading.Lock()
        self._events: list[ContractEvent] = list(events)

    def add(self, event: ContractEvent) -> None:
        with self._lock:
            self._events.append(event)

    def clear(self) -> None:
        with self._lock:
            self._events.clear()

    def events(self) -> list[ContractEvent]:
        """Return a snapshot of the accumulated events."""
        with self._lock:
            return list(self._events)

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

    def stats(self) -> AggregatedStats:
        """Compute summary statistics in a single pass."""
        snapshot = self.events()

        stats = AggregatedStats(total_events=len(snapshot))
        by_type: Counter[str] = Counter()
        contracts: set[str] = set()
        earliest: int | None = None
        latest: int | None = None

        for event in snapshot:
            by_type[event.event_type] += 1
            contracts.add(event.contract_id)

            amount = event.amount
            if amount is not None:
                stats.total_amount += amount
                if stats.min_amount is None or amount < stats.min_amount:
                    stats.min_amount = amount
                if stats.max_amount is None or amount > stats.max_amount:
                    stats.max_amount = amount

            if earliest is None or event.timestamp < earliest:
                earliest = event.timestamp
            if latest is None or event.timestamp > latest:
                latest = event.timestamp

        if stats.total_events > 0:
            stats.average_amount = stats.total_amount / stats.total_events
        if earliest is not None and latest is not None:
            stats.time_range = (earliest, latest)
        stats.events_by_type = dict(by_type)
        stats.unique_contracts = len(contracts)
        return stats


@dataclass
class AmountStatistics:
    """Amount figures over the events that carry an amount."""

    total: Decimal = Decimal("0")
    average: Decimal = Decimal("0")
    min: Decimal | None = None
    max: Decimal | None = None
    count: int = 0

    def to_dict(self) -> dict[str, object]:
        return {
            "total": str(self.total),
            "average": str(self.average),
            "min": str(self.min) if self.min is not None else None,
            "max": str(self.max) if self.max is not None else None,
            "count": self.count,
        }


@dataclass
class FilterStatistics:
    """Breakdown of a filtered event set."""

    total_matched: int = 0
    matched_by_type: dict[str, int] = field(default_factory=dict)
    amount: AmountStatistics = field(default_factory=AmountStatistics)
    time_distribution: dict[str, int] = field(default_factory=dict)
    contract_stats: dict[str, int] = field(default_factory=dict)


def calculate_statistics(events: Sequence[ContractEvent]) -> FilterStatistics:
    """Count events by type, contract and UTC hour, and summarize amounts."""
    by_type: Counter[str] = Counter()
    by_contract: Counter[str] = Counter()
    by_hour: Counter[str] = Counter()
    amounts = AmountStatistics()

    for event in events:
        by_type[event.event_type] += 1
        by_contract[event.contract_id] += 1
        by_hour[hour_bucket(event.timestamp)] += 1

        amount = event.amount
        if amount is None:
            continue
        amounts.total += amount
        amounts.count += 1
        if amounts.min is None or amount < amounts.min:
            amounts.min = amount
        if amounts.max is None or amount > amounts.max:
            amounts.max = amount

    if amounts.count > 0:
        amounts.average = amounts.total / amounts.count

    return FilterStatistics(
        total_matched=len(events),
        matched_by_type=dict(by_type),
        amount=amounts,
        time_distribution=dict(sorted(by_hour.items())),
        contract_stats=dict(by_contract),
    )
