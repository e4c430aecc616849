"""Declarative event predicates.

An EventFilter is a total predicate over a single ContractEvent: it never
raises for malformed payload data. Checks run cheapest first (type, time
window, correlation id) and the payload amount is consulted last.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Protocol

from contract_event_tracker.errors import ValidationError
from contract_event_tracker.ingestor.models import ContractEvent, parse_decimal

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_DAYS = 30


class EventPredicate(Protocol):
    """Anything that can decide whether an event matches."""

    def matches(self, event: ContractEvent) -> bool: ...


def _to_unix(value: datetime | int) -> int:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            raise ValidationError("datetime bounds must be timezone-aware")
        return int(value.timestamp())
    return int(value)


def _to_amount(value: Decimal | float | int | str) -> Decimal:
    amount = parse_decimal(value)
    if amount is None:
        raise ValidationError(f"amount bound is not numeric: {value!r}")
    return amount


@dataclass(frozen=True)
class EventFilter:
    """Immutable event predicate.

    Unset constraints (None) do not restrict matching, so a filter built
    with no arguments matches every event. An empty type list is treated
    as "no type constraint".
    """

    event_types: tuple[str, ...] | None = None
    min_amount: Decimal | None = None
    max_amount: Decimal | None = None
    start_time: int | None = None
    end_time: int | None = None
    correlation_id: str | None = None

    def __post_init__(self) -> None:
        if self.event_types is not None:
            types = tuple(self.event_types)
            object.__setattr__(self, "event_types", types or None)
        if self.correlation_id == "":
            object.__setattr__(self, "correlation_id", None)
        for name in ("min_amount", "max_amount"):
            value = getattr(self, name)
            if value is not None and not isinstance(value, Decimal):
                object.__setattr__(self, name, _to_amount(value))

    @property
    def has_amount_bounds(self) -> bool:
        return self.min_amount is not None or self.max_amount is not None

    @property
    def has_time_bounds(self) -> bool:
        return self.start_time is not None or self.end_time is not None

    def validate(self) -> EventFilter:
        """Check the filter for contradictory or negative bounds.

        Returns:
            The filter itself, so validation can be chained.

        Raises:
            ValidationError: If the filter is malformed.
        """
        if (
            self.start_time is not None
            and self.end_time is not None
            and self.start_time > self.end_time
        ):
            raise ValidationError("start time cannot be after end time")
        if (self.min_amount is not None and self.min_amount < 0) or (
            self.max_amount is not None and self.max_amount < 0
        ):
            raise ValidationError("amounts cannot be negative")
        if (
            self.min_amount is not None
            and self.max_amount is not None
            and self.min_amount > self.max_amount
        ):
            raise ValidationError("min amount cannot be greater than max amount")
        return self

    def matches(self, event: ContractEvent) -> bool:
        """Return True if the event satisfies every constraint."""
        if self.event_types is not None and event.event_type not in self.event_types:
            return False

        if self.start_time is not None and event.timestamp < self.start_time:
            return False
        if self.end_time is not None and event.timestamp > self.end_time:
            return False

        if self.correlation_id is not None and event.correlation_id != self.correlation_id:
            return False

        if self.has_amount_bounds:
            amount = event.amount
            if amount is None:
                return False
            if self.min_amount is not None and amount < self.min_amount:
                return False
            if self.max_amount is not None and amount > self.max_amount:
                return False

        return True

    def filter(self, events: Iterable[ContractEvent]) -> list[ContractEvent]:
        """Return the matching events, preserving input order."""
        return [e for e in events if self.matches(e)]


def validate_filter(event_filter: EventFilter | None) -> EventFilter:
    """Validate a filter, rejecting a missing one.

    Raises:
        ValidationError: If the filter is None or malformed.
    """
    if event_filter is None:
        raise ValidationError("filter cannot be None")
    return event_filter.validate()


def optimize_filter(
    event_filter: EventFilter,
    *,
    now: datetime | None = None,
    window_days: int = DEFAULT_WINDOW_DAYS,
) -> EventFilter:
    """Bound an open-ended filter before it is turned into a store query.

    A filter with neither time bound gets a trailing ``window_days`` window
    ending at ``now``. Empty type lists are already normalized to None.
    """
    if event_filter.has_time_bounds:
        return event_filter
    now = now or datetime.now(UTC)
    optimized = replace(
        event_filter,
        start_time=int((now - timedelta(days=window_days)).timestamp()),
        end_time=int(now.timestamp()),
    )
    logger.debug(
        "Applied default %d-day window: %d..%d",
        window_days,
        optimized.start_time,
        optimized.end_time,
    )
    return optimized


@dataclass(frozen=True)
class FilterBuilder:
    """Step-wise construction of an EventFilter.

    Each method returns a new builder; the receiver is never modified, so a
    partially configured builder can be shared and extended independently.

    Example:
        ```python
        base = FilterBuilder().with_event_types("FundsLocked")
        large = base.with_min_amount(10_000).build()
        recent = base.with_time_range(start, end).build()
        ```
    """

    _filter: EventFilter = field(default_factory=EventFilter)

    def with_event_types(self, *types: str) -> FilterBuilder:
        existing = self._filter.event_types or ()
        return FilterBuilder(replace(self._filter, event_types=existing + tuple(types)))

    def with_min_amount(self, amount: Decimal | float | int | str) -> FilterBuilder:
        return FilterBuilder(replace(self._filter, min_amount=_to_amount(amount)))

    def with_max_amount(self, amount: Decimal | float | int | str) -> FilterBuilder:
        return FilterBuilder(replace(self._filter, max_amount=_to_amount(amount)))

    def with_time_range(self, start: datetime | int, end: datetime | int) -> FilterBuilder:
        return FilterBuilder(
            replace(self._filter, start_time=_to_unix(start), end_time=_to_unix(end))
        )

    def with_correlation_id(self, correlation_id: str) -> FilterBuilder:
        return FilterBuilder(replace(self._filter, correlation_id=correlation_id))

    def build(self) -> EventFilter:
        """Return the validated filter.

        Raises:
            ValidationError: If the accumulated constraints are contradictory.
        """
        return self._filter.validate()


@dataclass(frozen=True)
class EventFilterChain:
    """Logical AND over several predicates."""

    filters: tuple[EventPredicate, ...] = ()

    def add(self, predicate: EventPredicate) -> EventFilterChain:
        return EventFilterChain((*self.filters, predicate))

    def matches(self, event: ContractEvent) -> bool:
        return all(f.matches(event) for f in self.filters)

    def filter(self, events: Iterable[ContractEvent]) -> list[ContractEvent]:
        return [e for e in events if self.matches(e)]

    def __len__(self) -> int:
        return len(self.filters)
