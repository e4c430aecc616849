"""Payload-field predicates layered over an EventFilter."""

from __future__ import annotations

import logging
import operator as op
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any

from contract_event_tracker.errors import ValidationError
from contract_event_tracker.filtering.filters import EventFilter
from contract_event_tracker.ingestor.models import ContractEvent, parse_decimal

logger = logging.getLogger(__name__)


class Operator(str, Enum):
    """Comparison applied between a payload field and an expected value."""

    EQ = "eq"
    NE = "ne"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    CONTAINS = "contains"
    IN = "in"


_ORDERING: dict[Operator, Callable[[Decimal, Decimal], bool]] = {
    Operator.GT: op.gt,
    Operator.GTE: op.ge,
    Operator.LT: op.lt,
    Operator.LTE: op.le,
}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def values_equal(actual: Any, expected: Any) -> bool:
    """Equality that treats 10, 10.0 and Decimal("10") alike but not True and 1."""
    if isinstance(actual, bool) or isinstance(expected, bool):
        return isinstance(actual, bool) and isinstance(expected, bool) and actual == expected
    if _is_number(actual) and _is_number(expected):
        return parse_decimal(actual) == parse_decimal(expected)
    return bool(actual == expected)


def numeric_compare(actual: Any, expected: Any, operator: Operator) -> bool:
    """Compare after coercing both sides to Decimal; False if either side fails."""
    left = parse_decimal(actual)
    right = parse_decimal(expected)
    if left is None or right is None:
        return False
    return _ORDERING[operator](left, right)


def compare_values(actual: Any, expected: Any, operator: Operator) -> bool:
    if operator is Operator.EQ:
        return values_equal(actual, expected)
    if operator is Operator.NE:
        return not values_equal(actual, expected)
    if operator in _ORDERING:
        return numeric_compare(actual, expected, operator)
    if operator is Operator.CONTAINS:
        if isinstance(actual, str) and isinstance(expected, str):
            return expected in actual
        if isinstance(actual, (list, tuple)):
            return any(values_equal(item, expected) for item in actual)
        return False
    if operator is Operator.IN:
        if isinstance(expected, (list, tuple, set, frozenset)):
            return any(values_equal(actual, item) for item in expected)
        return False
    return False


@dataclass(frozen=True)
class DataCondition:
    """A single ``payload[field] <operator> value`` test."""

    field: str
    value: Any
    operator: Operator = Operator.EQ

    def matches(self, data: Any) -> bool:
        if self.field not in data:
            return False
        return compare_values(data[self.field], self.value, self.operator)


@dataclass(frozen=True)
class AdvancedEventFilter:
    """An EventFilter extended with payload-field conditions.

    All conditions must hold. A missing field, or a value that cannot be
    compared under the requested operator, makes the event a non-match.

    Example:
        ```python
        f = (
            AdvancedEventFilter(FilterBuilder().with_event_types("PerformanceMetric").build())
            .with_condition("operation", "lock_funds")
            .with_condition("duration_ms", 1000, "gt")
        )
        slow_locks = f.filter(events)
        ```
    """

    base: EventFilter = field(default_factory=EventFilter)
    conditions: tuple[DataCondition, ...] = ()

    def with_condition(
        self,
        field_name: str,
        value: Any,
        operator: Operator | str = Operator.EQ,
    ) -> AdvancedEventFilter:
        """Return a new filter with one more payload condition.

        Raises:
            ValidationError: If the operator is unknown.
        """
        try:
            resolved = Operator(operator)
        except ValueError as e:
            raise ValidationError(f"unknown operator: {operator!r}") from e
        condition = DataCondition(field=field_name, value=value, operator=resolved)
        return AdvancedEventFilter(base=self.base, conditions=(*self.conditions, condition))

    def matches(self, event: ContractEvent) -> bool:
        if not self.base.matches(event):
            return False
        return all(c.matches(event.data) for c in self.conditions)

    def filter(self, events: Iterable[ContractEvent]) -> list[ContractEvent]:
        return [e for e in events if self.matches(e)]
