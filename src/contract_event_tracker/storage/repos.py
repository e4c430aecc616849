"""Repository pattern implementations for data access.

This module provides the event store (append, structured queries,
server-side aggregation, statistics, retention cleanup) and alert
persistence on top of an AsyncSession.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import and_, delete, desc, func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from contract_event_tracker.errors import PersistenceError, ValidationError
from contract_event_tracker.filtering.filters import EventFilter, optimize_filter, validate_filter
from contract_event_tracker.ingestor.models import (
    OPERATIONAL_EVENT_TYPES,
    PERFORMANCE_EVENT_TYPES,
    ContractEvent,
    parse_decimal,
)
from contract_event_tracker.storage.models import (
    ContractEventModel,
    DailyEventStatsModel,
    EventAlertModel,
)
from contract_event_tracker.storage.retention import RetentionPolicy

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession
    from sqlalchemy.sql import Select

    from contract_event_tracker.config import Settings
    from contract_event_tracker.detector.models import Alert

logger = logging.getLogger(__name__)

DEFAULT_QUERY_LIMIT = 1000
MAX_QUERY_LIMIT = 10000
DEFAULT_UNINDEXED_LIMIT = 100
MAX_UNINDEXED_LIMIT = 1000
DEFAULT_WINDOW_DAYS = 30
SECONDS_PER_DAY = 86400
CLEANUP_BATCH_SIZE = 500

ORDERABLE_COLUMNS = {
    "timestamp": ContractEventModel.timestamp,
    "id": ContractEventModel.id,
    "event_type": ContractEventModel.event_type,
    "contract_id": ContractEventModel.contract_id,
}
GROUPABLE_COLUMNS = {
    "event_type": ContractEventModel.event_type,
    "contract_id": ContractEventModel.contract_id,
    "correlation_id": ContractEventModel.correlation_id,
    "version": ContractEventModel.version,
}
NUMERIC_FIELDS = {
    "amount": ContractEventModel.amount,
    "duration_ms": ContractEventModel.duration_ms,
}
AGGREGATE_FUNCTIONS = {
    "COUNT": func.count,
    "SUM": func.sum,
    "AVG": func.avg,
    "MIN": func.min,
    "MAX": func.max,
}


class DuplicateEventError(PersistenceError):
    """Raised when an event id is already present in the store."""

    def __init__(self, event_id: str) -> None:
        super().__init__(f"event {event_id} already stored")
        self.event_id = event_id


def _check_time_bounds(start_time: int | None, end_time: int | None) -> None:
    if start_time is not None and end_time is not None and start_time > end_time:
        raise ValidationError("start time cannot be after end time")


@dataclass(frozen=True)
class EventQuery:
    """Structured request for stored events.

    Every set predicate must hold; time bounds are inclusive. Results are
    ordered by ``order_by`` (default newest first) and paginated with
    ``limit``/``offset``; the limit defaults to 1000 and is capped at 10000.
    """

    event_types: tuple[str, ...] | None = None
    contract_id: str | None = None
    start_time: int | None = None
    end_time: int | None = None
    correlation_id: str | None = None
    min_amount: Decimal | None = None
    max_amount: Decimal | None = None
    limit: int | None = None
    offset: int = 0
    order_by: str = "timestamp"
    order: str = "DESC"

    def __post_init__(self) -> None:
        if self.event_types is not None:
            object.__setattr__(self, "event_types", tuple(self.event_types) or None)
        object.__setattr__(self, "order", self.order.upper())

    @classmethod
    def from_filter(cls, event_filter: EventFilter, **kwargs: Any) -> EventQuery:
        """Translate an EventFilter into a store query."""
        return cls(
            event_types=event_filter.event_types,
            start_time=event_filter.start_time,
            end_time=event_filter.end_time,
            correlation_id=event_filter.correlation_id,
            min_amount=event_filter.min_amount,
            max_amount=event_filter.max_amount,
            **kwargs,
        )

    def validate(self) -> EventQuery:
        """Raise ValidationError if the query is malformed."""
        _check_time_bounds(self.start_time, self.end_time)
        if self.offset < 0:
            raise ValidationError("offset cannot be negative")
        if self.order_by not in ORDERABLE_COLUMNS:
            raise ValidationError(f"cannot order by {self.order_by!r}")
        if self.order not in ("ASC", "DESC"):
            raise ValidationError(f"order must be ASC or DESC, got {self.order!r}")
        return self


@dataclass(frozen=True)
class AggregateQuery:
    """Group-and-aggregate request over stored events.

    ``COUNT`` counts rows (or non-null values of ``target_field`` when set);
    the other operators need a numeric payload field.
    """

    group_by: str
    aggregate: str = "COUNT"
    target_field: str | None = None
    event_types: tuple[str, ...] | None = None
    contract_id: str | None = None
    start_time: int | None = None
    end_time: int | None = None

    def __post_init__(self) -> None:
        if self.event_types is not None:
            object.__setattr__(self, "event_types", tuple(self.event_types) or None)
        object.__setattr__(self, "aggregate", self.aggregate.upper())

    def validate(self) -> AggregateQuery:
        """Raise ValidationError if the query is malformed."""
        _check_time_bounds(self.start_time, self.end_time)
        if self.group_by not in GROUPABLE_COLUMNS:
            raise ValidationError(f"cannot group by {self.group_by!r}")
        if self.aggregate not in AGGREGATE_FUNCTIONS:
            raise ValidationError(f"unknown aggregate operator {self.aggregate!r}")
        if self.target_field is not None and self.target_field not in NUMERIC_FIELDS:
            raise ValidationError(f"cannot aggregate field {self.target_field!r}")
        if self.aggregate != "COUNT" and self.target_field is None:
            raise ValidationError(f"{self.aggregate} requires a numeric field")
        return self


@dataclass(frozen=True)
class AggregateResult:
    """One group of an aggregation."""

    group_key: str | None
    value: Decimal | int | None


@dataclass
class EventStats:
    """Dashboard summary of the store."""

    total_events: int = 0
    events_by_type: dict[str, int] = field(default_factory=dict)
    time_range: tuple[int, int] | None = None
    unindexed_count: int = 0
    average_per_day: float = 0.0
    from_rollup: bool = False


@dataclass
class EventAlertDTO:
    """Data transfer object for persisted alerts."""

    alert_id: str
    kind: str
    severity: str
    message: str
    event_type: str | None
    event_id: str | None
    data: dict[str, Any] | None
    acknowledged: bool = False
    acknowledged_at: datetime | None = None
    acknowledged_by: str | None = None
    created_at: datetime | None = None

    @classmethod
    def from_model(cls, model: EventAlertModel) -> EventAlertDTO:
        return cls(
            alert_id=model.alert_id,
            kind=model.kind,
            severity=model.severity,
            message=model.message,
            event_type=model.event_type,
            event_id=model.event_id,
            data=model.data,
            acknowledged=model.acknowledged,
            acknowledged_at=model.acknowledged_at,
            acknowledged_by=model.acknowledged_by,
            created_at=model.created_at,
        )


def _json_payload(data: Any) -> dict[str, Any]:
    # Decimal and other non-JSON scalars are stored as strings.
    payload: dict[str, Any] = json.loads(json.dumps(dict(data), default=str))
    return payload


def _to_event(model: ContractEventModel) -> ContractEvent:
    return ContractEvent(
        id=model.id,
        contract_id=model.contract_id,
        event_type=model.event_type,
        timestamp=model.timestamp,
        data=model.data,
        version=model.version,
        correlation_id=model.correlation_id,
        indexed=model.indexed,
        indexed_at=model.indexed_at,
    )


def _apply_predicates(
    stmt: Select[Any],
    *,
    event_types: tuple[str, ...] | None = None,
    contract_id: str | None = None,
    start_time: int | None = None,
    end_time: int | None = None,
    correlation_id: str | None = None,
    min_amount: Decimal | None = None,
    max_amount: Decimal | None = None,
) -> Select[Any]:
    if event_types:
        stmt = stmt.where(ContractEventModel.event_type.in_(event_types))
    if contract_id:
        stmt = stmt.where(ContractEventModel.contract_id == contract_id)
    if start_time is not None:
        stmt = stmt.where(ContractEventModel.timestamp >= start_time)
    if end_time is not None:
        stmt = stmt.where(ContractEventModel.timestamp <= end_time)
    if correlation_id:
        stmt = stmt.where(ContractEventModel.correlation_id == correlation_id)
    if min_amount is not None:
        stmt = stmt.where(ContractEventModel.amount >= min_amount)
    if max_amount is not None:
        stmt = stmt.where(ContractEventModel.amount <= max_amount)
    return stmt


class EventRepository:
    """Event store and indexer over the ``contract_events`` table.

    Storage-engine syntax never leaks to callers: queries are described with
    EventQuery / AggregateQuery / EventFilter and come back as ContractEvent
    or plain result records. Database failures surface as PersistenceError.

    Example:
        ```python
        async with db.session() as session:
            repo = EventRepository(session)
            await repo.store(event)
            recent = await repo.query(EventQuery(event_types=("FundsLocked",), limit=50))
        ```
    """

    def __init__(
        self,
        session: AsyncSession,
        *,
        default_limit: int = DEFAULT_QUERY_LIMIT,
        max_limit: int = MAX_QUERY_LIMIT,
        default_window_days: int = DEFAULT_WINDOW_DAYS,
        unindexed_limit: int = DEFAULT_UNINDEXED_LIMIT,
        retention: RetentionPolicy | None = None,
    ) -> None:
        self.session = session
        self._default_limit = default_limit
        self._max_limit = max_limit
        self._default_window_days = default_window_days
        self._unindexed_limit = unindexed_limit
        self._retention = retention or RetentionPolicy()

    @classmethod
    def from_settings(cls, session: AsyncSession, settings: Settings) -> EventRepository:
        indexer = settings.indexer
        return cls(
            session,
            default_limit=indexer.default_limit,
            max_limit=indexer.max_limit,
            default_window_days=indexer.default_window_days,
            unindexed_limit=indexer.unindexed_batch_limit,
            retention=RetentionPolicy.from_settings(settings.retention),
        )

    async def _execute(self, stmt: Any, *, timeout: float | None = None) -> Any:
        try:
            async with asyncio.timeout(timeout):
                return await self.session.execute(stmt)
        except SQLAlchemyError as e:
            logger.error("Event store operation failed: %s", e)
            raise PersistenceError(str(e)) from e

    def _effective_limit(self, limit: int | None) -> int:
        if limit is None or limit <= 0:
            return self._default_limit
        return min(limit, self._max_limit)

    async def store(self, event: ContractEvent) -> ContractEvent:
        """Append an event.

        Raises:
            DuplicateEventError: If the id is already stored.
            PersistenceError: If the store rejects the write.
        """
        try:
            existing = await self.session.get(ContractEventModel, event.id)
        except SQLAlchemyError as e:
            raise PersistenceError(str(e)) from e
        if existing is not None:
            logger.warning("Duplicate event rejected: id=%s", event.id)
            raise DuplicateEventError(event.id)

        duration_ms = getattr(event.payload, "duration_ms", None)
        model = ContractEventModel(
            id=event.id,
            contract_id=event.contract_id,
            event_type=event.event_type,
            version=event.version,
            correlation_id=event.correlation_id,
            timestamp=event.timestamp,
            data=_json_payload(event.data),
            amount=event.amount,
            duration_ms=duration_ms,
            indexed=event.indexed,
            indexed_at=event.indexed_at,
        )
        self.session.add(model)
        try:
            await self.session.flush()
        except IntegrityError as e:
            await self.session.rollback()
            logger.warning("Duplicate event rejected: id=%s", event.id)
            raise DuplicateEventError(event.id) from e
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error("Failed to store event %s: %s", event.id, e)
            raise PersistenceError(str(e)) from e

        logger.debug("Stored event: id=%s, type=%s", event.id, event.event_type)
        return event

    async def get(self, event_id: str) -> ContractEvent | None:
        result = await self._execute(
            select(ContractEventModel).where(ContractEventModel.id == event_id)
        )
        model = result.scalar_one_or_none()
        return _to_event(model) if model else None

    async def query(self, query: EventQuery, *, timeout: float | None = None) -> list[ContractEvent]:
        """Return events matching every predicate of ``query``.

        Args:
            query: Predicates, ordering and pagination.
            timeout: Optional deadline in seconds for the database call.

        Returns:
            Matching events; empty when nothing matches.

        Raises:
            ValidationError: If the query is malformed.
            PersistenceError: If the database call fails.
            TimeoutError: If ``timeout`` elapses.
        """
        query.validate()
        stmt = _apply_predicates(
            select(ContractEventModel),
            event_types=query.event_types,
            contract_id=query.contract_id,
            start_time=query.start_time,
            end_time=query.end_time,
            correlation_id=query.correlation_id,
            min_amount=query.min_amount,
            max_amount=query.max_amount,
        )
        column = ORDERABLE_COLUMNS[query.order_by]
        if query.order == "DESC":
            stmt = stmt.order_by(column.desc(), ContractEventModel.id.desc())
        else:
            stmt = stmt.order_by(column.asc(), ContractEventModel.id.asc())
        stmt = stmt.limit(self._effective_limit(query.limit)).offset(query.offset)

        result = await self._execute(stmt, timeout=timeout)
        return [_to_event(m) for m in result.scalars().all()]

    async def query_filter(
        self,
        event_filter: EventFilter,
        *,
        limit: int | None = None,
        offset: int = 0,
        now: datetime | None = None,
        timeout: float | None = None,
    ) -> list[ContractEvent]:
        """Run an EventFilter against the store.

        A filter without time bounds is limited to the default trailing
        window before the query runs.

        Raises:
            ValidationError: If the filter is malformed.
        """
        validate_filter(event_filter)
        optimized = optimize_filter(event_filter, now=now, window_days=self._default_window_days)
        return await self.query(
            EventQuery.from_filter(optimized, limit=limit, offset=offset),
            timeout=timeout,
        )

    async def aggregate(
        self,
        query: AggregateQuery,
        *,
        timeout: float | None = None,
    ) -> list[AggregateResult]:
        """Group matching events and aggregate each group, largest value first.

        Raises:
            ValidationError: If the grouping, operator or field is unsupported.
            PersistenceError: If the database call fails.
            TimeoutError: If ``timeout`` elapses.
        """
        query.validate()
        group_column = GROUPABLE_COLUMNS[query.group_by]
        aggregate_fn = AGGREGATE_FUNCTIONS[query.aggregate]
        if query.target_field is None:
            value = func.count()
        else:
            value = aggregate_fn(NUMERIC_FIELDS[query.target_field])

        stmt = _apply_predicates(
            select(group_column.label("group_key"), value.label("value")),
            event_types=query.event_types,
            contract_id=query.contract_id,
            start_time=query.start_time,
            end_time=query.end_time,
        )
        stmt = stmt.group_by(group_column).order_by(desc("value"), group_column)

        result = await self._execute(stmt, timeout=timeout)
        results: list[AggregateResult] = []
        for row in result.all():
            group_key = str(row.group_key) if row.group_key is not None else None
            if query.aggregate == "COUNT":
                results.append(AggregateResult(group_key=group_key, value=int(row.value)))
            else:
                results.append(AggregateResult(group_key=group_key, value=parse_decimal(row.value)))
        return results

    async def stats(self, *, use_rollup: bool = False) -> EventStats:
        """Summarize the store.

        Args:
            use_rollup: Read counts from the daily rollup (as fresh as the
                last ``refresh_rollup``) instead of scanning events.
        """
        if use_rollup:
            by_type_stmt = select(
                DailyEventStatsModel.event_type, func.sum(DailyEventStatsModel.event_count)
            ).group_by(DailyEventStatsModel.event_type)
            range_stmt = select(
                func.min(DailyEventStatsModel.min_timestamp),
                func.max(DailyEventStatsModel.max_timestamp),
            )
        else:
            by_type_stmt = select(ContractEventModel.event_type, func.count()).group_by(
                ContractEventModel.event_type
            )
            range_stmt = select(
                func.min(ContractEventModel.timestamp), func.max(ContractEventModel.timestamp)
            )

        by_type_result = await self._execute(by_type_stmt)
        events_by_type = {str(t): int(c) for t, c in by_type_result.all()}

        range_result = await self._execute(range_stmt)
        oldest, newest = range_result.one()
        time_range = (int(oldest), int(newest)) if oldest is not None and newest is not None else None

        unindexed_result = await self._execute(
            select(func.count()).select_from(ContractEventModel).where(ContractEventModel.indexed.is_(False))
        )
        unindexed_count = int(unindexed_result.scalar_one())

        total = sum(events_by_type.values())
        average_per_day = 0.0
        if time_range is not None:
            days = (time_range[1] - time_range[0]) // SECONDS_PER_DAY
            if days > 0:
                average_per_day = total / days

        return EventStats(
            total_events=total,
            events_by_type=events_by_type,
            time_range=time_range,
            unindexed_count=unindexed_count,
            average_per_day=average_per_day,
            from_rollup=use_rollup,
        )

    async def refresh_rollup(self) -> int:
        """Recompute the daily per-type rollup from the events table.

        Returns:
            Number of rollup rows written.
        """
        day = ContractEventModel.timestamp // SECONDS_PER_DAY
        grouped = await self._execute(
            select(
                day.label("day"),
                ContractEventModel.event_type,
                func.count().label("event_count"),
                func.count(func.distinct(ContractEventModel.contract_id)).label("unique_contracts"),
                func.count(func.distinct(ContractEventModel.correlation_id)).label("unique_correlations"),
                func.min(ContractEventModel.timestamp).label("min_timestamp"),
                func.max(ContractEventModel.timestamp).label("max_timestamp"),
            ).group_by(day, ContractEventModel.event_type)
        )
        rows = grouped.all()

        await self._execute(delete(DailyEventStatsModel))
        refreshed_at = datetime.now(UTC)
        self.session.add_all(
            DailyEventStatsModel(
                day=int(row.day),
                event_type=row.event_type,
                event_count=int(row.event_count),
                unique_contracts=int(row.unique_contracts),
                unique_correlations=int(row.unique_correlations),
                min_timestamp=int(row.min_timestamp),
                max_timestamp=int(row.max_timestamp),
                refreshed_at=refreshed_at,
            )
            for row in rows
        )
        try:
            await self.session.flush()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise PersistenceError(str(e)) from e

        logger.info("Daily event stats rollup refreshed: %d rows", len(rows))
        return len(rows)

    async def mark_indexed(self, event_id: str, *, at: datetime | None = None) -> bool:
        """Record that post-processing finished for an event.

        Returns:
            True if the event exists.
        """
        result = await self._execute(
            update(ContractEventModel)
            .where(ContractEventModel.id == event_id)
            .values(indexed=True, indexed_at=at or datetime.now(UTC))
        )
        return bool(result.rowcount)

    async def get_unindexed(self, limit: int | None = None) -> list[ContractEvent]:
        """Return events still awaiting post-processing, oldest first."""
        if limit is None or limit <= 0:
            limit = self._unindexed_limit
        limit = min(limit, MAX_UNINDEXED_LIMIT)
        result = await self._execute(
            select(ContractEventModel)
            .where(ContractEventModel.indexed.is_(False))
            .order_by(ContractEventModel.timestamp.asc(), ContractEventModel.id.asc())
            .limit(limit)
        )
        return [_to_event(m) for m in result.scalars().all()]

    async def cleanup(
        self,
        retention_days: int | None = None,
        *,
        now: datetime | None = None,
    ) -> int:
        """Delete events past their retention period.

        With ``retention_days`` every event older than that is eligible;
        otherwise the per-category RetentionPolicy applies. Events referenced
        by unacknowledged alerts are kept; acknowledged alerts of deleted
        events are removed with them.

        Returns:
            Number of events deleted.

        Raises:
            ValidationError: If ``retention_days`` is not positive.
        """
        now_ts = int((now or datetime.now(UTC)).timestamp())
        ts = ContractEventModel.timestamp

        if retention_days is not None:
            if retention_days < 1:
                raise ValidationError("retention_days must be >= 1")
            expired = ts < now_ts - retention_days * SECONDS_PER_DAY
        else:
            policy = self._retention
            operational = tuple(OPERATIONAL_EVENT_TYPES)
            performance = tuple(PERFORMANCE_EVENT_TYPES)
            expired = or_(
                and_(
                    ContractEventModel.event_type.in_(operational),
                    ts < now_ts - policy.operational_days * SECONDS_PER_DAY,
                ),
                and_(
                    ContractEventModel.event_type.in_(performance),
                    ts < now_ts - policy.performance_days * SECONDS_PER_DAY,
                ),
                and_(
                    ContractEventModel.event_type.not_in(operational + performance),
                    ts < now_ts - policy.financial_days * SECONDS_PER_DAY,
                ),
            )

        protected = select(EventAlertModel.event_id).where(
            EventAlertModel.acknowledged.is_(False),
            EventAlertModel.event_id.is_not(None),
        )
        expired_ids = await self._execute(
            select(ContractEventModel.id).where(expired, ContractEventModel.id.not_in(protected))
        )
        doomed = list(expired_ids.scalars().all())

        for start in range(0, len(doomed), CLEANUP_BATCH_SIZE):
            batch = doomed[start : start + CLEANUP_BATCH_SIZE]
            await self._execute(delete(EventAlertModel).where(EventAlertModel.event_id.in_(batch)))
            await self._execute(delete(ContractEventModel).where(ContractEventModel.id.in_(batch)))

        logger.info("Retention cleanup deleted %d events", len(doomed))
        return len(doomed)


class AlertRepository:
    """Repository for persisted alerts."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def save(self, alert: Alert) -> EventAlertDTO:
        """Persist an alert.

        Raises:
            PersistenceError: If the alert id already exists or the
                referenced event is missing.
        """
        payload = alert.to_dict()
        model = EventAlertModel(
            alert_id=alert.id,
            kind=alert.kind.value,
            severity=alert.severity.value,
            message=alert.message,
            event_type=alert.event_type,
            event_id=alert.event_id,
            data=payload["data"],
            created_at=alert.timestamp,
        )
        self.session.add(model)
        try:
            await self.session.flush()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error("Failed to store alert %s: %s", alert.id, e)
            raise PersistenceError(str(e)) from e
        return EventAlertDTO.from_model(model)

    async def rejection_reason(self, alert: Alert) -> str | None:
        """Return why ``alert`` can never be saved, or None if it can.

        Raises:
            PersistenceError: If the lookups fail.
        """
        try:
            event = await self.session.get(ContractEventModel, alert.event_id)
            existing = await self.session.execute(
                select(EventAlertModel.id).where(EventAlertModel.alert_id == alert.id)
            )
        except SQLAlchemyError as e:
            raise PersistenceError(str(e)) from e
        if event is None:
            return f"event {alert.event_id} is not stored"
        if existing.scalar_one_or_none() is not None:
            return f"alert id {alert.id} already stored"
        return None

    async def get(self, alert_id: str) -> EventAlertDTO | None:
        result = await self.session.execute(
            select(EventAlertModel).where(EventAlertModel.alert_id == alert_id)
        )
        model = result.scalar_one_or_none()
        return EventAlertDTO.from_model(model) if model else None

    async def acknowledge(self, alert_id: str, *, by: str | None = None) -> bool:
        """Mark an alert as reviewed.

        Returns:
            True if an unacknowledged alert was updated.
        """
        result = await self.session.execute(
            update(EventAlertModel)
            .where(EventAlertModel.alert_id == alert_id, EventAlertModel.acknowledged.is_(False))
            .values(acknowledged=True, acknowledged_at=datetime.now(UTC), acknowledged_by=by)
        )
        return bool(result.rowcount)

    async def list_unacknowledged(
        self,
        *,
        severity: str | None = None,
        limit: int = 100,
    ) -> list[EventAlertDTO]:
        """Return open alerts, newest first."""
        stmt = select(EventAlertModel).where(EventAlertModel.acknowledged.is_(False))
        if severity is not None:
            stmt = stmt.where(EventAlertModel.severity == severity)
        stmt = stmt.order_by(EventAlertModel.created_at.desc(), EventAlertModel.id.desc()).limit(limit)
        result = await self.session.execute(stmt)
        return [EventAlertDTO.from_model(m) for m in result.scalars().all()]
