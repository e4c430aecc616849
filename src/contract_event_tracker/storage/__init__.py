"""Storage layer - Database schemas and repositories."""

from contract_event_tracker.storage.database import (
    DatabaseManager,
    create_async_db_engine,
    create_async_session_factory,
    init_async_db,
)
from contract_event_tracker.storage.models import (
    Base,
    ContractEventModel,
    DailyEventStatsModel,
    EventAlertModel,
)
from contract_event_tracker.storage.repos import (
    AggregateQuery,
    AggregateResult,
    AlertRepository,
    DuplicateEventError,
    EventAlertDTO,
    EventQuery,
    EventRepository,
    EventStats,
)
from contract_event_tracker.storage.retention import RetentionPolicy

__all__ = [
    "AggregateQuery",
    "AggregateResult",
    "AlertRepository",
    "Base",
    "ContractEventModel",
    "DailyEventStatsModel",
    "DatabaseManager",
    "DuplicateEventError",
    "EventAlertDTO",
    "EventAlertModel",
    "EventQuery",
    "EventRepository",
    "EventStats",
    "RetentionPolicy",
    "create_async_db_engine",
    "create_async_session_factory",
    "init_async_db",
]
