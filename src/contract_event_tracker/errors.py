"""Error taxonomy shared across the event tracker."""

from __future__ import annotations


class EventTrackerError(Exception):
    """Base class for all event tracker errors."""


class ValidationError(EventTrackerError):
    """Raised when a filter or query is malformed.

    Caller-correctable; never retried automatically.
    """


class PayloadDecodeError(ValidationError):
    """Raised when an event payload does not match its event type's schema."""

    def __init__(self, event_type: str, message: str) -> None:
        super().__init__(f"{event_type}: {message}")
        self.event_type = event_type


class PersistenceError(EventTrackerError):
    """Raised when the event store is unavailable or rejects a write."""


class EmptyInputError(EventTrackerError):
    """Raised when exporting an empty event sequence."""
