"""Real-time event fan-out and alert routing.

The EventMonitor dispatches each emitted event to the listeners registered
for its type, runs it through the AnomalyDetector and routes the resulting
alerts to every alert handler. Listener and handler failures are logged and
counted but never reach the emitter.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass

from contract_event_tracker.detector.anomaly import AnomalyDetector
from contract_event_tracker.detector.models import Alert
from contract_event_tracker.ingestor.models import ContractEvent

logger = logging.getLogger(__name__)

EventListener = Callable[[ContractEvent], object]
AlertHandler = Callable[[Alert], object]


@dataclass
class MonitorStats:
    """Counters for the monitor."""

    events_emitted: int = 0
    alerts_raised: int = 0
    listener_errors: int = 0
    handler_errors: int = 0


class EventMonitor:
    """Listener registry plus anomaly-triggered alerting.

    Registries are copied under the lock before dispatch, so a listener
    registered while an event is in flight may not see that event. Events
    must be persisted before ``emit`` is called; the monitor never performs
    I/O of its own.

    Example:
        ```python
        monitor = EventMonitor()
        monitor.on("FundsLocked", lambda e: print("locked", e.amount))
        monitor.on_alert(lambda a: print(a.severity, a.message))

        await repo.store(event)
        monitor.emit(event)
        ```
    """

    def __init__(self, detector: AnomalyDetector | None = None) -> None:
        self._detector = detector or AnomalyDetector()
        self._lock = threading.Lock()
        self._listeners: dict[str, list[EventListener]] = {}
        self._alert_handlers: list[AlertHandler] = []
        self._stats = MonitorStats()

    @property
    def detector(self) -> AnomalyDetector:
        return self._detector

    @property
    def stats(self) -> MonitorStats:
        """Return a copy of the current counters."""
        with self._lock:
            return MonitorStats(**vars(self._stats))

    def on(self, event_type: str, listener: EventListener) -> None:
        """Register a listener for every future event of ``event_type``.

        Listeners for the same type run in registration order.
        """
        with self._lock:
            self._listeners.setdefault(event_type, []).append(listener)

    def on_alert(self, handler: AlertHandler) -> None:
        """Register a handler for every alert, whatever its event type."""
        with self._lock:
            self._alert_handlers.append(handler)

    def emit(self, event: ContractEvent) -> list[Alert]:
        """Dispatch an event to its listeners, then detect and route alerts.

        Returns:
            The alerts raised for this event, including those whose
            handlers failed.
        """
        with self._lock:
            listeners = list(self._listeners.get(event.event_type, ()))
            self._stats.events_emitted += 1

        for listener in listeners:
            try:
                listener(event)
            except Exception:
                self._count("listener_errors")
                logger.exception(
                    "Event listener error: event_type=%s, event_id=%s",
                    event.event_type,
                    event.id,
                )

        alerts = self._detector.detect(event)
        for alert in alerts:
            self._raise_alert(alert)
        return alerts

    def _raise_alert(self, alert: Alert) -> None:
        with self._lock:
            handlers = list(self._alert_handlers)
            self._stats.alerts_raised += 1

        for handler in handlers:
            try:
                handler(alert)
            except Exception:
                self._count("handler_errors")
                logger.exception("Alert handler error: alert_id=%s", alert.id)

    def _count(self, counter: str) -> None:
        with self._lock:
            setattr(self._stats, counter, getattr(self._stats, counter) + 1)
