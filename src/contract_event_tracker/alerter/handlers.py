"""Alert handlers that can be registered on an EventMonitor.

Handlers are plain callables taking an Alert. They run synchronously inside
``EventMonitor.emit``, so anything that needs I/O (such as persisting the
alert) queues work here and completes it from async code later.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from sqlalchemy.exc import IntegrityError

from contract_event_tracker.alerter.formatter import AlertFormatter
from contract_event_tracker.detector.models import Alert, Severity
from contract_event_tracker.errors import PersistenceError
from contract_event_tracker.storage.repos import AlertRepository

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

DEFAULT_MAX_PENDING = 10_000

SEVERITY_LOG_LEVELS = {
    Severity.INFO: logging.INFO,
    Severity.WARNING: logging.WARNING,
    Severity.CRITICAL: logging.CRITICAL,
}


class LoggingAlertHandler:
    """Writes every alert to a logger, at a level matching its severity."""

    def __init__(
        self,
        formatter: AlertFormatter | None = None,
        *,
        logger_name: str = "contract_event_tracker.alerts",
    ) -> None:
        self._formatter = formatter or AlertFormatter(verbosity="compact")
        self._logger = logging.getLogger(logger_name)

    def __call__(self, alert: Alert) -> None:
        formatted = self._formatter.format(alert)
        self._logger.log(
            SEVERITY_LOG_LEVELS.get(alert.severity, logging.INFO),
            "%s: %s",
            formatted.title,
            formatted.body,
        )


class AlertRecorder:
    """Queues alerts raised by the monitor and persists them on ``flush``.

    Example:
        ```python
        recorder = AlertRecorder()
        monitor.on_alert(recorder)

        monitor.emit(event)
        async with db.session() as session:
            await recorder.flush(session)
        ```
    """

    def __init__(self, *, max_pending: int = DEFAULT_MAX_PENDING) -> None:
        self._lock = threading.Lock()
        self._pending: list[Alert] = []
        self._max_pending = max_pending
        self.dropped = 0
        self.rejected = 0

    def __call__(self, alert: Alert) -> None:
        with self._lock:
            self._pending.append(alert)
            self._trim_locked()

    def _trim_locked(self) -> None:
        overflow = len(self._pending) - self._max_pending
        if overflow <= 0:
            return
        del self._pending[:overflow]
        self.dropped += overflow
        logger.warning(
            "Alert queue full (%d): dropped %d oldest alerts, %d dropped in total",
            self._max_pending,
            overflow,
            self.dropped,
        )

    @property
    def pending(self) -> list[Alert]:
        """Alerts queued but not yet persisted."""
        with self._lock:
            return list(self._pending)

    async def flush(self, session: AsyncSession) -> int:
        """Persist every queued alert.

        Alerts that can never be saved (their event is gone or their id is
        already stored) are dropped and counted in ``rejected``. If a save
        fails for any other reason the batch, less any rejected alerts, stays
        queued for the next flush.

        Returns:
            Number of alerts persisted.

        Raises:
            PersistenceError: If the alert store rejects a write.
        """
        with self._lock:
            batch = self._pending
            self._pending = []

        repo = AlertRepository(session)
        rejected: set[str] = set()
        saved = 0
        try:
            for alert in batch:
                reason = await repo.rejection_reason(alert)
                if reason is None:
                    try:
                        await repo.save(alert)
                    except PersistenceError as e:
                        if isinstance(e.__cause__, IntegrityError):
                            self._reject(alert, str(e), rejected)
                        raise
                    saved += 1
                else:
                    self._reject(alert, reason, rejected)
        except Exception:
            # A failed save rolls the session back, taking earlier saves with it.
            with self._lock:
                self._pending[:0] = [a for a in batch if a.id not in rejected]
                self._trim_locked()
            raise

        if saved:
            logger.debug("Persisted %d alerts", saved)
        return saved

    def _reject(self, alert: Alert, reason: str, rejected: set[str]) -> None:
        rejected.add(alert.id)
        self.rejected += 1
        logger.warning("Dropping alert %s that cannot be stored: %s", alert.id, reason)
