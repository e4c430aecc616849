"""Ingestion pipeline for the Contract Event Tracker.

This module provides the IngestionPipeline class that wires the event
store, the monitor and alert persistence together and manages the flow
from a raw event record to stored event, listeners and alerts.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from contract_event_tracker.alerter.handlers import AlertRecorder, LoggingAlertHandler
from contract_event_tracker.config import Settings, get_settings
from contract_event_tracker.detector.anomaly import AnomalyDetector, DetectorConfig
from contract_event_tracker.detector.models import Alert
from contract_event_tracker.errors import PersistenceError, ValidationError
from contract_event_tracker.ingestor.models import ContractEvent
from contract_event_tracker.monitor import EventMonitor
from contract_event_tracker.storage.database import DatabaseManager
from contract_event_tracker.storage.repos import EventRepository

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    """Pipeline lifecycle states."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    ERROR = "error"


@dataclass
class PipelineStats:
    """Statistics for the pipeline."""

    started_at: datetime | None = None
    events_ingested: int = 0
    events_rejected: int = 0
    alerts_raised: int = 0
    alerts_persisted: int = 0
    errors: int = 0
    last_event_time: datetime | None = None
    last_error: str | None = None


@dataclass(frozen=True)
class MaintenanceResult:
    """Outcome of one maintenance pass."""

    deleted_events: int
    rollup_rows: int


class IngestionPipeline:
    """Decode, persist, then notify.

    An event reaches listeners and the detector only after the transaction
    that stores it has committed, so anything a listener sees can be read
    back from the store.

    Pipeline flow:
        raw record → ContractEvent → EventRepository.store → commit →
        EventMonitor.emit → alert handlers (logging, AlertRecorder)

    Example:
        ```python
        from contract_event_tracker.pipeline import IngestionPipeline

        async with IngestionPipeline() as pipeline:
            pipeline.monitor.on("FundsLocked", on_locked)
            alerts = await pipeline.ingest(raw_event)
        ```
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        db_manager: DatabaseManager | None = None,
        monitor: EventMonitor | None = None,
        record_alerts: bool = True,
        log_alerts: bool = True,
        init_schema: bool = True,
    ) -> None:
        """Initialize the pipeline.

        Args:
            settings: Application settings. If not provided, uses get_settings().
            db_manager: Database manager. Built from settings in start() when omitted.
            monitor: Event monitor. Built with a detector configured from
                settings when omitted.
            record_alerts: Persist alerts raised by the monitor.
            log_alerts: Log alerts raised by the monitor.
            init_schema: Create missing tables on start().
        """
        self._settings = settings
        self._db_manager = db_manager
        self._owns_db_manager = db_manager is None
        self._init_schema = init_schema

        if monitor is None:
            detector_config = DetectorConfig.from_settings(self._get_settings().detector)
            monitor = EventMonitor(AnomalyDetector(detector_config))
        self._monitor = monitor

        self._recorder: AlertRecorder | None = None
        if record_alerts:
            self._recorder = AlertRecorder()
            self._monitor.on_alert(self._recorder)
        if log_alerts:
            self._monitor.on_alert(LoggingAlertHandler())

        self._state = PipelineState.STOPPED
        self._stats = PipelineStats()

    def _get_settings(self) -> Settings:
        if self._settings is None:
            self._settings = get_settings()
        return self._settings

    @property
    def state(self) -> PipelineState:
        """Current pipeline state."""
        return self._state

    @property
    def stats(self) -> PipelineStats:
        """Current pipeline statistics."""
        return self._stats

    @property
    def monitor(self) -> EventMonitor:
        return self._monitor

    @property
    def is_running(self) -> bool:
        """Check if pipeline is running."""
        return self._state == PipelineState.RUNNING

    async def start(self) -> None:
        """Start the pipeline.

        Raises:
            RuntimeError: If pipeline is already running.
            Exception: If the database cannot be initialized.
        """
        if self._state != PipelineState.STOPPED:
            raise RuntimeError(f"Cannot start pipeline in state {self._state}")

        self._state = PipelineState.STARTING
        logger.info("Starting pipeline...")

        try:
            if self._db_manager is None:
                logger.debug("Initializing database manager...")
                self._db_manager = DatabaseManager.from_settings(self._get_settings().database)
            if self._init_schema:
                await self._db_manager.init_schema()
            self._stats.started_at = datetime.now(UTC)
            self._state = PipelineState.RUNNING
            logger.info("Pipeline started successfully")
        except Exception as e:
            self._state = PipelineState.ERROR
            self._stats.last_error = str(e)
            logger.error("Failed to start pipeline: %s", e)
            await self._cleanup()
            raise

    async def stop(self) -> None:
        """Stop the pipeline and release owned resources."""
        if self._state == PipelineState.STOPPED:
            return

        self._state = PipelineState.STOPPING
        logger.info("Stopping pipeline...")
        await self._cleanup()
        self._state = PipelineState.STOPPED
        logger.info("Pipeline stopped")

    async def _cleanup(self) -> None:
        if self._owns_db_manager and self._db_manager is not None:
            await self._db_manager.dispose()
            self._db_manager = None

    def _repository(self, session: Any) -> EventRepository:
        return EventRepository.from_settings(session, self._get_settings())

    def _require_db(self) -> DatabaseManager:
        if self._state != PipelineState.RUNNING or self._db_manager is None:
            raise RuntimeError(f"Pipeline is not running (state {self._state})")
        return self._db_manager

    async def ingest(self, raw: Mapping[str, Any]) -> list[Alert]:
        """Decode a raw event record and ingest it.

        Returns:
            Alerts raised for the event.

        Raises:
            ValidationError: If the record or its payload is malformed.
            PersistenceError: If the event cannot be stored.
        """
        try:
            event = ContractEvent.from_dict(raw)
        except ValidationError as e:
            self._stats.events_rejected += 1
            self._stats.last_error = str(e)
            logger.warning("Rejected event record: %s", e)
            raise
        return await self.ingest_event(event)

    async def ingest_event(self, event: ContractEvent) -> list[Alert]:
        """Store an event, then dispatch it to listeners and the detector.

        Returns:
            Alerts raised for the event.

        Raises:
            PersistenceError: If the event cannot be stored. Listeners are
                not notified in that case.
        """
        db = self._require_db()
        try:
            async with db.session() as session:
                await self._repository(session).store(event)
        except PersistenceError as e:
            self._stats.errors += 1
            self._stats.last_error = str(e)
            raise

        self._stats.events_ingested += 1
        self._stats.last_event_time = datetime.now(UTC)

        alerts = self._monitor.emit(event)
        self._stats.alerts_raised += len(alerts)
        if alerts:
            await self._flush_alerts(db)
        return alerts

    async def _flush_alerts(self, db: DatabaseManager) -> None:
        if self._recorder is None:
            return
        try:
            async with db.session() as session:
                self._stats.alerts_persisted += await self._recorder.flush(session)
        except PersistenceError as e:
            self._stats.errors += 1
            self._stats.last_error = str(e)
            logger.error("Failed to persist alerts (kept queued): %s", e)

    async def run_maintenance(self, *, now: datetime | None = None) -> MaintenanceResult:
        """Apply the retention policy and refresh the statistics rollup."""
        db = self._require_db()
        async with db.session() as session:
            repo = self._repository(session)
            deleted = await repo.cleanup(now=now)
            rows = await repo.refresh_rollup()
        logger.info("Maintenance finished: deleted=%d, rollup_rows=%d", deleted, rows)
        return MaintenanceResult(deleted_events=deleted, rollup_rows=rows)

    async def __aenter__(self) -> IngestionPipeline:
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        """Async context manager exit."""
        await self.stop()
