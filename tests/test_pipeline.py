"""Tests for the ingestion pipeline."""

from __future__ import annotations

from collections.abc import AsyncIterator
from datetime import UTC, datetime
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest

from contract_event_tracker.config import Settings, clear_settings_cache
from contract_event_tracker.detector.models import AlertKind
from contract_event_tracker.errors import PayloadDecodeError, ValidationError
from contract_event_tracker.monitor import EventMonitor
from contract_event_tracker.pipeline import IngestionPipeline, PipelineState
from contract_event_tracker.storage.database import DatabaseManager
from contract_event_tracker.storage.repos import AlertRepository, DuplicateEventError, EventRepository

NOW = datetime(2026, 6, 1, tzinfo=UTC)
NOW_TS = int(NOW.timestamp())
DAY = 86400


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    pytest.importorskip("aiosqlite", exc_type=ImportError)
    return f"sqlite+aiosqlite:///{tmp_path / 'pipeline.db'}"


@pytest.fixture
def settings(monkeypatch: pytest.MonkeyPatch, tmp_path: Path, database_url: str) -> Settings:
    """Settings pointing at a throwaway sqlite database."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("DATABASE_URL", database_url)
    clear_settings_cache()
    return Settings()


@pytest.fixture
async def inspect_db(database_url: str) -> AsyncIterator[DatabaseManager]:
    """Independent connection for reading back what the pipeline wrote."""
    manager = DatabaseManager(database_url)
    yield manager
    await manager.dispose()


def _raw(event_type: str = "FundsLocked", data: dict[str, Any] | None = None, **fields: Any) -> dict[str, Any]:
    record: dict[str, Any] = {
        "contract_id": "CESCROW",
        "event_type": event_type,
        "timestamp": NOW_TS,
        "data": {"amount": 100} if data is None else data,
    }
    record.update(fields)
    return record


class TestLifecycle:
    """Tests for start/stop."""

    @pytest.mark.asyncio
    async def test_start_and_stop(self, settings: Settings) -> None:
        pipeline = IngestionPipeline(settings)
        assert pipeline.state == PipelineState.STOPPED

        await pipeline.start()
        assert pipeline.is_running
        assert pipeline.stats.started_at is not None

        await pipeline.stop()
        assert pipeline.state == PipelineState.STOPPED

    @pytest.mark.asyncio
    async def test_cannot_start_twice(self, settings: Settings) -> None:
        async with IngestionPipeline(settings) as pipeline:
            with pytest.raises(RuntimeError):
                await pipeline.start()

    @pytest.mark.asyncio
    async def test_stop_when_stopped_is_noop(self, settings: Settings) -> None:
        pipeline = IngestionPipeline(settings)
        await pipeline.stop()
        assert pipeline.state == PipelineState.STOPPED

    @pytest.mark.asyncio
    async def test_ingest_requires_running(self, settings: Settings) -> None:
        pipeline = IngestionPipeline(settings)

        with pytest.raises(RuntimeError):
            await pipeline.ingest(_raw())

    @pytest.mark.asyncio
    async def test_start_failure_sets_error_state(self, settings: Settings) -> None:
        db = MagicMock(spec=DatabaseManager)
        db.init_schema.side_effect = OSError("disk full")
        pipeline = IngestionPipeline(settings, db_manager=db)

        with pytest.raises(OSError):
            await pipeline.start()

        assert pipeline.state == PipelineState.ERROR
        assert pipeline.stats.last_error == "disk full"
        db.dispose.assert_not_called()

    @pytest.mark.asyncio
    async def test_detector_configured_from_settings(
        self, monkeypatch: pytest.MonkeyPatch, settings: Settings
    ) -> None:
        monkeypatch.setenv("DETECTOR_MIN_HISTORY", "2")
        pipeline = IngestionPipeline(Settings())

        assert pipeline.monitor.detector.config.min_history == 2


class TestIngest:
    """Tests for the ingest path."""

    @pytest.mark.asyncio
    async def test_event_is_stored_before_listeners_run(
        self, settings: Settings, inspect_db: DatabaseManager
    ) -> None:
        seen: list[str] = []
        async with IngestionPipeline(settings) as pipeline:
            pipeline.monitor.on("FundsLocked", lambda e: seen.append(e.id))
            alerts = await pipeline.ingest(_raw(id="evt-1", correlation_id="trace-9"))

        assert alerts == []
        assert seen == ["evt-1"]
        assert pipeline.stats.events_ingested == 1
        assert pipeline.stats.last_event_time is not None

        async with inspect_db.session() as session:
            stored = await EventRepository(session).get("evt-1")
        assert stored is not None
        assert stored.correlation_id == "trace-9"

    @pytest.mark.asyncio
    async def test_missing_id_is_assigned(self, settings: Settings) -> None:
        seen: list[str] = []
        async with IngestionPipeline(settings) as pipeline:
            pipeline.monitor.on("FundsLocked", lambda e: seen.append(e.id))
            await pipeline.ingest(_raw())

        assert len(seen) == 1
        assert seen[0]

    @pytest.mark.asyncio
    async def test_malformed_record_rejected(self, settings: Settings) -> None:
        async with IngestionPipeline(settings) as pipeline:
            with pytest.raises(ValidationError):
                await pipeline.ingest({"event_type": "FundsLocked", "timestamp": NOW_TS})
            with pytest.raises(PayloadDecodeError):
                await pipeline.ingest(_raw(data={"depositor": "GABC"}))

        assert pipeline.stats.events_rejected == 2
        assert pipeline.stats.events_ingested == 0

    @pytest.mark.asyncio
    async def test_duplicate_is_not_dispatched(self, settings: Settings) -> None:
        listener = MagicMock()
        async with IngestionPipeline(settings) as pipeline:
            pipeline.monitor.on("FundsLocked", listener)
            await pipeline.ingest(_raw(id="evt-1"))
            with pytest.raises(DuplicateEventError):
                await pipeline.ingest(_raw(id="evt-1"))

        listener.assert_called_once()
        assert pipeline.stats.events_ingested == 1
        assert pipeline.stats.errors == 1

    @pytest.mark.asyncio
    async def test_alerts_are_persisted(self, settings: Settings, inspect_db: DatabaseManager) -> None:
        async with IngestionPipeline(settings) as pipeline:
            alerts = await pipeline.ingest(
                _raw(
                    "OperationMetric",
                    {"operation": "release_funds", "success": False, "error": "NotAuthorized"},
                    id="evt-op",
                )
            )

        assert [a.kind for a in alerts] == [AlertKind.OPERATION_FAILURE]
        assert pipeline.stats.alerts_raised == 1
        assert pipeline.stats.alerts_persisted == 1

        async with inspect_db.session() as session:
            stored = await AlertRepository(session).list_unacknowledged()
        assert len(stored) == 1
        assert stored[0].event_id == "evt-op"

    @pytest.mark.asyncio
    async def test_alert_recording_can_be_disabled(self, settings: Settings) -> None:
        pipeline = IngestionPipeline(settings, record_alerts=False, log_alerts=False)
        async with pipeline:
            alerts = await pipeline.ingest(
                _raw("OperationMetric", {"operation": "lock_funds", "success": False})
            )

        assert len(alerts) == 1
        assert pipeline.stats.alerts_persisted == 0

    @pytest.mark.asyncio
    async def test_shared_db_manager_is_not_disposed(self, settings: Settings, database_url: str) -> None:
        db = DatabaseManager(database_url)
        monitor = EventMonitor()
        async with IngestionPipeline(settings, db_manager=db, monitor=monitor) as pipeline:
            await pipeline.ingest(_raw(id="evt-1"))

        async with db.session() as session:
            assert await EventRepository(session).get("evt-1") is not None
        await db.dispose()


class TestMaintenance:
    """Tests for retention and rollup maintenance."""

    @pytest.mark.asyncio
    async def test_run_maintenance(self, settings: Settings, inspect_db: DatabaseManager) -> None:
        async with IngestionPipeline(settings, log_alerts=False) as pipeline:
            await pipeline.ingest(
                _raw(
                    "OperationMetric",
                    {"operation": "lock_funds", "success": True},
                    id="evt-old",
                    timestamp=NOW_TS - 120 * DAY,
                )
            )
            await pipeline.ingest(_raw(id="evt-new"))
            result = await pipeline.run_maintenance(now=NOW)

        assert result.deleted_events == 1
        assert result.rollup_rows == 1

        async with inspect_db.session() as session:
            repo = EventRepository(session)
            assert await repo.get("evt-old") is None
            stats = await repo.stats(use_rollup=True)
        assert stats.total_events == 1
        assert stats.events_by_type == {"FundsLocked": 1}
