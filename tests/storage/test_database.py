"""Tests for database engine and session management."""

from pathlib import Path

import pytest
from sqlalchemy import func, select

from contract_event_tracker.storage.database import DatabaseManager, _normalize_async_database_url
from contract_event_tracker.storage.models import ContractEventModel


def _row(event_id: str) -> ContractEventModel:
    return ContractEventModel(
        id=event_id,
        contract_id="C1",
        event_type="FundsLocked",
        timestamp=1_700_000_000,
        data={"amount": 1},
    )


@pytest.fixture
async def db(tmp_path: Path):
    pytest.importorskip("aiosqlite", exc_type=ImportError)
    manager = DatabaseManager(f"sqlite+aiosqlite:///{tmp_path / 'events.db'}")
    await manager.init_schema()
    yield manager
    await manager.dispose()


async def _count(db: DatabaseManager) -> int:
    async with db.session() as session:
        result = await session.execute(select(func.count()).select_from(ContractEventModel))
        return int(result.scalar_one())


def test_sync_postgres_url_is_upgraded() -> None:
    assert (
        _normalize_async_database_url("postgresql://u:p@localhost/events")
        == "postgresql+asyncpg://u:p@localhost/events"
    )
    assert _normalize_async_database_url("sqlite+aiosqlite:///x.db") == "sqlite+aiosqlite:///x.db"


class TestDatabaseManager:
    """Tests for DatabaseManager."""

    @pytest.mark.asyncio
    async def test_session_commits_on_exit(self, db: DatabaseManager) -> None:
        async with db.session() as session:
            session.add(_row("evt-1"))

        assert await _count(db) == 1

    @pytest.mark.asyncio
    async def test_session_rolls_back_on_error(self, db: DatabaseManager) -> None:
        with pytest.raises(RuntimeError):
            async with db.session() as session:
                session.add(_row("evt-1"))
                await session.flush()
                raise RuntimeError("abort")

        assert await _count(db) == 0

    @pytest.mark.asyncio
    async def test_init_schema_is_idempotent(self, db: DatabaseManager) -> None:
        await db.init_schema()

        assert await _count(db) == 0

    @pytest.mark.asyncio
    async def test_dispose_allows_reconnect(self, db: DatabaseManager) -> None:
        async with db.session() as session:
            session.add(_row("evt-1"))
        await db.dispose()

        assert await _count(db) == 1
