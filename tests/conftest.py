"""Pytest configuration and fixtures."""

from collections.abc import AsyncIterator, Callable
from typing import Any

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from contract_event_tracker.ingestor.models import ContractEvent
from contract_event_tracker.storage.models import Base

# 2023-11-14 22:13:20 UTC
BASE_TIMESTAMP = 1_700_000_000


@pytest.fixture
def contract_id() -> str:
    """Sample escrow contract address for testing."""
    return "CESCROW7XKQ2LJ4M5N6P7Q8R9S0T1U2V3W4X5Y6Z7A8B9C0D1E2F3G4H5"


@pytest.fixture
def make_event(contract_id: str) -> Callable[..., ContractEvent]:
    """Factory for events with sequential ids and timestamps."""
    counter = iter(range(1, 1_000_000))

    def _make(
        event_type: str = "FundsLocked",
        data: dict[str, Any] | None = None,
        *,
        timestamp: int | None = None,
        event_id: str | None = None,
        contract: str | None = None,
        correlation_id: str | None = None,
    ) -> ContractEvent:
        n = next(counter)
        return ContractEvent(
            id=event_id or f"evt-{n:04d}",
            contract_id=contract or contract_id,
            event_type=event_type,
            timestamp=BASE_TIMESTAMP + n if timestamp is None else timestamp,
            data={"amount": 100} if data is None else data,
            correlation_id=correlation_id,
        )

    return _make


@pytest.fixture
async def async_engine() -> AsyncIterator[AsyncEngine]:
    pytest.importorskip("aiosqlite", exc_type=ImportError)
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def async_session(async_engine: AsyncEngine) -> AsyncIterator[AsyncSession]:
    session_factory = async_sessionmaker(bind=async_engine, expire_on_commit=False)
    async with session_factory() as session:
        yield session
