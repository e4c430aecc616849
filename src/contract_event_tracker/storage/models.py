"""SQLAlchemy models for persistent storage.

This module defines the database schema for contract events, the alerts
raised against them, and the daily statistics rollup.
"""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# JSONB on PostgreSQL (GIN-indexable), plain JSON elsewhere.
PayloadJSON = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class ContractEventModel(Base):
    """Append-only contract events (durable truth)."""

    __tablename__ = "contract_events"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    contract_id: Mapped[str] = mapped_column(String(255), nullable=False)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    correlation_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    # Unix seconds of emission.
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    data: Mapped[dict[str, Any]] = mapped_column(PayloadJSON, nullable=False)

    # Denormalized from the typed payload for server-side filtering/aggregation.
    # Amounts keep 18 fractional digits; finer ones are rounded here but not in
    # the raw payload.
    amount: Mapped[Decimal | None] = mapped_column(Numeric(78, 18), nullable=True)
    duration_ms: Mapped[Decimal | None] = mapped_column(Numeric(20, 3), nullable=True)

    indexed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    indexed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    __table_args__ = (
        Index("idx_contract_events_type_timestamp", "event_type", "timestamp"),
        Index("idx_contract_events_contract_timestamp", "contract_id", "timestamp"),
        Index("idx_contract_events_correlation_id", "correlation_id"),
        Index("idx_contract_events_indexed_timestamp", "indexed", "timestamp"),
        Index(
            "idx_contract_events_type_contract_timestamp",
            "event_type",
            "contract_id",
            "timestamp",
        ),
    )


class EventAlertModel(Base):
    """Alerts raised by the anomaly detector, with acknowledgement state."""

    __tablename__ = "event_alerts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    alert_id: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    kind: Mapped[str] = mapped_column(String(50), nullable=False)
    severity: Mapped[str] = mapped_column(String(20), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    event_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    event_id: Mapped[str | None] = mapped_column(
        String(64),
        ForeignKey("contract_events.id", ondelete="CASCADE"),
        nullable=True,
    )
    data: Mapped[dict[str, Any] | None] = mapped_column(PayloadJSON, nullable=True)

    acknowledged: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    acknowledged_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    acknowledged_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    __table_args__ = (
        Index("idx_event_alerts_severity_created", "severity", "created_at"),
        Index("idx_event_alerts_event_type", "event_type", "created_at"),
        Index("idx_event_alerts_acknowledged", "acknowledged", "created_at"),
        Index("idx_event_alerts_event_id", "event_id"),
    )


class DailyEventStatsModel(Base):
    """Per-day, per-type event counts (rollup refreshed on demand)."""

    __tablename__ = "daily_event_stats"

    # Days since the Unix epoch (UTC).
    day: Mapped[int] = mapped_column(Integer, primary_key=True)
    event_type: Mapped[str] = mapped_column(String(100), primary_key=True)

    event_count: Mapped[int] = mapped_column(BigInteger, nullable=False)
    unique_contracts: Mapped[int] = mapped_column(BigInteger, nullable=False)
    unique_correlations: Mapped[int] = mapped_column(BigInteger, nullable=False)
    min_timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    max_timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)

    refreshed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    __table_args__ = (Index("idx_daily_event_stats_day_type", "day", "event_type"),)
