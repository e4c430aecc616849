"""Event store: contract events, alerts and the daily stats rollup.

Revision ID: 001_event_store
Revises:
Create Date: 2026-10-18 00:00:00.000000+00:00
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_event_store"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

PAYLOAD_JSON = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    # Contract events (append-only)
    op.create_table(
        "contract_events",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("contract_id", sa.String(255), nullable=False),
        sa.Column("event_type", sa.String(100), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("correlation_id", sa.String(255), nullable=True),
        sa.Column("timestamp", sa.BigInteger(), nullable=False),
        sa.Column("data", PAYLOAD_JSON, nullable=False),
        sa.Column("amount", sa.Numeric(78, 18), nullable=True),
        sa.Column("duration_ms", sa.Numeric(20, 3), nullable=True),
        sa.Column("indexed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("indexed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "idx_contract_events_type_timestamp", "contract_events", ["event_type", "timestamp"]
    )
    op.create_index(
        "idx_contract_events_contract_timestamp", "contract_events", ["contract_id", "timestamp"]
    )
    op.create_index("idx_contract_events_correlation_id", "contract_events", ["correlation_id"])
    op.create_index(
        "idx_contract_events_indexed_timestamp", "contract_events", ["indexed", "timestamp"]
    )
    op.create_index(
        "idx_contract_events_type_contract_timestamp",
        "contract_events",
        ["event_type", "contract_id", "timestamp"],
    )

    # Detector alerts
    op.create_table(
        "event_alerts",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("alert_id", sa.String(255), nullable=False),
        sa.Column("kind", sa.String(50), nullable=False),
        sa.Column("severity", sa.String(20), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("event_type", sa.String(100), nullable=True),
        sa.Column("event_id", sa.String(64), nullable=True),
        sa.Column("data", PAYLOAD_JSON, nullable=True),
        sa.Column("acknowledged", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("acknowledged_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("acknowledged_by", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("alert_id"),
        sa.ForeignKeyConstraint(["event_id"], ["contract_events.id"], ondelete="CASCADE"),
    )
    op.create_index("idx_event_alerts_severity_created", "event_alerts", ["severity", "created_at"])
    op.create_index("idx_event_alerts_event_type", "event_alerts", ["event_type", "created_at"])
    op.create_index("idx_event_alerts_acknowledged", "event_alerts", ["acknowledged", "created_at"])
    op.create_index("idx_event_alerts_event_id", "event_alerts", ["event_id"])

    # Daily rollup (refreshed on demand)
    op.create_table(
        "daily_event_stats",
        sa.Column("day", sa.Integer(), nullable=False),
        sa.Column("event_type", sa.String(100), nullable=False),
        sa.Column("event_count", sa.BigInteger(), nullable=False),
        sa.Column("unique_contracts", sa.BigInteger(), nullable=False),
        sa.Column("unique_correlations", sa.BigInteger(), nullable=False),
        sa.Column("min_timestamp", sa.BigInteger(), nullable=False),
        sa.Column("max_timestamp", sa.BigInteger(), nullable=False),
        sa.Column("refreshed_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("day", "event_type"),
    )
    op.create_index("idx_daily_event_stats_day_type", "daily_event_stats", ["day", "event_type"])


def downgrade() -> None:
    op.drop_index("idx_daily_event_stats_day_type", table_name="daily_event_stats")
    op.drop_table("daily_event_stats")

    op.drop_index("idx_event_alerts_event_id", table_name="event_alerts")
    op.drop_index("idx_event_alerts_acknowledged", table_name="event_alerts")
    op.drop_index("idx_event_alerts_event_type", table_name="event_alerts")
    op.drop_index("idx_event_alerts_severity_created", table_name="event_alerts")
    op.drop_table("event_alerts")

    op.drop_index("idx_contract_events_type_contract_timestamp", table_name="contract_events")
    op.drop_index("idx_contract_events_indexed_timestamp", table_name="contract_events")
    op.drop_index("idx_contract_events_correlation_id", table_name="contract_events")
    op.drop_index("idx_contract_events_contract_timestamp", table_name="contract_events")
    op.drop_index("idx_contract_events_type_timestamp", table_name="contract_events")
    op.drop_table("contract_events")
