"""Event log, daily aggregates, counters and catalogue tables.

Revision ID: 20261019_01
Revises: 
Create Date: 2026-10-19
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision: str = "20261019_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _json() -> sa.types.TypeEngine:
    return postgresql.JSONB().with_variant(sa.JSON(), "sqlite")


def upgrade() -> None:
    op.create_table(
        "metric_events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("metric_type", sa.String(length=64), nullable=False),
        sa.Column("subject_id", sa.String(length=128), nullable=False),
        sa.Column("actor_id", sa.String(length=128), nullable=True),
        sa.Column("value", sa.Float(), nullable=False),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("metadata", _json(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_metric_events_type_occurred_at", "metric_events", ["metric_type", "occurred_at"])
    op.create_index("ix_metric_events_subject_type", "metric_events", ["subject_id", "metric_type"])

    op.create_table(
        "metric_daily_aggregates",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("metric_type", sa.String(length=64), nullable=False),
        sa.Column("metric_date", sa.Date(), nullable=False),
        sa.Column("event_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_value", sa.Float(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("metric_type", "metric_date", name="uq_metric_daily_aggregates_type_date"),
    )
    op.create_index("ix_metric_daily_aggregates_metric_date", "metric_daily_aggregates", ["metric_date"])

    op.create_table(
        "subject_counters",
        sa.Column("subject_id", sa.String(length=128), primary_key=True),
        sa.Column("counter_name", sa.String(length=64), primary_key=True),
        sa.Column("value", sa.Float(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        "marketplace_items",
        sa.Column("id", sa.String(length=128), primary_key=True),
        sa.Column("item_type", sa.String(length=32), nullable=False),
        sa.Column("artist_id", sa.String(length=128), nullable=True),
        sa.Column("curator_id", sa.String(length=128), nullable=True),
        sa.Column("category", sa.String(length=128), nullable=True),
        sa.Column("published", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("annotations", _json(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_marketplace_items_type_category", "marketplace_items", ["item_type", "category"])
    op.create_index("ix_marketplace_items_artist_id", "marketplace_items", ["artist_id"])

    op.create_table(
        "collection_memberships",
        sa.Column("collection_id", sa.String(length=128), primary_key=True),
        sa.Column("artwork_id", sa.String(length=128), primary_key=True),
        sa.Column("added_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_collection_memberships_artwork_id", "collection_memberships", ["artwork_id"])


def downgrade() -> None:
    op.drop_index("ix_collection_memberships_artwork_id", table_name="collection_memberships")
    op.drop_table("collection_memberships")
    op.drop_index("ix_marketplace_items_artist_id", table_name="marketplace_items")
    op.drop_index("ix_marketplace_items_type_category", table_name="marketplace_items")
    op.drop_table("marketplace_items")
    op.drop_table("subject_counters")
    op.drop_index("ix_metric_daily_aggregates_metric_date", table_name="metric_daily_aggregates")
    op.drop_table("metric_daily_aggregates")
    op.drop_index("ix_metric_events_subject_type", table_name="metric_events")
    op.drop_index("ix_metric_events_type_occurred_at", table_name="metric_events")
    op.drop_table("metric_events")
