"""Initial schema — items, price_history, daily_snapshots, update_progress,
maintenance_mode, top_movers_cache

Revision ID: 001_initial_schema
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = "001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- items (cards + sealed products) ---
    op.create_table(
        "items",
        sa.Column("id", sa.INTEGER(), primary_key=True, autoincrement=True),
        sa.Column("kind", sa.String(16), nullable=False, comment="'card' or 'product'"),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("set_name", sa.String(), nullable=False),
        sa.Column(
            "secondary_key",
            sa.String(),
            nullable=False,
            comment="Card number for cards, product type for products",
        ),
        sa.Column("card_number", sa.String(), nullable=True),
        sa.Column("rarity", sa.String(), nullable=True),
        sa.Column("product_type", sa.String(), nullable=True),
        sa.Column("image_url", sa.String(), nullable=True),
        sa.Column("marketplace_url", sa.String(), nullable=True),
        sa.Column("current_price", sa.DECIMAL(10, 2), nullable=False),
        sa.Column(
            "last_updated",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.UniqueConstraint(
            "kind", "name", "set_name", "secondary_key", name="uq_items_composite_key"
        ),
    )
    op.create_index("ix_items_kind_id", "items", ["kind", "id"])
    op.create_index("ix_items_last_updated", "items", ["last_updated"])

    # --- price_history (append-only, compacted) ---
    op.create_table(
        "price_history",
        sa.Column("id", sa.INTEGER(), primary_key=True, autoincrement=True),
        sa.Column(
            "item_id",
            sa.INTEGER(),
            sa.ForeignKey("items.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("price", sa.DECIMAL(10, 2), nullable=False),
        sa.Column(
            "recorded_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index(
        "ix_price_history_item_recorded", "price_history", ["item_id", "recorded_at"]
    )

    # --- daily_snapshots: one row per (item, UTC day) ---
    op.create_table(
        "daily_snapshots",
        sa.Column("id", sa.INTEGER(), primary_key=True, autoincrement=True),
        sa.Column(
            "item_id",
            sa.INTEGER(),
            sa.ForeignKey("items.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("item_kind", sa.String(16), nullable=False),
        sa.Column("item_name", sa.String(), nullable=False),
        sa.Column("price", sa.DECIMAL(10, 2), nullable=False),
        sa.Column("snapshot_date", sa.String(10), nullable=False, comment="YYYY-MM-DD (UTC)"),
        sa.Column(
            "recorded_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.UniqueConstraint("item_id", "snapshot_date", name="uq_daily_snapshots_item_date"),
    )
    op.create_index("ix_daily_snapshots_date", "daily_snapshots", ["snapshot_date"])

    # --- update_progress: one cursor per purpose ---
    op.create_table(
        "update_progress",
        sa.Column("purpose", sa.String(64), primary_key=True),
        sa.Column("cursor", sa.String(), nullable=True),
        sa.Column(
            "last_updated",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )

    # --- maintenance_mode singleton ---
    op.create_table(
        "maintenance_mode",
        sa.Column("id", sa.INTEGER(), primary_key=True, autoincrement=True),
        sa.Column("is_active", sa.BOOLEAN(), nullable=False, server_default=sa.false()),
        sa.Column("start_time", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("end_time", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("message", sa.String(), nullable=False, server_default=""),
    )

    # --- top_movers_cache ---
    op.create_table(
        "top_movers_cache",
        sa.Column("id", sa.INTEGER(), primary_key=True, autoincrement=True),
        sa.Column(
            "item_id",
            sa.INTEGER(),
            sa.ForeignKey("items.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("percent_change", sa.FLOAT(), nullable=False),
        sa.Column("period_start", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("rank", sa.INTEGER(), nullable=False),
        sa.UniqueConstraint("item_id", "period_start", name="uq_top_movers_item_period"),
    )
    op.create_index("ix_top_movers_period", "top_movers_cache", ["period_start"])


def downgrade() -> None:
    op.drop_index("ix_top_movers_period", table_name="top_movers_cache")
    op.drop_table("top_movers_cache")
    op.drop_table("maintenance_mode")
    op.drop_table("update_progress")
    op.drop_index("ix_daily_snapshots_date", table_name="daily_snapshots")
    op.drop_table("daily_snapshots")
    op.drop_index("ix_price_history_item_recorded", table_name="price_history")
    op.drop_table("price_history")
    op.drop_index("ix_items_last_updated", table_name="items")
    op.drop_index("ix_items_kind_id", table_name="items")
    op.drop_table("items")
