"""
TCG Tracker — Daily Snapshot Model

One price sample per item per calendar day (UTC). Used for day-over-day
change ranking independent of intraday churn. Never updated after creation.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import DECIMAL, INTEGER, ForeignKey, Index, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from tcgtracker.models.base import Base, UTCDateTime


class DailySnapshot(Base):
    """Point-in-time price for (item_id, snapshot_date)."""

    __tablename__ = "daily_snapshots"

    id: Mapped[int] = mapped_column(INTEGER, primary_key=True, autoincrement=True)
    item_id: Mapped[int] = mapped_column(
        INTEGER,
        ForeignKey("items.id", ondelete="CASCADE"),
        nullable=False,
    )
    item_kind: Mapped[str] = mapped_column(String(16), nullable=False)
    item_name: Mapped[str] = mapped_column(
        String, nullable=False, comment="Denormalized for fast ranking"
    )
    price: Mapped[Decimal] = mapped_column(DECIMAL(10, 2), nullable=False)
    snapshot_date: Mapped[str] = mapped_column(
        String(10), nullable=False, comment="Calendar day, YYYY-MM-DD (UTC)"
    )
    recorded_at: Mapped[datetime] = mapped_column(
        UTCDateTime, server_default=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("item_id", "snapshot_date", name="uq_daily_snapshots_item_date"),
        Index("ix_daily_snapshots_date", "snapshot_date"),
    )

    def __repr__(self) -> str:
        return (
            f"<DailySnapshot item_id={self.item_id} date={self.snapshot_date!r} "
            f"price={self.price}>"
        )
