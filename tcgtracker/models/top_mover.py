"""
TCG Tracker — Top Movers Cache Model

Ranked cards with the largest recent percent change, recomputed every few
minutes and grouped by hour period so readers never scan full history.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import FLOAT, INTEGER, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from tcgtracker.models.base import Base, UTCDateTime


class TopMover(Base):
    """One ranked entry (1..N) for an hour period."""

    __tablename__ = "top_movers_cache"

    id: Mapped[int] = mapped_column(INTEGER, primary_key=True, autoincrement=True)
    item_id: Mapped[int] = mapped_column(
        INTEGER,
        ForeignKey("items.id", ondelete="CASCADE"),
        nullable=False,
    )
    percent_change: Mapped[float] = mapped_column(FLOAT, nullable=False)
    period_start: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, comment="Start of the hour this ranking belongs to"
    )
    rank: Mapped[int] = mapped_column(INTEGER, nullable=False)

    __table_args__ = (
        UniqueConstraint("item_id", "period_start", name="uq_top_movers_item_period"),
        Index("ix_top_movers_period", "period_start"),
    )

    def __repr__(self) -> str:
        return (
            f"<TopMover rank={self.rank} item_id={self.item_id} "
            f"change={self.percent_change:.2f}%>"
        )
