"""
TCG Tracker — Price History Model

Append-only log of price observations per item. Every upsert appends exactly
one row; the compactor and the age-based retention sweep are the only
deleters.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import DECIMAL, INTEGER, ForeignKey, Index, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tcgtracker.models.base import Base, UTCDateTime

if TYPE_CHECKING:
    from tcgtracker.models.item import Item


class PriceHistoryEntry(Base):
    """
    One price observation for one item.

    Index: (item_id, recorded_at) supports per-item ascending scans used by
    compaction and the descending "latest two" reads used for percent change.
    """

    __tablename__ = "price_history"

    id: Mapped[int] = mapped_column(INTEGER, primary_key=True, autoincrement=True)
    item_id: Mapped[int] = mapped_column(
        INTEGER,
        ForeignKey("items.id", ondelete="CASCADE"),
        nullable=False,
    )
    price: Mapped[Decimal] = mapped_column(
        DECIMAL(10, 2), nullable=False, comment="Observed price in USD"
    )
    recorded_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        server_default=func.now(),
        nullable=False,
        comment="Effective timestamp of the observation",
    )

    item: Mapped["Item"] = relationship(back_populates="history")

    __table_args__ = (
        Index("ix_price_history_item_recorded", "item_id", "recorded_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<PriceHistoryEntry item_id={self.item_id} price={self.price} "
            f"at={self.recorded_at}>"
        )
