"""
TCG Tracker — Item Model

One row per tracked collectible. Cards are discovered by the incremental
crawler; sealed products are seeded. Identity is the composite key
(kind, name, set_name, secondary_key) where secondary_key is the card number
for cards and the product type for products.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import DECIMAL, INTEGER, Index, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tcgtracker.models.base import Base, UTCDateTime

if TYPE_CHECKING:
    from tcgtracker.models.price_history import PriceHistoryEntry


class Item(Base):
    """
    A card or sealed product with its latest known price.

    Mutated by the upserter on every ingestion or simulated touch. The core
    pipeline never deletes items; deleting one cascades to its history.
    """

    __tablename__ = "items"

    id: Mapped[int] = mapped_column(INTEGER, primary_key=True, autoincrement=True)
    kind: Mapped[str] = mapped_column(
        String(16), nullable=False, comment="'card' or 'product'"
    )
    name: Mapped[str] = mapped_column(
        String, nullable=False, comment="Display name (e.g., 'Charizard ex')"
    )
    set_name: Mapped[str] = mapped_column(
        String, nullable=False, comment="Set name (e.g., 'Obsidian Flames')"
    )
    secondary_key: Mapped[str] = mapped_column(
        String,
        nullable=False,
        comment="Card number for cards, product type for products",
    )
    card_number: Mapped[str | None] = mapped_column(String, nullable=True)
    rarity: Mapped[str | None] = mapped_column(String, nullable=True)
    product_type: Mapped[str | None] = mapped_column(
        String, nullable=True, comment="e.g., 'Booster Box', 'Elite Trainer Box'"
    )
    image_url: Mapped[str | None] = mapped_column(String, nullable=True)
    marketplace_url: Mapped[str | None] = mapped_column(
        String, nullable=True, comment="TCGPlayer listing or search URL"
    )
    current_price: Mapped[Decimal] = mapped_column(
        DECIMAL(10, 2), nullable=False, comment="Latest price in USD, non-negative"
    )
    last_updated: Mapped[datetime] = mapped_column(
        UTCDateTime,
        server_default=func.now(),
        nullable=False,
        comment="Effective timestamp of the latest upsert",
    )

    history: Mapped[list["PriceHistoryEntry"]] = relationship(
        back_populates="item",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        UniqueConstraint(
            "kind", "name", "set_name", "secondary_key", name="uq_items_composite_key"
        ),
        Index("ix_items_kind_id", "kind", "id"),
        Index("ix_items_last_updated", "last_updated"),
    )

    def __repr__(self) -> str:
        return (
            f"<Item id={self.id} kind={self.kind!r} name={self.name!r} "
            f"set={self.set_name!r} key={self.secondary_key!r} price={self.current_price}>"
        )
