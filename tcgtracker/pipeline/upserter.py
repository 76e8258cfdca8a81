"""
TCG Tracker — Item Upserter

Idempotent create-or-update of an item keyed by its composite key, plus an
append-only price-history write.

Contract:
    - lookup by (kind, name, set_name, secondary_key)
    - found     → patch current_price/last_updated, append one history row
    - not found → insert item, append one initial history row
    - every call appends exactly one history row at its effective timestamp
      (the forced timestamp when given, else now)

Repeating a call never creates a second item; it records one more
observation in time.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

import structlog
from pydantic import BaseModel, model_validator
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tcgtracker.config import ItemKind
from tcgtracker.models.item import Item
from tcgtracker.models.price_history import PriceHistoryEntry
from tcgtracker.utils.dates import utc_now

logger = structlog.get_logger(__name__)


class ItemIdentity(BaseModel):
    """Identity and descriptive fields of an item to upsert."""

    kind: ItemKind
    name: str
    set_name: str
    card_number: str | None = None
    rarity: str | None = None
    product_type: str | None = None
    image_url: str | None = None
    marketplace_url: str | None = None

    @model_validator(mode="after")
    def check_secondary_key(self) -> "ItemIdentity":
        if self.kind == ItemKind.CARD and not self.card_number:
            raise ValueError("cards require a card_number")
        if self.kind == ItemKind.PRODUCT and not self.product_type:
            raise ValueError("products require a product_type")
        return self

    @property
    def secondary_key(self) -> str:
        if self.kind == ItemKind.CARD:
            return self.card_number or ""
        return self.product_type or ""

    @classmethod
    def from_item(cls, item: Item) -> "ItemIdentity":
        return cls(
            kind=ItemKind(item.kind),
            name=item.name,
            set_name=item.set_name,
            card_number=item.card_number,
            rarity=item.rarity,
            product_type=item.product_type,
            image_url=item.image_url,
            marketplace_url=item.marketplace_url,
        )


class UpsertOutcome(BaseModel):
    item_id: int
    created: bool
    recorded_at: datetime


def _validate_price(price: Decimal) -> Decimal:
    if not isinstance(price, Decimal):
        price = Decimal(str(price))
    if not price.is_finite() or price < 0:
        raise ValueError(f"price must be a finite non-negative decimal, got {price}")
    return price


async def find_item(session: AsyncSession, identity: ItemIdentity) -> Item | None:
    result = await session.execute(
        select(Item).where(
            Item.kind == identity.kind.value,
            Item.name == identity.name,
            Item.set_name == identity.set_name,
            Item.secondary_key == identity.secondary_key,
        )
    )
    return result.scalar_one_or_none()


async def _patch(
    session: AsyncSession, item: Item, price: Decimal, recorded_at: datetime
) -> UpsertOutcome:
    item_id = item.id
    item.current_price = price
    item.last_updated = recorded_at
    session.add(PriceHistoryEntry(item_id=item_id, price=price, recorded_at=recorded_at))
    await session.commit()
    return UpsertOutcome(item_id=item_id, created=False, recorded_at=recorded_at)


async def upsert_item(
    session: AsyncSession,
    identity: ItemIdentity,
    price: Decimal,
    recorded_at: datetime | None = None,
) -> UpsertOutcome:
    """
    Create or update one item and append one price-history entry.

    Args:
        session: Async database session. Committed on success.
        identity: Composite key plus descriptive fields.
        price: Non-negative price to record.
        recorded_at: Forced effective timestamp (live-update simulator);
            defaults to now.

    Returns:
        UpsertOutcome with the item id and whether it was created.

    Raises:
        ValueError: negative or non-finite price.
    """
    price = _validate_price(price)
    effective_at = recorded_at or utc_now()

    existing = await find_item(session, identity)
    if existing is not None:
        outcome = await _patch(session, existing, price, effective_at)
        logger.debug(
            "upsert_item_updated",
            item_id=outcome.item_id,
            name=identity.name,
            price=str(price),
        )
        return outcome

    item = Item(
        kind=identity.kind.value,
        name=identity.name,
        set_name=identity.set_name,
        secondary_key=identity.secondary_key,
        card_number=identity.card_number,
        rarity=identity.rarity,
        product_type=identity.product_type,
        image_url=identity.image_url,
        marketplace_url=identity.marketplace_url,
        current_price=price,
        last_updated=effective_at,
    )
    session.add(item)
    try:
        await session.flush()
    except IntegrityError:
        # Another invocation inserted the same key first; fall back to a patch.
        await session.rollback()
        existing = await find_item(session, identity)
        if existing is None:
            raise
        logger.info("upsert_item_insert_race", name=identity.name, set_name=identity.set_name)
        return await _patch(session, existing, price, effective_at)

    item_id = item.id
    session.add(PriceHistoryEntry(item_id=item_id, price=price, recorded_at=effective_at))
    await session.commit()

    logger.info(
        "upsert_item_created",
        item_id=item_id,
        kind=identity.kind.value,
        name=identity.name,
        set_name=identity.set_name,
        price=str(price),
    )
    return UpsertOutcome(item_id=item_id, created=True, recorded_at=effective_at)
