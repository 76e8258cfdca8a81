"""
TCG Tracker — Read-side Queries

Read-only views for the presentation layer:
    - items with derived change statistics
    - ascending, bounded price-history slices

Malformed history (negative or non-finite price, missing timestamp) is
filtered out rather than raised, so display code never has to guard.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

import structlog
from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tcgtracker.config import ItemKind, settings
from tcgtracker.models.item import Item
from tcgtracker.models.price_history import PriceHistoryEntry
from tcgtracker.utils.urls import build_tcgplayer_search_url

logger = structlog.get_logger(__name__)

# Entries needed before the average/recent-sale stats are meaningful.
MIN_ENTRIES_FOR_AVERAGE = 5


class PricePoint(BaseModel):
    price: Decimal
    recorded_at: datetime


class ItemWithChanges(BaseModel):
    id: int
    kind: str
    name: str
    set_name: str
    card_number: str | None = None
    rarity: str | None = None
    product_type: str | None = None
    image_url: str | None = None
    marketplace_url: str | None = None
    current_price: Decimal
    last_updated: datetime
    percent_change: float = 0.0
    overall_percent_change: float = 0.0
    average_price: Decimal
    is_recent_sale: bool = False


def is_valid_point(price: Decimal | None, recorded_at: datetime | None) -> bool:
    return (
        price is not None
        and recorded_at is not None
        and price.is_finite()
        and price >= 0
    )


def _percent(current: Decimal, base: Decimal) -> float:
    if base == 0:
        return 0.0
    return float((current - base) / base * 100)


def compute_change_stats(
    current_price: Decimal,
    recent: list[Decimal],
) -> tuple[float, float, Decimal, bool]:
    """
    Derived stats from recent prices, newest first.

    Returns:
        (percent_change, overall_percent_change, average_price, is_recent_sale)
        - percent_change: latest vs previous entry
        - overall_percent_change: latest vs oldest entry in the window
        - average_price: mean of entries 2..10, once there are at least five
        - is_recent_sale: latest deviates more than the configured percent
          from that average
    """
    percent_change = 0.0
    overall = 0.0
    average = current_price
    recent_sale = False

    if len(recent) >= 2:
        latest = recent[0]
        percent_change = _percent(latest, recent[1])
        overall = _percent(latest, recent[-1])

        if len(recent) >= MIN_ENTRIES_FOR_AVERAGE:
            earlier = recent[1:settings.RECENT_HISTORY_WINDOW]
            average = sum(earlier, Decimal("0")) / len(earlier)
            if average > 0:
                deviation = abs(_percent(latest, average))
                recent_sale = deviation > settings.RECENT_SALE_DEVIATION_PERCENT

    return percent_change, overall, average, recent_sale


async def _recent_prices(session: AsyncSession, item_ids: list[int]) -> dict[int, list[Decimal]]:
    """item_id -> up to RECENT_HISTORY_WINDOW valid prices, newest first."""
    if not item_ids:
        return {}

    row_number = (
        func.row_number()
        .over(
            partition_by=PriceHistoryEntry.item_id,
            order_by=[PriceHistoryEntry.recorded_at.desc(), PriceHistoryEntry.id.desc()],
        )
        .label("rn")
    )
    ranked = (
        select(
            PriceHistoryEntry.item_id,
            PriceHistoryEntry.price,
            PriceHistoryEntry.recorded_at,
            row_number,
        )
        .where(PriceHistoryEntry.item_id.in_(item_ids))
        .subquery()
    )
    result = await session.execute(
        select(ranked.c.item_id, ranked.c.price, ranked.c.recorded_at)
        .where(ranked.c.rn <= settings.RECENT_HISTORY_WINDOW)
        .order_by(ranked.c.item_id, ranked.c.rn)
    )

    prices: dict[int, list[Decimal]] = {}
    for row in result.all():
        if is_valid_point(row.price, row.recorded_at):
            prices.setdefault(row.item_id, []).append(row.price)
    return prices


async def list_items_with_changes(
    session: AsyncSession,
    kind: ItemKind | None = None,
) -> list[ItemWithChanges]:
    """All items (optionally one kind) with derived change statistics."""
    query = select(Item).order_by(Item.id.asc())
    if kind is not None:
        query = query.where(Item.kind == kind.value)
    items = list((await session.execute(query)).scalars().all())

    recent = await _recent_prices(session, [item.id for item in items])

    listing: list[ItemWithChanges] = []
    for item in items:
        percent_change, overall, average, recent_sale = compute_change_stats(
            item.current_price, recent.get(item.id, [])
        )

        marketplace_url = item.marketplace_url
        if not marketplace_url and item.kind == ItemKind.CARD.value and item.card_number:
            marketplace_url = build_tcgplayer_search_url(item.name, item.set_name, item.card_number)

        listing.append(
            ItemWithChanges(
                id=item.id,
                kind=item.kind,
                name=item.name,
                set_name=item.set_name,
                card_number=item.card_number,
                rarity=item.rarity,
                product_type=item.product_type,
                image_url=item.image_url,
                marketplace_url=marketplace_url,
                current_price=item.current_price,
                last_updated=item.last_updated,
                percent_change=round(percent_change, 2),
                overall_percent_change=round(overall, 2),
                average_price=average,
                is_recent_sale=recent_sale,
            )
        )

    logger.debug("queries_list_items", kind=kind.value if kind else None, count=len(listing))
    return listing


async def get_price_history(
    session: AsyncSession,
    item_id: int,
    limit: int | None = None,
) -> list[PricePoint]:
    """
    The most recent `limit` history entries for one item, oldest first.

    Invalid rows are dropped from the slice, so it may hold fewer than
    `limit` points.
    """
    size = limit if limit is not None and limit > 0 else settings.PRICE_HISTORY_DEFAULT_LIMIT

    result = await session.execute(
        select(PriceHistoryEntry.price, PriceHistoryEntry.recorded_at)
        .where(PriceHistoryEntry.item_id == item_id)
        .order_by(PriceHistoryEntry.recorded_at.desc(), PriceHistoryEntry.id.desc())
        .limit(size)
    )
    points = [
        PricePoint(price=row.price, recorded_at=row.recorded_at)
        for row in result.all()
        if is_valid_point(row.price, row.recorded_at)
    ]
    points.reverse()
    return points
