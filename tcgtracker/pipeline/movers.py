"""
TCG Tracker — Top Movers Cache

Every few minutes, rank cards by recent percent change (latest history entry
vs the one before it) and store the top N under the current hour period.
Readers take the newest period instead of scanning history.

Refresh steps:
    1. Latest two history rows per card via ROW_NUMBER() window
    2. percent_change = (latest - previous) / previous × 100, previous > 0
    3. Keep top N by |percent_change|
    4. Replace rows for the current period, drop older periods
"""

from __future__ import annotations

import math
from datetime import datetime
from decimal import Decimal

import structlog
from pydantic import BaseModel
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tcgtracker.config import ItemKind, settings
from tcgtracker.models.item import Item
from tcgtracker.models.price_history import PriceHistoryEntry
from tcgtracker.models.top_mover import TopMover
from tcgtracker.pipeline.results import MoversRefreshResult
from tcgtracker.utils.dates import hour_period_start, utc_now

logger = structlog.get_logger(__name__)


class TopMoverView(BaseModel):
    rank: int
    item_id: int
    name: str
    set_name: str
    current_price: Decimal
    image_url: str | None = None
    marketplace_url: str | None = None
    percent_change: float
    period_start: datetime


async def _latest_two_prices(session: AsyncSession) -> dict[int, list[Decimal]]:
    """item_id -> [latest, previous] for cards with at least one entry."""
    row_number = (
        func.row_number()
        .over(
            partition_by=PriceHistoryEntry.item_id,
            order_by=[PriceHistoryEntry.recorded_at.desc(), PriceHistoryEntry.id.desc()],
        )
        .label("rn")
    )
    ranked = (
        select(PriceHistoryEntry.item_id, PriceHistoryEntry.price, row_number)
        .join(Item, Item.id == PriceHistoryEntry.item_id)
        .where(Item.kind == ItemKind.CARD.value)
        .subquery()
    )
    result = await session.execute(
        select(ranked.c.item_id, ranked.c.price)
        .where(ranked.c.rn <= 2)
        .order_by(ranked.c.item_id, ranked.c.rn)
    )

    prices: dict[int, list[Decimal]] = {}
    for row in result.all():
        prices.setdefault(row.item_id, []).append(row.price)
    return prices


def rank_movers(prices: dict[int, list[Decimal]], size: int) -> list[tuple[int, float]]:
    ranked: list[tuple[int, float]] = []
    for item_id, pair in prices.items():
        if len(pair) < 2:
            continue
        latest, previous = pair[0], pair[1]
        if previous is None or latest is None or previous <= 0:
            continue
        change = float((latest - previous) / previous * 100)
        if not math.isfinite(change):
            continue
        ranked.append((item_id, change))

    ranked.sort(key=lambda pair: abs(pair[1]), reverse=True)
    return ranked[:size]


async def refresh_top_movers(
    session: AsyncSession,
    now: datetime | None = None,
    size: int | None = None,
) -> MoversRefreshResult:
    """Recompute and store the top movers for the current hour period."""
    period = hour_period_start(now or utc_now())
    top_n = size if size is not None else settings.TOP_MOVERS_SIZE

    movers = rank_movers(await _latest_two_prices(session), top_n)

    await session.execute(delete(TopMover).where(TopMover.period_start == period))
    for rank, (item_id, change) in enumerate(movers, start=1):
        session.add(
            TopMover(item_id=item_id, percent_change=change, period_start=period, rank=rank)
        )
    stale = await session.execute(delete(TopMover).where(TopMover.period_start < period))
    await session.commit()

    stale_deleted = stale.rowcount or 0
    logger.info(
        "movers_refresh_complete",
        period_start=period.isoformat(),
        ranked=len(movers),
        stale_deleted=stale_deleted,
    )
    return MoversRefreshResult(
        period_start=period.isoformat(),
        ranked=len(movers),
        stale_deleted=stale_deleted,
    )


async def get_top_movers(session: AsyncSession) -> list[TopMoverView]:
    """Ranked movers from the newest cached period, or [] before the first refresh."""
    latest = (await session.execute(select(func.max(TopMover.period_start)))).scalar()
    if latest is None:
        return []

    result = await session.execute(
        select(TopMover, Item)
        .join(Item, Item.id == TopMover.item_id)
        .where(TopMover.period_start == latest)
        .order_by(TopMover.rank.asc())
    )
    return [
        TopMoverView(
            rank=mover.rank,
            item_id=item.id,
            name=item.name,
            set_name=item.set_name,
            current_price=item.current_price,
            image_url=item.image_url,
            marketplace_url=item.marketplace_url,
            percent_change=round(mover.percent_change, 2),
            period_start=mover.period_start,
        )
        for mover, item in result.all()
    ]
