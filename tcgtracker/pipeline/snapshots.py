"""
TCG Tracker — Daily Snapshots

Write side: one DailySnapshot per (item, UTC calendar day). Items are paged by
id in bounded batches, capped per kind per run so the job always terminates
inside its execution budget. Each item is check-then-insert; the unique
constraint on (item_id, snapshot_date) turns a lost race into a skip.

Read side: day-over-day ranking. Today's and yesterday's snapshots are loaded
in parallel, yesterday's are indexed by item id, and

    percent_change = (today - yesterday) / yesterday × 100

is computed for every item present on both days with a positive yesterday
price. Non-finite results are dropped. Sorted by |percent_change| desc.
"""

from __future__ import annotations

import asyncio
import math
from datetime import datetime
from decimal import Decimal

import structlog
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tcgtracker.config import ItemKind, settings
from tcgtracker.models.daily_snapshot import DailySnapshot
from tcgtracker.models.item import Item
from tcgtracker.pipeline.results import ErrorCollector, SnapshotResult
from tcgtracker.utils.dates import day_key, previous_day_key, utc_now

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Write side
# ---------------------------------------------------------------------------


async def _snapshot_exists(session: AsyncSession, item_id: int, snapshot_date: str) -> bool:
    result = await session.execute(
        select(DailySnapshot.id).where(
            DailySnapshot.item_id == item_id,
            DailySnapshot.snapshot_date == snapshot_date,
        )
    )
    return result.first() is not None


async def _snapshot_kind(
    session: AsyncSession,
    kind: ItemKind,
    snapshot_date: str,
    recorded_at: datetime,
    max_items: int,
    batch_size: int,
    result: SnapshotResult,
    errors: ErrorCollector,
) -> None:
    after_id = 0
    seen = 0

    while seen < max_items:
        limit = min(batch_size, max_items - seen)
        rows = (
            await session.execute(
                select(Item.id, Item.kind, Item.name, Item.current_price)
                .where(Item.kind == kind.value, Item.id > after_id)
                .order_by(Item.id.asc())
                .limit(limit)
            )
        ).all()
        if not rows:
            break

        for row in rows:
            try:
                if await _snapshot_exists(session, row.id, snapshot_date):
                    result.skipped += 1
                    continue
                session.add(
                    DailySnapshot(
                        item_id=row.id,
                        item_kind=row.kind,
                        item_name=row.name,
                        price=row.current_price,
                        snapshot_date=snapshot_date,
                        recorded_at=recorded_at,
                    )
                )
                await session.commit()
                result.created += 1
            except IntegrityError:
                # A concurrent run inserted the same (item, day) first.
                await session.rollback()
                result.skipped += 1
            except Exception as e:
                await session.rollback()
                errors.add(f"Failed to snapshot {row.name}: {e}")
                logger.warning("snapshot_item_failed", item_id=row.id, error=str(e))

        seen += len(rows)
        after_id = rows[-1].id
        if len(rows) < limit:
            break

    result.items_seen += seen
    if seen >= max_items:
        logger.info("snapshot_kind_capped", kind=kind.value, max_items=max_items)


async def create_daily_snapshots(
    session: AsyncSession,
    now: datetime | None = None,
    max_cards: int | None = None,
    max_products: int | None = None,
    batch_size: int | None = None,
) -> SnapshotResult:
    """
    Record today's price for every item that has no snapshot yet today.

    Idempotent per day: a second run on the same day creates nothing.

    Args:
        session: Async database session.
        now: Moment whose UTC calendar day is snapshotted.
        max_cards: Card cap for this run (default SNAPSHOT_MAX_CARDS_PER_RUN).
        max_products: Product cap (default SNAPSHOT_MAX_PRODUCTS_PER_RUN).
        batch_size: Items loaded per query.
    """
    moment = now or utc_now()
    today = day_key(moment)
    size = batch_size or settings.SNAPSHOT_BATCH_SIZE
    caps = {
        ItemKind.CARD: max_cards if max_cards is not None else settings.SNAPSHOT_MAX_CARDS_PER_RUN,
        ItemKind.PRODUCT: (
            max_products if max_products is not None else settings.SNAPSHOT_MAX_PRODUCTS_PER_RUN
        ),
    }

    logger.info("snapshot_start", snapshot_date=today)

    result = SnapshotResult(snapshot_date=today)
    errors = ErrorCollector()
    for kind, cap in caps.items():
        await _snapshot_kind(session, kind, today, moment, cap, size, result, errors)

    result.errors = errors.items
    result.success = not errors

    logger.info(
        "snapshot_complete",
        snapshot_date=today,
        created=result.created,
        skipped=result.skipped,
        items_seen=result.items_seen,
        error_count=len(errors),
    )
    return result


# ---------------------------------------------------------------------------
# Read side
# ---------------------------------------------------------------------------


class DailyChange(BaseModel):
    """One ranked day-over-day mover joined with current item details."""
    item_id: int
    kind: str
    name: str
    set_name: str
    current_price: Decimal
    image_url: str | None = None
    marketplace_url: str | None = None
    today_price: Decimal
    yesterday_price: Decimal
    percent_change: float


def rank_daily_changes(
    today: dict[int, Decimal],
    yesterday: dict[int, Decimal],
) -> list[tuple[int, float]]:
    """
    (item_id, percent_change) pairs sorted by descending absolute change.

    Items missing yesterday, with a non-positive yesterday price, or with a
    non-finite result are excluded.
    """
    ranked: list[tuple[int, float]] = []
    for item_id, price_today in today.items():
        price_yesterday = yesterday.get(item_id)
        if price_yesterday is None or price_yesterday <= 0:
            continue
        change = float((price_today - price_yesterday) / price_yesterday * 100)
        if not math.isfinite(change):
            continue
        ranked.append((item_id, change))

    ranked.sort(key=lambda pair: abs(pair[1]), reverse=True)
    return ranked


async def _load_day(
    session_factory: async_sessionmaker[AsyncSession],
    snapshot_date: str,
    kind: ItemKind,
) -> dict[int, Decimal]:
    async with session_factory() as session:
        result = await session.execute(
            select(DailySnapshot.item_id, DailySnapshot.price).where(
                DailySnapshot.snapshot_date == snapshot_date,
                DailySnapshot.item_kind == kind.value,
            )
        )
        return {row.item_id: row.price for row in result.all() if row.price is not None}


async def get_top_daily_changes(
    session_factory: async_sessionmaker[AsyncSession],
    limit: int | None = None,
    item_kind: ItemKind = ItemKind.CARD,
    now: datetime | None = None,
) -> list[DailyChange]:
    """
    Top `limit` day-over-day movers for one item kind.

    The two day reads run concurrently on separate sessions. Read-side
    failures are logged and yield an empty list so display layers never
    break.
    """
    size = limit if limit is not None else settings.TOP_DAILY_CHANGES_DEFAULT_LIMIT
    size = max(1, min(size, settings.TOP_DAILY_CHANGES_MAX_LIMIT))
    moment = now or utc_now()

    try:
        today, yesterday = await asyncio.gather(
            _load_day(session_factory, day_key(moment), item_kind),
            _load_day(session_factory, previous_day_key(moment), item_kind),
        )

        top = rank_daily_changes(today, yesterday)[:size]
        if not top:
            return []

        async with session_factory() as session:
            result = await session.execute(
                select(Item).where(Item.id.in_([item_id for item_id, _ in top]))
            )
            items = {item.id: item for item in result.scalars().all()}
    except Exception as e:
        logger.error("snapshot_top_changes_failed", error=str(e), kind=item_kind.value)
        return []

    changes: list[DailyChange] = []
    for item_id, change in top:
        item = items.get(item_id)
        if item is None:
            continue
        changes.append(
            DailyChange(
                item_id=item.id,
                kind=item.kind,
                name=item.name,
                set_name=item.set_name,
                current_price=item.current_price,
                image_url=item.image_url,
                marketplace_url=item.marketplace_url,
                today_price=today[item_id],
                yesterday_price=yesterday[item_id],
                percent_change=round(change, 2),
            )
        )
    return changes
