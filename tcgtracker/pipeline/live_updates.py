"""
TCG Tracker — Live-Update Simulator

Keeps the "recently updated" feed populated between real price refreshes by
re-recording a rotating batch of known items at their current price. Each
item in the batch gets its own timestamp, evenly spread over the rest of the
refresh interval (minus a safety buffer) so the feed moves smoothly instead of
jumping once per run.

Every touch goes through the upserter, so it appends a history row. Percent
change reads the two most recent rows, and the compactor bounds the extra
volume.
Items the crawler wrote in the same refresh are skipped, otherwise the
simulated row would sit on top of the real price move and hide it.

The batch cursor is the last processed item id. When the population is
exhausted the cursor wraps to None, so a full sweep takes
ceil(item_count / batch_size) invocations.
"""

from __future__ import annotations

from collections.abc import Collection
from datetime import datetime
from decimal import Decimal

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tcgtracker.config import CursorPurpose, settings
from tcgtracker.models.item import Item
from tcgtracker.pipeline.cursor_store import CursorStore
from tcgtracker.pipeline.results import ErrorCollector, LiveUpdateResult
from tcgtracker.pipeline.upserter import ItemIdentity, upsert_item
from tcgtracker.utils.dates import stagger_timestamps, utc_now

logger = structlog.get_logger(__name__)


def _cursor_to_id(cursor: str | None) -> int:
    if cursor is None:
        return 0
    try:
        return max(int(cursor), 0)
    except ValueError:
        logger.warning("live_updates_invalid_cursor", cursor=cursor)
        return 0


async def simulate_live_updates(
    session: AsyncSession,
    batch_size: int | None = None,
    now: datetime | None = None,
    exclude_ids: Collection[int] | None = None,
) -> LiveUpdateResult:
    """
    Touch the next batch of existing items with staggered timestamps.

    Args:
        session: Async database session.
        batch_size: Items per invocation (default LIVE_UPDATE_BATCH_SIZE).
        now: Start of the stagger window (default: current UTC time).
        exclude_ids: Items already written at a real price in this refresh.
            They are skipped but still count toward the cursor, so the
            rotation does not stall on them.

    Returns:
        LiveUpdateResult with the number of touched items and the persisted
        next cursor.
    """
    size = batch_size if batch_size is not None else settings.LIVE_UPDATE_BATCH_SIZE
    if size < 1:
        raise ValueError(f"batch_size must be positive, got {size}")
    start = now or utc_now()
    excluded = set(exclude_ids or ())

    store = CursorStore(session)
    after_id = _cursor_to_id(await store.get(CursorPurpose.CARD_UPDATE))

    # One extra row tells us whether another batch remains.
    result = await session.execute(
        select(Item).where(Item.id > after_id).order_by(Item.id.asc()).limit(size + 1)
    )
    rows = list(result.scalars().all())
    wrapped = len(rows) <= size
    batch = rows[:size]
    last_id = batch[-1].id if batch else None

    # Detach plain values up front: a per-item rollback expires ORM instances.
    planned: list[tuple[int, str, Decimal, ItemIdentity | None, str | None]] = []
    for item in batch:
        if item.id in excluded:
            continue
        try:
            planned.append((item.id, item.name, item.current_price, ItemIdentity.from_item(item), None))
        except ValueError as e:
            planned.append((item.id, item.name, item.current_price, None, str(e)))

    span = settings.REFRESH_INTERVAL_SECONDS - settings.REFRESH_SAFETY_BUFFER_SECONDS
    stamps = stagger_timestamps(start, len(planned), span)

    errors = ErrorCollector()
    updated = 0
    for (item_id, name, price, identity, problem), stamp in zip(planned, stamps):
        if identity is None:
            errors.add(f"Failed to update {name}: {problem}")
            continue
        try:
            await upsert_item(session, identity, price, recorded_at=stamp)
            updated += 1
        except Exception as e:
            await session.rollback()
            errors.add(f"Failed to update {name}: {e}")
            logger.warning("live_updates_item_failed", item_id=item_id, error=str(e))

    next_cursor = None if wrapped else str(last_id)
    await store.set(CursorPurpose.CARD_UPDATE, next_cursor)

    logger.info(
        "live_updates_complete",
        updated=updated,
        batch_size=len(planned),
        skipped=len(batch) - len(planned),
        wrapped=wrapped,
        next_cursor=next_cursor,
        error_count=len(errors),
    )

    return LiveUpdateResult(
        success=True,
        updated=updated,
        batch_size=len(planned),
        skipped=len(batch) - len(planned),
        wrapped=wrapped,
        next_cursor=next_cursor,
        errors=errors.items,
    )
