"""
TCG Tracker — History Compactor

Bounds price_history growth under frequent refreshes by deleting entries that
sit too close in time to the previously kept entry.

Per item, history ascending by timestamp:
    1. Items with ≤ 2 entries are skipped.
    2. entry[0] is always kept → last_kept = entry[0].recorded_at
    3. For entries[1 .. n-2]: keep if recorded_at - last_kept ≥ threshold
       (and advance last_kept), otherwise delete.
    4. entry[n-1] is always kept.

Work is split into a bounded step over one page of items
(`compact_step(cursor) -> CompactionStep`) and a driver (`compact_all`) that
repeats steps with a short delay, persisting the cursor after every step so an
interrupted sweep resumes where it stopped.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import Sequence

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from tcgtracker.config import CursorPurpose, settings
from tcgtracker.models.item import Item
from tcgtracker.models.price_history import PriceHistoryEntry
from tcgtracker.pipeline.cursor_store import CursorStore
from tcgtracker.pipeline.results import CompactionRunResult, CompactionStep

logger = structlog.get_logger(__name__)


def select_redundant_entries(
    entries: Sequence[tuple[int, datetime]],
    threshold: timedelta,
) -> list[int]:
    """
    Ids of entries to delete from one item's ascending history.

    Args:
        entries: (entry_id, recorded_at) pairs sorted ascending by recorded_at.
        threshold: Minimum spacing between consecutive kept entries.

    Returns:
        Entry ids to delete. Never includes the first or last entry.
    """
    if len(entries) <= 2:
        return []

    redundant: list[int] = []
    last_kept = entries[0][1]

    for entry_id, recorded_at in entries[1:-1]:
        if recorded_at - last_kept >= threshold:
            last_kept = recorded_at
        else:
            redundant.append(entry_id)

    return redundant


async def compact_item_history(
    session: AsyncSession,
    item_id: int,
    threshold: timedelta,
) -> int:
    """Delete redundant history for one item. Returns the number deleted."""
    result = await session.execute(
        select(PriceHistoryEntry.id, PriceHistoryEntry.recorded_at)
        .where(PriceHistoryEntry.item_id == item_id)
        .order_by(PriceHistoryEntry.recorded_at.asc(), PriceHistoryEntry.id.asc())
    )
    entries = [(row.id, row.recorded_at) for row in result.all()]

    redundant = select_redundant_entries(entries, threshold)
    if redundant:
        await session.execute(
            delete(PriceHistoryEntry).where(PriceHistoryEntry.id.in_(redundant))
        )
    return len(redundant)


def _cursor_to_id(cursor: str | None) -> int:
    if not cursor:
        return 0
    try:
        return max(int(cursor), 0)
    except ValueError:
        logger.warning("compactor_invalid_cursor", cursor=cursor)
        return 0


async def compact_step(
    session: AsyncSession,
    cursor: str | None = None,
    page_size: int | None = None,
    threshold: timedelta | None = None,
) -> CompactionStep:
    """
    Compact one page of items after `cursor` (last processed item id).

    Bounded: touches at most `page_size` items. Safe to repeat; a second pass
    over an already-compacted item deletes nothing.
    """
    size = page_size if page_size is not None else settings.COMPACTION_PAGE_SIZE
    gap = threshold if threshold is not None else timedelta(
        minutes=settings.COMPACTION_THRESHOLD_MINUTES
    )
    after_id = _cursor_to_id(cursor)

    result = await session.execute(
        select(Item.id).where(Item.id > after_id).order_by(Item.id.asc()).limit(size + 1)
    )
    item_ids = list(result.scalars().all())
    is_done = len(item_ids) <= size
    item_ids = item_ids[:size]

    deleted = 0
    for item_id in item_ids:
        deleted += await compact_item_history(session, item_id, gap)
    await session.commit()

    next_cursor = None if is_done or not item_ids else str(item_ids[-1])

    logger.debug(
        "compactor_step",
        cursor=cursor,
        items_processed=len(item_ids),
        entries_deleted=deleted,
        is_done=is_done,
    )
    return CompactionStep(
        items_processed=len(item_ids),
        entries_deleted=deleted,
        is_done=is_done,
        next_cursor=next_cursor,
    )


async def compact_all(
    session: AsyncSession,
    max_steps: int | None = None,
    page_size: int | None = None,
    delay_seconds: float | None = None,
) -> CompactionRunResult:
    """
    Drive compaction steps from the persisted cursor until done.

    Args:
        session: Async database session.
        max_steps: Step budget for this run; None runs until the sweep
            completes (maintenance window).
        page_size: Items per step.
        delay_seconds: Pause between steps to spare the database.

    Returns:
        CompactionRunResult; `is_complete` is False when the budget ran out
        and the cursor was saved for the next run.
    """
    delay = delay_seconds if delay_seconds is not None else settings.INTER_STEP_DELAY_SECONDS
    store = CursorStore(session)
    cursor = await store.get(CursorPurpose.PRICE_HISTORY_CLEANUP)

    logger.info("compactor_run_start", cursor=cursor or "beginning", max_steps=max_steps)

    run = CompactionRunResult()
    while max_steps is None or run.steps < max_steps:
        step = await compact_step(session, cursor=cursor, page_size=page_size)
        run.items_processed += step.items_processed
        run.entries_deleted += step.entries_deleted
        run.steps += 1

        if step.is_done:
            await store.reset(CursorPurpose.PRICE_HISTORY_CLEANUP)
            run.is_complete = True
            logger.info(
                "compactor_run_complete",
                items_processed=run.items_processed,
                entries_deleted=run.entries_deleted,
                steps=run.steps,
            )
            return run

        cursor = step.next_cursor
        await store.set(CursorPurpose.PRICE_HISTORY_CLEANUP, cursor)
        await asyncio.sleep(delay)

    logger.info(
        "compactor_run_paused",
        items_processed=run.items_processed,
        entries_deleted=run.entries_deleted,
        steps=run.steps,
        cursor=cursor,
    )
    return run
