"""
TCG Tracker — Age-based Retention

Unbounded single-statement deletes for data past its retention window:
    - price_history older than PRICE_HISTORY_RETENTION_DAYS (weekly)
    - daily_snapshots older than SNAPSHOT_RETENTION_DAYS (monthly)

Snapshot volume is bounded by item_count × 365, so one delete per run is fine.
"""

from __future__ import annotations

from datetime import datetime, timedelta

import structlog
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from tcgtracker.config import settings
from tcgtracker.models.daily_snapshot import DailySnapshot
from tcgtracker.models.price_history import PriceHistoryEntry
from tcgtracker.pipeline.results import RetentionResult
from tcgtracker.utils.dates import day_key, utc_now

logger = structlog.get_logger(__name__)


async def cleanup_old_price_history(
    session: AsyncSession,
    now: datetime | None = None,
    retention_days: int | None = None,
) -> RetentionResult:
    """Delete price history recorded before now - retention_days."""
    days = retention_days if retention_days is not None else settings.PRICE_HISTORY_RETENTION_DAYS
    cutoff = (now or utc_now()) - timedelta(days=days)

    result = await session.execute(
        delete(PriceHistoryEntry).where(PriceHistoryEntry.recorded_at < cutoff)
    )
    await session.commit()

    deleted = result.rowcount or 0
    logger.info("retention_price_history_complete", deleted=deleted, cutoff=cutoff.isoformat())
    return RetentionResult(deleted=deleted, cutoff=cutoff.isoformat())


async def cleanup_old_snapshots(
    session: AsyncSession,
    now: datetime | None = None,
    retention_days: int | None = None,
) -> RetentionResult:
    """Delete snapshots whose calendar day is before today - retention_days."""
    days = retention_days if retention_days is not None else settings.SNAPSHOT_RETENTION_DAYS
    cutoff = day_key((now or utc_now()) - timedelta(days=days))

    # YYYY-MM-DD strings sort chronologically.
    result = await session.execute(
        delete(DailySnapshot).where(DailySnapshot.snapshot_date < cutoff)
    )
    await session.commit()

    deleted = result.rowcount or 0
    logger.info("retention_snapshots_complete", deleted=deleted, cutoff=cutoff)
    return RetentionResult(deleted=deleted, cutoff=cutoff)
