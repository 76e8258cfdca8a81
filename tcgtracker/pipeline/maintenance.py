"""
TCG Tracker — Maintenance Orchestrator

Two states, stored in the maintenance_mode singleton row:

    normal ──enable──▶ maintenance ──disable (always)──▶ normal

The weekly window enables maintenance, runs in order
    1. price-history retention
    2. full redundant-history compaction (driver runs until done)
    3. snapshot retention
and disables maintenance in a finally block on a fresh session, so a failing
sub-job can never leave the flag stuck on.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator

import structlog
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tcgtracker.config import settings
from tcgtracker.models.maintenance_mode import MaintenanceMode
from tcgtracker.pipeline.compactor import compact_all
from tcgtracker.pipeline.results import ErrorCollector, MaintenanceResult
from tcgtracker.pipeline.retention import cleanup_old_price_history, cleanup_old_snapshots
from tcgtracker.utils.dates import utc_now

logger = structlog.get_logger(__name__)


class MaintenanceStatus(BaseModel):
    is_active: bool = False
    message: str = ""
    start_time: datetime | None = None
    end_time: datetime | None = None


async def _load(session: AsyncSession) -> MaintenanceMode | None:
    result = await session.execute(
        select(MaintenanceMode).order_by(MaintenanceMode.id.desc()).limit(1)
    )
    return result.scalar_one_or_none()


async def get_maintenance_status(session: AsyncSession) -> MaintenanceStatus:
    """Status object for the presentation layer. No row means normal operation."""
    mode = await _load(session)
    if mode is None:
        return MaintenanceStatus()
    return MaintenanceStatus(
        is_active=mode.is_active,
        message=mode.message or settings.MAINTENANCE_DEFAULT_STATUS_MESSAGE,
        start_time=mode.start_time,
        end_time=mode.end_time,
    )


async def enable_maintenance(session: AsyncSession, message: str | None = None) -> None:
    """Create or patch the singleton to active with a fresh start time."""
    now = utc_now()
    text = message or settings.MAINTENANCE_MESSAGE

    mode = await _load(session)
    if mode is None:
        session.add(MaintenanceMode(is_active=True, start_time=now, end_time=None, message=text))
    else:
        mode.is_active = True
        mode.start_time = now
        mode.end_time = None
        mode.message = text
    await session.commit()
    logger.info("maintenance_enabled", message=text)


async def disable_maintenance(session: AsyncSession) -> None:
    """Patch the singleton to inactive and record the end time."""
    mode = await _load(session)
    if mode is not None:
        mode.is_active = False
        mode.end_time = utc_now()
        await session.commit()
    logger.info("maintenance_disabled")


@asynccontextmanager
async def maintenance_window(
    session_factory: async_sessionmaker[AsyncSession],
    message: str | None = None,
) -> AsyncIterator[None]:
    """
    Scoped maintenance mode.

    Usage:
        async with maintenance_window(async_session):
            await run_cleanup()
    """
    async with session_factory() as session:
        await enable_maintenance(session, message)
    try:
        yield
    finally:
        async with session_factory() as session:
            await disable_maintenance(session)


async def run_weekly_maintenance(
    session_factory: async_sessionmaker[AsyncSession],
    message: str | None = None,
) -> MaintenanceResult:
    """
    Run the weekly cleanup sequence inside a maintenance window.

    Each sub-job gets its own session. A failing sub-job is logged and
    recorded in `errors`; the remaining sub-jobs still run.
    """
    logger.info("maintenance_weekly_start")
    result = MaintenanceResult(success=True)
    errors = ErrorCollector()

    async with maintenance_window(session_factory, message):
        try:
            async with session_factory() as session:
                result.history_retention = await cleanup_old_price_history(session)
        except Exception as e:
            errors.add(f"Price history retention failed: {e}")
            logger.error("maintenance_history_retention_failed", error=str(e))

        try:
            async with session_factory() as session:
                result.compaction = await compact_all(session, max_steps=None)
        except Exception as e:
            errors.add(f"History compaction failed: {e}")
            logger.error("maintenance_compaction_failed", error=str(e))

        try:
            async with session_factory() as session:
                result.snapshot_retention = await cleanup_old_snapshots(session)
        except Exception as e:
            errors.add(f"Snapshot retention failed: {e}")
            logger.error("maintenance_snapshot_retention_failed", error=str(e))

    result.errors = errors.items
    result.success = not errors
    logger.info("maintenance_weekly_complete", success=result.success, error_count=len(errors))
    return result
