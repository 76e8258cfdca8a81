"""
Tests for the maintenance orchestrator (tcgtracker/pipeline/maintenance.py).

The key guarantee: maintenance mode is off after the window closes, whether
or not a sub-job raised.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select

from tcgtracker.config import settings
from tcgtracker.models import MaintenanceMode, PriceHistoryEntry
from tcgtracker.pipeline import maintenance
from tcgtracker.pipeline.maintenance import (
    disable_maintenance,
    enable_maintenance,
    get_maintenance_status,
    maintenance_window,
    run_weekly_maintenance,
)


@pytest.mark.asyncio
async def test_status_without_row_is_normal(db_session) -> None:
    status = await get_maintenance_status(db_session)

    assert status.is_active is False
    assert status.message == ""
    assert status.start_time is None


@pytest.mark.asyncio
async def test_enable_then_disable_patches_singleton(db_session) -> None:
    await enable_maintenance(db_session, "Back soon")
    status = await get_maintenance_status(db_session)
    assert status.is_active is True
    assert status.message == "Back soon"
    assert status.end_time is None

    await disable_maintenance(db_session)
    await enable_maintenance(db_session)
    await disable_maintenance(db_session)

    count = (await db_session.execute(select(func.count()).select_from(MaintenanceMode))).scalar()
    assert count == 1
    status = await get_maintenance_status(db_session)
    assert status.is_active is False
    assert status.message == settings.MAINTENANCE_MESSAGE
    assert status.end_time is not None
    assert status.end_time >= status.start_time


@pytest.mark.asyncio
async def test_window_is_active_inside_and_cleared_on_error(session_factory) -> None:
    seen_inside: list[bool] = []

    with pytest.raises(RuntimeError):
        async with maintenance_window(session_factory, "Working"):
            async with session_factory() as session:
                seen_inside.append((await get_maintenance_status(session)).is_active)
            raise RuntimeError("boom")

    assert seen_inside == [True]
    async with session_factory() as session:
        assert (await get_maintenance_status(session)).is_active is False


@pytest.mark.asyncio
async def test_weekly_maintenance_runs_all_jobs(session_factory, make_item) -> None:
    now = datetime.now(timezone.utc)
    item_id = await make_item(
        "Pikachu",
        history=[
            (now - timedelta(days=120), "1.00"),
            (now - timedelta(minutes=9), "2.00"),
            (now - timedelta(minutes=5), "2.10"),
            (now - timedelta(minutes=1), "2.20"),
        ],
    )

    with patch.object(settings, "INTER_STEP_DELAY_SECONDS", 0):
        result = await run_weekly_maintenance(session_factory)

    assert result.success is True
    assert result.history_retention.deleted == 1
    assert result.compaction.is_complete is True
    assert result.compaction.entries_deleted == 1
    assert result.snapshot_retention is not None

    async with session_factory() as session:
        remaining = (
            await session.execute(
                select(func.count())
                .select_from(PriceHistoryEntry)
                .where(PriceHistoryEntry.item_id == item_id)
            )
        ).scalar()
        assert remaining == 2
        assert (await get_maintenance_status(session)).is_active is False


@pytest.mark.asyncio
async def test_failing_sub_job_still_clears_flag(session_factory) -> None:
    failing = AsyncMock(side_effect=RuntimeError("disk full"))
    snapshots = AsyncMock(wraps=maintenance.cleanup_old_snapshots)

    with patch.object(maintenance, "compact_all", failing), \
         patch.object(maintenance, "cleanup_old_snapshots", snapshots):
        result = await run_weekly_maintenance(session_factory)

    assert result.success is False
    assert result.errors == ["History compaction failed: disk full"]
    assert snapshots.await_count == 1

    async with session_factory() as session:
        status = await get_maintenance_status(session)
    assert status.is_active is False
    assert status.end_time is not None
