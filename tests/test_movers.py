"""
Tests for the top-movers cache (tcgtracker/pipeline/movers.py).
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from tcgtracker.config import ItemKind
from tcgtracker.models import TopMover
from tcgtracker.pipeline.movers import get_top_movers, rank_movers, refresh_top_movers

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
NOW = datetime(2026, 3, 1, 14, 37, tzinfo=timezone.utc)


def test_rank_movers_skips_single_and_zero_previous() -> None:
    prices = {
        1: [Decimal("12"), Decimal("10")],
        2: [Decimal("5")],
        3: [Decimal("4"), Decimal("0")],
        4: [Decimal("1"), Decimal("4")],
    }

    assert rank_movers(prices, size=10) == [(4, -75.0), (1, 20.0)]
    assert rank_movers(prices, size=1) == [(4, -75.0)]


@pytest.mark.asyncio
async def test_refresh_ranks_latest_two_entries(db_session, make_item) -> None:
    riser = await make_item(
        "Riser",
        history=[
            (T0, "1.00"),                             # ignored: older than latest two
            (T0 + timedelta(minutes=10), "10.00"),
            (T0 + timedelta(minutes=20), "13.00"),
        ],
    )
    faller = await make_item(
        "Faller",
        history=[(T0, "20.00"), (T0 + timedelta(minutes=10), "10.00")],
    )
    await make_item("Lonely", history=[(T0, "5.00")])
    await make_item(
        "Box",
        kind=ItemKind.PRODUCT,
        history=[(T0, "100.00"), (T0 + timedelta(minutes=10), "300.00")],
    )

    result = await refresh_top_movers(db_session, now=NOW)

    assert result.ranked == 2
    assert result.period_start == "2026-03-01T14:00:00+00:00"

    movers = await get_top_movers(db_session)
    assert [(m.rank, m.item_id) for m in movers] == [(1, faller), (2, riser)]
    assert movers[0].percent_change == -50.0
    assert movers[1].percent_change == 30.0
    assert movers[0].name == "Faller"


@pytest.mark.asyncio
async def test_refresh_replaces_current_period_and_drops_older(db_session, make_item) -> None:
    await make_item("Riser", history=[(T0, "10.00"), (T0 + timedelta(minutes=10), "11.00")])

    await refresh_top_movers(db_session, now=NOW - timedelta(hours=1))
    await refresh_top_movers(db_session, now=NOW)
    again = await refresh_top_movers(db_session, now=NOW + timedelta(minutes=5))

    assert again.stale_deleted == 0
    periods = (await db_session.execute(select(TopMover.period_start).distinct())).scalars().all()
    assert periods == [datetime(2026, 3, 1, 14, 0, tzinfo=timezone.utc)]
    count = (await db_session.execute(select(func.count()).select_from(TopMover))).scalar()
    assert count == 1


@pytest.mark.asyncio
async def test_size_limits_cache(db_session, make_item) -> None:
    for n in range(5):
        await make_item(
            f"Card {n}",
            history=[(T0, "10.00"), (T0 + timedelta(minutes=10), str(11 + n))],
        )

    result = await refresh_top_movers(db_session, now=NOW, size=3)

    assert result.ranked == 3
    movers = await get_top_movers(db_session)
    assert [m.name for m in movers] == ["Card 4", "Card 3", "Card 2"]


@pytest.mark.asyncio
async def test_get_top_movers_before_first_refresh(db_session) -> None:
    assert await get_top_movers(db_session) == []
