"""
Tests for daily snapshots and the day-over-day ranking
(tcgtracker/pipeline/snapshots.py).
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from tcgtracker.config import ItemKind
from tcgtracker.models import DailySnapshot
from tcgtracker.pipeline.snapshots import (
    create_daily_snapshots,
    get_top_daily_changes,
    rank_daily_changes,
)

TODAY = datetime(2026, 3, 2, 0, 0, 5, tzinfo=timezone.utc)
YESTERDAY = TODAY - timedelta(days=1)


async def snapshot_count(session) -> int:
    return (await session.execute(select(func.count()).select_from(DailySnapshot))).scalar()


# ---------------------------------------------------------------------------
# Write side
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_one_snapshot_per_item_per_day(db_session, make_item) -> None:
    await make_item("Pikachu", price="5.00")
    await make_item("Obsidian Flames Booster Box", price="119.99", kind=ItemKind.PRODUCT)

    first = await create_daily_snapshots(db_session, now=TODAY)
    second = await create_daily_snapshots(db_session, now=TODAY + timedelta(hours=6))

    assert first.snapshot_date == "2026-03-02"
    assert first.created == 2
    assert second.created == 0
    assert second.skipped == 2
    assert await snapshot_count(db_session) == 2


@pytest.mark.asyncio
async def test_new_day_gets_new_snapshots(db_session, make_item) -> None:
    await make_item("Pikachu", price="5.00")

    await create_daily_snapshots(db_session, now=YESTERDAY)
    await create_daily_snapshots(db_session, now=TODAY)

    dates = (await db_session.execute(select(DailySnapshot.snapshot_date))).scalars().all()
    assert sorted(dates) == ["2026-03-01", "2026-03-02"]


@pytest.mark.asyncio
async def test_snapshot_denormalizes_item_fields(db_session, make_item) -> None:
    item_id = await make_item("Charizard ex", price="42.10")

    await create_daily_snapshots(db_session, now=TODAY)

    snap = (await db_session.execute(select(DailySnapshot))).scalar_one()
    assert snap.item_id == item_id
    assert snap.item_kind == "card"
    assert snap.item_name == "Charizard ex"
    assert snap.price == Decimal("42.10")


@pytest.mark.asyncio
async def test_per_kind_caps_bound_the_run(db_session, make_item) -> None:
    for n in range(5):
        await make_item(f"Card {n}")
    for n in range(3):
        await make_item(f"Box {n}", kind=ItemKind.PRODUCT, product_type=f"Type {n}")

    result = await create_daily_snapshots(
        db_session, now=TODAY, max_cards=3, max_products=2, batch_size=2
    )

    assert result.created == 5
    assert result.items_seen == 5
    kinds = (await db_session.execute(select(DailySnapshot.item_kind))).scalars().all()
    assert kinds.count("card") == 3
    assert kinds.count("product") == 2


@pytest.mark.asyncio
async def test_batches_cover_all_items_under_cap(db_session, make_item) -> None:
    for n in range(7):
        await make_item(f"Card {n}")

    result = await create_daily_snapshots(db_session, now=TODAY, batch_size=3)

    assert result.created == 7
    assert result.success is True


# ---------------------------------------------------------------------------
# Ranking
# ---------------------------------------------------------------------------


def test_rank_excludes_zero_and_missing_yesterday() -> None:
    today = {1: Decimal("11"), 2: Decimal("5"), 3: Decimal("8"), 4: Decimal("3")}
    yesterday = {1: Decimal("10"), 2: Decimal("0"), 4: Decimal("6")}

    ranked = rank_daily_changes(today, yesterday)

    assert [item_id for item_id, _ in ranked] == [4, 1]
    assert ranked[0][1] == pytest.approx(-50.0)
    assert ranked[1][1] == pytest.approx(10.0)


@pytest.mark.asyncio
async def test_top_daily_changes_joins_item_details(session_factory, make_item) -> None:
    up = await make_item("Up", price="15.00")
    down = await make_item("Down", price="2.00")
    flat = await make_item("Flat", price="4.00")
    zero = await make_item("B", price="9.00")

    async with session_factory() as session:
        for item_id, kind, name, yesterday_price, today_price in [
            (up, "card", "Up", "10.00", "15.00"),
            (down, "card", "Down", "8.00", "2.00"),
            (flat, "card", "Flat", "4.00", "4.00"),
            (zero, "card", "B", "0.00", "9.00"),
        ]:
            session.add(
                DailySnapshot(
                    item_id=item_id, item_kind=kind, item_name=name,
                    price=Decimal(yesterday_price), snapshot_date="2026-03-01",
                    recorded_at=YESTERDAY,
                )
            )
            session.add(
                DailySnapshot(
                    item_id=item_id, item_kind=kind, item_name=name,
                    price=Decimal(today_price), snapshot_date="2026-03-02",
                    recorded_at=TODAY,
                )
            )
        await session.commit()

    changes = await get_top_daily_changes(session_factory, limit=10, now=TODAY)

    assert [c.name for c in changes] == ["Down", "Up", "Flat"]
    assert changes[0].percent_change == -75.0
    assert changes[1].percent_change == 50.0
    assert changes[1].current_price == Decimal("15.00")
    assert all(c.item_id != zero for c in changes)


@pytest.mark.asyncio
async def test_top_daily_changes_limit_is_clamped(session_factory, make_item) -> None:
    ids = [await make_item(f"Card {n}", price="10.00") for n in range(3)]

    async with session_factory() as session:
        for n, item_id in enumerate(ids):
            for day, price in (("2026-03-01", "10.00"), ("2026-03-02", str(11 + n))):
                session.add(
                    DailySnapshot(
                        item_id=item_id, item_kind="card", item_name=f"Card {n}",
                        price=Decimal(price), snapshot_date=day, recorded_at=TODAY,
                    )
                )
        await session.commit()

    assert len(await get_top_daily_changes(session_factory, limit=0, now=TODAY)) == 1
    assert len(await get_top_daily_changes(session_factory, limit=2, now=TODAY)) == 2
    products = await get_top_daily_changes(
        session_factory, limit=10, item_kind=ItemKind.PRODUCT, now=TODAY
    )
    assert products == []


@pytest.mark.asyncio
async def test_top_daily_changes_without_snapshots(session_factory) -> None:
    assert await get_top_daily_changes(session_factory, now=TODAY) == []
