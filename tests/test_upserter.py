"""
Tests for the item upserter (tcgtracker/pipeline/upserter.py).

Covers:
- One item per composite key no matter how often it is upserted
- Exactly one history row per call, at the effective timestamp
- Forced timestamps (live-update simulator)
- Identity and price validation
- Concurrent insert of the same key falls back to an update
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import patch

import pytest
from pydantic import ValidationError
from sqlalchemy import func, select

from tcgtracker.config import ItemKind
from tcgtracker.models import Item, PriceHistoryEntry
from tcgtracker.pipeline import upserter
from tcgtracker.pipeline.upserter import ItemIdentity, upsert_item

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def charizard(**overrides) -> ItemIdentity:
    fields = dict(
        kind=ItemKind.CARD,
        name="Charizard ex",
        set_name="Obsidian Flames",
        card_number="125",
        rarity="Double Rare",
    )
    fields.update(overrides)
    return ItemIdentity(**fields)


async def count(session, model) -> int:
    return (await session.execute(select(func.count()).select_from(model))).scalar()


@pytest.mark.asyncio
async def test_insert_creates_item_and_initial_history(db_session) -> None:
    outcome = await upsert_item(db_session, charizard(), Decimal("42.50"), recorded_at=T0)

    assert outcome.created is True
    item = (await db_session.execute(select(Item))).scalar_one()
    assert item.id == outcome.item_id
    assert item.secondary_key == "125"
    assert item.current_price == Decimal("42.50")
    assert item.last_updated == T0

    history = (await db_session.execute(select(PriceHistoryEntry))).scalars().all()
    assert len(history) == 1
    assert history[0].price == Decimal("42.50")
    assert history[0].recorded_at == T0


@pytest.mark.asyncio
async def test_repeat_upsert_never_duplicates_item(db_session) -> None:
    first = await upsert_item(db_session, charizard(), Decimal("40.00"), recorded_at=T0)
    second = await upsert_item(
        db_session, charizard(), Decimal("40.00"), recorded_at=T0 + timedelta(minutes=2)
    )
    third = await upsert_item(
        db_session, charizard(), Decimal("44.00"), recorded_at=T0 + timedelta(minutes=4)
    )

    assert first.created and not second.created and not third.created
    assert first.item_id == second.item_id == third.item_id
    assert await count(db_session, Item) == 1
    assert await count(db_session, PriceHistoryEntry) == 3

    item = (await db_session.execute(select(Item))).scalar_one()
    assert item.current_price == Decimal("44.00")
    assert item.last_updated == T0 + timedelta(minutes=4)


@pytest.mark.asyncio
async def test_history_row_uses_effective_timestamp(db_session) -> None:
    await upsert_item(db_session, charizard(), Decimal("40.00"), recorded_at=T0)
    forced = T0 + timedelta(seconds=33)
    outcome = await upsert_item(db_session, charizard(), Decimal("40.00"), recorded_at=forced)

    assert outcome.recorded_at == forced
    latest = (
        await db_session.execute(
            select(PriceHistoryEntry).order_by(PriceHistoryEntry.recorded_at.desc()).limit(1)
        )
    ).scalar_one()
    assert latest.recorded_at == forced


@pytest.mark.asyncio
async def test_default_timestamp_is_now(db_session) -> None:
    before = datetime.now(timezone.utc)
    outcome = await upsert_item(db_session, charizard(), Decimal("1.00"))

    assert outcome.recorded_at >= before


@pytest.mark.asyncio
async def test_distinct_secondary_keys_are_distinct_items(db_session) -> None:
    await upsert_item(db_session, charizard(), Decimal("40.00"), recorded_at=T0)
    await upsert_item(db_session, charizard(card_number="223"), Decimal("90.00"), recorded_at=T0)
    await upsert_item(
        db_session,
        ItemIdentity(
            kind=ItemKind.PRODUCT,
            name="Obsidian Flames Booster Box",
            set_name="Obsidian Flames",
            product_type="Booster Box",
        ),
        Decimal("119.99"),
        recorded_at=T0,
    )

    assert await count(db_session, Item) == 3


def test_identity_requires_secondary_key() -> None:
    with pytest.raises(ValidationError):
        ItemIdentity(kind=ItemKind.CARD, name="Pikachu", set_name="Base")
    with pytest.raises(ValidationError):
        ItemIdentity(kind=ItemKind.PRODUCT, name="Booster Box", set_name="Base")


@pytest.mark.asyncio
@pytest.mark.parametrize("price", [Decimal("-1"), Decimal("NaN"), Decimal("Infinity")])
async def test_invalid_price_rejected(db_session, price) -> None:
    with pytest.raises(ValueError):
        await upsert_item(db_session, charizard(), price)

    assert await count(db_session, Item) == 0


@pytest.mark.asyncio
async def test_insert_race_falls_back_to_update(db_session, session_factory) -> None:
    real_find = upserter.find_item
    calls = {"n": 0}

    async def racing_find(session, identity):
        calls["n"] += 1
        if calls["n"] == 1:
            # A concurrent invocation commits the same key after our lookup.
            async with session_factory() as other:
                rival = Item(
                    kind=identity.kind.value,
                    name=identity.name,
                    set_name=identity.set_name,
                    secondary_key=identity.secondary_key,
                    card_number=identity.card_number,
                    rarity=identity.rarity,
                    current_price=Decimal("40.00"),
                    last_updated=T0,
                )
                other.add(rival)
                await other.flush()
                other.add(PriceHistoryEntry(item_id=rival.id, price=Decimal("40.00"), recorded_at=T0))
                await other.commit()
            return None
        return await real_find(session, identity)

    with patch.object(upserter, "find_item", new=racing_find):
        outcome = await upsert_item(
            db_session, charizard(), Decimal("45.00"), recorded_at=T0 + timedelta(minutes=5)
        )

    assert outcome.created is False
    assert calls["n"] == 2
    assert await count(db_session, Item) == 1
    assert await count(db_session, PriceHistoryEntry) == 2

    item = (await db_session.execute(select(Item))).scalar_one()
    assert item.id == outcome.item_id
    assert item.current_price == Decimal("45.00")
