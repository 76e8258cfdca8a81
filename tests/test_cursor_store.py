"""
Tests for the persisted cursor store (tcgtracker/pipeline/cursor_store.py).
"""

from __future__ import annotations

import pytest
from sqlalchemy import func, select

from tcgtracker.config import CursorPurpose
from tcgtracker.models import UpdateProgress
from tcgtracker.pipeline.cursor_store import CursorStore


@pytest.mark.asyncio
async def test_missing_cursor_means_start(db_session) -> None:
    store = CursorStore(db_session)

    assert await store.get(CursorPurpose.NEW_CARD_FETCH) is None
    assert await store.get_page(CursorPurpose.NEW_CARD_FETCH) == 1


@pytest.mark.asyncio
async def test_set_then_get_survives_new_session(session_factory) -> None:
    async with session_factory() as session:
        await CursorStore(session).set(CursorPurpose.NEW_CARD_FETCH, "6")

    async with session_factory() as session:
        store = CursorStore(session)
        assert await store.get(CursorPurpose.NEW_CARD_FETCH) == "6"
        assert await store.get_page(CursorPurpose.NEW_CARD_FETCH) == 6


@pytest.mark.asyncio
async def test_set_patches_single_row_per_purpose(db_session) -> None:
    store = CursorStore(db_session)
    await store.set(CursorPurpose.CARD_UPDATE, "10")
    await store.set(CursorPurpose.CARD_UPDATE, "40")
    await store.set(CursorPurpose.NEW_CARD_FETCH, "2")

    count = (await db_session.execute(select(func.count()).select_from(UpdateProgress))).scalar()
    assert count == 2
    assert await store.get(CursorPurpose.CARD_UPDATE) == "40"

    row = (
        await db_session.execute(
            select(UpdateProgress).where(UpdateProgress.purpose == "cardUpdate")
        )
    ).scalar_one()
    assert row.last_updated.tzinfo is not None


@pytest.mark.asyncio
async def test_reset_clears_cursor(db_session) -> None:
    store = CursorStore(db_session)
    await store.set(CursorPurpose.PRICE_HISTORY_CLEANUP, "17")
    await store.reset(CursorPurpose.PRICE_HISTORY_CLEANUP)

    assert await store.get(CursorPurpose.PRICE_HISTORY_CLEANUP) is None


@pytest.mark.asyncio
@pytest.mark.parametrize("raw", ["abc", "0", "-4", ""])
async def test_invalid_page_cursor_falls_back_to_default(db_session, raw) -> None:
    store = CursorStore(db_session)
    await store.set(CursorPurpose.NEW_CARD_FETCH, raw)

    assert await store.get_page(CursorPurpose.NEW_CARD_FETCH) == 1
