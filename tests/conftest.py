"""
TCG Tracker — Shared pytest Fixtures & Configuration

Provides common fixtures for all test modules:
- File-backed aiosqlite database built from the ORM metadata
- Session factory and a ready session
- Item/history factory for seeding pipeline state
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import AsyncGenerator, Awaitable, Callable

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from tcgtracker.config import ItemKind
from tcgtracker.models import Base, Item, PriceHistoryEntry


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

pytest_plugins = ("pytest_asyncio",)

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Database Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
async def db_engine(tmp_path):
    """
    SQLite database in a temp file.

    A file (not :memory:) so several sessions can read concurrently, as the
    day-over-day ranking does.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'tcgtracker.db'}", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------

ItemFactory = Callable[..., Awaitable[int]]


@pytest.fixture
def make_item(session_factory) -> ItemFactory:
    """
    Insert one item plus optional history; returns the item id.

    Usage:
        item_id = await make_item("Charizard ex", price="42.00",
                                  history=[(T0, "40.00"), (T0 + 5min, "42.00")])
    """
    counter = {"n": 0}

    async def _make(
        name: str,
        price: str | Decimal = "10.00",
        kind: ItemKind = ItemKind.CARD,
        set_name: str = "Obsidian Flames",
        number: str | None = None,
        product_type: str = "Booster Box",
        history: list[tuple[datetime, str | Decimal]] | None = None,
        last_updated: datetime = T0,
    ) -> int:
        counter["n"] += 1
        if kind == ItemKind.CARD:
            secondary = number or str(counter["n"])
            card_number, ptype = secondary, None
        else:
            secondary = product_type
            card_number, ptype = None, product_type

        async with session_factory() as session:
            item = Item(
                kind=kind.value,
                name=name,
                set_name=set_name,
                secondary_key=secondary,
                card_number=card_number,
                rarity="Double Rare" if kind == ItemKind.CARD else None,
                product_type=ptype,
                current_price=Decimal(str(price)),
                last_updated=last_updated,
            )
            session.add(item)
            await session.flush()
            item_id = item.id
            for recorded_at, entry_price in history or []:
                session.add(
                    PriceHistoryEntry(
                        item_id=item_id,
                        price=Decimal(str(entry_price)),
                        recorded_at=recorded_at,
                    )
                )
            await session.commit()
        return item_id

    return _make
