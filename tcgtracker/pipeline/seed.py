"""
TCG Tracker — Sealed Product Seeding

Sealed products have no external price feed, so a fixed list is upserted.
Re-running is safe: the composite key keeps one row per product and each run
records one more observation.
"""

from __future__ import annotations

from decimal import Decimal

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from tcgtracker.config import ItemKind
from tcgtracker.pipeline.upserter import ItemIdentity, UpsertOutcome, upsert_item

logger = structlog.get_logger(__name__)

SEED_PRODUCTS: list[tuple[ItemIdentity, Decimal]] = [
    (
        ItemIdentity(
            kind=ItemKind.PRODUCT,
            name="Obsidian Flames Booster Box",
            set_name="Obsidian Flames",
            product_type="Booster Box",
            image_url="https://images.pokemontcg.io/swsh12/logo.png",
        ),
        Decimal("119.99"),
    ),
    (
        ItemIdentity(
            kind=ItemKind.PRODUCT,
            name="Paldea Evolved Booster Bundle",
            set_name="Paldea Evolved",
            product_type="Booster Bundle",
            image_url="https://images.pokemontcg.io/sv02/logo.png",
        ),
        Decimal("24.99"),
    ),
    (
        ItemIdentity(
            kind=ItemKind.PRODUCT,
            name="151 Elite Trainer Box",
            set_name="151",
            product_type="Elite Trainer Box",
            image_url="https://images.pokemontcg.io/sv03/logo.png",
        ),
        Decimal("64.99"),
    ),
    (
        ItemIdentity(
            kind=ItemKind.PRODUCT,
            name="Scarlet & Violet Booster Box",
            set_name="Scarlet & Violet",
            product_type="Booster Box",
            image_url="https://images.pokemontcg.io/sv01/logo.png",
        ),
        Decimal("109.99"),
    ),
]


async def seed_products(session: AsyncSession) -> list[UpsertOutcome]:
    outcomes = [await upsert_item(session, identity, price) for identity, price in SEED_PRODUCTS]
    logger.info(
        "seed_products_complete",
        total=len(outcomes),
        created=sum(1 for o in outcomes if o.created),
    )
    return outcomes
