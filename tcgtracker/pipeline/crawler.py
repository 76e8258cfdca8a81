"""
TCG Tracker — Incremental Crawler

Discovers cards above a minimum price without re-scanning the whole catalog on
every invocation. Each invocation fetches at most `max_pages` pages starting at
the persisted page cursor, upserts qualifying cards, and writes the next page
back to the cursor store.

Cursor rules:
    - page request fails   → cursor stays on the failed page
    - catalog exhausted    → cursor resets to None (page 1 next time)
    - hard page cap passed → cursor resets to None (circuit breaker)
    - otherwise            → cursor = first unfetched page
"""

from __future__ import annotations

from decimal import Decimal

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from tcgtracker.config import CursorPurpose, ItemKind, settings
from tcgtracker.pipeline.cursor_store import CursorStore
from tcgtracker.pipeline.pokemontcg import (
    CardData,
    PokemonTCGClient,
    PokemonTCGError,
    extract_price,
)
from tcgtracker.pipeline.results import CrawlResult, ErrorCollector
from tcgtracker.pipeline.upserter import ItemIdentity, upsert_item
from tcgtracker.utils.urls import build_tcgplayer_search_url

logger = structlog.get_logger(__name__)


def identity_from_card(card: CardData) -> ItemIdentity:
    """Map an API card record onto the item identity used by the upserter."""
    return ItemIdentity(
        kind=ItemKind.CARD,
        name=card.name,
        set_name=card.set.name,
        card_number=card.number,
        rarity=card.rarity,
        image_url=card.image_url,
        marketplace_url=card.tcgplayer_url
        or build_tcgplayer_search_url(card.name, card.set.name, card.number),
    )


async def crawl_pages(
    session: AsyncSession,
    client: PokemonTCGClient,
    start_page: int = 1,
    min_price: Decimal | None = None,
    max_pages: int | None = None,
) -> CrawlResult:
    """
    Bounded crawl step: fetch up to `max_pages` pages from `start_page`.

    Does not touch the cursor store; `run_new_card_fetch` persists
    `result.next_page`.

    Args:
        session: Async database session used by the upserter.
        client: Open PokemonTCGClient.
        start_page: First page to request (1-based).
        min_price: Minimum extracted price; cards priced 0 are always skipped.
        max_pages: Page budget for this invocation.

    Returns:
        CrawlResult with counts, the next page to resume from, and capped
        per-item errors.
    """
    floor = min_price if min_price is not None else settings.CRAWL_MIN_PRICE
    budget = max_pages if max_pages is not None else settings.CRAWL_MAX_PAGES_PER_RUN
    page_size = settings.CRAWL_PAGE_SIZE
    hard_cap = settings.CRAWL_HARD_PAGE_CAP

    if budget < 1:
        raise ValueError(f"max_pages must be positive, got {budget}")
    if floor < 0:
        raise ValueError(f"min_price must be non-negative, got {floor}")

    if start_page < 1 or start_page > hard_cap:
        logger.warning("crawler_start_page_out_of_range", start_page=start_page, hard_cap=hard_cap)
        start_page = 1

    end_page = min(start_page + budget - 1, hard_cap)
    errors = ErrorCollector()
    updated = 0
    item_ids: list[int] = []
    total = 0
    pages_fetched = 0
    exhausted = False
    page_error: str | None = None
    page = start_page

    logger.info(
        "crawler_start",
        start_page=start_page,
        end_page=end_page,
        min_price=str(floor),
    )

    while page <= end_page:
        try:
            response = await client.fetch_page(page, page_size=page_size)
        except PokemonTCGError as e:
            page_error = f"Page {page}: {e}"
            logger.error("crawler_page_failed", page=page, error=str(e), status_code=e.status_code)
            break

        records = response.data
        if not records:
            logger.info("crawler_catalog_exhausted", page=page)
            exhausted = True
            break

        pages_fetched += 1
        total += len(records)

        for raw in records:
            name = raw.get("name", "<unknown>") if isinstance(raw, dict) else "<unknown>"
            try:
                card = CardData.model_validate(raw)
                price = extract_price(card)
                if price <= 0 or price < floor:
                    continue
                outcome = await upsert_item(session, identity_from_card(card), price)
                item_ids.append(outcome.item_id)
                updated += 1
            except Exception as e:
                await session.rollback()
                errors.add(f"Failed to process {name}: {e}")
                logger.warning("crawler_item_failed", page=page, card_name=name, error=str(e))

        logger.info(
            "crawler_page_complete",
            page=page,
            records=len(records),
            updated_so_far=updated,
        )

        last_page = len(records) < page_size or (
            response.totalCount > 0 and page * page_size >= response.totalCount
        )
        page += 1
        if last_page:
            exhausted = True
            break

    if page_error is not None:
        next_page: int | None = page
    elif exhausted or page > hard_cap:
        next_page = None
    else:
        next_page = page

    is_complete = page_error is None and next_page is None

    logger.info(
        "crawler_complete",
        pages_fetched=pages_fetched,
        total=total,
        updated=updated,
        next_page=next_page,
        is_complete=is_complete,
        error_count=len(errors),
    )

    return CrawlResult(
        success=page_error is None,
        updated=updated,
        total=total,
        pages_fetched=pages_fetched,
        start_page=start_page,
        next_page=next_page,
        is_complete=is_complete,
        page_error=page_error,
        item_ids=item_ids,
        errors=errors.items,
    )


async def run_new_card_fetch(
    session: AsyncSession,
    client: PokemonTCGClient,
    min_price: Decimal | None = None,
    max_pages: int | None = None,
) -> CrawlResult:
    """
    One resumable crawler invocation: read cursor, crawl, persist cursor.

    A second call with no arguments continues where the first stopped.
    """
    store = CursorStore(session)
    start_page = await store.get_page(CursorPurpose.NEW_CARD_FETCH)

    result = await crawl_pages(
        session,
        client,
        start_page=start_page,
        min_price=min_price,
        max_pages=max_pages,
    )

    await store.set(
        CursorPurpose.NEW_CARD_FETCH,
        str(result.next_page) if result.next_page is not None else None,
    )
    return result
