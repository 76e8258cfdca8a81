"""
TCG Tracker — Price Refresh Job

The most frequent job: one bounded crawler step followed by one live-update
batch. A crawler failure is logged and the simulator still runs, so the
recently-updated feed keeps moving while the external API is down.

Items the crawler just wrote are excluded from the simulator batch so their
real price change stays the most recent history step.
"""

from __future__ import annotations

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from tcgtracker.pipeline.crawler import run_new_card_fetch
from tcgtracker.pipeline.live_updates import simulate_live_updates
from tcgtracker.pipeline.pokemontcg import PokemonTCGClient
from tcgtracker.pipeline.results import CrawlResult, RefreshResult

logger = structlog.get_logger(__name__)


async def run_price_refresh(session: AsyncSession, client: PokemonTCGClient) -> RefreshResult:
    crawl: CrawlResult | None = None
    try:
        crawl = await run_new_card_fetch(session, client)
    except Exception as e:
        await session.rollback()
        logger.error("refresh_crawl_failed", error=str(e))

    live = await simulate_live_updates(session, exclude_ids=crawl.item_ids if crawl else None)

    success = crawl is not None and crawl.success and live.success
    logger.info(
        "refresh_complete",
        success=success,
        crawled=crawl.updated if crawl else 0,
        touched=live.updated,
        skipped=live.skipped,
    )
    return RefreshResult(success=success, crawl=crawl, live=live)
