"""
TCG Tracker — Job Scheduler

Registers every pipeline job on an APScheduler AsyncIOScheduler with UTC cron
triggers. Each invocation opens its own session (and API client where needed)
and keeps no state between runs; resumable work goes through the cursor store.

Schedule (UTC):
- price_refresh              */2 * * * *     crawler step + live-update batch
- top_movers                 */5 * * * *     top-movers cache
- daily_snapshot             0 0 * * *
- redundant_history_cleanup  0 0 * * mon     full compaction sweep
- price_history_retention    0 2 * * sun
- snapshot_retention         0 3 1 * *
- weekly_maintenance         55 23 * * sun

Jobs run with max_instances=1 and coalesce=True so a slow run never overlaps
itself and missed firings collapse into one.
"""

from __future__ import annotations

import asyncio
import signal
from typing import Any, Awaitable, Callable

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tcgtracker.config import settings
from tcgtracker.pipeline.compactor import compact_all
from tcgtracker.pipeline.maintenance import run_weekly_maintenance
from tcgtracker.pipeline.movers import refresh_top_movers
from tcgtracker.pipeline.pokemontcg import PokemonTCGClient
from tcgtracker.pipeline.refresh import run_price_refresh
from tcgtracker.pipeline.retention import cleanup_old_price_history, cleanup_old_snapshots
from tcgtracker.pipeline.snapshots import create_daily_snapshots

logger = structlog.get_logger(__name__)

SessionFactory = async_sessionmaker[AsyncSession]
JobFunc = Callable[[SessionFactory], Awaitable[Any]]


# ---------------------------------------------------------------------------
# Job bodies (one fresh session per invocation)
# ---------------------------------------------------------------------------


async def price_refresh_job(session_factory: SessionFactory) -> Any:
    async with session_factory() as session:
        async with PokemonTCGClient() as client:
            return await run_price_refresh(session, client)


async def top_movers_job(session_factory: SessionFactory) -> Any:
    async with session_factory() as session:
        return await refresh_top_movers(session)


async def daily_snapshot_job(session_factory: SessionFactory) -> Any:
    async with session_factory() as session:
        return await create_daily_snapshots(session)


async def redundant_history_cleanup_job(session_factory: SessionFactory) -> Any:
    async with session_factory() as session:
        return await compact_all(session, max_steps=settings.COMPACTION_MAX_STEPS_PER_RUN)


async def price_history_retention_job(session_factory: SessionFactory) -> Any:
    async with session_factory() as session:
        return await cleanup_old_price_history(session)


async def snapshot_retention_job(session_factory: SessionFactory) -> Any:
    async with session_factory() as session:
        return await cleanup_old_snapshots(session)


async def weekly_maintenance_job(session_factory: SessionFactory) -> Any:
    return await run_weekly_maintenance(session_factory)


def job_table() -> list[tuple[str, str, JobFunc]]:
    """(job_id, crontab, job) for every scheduled job."""
    return [
        ("price_refresh", settings.CRON_PRICE_REFRESH, price_refresh_job),
        ("top_movers", settings.CRON_TOP_MOVERS, top_movers_job),
        ("daily_snapshot", settings.CRON_DAILY_SNAPSHOT, daily_snapshot_job),
        (
            "redundant_history_cleanup",
            settings.CRON_REDUNDANT_HISTORY_CLEANUP,
            redundant_history_cleanup_job,
        ),
        (
            "price_history_retention",
            settings.CRON_PRICE_HISTORY_RETENTION,
            price_history_retention_job,
        ),
        ("snapshot_retention", settings.CRON_SNAPSHOT_RETENTION, snapshot_retention_job),
        ("weekly_maintenance", settings.CRON_WEEKLY_MAINTENANCE, weekly_maintenance_job),
    ]


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------


class Scheduler:
    """
    Cron-driven job runner.

    A failing job is logged and never stops the scheduler; the next firing
    resumes from whatever cursor the failed run last persisted.
    """

    def __init__(self, session_factory: SessionFactory):
        self.session_factory = session_factory
        self._shutdown_event = asyncio.Event()
        self._scheduler = AsyncIOScheduler(timezone="UTC")

        for job_id, crontab, job in job_table():
            self._scheduler.add_job(
                self._run_job,
                trigger=CronTrigger.from_crontab(crontab, timezone="UTC"),
                args=[job_id, job],
                id=job_id,
                name=job_id,
                max_instances=1,
                coalesce=True,
                replace_existing=True,
            )

    @property
    def jobs(self) -> list[Any]:
        return self._scheduler.get_jobs()

    async def _run_job(self, job_id: str, job: JobFunc) -> Any:
        logger.info("scheduler_job_start", job=job_id)
        try:
            result = await job(self.session_factory)
        except Exception as e:
            logger.error(
                "scheduler_job_failed",
                job=job_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None
        logger.info("scheduler_job_complete", job=job_id)
        return result

    async def shutdown(self) -> None:
        """Signal graceful shutdown to the scheduler loop."""
        logger.info("scheduler_shutdown_requested")
        self._shutdown_event.set()

    async def run(self) -> None:
        """Start the cron scheduler and block until shutdown is signaled."""
        self._scheduler.start()
        logger.info("scheduler_started", jobs=[job.id for job in self.jobs])

        try:
            await self._shutdown_event.wait()
        except asyncio.CancelledError:
            logger.info("scheduler_cancelled")
            raise
        finally:
            self._scheduler.shutdown(wait=False)
            logger.info("scheduler_stopped")


async def run_scheduler(session_factory: SessionFactory) -> None:
    """
    Initialize and run the scheduler with graceful shutdown handling.

    Registers SIGTERM/SIGINT handlers to trigger shutdown.
    """
    scheduler = Scheduler(session_factory)

    def handle_signal() -> None:
        logger.info("scheduler_signal_received")
        asyncio.create_task(scheduler.shutdown())

    loop = asyncio.get_running_loop()

    try:
        loop.add_signal_handler(signal.SIGTERM, handle_signal)
        loop.add_signal_handler(signal.SIGINT, handle_signal)
    except NotImplementedError:
        # Windows doesn't support add_signal_handler for all signals
        logger.warning("signal_handlers_not_supported_on_platform")

    try:
        await scheduler.run()
    except Exception as e:
        logger.error("scheduler_fatal_error", error=str(e), error_type=type(e).__name__)
        raise
