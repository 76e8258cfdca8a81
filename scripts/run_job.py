"""
TCG Tracker — Run One Job

Runs a single pipeline job once, outside the scheduler. Useful for backfills,
first-time seeding and checking a job against a live database.

Usage:
    python scripts/run_job.py refresh
    python scripts/run_job.py compact --max-steps 10
    python scripts/run_job.py maintenance --message "Back in five minutes"
    python scripts/run_job.py seed-products
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys

# Resolve project root so this script can be run from any working directory
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from tcgtracker.config import settings
from tcgtracker.main import configure_logging, create_db_engine
from tcgtracker.pipeline.compactor import compact_all
from tcgtracker.pipeline.maintenance import run_weekly_maintenance
from tcgtracker.pipeline.movers import refresh_top_movers
from tcgtracker.pipeline.pokemontcg import PokemonTCGClient
from tcgtracker.pipeline.refresh import run_price_refresh
from tcgtracker.pipeline.retention import cleanup_old_price_history, cleanup_old_snapshots
from tcgtracker.pipeline.seed import seed_products
from tcgtracker.pipeline.snapshots import create_daily_snapshots

JOBS = (
    "refresh",
    "snapshot",
    "compact",
    "retention",
    "snapshot-retention",
    "movers",
    "maintenance",
    "seed-products",
)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run one TCG Tracker pipeline job once.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/run_job.py refresh
  python scripts/run_job.py compact --max-steps 10
  python scripts/run_job.py compact --until-done
""",
    )
    parser.add_argument("job", choices=JOBS, help="Job to run.")
    parser.add_argument(
        "--max-steps",
        type=int,
        default=settings.COMPACTION_MAX_STEPS_PER_RUN,
        help="compact: step budget for this run (default: %(default)s).",
    )
    parser.add_argument(
        "--until-done",
        action="store_true",
        help="compact: ignore --max-steps and sweep every item.",
    )
    parser.add_argument(
        "--message",
        type=str,
        default=None,
        help="maintenance: notice shown while the window is open.",
    )
    parser.add_argument(
        "--database-url",
        type=str,
        default=None,
        help="Override DATABASE_URL.",
    )
    return parser.parse_args(argv)


async def run(args: argparse.Namespace) -> object:
    engine, session_factory = create_db_engine(args.database_url)
    try:
        if args.job == "maintenance":
            return await run_weekly_maintenance(session_factory, message=args.message)

        async with session_factory() as session:
            if args.job == "refresh":
                async with PokemonTCGClient() as client:
                    return await run_price_refresh(session, client)
            if args.job == "snapshot":
                return await create_daily_snapshots(session)
            if args.job == "compact":
                max_steps = None if args.until_done else args.max_steps
                return await compact_all(session, max_steps=max_steps)
            if args.job == "retention":
                return await cleanup_old_price_history(session)
            if args.job == "snapshot-retention":
                return await cleanup_old_snapshots(session)
            if args.job == "movers":
                return await refresh_top_movers(session)
            if args.job == "seed-products":
                return await seed_products(session)
        raise ValueError(f"Unknown job: {args.job}")
    finally:
        await engine.dispose()


async def main() -> None:
    args = parse_args()
    configure_logging(settings.LOG_LEVEL)

    try:
        result = await run(args)
    except Exception as e:
        print(f"Job {args.job} failed: {e}", file=sys.stderr)
        sys.exit(1)

    if isinstance(result, list):
        print(f"Job {args.job} finished: {len(result)} item(s).")
    else:
        print(f"Job {args.job} finished:")
        print(result.model_dump_json(indent=2))


if __name__ == "__main__":
    asyncio.run(main())
