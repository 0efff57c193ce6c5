"""Refresh stale prospects - entry point for cron execution.

Usage:
    python -m prospect_gauntlet.refresh_run
    python -m prospect_gauntlet.refresh_run --days-old 14 --limit 20

Outputs:
    output/latest_refresh.json   - Dispatch summary and run failures
"""

import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime
from pathlib import Path

from prospect_gauntlet.config import config
from prospect_gauntlet.gauntlet import Gauntlet
from prospect_gauntlet.refresh import RefreshScheduler
from prospect_gauntlet.storage.database import Database

# Configure logging
logging.basicConfig(
    level=getattr(logging, config.log_level.upper()),
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Re-run the gauntlet for stale prospects")
    parser.add_argument(
        "--days-old", type=int, default=config.refresh_days_old,
        help=f"Refresh prospects last run more than N days ago (default: {config.refresh_days_old})",
    )
    parser.add_argument(
        "--limit", type=int, default=config.refresh_batch_limit,
        help=f"Maximum prospects to dispatch (default: {config.refresh_batch_limit})",
    )
    parser.add_argument(
        "--delay-ms", type=int, default=config.refresh_dispatch_delay_ms,
        help=f"Pause between dispatches in ms (default: {config.refresh_dispatch_delay_ms})",
    )
    parser.add_argument("--db", type=Path, default=config.database_path)
    return parser.parse_args(argv)


async def run_refresh(days_old: int, limit: int, delay_ms: int, db_path: Path) -> int:
    """Dispatch gauntlet runs for stale prospects and wait for them to finish."""
    start_time = datetime.now()

    logger.info("=" * 60)
    logger.info("Prospect Refresh")
    logger.info(f"Started: {start_time.isoformat()}")
    logger.info("=" * 60)

    with Database(db_path) as db:
        db.init_schema()
        gauntlet = Gauntlet.from_config(db)
        scheduler = RefreshScheduler(
            db,
            run_gauntlet=lambda number: gauntlet.run(company_number=number),
            dispatch_delay=delay_ms / 1000.0,
        )

        summary = await scheduler.refresh_stale(days_old=days_old, limit=limit)
        await scheduler.wait_for_dispatched()

    duration = (datetime.now() - start_time).total_seconds()
    _write_meta(summary.to_dict(), scheduler.run_failures, duration)

    logger.info("=" * 60)
    logger.info("Refresh Complete")
    logger.info(f"Duration: {duration:.1f} seconds")
    logger.info(f"Needing refresh: {summary.total_needing_refresh}")
    logger.info(f"Enqueued: {summary.enqueued}")
    logger.info(f"Dispatch errors: {len(summary.errors)}")
    logger.info(f"Run failures: {len(scheduler.run_failures)}")
    logger.info("=" * 60)

    return 1 if summary.errors or scheduler.run_failures else 0


def _write_meta(summary: dict, run_failures: list, duration_seconds: float):
    """Write refresh metadata to latest_refresh.json."""
    output_dir = Path(config.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    meta = {
        **summary,
        "run_failures": run_failures,
        "duration_seconds": round(duration_seconds, 1),
    }

    path = output_dir / "latest_refresh.json"
    path.write_text(json.dumps(meta, indent=2), encoding="utf-8")
    logger.info(f"Metadata written to {path}")


def main(argv=None) -> int:
    args = parse_args(argv)
    return asyncio.run(
        run_refresh(args.days_old, args.limit, args.delay_ms, args.db)
    )


if __name__ == "__main__":
    sys.exit(main())
