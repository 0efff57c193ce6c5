"""Run the prospect gauntlet for a single company.

Usage:
    python -m prospect_gauntlet.run_gauntlet --company-number 01234567
    python -m prospect_gauntlet.run_gauntlet --prospect-id 42

Outputs:
    output/latest_gauntlet.json   - Run report and status
"""

import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from prospect_gauntlet.config import config
from prospect_gauntlet.errors import GauntletError
from prospect_gauntlet.gauntlet import Gauntlet
from prospect_gauntlet.storage.database import Database

# Configure logging
logging.basicConfig(
    level=getattr(logging, config.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Search planning and land registries for one company and score it"
    )
    trigger = parser.add_mutually_exclusive_group(required=True)
    trigger.add_argument("--company-number", help="Company registration number")
    trigger.add_argument("--prospect-id", type=int, help="Existing prospect id")
    parser.add_argument(
        "--db", type=Path, default=config.database_path,
        help=f"SQLite database path (default: {config.database_path})",
    )
    return parser.parse_args(argv)


async def run(
    company_number: Optional[str] = None,
    prospect_id: Optional[int] = None,
    db_path: Path = config.database_path,
) -> int:
    """Execute one gauntlet run and write its report. Returns an exit code."""
    start_time = datetime.now()

    with Database(db_path) as db:
        db.init_schema()
        gauntlet = Gauntlet.from_config(db)

        try:
            report = await gauntlet.run(
                company_number=company_number, prospect_id=prospect_id
            )
        except GauntletError as e:
            logger.error(f"Gauntlet failed: {e}")
            _write_meta(start_time, "error", str(e), None)
            return 1

    status = "partial" if report.adapter_errors else "success"
    _write_meta(
        start_time,
        status,
        f"Company {report.company_number} scored {report.score} (tier {report.tier})",
        report.to_dict(),
    )

    logger.info("=" * 60)
    logger.info("Gauntlet Complete")
    logger.info(f"Company: {report.company_number}")
    logger.info(f"Planning applications: {report.planning_apps_saved} saved")
    logger.info(f"Property titles: {report.properties_saved} saved")
    logger.info(f"Score: {report.score} (tier {report.tier})")
    if report.adapter_errors:
        logger.info(f"Adapter errors: {len(report.adapter_errors)}")
    logger.info("=" * 60)
    return 0


def _write_meta(start_time: datetime, status: str, message: str, report: Optional[dict]):
    """Write run metadata to latest_gauntlet.json."""
    output_dir = Path(config.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    meta = {
        "run_timestamp": start_time.isoformat(),
        "status": status,
        "message": message,
        "duration_seconds": round((datetime.now() - start_time).total_seconds(), 1),
        "report": report,
    }

    path = output_dir / "latest_gauntlet.json"
    path.write_text(json.dumps(meta, indent=2), encoding="utf-8")
    logger.info(f"Metadata written to {path}")


def main(argv=None) -> int:
    args = parse_args(argv)
    return asyncio.run(
        run(company_number=args.company_number, prospect_id=args.prospect_id, db_path=args.db)
    )


if __name__ == "__main__":
    sys.exit(main())
