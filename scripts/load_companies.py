"""Load company profiles from a spreadsheet into the SQLite company directory.

Expected columns: company_number, company_name, registered_postcode, and
optionally officers, psc and charge_postcodes holding ';'-separated lists.
"""

import argparse
import logging
import sys
from pathlib import Path

import pandas as pd

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from prospect_gauntlet.config import config
from prospect_gauntlet.storage.database import Database
from prospect_gauntlet.storage.models import CompanyProfile

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

LIST_SEPARATOR = ";"


def _cell(row, column: str):
    value = row.get(column)
    if value is None or pd.isna(value):
        return None
    value = str(value).strip()
    return value or None


def _split(row, column: str) -> tuple:
    value = _cell(row, column)
    if not value:
        return ()
    return tuple(part.strip() for part in value.split(LIST_SEPARATOR) if part.strip())


def read_profiles(path: Path) -> list:
    """Read a CSV or Excel file into CompanyProfile objects."""
    if path.suffix.lower() == ".csv":
        df = pd.read_csv(path, dtype=str)
    else:
        df = pd.read_excel(path, dtype=str)

    logger.info(f"Read {len(df)} rows from {path}")

    profiles = []
    for _, row in df.iterrows():
        company_number = _cell(row, "company_number")
        company_name = _cell(row, "company_name")
        if not company_number or not company_name:
            logger.warning(f"Skipping row with missing number or name: {company_number}")
            continue

        profiles.append(
            CompanyProfile(
                company_number=company_number,
                company_name=company_name,
                registered_postcode=_cell(row, "registered_postcode"),
                officer_names=_split(row, "officers"),
                psc_names=_split(row, "psc"),
                charge_postcodes=_split(row, "charge_postcodes"),
            )
        )
    return profiles


def load_companies(path: Path, db_path: Path, create_prospects: bool = True) -> int:
    """Upsert every company in the file, optionally creating its prospect."""
    logger.info(f"Loading companies from {path}")

    try:
        profiles = read_profiles(path)
    except FileNotFoundError:
        logger.error(f"Companies file not found: {path}")
        return 0
    except Exception as e:
        logger.error(f"Error reading companies file: {e}")
        return 0

    loaded = 0
    with Database(db_path) as db:
        db.init_schema()

        for profile in profiles:
            try:
                db.upsert_company(profile)
                if create_prospects:
                    db.ensure_prospect(profile.company_number)
                loaded += 1
            except Exception as e:
                logger.error(f"Error loading company {profile.company_number}: {e}")
                continue

        logger.info(f"Successfully loaded {loaded} companies into database")
        logger.info(f"Total companies in database: {db.count_rows('companies')}")
        logger.info(f"Total prospects in database: {db.count_rows('prospects')}")

    return loaded


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("file", nargs="?", type=Path, default=config.companies_file)
    parser.add_argument("--db", type=Path, default=config.database_path)
    parser.add_argument(
        "--no-prospects", action="store_true",
        help="Only load the company directory, do not create prospects",
    )
    args = parser.parse_args()
    load_companies(args.file, args.db, create_prospects=not args.no_prospects)
