"""SQLite persistence for companies, prospects, planning and property evidence."""

import json
import logging
import sqlite3
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional

from deepdiff import DeepDiff

from prospect_gauntlet.storage.models import (
    CompanyPlanningLink,
    CompanyProfile,
    CompanyPropertyLink,
    MatchConfidence,
    OwnershipType,
    PlanningApplicationRecord,
    PlanningSource,
    PlanningStatus,
    PropertyDataset,
    PropertyTitleRecord,
    Prospect,
    ProspectTier,
)

logger = logging.getLogger(__name__)

# Normalised planning fields compared on re-ingestion
PLANNING_FIELDS = (
    "local_authority",
    "council_name",
    "site_address",
    "site_postcode",
    "applicant_name",
    "applicant_organisation",
    "status",
    "decision_date",
    "received_date",
)


def _to_iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _from_iso(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class Database:
    """SQLite database interface for the gauntlet."""

    def __init__(self, db_path: Path):
        """Initialize database connection.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn: Optional[sqlite3.Connection] = None

    def connect(self):
        """Open database connection."""
        self.conn = sqlite3.connect(str(self.db_path))
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys = ON")
        return self

    def close(self):
        """Close database connection."""
        if self.conn:
            self.conn.close()
            self.conn = None

    def __enter__(self):
        """Context manager entry."""
        return self.connect()

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()

    def init_schema(self):
        """Create database schema if not exists."""
        cursor = self.conn.cursor()

        # Company directory (registry profile, loaded from outside the gauntlet)
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS companies (
                company_number TEXT PRIMARY KEY,
                company_name TEXT NOT NULL,
                registered_postcode TEXT,
                updated_at DATETIME
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS company_officers (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                company_number TEXT NOT NULL,
                name TEXT NOT NULL,
                FOREIGN KEY (company_number) REFERENCES companies(company_number)
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS company_psc (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                company_number TEXT NOT NULL,
                name TEXT NOT NULL,
                FOREIGN KEY (company_number) REFERENCES companies(company_number)
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS company_charges (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                company_number TEXT NOT NULL,
                postcode TEXT,
                FOREIGN KEY (company_number) REFERENCES companies(company_number)
            )
        """)

        # Prospects table
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS prospects (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                company_number TEXT NOT NULL UNIQUE,
                score INTEGER,
                tier TEXT,
                has_planning_hits BOOLEAN DEFAULT FALSE,
                has_owned_property_hits BOOLEAN DEFAULT FALSE,
                last_run_at DATETIME,
                created_at DATETIME NOT NULL,
                updated_at DATETIME NOT NULL
            )
        """)

        # Planning applications table
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS planning_applications (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                external_id TEXT NOT NULL,
                source TEXT NOT NULL,
                local_authority TEXT,
                council_name TEXT,
                site_address TEXT,
                site_postcode TEXT,
                applicant_name TEXT,
                applicant_organisation TEXT,
                status TEXT NOT NULL DEFAULT 'UNKNOWN',
                decision_date TEXT,
                received_date TEXT,
                raw_payload TEXT,
                created_at DATETIME NOT NULL,
                updated_at DATETIME NOT NULL,
                UNIQUE(source, external_id)
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS company_planning_links (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                company_number TEXT NOT NULL,
                planning_application_id INTEGER NOT NULL,
                match_confidence TEXT NOT NULL,
                match_reason TEXT NOT NULL,
                created_at DATETIME NOT NULL,
                UNIQUE(company_number, planning_application_id),
                FOREIGN KEY (planning_application_id)
                    REFERENCES planning_applications(id)
            )
        """)

        # Property titles table
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS property_titles (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                title_number TEXT NOT NULL UNIQUE,
                country TEXT,
                address TEXT,
                postcode TEXT,
                raw_payload TEXT,
                created_at DATETIME NOT NULL,
                updated_at DATETIME NOT NULL
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS company_property_links (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                company_number TEXT NOT NULL,
                property_title_id INTEGER NOT NULL,
                ownership_type TEXT NOT NULL DEFAULT 'UNKNOWN',
                from_dataset TEXT NOT NULL,
                acquired_date TEXT,
                created_at DATETIME NOT NULL,
                UNIQUE(company_number, property_title_id),
                FOREIGN KEY (property_title_id) REFERENCES property_titles(id)
            )
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_prospects_last_run
            ON prospects(last_run_at)
        """)

        self.conn.commit()

    # Company directory operations
    def upsert_company(self, profile: CompanyProfile):
        """Store a company profile, replacing its officers, PSC and charges."""
        cursor = self.conn.cursor()
        cursor.execute("""
            INSERT INTO companies (
                company_number, company_name, registered_postcode, updated_at
            ) VALUES (?, ?, ?, ?)
            ON CONFLICT(company_number) DO UPDATE SET
                company_name = excluded.company_name,
                registered_postcode = excluded.registered_postcode,
                updated_at = excluded.updated_at
        """, (
            profile.company_number, profile.company_name,
            profile.registered_postcode, _to_iso(datetime.now()),
        ))

        for table in ("company_officers", "company_psc", "company_charges"):
            cursor.execute(
                f"DELETE FROM {table} WHERE company_number = ?",
                (profile.company_number,),
            )

        cursor.executemany(
            "INSERT INTO company_officers (company_number, name) VALUES (?, ?)",
            [(profile.company_number, name) for name in profile.officer_names],
        )
        cursor.executemany(
            "INSERT INTO company_psc (company_number, name) VALUES (?, ?)",
            [(profile.company_number, name) for name in profile.psc_names],
        )
        cursor.executemany(
            "INSERT INTO company_charges (company_number, postcode) VALUES (?, ?)",
            [(profile.company_number, pc) for pc in profile.charge_postcodes],
        )
        self.conn.commit()

    def get_company_profile(self, company_number: str) -> Optional[CompanyProfile]:
        """Load a company with its officers, PSC and charge postcodes."""
        cursor = self.conn.cursor()
        cursor.execute(
            "SELECT * FROM companies WHERE company_number = ?", (company_number,)
        )
        row = cursor.fetchone()
        if not row:
            return None

        def names(table: str, column: str) -> tuple:
            cursor.execute(
                f"SELECT {column} FROM {table} WHERE company_number = ? ORDER BY id",
                (company_number,),
            )
            return tuple(r[0] for r in cursor.fetchall())

        return CompanyProfile(
            company_number=row["company_number"],
            company_name=row["company_name"],
            registered_postcode=row["registered_postcode"],
            officer_names=names("company_officers", "name"),
            psc_names=names("company_psc", "name"),
            charge_postcodes=names("company_charges", "postcode"),
        )

    # Prospect operations
    def ensure_prospect(self, company_number: str) -> Prospect:
        """Return the prospect for a company, creating it on first use."""
        now = _to_iso(datetime.now())
        cursor = self.conn.cursor()
        cursor.execute("""
            INSERT INTO prospects (company_number, created_at, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(company_number) DO NOTHING
        """, (company_number, now, now))
        self.conn.commit()
        return self.get_prospect_by_company_number(company_number)

    def get_prospect(self, prospect_id: int) -> Optional[Prospect]:
        """Get a prospect by id."""
        cursor = self.conn.cursor()
        cursor.execute("SELECT * FROM prospects WHERE id = ?", (prospect_id,))
        row = cursor.fetchone()
        return self._row_to_prospect(row) if row else None

    def get_prospect_by_company_number(self, company_number: str) -> Optional[Prospect]:
        """Get a prospect by company number."""
        cursor = self.conn.cursor()
        cursor.execute(
            "SELECT * FROM prospects WHERE company_number = ?", (company_number,)
        )
        row = cursor.fetchone()
        return self._row_to_prospect(row) if row else None

    def update_prospect_score(
        self,
        prospect_id: int,
        score: int,
        tier: ProspectTier,
        has_planning_hits: bool,
        has_owned_property_hits: bool,
        last_run_at: datetime,
    ):
        """Write the result of a gauntlet run back to the prospect."""
        cursor = self.conn.cursor()
        cursor.execute("""
            UPDATE prospects
            SET score = ?, tier = ?, has_planning_hits = ?,
                has_owned_property_hits = ?, last_run_at = ?, updated_at = ?
            WHERE id = ?
        """, (
            score, tier.value, has_planning_hits, has_owned_property_hits,
            _to_iso(last_run_at), _to_iso(datetime.now()), prospect_id,
        ))
        self.conn.commit()

    def get_prospects_needing_refresh(
        self, days_old: int, now: Optional[datetime] = None
    ) -> List[Prospect]:
        """Find prospects whose last run is older than days_old.

        Prospects that have never completed a run are always included.
        Oldest first.
        """
        cutoff = (now or datetime.now()) - timedelta(days=days_old)
        cursor = self.conn.cursor()
        cursor.execute("""
            SELECT * FROM prospects
            WHERE last_run_at IS NULL OR last_run_at < ?
            ORDER BY last_run_at IS NOT NULL, last_run_at ASC, id ASC
        """, (_to_iso(cutoff),))
        return [self._row_to_prospect(row) for row in cursor.fetchall()]

    @staticmethod
    def _row_to_prospect(row: sqlite3.Row) -> Prospect:
        return Prospect(
            id=row["id"],
            company_number=row["company_number"],
            score=row["score"],
            tier=ProspectTier(row["tier"]) if row["tier"] else None,
            has_planning_hits=bool(row["has_planning_hits"]),
            has_owned_property_hits=bool(row["has_owned_property_hits"]),
            last_run_at=_from_iso(row["last_run_at"]),
            created_at=_from_iso(row["created_at"]),
            updated_at=_from_iso(row["updated_at"]),
        )

    # Planning operations
    def upsert_planning_application(self, record: PlanningApplicationRecord) -> int:
        """Insert or update a planning application keyed by (source, external_id).

        Returns:
            Row id of the stored planning application
        """
        if not record.external_id:
            raise ValueError("Planning application requires an external id")

        existing = self.get_planning_application(record.source, record.external_id)
        if existing:
            changed = self._changed_planning_fields(existing, record)
            if changed:
                logger.info(
                    f"Planning application {record.external_id} changed: "
                    f"{', '.join(sorted(changed))}"
                )

        now = _to_iso(datetime.now())
        cursor = self.conn.cursor()
        cursor.execute("""
            INSERT INTO planning_applications (
                external_id, source, local_authority, council_name, site_address,
                site_postcode, applicant_name, applicant_organisation, status,
                decision_date, received_date, raw_payload, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(source, external_id) DO UPDATE SET
                local_authority = excluded.local_authority,
                council_name = excluded.council_name,
                site_address = excluded.site_address,
                site_postcode = excluded.site_postcode,
                applicant_name = excluded.applicant_name,
                applicant_organisation = excluded.applicant_organisation,
                status = excluded.status,
                decision_date = excluded.decision_date,
                received_date = excluded.received_date,
                raw_payload = excluded.raw_payload,
                updated_at = excluded.updated_at
        """, (
            record.external_id, record.source.value, record.local_authority,
            record.council_name, record.site_address, record.site_postcode,
            record.applicant_name, record.applicant_organisation,
            record.status.value, record.decision_date, record.received_date,
            json.dumps(record.raw_payload, sort_keys=True, default=str),
            now, now,
        ))
        self.conn.commit()

        cursor.execute("""
            SELECT id FROM planning_applications
            WHERE source = ? AND external_id = ?
        """, (record.source.value, record.external_id))
        return cursor.fetchone()["id"]

    def get_planning_application(
        self, source: PlanningSource, external_id: str
    ) -> Optional[PlanningApplicationRecord]:
        """Get a planning application by its source identity."""
        cursor = self.conn.cursor()
        cursor.execute("""
            SELECT * FROM planning_applications
            WHERE source = ? AND external_id = ?
        """, (source.value, external_id))
        row = cursor.fetchone()
        return self._row_to_planning(row) if row else None

    def link_company_to_planning(
        self,
        company_number: str,
        planning_application_id: int,
        confidence: MatchConfidence,
        reason: str,
    ) -> int:
        """Link a company to a planning application, overwriting prior evidence."""
        cursor = self.conn.cursor()
        cursor.execute("""
            INSERT INTO company_planning_links (
                company_number, planning_application_id, match_confidence,
                match_reason, created_at
            ) VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(company_number, planning_application_id) DO UPDATE SET
                match_confidence = excluded.match_confidence,
                match_reason = excluded.match_reason
        """, (
            company_number, planning_application_id, confidence.value, reason,
            _to_iso(datetime.now()),
        ))
        self.conn.commit()

        cursor.execute("""
            SELECT id FROM company_planning_links
            WHERE company_number = ? AND planning_application_id = ?
        """, (company_number, planning_application_id))
        return cursor.fetchone()["id"]

    def get_planning_links_for_company(
        self, company_number: str
    ) -> List[CompanyPlanningLink]:
        """Get every planning link for a company with its application attached."""
        cursor = self.conn.cursor()
        cursor.execute("""
            SELECT l.id AS link_id, l.company_number, l.planning_application_id,
                   l.match_confidence, l.match_reason, l.created_at AS link_created_at,
                   p.*
            FROM company_planning_links l
            JOIN planning_applications p ON p.id = l.planning_application_id
            WHERE l.company_number = ?
            ORDER BY l.id
        """, (company_number,))

        return [
            CompanyPlanningLink(
                id=row["link_id"],
                company_number=row["company_number"],
                planning_application_id=row["planning_application_id"],
                match_confidence=MatchConfidence(row["match_confidence"]),
                match_reason=row["match_reason"],
                created_at=_from_iso(row["link_created_at"]),
                planning_application=self._row_to_planning(row),
            )
            for row in cursor.fetchall()
        ]

    @staticmethod
    def _row_to_planning(row: sqlite3.Row) -> PlanningApplicationRecord:
        return PlanningApplicationRecord(
            id=row["id"],
            external_id=row["external_id"],
            source=PlanningSource(row["source"]),
            local_authority=row["local_authority"],
            council_name=row["council_name"],
            site_address=row["site_address"],
            site_postcode=row["site_postcode"],
            applicant_name=row["applicant_name"],
            applicant_organisation=row["applicant_organisation"],
            status=PlanningStatus(row["status"]),
            decision_date=row["decision_date"],
            received_date=row["received_date"],
            raw_payload=json.loads(row["raw_payload"]) if row["raw_payload"] else {},
        )

    @staticmethod
    def _changed_planning_fields(
        old: PlanningApplicationRecord, new: PlanningApplicationRecord
    ) -> set:
        """Names of normalised fields that differ between two versions."""

        def snapshot(record: PlanningApplicationRecord) -> Dict[str, Any]:
            values = {name: getattr(record, name) for name in PLANNING_FIELDS}
            values["status"] = record.status.value
            return values

        diff = DeepDiff(snapshot(old), snapshot(new))
        return {str(key) for key in diff.affected_root_keys}

    # Property operations
    def upsert_property_title(self, record: PropertyTitleRecord) -> int:
        """Insert or update a property title keyed by title number.

        Returns:
            Row id of the stored property title
        """
        if not record.title_number:
            raise ValueError("Property title requires a title number")

        now = _to_iso(datetime.now())
        cursor = self.conn.cursor()
        cursor.execute("""
            INSERT INTO property_titles (
                title_number, country, address, postcode, raw_payload,
                created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(title_number) DO UPDATE SET
                country = excluded.country,
                address = excluded.address,
                postcode = excluded.postcode,
                raw_payload = excluded.raw_payload,
                updated_at = excluded.updated_at
        """, (
            record.title_number, record.country, record.address, record.postcode,
            json.dumps(record.raw_payload, sort_keys=True, default=str), now, now,
        ))
        self.conn.commit()

        cursor.execute(
            "SELECT id FROM property_titles WHERE title_number = ?",
            (record.title_number,),
        )
        return cursor.fetchone()["id"]

    def link_company_to_property(
        self,
        company_number: str,
        property_title_id: int,
        ownership_type: OwnershipType,
        from_dataset: PropertyDataset,
        acquired_date: Optional[str] = None,
    ) -> int:
        """Link a company to a property title, overwriting prior evidence."""
        cursor = self.conn.cursor()
        cursor.execute("""
            INSERT INTO company_property_links (
                company_number, property_title_id, ownership_type, from_dataset,
                acquired_date, created_at
            ) VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(company_number, property_title_id) DO UPDATE SET
                ownership_type = excluded.ownership_type,
                from_dataset = excluded.from_dataset,
                acquired_date = excluded.acquired_date
        """, (
            company_number, property_title_id, ownership_type.value,
            from_dataset.value, acquired_date, _to_iso(datetime.now()),
        ))
        self.conn.commit()

        cursor.execute("""
            SELECT id FROM company_property_links
            WHERE company_number = ? AND property_title_id = ?
        """, (company_number, property_title_id))
        return cursor.fetchone()["id"]

    def get_property_links_for_company(
        self, company_number: str
    ) -> List[CompanyPropertyLink]:
        """Get every property link for a company with its title attached."""
        cursor = self.conn.cursor()
        cursor.execute("""
            SELECT l.id AS link_id, l.company_number, l.property_title_id,
                   l.ownership_type, l.from_dataset, l.acquired_date,
                   l.created_at AS link_created_at,
                   t.id AS title_id, t.title_number, t.country, t.address,
                   t.postcode, t.raw_payload
            FROM company_property_links l
            JOIN property_titles t ON t.id = l.property_title_id
            WHERE l.company_number = ?
            ORDER BY l.id
        """, (company_number,))

        return [
            CompanyPropertyLink(
                id=row["link_id"],
                company_number=row["company_number"],
                property_title_id=row["property_title_id"],
                ownership_type=OwnershipType(row["ownership_type"]),
                from_dataset=PropertyDataset(row["from_dataset"]),
                acquired_date=row["acquired_date"],
                created_at=_from_iso(row["link_created_at"]),
                property_title=PropertyTitleRecord(
                    id=row["title_id"],
                    title_number=row["title_number"],
                    country=row["country"],
                    address=row["address"],
                    postcode=row["postcode"],
                    raw_payload=(
                        json.loads(row["raw_payload"]) if row["raw_payload"] else {}
                    ),
                ),
            )
            for row in cursor.fetchall()
        ]

    def count_rows(self, table: str) -> int:
        """Row count for a table (used by scripts and tests)."""
        cursor = self.conn.cursor()
        cursor.execute(f"SELECT COUNT(*) FROM {table}")
        return cursor.fetchone()[0]
