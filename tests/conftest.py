import asyncio
import os
import sys
from datetime import datetime

import pytest

# Ensure project root on sys.path for imports
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir)))

from prospect_gauntlet.collectors.records import (
    LandPropertyTitle,
    LondonDatahubApplication,
    PlanningDataApplication,
)
from prospect_gauntlet.storage.database import Database
from prospect_gauntlet.storage.models import CompanyProfile, PropertyDataset

NOW = datetime(2026, 6, 1, 12, 0, 0)


@pytest.fixture
def db(tmp_path):
    """Fresh SQLite database with the schema applied."""
    database = Database(tmp_path / "test.db")
    database.connect()
    database.init_schema()
    yield database
    database.close()


@pytest.fixture
def acme_profile():
    return CompanyProfile(
        company_number="01234567",
        company_name="Acme Developments Ltd",
        registered_postcode="SW1A 1AA",
        officer_names=("Jane Smith",),
        psc_names=("John Brown",),
        charge_postcodes=("M1 1AE",),
    )


@pytest.fixture
def stored_acme(db, acme_profile):
    db.upsert_company(acme_profile)
    return acme_profile


def planning_app(reference, organisation=None, postcode=None, status="approved",
                 decision_date="2026-01-15", **extra):
    payload = {
        "reference": reference,
        "applicant_organisation": organisation,
        "postcode": postcode,
        "status": status,
        "decision_date": decision_date,
        "local_authority": "E09000033",
        "local_authority_label": "Westminster",
        "site_address": f"{reference} High Street",
    }
    payload.update(extra)
    return PlanningDataApplication.from_api(payload)


def london_app(reference, organisation=None, postcode=None, status="Validated", **extra):
    payload = {
        "reference": reference,
        "applicant_organisation": organisation,
        "postcode": postcode,
        "status": status,
        "received_date": "2026-02-01",
        "borough": "Camden",
    }
    payload.update(extra)
    return LondonDatahubApplication.from_api(payload)


def land_title(title_number, postcode=None, tenure="Freehold",
               dataset=PropertyDataset.UK_COMPANIES):
    return LandPropertyTitle.from_api(
        {
            "title_number": title_number,
            "property_address": f"Plot {title_number}",
            "postcode": postcode,
            "tenure": tenure,
            "date_of_sale": "2020-05-01",
        },
        dataset,
    )


class FakeAdapter:
    """Registry stand-in: canned results per search term, records every call."""

    def __init__(self, results=None, error=None, delay=None):
        self.results = results or {}
        self.error = error
        self.delay = delay
        self.calls = []

    async def search(self, term, postcodes=()):
        self.calls.append((term, list(postcodes)))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return list(self.results.get(term, []))

    @property
    def terms(self):
        return [term for term, _ in self.calls]
