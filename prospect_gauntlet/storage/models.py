"""Data models for the prospect gauntlet."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class PlanningSource(Enum):
    """Planning registries a record can come from."""

    PLANNING_DATA_API = "planning_data_api"
    LONDON_DATAHUB = "london_datahub"


class PlanningStatus(Enum):
    """Canonical planning application status."""

    APPROVED = "APPROVED"
    REFUSED = "REFUSED"
    UNDER_CONSIDERATION = "UNDER_CONSIDERATION"
    UNKNOWN = "UNKNOWN"


class MatchConfidence(Enum):
    """How strongly a candidate is believed to belong to the company."""

    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class ProspectTier(Enum):
    """Discrete lead tier derived from the prospect score."""

    A = "A"
    B = "B"
    C = "C"
    UNQUALIFIED = "UNQUALIFIED"


class OwnershipType(Enum):
    """Tenure of a company-owned title."""

    FREEHOLD = "FREEHOLD"
    LEASEHOLD = "LEASEHOLD"
    UNKNOWN = "UNKNOWN"


class PropertyDataset(Enum):
    """Land Registry dataset a title was found in."""

    UK_COMPANIES = "uk_companies_own_property"
    OVERSEAS_COMPANIES = "overseas_companies_own_property"


@dataclass(frozen=True)
class CompanyProfile:
    """Registry profile of a company, read-only for the length of a run."""

    company_number: str
    company_name: str
    registered_postcode: Optional[str] = None
    officer_names: Tuple[str, ...] = ()
    psc_names: Tuple[str, ...] = ()
    charge_postcodes: Tuple[Optional[str], ...] = ()


@dataclass
class Prospect:
    """Cumulative scoring record for one company."""

    company_number: str
    id: Optional[int] = None
    score: Optional[int] = None
    tier: Optional[ProspectTier] = None
    has_planning_hits: bool = False
    has_owned_property_hits: bool = False
    last_run_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class PlanningApplicationRecord:
    """Normalised planning application, independent of source."""

    external_id: str
    source: PlanningSource
    local_authority: Optional[str] = None
    council_name: Optional[str] = None
    site_address: Optional[str] = None
    site_postcode: Optional[str] = None
    applicant_name: Optional[str] = None
    applicant_organisation: Optional[str] = None
    status: PlanningStatus = PlanningStatus.UNKNOWN
    decision_date: Optional[str] = None  # ISO date string
    received_date: Optional[str] = None  # ISO date string
    raw_payload: Dict[str, Any] = field(default_factory=dict)
    id: Optional[int] = None


@dataclass
class PropertyTitleRecord:
    """Normalised land/property title keyed by title number."""

    title_number: str
    country: Optional[str] = None
    address: Optional[str] = None
    postcode: Optional[str] = None
    raw_payload: Dict[str, Any] = field(default_factory=dict)
    id: Optional[int] = None


@dataclass
class CompanyPlanningLink:
    """Evidence linking a company to a planning application."""

    company_number: str
    planning_application_id: int
    match_confidence: MatchConfidence
    match_reason: str
    planning_application: Optional[PlanningApplicationRecord] = None
    created_at: Optional[datetime] = None
    id: Optional[int] = None


@dataclass
class CompanyPropertyLink:
    """Evidence linking a company to a property title it owns."""

    company_number: str
    property_title_id: int
    from_dataset: PropertyDataset
    ownership_type: OwnershipType = OwnershipType.UNKNOWN
    acquired_date: Optional[str] = None  # ISO date string
    property_title: Optional[PropertyTitleRecord] = None
    created_at: Optional[datetime] = None
    id: Optional[int] = None
