"""Source-shaped registry records and their normalisation.

Each registry returns its own vocabulary. A raw record is wrapped in the
dataclass for its source, and that dataclass alone knows how to produce the
shared PlanningApplicationRecord / PropertyTitleRecord shape.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from prospect_gauntlet.storage.models import (
    OwnershipType,
    PlanningApplicationRecord,
    PlanningSource,
    PlanningStatus,
    PropertyDataset,
    PropertyTitleRecord,
)


def _text(payload: Dict[str, Any], key: str) -> Optional[str]:
    """String value of a payload field, or None when blank."""
    value = payload.get(key)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _canonical_json(payload: Dict[str, Any]) -> str:
    return json.dumps(payload, sort_keys=True, default=str)


def normalize_planning_status(status: Optional[str]) -> PlanningStatus:
    """Map a Planning Data API status string to the canonical status."""
    if not status:
        return PlanningStatus.UNKNOWN

    normalized = status.lower().strip()

    if "approved" in normalized or "granted" in normalized:
        return PlanningStatus.APPROVED
    if "refused" in normalized or "rejected" in normalized:
        return PlanningStatus.REFUSED
    if any(
        word in normalized
        for word in ("under", "consideration", "pending", "awaiting")
    ):
        return PlanningStatus.UNDER_CONSIDERATION

    return PlanningStatus.UNKNOWN


def normalize_london_planning_status(
    status: Optional[str], decision: Optional[str]
) -> PlanningStatus:
    """Map London Datahub status and decision strings to the canonical status."""
    combined = f"{(status or '').lower().strip()} {(decision or '').lower().strip()}"
    combined = combined.strip()

    if "approved" in combined or "granted" in combined:
        return PlanningStatus.APPROVED
    if "refused" in combined or "rejected" in combined:
        return PlanningStatus.REFUSED
    if any(
        word in combined
        for word in ("under", "consideration", "pending", "awaiting", "validated")
    ):
        return PlanningStatus.UNDER_CONSIDERATION

    return PlanningStatus.UNKNOWN


def normalize_ownership_type(tenure: Optional[str]) -> OwnershipType:
    """Map a Land Registry tenure string to an ownership type."""
    if not tenure:
        return OwnershipType.UNKNOWN

    normalized = tenure.upper().strip()
    if "FREEHOLD" in normalized:
        return OwnershipType.FREEHOLD
    if "LEASEHOLD" in normalized:
        return OwnershipType.LEASEHOLD
    return OwnershipType.UNKNOWN


@dataclass(frozen=True)
class PlanningDataApplication:
    """Planning application as returned by planning.data.gov.uk."""

    raw: Dict[str, Any] = field(default_factory=dict)
    reference: Optional[str] = None
    entity_id: Optional[str] = None
    status: Optional[str] = None
    decision_date: Optional[str] = None
    received_date: Optional[str] = None
    local_authority: Optional[str] = None
    local_authority_label: Optional[str] = None
    site_address: Optional[str] = None
    postcode: Optional[str] = None
    applicant_name: Optional[str] = None
    applicant_organisation: Optional[str] = None

    source = PlanningSource.PLANNING_DATA_API

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "PlanningDataApplication":
        return cls(
            raw=payload,
            reference=_text(payload, "reference"),
            entity_id=_text(payload, "id") or _text(payload, "entity"),
            status=_text(payload, "status"),
            decision_date=_text(payload, "decision_date"),
            received_date=_text(payload, "received_date"),
            local_authority=_text(payload, "local_authority"),
            local_authority_label=_text(payload, "local_authority_label"),
            site_address=_text(payload, "site_address"),
            postcode=_text(payload, "postcode"),
            applicant_name=_text(payload, "applicant_name"),
            applicant_organisation=_text(payload, "applicant_organisation"),
        )

    @property
    def external_id(self) -> str:
        return self.reference or self.entity_id or _canonical_json(self.raw)

    def normalize(self) -> PlanningApplicationRecord:
        return PlanningApplicationRecord(
            external_id=self.external_id,
            source=self.source,
            local_authority=self.local_authority,
            council_name=self.local_authority_label or self.local_authority,
            site_address=self.site_address,
            site_postcode=self.postcode,
            applicant_name=self.applicant_name,
            applicant_organisation=self.applicant_organisation,
            status=normalize_planning_status(self.status),
            decision_date=self.decision_date,
            received_date=self.received_date,
            raw_payload=self.raw,
        )


@dataclass(frozen=True)
class LondonDatahubApplication:
    """Planning application as returned by the London Planning Datahub."""

    raw: Dict[str, Any] = field(default_factory=dict)
    reference: Optional[str] = None
    application_number: Optional[str] = None
    entity_id: Optional[str] = None
    status: Optional[str] = None
    decision: Optional[str] = None
    decision_date: Optional[str] = None
    received_date: Optional[str] = None
    validated_date: Optional[str] = None
    local_authority: Optional[str] = None
    borough: Optional[str] = None
    site_address: Optional[str] = None
    postcode: Optional[str] = None
    applicant_name: Optional[str] = None
    applicant_organisation: Optional[str] = None

    source = PlanningSource.LONDON_DATAHUB

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "LondonDatahubApplication":
        return cls(
            raw=payload,
            reference=_text(payload, "reference"),
            application_number=_text(payload, "application_number"),
            entity_id=_text(payload, "id"),
            status=_text(payload, "status"),
            decision=_text(payload, "decision"),
            decision_date=_text(payload, "decision_date"),
            received_date=_text(payload, "received_date"),
            validated_date=_text(payload, "validated_date"),
            local_authority=_text(payload, "local_authority"),
            borough=_text(payload, "borough"),
            site_address=_text(payload, "site_address"),
            postcode=_text(payload, "postcode"),
            applicant_name=_text(payload, "applicant_name"),
            applicant_organisation=_text(payload, "applicant_organisation"),
        )

    @property
    def external_id(self) -> str:
        return (
            self.reference
            or self.application_number
            or self.entity_id
            or _canonical_json(self.raw)
        )

    def normalize(self) -> PlanningApplicationRecord:
        return PlanningApplicationRecord(
            external_id=self.external_id,
            source=self.source,
            local_authority=self.local_authority or self.borough,
            council_name=self.borough or self.local_authority,
            site_address=self.site_address,
            site_postcode=self.postcode,
            applicant_name=self.applicant_name,
            applicant_organisation=self.applicant_organisation,
            status=normalize_london_planning_status(self.status, self.decision),
            decision_date=self.decision_date,
            received_date=self.received_date or self.validated_date,
            raw_payload=self.raw,
        )


PlanningCandidate = Union[PlanningDataApplication, LondonDatahubApplication]


@dataclass(frozen=True)
class LandPropertyTitle:
    """Company-owned title from the Land Registry CCOD/OCOD datasets."""

    dataset: PropertyDataset
    raw: Dict[str, Any] = field(default_factory=dict)
    title_number: Optional[str] = None
    address: Optional[str] = None
    property_address: Optional[str] = None
    postcode: Optional[str] = None
    tenure: Optional[str] = None
    date_of_sale: Optional[str] = None
    company_name: Optional[str] = None
    company_number: Optional[str] = None
    country: Optional[str] = None

    @classmethod
    def from_api(
        cls, payload: Dict[str, Any], dataset: PropertyDataset
    ) -> "LandPropertyTitle":
        return cls(
            dataset=dataset,
            raw=payload,
            title_number=_text(payload, "title_number"),
            address=_text(payload, "address"),
            property_address=_text(payload, "property_address"),
            postcode=_text(payload, "postcode"),
            tenure=_text(payload, "tenure"),
            date_of_sale=_text(payload, "date_of_sale"),
            company_name=_text(payload, "company_name"),
            company_number=_text(payload, "company_number"),
            country=_text(payload, "country"),
        )

    @property
    def ownership_type(self) -> OwnershipType:
        return normalize_ownership_type(self.tenure)

    def normalize(self) -> PropertyTitleRecord:
        if not self.title_number:
            raise ValueError("Property title requires a title number")
        return PropertyTitleRecord(
            title_number=self.title_number,
            country=self.country or "E&W",
            address=self.address or self.property_address,
            postcode=self.postcode,
            raw_payload=self.raw,
        )


def dedupe_by_external_id(
    applications: List[PlanningCandidate],
) -> List[PlanningCandidate]:
    """Keep the first application per external id."""
    seen = set()
    unique = []
    for application in applications:
        if application.external_id not in seen:
            seen.add(application.external_id)
            unique.append(application)
    return unique
