"""Prospect scoring over linked planning and property evidence.

Points:
- +3 per linked planning application in APPROVED or UNDER_CONSIDERATION
  status whose decision date (or received date) is inside the lookback window
- +2 per linked property title
- +1 once if a planning site postcode is also a property title postcode

Tiers: A >= 10, B >= 5, C > 0, otherwise UNQUALIFIED.
"""

import calendar
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional, Set

from prospect_gauntlet.matching.search_terms import normalize_postcode
from prospect_gauntlet.storage.models import (
    CompanyPlanningLink,
    CompanyPropertyLink,
    PlanningStatus,
    ProspectTier,
)

logger = logging.getLogger(__name__)

PLANNING_POINTS = 3
PROPERTY_POINTS = 2
POSTCODE_OVERLAP_BONUS = 1

SCORING_STATUSES = {PlanningStatus.APPROVED, PlanningStatus.UNDER_CONSIDERATION}

TIER_A_MIN = 10
TIER_B_MIN = 5

DATE_FORMATS = ("%Y-%m-%d", "%d/%m/%Y", "%Y/%m/%d")


@dataclass
class ScoreResult:
    """Outcome of scoring one company."""

    total_score: int
    tier: ProspectTier
    planning_points: int = 0
    property_points: int = 0
    postcode_bonus: int = 0
    scoring_planning_links: int = 0


def tier_for_score(score: int) -> ProspectTier:
    """Map a numeric score to its tier."""
    if score >= TIER_A_MIN:
        return ProspectTier.A
    if score >= TIER_B_MIN:
        return ProspectTier.B
    if score > 0:
        return ProspectTier.C
    return ProspectTier.UNQUALIFIED


def subtract_months(moment: datetime, months: int) -> datetime:
    """Same day-of-month `months` earlier, clamped to the month's length."""
    month_index = moment.year * 12 + (moment.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def parse_date(value: Optional[str]) -> Optional[datetime]:
    """Parse a registry date string into a naive datetime.

    Accepts ISO 8601 dates and timestamps (with or without offset) plus the
    common day-first UK form. Unparseable values yield None.
    """
    if not value:
        return None

    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        parsed = None
        for fmt in DATE_FORMATS:
            try:
                parsed = datetime.strptime(text[:10], fmt)
                break
            except ValueError:
                continue
        if parsed is None:
            logger.debug(f"Unparseable date: {value!r}")
            return None

    return parsed.replace(tzinfo=None) if parsed.tzinfo else parsed


class ProspectScorer:
    """Computes the cumulative score of a company from its stored links."""

    def __init__(self, lookback_months: int = 24):
        self.lookback_months = lookback_months

    def score(
        self,
        planning_links: Iterable[CompanyPlanningLink],
        property_links: Iterable[CompanyPropertyLink],
        now: Optional[datetime] = None,
    ) -> ScoreResult:
        """Score a company from every planning and property link it has."""
        cutoff = subtract_months(now or datetime.now(), self.lookback_months)

        planning_points = 0
        scoring_links = 0
        planning_postcodes: Set[str] = set()
        for link in planning_links:
            application = link.planning_application
            if application is None:
                continue

            if application.site_postcode:
                planning_postcodes.add(normalize_postcode(application.site_postcode))

            # A present decision date is authoritative even when unparseable
            relevant_date = parse_date(
                application.decision_date or application.received_date
            )
            if (
                relevant_date is not None
                and relevant_date >= cutoff
                and application.status in SCORING_STATUSES
            ):
                planning_points += PLANNING_POINTS
                scoring_links += 1

        # Ownership itself is the signal; acquisition date is not weighted
        property_points = 0
        property_postcodes: Set[str] = set()
        for link in property_links:
            title = link.property_title
            if title is None:
                continue
            property_points += PROPERTY_POINTS
            if title.postcode:
                property_postcodes.add(normalize_postcode(title.postcode))

        shared_postcodes = (planning_postcodes & property_postcodes) - {""}
        bonus = POSTCODE_OVERLAP_BONUS if shared_postcodes else 0

        total = planning_points + property_points + bonus
        return ScoreResult(
            total_score=total,
            tier=tier_for_score(total),
            planning_points=planning_points,
            property_points=property_points,
            postcode_bonus=bonus,
            scoring_planning_links=scoring_links,
        )

    def score_company(
        self, db, company_number: str, now: Optional[datetime] = None
    ) -> ScoreResult:
        """Read back all stored links for a company and score them."""
        return self.score(
            db.get_planning_links_for_company(company_number),
            db.get_property_links_for_company(company_number),
            now=now,
        )
