"""Gauntlet orchestrator: search, match, persist and score one company."""

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from prospect_gauntlet.collectors.land_property_client import LandPropertyClient
from prospect_gauntlet.collectors.london_datahub_client import (
    LondonDatahubClient,
    is_london_postcode,
)
from prospect_gauntlet.collectors.planning_data_client import PlanningDataClient
from prospect_gauntlet.collectors.records import LandPropertyTitle, PlanningCandidate
from prospect_gauntlet.config import Config, config
from prospect_gauntlet.errors import (
    CompanyNotFoundError,
    InvalidTriggerError,
    ProspectNotFoundError,
    RegistryError,
)
from prospect_gauntlet.matching.confidence import classify
from prospect_gauntlet.matching.dedup import dedupe_titles
from prospect_gauntlet.matching.search_terms import (
    build_search_terms,
    extract_postcodes,
    person_search_terms,
)
from prospect_gauntlet.scoring.scorer import ProspectScorer
from prospect_gauntlet.storage.database import Database
from prospect_gauntlet.storage.models import CompanyProfile, MatchConfidence

logger = logging.getLogger(__name__)

CONFIDENCE_RANK = {
    MatchConfidence.HIGH: 3,
    MatchConfidence.MEDIUM: 2,
    MatchConfidence.LOW: 1,
}


@dataclass
class PlanningMatch:
    """A planning candidate with the evidence that linked it to the company."""

    candidate: PlanningCandidate
    reason: str
    confidence: MatchConfidence


@dataclass
class GauntletReport:
    """Summary of one gauntlet run."""

    company_number: str
    prospect_id: int
    planning_candidates_found: int = 0
    planning_apps_found: int = 0
    planning_apps_saved: int = 0
    properties_found: int = 0
    properties_saved: int = 0
    score: int = 0
    tier: str = "UNQUALIFIED"
    adapter_errors: List[str] = field(default_factory=list)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["started_at"] = self.started_at.isoformat() if self.started_at else None
        data["finished_at"] = self.finished_at.isoformat() if self.finished_at else None
        return data


class Gauntlet:
    """Runs the full prospect gauntlet for a company.

    Registry adapters are injected; anything with an async
    ``search(term, postcodes)`` method will do.
    """

    def __init__(
        self,
        db: Database,
        planning_adapter,
        london_adapter,
        land_adapter,
        scorer: Optional[ProspectScorer] = None,
        adapter_timeout: float = 30.0,
        person_search_concurrency: int = 1,
    ):
        self.db = db
        self.planning_adapter = planning_adapter
        self.london_adapter = london_adapter
        self.land_adapter = land_adapter
        self.scorer = scorer or ProspectScorer()
        self.adapter_timeout = adapter_timeout
        self.person_search_concurrency = max(1, person_search_concurrency)

    @classmethod
    def from_config(cls, db: Database, cfg: Config = config) -> "Gauntlet":
        """Build a gauntlet wired to the live registries."""
        return cls(
            db,
            planning_adapter=PlanningDataClient(
                base_url=cfg.planning_data_api_base_url,
                requests_per_minute=cfg.planning_data_api_rate_limit,
                timeout=cfg.registry_timeout_seconds,
                result_limit=cfg.registry_result_limit,
            ),
            london_adapter=LondonDatahubClient(
                base_url=cfg.london_datahub_base_url,
                allow_header=cfg.london_datahub_allow_header,
                requests_per_minute=cfg.london_datahub_rate_limit,
                timeout=cfg.registry_timeout_seconds,
                result_limit=cfg.registry_result_limit,
            ),
            land_adapter=LandPropertyClient(
                base_url=cfg.land_property_api_base_url,
                api_key=cfg.land_property_api_key,
                requests_per_minute=cfg.land_property_api_rate_limit,
                timeout=cfg.registry_timeout_seconds,
                result_limit=cfg.registry_result_limit,
            ),
            scorer=ProspectScorer(lookback_months=cfg.score_lookback_months),
            adapter_timeout=cfg.registry_call_timeout_seconds,
            person_search_concurrency=cfg.person_search_concurrency,
        )

    def resolve_company_number(
        self, company_number: Optional[str] = None, prospect_id: Optional[int] = None
    ) -> str:
        """Resolve a trigger to a company number."""
        if company_number and company_number.strip():
            return company_number.strip()

        if prospect_id is not None:
            prospect = self.db.get_prospect(prospect_id)
            if not prospect:
                raise ProspectNotFoundError(prospect_id)
            return prospect.company_number

        raise InvalidTriggerError("companyNumber or prospectId is required")

    async def run(
        self,
        company_number: Optional[str] = None,
        prospect_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> GauntletReport:
        """Execute one gauntlet run.

        Raises:
            GauntletError: the trigger cannot be resolved to a known company
        """
        started_at = datetime.now()
        number = self.resolve_company_number(company_number, prospect_id)

        profile = self.db.get_company_profile(number)
        if not profile:
            raise CompanyNotFoundError(number)

        prospect = self.db.ensure_prospect(number)
        report = GauntletReport(
            company_number=number, prospect_id=prospect.id, started_at=started_at
        )

        search_terms = build_search_terms(profile)
        postcodes = extract_postcodes(profile)

        logger.info("=" * 60)
        logger.info(f"Gauntlet for company {number} ({profile.company_name})")
        logger.info(f"Search terms: {', '.join(search_terms)}")
        logger.info(f"Postcodes: {', '.join(postcodes) or 'none'}")
        logger.info("=" * 60)

        matches, titles = await asyncio.gather(
            self._planning_pass(profile, search_terms, postcodes, report),
            self._property_pass(profile, report),
        )

        report.planning_apps_found = len(matches)
        report.planning_apps_saved = self._save_planning(number, matches)

        report.properties_found = len(titles)
        report.properties_saved = self._save_properties(number, titles)

        result = self.scorer.score_company(self.db, number, now=now)
        finished_at = datetime.now()
        self.db.update_prospect_score(
            prospect.id,
            score=result.total_score,
            tier=result.tier,
            has_planning_hits=report.planning_apps_saved > 0,
            has_owned_property_hits=report.properties_saved > 0,
            last_run_at=now or finished_at,
        )

        report.score = result.total_score
        report.tier = result.tier.value
        report.finished_at = finished_at

        logger.info(
            f"Gauntlet complete for {number}: "
            f"planning {report.planning_apps_saved}/{report.planning_apps_found} saved "
            f"({report.planning_candidates_found} candidates), "
            f"property {report.properties_saved}/{report.properties_found} saved, "
            f"score {report.score} (tier {report.tier})"
        )
        return report

    async def _search(
        self, adapter, label: str, term: str, postcodes: Sequence[str],
        report: GauntletReport,
    ) -> list:
        """Call one adapter; any failure counts as zero results."""
        try:
            return await asyncio.wait_for(
                adapter.search(term, list(postcodes)), timeout=self.adapter_timeout
            )
        except asyncio.TimeoutError:
            message = f"{label}: timed out searching {term!r}"
        except RegistryError as e:
            message = f"{label}: {e}"
        except Exception as e:
            logger.exception(f"Unexpected error from {label} searching {term!r}")
            message = f"{label}: {e}"

        logger.error(f"Adapter failure - {message}")
        report.adapter_errors.append(message)
        return []

    async def _planning_pass(
        self,
        profile: CompanyProfile,
        search_terms: List[str],
        postcodes: List[str],
        report: GauntletReport,
    ) -> List[PlanningMatch]:
        """Search every planning source and classify the candidates."""
        company_searches = [
            self._search(
                self.planning_adapter, "planning_data_api",
                profile.company_name, postcodes, report,
            )
        ]
        if self.london_adapter is not None and any(
            is_london_postcode(pc) for pc in postcodes
        ):
            company_searches.append(
                self._search(
                    self.london_adapter, "london_datahub",
                    profile.company_name, postcodes, report,
                )
            )

        matches: List[PlanningMatch] = []
        for candidates in await asyncio.gather(*company_searches):
            for candidate in candidates:
                reason, confidence = classify(
                    candidate, profile, search_terms, postcodes
                )
                matches.append(PlanningMatch(candidate, reason, confidence))

        # Officer/PSC searches run through a small bounded pool
        people = person_search_terms(profile)
        pool = asyncio.Semaphore(self.person_search_concurrency)

        async def search_person(name: str):
            async with pool:
                return name, await self._search(
                    self.planning_adapter, "planning_data_api", name, postcodes, report
                )

        for name, candidates in await asyncio.gather(
            *(search_person(name) for name in people)
        ):
            for candidate in candidates:
                reason, confidence = classify(
                    candidate, profile, [name], postcodes, is_person_search=True
                )
                matches.append(
                    PlanningMatch(candidate, f"{reason}:{name}", confidence)
                )

        report.planning_candidates_found = len(matches)
        return _strongest_per_application(matches)

    async def _property_pass(
        self, profile: CompanyProfile, report: GauntletReport
    ) -> List[LandPropertyTitle]:
        """Look titles up by company number and by name, then deduplicate."""
        by_number, by_name = await asyncio.gather(
            self._search(
                self.land_adapter, "land_property_api",
                profile.company_number, [], report,
            ),
            self._search(
                self.land_adapter, "land_property_api",
                profile.company_name, [], report,
            ),
        )
        return dedupe_titles([*by_number, *by_name])

    def _save_planning(self, company_number: str, matches: List[PlanningMatch]) -> int:
        saved = 0
        for match in matches:
            try:
                record = match.candidate.normalize()
                planning_id = self.db.upsert_planning_application(record)
                self.db.link_company_to_planning(
                    company_number, planning_id, match.confidence, match.reason
                )
                saved += 1
            except Exception as e:
                logger.error(
                    f"Error saving planning application "
                    f"{match.candidate.external_id}: {e}"
                )
        return saved

    def _save_properties(
        self, company_number: str, titles: List[LandPropertyTitle]
    ) -> int:
        saved = 0
        for title in titles:
            try:
                title_id = self.db.upsert_property_title(title.normalize())
                self.db.link_company_to_property(
                    company_number,
                    title_id,
                    ownership_type=title.ownership_type,
                    from_dataset=title.dataset,
                    acquired_date=title.date_of_sale,
                )
                saved += 1
            except Exception as e:
                logger.error(f"Error saving property title {title.title_number}: {e}")
        return saved


def _strongest_per_application(matches: List[PlanningMatch]) -> List[PlanningMatch]:
    """Collapse repeat sightings of one application, keeping the best evidence.

    Earlier matches win ties, so company-name evidence beats person evidence
    of the same confidence.
    """
    best: Dict[tuple, PlanningMatch] = {}
    for match in matches:
        key = (match.candidate.source, match.candidate.external_id)
        current = best.get(key)
        if current is None or (
            CONFIDENCE_RANK[match.confidence] > CONFIDENCE_RANK[current.confidence]
        ):
            best[key] = match
    return list(best.values())
