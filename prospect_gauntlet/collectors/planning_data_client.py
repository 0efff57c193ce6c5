"""planning.data.gov.uk client (national planning register for England)."""

from typing import List, Optional, Sequence

import httpx

from prospect_gauntlet.collectors.base import RegistryClient, name_and_postcode_queries
from prospect_gauntlet.collectors.records import (
    PlanningDataApplication,
    dedupe_by_external_id,
)


class PlanningDataClient(RegistryClient):
    """Searches planning applications by applicant organisation and postcode."""

    name = "planning_data_api"
    endpoint = "/api/applications"

    def __init__(
        self,
        base_url: str = "https://www.planning.data.gov.uk",
        requests_per_minute: int = 30,
        timeout: float = 30.0,
        result_limit: int = 100,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(
            base_url,
            requests_per_minute=requests_per_minute,
            timeout=timeout,
            transport=transport,
        )
        self.result_limit = result_limit

    async def search(
        self, term: str, postcodes: Sequence[str] = ()
    ) -> List[PlanningDataApplication]:
        """Search by organisation name and each postcode, deduplicated."""
        results = await self._search_queries(
            self.endpoint,
            name_and_postcode_queries(term, postcodes, self.result_limit),
            PlanningDataApplication.from_api,
        )
        return dedupe_by_external_id(results)
