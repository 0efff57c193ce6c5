"""London Planning Datahub client (planningdata.london.gov.uk)."""

import re
from typing import List, Optional, Sequence

import httpx

from prospect_gauntlet.collectors.base import RegistryClient, name_and_postcode_queries
from prospect_gauntlet.collectors.records import (
    LondonDatahubApplication,
    dedupe_by_external_id,
)

LONDON_POSTCODE_PATTERN = re.compile(r"^[A-Z]{1,2}[0-9]{1,2}", re.IGNORECASE)


def is_london_postcode(postcode: str) -> bool:
    """Postcode-prefix test deciding whether the datahub is worth querying."""
    return bool(postcode and LONDON_POSTCODE_PATTERN.match(postcode.strip()))


class LondonDatahubClient(RegistryClient):
    """Searches London planning applications by organisation and postcode."""

    name = "london_datahub"
    endpoint = "/applications"

    def __init__(
        self,
        base_url: str = "https://planningdata.london.gov.uk/api-guest",
        allow_header: str = "be2rmRnt&",
        requests_per_minute: int = 30,
        timeout: float = 30.0,
        result_limit: int = 100,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(
            base_url,
            requests_per_minute=requests_per_minute,
            timeout=timeout,
            headers={"X-API-AllowRequest": allow_header},
            transport=transport,
        )
        self.result_limit = result_limit

    async def search(
        self, term: str, postcodes: Sequence[str] = ()
    ) -> List[LondonDatahubApplication]:
        results = await self._search_queries(
            self.endpoint,
            name_and_postcode_queries(term, postcodes, self.result_limit),
            LondonDatahubApplication.from_api,
        )
        return dedupe_by_external_id(results)
