"""HM Land Registry "Use land and property data" client.

Searches the UK companies (CCOD) and overseas companies (OCOD) ownership
datasets. Searches only work once the dataset licence has been accepted in
the Land Registry portal; until then the API answers with a licence error,
which is logged and treated as no results.
"""

import logging
from typing import List, Optional, Sequence

import httpx

from prospect_gauntlet.collectors.base import RegistryClient
from prospect_gauntlet.collectors.records import LandPropertyTitle
from prospect_gauntlet.errors import RegistryError
from prospect_gauntlet.storage.models import PropertyDataset

logger = logging.getLogger(__name__)

DATASET_CODES = {
    PropertyDataset.UK_COMPANIES: "ccod",
    PropertyDataset.OVERSEAS_COMPANIES: "ocod",
}


def _is_licence_error(text: str) -> bool:
    text = text.lower()
    return "licence" in text or "license" in text


class LandPropertyClient(RegistryClient):
    """Looks up titles owned by a company, by company number or name."""

    name = "land_property_api"

    def __init__(
        self,
        base_url: str = "https://use-land-property-data.service.gov.uk",
        api_key: Optional[str] = None,
        requests_per_minute: int = 60,
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
        self.api_key = api_key
        self.result_limit = result_limit

    async def search(
        self, term: str, postcodes: Sequence[str] = ()
    ) -> List[LandPropertyTitle]:
        """Titles matching a company name or number across both datasets.

        Postcodes are accepted for interface parity and not used; the
        datasets are keyed by proprietor only.
        """
        if not self.api_key:
            raise RegistryError(
                self.name, "LAND_PROPERTY_API_KEY environment variable is not set"
            )
        if not term or not term.strip():
            return []

        titles: List[LandPropertyTitle] = []
        failures: List[RegistryError] = []
        for dataset, code in DATASET_CODES.items():
            try:
                titles.extend(await self._search_dataset(dataset, code, term.strip()))
            except RegistryError as e:
                logger.error(f"{self.name}: {code} search for {term!r} failed: {e}")
                failures.append(e)

        if len(failures) == len(DATASET_CODES):
            raise failures[0]
        return titles

    async def _search_dataset(
        self, dataset: PropertyDataset, code: str, term: str
    ) -> List[LandPropertyTitle]:
        endpoint = f"/api/v1/datasets/{code}/search"
        try:
            payload = await self._get_json(
                endpoint,
                params={"company_name": term, "limit": self.result_limit},
                headers={"Authorization": self.api_key},
            )
        except RegistryError as e:
            if _is_licence_error(str(e)):
                logger.warning(
                    f"{self.name}: {code} licence not yet accepted, skipping"
                )
                return []
            raise

        if isinstance(payload, dict) and payload.get("error"):
            if _is_licence_error(str(payload["error"])):
                logger.warning(
                    f"{self.name}: {code} licence not yet accepted, skipping"
                )
                return []
            raise RegistryError(self.name, f"{code} search failed: {payload['error']}")

        return [
            LandPropertyTitle.from_api(item, dataset)
            for item in self._as_list(payload, endpoint)
        ]
