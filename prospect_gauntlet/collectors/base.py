"""Shared async HTTP plumbing for registry adapters."""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence

import httpx

from prospect_gauntlet.errors import (
    MalformedResponseError,
    RegistryError,
    RegistryTimeoutError,
)

logger = logging.getLogger(__name__)


class RegistryClient:
    """Async JSON client with per-client rate limiting.

    Every call is a single attempt. Timeouts, transport errors and unexpected
    status codes raise RegistryError so the caller can count the adapter as
    failed for this run.
    """

    name = "registry"

    def __init__(
        self,
        base_url: str,
        requests_per_minute: int = 30,
        timeout: float = 30.0,
        headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize registry client.

        Args:
            base_url: Base URL for API
            requests_per_minute: Upper bound on request rate
            timeout: Request timeout in seconds
            headers: Extra headers sent with every request
            transport: Optional httpx transport (tests pass a MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.rate_limit_seconds = 60.0 / requests_per_minute
        self.timeout = timeout
        self.headers = {"Accept": "application/json", **(headers or {})}
        self.transport = transport
        self._semaphore = asyncio.Semaphore(1)  # One request at a time
        self._last_request_time: Optional[float] = None

    async def _throttle(self):
        """Enforce rate limiting between requests."""
        async with self._semaphore:
            loop = asyncio.get_running_loop()
            if self._last_request_time is not None:
                elapsed = loop.time() - self._last_request_time
                if elapsed < self.rate_limit_seconds:
                    await asyncio.sleep(self.rate_limit_seconds - elapsed)
            self._last_request_time = loop.time()

    async def _get_json(
        self,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Optional[Any]:
        """GET an endpoint and decode its JSON body.

        Returns:
            Decoded JSON, or None on 404
        """
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        await self._throttle()

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self.transport
            ) as client:
                response = await client.get(
                    url, params=params, headers={**self.headers, **(headers or {})}
                )
        except httpx.TimeoutException as e:
            raise RegistryTimeoutError(self.name, f"Timeout at {endpoint}") from e
        except httpx.HTTPError as e:
            raise RegistryError(self.name, f"Error at {endpoint}: {e}") from e

        if response.status_code == 404:
            logger.warning(f"{self.name}: 404 at {endpoint}")
            return None

        if response.status_code != 200:
            raise RegistryError(
                self.name,
                f"HTTP {response.status_code} at {endpoint}: {response.text[:200]}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise MalformedResponseError(
                self.name, f"Invalid JSON at {endpoint}"
            ) from e

    def _as_list(self, payload: Any, endpoint: str) -> list:
        """Coerce a search response into a list of result objects."""
        if payload is None:
            return []
        if isinstance(payload, dict):
            for key in ("results", "result", "data", "entities"):
                if isinstance(payload.get(key), list):
                    payload = payload[key]
                    break
        if not isinstance(payload, list):
            raise MalformedResponseError(
                self.name, f"Expected a list of results at {endpoint}"
            )
        return [item for item in payload if isinstance(item, dict)]

    async def _search_queries(
        self,
        endpoint: str,
        queries: List[Dict[str, Any]],
        parse: Callable[[Dict[str, Any]], Any],
    ) -> list:
        """Run several queries against one endpoint and parse every result.

        A failing query is logged and skipped; the call only fails when
        every query failed.
        """
        results = []
        failures: List[RegistryError] = []
        for params in queries:
            try:
                payload = await self._get_json(endpoint, params=params)
                results.extend(parse(item) for item in self._as_list(payload, endpoint))
            except RegistryError as e:
                logger.error(f"{self.name}: query {params} failed: {e}")
                failures.append(e)

        if queries and len(failures) == len(queries):
            raise failures[0]
        return results


def normalize_postcode_param(postcode: str) -> str:
    """Postcode as registries expect it in a query: no spaces, upper case."""
    return "".join(postcode.split()).upper()


def name_and_postcode_queries(
    term: str, postcodes: Sequence[str], limit: int
) -> List[Dict[str, Any]]:
    """Applicant-organisation query followed by one query per postcode."""
    queries = []
    if term and term.strip():
        queries.append({"applicant_organisation": term.strip(), "limit": limit})
    for postcode in postcodes:
        if postcode and postcode.strip():
            queries.append(
                {"postcode": normalize_postcode_param(postcode), "limit": limit}
            )
    return queries
