"""
Registry adapter tests against httpx.MockTransport.
"""

import httpx
import pytest

from prospect_gauntlet.collectors.land_property_client import LandPropertyClient
from prospect_gauntlet.collectors.london_datahub_client import (
    LondonDatahubClient,
    is_london_postcode,
)
from prospect_gauntlet.collectors.planning_data_client import PlanningDataClient
from prospect_gauntlet.errors import (
    MalformedResponseError,
    RegistryError,
    RegistryTimeoutError,
)
from prospect_gauntlet.storage.models import PlanningSource, PropertyDataset

FAST = 60000  # requests per minute; keeps throttling out of the way


def planning_client(handler, **kwargs):
    return PlanningDataClient(
        base_url="https://planning.test",
        requests_per_minute=FAST,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


def land_client(handler, api_key="secret"):
    return LandPropertyClient(
        base_url="https://land.test",
        api_key=api_key,
        requests_per_minute=FAST,
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.unit
class TestPlanningDataClient:
    """Test the national planning register adapter."""

    @pytest.mark.asyncio
    async def test_searches_name_then_each_postcode(self):
        seen = []

        def handler(request):
            seen.append(dict(request.url.params))
            return httpx.Response(200, json={"results": [{"reference": "APP/1"}]})

        client = planning_client(handler, result_limit=10)
        results = await client.search("Acme Developments Ltd", ["SW1A 1AA", "m1 1ae"])

        assert seen == [
            {"applicant_organisation": "Acme Developments Ltd", "limit": "10"},
            {"postcode": "SW1A1AA", "limit": "10"},
            {"postcode": "M11AE", "limit": "10"},
        ]
        # Same application from every query collapses to one
        assert [r.external_id for r in results] == ["APP/1"]
        assert results[0].source == PlanningSource.PLANNING_DATA_API

    @pytest.mark.asyncio
    async def test_plain_list_payload(self):
        def handler(request):
            return httpx.Response(200, json=[{"reference": "A"}, {"reference": "B"}, "junk"])

        results = await planning_client(handler).search("Acme")

        assert [r.external_id for r in results] == ["A", "B"]

    @pytest.mark.asyncio
    async def test_partial_failure_keeps_other_results(self):
        def handler(request):
            if "postcode" in request.url.params:
                return httpx.Response(500, text="server error")
            return httpx.Response(200, json={"results": [{"reference": "APP/9"}]})

        results = await planning_client(handler).search("Acme", ["E1 6AN"])

        assert [r.external_id for r in results] == ["APP/9"]

    @pytest.mark.asyncio
    async def test_all_queries_failing_raises(self):
        def handler(request):
            return httpx.Response(503, text="unavailable")

        with pytest.raises(RegistryError) as exc_info:
            await planning_client(handler).search("Acme", ["E1 6AN"])

        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_not_found_is_empty(self):
        def handler(request):
            return httpx.Response(404)

        assert await planning_client(handler).search("Acme") == []

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(RegistryTimeoutError):
            await planning_client(handler).search("Acme")

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        def handler(request):
            return httpx.Response(200, text="<html>not json</html>")

        with pytest.raises(MalformedResponseError):
            await planning_client(handler).search("Acme")

    @pytest.mark.asyncio
    async def test_unexpected_shape(self):
        def handler(request):
            return httpx.Response(200, json={"count": 3})

        with pytest.raises(MalformedResponseError):
            await planning_client(handler).search("Acme")

    @pytest.mark.asyncio
    async def test_nothing_to_search(self):
        def handler(request):
            raise AssertionError("no request expected")

        assert await planning_client(handler).search("  ", []) == []


@pytest.mark.unit
class TestLondonDatahubClient:
    """Test the London datahub adapter."""

    @pytest.mark.asyncio
    async def test_sends_allow_header(self):
        headers = []

        def handler(request):
            headers.append(request.headers.get("X-API-AllowRequest"))
            assert request.url.path == "/api-guest/applications"
            return httpx.Response(200, json={"data": [{"application_number": "2026/0001"}]})

        client = LondonDatahubClient(
            base_url="https://london.test/api-guest",
            allow_header="token",
            requests_per_minute=FAST,
            transport=httpx.MockTransport(handler),
        )
        results = await client.search("Acme")

        assert headers == ["token"]
        assert results[0].external_id == "2026/0001"
        assert results[0].source == PlanningSource.LONDON_DATAHUB

    @pytest.mark.parametrize("postcode,expected", [
        ("SW1A 1AA", True),
        ("e1 6an", True),
        ("N1 9GU", True),
        ("", False),
        ("1234", False),
    ])
    def test_postcode_gate(self, postcode, expected):
        assert is_london_postcode(postcode) is expected


@pytest.mark.unit
class TestLandPropertyClient:
    """Test the land registry ownership adapter."""

    @pytest.mark.asyncio
    async def test_searches_both_datasets(self):
        seen = []

        def handler(request):
            seen.append((request.url.path, request.headers.get("Authorization"),
                         request.url.params.get("company_name")))
            code = request.url.path.split("/")[4]
            return httpx.Response(200, json={"result": [{"title_number": f"{code}-1"}]})

        titles = await land_client(handler).search("01234567")

        assert seen == [
            ("/api/v1/datasets/ccod/search", "secret", "01234567"),
            ("/api/v1/datasets/ocod/search", "secret", "01234567"),
        ]
        assert [(t.title_number, t.dataset) for t in titles] == [
            ("ccod-1", PropertyDataset.UK_COMPANIES),
            ("ocod-1", PropertyDataset.OVERSEAS_COMPANIES),
        ]

    @pytest.mark.asyncio
    async def test_missing_api_key(self):
        def handler(request):
            raise AssertionError("no request expected")

        with pytest.raises(RegistryError):
            await land_client(handler, api_key=None).search("Acme")

    @pytest.mark.asyncio
    async def test_licence_error_status_is_empty(self):
        def handler(request):
            return httpx.Response(403, text="You must accept the dataset licence first")

        assert await land_client(handler).search("Acme") == []

    @pytest.mark.asyncio
    async def test_licence_error_payload_is_empty(self):
        def handler(request):
            return httpx.Response(200, json={"error": "Licence not accepted"})

        assert await land_client(handler).search("Acme") == []

    @pytest.mark.asyncio
    async def test_other_payload_error_raises(self):
        def handler(request):
            return httpx.Response(200, json={"error": "rate limited"})

        with pytest.raises(RegistryError):
            await land_client(handler).search("Acme")

    @pytest.mark.asyncio
    async def test_one_dataset_failing_keeps_the_other(self):
        def handler(request):
            if "/ocod/" in request.url.path:
                return httpx.Response(500, text="server error")
            return httpx.Response(200, json={"result": [{"title_number": "NGL1"}]})

        titles = await land_client(handler).search("Acme")

        assert [t.title_number for t in titles] == ["NGL1"]
        assert titles[0].dataset == PropertyDataset.UK_COMPANIES

    @pytest.mark.asyncio
    async def test_first_dataset_failing_still_queries_second(self):
        paths = []

        def handler(request):
            paths.append(request.url.path)
            if "/ccod/" in request.url.path:
                return httpx.Response(502, text="bad gateway")
            return httpx.Response(200, json={"result": [{"title_number": "OV1"}]})

        titles = await land_client(handler).search("Acme")

        assert len(paths) == 2
        assert [(t.title_number, t.dataset) for t in titles] == [
            ("OV1", PropertyDataset.OVERSEAS_COMPANIES),
        ]

    @pytest.mark.asyncio
    async def test_both_datasets_failing_raises(self):
        def handler(request):
            return httpx.Response(500, text="server error")

        with pytest.raises(RegistryError) as exc_info:
            await land_client(handler).search("Acme")

        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_blank_term(self):
        def handler(request):
            raise AssertionError("no request expected")

        assert await land_client(handler).search(" ") == []
