"""Tests for the pricing and geocoding HTTP clients (mocked with respx)."""

import httpx
import pytest
import respx
from httpx import Response

from ridehail.domain.pricing import PricingEngine
from ridehail.infrastructure.geocoding import GeocodingClient, format_address
from ridehail.infrastructure.pricing_client import PricingClient

PRICING_URL = "http://pricing.test/quote"
GEO_URL = "http://geo.test"


@pytest.fixture
def pricing_client() -> PricingClient:
    return PricingClient(PricingEngine(), url=PRICING_URL, timeout=1.0)


@pytest.fixture
def geocoder() -> GeocodingClient:
    return GeocodingClient(base_url=GEO_URL + "/")


class TestPricingClient:
    @pytest.mark.asyncio
    async def test_remote_quote_used(self, pricing_client):
        async with respx.mock:
            route = respx.post(PRICING_URL).mock(
                return_value=Response(
                    200,
                    json={
                        "price": 21.337,
                        "breakdown": {"base": 4.0, "distance": 15.0, "time": 2.0, "fuel_surcharge": 0.337},
                    },
                )
            )
            quote = await pricing_client.quote(10.0, 20, "Alexanderplatz", "Pankow")

        assert route.called
        sent = route.calls.last.request
        assert b'"distance_km":10.0' in sent.content.replace(b" ", b"")
        assert quote.source == "remote"
        assert quote.price == 21.34
        assert quote.breakdown.fuel_surcharge == 0.337

    @pytest.mark.asyncio
    async def test_server_error_falls_back_to_local(self, pricing_client):
        async with respx.mock:
            respx.post(PRICING_URL).mock(return_value=Response(500))
            quote = await pricing_client.quote(10.0, 20)
        assert quote.source == "local"
        assert quote.price == 18.5

    @pytest.mark.asyncio
    async def test_timeout_falls_back_to_local(self, pricing_client):
        async with respx.mock:
            respx.post(PRICING_URL).mock(side_effect=httpx.ConnectTimeout("slow"))
            quote = await pricing_client.quote(10.0, 20)
        assert quote.source == "local"
        assert quote.price == 18.5

    @pytest.mark.asyncio
    async def test_malformed_body_falls_back_to_local(self, pricing_client):
        async with respx.mock:
            respx.post(PRICING_URL).mock(return_value=Response(200, json={"cost": "lots"}))
            quote = await pricing_client.quote(10.0, 20)
        assert quote.source == "local"

    @pytest.mark.asyncio
    async def test_non_json_body_falls_back_to_local(self, pricing_client):
        async with respx.mock:
            respx.post(PRICING_URL).mock(return_value=Response(200, text="<html>"))
            quote = await pricing_client.quote(10.0, 20)
        assert quote.source == "local"

    @pytest.mark.asyncio
    async def test_no_url_never_calls_out(self):
        client = PricingClient(PricingEngine(), url=None)
        async with respx.mock(assert_all_called=False) as mock:
            quote = await client.quote(10.0, 20)
            assert not mock.calls
        assert quote.price == 18.5


class TestGeocodingClient:
    @pytest.mark.asyncio
    async def test_search_parses_results(self, geocoder):
        async with respx.mock:
            route = respx.get(GEO_URL + "/search").mock(
                return_value=Response(
                    200,
                    json=[
                        {"lat": "52.5219", "lon": "13.4132", "display_name": "Alexanderplatz, Berlin"},
                        {"display_name": "no coordinates"},
                    ],
                )
            )
            results = await geocoder.search("  Alexanderplatz ")

        params = route.calls.last.request.url.params
        assert params["q"] == "Alexanderplatz"
        assert params["format"] == "json"
        assert route.calls.last.request.headers["Accept-Language"] == "de"
        assert len(results) == 1
        assert results[0].latitude == 52.5219
        assert results[0].address == "Alexanderplatz, Berlin"

    @pytest.mark.asyncio
    async def test_malformed_results_are_skipped(self, geocoder):
        async with respx.mock:
            respx.get(GEO_URL + "/search").mock(
                return_value=Response(
                    200,
                    json=[
                        {"lat": "n/a", "lon": "13.4132", "display_name": "broken"},
                        {"lat": None, "lon": "13.4132"},
                        "not an object",
                        {"lat": "52.5163", "lon": "13.3777", "display_name": "Brandenburger Tor"},
                    ],
                )
            )
            results = await geocoder.search("Brandenburger Tor")

        assert [r.address for r in results] == ["Brandenburger Tor"]
        assert results[0].longitude == 13.3777

    @pytest.mark.asyncio
    async def test_short_query_skips_request(self, geocoder):
        async with respx.mock(assert_all_called=False) as mock:
            assert await geocoder.search("ab") == []
            assert not mock.calls

    @pytest.mark.asyncio
    async def test_search_error_returns_empty(self, geocoder):
        async with respx.mock:
            respx.get(GEO_URL + "/search").mock(return_value=Response(503))
            assert await geocoder.search("Alexanderplatz") == []

    @pytest.mark.asyncio
    async def test_reverse_formats_address(self, geocoder):
        async with respx.mock:
            respx.get(GEO_URL + "/reverse").mock(
                return_value=Response(
                    200,
                    json={
                        "display_name": "long name",
                        "address": {"road": "Karl-Marx-Allee", "house_number": "33", "city": "Berlin"},
                    },
                )
            )
            address = await geocoder.reverse(52.52, 13.405)
        assert address == "Karl-Marx-Allee, 33, Berlin"

    @pytest.mark.asyncio
    async def test_reverse_error_returns_coordinates(self, geocoder):
        async with respx.mock:
            respx.get(GEO_URL + "/reverse").mock(side_effect=httpx.ConnectError("down"))
            address = await geocoder.reverse(52.52, 13.405)
        assert address == "52.52000, 13.40500"


def test_format_address_prefers_town_and_falls_back_to_display_name():
    assert format_address({"address": {"town": "Potsdam"}}) == "Potsdam"
    assert format_address({"display_name": "Somewhere"}) == "Somewhere"
    assert format_address({}) == ""
