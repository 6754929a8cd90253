import functools

import httpx
import pytest

from app import geocoding
from app.distance import Coordinates
from app.geocoding import PROVINCES, ProvinceLocator, lookup_province


def use_transport(monkeypatch, handler):
    """ProvinceLocator が作る AsyncClient をモックトランスポートに向ける"""
    calls = []

    def record(request):
        calls.append(request)
        return handler(request)

    client_class = functools.partial(httpx.AsyncClient, transport=httpx.MockTransport(record))
    monkeypatch.setattr(geocoding.httpx, "AsyncClient", client_class)
    return calls


class TestLookupProvince:
    def test_case_insensitive(self):
        assert lookup_province("  chiang mai ") == PROVINCES["Chiang Mai"]

    def test_thai_alias(self):
        assert lookup_province("กรุงเทพมหานคร") == PROVINCES["Bangkok"]

    @pytest.mark.parametrize("name", ["Atlantis", "", None])
    def test_unknown(self, name):
        assert lookup_province(name) is None


class TestProvinceLocator:
    async def test_configured_warehouse_coordinates(self):
        locator = ProvinceLocator(warehouse=Coordinates(1.0, 2.0))
        assert await locator.locate_origin(None) == Coordinates(1.0, 2.0)

    async def test_explicit_origin_beats_warehouse(self):
        locator = ProvinceLocator(warehouse=Coordinates(1.0, 2.0))
        assert await locator.locate_origin("Phuket") == PROVINCES["Phuket"]

    async def test_warehouse_province(self):
        locator = ProvinceLocator(warehouse_province="Khon Kaen")
        assert await locator.locate_origin("") == PROVINCES["Khon Kaen"]

    async def test_unknown_without_geocoder(self, monkeypatch):
        calls = use_transport(monkeypatch, lambda request: httpx.Response(500))
        locator = ProvinceLocator()

        assert await locator.locate("Atlantis") is None
        assert calls == []

    async def test_geocoder_result_is_cached(self, monkeypatch):
        calls = use_transport(
            monkeypatch,
            lambda request: httpx.Response(200, json=[{"lat": "15.5", "lon": "101.25"}]),
        )
        locator = ProvinceLocator(geocoding_enabled=True, geocoder_url="https://geo.test/search")

        assert await locator.locate("Nowhere") == Coordinates(15.5, 101.25)
        assert await locator.locate("nowhere") == Coordinates(15.5, 101.25)
        assert len(calls) == 1
        assert calls[0].url.params["q"] == "Nowhere, Thailand"

    async def test_geocoder_failure_is_cached(self, monkeypatch):
        calls = use_transport(monkeypatch, lambda request: httpx.Response(503))
        locator = ProvinceLocator(geocoding_enabled=True, geocoder_url="https://geo.test/search")

        assert await locator.locate("Nowhere") is None
        assert await locator.locate("Nowhere") is None
        assert len(calls) == 1

    async def test_geocoder_empty_result(self, monkeypatch):
        use_transport(monkeypatch, lambda request: httpx.Response(200, json=[]))
        locator = ProvinceLocator(geocoding_enabled=True, geocoder_url="https://geo.test/search")

        assert await locator.locate("Nowhere") is None
