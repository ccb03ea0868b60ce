"""
Provider adapters against canned HTTP / SDK responses
"""
from types import SimpleNamespace

import pytest
import requests

from wayfarer.errors import ProviderHTTPError, ToolError, UnknownLocationError
from wayfarer.providers.amadeus_flights import AmadeusFlightsProvider
from wayfarer.providers.brave_search import BraveSearchProvider
from wayfarer.providers.open_meteo import OpenMeteoProvider
from wayfarer.providers.opentripmap import OpenTripMapProvider
from wayfarer.providers.rest_countries import RestCountriesProvider
from wayfarer.utils.country import country_name


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload
        self.text = str(payload)

    def json(self):
        return self._payload


class FakeSession:
    """Maps a URL substring to a response (or exception)."""

    def __init__(self, routes):
        self.routes = routes
        self.requests = []

    def get(self, url, params=None, headers=None, timeout=None):
        self.requests.append({"url": url, "params": params, "headers": headers})
        for fragment, resp in self.routes.items():
            if fragment in url:
                if isinstance(resp, Exception):
                    raise resp
                return resp
        return FakeResponse(404)


GEO_PARIS = {"results": [{"name": "Paris", "country": "France", "country_code": "FR",
                          "latitude": 48.85, "longitude": 2.35}]}


class TestHttpErrors:
    def test_timeout(self):
        p = OpenMeteoProvider(session=FakeSession({"geocoding": requests.Timeout("slow")}))
        with pytest.raises(ToolError) as exc:
            p.forecast("Paris")
        assert exc.value.reason == "timeout"

    def test_network(self):
        p = OpenMeteoProvider(session=FakeSession({"geocoding": requests.ConnectionError("down")}))
        with pytest.raises(ToolError) as exc:
            p.forecast("Paris")
        assert exc.value.reason == "network"

    def test_server_error(self):
        p = OpenMeteoProvider(session=FakeSession({"geocoding": FakeResponse(503, {})}))
        with pytest.raises(ProviderHTTPError) as exc:
            p.forecast("Paris")
        assert exc.value.status == 503


class TestOpenMeteo:
    def test_forecast_summary(self):
        session = FakeSession({
            "geocoding": FakeResponse(200, GEO_PARIS),
            "/v1/forecast": FakeResponse(200, {
                "current": {"temperature_2m": 12.3},
                "daily": {
                    "temperature_2m_max": [16, 18, None],
                    "temperature_2m_min": [8, 10, None],
                    "precipitation_probability_max": [20, 70, None],
                },
            }),
        })
        wx = OpenMeteoProvider(session=session).forecast("Paris")
        assert wx["city"] == "Paris"
        assert wx["current_c"] == 12.3
        assert wx["max_c"] == 17.0
        assert wx["min_c"] == 9.0
        assert wx["precip_chance"] == 70

    def test_unknown_city(self):
        p = OpenMeteoProvider(session=FakeSession({"geocoding": FakeResponse(200, {})}))
        with pytest.raises(UnknownLocationError):
            p.geocode("Atlantis")


class TestKeyedProviders:
    def test_opentripmap_without_key(self):
        with pytest.raises(ToolError) as exc:
            OpenTripMapProvider().search_attractions("Paris")
        assert exc.value.reason == "not_configured"

    def test_opentripmap_dedupes(self):
        p = OpenTripMapProvider(api_key="k")
        p.session = FakeSession({
            "/places/geoname": FakeResponse(200, {"lat": 48.8, "lon": 2.3}),
            "/places/radius": FakeResponse(200, [
                {"name": "Louvre", "kinds": "museums,cultural", "rate": 7, "xid": "N1"},
                {"name": "louvre", "kinds": "museums", "rate": 7, "xid": "N2"},
                {"name": "", "xid": "N3"},
                {"name": "Pantheon", "kinds": "architecture", "rate": 6},
            ]),
        })
        out = p.search_attractions("Paris")
        assert [x["name"] for x in out] == ["Louvre", "Pantheon"]
        assert out[0]["url"].endswith("/N1")

    def test_brave_strips_markup(self):
        p = BraveSearchProvider(api_key="k")
        p.session = FakeSession({"/web/search": FakeResponse(200, {"web": {"results": [
            {"title": "<strong>Airlines</strong> to Paris", "url": "https://x.org", "description": "CDG <b>hub</b>"},
            {"title": "no url"},
        ]}})})
        out = p.search("airlines to Paris")
        assert out == [{"title": "Airlines to Paris", "url": "https://x.org", "description": "CDG hub"}]
        assert p.session.requests[0]["headers"]["X-Subscription-Token"] == "k"


class TestRestCountries:
    def test_iso_code_resolved(self):
        session = FakeSession({"/name/France": FakeResponse(200, [{
            "name": {"common": "France"},
            "capital": ["Paris"],
            "currencies": {"EUR": {"name": "Euro"}},
            "languages": {"fra": "French"},
            "region": "Europe",
            "population": 67000000,
            "cca2": "FR",
        }])})
        facts = RestCountriesProvider(session=session).country_facts("FR")
        assert facts["country"] == "France"
        assert facts["currencies"] == ["Euro"]

    def test_not_found(self):
        with pytest.raises(UnknownLocationError):
            RestCountriesProvider(session=FakeSession({})).country_facts("Narnia")

    def test_country_name(self):
        assert country_name("IN") == "India"
        assert country_name("fra") == "France"
        assert country_name("") is None


class FakeAmadeus:
    def __init__(self, locations, offers):
        self.location_calls = []
        self.reference_data = SimpleNamespace(locations=SimpleNamespace(get=self._locations))
        self.shopping = SimpleNamespace(flight_offers_search=SimpleNamespace(get=self._offers))
        self._loc = locations
        self._off = offers

    def _locations(self, keyword, subType):
        self.location_calls.append(keyword)
        return SimpleNamespace(data=self._loc.get(keyword, []))

    def _offers(self, **kw):
        self.offer_args = kw
        return SimpleNamespace(data=self._off)


class TestAmadeus:
    def test_not_configured(self):
        with pytest.raises(ToolError) as exc:
            AmadeusFlightsProvider().search_flights("Boston", "Chicago", "2026-11-02")
        assert exc.value.reason == "not_configured"

    def test_offers_sorted_by_price(self):
        p = AmadeusFlightsProvider()
        p.client = FakeAmadeus(
            locations={
                "Boston": [{"iataCode": "BOS", "subType": "AIRPORT", "name": "LOGAN"},
                           {"iataCode": "BOS", "subType": "CITY", "name": "BOSTON"}],
                "Chicago": [{"iataCode": "CHI", "subType": "CITY", "name": "CHICAGO"}],
            },
            offers=[
                {"price": {"grandTotal": "310.00"}, "itineraries": [{"segments": [
                    {"carrierCode": "UA", "number": "12", "departure": {"at": "T1"}, "arrival": {"at": "T2"}},
                    {"carrierCode": "UA", "number": "99", "departure": {"at": "T3"}, "arrival": {"at": "T4"}},
                ]}]},
                {"price": {"grandTotal": "180.50"}, "itineraries": [{"segments": [
                    {"carrierCode": "AA", "number": "7", "departure": {"at": "T5"}, "arrival": {"at": "T6"}},
                ]}]},
                {"price": {}},
            ],
        )
        out = p.search_flights("Boston", "Chicago", "2026-11-02", adults=2)
        assert [o["flight_no"] for o in out] == ["AA7", "UA12"]
        assert out[1]["stops"] == 1
        assert out[1]["arrive"] == "T4"
        assert p.client.offer_args["adults"] == 2
        assert p.client.offer_args["originLocationCode"] == "BOS"

    def test_iata_passthrough_and_cache(self):
        p = AmadeusFlightsProvider()
        p.client = FakeAmadeus(locations={"Delhi": [{"iataCode": "DEL", "subType": "CITY", "name": "DELHI"}]}, offers=[])
        assert p.resolve_to_iata("JFK", "originCity") == "JFK"
        assert p.resolve_to_iata("Delhi", "originCity") == "DEL"
        assert p.resolve_to_iata("delhi ", "originCity") == "DEL"
        assert p.client.location_calls == ["Delhi"]

    def test_unknown_place(self):
        p = AmadeusFlightsProvider()
        p.client = FakeAmadeus(locations={}, offers=[])
        with pytest.raises(UnknownLocationError):
            p.resolve_to_iata("Atlantis", "destinationCity")
        assert p.client.location_calls == ["Atlantis", "Atl"]
