"""
Unit tests for the tool dispatcher and agents
"""
import asyncio

import pytest

from wayfarer.agents.dispatcher import ToolDispatcher
from wayfarer.agents.packing import choose_band, run_packing_agent
from wayfarer.agents.research import research_queries, run_research_agent
from wayfarer.errors import ProviderHTTPError

from conftest import (
    FailingProvider,
    FakeAttractions,
    FakeCountries,
    FakeFlights,
    FakeSearch,
    FakeWeather,
    quick_resilience,
)


def make_dispatcher(resilience=None, **kw):
    deps = {
        "weather": FakeWeather(),
        "attractions": FakeAttractions(),
        "countries": FakeCountries(),
        "flights": FakeFlights(),
        "search": FakeSearch(),
    }
    deps.update(kw)
    return ToolDispatcher(resilience or quick_resilience(), **deps)


class TestPlanning:
    """Intent -> tool calls"""

    def test_destinations_fans_out(self):
        calls = make_dispatcher().plan("destinations", {"city": "Paris"})
        assert [(c.tool, c.target) for c in calls] == [("weather", "weather"), ("country", "countries")]

    def test_unknown_plans_nothing(self):
        assert make_dispatcher().plan("unknown", {}) == []

    async def test_flights_missing_slots(self):
        d = make_dispatcher()
        results = await d.dispatch("flights", {"originCity": "Boston"})
        assert results[0].ok is False
        assert results[0].reason == "missing_slots"


class TestReasonCodes:
    """Every failure comes back as ok=False with a typed reason"""

    async def test_success_carries_facts_with_latency(self):
        results = await make_dispatcher().dispatch("weather", {"city": "Paris"})
        r = results[0]
        assert r.ok
        assert r.facts[0].source == "Open-Meteo"
        assert r.facts[0].latency_ms == r.latency_ms

    async def test_not_found(self):
        results = await make_dispatcher().dispatch("weather", {"city": "Atlantis"})
        assert results[0].reason == "not_found"

    async def test_http_error(self):
        d = make_dispatcher(weather=FakeWeather(error=ProviderHTTPError(400, "bad request")))
        results = await d.dispatch("weather", {"city": "Paris"})
        assert results[0].reason == "http_error"

    async def test_unexpected_exception(self):
        d = make_dispatcher(weather=FakeWeather(error=KeyError("current")))
        results = await d.dispatch("weather", {"city": "Paris"})
        assert results[0].reason == "exception"

    async def test_empty(self):
        d = make_dispatcher(attractions=FakeAttractions(places=[]))
        results = await d.dispatch("attractions", {"city": "Paris"})
        assert results[0].reason == "empty"

    async def test_circuit_open_fails_fast(self):
        """Once the breaker trips, the provider is no longer called"""
        failing = FailingProvider()
        d = make_dispatcher(resilience=quick_resilience(failure_threshold=3, timeout_s=5.0), weather=failing)
        for _ in range(3):
            (r,) = await d.dispatch("weather", {"city": "Paris"})
            assert r.reason == "network"
        (r,) = await d.dispatch("weather", {"city": "Paris"})
        assert r.reason == "circuit_open"
        assert failing.calls == 3
        assert r.latency_ms < 5000

    async def test_cancelled(self):
        cancel = asyncio.Event()
        cancel.set()
        (r,) = await make_dispatcher().dispatch("weather", {"city": "Paris"}, cancel=cancel)
        assert r.reason == "cancelled"

    async def test_partial_failure(self):
        """Destinations still answers from the tools that worked"""
        d = make_dispatcher()
        d.countries = None
        results = await d.dispatch("destinations", {"city": "Paris"})
        assert [r.ok for r in results] == [True, False]


class TestPackingAgent:
    @pytest.mark.parametrize("hi,lo,band", [(30, 22, "hot"), (15, 8, "mild"), (2, -4, "cold"), (None, None, None)])
    def test_bands(self, hi, lo, band):
        assert choose_band(hi, lo) == band

    def test_rain_items(self):
        out = run_packing_agent(FakeWeather(), "Tokyo", "March")
        assert "rain jacket" in out["items"]
        assert out["band"] == "mild"
        assert {f.key for f in out["facts"]} == {"weather_summary", "packing_items"}


class ManySitesSearch(FakeSearch):
    """Two results per query, one of them always from the same site."""

    def search(self, query, count=5):
        self.queries.append(query)
        slug = query.lower().replace(" ", "-")
        return [
            {"title": f"{query} guide", "url": f"https://{slug}.example.com/guide", "description": "guide"},
            {"title": "Wiki", "url": "https://en.wikipedia.org/wiki/Paris", "description": "encyclopedia"},
        ]


class FlakySearch(FakeSearch):
    def search(self, query, count=5):
        self.queries.append(query)
        if len(self.queries) == 1:
            raise ProviderHTTPError(503, "unavailable")
        return super().search(query, count)


class FailingSearch(FakeSearch):
    def search(self, query, count=5):
        self.queries.append(query)
        raise ProviderHTTPError(503, "unavailable")


class TestResearchAgent:
    def test_queries_deduplicated(self):
        qs = research_queries(
            "family trip to Paris on a budget",
            {"city": "Paris", "month": "March"},
            extra=["Family trip to PARIS on a budget", "cheap family hotels Paris"],
        )
        assert qs == ["family trip to Paris on a budget", "cheap family hotels Paris", "Paris travel guide March"]

    def test_city_appended_when_missing(self):
        qs = research_queries("best neighbourhoods for kids", {"city": "Lisbon"}, limit=2)
        assert qs == ["best neighbourhoods for kids", "best neighbourhoods for kids Lisbon"]

    def test_one_result_per_site(self):
        provider = ManySitesSearch()
        out = run_research_agent(provider, ["paris kids", "paris budget"])
        assert provider.queries == ["paris kids", "paris budget"]
        assert sorted(out["domains"]) == ["en.wikipedia.org", "paris-budget.example.com", "paris-kids.example.com"]
        assert out["query"] == "paris kids"
        assert {f.source for f in out["facts"]} == {"Brave Search"}

    def test_failed_query_tolerated(self):
        out = run_research_agent(FlakySearch(), ["first", "second"])
        assert out["domains"] == ["example.org"]

    def test_all_queries_failing(self):
        with pytest.raises(ProviderHTTPError):
            run_research_agent(FailingSearch(), ["first", "second"])

    async def test_planned_through_dispatcher(self):
        search = FakeSearch()
        d = make_dispatcher(search=search)
        (r,) = await d.dispatch("deep_research", {"city": "Paris"}, query="family trip to Paris")
        assert r.ok and r.tool == "research"
        assert search.queries == ["family trip to Paris", "Paris travel guide"]
