"""
Shared fixtures: in-process fakes for every external collaborator.
"""
from collections import deque
from typing import Any, Dict, List, Optional

import pytest

from wayfarer.assistant import build_assistant
from wayfarer.config import Settings
from wayfarer.errors import ToolError, UnknownLocationError
from wayfarer.memory.slot_memory import SlotMemory
from wayfarer.memory.store import InMemoryStore
from wayfarer.providers.base import (
    AttractionsProvider,
    CountryProvider,
    FlightsProvider,
    SearchProvider,
    WeatherProvider,
)
from wayfarer.resilience import PRESETS, Resilience, TargetConfig

FORECASTS = {
    "paris": {"city": "Paris", "country": "France", "country_code": "FR",
              "current_c": 14, "max_c": 17, "min_c": 9, "precip_chance": 40},
    "tokyo": {"city": "Tokyo", "country": "Japan", "country_code": "JP",
              "current_c": 11, "max_c": 14, "min_c": 6, "precip_chance": 60},
    "dubai": {"city": "Dubai", "country": "United Arab Emirates", "country_code": "AE",
              "current_c": 33, "max_c": 36, "min_c": 27, "precip_chance": 0},
    "oslo": {"city": "Oslo", "country": "Norway", "country_code": "NO",
             "current_c": -2, "max_c": 1, "min_c": -6, "precip_chance": 20},
    "zürich": {"city": "Zürich", "country": "Switzerland", "country_code": "CH",
               "current_c": 8, "max_c": 11, "min_c": 3, "precip_chance": 55},
}


class FakeWeather(WeatherProvider):
    source = "Open-Meteo"

    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.calls: List[str] = []

    def geocode(self, city: str) -> Dict[str, Any]:
        wx = FORECASTS.get(city.lower())
        if wx is None:
            raise UnknownLocationError("city", city)
        return {"name": wx["city"], "country": wx["country"], "country_code": wx["country_code"]}

    def forecast(self, city: str) -> Dict[str, Any]:
        self.calls.append(city)
        if self.error is not None:
            raise self.error
        wx = FORECASTS.get(city.lower())
        if wx is None:
            raise UnknownLocationError("city", city)
        return dict(wx, url=f"https://open-meteo.com/?q={wx['city']}")


class FakeAttractions(AttractionsProvider):
    source = "OpenTripMap"

    def __init__(self, places: Optional[List[dict]] = None):
        self.places = places if places is not None else [
            {"name": "Louvre", "kinds": "museums", "rate": 7, "url": "https://example.org/louvre"},
            {"name": "Eiffel Tower", "kinds": "towers", "rate": 7, "url": "https://example.org/eiffel"},
        ]

    def search_attractions(self, city: str, limit: int = 5) -> List[dict]:
        return self.places[:limit]


class FakeCountries(CountryProvider):
    source = "REST Countries"

    def country_facts(self, name: str) -> Dict[str, Any]:
        return {
            "country": "France" if name in ("FR", "France") else name,
            "code": "FR",
            "capital": "Paris",
            "region": "Europe",
            "currencies": ["Euro"],
            "languages": ["French"],
            "population": 67000000,
            "url": "https://restcountries.com/v3.1/name/France",
        }


class FakeFlights(FlightsProvider):
    source = "Amadeus"

    def __init__(self, offers: Optional[List[dict]] = None):
        self.offers = offers if offers is not None else [
            {"flight_no": "AF123", "airline": "AF", "price": "412.50", "currency": "USD",
             "depart": "2026-11-02T08:10"},
        ]

    def search_flights(self, origin: str, destination: str, date_iso: str, adults: int = 1) -> List[dict]:
        return list(self.offers)


class FakeSearch(SearchProvider):
    source = "Brave Search"

    def __init__(self):
        self.queries: List[str] = []

    def search(self, query: str, count: int = 5) -> List[dict]:
        self.queries.append(query)
        return [
            {"title": "Airlines serving Paris", "url": "https://example.org/cdg",
             "description": "Air France, Delta and others fly into CDG."},
        ]


class FailingProvider(WeatherProvider):
    """Weather provider that always fails with a retryable error."""

    source = "Open-Meteo"

    def __init__(self, reason: str = "network"):
        self.reason = reason
        self.calls = 0

    def forecast(self, city: str) -> Dict[str, Any]:
        self.calls += 1
        raise ToolError(self.reason, "boom")


class ScriptedLLM:
    """
    Stand-in for LLMClient. Replies are popped from per-format queues;
    once a queue is empty the deterministic stub answer is returned.
    """

    def __init__(self, available: bool = True, json_replies=(), text_replies=(), json_when=None):
        self._available = available
        # marker found in the system or user prompt -> reply, checked before the queue
        self.json_when = dict(json_when or {})
        self.json_replies = deque(json_replies)
        self.text_replies = deque(text_replies)
        self.prompts: List[Dict[str, Any]] = []

    @property
    def available(self) -> bool:
        return self._available

    async def call(self, prompt: str, response_format: str = "text", system: Optional[str] = None) -> str:
        self.prompts.append({"prompt": prompt, "format": response_format, "system": system})
        if response_format == "json":
            for marker, reply in self.json_when.items():
                if marker in f"{system or ''}\n{prompt}":
                    return reply
            return self.json_replies.popleft() if self.json_replies else "{}"
        return self.text_replies.popleft() if self.text_replies else ""


def quick_resilience(**overrides) -> Resilience:
    cfg = dict(max_attempts=1, min_interval_s=0.0, initial_delay_s=0.0, timeout_s=2.0)
    cfg.update(overrides)
    # presets would otherwise reintroduce real spacing between calls
    return Resilience(defaults=TargetConfig(**cfg), overrides={t: cfg for t in PRESETS}, use_env=False)


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        openai_api_key=None,
        auto_verify_replies=False,
        session_store="memory",
        verify_poll_attempts=2,
        verify_poll_delay_s=0.0,
    )


@pytest.fixture
def store():
    return InMemoryStore(ttl_s=3600, max_messages=16)


@pytest.fixture
def memory(store):
    return SlotMemory(store)


@pytest.fixture
def llm():
    return ScriptedLLM(available=False)


@pytest.fixture
def resilience():
    return quick_resilience()


@pytest.fixture
def fakes():
    return {
        "weather": FakeWeather(),
        "attractions": FakeAttractions(),
        "countries": FakeCountries(),
        "flights": FakeFlights(),
        "search": FakeSearch(),
    }


@pytest.fixture
def assistant(settings, store, resilience, llm, fakes):
    return build_assistant(settings=settings, store=store, resilience=resilience, llm=llm, **fakes)
