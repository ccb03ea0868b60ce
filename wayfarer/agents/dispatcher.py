"""
Tool dispatcher: turns an intent plus merged slots into tool calls and runs
each one through the shared Resilience registry. Never raises for tool
failures; every outcome comes back as a ToolResult.
"""
import asyncio
import functools
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from wayfarer.agents.attractions import run_attractions_agent
from wayfarer.agents.destinations import run_destination_agent
from wayfarer.agents.flights import run_flights_agent
from wayfarer.agents.packing import run_packing_agent
from wayfarer.agents.research import research_queries, run_research_agent
from wayfarer.agents.search import run_search_agent
from wayfarer.agents.weather import run_weather_agent
from wayfarer.compose.receipts import Fact
from wayfarer.errors import CancelledByCaller, CircuitOpenError, ExternalTimeoutError, ToolError
from wayfarer.resilience import Resilience

log = logging.getLogger(__name__)


@dataclass
class ToolCall:
    tool: str
    target: str
    fn: Callable[[], dict] = field(repr=False)


@dataclass
class ToolResult:
    tool: str
    ok: bool
    data: Dict[str, Any] = field(default_factory=dict)
    facts: List[Fact] = field(default_factory=list)
    reason: Optional[str] = None
    latency_ms: int = 0


def _missing(tool: str, *names: str) -> ToolCall:
    def fail():
        raise ToolError("missing_slots", ", ".join(names))
    return ToolCall(tool, "none", fail)


class ToolDispatcher:
    def __init__(
        self, resilience: Resilience, weather, attractions, countries, flights, search, max_research_queries: int = 4
    ):
        self.resilience = resilience
        self.weather = weather
        self.attractions = attractions
        self.countries = countries
        self.flights = flights
        self.search = search
        self.max_research_queries = max_research_queries

    def plan(
        self, intent: str, slots: Dict[str, Any], query: str = "", extra_queries: Sequence[str] = ()
    ) -> List[ToolCall]:
        city = slots.get("city") or slots.get("destinationCity") or slots.get("originCity")
        when = slots.get("dates") or slots.get("month")
        p = functools.partial

        if intent == "weather":
            return [ToolCall("weather", "weather", p(run_weather_agent, self.weather, city))]
        if intent == "packing":
            return [ToolCall("packing", "weather", p(run_packing_agent, self.weather, city, when))]
        if intent == "attractions":
            return [ToolCall("attractions", "attractions", p(run_attractions_agent, self.attractions, city))]
        if intent == "destinations":
            return [
                ToolCall("weather", "weather", p(run_weather_agent, self.weather, city)),
                ToolCall(
                    "country", "countries",
                    p(run_destination_agent, self.weather, self.countries, city, slots.get("country")),
                ),
            ]
        if intent == "flights":
            origin, dest = slots.get("originCity"), slots.get("destinationCity")
            date = slots.get("departureDate")
            if not (origin and dest and date):
                return [_missing("flights", "originCity", "destinationCity", "departureDate")]
            adults = int(slots["passengers"]) if str(slots.get("passengers", "")).isdigit() else 1
            return [ToolCall("flights", "flights", p(run_flights_agent, self.flights, origin, dest, date, adults))]
        if intent == "web_search":
            return [ToolCall("search", "search", p(run_search_agent, self.search, query))]
        if intent == "deep_research":
            queries = research_queries(query, slots, extra_queries, self.max_research_queries)
            return [ToolCall("research", "search", p(run_research_agent, self.search, queries))]
        return []

    async def dispatch(
        self,
        intent: str,
        slots: Dict[str, Any],
        query: str = "",
        cancel: Optional[asyncio.Event] = None,
    ) -> List[ToolResult]:
        calls = self.plan(intent, slots, query)
        return await self.run(calls, cancel)

    async def run(self, calls: List[ToolCall], cancel: Optional[asyncio.Event] = None) -> List[ToolResult]:
        if not calls:
            return []
        return list(await asyncio.gather(*(self.call(c, cancel) for c in calls)))

    async def call(self, call: ToolCall, cancel: Optional[asyncio.Event] = None) -> ToolResult:
        start = time.monotonic()

        def done(**kw) -> ToolResult:
            return ToolResult(call.tool, latency_ms=int((time.monotonic() - start) * 1000), **kw)

        try:
            if call.target == "none":
                data = call.fn()
            else:
                data = await self.resilience.execute(call.target, lambda: asyncio.to_thread(call.fn), cancel=cancel)
        except CircuitOpenError:
            log.info("tool_circuit_open", extra={"tool": call.tool, "target": call.target})
            return done(ok=False, reason="circuit_open")
        except ExternalTimeoutError:
            return done(ok=False, reason="timeout")
        except CancelledByCaller:
            return done(ok=False, reason="cancelled")
        except ToolError as e:
            log.info("tool_failed", extra={"tool": call.tool, "reason": e.reason})
            return done(ok=False, reason=e.reason)
        except Exception:
            log.exception("tool_exception", extra={"tool": call.tool})
            return done(ok=False, reason="exception")

        result = done(ok=True, data=data)
        result.facts = [f.model_copy(update={"latency_ms": result.latency_ms}) for f in data.get("facts", [])]
        return result
