"""
Response composer: deterministic templates over tool facts, an optional
LLM narrative, citations and the receipts skeleton.

Citations and any source-like wording appear only when at least one
external fact was used this turn.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union

from wayfarer.agents.dispatcher import ToolResult
from wayfarer.compose.citations import enforce_citations, strip_attribution, validate_no_citation
from wayfarer.compose.receipts import Decision, Fact, Receipts, build_receipts_skeleton, estimate_tokens

log = logging.getLogger(__name__)

LANGUAGE_CAVEAT = "I work better with English, but I'll try to help. "
BUDGET_CAVEAT = "I can't help with budget planning or costs, but I can share travel information. "

_TOPIC = {
    "weather": "the forecast",
    "packing": "weather data for packing advice",
    "attractions": "attraction listings",
    "destinations": "destination details",
    "flights": "flight offers",
    "web_search": "web search results",
    "deep_research": "research results",
}
_ALTERNATIVE = {
    "weather": "ask me what to pack or what to see there instead",
    "packing": "I can still suggest a general packing list if you tell me the season",
    "attractions": "ask me about the weather or what to pack instead",
    "destinations": "ask me about the weather or attractions there instead",
    "flights": "try a different date or nearby airport",
    "web_search": "ask me about weather, destinations, packing, or attractions instead",
    "deep_research": "ask me to search the web for it instead",
}


@dataclass
class Composition:
    reply: str
    citations: List[str] = field(default_factory=list)
    facts: List[Fact] = field(default_factory=list)
    decisions: List[Union[Decision, str]] = field(default_factory=list)
    receipts: Optional[Receipts] = None


def compose_weather_reply(city: str, when: Optional[str], summary: str, source: str) -> str:
    ctx = " - ".join(x for x in (city, when) if x)
    return f"Weather for {ctx}: {summary} ({source})"


def compose_packing_reply(city: str, when: Optional[str], summary: str, items: List[str], source: str) -> str:
    head = " in ".join(x for x in (city, when) if x)
    out = f"{head}: Weather: {summary} ({source})" if head else f"Weather: {summary} ({source})"
    if items:
        out += f"\nPack: {', '.join(items)}"
    return out


def compose_attractions_reply(city: str, names: List[str], source: str) -> str:
    bullets = "\n".join(f"• {n}" for n in names)
    return f"Top things to see in {city}:\n{bullets} ({source})"


def compose_destinations_reply(city: str, when: Optional[str], parts: Dict[str, Any], sources: List[str]) -> str:
    head = f"{city} in {when}" if when else city
    lines = [f"Here's a quick look at {head}:"]
    if parts.get("country"):
        lines.append(f"• {parts['country']}")
    if parts.get("weather"):
        lines.append(f"• Weather: {parts['weather']}")
    return "\n".join(lines) + f" ({', '.join(sources)})"


def compose_flights_reply(slots: Dict[str, Any], data: Dict[str, Any], source: str) -> str:
    c = data.get("cheapest") or {}
    return (
        f"Flights from {slots.get('originCity')} to {slots.get('destinationCity')} on {slots.get('departureDate')} "
        f"(cheapest first). Cheapest: {c.get('flight_no') or c.get('airline')} {c.get('price')} {c.get('currency', '')}, "
        f"departing {c.get('depart')}. ({source})"
    )


def compose_search_reply(data: Dict[str, Any], source: str) -> str:
    lines = [f"• {r['title']} - {r['description'][:100]}" for r in data.get("results", [])[:3]]
    links = [f"{i + 1}. {r['title']} - {r['url']}" for i, r in enumerate(data.get("results", [])[:3])]
    return "Here's what I found on the web:\n\n" + "\n".join(lines) + f"\n\n{source}:\n" + "\n".join(links)


def compose_research_reply(data: Dict[str, Any], source: str) -> str:
    results = data.get("results", [])
    n = len(data.get("domains", []))
    lines = [f"• {r['title']} - {r.get('description', '')[:120]} ({r['domain']})" for r in results[:5]]
    links = [f"{i + 1}. {r['title']} - {r['url']}" for i, r in enumerate(results[:5])]
    return (
        f"I looked across {n} site{'' if n == 1 else 's'} for \"{data.get('query')}\":\n\n"
        + "\n".join(lines)
        + f"\n\n{source}:\n"
        + "\n".join(links)
    )


def compose_failure(intent: str, slots: Dict[str, Any], reasons: Sequence[str]) -> str:
    place = slots.get("city") or slots.get("destinationCity") or "that destination"
    if "not_found" in reasons:
        return f"I couldn't find \"{place}\". Could you double-check the city name?"
    if "missing_slots" in reasons and intent == "flights":
        return "I need the departure city, destination and travel date to look up flights. Which date are you flying?"
    topic = _TOPIC.get(intent, "that information")
    alt = _ALTERNATIVE.get(intent, "ask me something else about your trip")
    return f"Sorry, I couldn't get {topic} for {place} right now. You could try again in a moment, or {alt}."


class Composer:
    def compose(
        self,
        intent: str,
        slots: Dict[str, Any],
        results: Sequence[ToolResult],
        narrative: Optional[str] = None,
        flags: Sequence[str] = (),
        message: str = "",
    ) -> Composition:
        ok = [r for r in results if r.ok]
        facts: List[Fact] = [f for r in ok for f in r.facts]
        citations = enforce_citations(facts)
        city = slots.get("city") or slots.get("destinationCity") or slots.get("originCity") or ""
        when = slots.get("dates") or slots.get("month")
        if intent == "weather" and "immediate" in flags:
            when = "today"
        decisions: List[Union[Decision, str]] = []

        if not ok:
            reply = compose_failure(intent, slots, [r.reason or "exception" for r in results])
            decisions.append(Decision(
                action=f"Degraded {intent} answer",
                rationale=f"External lookups failed: {', '.join(sorted({r.reason or 'exception' for r in results})) or 'none'}",
                alternatives=["Retry later", "Ask a different question"],
                confidence=0.3,
            ))
        else:
            reply = self._compose_ok(intent, slots, ok, city, when, citations, decisions)

        if narrative:
            if not facts:
                narrative = strip_attribution(narrative)
            if narrative:
                reply = f"{reply}\n\n{narrative}"

        if "budget" in flags:
            reply = BUDGET_CAVEAT + reply
        if "mixed_language" in flags:
            reply = LANGUAGE_CAVEAT + reply

        validate_no_citation(reply, bool(facts))

        receipts = build_receipts_skeleton(facts, decisions, estimate_tokens(message, reply))
        return Composition(reply=reply, citations=citations, facts=facts, decisions=decisions, receipts=receipts)

    def _compose_ok(self, intent, slots, ok, city, when, citations, decisions) -> str:
        by_tool = {r.tool: r for r in ok}
        src = ", ".join(citations)

        if intent == "weather" and "weather" in by_tool:
            decisions.append(Decision(
                action="Used weather API for forecast",
                rationale="User asked about weather conditions, so retrieved forecast data",
                alternatives=["Skip weather lookup", "Use web search instead"],
                confidence=0.95,
            ))
            return compose_weather_reply(city, when or "today", by_tool["weather"].data["summary"], src)

        if intent == "packing" and "packing" in by_tool:
            d = by_tool["packing"].data
            decisions.append(Decision(
                action="Used weather data to tailor packing recommendations",
                rationale="Matched forecast temperature band to clothing items",
                alternatives=["Generic packing list", "Skip weather lookup"],
                confidence=0.9,
            ))
            reply = compose_packing_reply(city, when, d["summary"], d["items"], src)
            if d.get("band") is None:
                reply += "\n\nI don't have detailed temperatures yet, so here's a flexible moderate-weather list."
            return reply

        if intent == "attractions" and "attractions" in by_tool:
            names = [p["name"] for p in by_tool["attractions"].data["attractions"]]
            decisions.append(Decision(
                action=f"Listed attractions for {city}",
                rationale="User asked what to see or do, so queried points of interest",
                alternatives=["Web search for attractions"],
                confidence=0.85,
            ))
            return compose_attractions_reply(city, names, src)

        if intent == "destinations":
            parts = {}
            if "country" in by_tool:
                parts["country"] = by_tool["country"].data["summary"]
            if "weather" in by_tool:
                parts["weather"] = by_tool["weather"].data["summary"]
            decisions.append(Decision(
                action=f"Built destination overview for {city}",
                rationale="Combined country facts and current weather",
                alternatives=["Ask for travel dates first", "Web search"],
                confidence=0.8,
            ))
            return compose_destinations_reply(city, when, parts, citations)

        if intent == "flights" and "flights" in by_tool:
            decisions.append(f"Searched flight offers {slots.get('originCity')} -> {slots.get('destinationCity')}")
            return compose_flights_reply(slots, by_tool["flights"].data, src)

        if intent == "web_search" and "search" in by_tool:
            d = by_tool["search"].data
            decisions.append(f'Performed web search for: "{d.get("query")}"')
            return compose_search_reply(d, src)

        if intent == "deep_research" and "research" in by_tool:
            d = by_tool["research"].data
            decisions.append(Decision(
                action=f"Ran {len(d.get('queries', []))} research searches",
                rationale="Multi-constraint request; merged one result per site",
                alternatives=["Single web search", "Answer from one tool"],
                confidence=d.get("confidence", 0.6),
            ))
            return compose_research_reply(d, src)

        log.warning("compose_unhandled", extra={"intent": intent, "tools": sorted(by_tool)})
        return "Here's what I found."
