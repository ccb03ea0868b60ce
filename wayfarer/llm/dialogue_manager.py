# wayfarer/llm/dialogue_manager.py
import json
import re
from typing import Any, Dict, List, Optional

from wayfarer.nlp.result import INTENTS, ClassificationResult, Err, Ok, Result

CLASSIFY_PROMPT = """
You are the intent classifier for a travel-information assistant.

You receive JSON with:
- user_input
- state.slots (what we already know about the trip)
- state.last_intent

You must output ONLY valid JSON (no markdown, no explanations).

Allowed intents:
- "weather"       current or seasonal weather for a city
- "packing"       what to pack / wear
- "attractions"   things to do and see in a city
- "destinations"  where to go, trip ideas, airlines serving a place
- "flights"       a concrete flight search between two cities
- "web_search"    the user explicitly asks to search the web
- "system"        questions about the assistant itself
- "unknown"

Allowed content types: "travel", "budget", "system", "unrelated".

Slots you may produce (when present in user_input):
- city, country, month, dates (YYYY-MM-DD or natural text), originCity, destinationCity,
  departureDate (YYYY-MM-DD), passengers

Rules:
1) Never invent slot values. Omit a slot you cannot read from user_input.
2) Do not output placeholder values such as "unknown" or "there".
3) confidence is a number between 0 and 1.

Output JSON schema:
{
  "content_type": "travel|budget|system|unrelated",
  "intent": "weather|packing|attractions|destinations|flights|web_search|system|unknown",
  "confidence": 0.0,
  "slots": { ... }
}
"""

CONSENT_PROMPT = """
The assistant asked the user for permission to search the web.
Decide whether the user's reply below grants permission.
Answer with exactly one word: yes, no, or unclear.

Reply: {message}
"""

NARRATIVE_PROMPT = """
You write one or two friendly sentences for a travel assistant.
Use ONLY the facts given. Do not add numbers, names, or sources that are not in the facts.
Do not mention where the facts came from.

Intent: {intent}
Trip: {slots}
Facts: {facts}
"""

VERIFY_PROMPT = """
You audit a travel assistant's reply against the evidence it had.
Check relevance to the latest user message, grounding in evidence_facts,
coherence, and consistency with the slots and previous user messages.

Return STRICT JSON only:
{
  "verdict": "pass|warn|fail",
  "confidence": 0.0,
  "notes": ["short note", ...],
  "scores": {"relevance": 0.0, "grounding": 0.0, "coherence": 0.0, "context_consistency": 0.0},
  "revisedAnswer": "only when verdict is fail"
}
"""

COMPLEXITY_PROMPT = """
Decide whether a travel request is a complex planning question that needs
research across several sources (many constraints such as budget, group,
several places, activities, an itinerary) or a simple single lookup.

Return STRICT JSON only:
{{"isComplex": true|false, "confidence": 0.0, "reasoning": "short reason"}}

Request: {message}
"""

QUERY_EXPANSION_PROMPT = """
Rewrite a travel research question into focused web search queries.
Keep the places, dates and constraints the user gave. Do not add new ones.

Return STRICT JSON only: {{"queries": ["...", "..."]}}

Question: {query}
Known trip details: {slots}
"""

# keys of the classification request; a response carrying them is the request echoed back
_REQUEST_KEYS = {"user_input", "state"}


def safe_json_parse(txt: str) -> Dict[str, Any]:
    try:
        parsed = json.loads(txt)
    except (TypeError, ValueError):
        m = re.search(r"\{.*\}", txt or "", re.DOTALL)
        if not m:
            return {}
        try:
            parsed = json.loads(m.group(0))
        except ValueError:
            return {}
    return parsed if isinstance(parsed, dict) else {}


def is_echoed_plan(plan: Dict[str, Any]) -> bool:
    """
    The model sometimes answers with the request payload instead of a
    classification. That is a known degenerate state, not a result.
    """
    return bool(_REQUEST_KEYS & set(plan)) and "intent" not in plan


def _confidence(raw: Any) -> float:
    try:
        c = float(raw)
    except (TypeError, ValueError):
        return 0.0
    return max(0.0, min(1.0, c))


class LlmTier:
    name = "llm"

    def __init__(self, llm, min_confidence: float = 0.6, timeout_s: float = 8.0):
        self.llm = llm
        self.min_confidence = min_confidence
        self.timeout_s = timeout_s

    async def classify(self, text: str, context: Dict[str, Any]) -> Result[ClassificationResult]:
        if not getattr(self.llm, "available", True):
            return Err("llm_unavailable")

        msg = json.dumps(
            {
                "user_input": text,
                "state": {
                    "slots": context.get("slots") or {},
                    "last_intent": context.get("last_intent"),
                },
            },
            ensure_ascii=False,
        )
        raw = await self.llm.call(msg, response_format="json", system=CLASSIFY_PROMPT)
        plan = safe_json_parse(raw)
        if not plan:
            return Err("malformed_json", (raw or "")[:80])
        if is_echoed_plan(plan):
            return Err("echoed_plan")

        intent = plan.get("intent") or "unknown"
        if intent not in INTENTS:
            intent = "unknown"
        content_type = plan.get("content_type") or "travel"
        slots = {k: v for k, v in (plan.get("slots") or {}).items() if isinstance(v, (str, int, float))}

        return Ok(ClassificationResult(
            content_type=content_type if isinstance(content_type, str) else "travel",
            intent=intent,
            confidence=_confidence(plan.get("confidence")),
            slots={k: str(v) for k, v in slots.items()},
            tier=self.name,
        ))


def _normalize_consent(raw: str) -> str:
    cleaned = (raw or "").strip().lower()
    if cleaned.startswith("yes"):
        return "yes"
    if cleaned.startswith("no"):
        return "no"
    return "unclear"


async def classify_consent(llm, message: str) -> str:
    """
    Returns "yes" / "no" / "unclear".
    """
    raw = await llm.call(CONSENT_PROMPT.format(message=message.strip()), response_format="text")
    return _normalize_consent(raw)


async def narrate(llm, intent: str, slots: Dict[str, Any], facts: list) -> Optional[str]:
    if not facts or not getattr(llm, "available", True):
        return None
    prompt = NARRATIVE_PROMPT.format(
        intent=intent,
        slots=json.dumps(slots, ensure_ascii=False),
        facts=json.dumps([{"key": f.key, "value": f.value} for f in facts], ensure_ascii=False, default=str),
    )
    text = (await llm.call(prompt, response_format="text")).strip()
    return text or None


async def expand_queries(llm, query: str, slots: Dict[str, Any], limit: int = 4) -> List[str]:
    """
    Extra search queries for a research pass. Empty when the LLM is
    unavailable or answers with anything but a list of strings.
    """
    if not getattr(llm, "available", True):
        return []
    prompt = QUERY_EXPANSION_PROMPT.format(query=query.strip(), slots=json.dumps(slots, ensure_ascii=False))
    queries = safe_json_parse(await llm.call(prompt, response_format="json")).get("queries")
    if not isinstance(queries, list):
        return []
    return [q.strip() for q in queries if isinstance(q, str) and q.strip()][:limit]
