"""
Deterministic keyword/regex classification and slot extraction.
Last cascade tier, and the entity extractor every tier's output is merged with.
"""
import re
from typing import Any, Dict, List, Optional, Tuple

from dateutil import parser as dtparser

from wayfarer.memory.slot_memory import MONTHS, is_month_word, looks_like_city
from wayfarer.nlp.result import ClassificationResult, Ok, Result

CITY_ALIASES = {
    "bombay": "Mumbai",
    "mumbai": "Mumbai",
    "delhi": "Delhi",
    "new delhi": "Delhi",
    "nyc": "New York",
    "new york city": "New York",
    "la": "Los Angeles",
    "sf": "San Francisco",
    "calcutta": "Kolkata",
    "madras": "Chennai",
    "peking": "Beijing",
    "saigon": "Ho Chi Minh City",
}

IMMEDIATE_RE = re.compile(r"\b(today|now|currently|right now|tonight)\b|what to wear", re.I)
# only these pin the month to the current one
NOW_RE = re.compile(r"\b(now|today|currently|right now|at the moment)\b", re.I)
SPECIAL_CONTEXT_RE = re.compile(r"\b(kids|children|family|business|work|summer|winter|spring|fall)\b", re.I)
FLIGHT_VOCAB_RE = re.compile(
    r"\b(airlines?|flights?|fly|flying|planes?|tickets?|booking)\b|\b(what|which) airlines?\b", re.I
)
SEARCH_CMD_RE = re.compile(r"^\s*(search|google|look up)\b[:\s]*(.*)$", re.I)

_SYSTEM_RE = re.compile(
    r"\b(who are you|what are you|are you (a |an )?(bot|ai|human|robot|real)|what can you do|"
    r"who (made|built|created) you|your name)\b",
    re.I,
)
_UNRELATED_RE = re.compile(
    r"\b(recipe|cook|bake|code|coding|python|javascript|program(ming)?|homework|math|equation|"
    r"stocks?|crypto|bitcoin|poem|joke|movie|song|lyrics|football score|diagnos\w*)\b",
    re.I,
)
_TRAVEL_RE = re.compile(
    r"\b(travel|trip|visit|weather|pack|flight|fly|airline|hotel|city|destination|vacation|holiday|"
    r"attractions?|sightseeing|forecast|tour|itinerary|abroad)\b",
    re.I,
)
_BUDGET_RE = re.compile(r"\b(budget|cheap(est)?|afford|cost|price|how much|expensive)\b|[$€£₹]\s?\d", re.I)

_INTENT_RULES: List[Tuple[str, re.Pattern, float]] = [
    ("flights", re.compile(r"\bflights?\b.*\bfrom\b.+\bto\b|\bfly(ing)?\s+from\b.+\bto\b", re.I), 0.8),
    ("packing", re.compile(
        r"\bpack(ing)?\b|\bwhat (should|do) (i|we) (wear|bring)\b|\bwhat to (wear|bring)\b|\bsuitcase\b|\bluggage\b",
        re.I), 0.75),
    ("weather", re.compile(
        r"\b(weather|forecast|temperature|rain(y|ing)?|snow(ing)?|sunny|humid(ity)?)\b|\bhow (hot|cold|warm)\b",
        re.I), 0.75),
    ("attractions", re.compile(
        r"\b(attractions?|things to do|sightseeing|must[- ]see|museums?|landmarks?|places to (see|visit)|sights)\b"
        r"|\bwhat to (see|do)\b",
        re.I), 0.75),
    ("destinations", re.compile(
        r"\bwhere (should|can|could) (i|we) (go|travel)\b|\bdestinations?\b|\brecommend\b|"
        r"\b(airlines?|flights?|fly|planes?|tickets?)\b|\b(trip|travel|holiday|vacation) to\b|\bvisit(ing)?\b",
        re.I), 0.65),
]

# leading capital, Latin-1 accents included ("Évora", "Århus")
_UP = "A-ZÀ-ÖØ-Þ"
_CITY_AFTER_PREP = re.compile(
    rf"\b(?:in|to|at|for|visit|visiting|near|around|about)\s+"
    rf"([{_UP}][\w'\-]*(?:\s+[{_UP}][\w'\-]*){{0,2}})"
)
_CITY_LEADING = re.compile(
    rf"^([{_UP}](?:[^\W\d_]|-)*(?:\s+[{_UP}](?:[^\W\d_]|-)*)?)\s+(?:weather|forecast|trip|attractions|travel)\b"
)
_CITY_ALTERNATIVES = re.compile(rf"\b([{_UP}](?:[^\W\d_]|-)+)\s*(,|or|vs\.?|versus)\s+([{_UP}](?:[^\W\d_]|-)+)\b")
_FROM_TO = re.compile(
    r"\bfrom\s+([^\W\d_](?:[^\W\d_]|[\s\-])+?)\s+to\s+([^\W\d_](?:[^\W\d_]|[\s\-])+?)"
    r"(?=\s+(?:on|in|at|for|next|this|tomorrow)\b|[?.!,]|$)",
    re.I,
)
_ISO_DATE = re.compile(r"\b\d{4}-\d{2}-\d{2}\b")
_MONTH_ALT = "|".join(MONTHS) + r"|jan|feb|mar|apr|jun|jul|aug|sept?|oct|nov|dec"
_DAY_MONTH = re.compile(
    rf"\b(\d{{1,2}}(?:st|nd|rd|th)?\s+(?:of\s+)?(?:{_MONTH_ALT})\.?(?:,?\s+\d{{4}})?)\b"
    rf"|\b((?:{_MONTH_ALT})\.?\s+\d{{1,2}}(?:st|nd|rd|th)?(?:,?\s+\d{{4}})?)\b",
    re.I,
)
_MONTH_WORD = re.compile(rf"\b({_MONTH_ALT})\b\.?(?!(?<=\bmay)\s+(?:i|we|you)\b)", re.I)
_RELATIVE = re.compile(r"\b(tomorrow|this weekend|next weekend|next week|next month|this week)\b", re.I)
_SEASON = re.compile(r"\b(summer|winter|spring|fall|autumn)\b", re.I)
_PASSENGERS = re.compile(r"\b(\d{1,2})\s+(?:people|persons|passengers|adults|travell?ers|of us)\b", re.I)

_NOT_CITY = {"I", "What", "Which", "Where", "When", "How", "Should", "Can", "Could", "The", "My", "Is", "Are", "Do"}


def norm_city(x: str) -> str:
    if not x:
        return x
    k = x.strip().lower()
    return CITY_ALIASES.get(k, x.strip().title())


def parse_date_maybe(text: str) -> Optional[str]:
    try:
        d = dtparser.parse(text, fuzzy=True, dayfirst=True)
        return d.date().isoformat()
    except (ValueError, OverflowError):
        return None


def month_name(word: str) -> Optional[str]:
    w = (word or "").strip().lower().rstrip(".")
    for m in MONTHS:
        if m == w or m[:3] == w or (w == "sept" and m == "september"):
            return m.title()
    return None


def has_immediate_time(text: str) -> bool:
    return bool(IMMEDIATE_RE.search(text or ""))


def mentions_now(text: str) -> bool:
    return bool(NOW_RE.search(text or ""))


def has_special_context(text: str) -> bool:
    return bool(SPECIAL_CONTEXT_RE.search(text or ""))


def has_flight_vocab(text: str) -> bool:
    return bool(FLIGHT_VOCAB_RE.search(text or ""))


def search_command(text: str) -> Optional[str]:
    """Query of an explicit "search ..." / "google ..." command, else None."""
    m = SEARCH_CMD_RE.match(text or "")
    if not m:
        return None
    return m.group(2).strip() or None


def detect_content_type(text: str) -> str:
    if _SYSTEM_RE.search(text):
        return "system"
    if _UNRELATED_RE.search(text) and not _TRAVEL_RE.search(text):
        return "unrelated"
    if _BUDGET_RE.search(text):
        return "budget"
    return "travel"


def detect_intent(text: str) -> Tuple[str, float]:
    if search_command(text):
        return "web_search", 0.9
    for intent, pattern, conf in _INTENT_RULES:
        if pattern.search(text):
            return intent, conf
    return "unknown", 0.2


def _city_candidates(text: str, skip: set) -> List[str]:
    out: List[str] = []

    def add(raw: str):
        # "Paris In" / "Rome For" -> drop trailing capitalized prepositions
        words = [w for w in raw.split() if w not in _NOT_CITY]
        while words and is_month_word(words[-1]):
            words.pop()
        if not words:
            return
        c = norm_city(" ".join(words))
        if c.lower() in skip or not looks_like_city(c) or c in out:
            return
        out.append(c)

    m = _CITY_LEADING.match(text.strip())
    if m:
        add(m.group(1))
    for m in _CITY_AFTER_PREP.finditer(text):
        add(m.group(1))
    for m in _CITY_ALTERNATIVES.finditer(text):
        first, sep, second = m.groups()
        # "Paris, France" names one place
        if first in _NOT_CITY or (sep == "," and first in out):
            continue
        add(first)
        add(second)
    low = f" {text.lower()} "
    for alias, city in CITY_ALIASES.items():
        if f" {alias} " in low and city.lower() not in skip and city not in out:
            out.append(city)
    return out


def extract_slots(text: str) -> Tuple[Dict[str, Any], List[str], List[str]]:
    """
    Returns (slots, city_candidates, season_candidates).
    """
    text = text or ""
    slots: Dict[str, Any] = {}

    skip = set()
    m = _FROM_TO.search(text)
    if m:
        origin, dest = norm_city(m.group(1)), norm_city(m.group(2))
        if looks_like_city(origin):
            slots["originCity"] = origin
            skip.add(origin.lower())
        if looks_like_city(dest):
            slots["destinationCity"] = dest
            skip.add(dest.lower())

    cities = _city_candidates(text, skip)
    if len(cities) == 1:
        slots["city"] = cities[0]
    elif not cities and slots.get("destinationCity"):
        slots["city"] = slots["destinationCity"]

    iso = _ISO_DATE.search(text)
    dm = _DAY_MONTH.search(text)
    if iso:
        slots["dates"] = iso.group(0)
        slots["departureDate"] = iso.group(0)
    elif dm:
        parsed = parse_date_maybe(dm.group(0))
        if parsed:
            slots["dates"] = parsed
            slots["departureDate"] = parsed
    else:
        rel = _RELATIVE.search(text)
        if rel:
            slots["dates"] = rel.group(1).lower()

    for mm in _MONTH_WORD.finditer(text):
        name = month_name(mm.group(1))
        # "may" is only a month when capitalised; "May I" is a modal
        if name and mm.group(1) != "may":
            slots["month"] = name
            break
    if "month" not in slots and slots.get("dates") and _ISO_DATE.match(slots["dates"]):
        slots["month"] = MONTHS[int(slots["dates"][5:7]) - 1].title()

    seasons = []
    for s in _SEASON.findall(text):
        s = "fall" if s.lower() == "autumn" else s.lower()
        if s not in seasons:
            seasons.append(s)
    if len(seasons) == 1:
        slots["season"] = seasons[0]

    p = _PASSENGERS.search(text)
    if p:
        slots["passengers"] = p.group(1)

    return slots, cities, seasons


def classify_rules(text: str) -> ClassificationResult:
    content_type = detect_content_type(text)
    if content_type in ("system", "unrelated"):
        intent, conf = ("system" if content_type == "system" else "unknown"), 0.8
    else:
        intent, conf = detect_intent(text)
    slots, cities, seasons = extract_slots(text)
    return ClassificationResult(
        content_type=content_type,
        intent=intent,
        confidence=conf,
        slots=slots,
        tier="rules",
        cities=cities,
        seasons=seasons,
    )


class RulesTier:
    name = "rules"

    def __init__(self, min_confidence: float = 0.0, timeout_s: float = 1.0):
        self.min_confidence = min_confidence
        self.timeout_s = timeout_s

    async def classify(self, text: str, context: Dict[str, Any]) -> Result[ClassificationResult]:
        return Ok(classify_rules(text))
