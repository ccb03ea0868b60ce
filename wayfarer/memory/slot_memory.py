"""
Per-thread slot memory: committed slots, last intent, consent state,
receipts and the last verification result, all on top of a SessionStore.
"""
import logging
import re
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, List, Optional

from wayfarer.memory.store import SessionStore

log = logging.getLogger(__name__)

# The one list of values an extractor emits when it has nothing real to say.
PLACEHOLDERS = frozenset({
    "",
    "unknown",
    "none",
    "null",
    "n/a",
    "tbd",
    "there",
    "here",
    "city",
    "destination",
    "clean_city_name",
    "normalized_name",
    "normalized_date_string",
    "month_name",
    "yyyy-mm-dd",
})

MONTHS = (
    "january", "february", "march", "april", "may", "june",
    "july", "august", "september", "october", "november", "december",
)
_MONTH_WORDS = set(MONTHS) | {m[:3] for m in MONTHS} | {"sept"}
_TEMPORAL_WORDS = {"today", "tomorrow", "tonight", "now", "week", "weekend", "month", "year", "season"}
_CITY_SHAPE = re.compile(r"^[^\W\d_](?:[^\W\d_]|[.'\- ])*$")

CITY_KEYS = ("city", "originCity", "destinationCity")

# reserved json keys
K_LAST_INTENT = "last_intent"
K_CONSENT = "consent"
K_RECEIPTS = "last_receipts"
K_VERIFICATION = "last_verification"
K_MISSING = "last_missing"


def is_month_word(value: str) -> bool:
    return (value or "").strip().lower().rstrip(".") in _MONTH_WORDS


def looks_like_city(value: str) -> bool:
    v = (value or "").strip()
    if not _CITY_SHAPE.match(v):
        return False
    words = {w.lower() for w in re.split(r"[\s\-]+", v)}
    if words & (_MONTH_WORDS | _TEMPORAL_WORDS | {"city", "destination", "place"}):
        return False
    return True


def is_placeholder(key: str, value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (list, dict)):
        return len(value) == 0
    v = str(value).strip()
    if v.lower() in PLACEHOLDERS:
        return True
    if key in CITY_KEYS and not looks_like_city(v):
        return True
    return False


def merge_slots(prior: Dict[str, Any], extracted: Dict[str, Any]) -> Dict[str, Any]:
    """
    New non-placeholder values win; placeholders never overwrite and never
    get committed; keys absent from `extracted` are left alone.
    """
    merged = dict(prior or {})
    for key, value in (extracted or {}).items():
        if is_placeholder(key, value):
            continue
        if isinstance(value, str):
            value = value.strip()
            if key in CITY_KEYS and value.islower():
                value = value.title()
        merged[key] = value
    return merged


@dataclass
class ConsentState:
    awaiting: bool = False
    pending_query: str = ""
    kind: str = "web_search"

    @classmethod
    def from_json(cls, raw: Optional[dict]) -> "ConsentState":
        if not raw:
            return cls()
        return cls(
            awaiting=bool(raw.get("awaiting")),
            pending_query=raw.get("pending_query") or "",
            kind=raw.get("kind") or "web_search",
        )


class SlotMemory:
    def __init__(self, store: SessionStore, max_messages: int = 16):
        self.store = store
        self.max_messages = max_messages

    async def get_slots(self, thread_id: str) -> Dict[str, Any]:
        return await self.store.get_slots(thread_id)

    async def merge_and_persist(
        self, thread_id: str, extracted: Dict[str, Any], missing: Iterable[str] = ()
    ) -> Dict[str, Any]:
        prior = await self.store.get_slots(thread_id)
        merged = merge_slots(prior, extracted)
        patch = {k: v for k, v in merged.items() if prior.get(k) != v}
        if patch:
            merged = await self.store.set_slots(thread_id, patch)
        await self.store.set_json(thread_id, K_MISSING, list(missing))
        log.debug("slots_merged", extra={"thread_id": thread_id, "changed": sorted(patch)})
        return merged

    async def clear_slots(self, thread_id: str, keys: Iterable[str]) -> Dict[str, Any]:
        return await self.store.set_slots(thread_id, {}, remove=list(keys))

    async def get_last_intent(self, thread_id: str) -> Optional[str]:
        return await self.store.get_json(thread_id, K_LAST_INTENT)

    async def set_last_intent(self, thread_id: str, intent: str) -> None:
        await self.store.set_json(thread_id, K_LAST_INTENT, intent)

    async def get_consent(self, thread_id: str) -> ConsentState:
        return ConsentState.from_json(await self.store.get_json(thread_id, K_CONSENT))

    async def set_consent(self, thread_id: str, state: ConsentState) -> None:
        await self.store.set_json(thread_id, K_CONSENT, asdict(state))

    async def clear_consent(self, thread_id: str) -> None:
        await self.store.set_json(thread_id, K_CONSENT, None)

    async def get_receipts(self, thread_id: str) -> Optional[dict]:
        return await self.store.get_json(thread_id, K_RECEIPTS)

    async def set_receipts(self, thread_id: str, receipts: dict) -> None:
        await self.store.set_json(thread_id, K_RECEIPTS, receipts)

    async def get_verification(self, thread_id: str) -> Optional[dict]:
        return await self.store.get_json(thread_id, K_VERIFICATION)

    async def set_verification(self, thread_id: str, result: Optional[dict]) -> None:
        await self.store.set_json(thread_id, K_VERIFICATION, result)

    async def append_message(self, thread_id: str, role: str, content: str) -> None:
        await self.store.append_message(thread_id, role, content, limit=self.max_messages)

    async def get_messages(self, thread_id: str, limit: Optional[int] = None) -> List[Dict[str, str]]:
        return await self.store.get_messages(thread_id, limit)

    async def recent_user_turns(self, thread_id: str, n: int = 3) -> List[str]:
        msgs = await self.store.get_messages(thread_id)
        return [m["content"] for m in msgs if m.get("role") == "user"][-n:]

    async def clear_thread(self, thread_id: str) -> None:
        await self.store.clear(thread_id)
        log.info("thread_cleared", extra={"thread_id": thread_id})
