"""
Consent gate: a pending "may I search the web?" question and the
interpretation of the user's next reply.
"""
import logging
import re
from typing import Optional

from wayfarer.llm.dialogue_manager import classify_consent
from wayfarer.memory.slot_memory import ConsentState, SlotMemory
from wayfarer.utils.cache import TTLCache

log = logging.getLogger(__name__)

ACCEPT, DECLINE, UNCLEAR = "accept", "decline", "unclear"
WEB_SEARCH, DEEP_RESEARCH = "web_search", "deep_research"

YES = ("yes", "y", "yeah", "yep", "sure", "ok", "okay", "go ahead", "proceed", "continue", "search", "please do", "haan", "ha")
NO = ("no", "n", "nope", "nah", "skip", "pass", "cancel", "not now", "dont", "don't")

_TRAILING = re.compile(r"[\s.!,]+$")


def normalize_yes_no(text: str) -> Optional[str]:
    t = _TRAILING.sub("", (text or "").strip().lower())
    if not t:
        return None
    if any(t == w or t.startswith(f"{w} ") or t.startswith(f"{w},") for w in YES):
        return "yes"
    if any(t == w or t.startswith(f"{w} ") or t.startswith(f"{w},") for w in NO):
        return "no"
    return None


class ConsentGate:
    def __init__(self, memory: SlotMemory, llm=None, cache: Optional[TTLCache] = None):
        self.memory = memory
        self.llm = llm
        self.cache = cache if cache is not None else TTLCache(maxsize=128, ttl_s=600.0)

    async def request_consent(self, thread_id: str, pending_query: str, kind: str = WEB_SEARCH) -> None:
        await self.memory.set_consent(thread_id, ConsentState(awaiting=True, pending_query=pending_query, kind=kind))
        log.info("consent_requested", extra={"thread_id": thread_id, "kind": kind})

    async def pending(self, thread_id: str) -> ConsentState:
        return await self.memory.get_consent(thread_id)

    async def interpret(self, message: str) -> str:
        yn = normalize_yes_no(message)
        if yn is None and self.llm is not None:
            key = message.strip().lower()
            yn = self.cache.get(key)
            if yn is None:
                yn = await classify_consent(self.llm, message)
                self.cache.set(key, yn)
        return {"yes": ACCEPT, "no": DECLINE}.get(yn, UNCLEAR)

    async def resolve(self, thread_id: str, message: str) -> str:
        """
        accept / decline clear the pending state; unclear leaves it as is.
        """
        state = await self.pending(thread_id)
        if not state.awaiting:
            return UNCLEAR
        verdict = await self.interpret(message)
        if verdict != UNCLEAR:
            await self.memory.clear_consent(thread_id)
            log.info("consent_resolved", extra={"thread_id": thread_id, "verdict": verdict})
        return verdict

    async def cancel(self, thread_id: str) -> None:
        await self.memory.clear_consent(thread_id)
