"""
Public entry point: one call per user message.

    assistant = build_assistant()
    out = await assistant.handle_turn("Weather in Paris today?")
    out.reply, out.thread_id
"""
import asyncio
import logging
import re
import uuid
from typing import List, Optional

from pydantic import BaseModel, Field

from wayfarer.agents.dispatcher import ToolDispatcher
from wayfarer.compose.blend import Composer
from wayfarer.compose.receipts import Budgets, Decision, Fact, Receipts, SelfCheck, render_receipts
from wayfarer.compose.verify import Verifier
from wayfarer.config import Settings, get_settings
from wayfarer.errors import StoreError
from wayfarer.graph.consent import ConsentGate
from wayfarer.graph.graph import TurnGraph
from wayfarer.llm.client import LLMClient
from wayfarer.llm.dialogue_manager import LlmTier
from wayfarer.memory.slot_memory import SlotMemory
from wayfarer.memory.store import SessionStore, create_store
from wayfarer.nlp.cascade import ClassificationCascade
from wayfarer.nlp.complexity import ComplexityAssessor
from wayfarer.nlp.local_model import LocalTier
from wayfarer.nlp.rules import RulesTier
from wayfarer.providers.amadeus_flights import AmadeusFlightsProvider
from wayfarer.providers.brave_search import BraveSearchProvider
from wayfarer.providers.open_meteo import OpenMeteoProvider
from wayfarer.providers.opentripmap import OpenTripMapProvider
from wayfarer.providers.rest_countries import RestCountriesProvider
from wayfarer.resilience import Resilience
from wayfarer.utils.cache import TTLCache

log = logging.getLogger(__name__)

HELP_MESSAGE = (
    "I'm a travel assistant. Please share a travel question (weather, destinations, packing, or attractions)."
)
NO_RECEIPTS_MESSAGE = "No receipts yet for this conversation. Ask me a travel question first."
STORE_ERROR_MESSAGE = (
    "Sorry, I couldn't reach my conversation memory just now. Please try your travel question again in a moment."
)
WHY_COMMAND = "/why"
MAX_THREAD_ID = 64

_ALNUM = re.compile(r"[^\W_]", re.UNICODE)


class TurnResult(BaseModel):
    reply: str
    thread_id: str
    citations: List[str] = Field(default_factory=list)
    receipts: Optional[Receipts] = None


def normalize_thread_id(thread_id: Optional[str]) -> str:
    tid = (thread_id or "").strip()[:MAX_THREAD_ID]
    return tid or uuid.uuid4().hex


def is_meaningless(message: str) -> bool:
    """Empty, whitespace, emoji-only or punctuation-only input."""
    return not _ALNUM.search(message or "")


def receipts_from_stored(stored: dict, verification: Optional[dict]) -> Receipts:
    facts = [Fact.model_validate(f) for f in stored.get("facts") or []]
    decisions = [Decision.model_validate(d) if isinstance(d, dict) else str(d) for d in stored.get("decisions") or []]
    sources: List[str] = []
    for f in facts:
        if f.source not in sources:
            sources.append(f.source)

    check = SelfCheck()
    if verification:
        check = SelfCheck(
            verdict=verification.get("verdict", "warn"),
            notes=list(verification.get("notes") or []),
            scores=verification.get("scores"),
        )
    return Receipts(
        sources=sources,
        decisions=decisions,
        self_check=check,
        budgets=Budgets(
            ext_api_latency_ms=sum(f.latency_ms or 0 for f in facts),
            token_estimate=stored.get("token_estimate"),
        ),
    )


class Assistant:
    def __init__(self, settings: Settings, memory: SlotMemory, graph: TurnGraph, resilience: Resilience):
        self.settings = settings
        self.memory = memory
        self.turns = graph
        self.graph = graph.build()
        self.resilience = resilience

    async def handle_turn(
        self,
        message: str,
        thread_id: Optional[str] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> TurnResult:
        tid = normalize_thread_id(thread_id)
        text = (message or "").strip()

        if is_meaningless(text):
            return TurnResult(reply=HELP_MESSAGE, thread_id=tid)
        try:
            if text.lower() == WHY_COMMAND:
                return TurnResult(reply=await self.explain(tid), thread_id=tid)
            return await self._run_turn(text, tid, cancel)
        except StoreError:
            log.error("store_unavailable", extra={"thread_id": tid}, exc_info=True)
            return TurnResult(reply=STORE_ERROR_MESSAGE, thread_id=tid)

    async def _run_turn(self, text: str, tid: str, cancel: Optional[asyncio.Event]) -> TurnResult:
        if len(text) > self.settings.max_message_chars:
            log.info("message_truncated", extra={"thread_id": tid, "chars": len(text)})
            text = text[: self.settings.max_message_chars]

        await self.memory.append_message(tid, "user", text)
        out = await self.graph.ainvoke({"thread_id": tid, "user_input": text, "cancel": cancel})

        reply = out.get("reply") or HELP_MESSAGE
        await self.memory.append_message(tid, "assistant", reply)

        revised = out.get("revised_reply")
        if revised:
            await self.memory.append_message(tid, "assistant", revised)
            reply = revised

        comp = out.get("composition")
        receipts = None
        if comp is not None:
            receipts = comp.receipts
            v = out.get("verification")
            if v is not None:
                receipts.self_check = SelfCheck(verdict=v.verdict, notes=v.notes, scores=v.scores)

        await self.memory.store.expire(tid, self.settings.session_ttl_s)
        log.info(
            "turn_done",
            extra={"thread_id": tid, "status": out.get("status"), "intent": out.get("intent")},
        )
        return TurnResult(reply=reply, thread_id=tid, citations=out.get("citations") or [], receipts=receipts)

    async def explain(self, thread_id: str) -> str:
        stored = await self.memory.get_receipts(thread_id)
        if not stored:
            return NO_RECEIPTS_MESSAGE
        verification = await self.memory.get_verification(thread_id)
        return render_receipts(receipts_from_stored(stored, verification), verification_available=bool(verification))

    async def clear_thread(self, thread_id: str) -> None:
        await self.memory.clear_thread(thread_id)


def build_assistant(
    settings: Optional[Settings] = None,
    store: Optional[SessionStore] = None,
    resilience: Optional[Resilience] = None,
    llm=None,
    weather=None,
    attractions=None,
    countries=None,
    flights=None,
    search=None,
    local_model=None,
) -> Assistant:
    """
    Wire the engine. Every collaborator can be swapped, which is how the
    tests run it without network access.
    """
    settings = settings or get_settings()
    resilience = resilience or Resilience()
    memory = SlotMemory(store or create_store(settings), max_messages=settings.max_messages)
    llm = llm or LLMClient(settings, resilience=resilience)

    cascade = ClassificationCascade(
        [
            LocalTier(local_model, settings.local_tier_min_confidence, settings.local_tier_timeout_s),
            LlmTier(llm, settings.llm_tier_min_confidence, settings.llm_tier_timeout_s),
            RulesTier(),
        ],
        cache=TTLCache(maxsize=settings.classify_cache_size, ttl_s=settings.classify_cache_ttl_s),
    )
    dispatcher = ToolDispatcher(
        resilience,
        weather=weather or OpenMeteoProvider(),
        attractions=attractions or OpenTripMapProvider(settings.opentripmap_api_key),
        countries=countries or RestCountriesProvider(),
        flights=flights or AmadeusFlightsProvider(
            settings.amadeus_client_id, settings.amadeus_client_secret, settings.amadeus_hostname
        ),
        search=search or BraveSearchProvider(settings.brave_search_api_key),
        max_research_queries=settings.deep_research_max_queries,
    )
    verifier = Verifier(
        llm, memory, poll_attempts=settings.verify_poll_attempts, poll_delay_s=settings.verify_poll_delay_s
    )
    graph = TurnGraph(
        settings=settings,
        memory=memory,
        cascade=cascade,
        consent=ConsentGate(memory, llm=llm),
        dispatcher=dispatcher,
        composer=Composer(),
        verifier=verifier,
        llm=llm,
        complexity=ComplexityAssessor(llm),
    )
    return Assistant(settings, memory, graph, resilience)
