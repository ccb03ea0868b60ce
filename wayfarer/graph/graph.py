"""
Turn router: one LangGraph state machine per turn.

ROUTE -> CONSENT_CHECK? -> CLASSIFY -> MERGE -> CLARIFY | CONSENT_REQUEST
                                            \\-> DISPATCH -> COMPOSE -> VERIFY? -> DONE

Each node sets state["next"]; a single router function follows it.
"""
import logging
from typing import Any, Dict, List

from langgraph.graph import END, StateGraph

from wayfarer.compose.receipts import Decision
from wayfarer.graph.clarifier import build_clarifying_question, cities_question, seasons_question, unknown_question
from wayfarer.graph.consent import ACCEPT, DECLINE, DEEP_RESEARCH, UNCLEAR, WEB_SEARCH
from wayfarer.graph.state import Node, Plan, TurnState
from wayfarer.llm.dialogue_manager import expand_queries, narrate
from wayfarer.memory.slot_memory import is_placeholder, merge_slots
from wayfarer.nlp.complexity import ComplexityAssessor
from wayfarer.nlp.rules import has_flight_vocab, has_immediate_time, has_special_context, search_command

log = logging.getLogger(__name__)

SYSTEM_REPLY = (
    "I'm an AI travel assistant. I can help you with weather, destinations, packing, and attractions. "
    "What would you like to know?"
)
UNRELATED_REPLY = (
    "I focus on travel planning. Is there something about weather, destinations, packing, "
    "or attractions I can help with?"
)

CITY_INTENTS = {"weather", "packing", "attractions", "destinations"}
NON_CONTINUABLE = {None, "unknown", "system", WEB_SEARCH, DEEP_RESEARCH}
NOT_RESEARCHED = {"flights", WEB_SEARCH, DEEP_RESEARCH}
# failures a web search would not fix
NO_OFFER_REASONS = {"not_found", "missing_slots", "cancelled"}


# ---------------------------
# Utilities
# ---------------------------
def add_trace(state: TurnState, node: Node, detail: dict):
    state.setdefault("trace", [])
    state["trace"].append({"node": node.value, "detail": detail})


def _finish(state: TurnState, node: Node, reply: str) -> TurnState:
    state["reply"] = reply
    state["status"] = node.value
    state["next"] = Node.DONE.value
    return state


def missing_slots(intent: str, slots: Dict[str, Any], message: str) -> List[str]:
    """
    Required slots per intent. A when-clause is waived for packing when the
    message carries immediate-time or trip-context language.
    """
    missing: List[str] = []
    has_when = bool(slots.get("dates") or slots.get("month"))

    if intent in CITY_INTENTS:
        has_city = bool(slots.get("city"))
        if intent == "destinations":
            has_city = has_city or bool(slots.get("originCity"))
        if not has_city:
            missing.append("city")
    if intent == "destinations" and not has_when:
        missing.append("dates")
    if intent == "packing" and not has_when and not has_immediate_time(message) and not has_special_context(message):
        missing.append("dates")
    if intent == "flights":
        missing += [k for k in ("originCity", "destinationCity", "departureDate") if not slots.get(k)]
    return missing


class TurnGraph:
    def __init__(self, settings, memory, cascade, consent, dispatcher, composer, verifier, llm, complexity=None):
        self.settings = settings
        self.memory = memory
        self.cascade = cascade
        self.consent = consent
        self.dispatcher = dispatcher
        self.composer = composer
        self.verifier = verifier
        self.llm = llm
        self.complexity = complexity or ComplexityAssessor(llm)

    # ---------------------------
    # ROUTE
    # ---------------------------
    async def node_route(self, state: TurnState) -> TurnState:
        tid = state["thread_id"]
        state["prior_slots"] = await self.memory.get_slots(tid)
        state["last_intent"] = await self.memory.get_last_intent(tid)
        consent = await self.consent.pending(tid)
        state["consent"] = {
            "awaiting": consent.awaiting,
            "pending_query": consent.pending_query,
            "kind": consent.kind,
        }
        state["flags"] = []

        state["next"] = Node.CONSENT_CHECK.value if consent.awaiting else Node.CLASSIFY.value
        add_trace(state, Node.ROUTE, {"awaiting_consent": consent.awaiting, "prior": sorted(state["prior_slots"])})
        return state

    # ---------------------------
    # CONSENT_CHECK
    # ---------------------------
    async def node_consent_check(self, state: TurnState) -> TurnState:
        tid = state["thread_id"]
        pending = state["consent"].get("pending_query") or ""
        kind = state["consent"].get("kind") or WEB_SEARCH
        verdict = await self.consent.resolve(tid, state["user_input"])
        add_trace(state, Node.CONSENT_CHECK, {"verdict": verdict, "kind": kind})

        if verdict != UNCLEAR:
            state["consent"] = {"awaiting": False, "pending_query": ""}

        if verdict == ACCEPT and kind == DEEP_RESEARCH:
            slots = dict(state["prior_slots"])
            extra = await expand_queries(self.llm, pending, slots, self.settings.deep_research_max_queries)
            state["intent"] = DEEP_RESEARCH
            state["slots"] = slots
            state["plan"] = Plan(
                route=Node.DISPATCH,
                intent=DEEP_RESEARCH,
                calls=self.dispatcher.plan(DEEP_RESEARCH, slots, pending, extra),
                query=pending,
                needs_consent=True,
                consent_kind=DEEP_RESEARCH,
                verify=self.settings.auto_verify_replies,
            )
            state["next"] = Node.DISPATCH.value
            return state

        if verdict == DECLINE and kind == DEEP_RESEARCH:
            # answer the original question the standard way
            state["user_input"] = pending
            state["skip_research"] = True
            state["next"] = Node.CLASSIFY.value
            return state

        if verdict == ACCEPT:
            slots = dict(state["prior_slots"])
            query = search_command(pending) or pending
            state["intent"] = "web_search"
            state["slots"] = slots
            state["plan"] = Plan(
                route=Node.DISPATCH,
                intent="web_search",
                calls=self.dispatcher.plan("web_search", slots, query),
                query=query,
                verify=self.settings.auto_verify_replies,
            )
            state["next"] = Node.DISPATCH.value
            return state

        if verdict == DECLINE:
            return _finish(state, Node.CONSENT_CHECK, self.settings.consent_decline_message)

        # not an answer; treat as an ordinary message
        state["next"] = Node.CLASSIFY.value
        return state

    # ---------------------------
    # CLASSIFY
    # ---------------------------
    async def node_classify(self, state: TurnState) -> TurnState:
        tid = state["thread_id"]
        text = state["user_input"]
        prior = state.get("prior_slots") or {}
        last_intent = state.get("last_intent")

        result = await self.cascade.classify(text, {"slots": prior, "last_intent": last_intent})
        state["classification"] = result
        state["flags"] = list(result.flags)
        intent = result.intent

        if search_command(text):
            intent = "web_search"

        # an explicit new request while a consent question is open drops that question
        if state.get("consent", {}).get("awaiting") and intent != "unknown":
            await self.consent.cancel(tid)
            state["consent"] = {"awaiting": False, "pending_query": ""}

        add_trace(state, Node.CLASSIFY, {
            "tier": result.tier,
            "intent": intent,
            "confidence": result.confidence,
            "content_type": result.content_type,
        })

        if result.content_type == "system" or intent == "system":
            return _finish(state, Node.CLASSIFY, SYSTEM_REPLY)
        if result.content_type == "unrelated":
            return _finish(state, Node.CLASSIFY, UNRELATED_REPLY)

        # terse follow-ups ("and Tuesday?") keep the previous intent
        new_slots = [k for k, v in result.slots.items() if not is_placeholder(k, v)]
        if intent == "unknown" and prior and new_slots and last_intent not in NON_CONTINUABLE:
            log.debug("intent_inference", extra={"thread_id": tid, "inferred": last_intent})
            intent = last_intent
            add_trace(state, Node.CLASSIFY, {"inferred_intent": intent})

        state["intent"] = intent

        if len(result.cities) > 1 and not prior.get("city") and intent != "flights":
            state["question"] = cities_question(result.cities)
            state["next"] = Node.CLARIFY.value
            return state
        if len(result.seasons) > 1:
            state["question"] = seasons_question(result.seasons)
            state["next"] = Node.CLARIFY.value
            return state

        state["next"] = Node.MERGE.value
        return state

    # ---------------------------
    # MERGE
    # ---------------------------
    async def node_merge(self, state: TurnState) -> TurnState:
        tid = state["thread_id"]
        text = state["user_input"]
        intent = state["intent"]
        extracted = state["classification"].slots

        preview = merge_slots(state.get("prior_slots") or {}, extracted)
        missing = missing_slots(intent, preview, text)
        slots = await self.memory.merge_and_persist(tid, extracted, missing)
        await self.memory.set_last_intent(tid, intent)
        state["slots"] = slots
        state["missing"] = missing
        add_trace(state, Node.MERGE, {"slots": slots, "missing": missing})

        if self.settings.deep_research_enabled and not state.get("skip_research") and intent not in NOT_RESEARCHED:
            assessment = await self.complexity.assess(text, state["classification"])
            add_trace(state, Node.MERGE, {"complex": assessment.is_complex, "confidence": assessment.confidence})
            if assessment.is_complex and assessment.confidence >= self.settings.deep_research_min_confidence:
                state["plan"] = Plan(
                    route=Node.CONSENT_REQUEST,
                    intent=intent,
                    query=text,
                    needs_consent=True,
                    consent_kind=DEEP_RESEARCH,
                    reason=assessment.reasoning,
                )
                state["next"] = Node.CONSENT_REQUEST.value
                return state

        if intent == "destinations" and "dates" in missing and has_flight_vocab(text):
            state["plan"] = Plan(route=Node.CONSENT_REQUEST, intent=intent, query=text, needs_consent=True)
            state["next"] = Node.CONSENT_REQUEST.value
            return state

        if missing:
            state["next"] = Node.CLARIFY.value
            return state

        if intent == "unknown":
            state["question"] = unknown_question(slots)
            state["next"] = Node.CLARIFY.value
            return state

        query = (search_command(text) or text) if intent == "web_search" else ""
        state["plan"] = Plan(
            route=Node.DISPATCH,
            intent=intent,
            calls=self.dispatcher.plan(intent, slots, query),
            query=query,
            verify=self.settings.auto_verify_replies,
        )
        state["next"] = Node.DISPATCH.value
        return state

    # ---------------------------
    # Terminal questions
    # ---------------------------
    async def node_clarify(self, state: TurnState) -> TurnState:
        q = state.get("question") or build_clarifying_question(state.get("missing") or [], state.get("slots"))
        add_trace(state, Node.CLARIFY, {"missing": state.get("missing") or [], "question": q})
        return _finish(state, Node.CLARIFY, q)

    async def node_consent_request(self, state: TurnState) -> TurnState:
        plan: Plan = state["plan"]
        await self.consent.request_consent(state["thread_id"], plan.query, plan.consent_kind)
        state["consent"] = {"awaiting": True, "pending_query": plan.query, "kind": plan.consent_kind}
        add_trace(state, Node.CONSENT_REQUEST, {"pending_query": plan.query, "kind": plan.consent_kind})

        if plan.consent_kind == DEEP_RESEARCH:
            reply = self.settings.consent_deep_research_message
            if plan.reason:
                reply += f"\n\nReason: {plan.reason}"
            return _finish(state, Node.CONSENT_REQUEST, reply)
        return _finish(state, Node.CONSENT_REQUEST, self.settings.consent_web_search_message)

    # ---------------------------
    # DISPATCH -> COMPOSE -> VERIFY
    # ---------------------------
    async def node_dispatch(self, state: TurnState) -> TurnState:
        plan: Plan = state["plan"]
        results = await self.dispatcher.run(plan.calls, state.get("cancel"))
        state["results"] = results
        add_trace(state, Node.DISPATCH, {
            "intent": plan.intent,
            "tools": [{"tool": r.tool, "ok": r.ok, "reason": r.reason, "ms": r.latency_ms} for r in results],
        })
        state["next"] = Node.COMPOSE.value
        return state

    async def node_compose(self, state: TurnState) -> TurnState:
        tid = state["thread_id"]
        plan: Plan = state["plan"]
        slots = state.get("slots") or {}
        results = state.get("results") or []
        facts = [f for r in results if r.ok for f in r.facts]

        narrative = await narrate(self.llm, plan.intent, slots, facts)
        comp = self.composer.compose(
            plan.intent, slots, results, narrative=narrative, flags=state.get("flags") or [], message=state["user_input"]
        )
        if plan.needs_consent or plan.intent == "web_search":
            comp.decisions.insert(0, Decision(
                action="Searched the web",
                rationale="User granted consent or asked for a search explicitly",
                confidence=0.9,
            ))
            comp.receipts.decisions = list(comp.decisions)

        if self._offer_web_search(plan, results):
            await self.consent.request_consent(tid, state["user_input"], WEB_SEARCH)
            state["consent"] = {"awaiting": True, "pending_query": state["user_input"], "kind": WEB_SEARCH}
            comp.reply = f"{comp.reply}\n\n{self.settings.consent_no_data_message}"
            comp.decisions.append(Decision(
                action="Offered a web search",
                rationale="None of the travel tools returned data for this request",
                alternatives=["Apologize only"],
                confidence=0.5,
            ))
            comp.receipts.decisions = list(comp.decisions)
            add_trace(state, Node.COMPOSE, {"offered_web_search": True})

        await self.memory.set_receipts(tid, {
            "facts": [f.model_dump() for f in comp.facts],
            "decisions": [d.model_dump() if isinstance(d, Decision) else d for d in comp.decisions],
            "reply": comp.reply,
            "token_estimate": comp.receipts.budgets.token_estimate,
        })
        await self.memory.set_verification(tid, None)

        state["composition"] = comp
        state["reply"] = comp.reply
        state["citations"] = comp.citations
        state["status"] = Node.COMPOSE.value
        add_trace(state, Node.COMPOSE, {"facts": len(comp.facts), "citations": comp.citations})

        state["next"] = Node.VERIFY.value if plan.verify else Node.DONE.value
        return state

    def _offer_web_search(self, plan: Plan, results) -> bool:
        if not self.settings.offer_web_search_on_no_data or not results or plan.intent in (WEB_SEARCH, DEEP_RESEARCH):
            return False
        if any(r.ok for r in results):
            return False
        return bool({r.reason or "exception" for r in results} - NO_OFFER_REASONS)

    async def node_verify(self, state: TurnState) -> TurnState:
        comp = state["composition"]
        try:
            result = await self.verifier.run(
                state["thread_id"],
                comp.reply,
                comp.facts,
                comp.citations,
                state["plan"].intent,
                state.get("prior_slots") or {},
                last_intent=state.get("last_intent"),
            )
        except Exception:
            log.warning("verify_unavailable", exc_info=True)
            await self.memory.set_verification(state["thread_id"], None)
            result = None

        state["verification"] = result
        if result is not None and result.verdict == "fail" and result.revised_answer:
            state["revised_reply"] = result.revised_answer
        add_trace(state, Node.VERIFY, {"verdict": result.verdict if result else None})
        state["next"] = Node.DONE.value
        return state

    # ---------------------------
    # Build graph
    # ---------------------------
    def build(self):
        g = StateGraph(TurnState)

        g.add_node(Node.ROUTE.value, self.node_route)
        g.add_node(Node.CONSENT_CHECK.value, self.node_consent_check)
        g.add_node(Node.CLASSIFY.value, self.node_classify)
        g.add_node(Node.MERGE.value, self.node_merge)
        g.add_node(Node.CLARIFY.value, self.node_clarify)
        g.add_node(Node.CONSENT_REQUEST.value, self.node_consent_request)
        g.add_node(Node.DISPATCH.value, self.node_dispatch)
        g.add_node(Node.COMPOSE.value, self.node_compose)
        g.add_node(Node.VERIFY.value, self.node_verify)

        g.set_entry_point(Node.ROUTE.value)

        edges = {n.value: n.value for n in Node if n not in (Node.ROUTE, Node.DONE)}
        edges[Node.DONE.value] = END
        for n in Node:
            if n is Node.DONE:
                continue
            g.add_conditional_edges(n.value, node_next, edges)

        return g.compile()


def node_next(state: TurnState) -> str:
    return state.get("next") or Node.DONE.value
