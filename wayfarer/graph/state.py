from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, TypedDict

from wayfarer.agents.dispatcher import ToolCall


class Node(str, Enum):
    ROUTE = "route"
    CONSENT_CHECK = "consent_check"
    CLASSIFY = "classify"
    MERGE = "merge"
    CLARIFY = "clarify"
    CONSENT_REQUEST = "consent_request"
    DISPATCH = "dispatch"
    COMPOSE = "compose"
    VERIFY = "verify"
    DONE = "done"


@dataclass
class Plan:
    route: Node
    intent: str
    calls: List[ToolCall] = field(default_factory=list)
    query: str = ""
    needs_consent: bool = False
    consent_kind: str = "web_search"
    reason: str = ""
    style: str = "short"
    verify: bool = False


class TurnState(TypedDict, total=False):
    thread_id: str
    user_input: str
    cancel: Any                     # optional asyncio.Event from the caller

    # memory loaded at ROUTE
    prior_slots: dict[str, Any]
    last_intent: Optional[str]
    consent: dict[str, Any]

    # classification + merge
    classification: Any             # ClassificationResult
    intent: str
    slots: dict[str, Any]           # merged, committed slots
    missing: list[str]
    flags: list[str]
    question: Optional[str]         # pre-built clarifying question (conflicts, unknown intent)
    plan: Optional[Plan]
    skip_research: bool             # deep research was declined for this text

    # outputs
    next: str
    status: str                     # node that produced the reply
    reply: str
    citations: list[str]
    results: list[Any]              # ToolResult
    composition: Any                # Composition
    verification: Any               # VerificationResult | None
    revised_reply: Optional[str]
    trace: list[dict]
