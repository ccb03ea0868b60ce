"""
Typed receipts: the facts a turn used, the decisions it took, the
self-check result and rough cost figures. Rendered by the /why command.
"""
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field

Verdict = Literal["pass", "warn", "fail"]


class Fact(BaseModel):
    source: str
    key: str
    value: Any = None
    url: Optional[str] = None
    latency_ms: Optional[int] = None


class Decision(BaseModel):
    action: str
    rationale: str
    alternatives: Optional[List[str]] = None
    confidence: Optional[float] = None


class SelfCheck(BaseModel):
    verdict: Verdict = "warn"
    notes: List[str] = Field(default_factory=lambda: ["self-check not run"])
    scores: Optional[Dict[str, float]] = None


class Budgets(BaseModel):
    ext_api_latency_ms: int = 0
    token_estimate: Optional[int] = None


class Receipts(BaseModel):
    sources: List[str] = Field(default_factory=list)
    decisions: List[Union[Decision, str]] = Field(default_factory=list)
    self_check: SelfCheck = Field(default_factory=SelfCheck)
    budgets: Budgets = Field(default_factory=Budgets)


def estimate_tokens(*texts: str) -> int:
    return sum(len(t or "") for t in texts) // 4


def build_receipts_skeleton(
    facts: List[Fact],
    decisions: List[Union[Decision, str]],
    token_estimate: Optional[int] = None,
) -> Receipts:
    sources: List[str] = []
    for f in facts:
        if f.source not in sources:
            sources.append(f.source)
    return Receipts(
        sources=sources,
        decisions=list(decisions),
        budgets=Budgets(
            ext_api_latency_ms=sum(f.latency_ms or 0 for f in facts),
            token_estimate=token_estimate,
        ),
    )


def format_decision(d: Union[Decision, str]) -> str:
    if isinstance(d, str):
        return d
    extra = [f"rationale: {d.rationale}"]
    if d.alternatives:
        extra.append(f"alternatives: {', '.join(d.alternatives)}")
    if d.confidence is not None:
        extra.append(f"confidence: {d.confidence}")
    return f"{d.action} ({', '.join(extra)})"


def render_receipts(receipts: Receipts, verification_available: bool = True) -> str:
    sources = ", ".join(receipts.sources) or "none"
    decisions = " ".join(format_decision(d) for d in receipts.decisions) or "none"
    if verification_available:
        check = receipts.self_check.verdict
        if receipts.self_check.notes:
            check += f" ({', '.join(receipts.self_check.notes)})"
    else:
        check = "not available"
    b = receipts.budgets
    return (
        "--- RECEIPTS ---\n\n"
        f"Sources: {sources}\n\n"
        f"Decisions: {decisions}\n\n"
        f"Self-Check: {check}\n\n"
        f"Budget: {b.ext_api_latency_ms}ms API, ~{b.token_estimate or 0} tokens"
    )
