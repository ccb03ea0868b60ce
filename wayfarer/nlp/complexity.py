"""
Decides whether a request is a multi-constraint planning question that
deserves a deep-research pass (several searches, deduplicated and merged)
instead of a single tool lookup.
"""
import logging
import re
from typing import Dict, List, Optional, Set

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from wayfarer.llm.dialogue_manager import COMPLEXITY_PROMPT, safe_json_parse
from wayfarer.nlp.result import ClassificationResult

log = logging.getLogger(__name__)

_BUDGET_RE = re.compile(r"\b(budget|cheap(est)?|afford|cost|price|under)\b|[$€£₹]\s?\d", re.I)
_GROUP_RE = re.compile(
    r"\b(family|kids|children|toddler|group|friends|couple|honeymoon|parents|grandparents)\b"
    r"|\b\d{1,2}\s+(people|persons|adults|travell?ers|of us)\b",
    re.I,
)
_ACTIVITY_RE = re.compile(
    r"\b(museums?|hiking|beach(es)?|food|restaurants?|nightlife|shopping|ski(ing)?|diving|wine|festivals?)\b",
    re.I,
)
_ITINERARY_RE = re.compile(r"\b(itinerary|\d{1,2}[- ]days?|week[- ]long|route|multi[- ]city|road ?trip)\b", re.I)
_TRANSPORT_RE = re.compile(r"\bfrom\b.+\bto\b", re.I)


class ComplexityAssessment(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    is_complex: bool = Field(default=False, alias="isComplex")
    confidence: float = Field(default=0.0, ge=0, le=1)
    reasoning: str = ""


def constraints(text: str, result: Optional[ClassificationResult] = None) -> Set[str]:
    """Kinds of constraint the message puts on the trip."""
    found: Set[str] = set()
    slots: Dict[str, str] = dict(result.slots) if result else {}
    cities: List[str] = list(result.cities) if result else []

    if cities or slots.get("city") or slots.get("destinationCity"):
        found.add("location")
    if len(cities) > 1:
        found.add("multi_location")
    if slots.get("month") or slots.get("dates") or slots.get("season"):
        found.add("time")
    if (result is not None and result.content_type == "budget") or _BUDGET_RE.search(text):
        found.add("budget")
    if slots.get("passengers") or _GROUP_RE.search(text):
        found.add("group")
    if _ACTIVITY_RE.search(text):
        found.add("activities")
    if _ITINERARY_RE.search(text):
        found.add("itinerary")
    if _TRANSPORT_RE.search(text):
        found.add("transport")
    return found


def assess_complexity(text: str, result: Optional[ClassificationResult] = None) -> ComplexityAssessment:
    kinds = constraints(text, result)
    n = len(kinds)
    confidence = result.confidence if result else 0.0

    if n <= 1 and confidence > 0.8:
        return ComplexityAssessment(is_complex=False, confidence=0.9, reasoning="single_constraint")
    if {"budget", "group", "location"} <= kinds:
        return ComplexityAssessment(
            is_complex=True, confidence=0.85, reasoning="family_travel_planning: budget+group+location"
        )
    if n > 2:
        return ComplexityAssessment(
            is_complex=True,
            confidence=min(0.7 + (n - 2) * 0.1, 0.95),
            reasoning=f"multiple_constraints: {', '.join(sorted(kinds))}",
        )
    if len(text) > 50 and "multi_location" in kinds:
        return ComplexityAssessment(is_complex=True, confidence=0.8, reasoning="detailed_multi_location")
    return ComplexityAssessment(is_complex=False, confidence=0.6, reasoning=f"simple: {n} constraints")


class ComplexityAssessor:
    """
    Asks the LLM first; the constraint heuristic answers when the LLM is
    unavailable or returns something unusable.
    """

    def __init__(self, llm=None):
        self.llm = llm

    async def assess(self, text: str, result: Optional[ClassificationResult] = None) -> ComplexityAssessment:
        if self.llm is not None and getattr(self.llm, "available", False):
            raw = await self.llm.call(COMPLEXITY_PROMPT.format(message=text.strip()), response_format="json")
            parsed = safe_json_parse(raw)
            try:
                if "isComplex" in parsed:
                    return ComplexityAssessment.model_validate(parsed)
            except ValidationError:
                log.info("complexity_unparseable")
        return assess_complexity(text, result)
