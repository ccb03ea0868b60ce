import re
from typing import List

from wayfarer.compose.receipts import Fact

ATTRIBUTION_PATTERNS = [
    re.compile(r"\[source:", re.I),
    re.compile(r"\(source:", re.I),
    re.compile(r"\bsources?:", re.I),
    re.compile(r"according to", re.I),
    re.compile(r"based on .*report", re.I),
    re.compile(r"study shows", re.I),
    re.compile(r"research indicates", re.I),
]

_SENTENCE = re.compile(r"(?<=[.!?])\s+")


class CitationFabricationError(AssertionError):
    """Source-attribution language in a reply that used no external facts."""


def external_facts(facts: List[Fact]) -> List[Fact]:
    return [f for f in facts if (f.source or "").strip()]


def enforce_citations(facts: List[Fact]) -> List[str]:
    out: List[str] = []
    for f in external_facts(facts):
        if f.source not in out:
            out.append(f.source)
    return out


def has_attribution(text: str) -> bool:
    return any(p.search(text or "") for p in ATTRIBUTION_PATTERNS)


def strip_attribution(text: str) -> str:
    """Drop sentences that attribute claims to a source."""
    kept = [s for s in _SENTENCE.split(text or "") if not has_attribution(s)]
    return " ".join(kept).strip()


def validate_no_citation(reply: str, has_external_facts: bool) -> None:
    if has_external_facts:
        return
    for p in ATTRIBUTION_PATTERNS:
        if p.search(reply or ""):
            raise CitationFabricationError(f"fabricated citation: {p.pattern}")
