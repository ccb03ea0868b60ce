from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import urlparse

from wayfarer.compose.receipts import Fact
from wayfarer.errors import ToolError
from wayfarer.providers.base import SearchProvider


def research_queries(query: str, slots: Dict[str, Any], extra: Sequence[str] = (), limit: int = 4) -> List[str]:
    """The user's question first, then expansions, without duplicates."""
    city = slots.get("city") or slots.get("destinationCity")
    when = slots.get("month") or slots.get("season")
    candidates = [query, *extra]
    if city and city.lower() not in query.lower():
        candidates.append(f"{query} {city}")
    if city:
        candidates.append(" ".join(x for x in (city, "travel guide", when) if x))

    out: List[str] = []
    for q in candidates:
        q = " ".join((q or "").split())
        if q and q.lower() not in {x.lower() for x in out}:
            out.append(q)
    return out[:limit]


def _domain(url: Optional[str]) -> str:
    return (urlparse(url or "").hostname or "").lower()


def run_research_agent(
    provider: SearchProvider, queries: Sequence[str], per_query: int = 5, max_results: int = 12
) -> dict:
    """
    Several searches, one result per domain. Individual query failures are
    tolerated as long as one query returns something.
    """
    collected: List[dict] = []
    last_error: Optional[ToolError] = None
    for q in queries:
        try:
            collected.extend(provider.search(q, count=per_query))
        except ToolError as e:
            last_error = e

    seen, top = set(), []
    for r in collected:
        d = _domain(r.get("url"))
        if d and d not in seen:
            seen.add(d)
            top.append(dict(r, domain=d))
    top = top[:max_results]

    if not top:
        if last_error is not None:
            raise last_error
        raise ToolError("empty", f"no results for {queries[0] if queries else ''!r}")

    source = getattr(provider, "source", "Brave Search")
    domains = [r["domain"] for r in top]
    return {
        "query": queries[0],
        "queries": list(queries),
        "results": top,
        "domains": domains,
        # more independent domains, more confidence
        "confidence": round(0.6 + 0.4 * min(len(domains) / 5, 1.0), 2),
        "facts": [
            Fact(source=source, key=f"research_{i}", value=f"{r['title']}: {r.get('description', '')[:100]}", url=r["url"])
            for i, r in enumerate(top[:5])
        ],
    }
