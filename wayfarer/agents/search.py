from wayfarer.compose.receipts import Fact
from wayfarer.errors import ToolError
from wayfarer.providers.base import SearchProvider


def run_search_agent(provider: SearchProvider, query: str, count: int = 5) -> dict:
    results = provider.search(query, count=count)
    if not results:
        raise ToolError("empty", f"no results for {query!r}")
    source = getattr(provider, "source", "Brave Search")
    return {
        "query": query,
        "results": results,
        "facts": [
            Fact(source=source, key=f"search_result_{i}", value=f"{r['title']}: {r['description'][:100]}", url=r.get("url"))
            for i, r in enumerate(results[:3])
        ],
    }
