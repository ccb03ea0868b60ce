import os
import re
from typing import List, Optional

from wayfarer.errors import ToolError
from wayfarer.providers.base import HttpProvider, SearchProvider

_TAGS = re.compile(r"<[^>]*>")


class BraveSearchProvider(HttpProvider, SearchProvider):
    BASE_URL = os.getenv("BRAVE_SEARCH_BASE", "https://api.search.brave.com/res/v1")
    source = "Brave Search"

    def __init__(self, api_key: Optional[str] = None, timeout: int = 12):
        super().__init__(timeout=timeout)
        self.api_key = api_key

    def search(self, query: str, count: int = 5) -> List[dict]:
        if not self.api_key:
            raise ToolError("not_configured", "BRAVE_SEARCH_API_KEY missing")
        data = self._get(
            "/web/search",
            params={"q": query, "count": count},
            headers={"Accept": "application/json", "X-Subscription-Token": self.api_key},
        )
        results = ((data or {}).get("web") or {}).get("results") or []
        return [
            {
                "title": _TAGS.sub("", r.get("title") or ""),
                "url": r.get("url"),
                "description": _TAGS.sub("", r.get("description") or "")[:300],
            }
            for r in results[:count]
            if r.get("url")
        ]
