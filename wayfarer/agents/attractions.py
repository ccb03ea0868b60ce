from wayfarer.compose.receipts import Fact
from wayfarer.errors import ToolError
from wayfarer.providers.base import AttractionsProvider


def run_attractions_agent(provider: AttractionsProvider, city: str, limit: int = 5) -> dict:
    places = provider.search_attractions(city, limit=limit)
    if not places:
        raise ToolError("empty", f"no attractions for {city}")
    source = getattr(provider, "source", "OpenTripMap")
    return {
        "attractions": places,
        "facts": [
            Fact(source=source, key=f"attraction_{i}", value=p["name"], url=p.get("url"))
            for i, p in enumerate(places)
        ],
    }
