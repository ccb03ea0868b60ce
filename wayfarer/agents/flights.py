from wayfarer.compose.receipts import Fact
from wayfarer.errors import ToolError
from wayfarer.providers.base import FlightsProvider


def run_flights_agent(provider: FlightsProvider, origin: str, destination: str, date_iso: str, adults: int = 1) -> dict:
    flights = provider.search_flights(origin, destination, date_iso, adults=adults)
    if not flights:
        raise ToolError("empty", f"no flights {origin} -> {destination} on {date_iso}")
    cheapest = flights[0]
    source = getattr(provider, "source", "Amadeus")
    facts = [
        Fact(source=source, key="flight_count", value=len(flights)),
        Fact(
            source=source,
            key="cheapest_flight",
            value=f"{cheapest.get('flight_no') or cheapest.get('airline')} "
                  f"{cheapest.get('price')} {cheapest.get('currency', '')}".strip(),
        ),
    ]
    return {"flights": flights, "cheapest": cheapest, "facts": facts}
