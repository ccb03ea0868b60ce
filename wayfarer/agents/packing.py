from typing import Optional

from wayfarer.agents.weather import run_weather_agent
from wayfarer.compose.receipts import Fact
from wayfarer.providers.base import WeatherProvider

PACKING = {
    "hot": ["light breathable clothing", "sunscreen", "sunglasses", "hat", "refillable water bottle", "sandals"],
    "mild": ["layers", "light jacket", "comfortable walking shoes", "compact umbrella", "long pants"],
    "cold": ["warm coat", "thermal layers", "gloves", "scarf", "warm hat", "waterproof boots"],
}
RAIN_ITEMS = ["rain jacket", "compact umbrella"]


def choose_band(max_c: Optional[float], min_c: Optional[float]) -> Optional[str]:
    if max_c is None and min_c is None:
        return None
    hi = max_c if max_c is not None else min_c
    lo = min_c if min_c is not None else max_c
    if hi >= 26:
        return "hot"
    if lo <= 5 or hi <= 10:
        return "cold"
    return "mild"


def run_packing_agent(provider: WeatherProvider, city: str, when: Optional[str] = None) -> dict:
    wx = run_weather_agent(provider, city)
    data = wx["weather"]
    band = choose_band(data.get("max_c"), data.get("min_c"))
    items = list(PACKING[band or "mild"])
    if (data.get("precip_chance") or 0) >= 50:
        items += [i for i in RAIN_ITEMS if i not in items]

    source = getattr(provider, "source", "Open-Meteo")
    return {
        "weather": data,
        "summary": wx["summary"],
        "band": band,
        "items": items,
        "when": when,
        "facts": wx["facts"] + [Fact(source=source, key="packing_items", value=items)],
    }
