from typing import Any, Dict

from wayfarer.compose.receipts import Fact
from wayfarer.providers.base import WeatherProvider


def summarize_weather(wx: Dict[str, Any]) -> str:
    parts = []
    if wx.get("current_c") is not None:
        parts.append(f"currently {wx['current_c']}°C")
    if wx.get("max_c") is not None and wx.get("min_c") is not None:
        parts.append(f"highs around {wx['max_c']}°C and lows around {wx['min_c']}°C")
    if wx.get("precip_chance") is not None:
        parts.append(f"up to {wx['precip_chance']}% chance of rain")
    return ", ".join(parts) or "no detailed readings available"


def run_weather_agent(provider: WeatherProvider, city: str) -> dict:
    wx = provider.forecast(city)
    summary = summarize_weather(wx)
    source = getattr(provider, "source", "Open-Meteo")
    return {
        "weather": wx,
        "summary": summary,
        "facts": [Fact(source=source, key="weather_summary", value=summary, url=wx.get("url"))],
    }
