import os
from typing import Any, Dict

from wayfarer.errors import UnknownLocationError
from wayfarer.providers.base import HttpProvider, WeatherProvider

GEOCODE_URL = os.getenv("OPEN_METEO_GEOCODE_URL", "https://geocoding-api.open-meteo.com/v1/search")


class OpenMeteoProvider(HttpProvider, WeatherProvider):
    """
    Open-Meteo (no API key). Geocodes the city name, then pulls today's
    current conditions and a 7 day daily summary.
    """

    BASE_URL = os.getenv("OPEN_METEO_BASE", "https://api.open-meteo.com")
    source = "Open-Meteo"

    def geocode(self, city: str) -> Dict[str, Any]:
        data = self._get(GEOCODE_URL, params={"name": city, "count": 1, "language": "en", "format": "json"})
        results = (data or {}).get("results") or []
        if not results:
            raise UnknownLocationError("city", city)
        top = results[0]
        return {
            "name": top.get("name") or city,
            "country": top.get("country"),
            "country_code": top.get("country_code"),
            "latitude": top["latitude"],
            "longitude": top["longitude"],
        }

    def forecast(self, city: str) -> Dict[str, Any]:
        place = self.geocode(city)
        data = self._get(
            "/v1/forecast",
            params={
                "latitude": place["latitude"],
                "longitude": place["longitude"],
                "current": "temperature_2m",
                "daily": "temperature_2m_max,temperature_2m_min,precipitation_probability_max",
                "timezone": "auto",
                "forecast_days": 7,
            },
        )
        daily = data.get("daily") or {}
        maxes = [t for t in (daily.get("temperature_2m_max") or []) if t is not None]
        mins = [t for t in (daily.get("temperature_2m_min") or []) if t is not None]
        rain = [p for p in (daily.get("precipitation_probability_max") or []) if p is not None]

        return {
            "city": place["name"],
            "country": place.get("country"),
            "current_c": (data.get("current") or {}).get("temperature_2m"),
            "max_c": round(sum(maxes) / len(maxes), 1) if maxes else None,
            "min_c": round(sum(mins) / len(mins), 1) if mins else None,
            "precip_chance": max(rain) if rain else None,
            "url": "https://open-meteo.com/",
        }
