from typing import Optional

from wayfarer.compose.receipts import Fact
from wayfarer.providers.base import CountryProvider, WeatherProvider


def run_destination_agent(
    weather: WeatherProvider, countries: CountryProvider, city: str, country: Optional[str] = None
) -> dict:
    """
    Country overview for a destination. When only a city is known the
    country comes from the weather provider's geocoder.
    """
    if not country:
        place = weather.geocode(city) if hasattr(weather, "geocode") else {}
        country = place.get("country_code") or place.get("country") or city

    cf = countries.country_facts(country)
    source = getattr(countries, "source", "REST Countries")
    summary_bits = [f"{cf['country']}"]
    if cf.get("capital"):
        summary_bits.append(f"capital {cf['capital']}")
    if cf.get("currencies"):
        summary_bits.append(f"currency {', '.join(cf['currencies'])}")
    if cf.get("languages"):
        summary_bits.append(f"languages {', '.join(cf['languages'][:3])}")
    summary = "; ".join(summary_bits)

    return {
        "country": cf,
        "summary": summary,
        "facts": [Fact(source=source, key="country_summary", value=summary, url=cf.get("url"))],
    }
