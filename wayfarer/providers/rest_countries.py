import os
from typing import Any, Dict

from wayfarer.errors import ToolError, UnknownLocationError
from wayfarer.providers.base import CountryProvider, HttpProvider
from wayfarer.utils.country import country_name


class RestCountriesProvider(HttpProvider, CountryProvider):
    """REST Countries (no API key)."""

    BASE_URL = os.getenv("REST_COUNTRIES_BASE", "https://restcountries.com/v3.1")
    source = "REST Countries"

    def country_facts(self, name: str) -> Dict[str, Any]:
        # accept ISO codes as well as names
        query = country_name(name) or name
        try:
            data = self._get(
                f"/name/{query}",
                params={"fields": "name,capital,currencies,languages,region,population,cca2"},
            )
        except ToolError as e:
            if e.reason == "not_found":
                raise UnknownLocationError("country", name) from e
            raise
        if not data:
            raise UnknownLocationError("country", name)

        c = data[0]
        currencies = [v.get("name") for v in (c.get("currencies") or {}).values() if v.get("name")]
        return {
            "country": (c.get("name") or {}).get("common") or name,
            "code": c.get("cca2"),
            "capital": (c.get("capital") or [None])[0],
            "region": c.get("region"),
            "currencies": currencies,
            "languages": sorted((c.get("languages") or {}).values()),
            "population": c.get("population"),
            "url": f"https://restcountries.com/v3.1/name/{query}",
        }
