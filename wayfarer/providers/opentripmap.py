import os
from typing import List, Optional

from wayfarer.errors import ToolError, UnknownLocationError
from wayfarer.providers.base import AttractionsProvider, HttpProvider


class OpenTripMapProvider(HttpProvider, AttractionsProvider):
    """
    OpenTripMap points of interest. Needs OPENTRIPMAP_API_KEY; without it
    every call reports not_configured instead of hitting the network.
    """

    BASE_URL = os.getenv("OPENTRIPMAP_BASE", "https://api.opentripmap.com/0.1/en")
    source = "OpenTripMap"

    def __init__(self, api_key: Optional[str] = None, timeout: int = 10):
        super().__init__(timeout=timeout)
        self.api_key = api_key

    def search_attractions(self, city: str, limit: int = 5) -> List[dict]:
        if not self.api_key:
            raise ToolError("not_configured", "OPENTRIPMAP_API_KEY missing")

        geo = self._get("/places/geoname", params={"name": city, "apikey": self.api_key})
        if not geo or geo.get("status") == "NOT_FOUND" or "lat" not in geo:
            raise UnknownLocationError("city", city)

        places = self._get(
            "/places/radius",
            params={
                "radius": 10000,
                "lon": geo["lon"],
                "lat": geo["lat"],
                "kinds": "interesting_places",
                "rate": 3,
                "format": "json",
                "limit": limit * 3,
                "apikey": self.api_key,
            },
        )

        out = []
        seen = set()
        for p in places or []:
            name = (p.get("name") or "").strip()
            if not name or name.lower() in seen:
                continue
            seen.add(name.lower())
            out.append({
                "name": name,
                "kinds": (p.get("kinds") or "").split(",")[:3],
                "rate": p.get("rate"),
                "url": f"https://opentripmap.com/en/card/{p['xid']}" if p.get("xid") else None,
            })
            if len(out) >= limit:
                break
        return out
