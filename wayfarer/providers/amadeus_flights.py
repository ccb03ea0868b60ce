from typing import Any, Dict, List, Optional

from amadeus import Client, Location, ResponseError

from wayfarer.errors import ProviderHTTPError, ToolError, UnknownLocationError
from wayfarer.providers.base import FlightsProvider

# CITY codes cover every airport of a metro area, so they rank first
_SUBTYPE_RANK = {"CITY": 2, "AIRPORT": 1}


def _parse_offer(offer: Dict[str, Any], origin: str, destination: str, date_iso: str, currency: str) -> Optional[dict]:
    total = (offer.get("price") or {}).get("grandTotal")
    if total is None:
        return None
    itineraries = offer.get("itineraries") or [{}]
    segments = itineraries[0].get("segments") or [{}]
    first, last = segments[0], segments[-1]
    carrier, number = first.get("carrierCode"), first.get("number")
    return {
        "airline": carrier,
        "flight_no": f"{carrier}{number}" if carrier and number else None,
        "origin": origin,
        "destination": destination,
        "date": date_iso,
        "depart": (first.get("departure") or {}).get("at"),
        "arrive": (last.get("arrival") or {}).get("at"),
        "stops": max(0, len(segments) - 1),
        "price": float(total),
        "currency": currency,
    }


class AmadeusFlightsProvider(FlightsProvider):
    """
    Flight offers from the Amadeus self-service API.

    Free-text places ("New Delhi", "Heathrow", "JFK") are resolved through
    Airport & City Search before the offers call, so callers never need to
    know IATA codes.
    """

    source = "Amadeus"

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        hostname: str = "test",
        currency: str = "USD",
        max_offers: int = 15,
    ):
        self.currency = currency
        self.max_offers = max_offers
        self.client = None
        if client_id and client_secret:
            self.client = Client(client_id=client_id, client_secret=client_secret, hostname=hostname)
        self._iata: Dict[str, str] = {}

    def _require_client(self) -> Client:
        if self.client is None:
            raise ToolError("not_configured", "AMADEUS_CLIENT_ID/AMADEUS_CLIENT_SECRET missing")
        return self.client

    def locations(self, keyword: str, limit: int = 6) -> List[dict]:
        try:
            resp = self._require_client().reference_data.locations.get(keyword=keyword, subType=Location.ANY)
        except ResponseError:
            return []

        found = []
        for loc in resp.data or []:
            if not loc.get("iataCode"):
                continue
            address = loc.get("address") or {}
            found.append({
                "name": loc.get("name"),
                "iataCode": loc["iataCode"].upper(),
                "subType": (loc.get("subType") or "").upper(),
                "countryCode": address.get("countryCode"),
                "cityName": address.get("cityName"),
            })
        found.sort(key=lambda c: (_SUBTYPE_RANK.get(c["subType"], 0), c["name"] or ""), reverse=True)
        return found[:limit]

    def resolve_to_iata(self, text: str, field: str) -> str:
        place = (text or "").strip()
        if not place:
            raise UnknownLocationError(field, text)
        if len(place) == 3 and place.isalpha() and place.isupper():
            return place

        key = place.lower()
        if key not in self._iata:
            # autocomplete matches prefixes better than long names
            hits = self.locations(place) or (self.locations(place[:3]) if len(place) >= 3 else [])
            if not hits:
                raise UnknownLocationError(field, place)
            self._iata[key] = hits[0]["iataCode"]
        return self._iata[key]

    def search_flights(self, origin: str, destination: str, date_iso: str, adults: int = 1) -> list[dict]:
        client = self._require_client()
        o = self.resolve_to_iata(origin, "originCity")
        d = self.resolve_to_iata(destination, "destinationCity")

        try:
            resp = client.shopping.flight_offers_search.get(
                originLocationCode=o,
                destinationLocationCode=d,
                departureDate=date_iso,
                adults=adults,
                currencyCode=self.currency,
                max=self.max_offers,
            )
        except ResponseError as e:
            status = getattr(getattr(e, "response", None), "status_code", None) or 502
            raise ProviderHTTPError(int(status), str(e)) from e

        offers = (_parse_offer(off, o, d, date_iso, self.currency) for off in resp.data or [])
        return sorted((x for x in offers if x), key=lambda x: x["price"])
