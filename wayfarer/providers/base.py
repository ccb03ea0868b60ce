from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import requests

from wayfarer.errors import ProviderHTTPError, ToolError


class WeatherProvider(ABC):
    @abstractmethod
    def forecast(self, city: str) -> Dict[str, Any]:
        ...


class AttractionsProvider(ABC):
    @abstractmethod
    def search_attractions(self, city: str, limit: int = 5) -> List[dict]:
        ...


class CountryProvider(ABC):
    @abstractmethod
    def country_facts(self, name: str) -> Dict[str, Any]:
        ...


class FlightsProvider(ABC):
    @abstractmethod
    def search_flights(self, origin: str, destination: str, date_iso: str, adults: int = 1) -> list[dict]:
        ...


class SearchProvider(ABC):
    @abstractmethod
    def search(self, query: str, count: int = 5) -> List[dict]:
        ...


class HttpProvider:
    """
    Small requests wrapper shared by the REST providers.
    HTTP errors become ProviderHTTPError so the resilience layer can decide
    whether a retry makes sense; transport errors become ToolError("network").
    """

    BASE_URL = ""

    def __init__(self, timeout: int = 10, session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.session = session or requests.Session()

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None, headers: Optional[Dict[str, str]] = None) -> Any:
        url = path if path.startswith("http") else f"{self.BASE_URL}{path}"
        try:
            r = self.session.get(url, params=params or {}, headers=headers or {}, timeout=self.timeout)
        except requests.Timeout as e:
            raise ToolError("timeout", str(e)) from e
        except requests.RequestException as e:
            raise ToolError("network", str(e)) from e
        if r.status_code == 404:
            raise ToolError("not_found", url)
        if r.status_code >= 400:
            raise ProviderHTTPError(r.status_code, r.text[:200])
        return r.json()
