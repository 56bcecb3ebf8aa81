from __future__ import annotations

from typing import Any

from ..models import ProviderResult, SearchParams
from .base import BaseProvider, ProviderError
from .registry import register

API_BASE = "https://api.adzuna.com/v1/api/jobs"
MAX_RESULTS_PER_PAGE = 50

# Adzuna serves one index per country; anything else falls back to "us".
COUNTRY_CODES = {
    "united states": "us", "usa": "us", "us": "us",
    "united kingdom": "gb", "uk": "gb", "gb": "gb",
    "australia": "au", "au": "au",
    "germany": "de", "deutschland": "de", "de": "de",
    "france": "fr", "fr": "fr",
    "canada": "ca", "ca": "ca",
    "netherlands": "nl", "nl": "nl",
    "india": "in", "in": "in",
    "brazil": "br", "br": "br",
    # No Moroccan index; the French one carries most francophone listings.
    "morocco": "fr", "maroc": "fr", "ma": "fr",
}

CONTRACT_TYPES = {
    "full-time": "permanent",
    "part-time": "part_time",
    "contract": "contract",
    "temporary": "temporary",
}


def adzuna_country(country: str, default: str = "us") -> str:
    return COUNTRY_CODES.get((country or "").strip().lower(), default)


@register
class AdzunaProvider(BaseProvider):
    id = "adzuna"
    name = "Adzuna"
    priority = 2
    rate_limit_ms = 500
    credential_keys = ("ADZUNA_APP_ID", "ADZUNA_APP_KEY")

    def _keys(self) -> tuple[str, str]:
        app_id = self.credentials.get("ADZUNA_APP_ID")
        app_key = self.credentials.get("ADZUNA_APP_KEY")
        if not app_id or not app_key:
            raise ProviderError("Adzuna credentials are not configured")
        return app_id, app_key

    def _query(self, params: SearchParams) -> dict[str, Any]:
        app_id, app_key = self._keys()
        q: dict[str, Any] = {
            "app_id": app_id,
            "app_key": app_key,
            "results_per_page": min(max(1, params.limit), MAX_RESULTS_PER_PAGE),
            "sort_by": "date",
        }
        if params.query:
            q["what"] = params.query
        if params.location:
            q["where"] = params.location
        contract = CONTRACT_TYPES.get(params.job_type.lower())
        if contract:
            q["contract_type"] = contract
        if params.salary_min > 0:
            q["salary_min"] = params.salary_min
        if params.salary_max > 0:
            q["salary_max"] = params.salary_max
        return q

    def _country(self, params: SearchParams) -> str:
        return adzuna_country(params.country)

    def _search(self, params: SearchParams) -> ProviderResult:
        url = f"{API_BASE}/{self._country(params)}/search/{max(1, params.page)}"
        data = self.client.get_json(url, params=self._query(params))
        if not isinstance(data, dict):
            raise ProviderError(f"unexpected Adzuna payload: {type(data).__name__}")
        jobs = [j for j in data.get("results") or [] if isinstance(j, dict)]
        return ProviderResult(source=self.id, jobs=jobs, total=int(data.get("count") or len(jobs)))
