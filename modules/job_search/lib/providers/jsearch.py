from __future__ import annotations

from typing import Any

from ..models import ProviderResult, SearchParams
from .base import BaseProvider, ProviderError
from .registry import register

API_BASE = "https://jsearch.p.rapidapi.com"
API_HOST = "jsearch.p.rapidapi.com"

EMPLOYMENT_TYPES = {
    "full-time": "FULLTIME",
    "part-time": "PARTTIME",
    "contract": "CONTRACTOR",
    "internship": "INTERN",
}

JOB_REQUIREMENTS = {
    "entry": "no_experience",
    "intern": "no_experience",
    "mid": "under_3_years_experience",
    "senior": "more_than_3_years_experience",
}


@register
class JSearchProvider(BaseProvider):
    """RapidAPI JSearch (Google for Jobs aggregate). Supports direct lookup."""

    id = "jsearch"
    name = "JSearch"
    priority = 3
    rate_limit_ms = 1000
    credential_keys = ("JSEARCH_API_KEY",)

    def _headers(self) -> dict[str, str]:
        key = self.credentials.get("JSEARCH_API_KEY")
        if not key:
            raise ProviderError("JSearch API key is not configured")
        return {"X-RapidAPI-Key": key, "X-RapidAPI-Host": API_HOST}

    def _search(self, params: SearchParams) -> ProviderResult:
        text = params.query or "developer"
        if params.location:
            text += f" in {params.location}"
        if params.country:
            text += f" {params.country}"

        q: dict[str, Any] = {"query": text, "page": max(1, params.page), "num_pages": 1}
        if params.remote:
            q["remote_jobs_only"] = "true"
        date_posted = params.extra.get("date_posted") or params.extra.get("datePosted")
        if date_posted and date_posted != "all":
            q["date_posted"] = date_posted
        employment = EMPLOYMENT_TYPES.get(params.job_type.lower())
        if employment:
            q["employment_types"] = employment
        requirements = JOB_REQUIREMENTS.get(params.experience_level.lower())
        if requirements:
            q["job_requirements"] = requirements

        data = self.client.get_json(f"{API_BASE}/search", params=q, headers=self._headers())
        if not isinstance(data, dict):
            raise ProviderError(f"unexpected JSearch payload: {type(data).__name__}")
        jobs = [j for j in data.get("data") or [] if isinstance(j, dict)]
        return ProviderResult(source=self.id, jobs=jobs, total=len(jobs))

    def _get_job(self, external_id: str) -> Any | None:
        data = self.client.get_json(
            f"{API_BASE}/job-details",
            params={"job_id": external_id},
            headers=self._headers(),
        )
        rows = data.get("data") if isinstance(data, dict) else None
        return rows[0] if rows else None
