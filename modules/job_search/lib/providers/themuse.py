from __future__ import annotations

from typing import Any

from ..models import ProviderResult, SearchParams
from .base import BaseProvider, ProviderError
from .registry import register

API_BASE = "https://www.themuse.com/api/public/jobs"

CATEGORIES = frozenset({
    "Account Management", "Business & Strategy", "Creative & Design", "Customer Service",
    "Data Science", "Editorial", "Education", "Engineering", "Finance",
    "Fundraising & Development", "Healthcare & Medicine", "HR & Recruiting", "Legal",
    "Marketing & PR", "Operations", "Product", "Project & Program Management", "Retail",
    "Sales", "Social Media & Community",
})

LEVELS = {
    "entry": "Entry Level",
    "mid": "Mid Level",
    "senior": "Senior Level",
    "intern": "Internship",
    "internship": "Internship",
}


@register
class TheMuseProvider(BaseProvider):
    """
    The Muse public API (no key). Pages are 0-based upstream and there is no
    keyword parameter, so the query is matched here on name/company/contents.
    """

    id = "themuse"
    name = "The Muse"
    priority = 4
    rate_limit_ms = 500

    def _search(self, params: SearchParams) -> ProviderResult:
        q: dict[str, Any] = {"page": max(1, params.page) - 1}
        category = params.extra.get("category")
        if category in CATEGORIES:
            q["category"] = category
        level = LEVELS.get(params.experience_level.lower())
        if level:
            q["level"] = level
        if params.location:
            q["location"] = params.location

        data = self.client.get_json(API_BASE, params=q)
        if not isinstance(data, dict):
            raise ProviderError(f"unexpected The Muse payload: {type(data).__name__}")

        jobs = [j for j in data.get("results") or [] if isinstance(j, dict)]
        needle = params.query.lower()
        if needle:
            jobs = [j for j in jobs if _matches(j, needle)]
        jobs = jobs[: max(1, params.limit)]
        return ProviderResult(source=self.id, jobs=jobs, total=int(data.get("total") or len(jobs)))

    def _get_job(self, external_id: str) -> Any | None:
        data = self.client.get_json(f"{API_BASE}/{external_id}")
        return data if isinstance(data, dict) and data.get("id") is not None else None


def _matches(job: dict[str, Any], needle: str) -> bool:
    company = job.get("company") if isinstance(job.get("company"), dict) else {}
    return any(
        needle in str(v or "").lower()
        for v in (job.get("name"), company.get("name"), job.get("contents"))
    )
