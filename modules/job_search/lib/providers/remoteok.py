from __future__ import annotations

from typing import Any

from ..models import ProviderResult, SearchParams
from .base import BaseProvider, ProviderError
from .registry import register


@register
class RemoteOKProvider(BaseProvider):
    """
    RemoteOK public JSON feed (no key).

    The feed has no server-side search: the first element is a legal notice,
    the rest is every open listing, so the query is applied here against
    position, company, description and tags before slicing to `limit`.
    """

    id = "remoteok"
    name = "Remote OK"
    priority = 1
    rate_limit_ms = 1000

    API_URL = "https://remoteok.com/api"

    def _search(self, params: SearchParams) -> ProviderResult:
        data = self.client.get_json(self.API_URL, params={"api": 1})
        if not isinstance(data, list):
            raise ProviderError(f"unexpected RemoteOK payload: {type(data).__name__}")

        jobs = [j for j in data[1:] if isinstance(j, dict)]
        q = params.query.lower()
        if q:
            jobs = [j for j in jobs if _matches(j, q)]

        tags = [str(t).lower() for t in params.extra.get("tags") or []]
        if tags:
            jobs = [j for j in jobs if any(t in _tags(j) for t in tags)]

        jobs = jobs[: max(1, params.limit)]
        return ProviderResult(source=self.id, jobs=jobs, total=len(jobs))


def _tags(job: dict[str, Any]) -> list[str]:
    return [str(t).lower() for t in job.get("tags") or []]


def _matches(job: dict[str, Any], q: str) -> bool:
    for field in ("position", "company", "description"):
        if q in str(job.get(field) or "").lower():
            return True
    return any(q in t for t in _tags(job))
