from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field, fields
from typing import Any

from .utils import truthy

MAX_LIMIT = 50
DEFAULT_LIMIT = 20


@dataclass(frozen=True)
class NormalizedJob:
    """
    One job listing in the canonical shape, whatever provider it came from.
    `id` is always f"{source}_{external_id}" and stable across re-fetches.
    """

    id: str
    source: str  # provider id, or "regional_<site>" for regional sources
    external_id: str
    title: str = "Unknown Position"
    company: str = "Unknown Company"
    company_logo: str | None = None
    location: str = "Remote"
    location_type: str = "onsite"  # remote | hybrid | onsite
    country: str = ""
    city: str = ""
    salary: str = ""
    salary_min: float | None = None
    salary_max: float | None = None
    salary_currency: str | None = None
    job_type: str = "full-time"
    experience_level: str = "mid"
    description: str = ""
    requirements: list[str] = field(default_factory=list)
    benefits: list[str] = field(default_factory=list)
    skills: list[str] = field(default_factory=list)
    apply_url: str = "#"
    posted_at: str = ""
    expires_at: str | None = None
    tags: list[str] = field(default_factory=list)
    featured: bool = False
    raw_data: Any = None

    @property
    def dedupe_key(self) -> str:
        return f"{self.title.lower()}-{self.company.lower()}"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> NormalizedJob:
        """Rebuild from `to_dict()` output; unknown keys are ignored."""
        names = {f.name for f in fields(cls)}
        kw = {k: v for k, v in dict(data).items() if k in names}
        for list_field in ("requirements", "benefits", "skills", "tags"):
            kw[list_field] = list(kw.get(list_field) or [])
        return cls(**kw)


@dataclass(frozen=True)
class SearchParams:
    """
    Everything a caller can ask of a search. Built with `from_mapping`, which
    accepts both snake_case and the camelCase names used by HTTP callers.
    """

    query: str = ""
    location: str = ""
    country: str = ""
    city: str = ""
    job_type: str = ""
    experience_level: str = ""
    salary_min: int = 0
    salary_max: int = 0
    remote: bool = False
    page: int = 1
    limit: int = DEFAULT_LIMIT
    sources: tuple[str, ...] | None = None
    regional_sources: tuple[str, ...] | None = None
    is_ausbildung: bool = False
    ausbildung_field: str = ""
    use_cache: bool = True
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> SearchParams:
        d = dict(data or {})

        def pick(*names: str, default: Any = None) -> Any:
            for n in names:
                if d.get(n) not in (None, ""):
                    return d[n]
            return default

        known = {
            "query", "q", "location", "country", "city", "job_type", "jobType",
            "experience_level", "experienceLevel", "experience", "salary_min", "salaryMin",
            "salary_max", "salaryMax", "remote", "page", "limit", "sources",
            "regional_sources", "regionalSources", "moroccoSources", "is_ausbildung",
            "isAusbildung", "ausbildung_field", "ausbildungField", "use_cache", "useCache",
            "cache",
        }
        use_cache = pick("use_cache", "useCache", "cache", default=True)

        return cls(
            query=str(pick("query", "q", default="")).strip(),
            location=str(pick("location", default="")).strip(),
            country=str(pick("country", default="")).strip(),
            city=str(pick("city", default="")).strip(),
            job_type=str(pick("job_type", "jobType", default="")).strip(),
            experience_level=str(pick("experience_level", "experienceLevel", "experience", default="")).strip(),
            salary_min=_to_int(pick("salary_min", "salaryMin", default=0)),
            salary_max=_to_int(pick("salary_max", "salaryMax", default=0)),
            remote=truthy(pick("remote", default=False)),
            page=max(1, _to_int(pick("page", default=1), 1)),
            limit=min(max(1, _to_int(pick("limit", default=DEFAULT_LIMIT), DEFAULT_LIMIT)), MAX_LIMIT),
            sources=_to_id_tuple(pick("sources")),
            regional_sources=_to_id_tuple(pick("regional_sources", "regionalSources", "moroccoSources")),
            is_ausbildung=truthy(pick("is_ausbildung", "isAusbildung", default=False)),
            ausbildung_field=str(pick("ausbildung_field", "ausbildungField", default="")).strip(),
            use_cache=use_cache if isinstance(use_cache, bool) else str(use_cache).strip().lower() != "false",
            extra={k: v for k, v in d.items() if k not in known},
        )

    def as_provider_kwargs(self, **overrides: Any) -> dict[str, Any]:
        """The provider-contract view of these params (snake_case, plus extras)."""
        out = {
            "query": self.query,
            "location": self.location,
            "country": self.country,
            "city": self.city,
            "job_type": self.job_type,
            "experience_level": self.experience_level,
            "salary_min": self.salary_min,
            "salary_max": self.salary_max,
            "remote": self.remote,
            "page": self.page,
            "limit": self.limit,
            "ausbildung_field": self.ausbildung_field,
            **self.extra,
        }
        out.update(overrides)
        return out


@dataclass
class ProviderResult:
    """
    What a provider's search() returns: raw records plus a total.
    A non-empty `error` means the call failed and `jobs` is empty.
    """

    source: str
    jobs: list[Any] = field(default_factory=list)
    total: int = 0
    error: str | None = None


@dataclass
class ProviderOutcome:
    """
    One fan-out branch after normalization.
    `sources` lists the provenance ids contributed by this branch (a nested
    aggregator can contribute several).
    """

    source: str
    priority: int
    jobs: list[NormalizedJob] = field(default_factory=list)
    total: int = 0
    error: str | None = None
    sources: list[str] = field(default_factory=list)
    stats: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class CachedSearch:
    """Cache payload: the deduped, sorted, filtered set for one cache key."""

    jobs: tuple[NormalizedJob, ...]
    total: int
    sources: tuple[str, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "jobs": [j.to_dict() for j in self.jobs],
            "total": self.total,
            "sources": list(self.sources),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CachedSearch:
        jobs = tuple(NormalizedJob.from_dict(j) for j in data.get("jobs") or [])
        return cls(
            jobs=jobs,
            total=int(data.get("total") or len(jobs)),
            sources=tuple(data.get("sources") or ()),
        )


@dataclass
class SearchResult:
    jobs: list[NormalizedJob]
    total: int
    page: int
    limit: int
    total_pages: int
    sources: list[str]
    cached: bool
    provider_stats: dict[str, int] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)

    @staticmethod
    def pages_for(total: int, limit: int) -> int:
        return math.ceil(total / limit) if limit > 0 else 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "jobs": [j.to_dict() for j in self.jobs],
            "total": self.total,
            "page": self.page,
            "limit": self.limit,
            "total_pages": self.total_pages,
            "sources": list(self.sources),
            "cached": self.cached,
            "provider_stats": dict(self.provider_stats),
            "errors": dict(self.errors),
        }


def _to_int(v: Any, default: int = 0) -> int:
    try:
        return int(float(v))
    except (TypeError, ValueError, OverflowError):  # "inf", "1e400"
        return default


def _to_id_tuple(v: Any) -> tuple[str, ...] | None:
    if v is None or v == "":
        return None
    if isinstance(v, str):
        v = v.split(",")
    ids = tuple(str(x).strip().lower() for x in v if str(x).strip())
    return ids or None
