"""
Post-merge filters, dedupe, sort and pagination.

Providers only partly honour filters, so the merged set is filtered again
here. Every filter is a pure predicate over one job, which keeps
`post_filter` idempotent.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence

from .models import NormalizedJob, SearchParams
from .normalizer import normalize_experience_level, normalize_job_type
from .utils import EPOCH, parse_iso

# Equivalence classes; the first entry is the canonical name.
COUNTRY_ALIASES: dict[str, tuple[str, ...]] = {
    "us": ("united states", "usa", "us", "u.s.", "america"),
    "gb": ("united kingdom", "uk", "gb", "britain", "great britain", "england", "scotland", "wales"),
    "de": ("germany", "de", "deutschland"),
    "fr": ("france", "fr"),
    "es": ("spain", "es", "espana", "españa"),
    "it": ("italy", "it", "italia"),
    "nl": ("netherlands", "nl", "holland", "nederland"),
    "be": ("belgium", "be", "belgique", "belgië"),
    "ch": ("switzerland", "ch", "schweiz", "suisse"),
    "at": ("austria", "at", "österreich", "osterreich"),
    "ie": ("ireland", "ie"),
    "pt": ("portugal", "pt"),
    "pl": ("poland", "pl", "polska"),
    "se": ("sweden", "se", "sverige"),
    "ca": ("canada", "ca"),
    "au": ("australia", "au"),
    "in": ("india", "in"),
    "ae": ("united arab emirates", "uae", "ae", "dubai"),
    "ma": ("morocco", "ma", "mar", "maroc", "المغرب"),
}

_REMOTE_RE = re.compile(r"\b(remote|anywhere|worldwide|t[ée]l[ée]travail)\b", re.I)

_EXPERIENCE_PHRASES: dict[str, tuple[str, ...]] = {
    "intern": ("intern", "internship", "stagiaire", "praktikum", "werkstudent"),
    "entry": ("entry level", "entry-level", "junior", "jr.", "graduate", "no experience", "débutant", "trainee"),
    "mid": ("mid-level", "mid level", "intermediate", "experienced"),
    "senior": ("senior", "sr.", "team lead", "tech lead", "lead engineer", "lead developer", "principal",
               "staff engineer", "expert"),
    "executive": ("director", "vice president", "vp", "head of", "chief", "cto", "ceo"),
}
# Phrases match as whole words ("intern" not in "international").
_EXPERIENCE_PATTERNS: dict[str, re.Pattern[str]] = {
    level: re.compile(r"(?<!\w)(?:" + "|".join(re.escape(p) for p in phrases) + r")(?!\w)", re.I)
    for level, phrases in _EXPERIENCE_PHRASES.items()
}

# Inclusive year ranges; None means open-ended.
_EXPERIENCE_YEARS: dict[str, tuple[int, int | None]] = {
    "intern": (0, 1),
    "entry": (0, 2),
    "mid": (3, 5),
    "senior": (5, 10),
    "executive": (10, None),
}

_YEARS_RE = re.compile(
    r"(?<!\d)(\d{1,2})\s*(?:\+|-\s*\d{1,2}|to\s*\d{1,2})?\s*(?:years?|yrs?|ans|jahre)",
    re.I,
)
_SENIORITY_MARKERS = re.compile(r"\b(senior|sr\.?|lead|principal|staff|director|head|chief|vp|manager)\b", re.I)


# -----------------------------
# Predicates
# -----------------------------
def is_remote(job: NormalizedJob) -> bool:
    return job.location_type == "remote" or bool(_REMOTE_RE.search(job.location or ""))


def country_aliases(country: str) -> tuple[str, ...]:
    """Every alias in the equivalence class of `country` (or just itself)."""
    c = (country or "").strip().lower()
    if not c:
        return ()
    for canonical, aliases in COUNTRY_ALIASES.items():
        if c == canonical or c in aliases:
            return aliases
    return (c,)


def matches_country(job: NormalizedJob, country: str) -> bool:
    """
    Remote jobs always pass. Short codes are compared against the job's
    country field only; names are matched word-bounded in location/country.
    """
    wanted = (country or "").strip().lower()
    if not wanted:
        return True
    if is_remote(job):
        return True
    if wanted == "remote":
        return False

    job_country = (job.country or "").strip().lower()
    haystack = f"{job.location or ''} | {job.country or ''}".lower()
    for alias in country_aliases(wanted):
        if len(alias) <= 2 and alias.isalpha():
            if job_country == alias:
                return True
            continue
        if re.search(rf"(?<!\w){re.escape(alias)}(?!\w)", haystack):
            return True
    return False


def matches_experience(job: NormalizedJob, level: str) -> bool:
    """
    Direct field match, then level phrases in title/description, then an
    "N years" requirement against the level's range. With no signal at all,
    entry/intern pass unless the title carries a seniority marker, and
    mid/senior/executive are excluded.
    """
    wanted = normalize_experience_level(level)
    if not wanted:
        return True
    if job.experience_level == wanted:
        return True

    text = f" {job.title} {job.description} ".lower()
    if _EXPERIENCE_PATTERNS[wanted].search(text):
        return True

    m = _YEARS_RE.search(text)
    if m:
        years = int(m.group(1))
        lo, hi = _EXPERIENCE_YEARS[wanted]
        return years >= lo and (hi is None or years <= hi)

    if wanted in ("entry", "intern"):
        return not _SENIORITY_MARKERS.search(job.title or "")
    return False


def matches_job_type(job: NormalizedJob, job_type: str) -> bool:
    if not (job_type or "").strip():
        return True
    return normalize_job_type(job.job_type) == normalize_job_type(job_type)


def post_filter(jobs: Iterable[NormalizedJob], params: SearchParams) -> list[NormalizedJob]:
    """Re-apply country, experience, job-type and remote-only filters."""
    out: list[NormalizedJob] = []
    for job in jobs:
        if params.remote and not is_remote(job):
            continue
        if not matches_country(job, params.country):
            continue
        if not matches_experience(job, params.experience_level):
            continue
        if not matches_job_type(job, params.job_type):
            continue
        out.append(job)
    return out


# -----------------------------
# Merge helpers
# -----------------------------
def dedupe(jobs: Iterable[NormalizedJob]) -> list[NormalizedJob]:
    """Keep the first job per lower(title)-lower(company); input order is priority order."""
    seen: set[str] = set()
    out: list[NormalizedJob] = []
    for job in jobs:
        key = job.dedupe_key
        if key in seen:
            continue
        seen.add(key)
        out.append(job)
    return out


def _posted_key(job: NormalizedJob):
    return parse_iso(job.posted_at) or EPOCH


def sort_by_recency(jobs: Iterable[NormalizedJob]) -> list[NormalizedJob]:
    # sorted() stays stable with reverse=True, so ties keep priority order.
    return sorted(jobs, key=_posted_key, reverse=True)


def paginate(jobs: Sequence[NormalizedJob], page: int, limit: int) -> list[NormalizedJob]:
    page = max(1, int(page))
    limit = max(1, int(limit))
    start = (page - 1) * limit
    return list(jobs[start:start + limit])
