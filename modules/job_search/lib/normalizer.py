"""
Normalization of provider payloads into `NormalizedJob`.

Every provider has its own field names and conventions; this module maps
each of them onto the one canonical record the rest of the pipeline uses.

Rules:
  - `normalize(raw, source)` never raises. A malformed record degrades to
    defaults field by field rather than aborting the batch.
  - Unknown sources go through the generic mapper and emit a warning record.
  - Pure functions only: no I/O, no clock. A record with no usable date gets
    `posted_at=""` (it sorts as the oldest) instead of "now".
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from typing import Any

from . import logging_bridge
from .models import NormalizedJob
from .utils import content_hash, parse_iso, to_iso, uniq_preserve_order

DEFAULT_TITLE = "Unknown Position"
DEFAULT_COMPANY = "Unknown Company"
DEFAULT_LOCATION = "Remote"

REGIONAL_PREFIX = "regional_"

CURRENCY_SYMBOLS = {"USD": "$", "EUR": "€", "GBP": "£"}

SKILL_KEYWORDS = [
    "JavaScript", "TypeScript", "Python", "Java", "C++", "C#", "Ruby", "Go", "Rust", "PHP",
    "React", "Vue", "Angular", "Node.js", "Django", "Flask", "Spring", "Rails",
    "AWS", "Azure", "GCP", "Docker", "Kubernetes", "Terraform",
    "SQL", "PostgreSQL", "MySQL", "MongoDB", "Redis", "Elasticsearch",
    "Git", "CI/CD", "Agile", "Scrum",
    "Machine Learning", "AI", "Data Science", "Deep Learning",
]
MAX_SKILLS = 10

# Word-bounded so "Go" does not match "good" and "Java" does not match "JavaScript".
_SKILL_PATTERNS = [
    (skill, re.compile(r"(?<![\w+#.])" + re.escape(skill.lower()) + r"(?![\w+#])"))
    for skill in SKILL_KEYWORDS
]

# (bucket, patterns) checked in order; first hit wins.
_EXPERIENCE_PATTERNS: list[tuple[str, re.Pattern[str]]] = [
    ("intern", re.compile(r"\b(intern|internship|stagiaire|praktikum|werkstudent)\b")),
    ("executive", re.compile(r"\b(director|vp|vice president|head of|chief|cto|ceo|cfo)\b")),
    ("senior", re.compile(r"\b(senior|sr\.?|lead|principal|staff|expert)\b|\bconfirm[ée]")),
    ("entry", re.compile(r"\b(junior|jr\.?|entry|graduate|d[ée]butant|trainee|apprentice|azubi)\b")),
    ("mid", re.compile(r"\b(mid|intermediate|experienced)\b")),
]

_JOB_TYPE_RULES: list[tuple[str, tuple[str, ...]]] = [
    ("full-time", ("full", "cdi", "permanent", "temps plein", "vollzeit")),
    ("part-time", ("part", "temps partiel", "teilzeit")),
    ("contract", ("contract", "freelance", "cdd", "interim", "intérim", "befristet")),
    ("internship", ("intern", "stage", "praktikum")),
    ("temporary", ("temp",)),
    ("apprenticeship", ("ausbildung", "apprentice", "azubi", "lehrstelle")),
]


# -----------------------------------------------------------------------------
# Public API
# -----------------------------------------------------------------------------
def normalize(raw: Any, source: str) -> NormalizedJob:
    """
    Map one raw provider record into a NormalizedJob.

    Dispatches to the source's dedicated mapper; unknown sources (and mappers
    that choke on a malformed record) fall back to the generic mapper.
    """
    rec = raw if isinstance(raw, Mapping) else {}
    source = (source or "unknown").strip().lower()

    mapper = _MAPPERS.get(source)
    if mapper is None and source.startswith(REGIONAL_PREFIX):
        mapper = _normalize_regional
    if mapper is None:
        logging_bridge.warning({
            "component": "job_search.normalizer",
            "op": "unknown_source",
            "source": source,
        })
        return _safe_generic(rec, source, raw)

    try:
        return mapper(rec, source)
    except Exception as e:
        logging_bridge.warning({
            "component": "job_search.normalizer",
            "op": "mapper_failed",
            "source": source,
            "error": repr(e),
        })
        return _safe_generic(rec, source, raw)


def normalize_many(raws: Any, source: str) -> list[NormalizedJob]:
    return [normalize(r, source) for r in (raws or [])]


def detect_location_type(location: str | None) -> str:
    loc = (location or "").lower()
    if "remote" in loc or "anywhere" in loc:
        return "remote"
    if "hybrid" in loc:
        return "hybrid"
    return "onsite"


def normalize_job_type(value: str | None) -> str:
    v = (value or "").strip().lower()
    if not v:
        return "full-time"
    for bucket, needles in _JOB_TYPE_RULES:
        if any(n in v for n in needles):
            return bucket
    return "full-time"


def normalize_experience_level(value: str | None) -> str | None:
    """Map an explicit provider level onto our buckets; None if it says nothing."""
    v = (value or "").strip().lower()
    if not v:
        return None
    if v in {"entry", "mid", "senior", "executive", "intern"}:
        return v
    if v in {"lead", "staff", "principal"}:
        return "senior"
    for bucket, pat in _EXPERIENCE_PATTERNS:
        if pat.search(v):
            return bucket
    return None


def infer_experience_level(title: str | None, description: str | None = None) -> str:
    """Keyword inference over title first, then description; defaults to mid."""
    for text in (title, description):
        t = (text or "").lower()
        if not t:
            continue
        for bucket, pat in _EXPERIENCE_PATTERNS:
            if pat.search(t):
                return bucket
    return "mid"


def format_number(num: float) -> str:
    if num >= 1_000_000:
        return f"{num / 1_000_000:.1f}M"
    if num >= 1_000:
        return f"{int(num / 1000 + 0.5)}k"
    return str(int(num)) if float(num).is_integer() else str(num)


def format_salary(salary_min: Any, salary_max: Any, currency: str | None = "USD") -> str:
    lo, hi = _num(salary_min), _num(salary_max)
    symbol = CURRENCY_SYMBOLS.get((currency or "").upper(), "")
    if lo and hi:
        return f"{symbol}{format_number(lo)} - {symbol}{format_number(hi)}"
    if lo:
        return f"From {symbol}{format_number(lo)}"
    if hi:
        return f"Up to {symbol}{format_number(hi)}"
    return ""


def extract_skills_from_text(text: str | None) -> list[str]:
    if not text:
        return []
    low = text.lower()
    found = [skill for skill, pat in _SKILL_PATTERNS if pat.search(low)]
    return uniq_preserve_order(found)[:MAX_SKILLS]


def build_tags(job_type: str | None, location_type: str, salary_min: Any) -> list[str]:
    tags: list[str] = []
    if job_type:
        tags.append(job_type)
    if location_type == "remote":
        tags.append("Remote")
    lo = _num(salary_min)
    if lo and lo >= 100_000:
        tags.append("$100k+")
    if lo and lo >= 150_000:
        tags.append("$150k+")
    return uniq_preserve_order(tags)


def parse_date(value: Any) -> str:
    dt = parse_iso(value)
    return to_iso(dt) if dt else ""


# -----------------------------------------------------------------------------
# Source mappers
# -----------------------------------------------------------------------------
def _normalize_remoteok(job: Mapping[str, Any], source: str) -> NormalizedJob:
    ext = _ext_id(job.get("id"), job, source)
    title = _str(job.get("position") or job.get("title"), DEFAULT_TITLE)
    location = _str(job.get("location"), DEFAULT_LOCATION)
    tags = _str_list(job.get("tags"))
    lo, hi = _num(job.get("salary_min")), _num(job.get("salary_max"))
    return NormalizedJob(
        id=f"{source}_{ext}",
        source=source,
        external_id=ext,
        title=title,
        company=_str(job.get("company"), DEFAULT_COMPANY),
        company_logo=job.get("company_logo") or job.get("logo") or None,
        location=location,
        location_type="remote",
        country=_last_part(job.get("location")),
        city="",
        salary=format_salary(lo, hi, "USD") if lo and hi else "",
        salary_min=lo,
        salary_max=hi,
        salary_currency="USD",
        job_type="full-time",
        experience_level=infer_experience_level(title),
        description=_str(job.get("description")),
        skills=uniq_preserve_order(tags),
        apply_url=_str(job.get("url") or job.get("apply_url"), f"https://remoteok.com/remote-jobs/{ext}"),
        posted_at=parse_date(job.get("epoch") or job.get("date")),
        tags=uniq_preserve_order([*tags, "Remote"]),
        raw_data=dict(job),
    )


def _normalize_adzuna(job: Mapping[str, Any], source: str) -> NormalizedJob:
    ext = _ext_id(job.get("id"), job, source)
    title = _str(job.get("title"), DEFAULT_TITLE)
    loc = job.get("location") if isinstance(job.get("location"), Mapping) else {}
    area = _str_list(loc.get("area"))
    location = _str(loc.get("display_name"), DEFAULT_LOCATION)
    company = job.get("company") if isinstance(job.get("company"), Mapping) else {}
    category = job.get("category") if isinstance(job.get("category"), Mapping) else {}
    currency = "EUR" if source == "ausbildung" else _str(job.get("salary_currency"), "GBP")
    lo, hi = _num(job.get("salary_min")), _num(job.get("salary_max"))
    description = _str(job.get("description"))
    job_type = normalize_job_type(job.get("contract_type") or job.get("contract_time"))
    if source == "ausbildung":
        job_type = "apprenticeship"
    location_type = detect_location_type(location)
    return NormalizedJob(
        id=f"{source}_{ext}",
        source=source,
        external_id=ext,
        title=title,
        company=_str(company.get("display_name"), DEFAULT_COMPANY),
        location=location,
        location_type=location_type,
        country=area[0] if area else "",
        city=area[-1] if len(area) > 1 else "",
        salary=format_salary(lo, hi, currency) if lo and hi else "",
        salary_min=lo,
        salary_max=hi,
        salary_currency=currency,
        job_type=job_type,
        experience_level="entry" if source == "ausbildung" else infer_experience_level(title),
        description=description,
        skills=extract_skills_from_text(description),
        apply_url=_str(job.get("redirect_url"), "#"),
        posted_at=parse_date(job.get("created")),
        tags=uniq_preserve_order(
            [t for t in (category.get("label"), job.get("contract_type")) if t]
            + build_tags(None, location_type, lo)
        ),
        raw_data=dict(job),
    )


def _normalize_jsearch(job: Mapping[str, Any], source: str) -> NormalizedJob:
    ext = _ext_id(job.get("job_id"), job, source)
    title = _str(job.get("job_title"), DEFAULT_TITLE)
    is_remote = bool(job.get("job_is_remote"))
    parts = [p for p in (job.get("job_city"), job.get("job_state"), job.get("job_country")) if p]
    if is_remote:
        location = f"Remote ({', '.join(parts)})" if parts else "Remote"
    else:
        location = ", ".join(parts) or DEFAULT_LOCATION
    currency = _str(job.get("job_salary_currency"), "USD")
    lo, hi = _num(job.get("job_min_salary")), _num(job.get("job_max_salary"))
    experience = job.get("job_required_experience")
    mentioned = experience.get("experience_mentioned") if isinstance(experience, Mapping) else None
    explicit = mentioned[0] if isinstance(mentioned, list) and mentioned else None
    if explicit is not None and not isinstance(explicit, str):
        explicit = None
    description = _str(job.get("job_description"))
    skills = _str_list(job.get("job_required_skills"))
    employment = _str(job.get("job_employment_type"))
    return NormalizedJob(
        id=f"{source}_{ext}",
        source=source,
        external_id=ext,
        title=title,
        company=_str(job.get("employer_name"), DEFAULT_COMPANY),
        company_logo=job.get("employer_logo") or None,
        location=location,
        location_type="remote" if is_remote else detect_location_type(location),
        country=_str(job.get("job_country")),
        city=_str(job.get("job_city")),
        salary=format_salary(lo, hi, currency) if lo and hi else "",
        salary_min=lo,
        salary_max=hi,
        salary_currency=currency,
        job_type=normalize_job_type(employment),
        experience_level=normalize_experience_level(explicit) or infer_experience_level(title, description),
        description=description,
        requirements=skills,
        benefits=_str_list(job.get("job_benefits")),
        skills=uniq_preserve_order(skills) or extract_skills_from_text(description),
        apply_url=_str(job.get("job_apply_link") or job.get("job_google_link"), "#"),
        posted_at=parse_date(job.get("job_posted_at_datetime_utc") or job.get("job_posted_at_timestamp")),
        expires_at=parse_date(job.get("job_offer_expiration_datetime_utc")) or None,
        tags=uniq_preserve_order(
            [t for t in (employment, "Remote" if is_remote else None, job.get("employer_company_type")) if t]
        ),
        featured=bool(job.get("job_is_highlighted")),
        raw_data=dict(job),
    )


def _normalize_themuse(job: Mapping[str, Any], source: str) -> NormalizedJob:
    ext = _ext_id(job.get("id"), job, source)
    locations = job.get("locations") if isinstance(job.get("locations"), list) else []
    first = locations[0] if locations and isinstance(locations[0], Mapping) else {}
    loc_name = _str(first.get("name"))
    company = job.get("company") if isinstance(job.get("company"), Mapping) else {}
    categories = [c.get("name") for c in job.get("categories") or [] if isinstance(c, Mapping) and c.get("name")]
    levels = [lv.get("name") for lv in job.get("levels") or [] if isinstance(lv, Mapping) and lv.get("name")]
    refs = job.get("refs") if isinstance(job.get("refs"), Mapping) else {}
    title = _str(job.get("name"), DEFAULT_TITLE)
    description = _str(job.get("contents"))
    return NormalizedJob(
        id=f"{source}_{ext}",
        source=source,
        external_id=ext,
        title=title,
        company=_str(company.get("name"), DEFAULT_COMPANY),
        company_logo=company.get("logo") or None,
        location=loc_name or DEFAULT_LOCATION,
        location_type=detect_location_type(loc_name or DEFAULT_LOCATION),
        country=_last_part(loc_name),
        city=loc_name.split(",")[0].strip() if loc_name else "",
        salary="",
        salary_min=None,
        salary_max=None,
        salary_currency="USD",
        job_type=normalize_job_type(job.get("type")),
        experience_level=normalize_experience_level(levels[0] if levels else None)
        or infer_experience_level(title, description),
        description=description,
        skills=uniq_preserve_order(categories) or extract_skills_from_text(description),
        apply_url=_str(refs.get("landing_page"), f"https://www.themuse.com/jobs/{ext}"),
        posted_at=parse_date(job.get("publication_date")),
        tags=uniq_preserve_order([*categories, *levels]),
        raw_data=dict(job),
    )


def _normalize_regional(job: Mapping[str, Any], source: str) -> NormalizedJob:
    """
    Scraped regional sites rarely carry ids; the content hash of
    title+company+source stands in for one.
    """
    title = _str(job.get("title"), "Offre d'emploi")
    company = _str(job.get("company"), "Entreprise")
    ext = _str(job.get("id")) or content_hash(title, company, source)
    location = _regional_location(job.get("location"))
    description = _str(job.get("description"))
    explicit_skills = _str_list(job.get("skills"))
    lo, hi = _num(job.get("salary_min") or job.get("salaryMin")), _num(job.get("salary_max") or job.get("salaryMax"))
    raw_job_type = _str(job.get("job_type") or job.get("jobType") or job.get("contract"))
    job_type = normalize_job_type(raw_job_type)
    location_type = detect_location_type(location)
    return NormalizedJob(
        id=f"{source}_{ext}",
        source=source,
        external_id=ext,
        title=title,
        company=company,
        company_logo=job.get("company_logo") or job.get("companyLogo") or None,
        location=location,
        location_type=location_type,
        country="MA",
        city=_str(job.get("city")) or location.split(",")[0].strip(),
        salary=_str(job.get("salary")) or (f"{format_number(lo)} - {format_number(hi)} MAD" if lo and hi else ""),
        salary_min=lo,
        salary_max=hi,
        salary_currency="MAD",
        job_type=job_type,
        experience_level=normalize_experience_level(_str(job.get("experience_level") or job.get("experienceLevel")))
        or infer_experience_level(title, description),
        description=description,
        skills=explicit_skills or extract_skills_from_text(f"{title} {description}"),
        apply_url=_str(job.get("apply_url") or job.get("applyUrl") or job.get("url"), "#"),
        posted_at=parse_date(job.get("posted_at") or job.get("postedAt") or job.get("date")),
        expires_at=parse_date(job.get("expires_at") or job.get("expiresAt")) or None,
        tags=uniq_preserve_order([t for t in (raw_job_type, job.get("sector")) if t]) + build_tags(None, location_type, None),
        raw_data=dict(job),
    )


def _normalize_generic(job: Mapping[str, Any], source: str) -> NormalizedJob:
    title = _str(job.get("title"), DEFAULT_TITLE)
    company = _str(job.get("company") or job.get("company_name"), DEFAULT_COMPANY)
    ext = _ext_id(job.get("id"), job, source)
    location = _str(job.get("location"), DEFAULT_LOCATION)
    lo, hi = _num(job.get("salary_min") or job.get("salaryMin")), _num(job.get("salary_max") or job.get("salaryMax"))
    currency = _str(job.get("salary_currency"), "USD")
    description = _str(job.get("description"))
    location_type = "remote" if job.get("remote") or job.get("is_remote") else detect_location_type(location)
    job_type = normalize_job_type(job.get("job_type") or job.get("type"))
    explicit_skills = uniq_preserve_order(
        _str_list(job.get("skills")) + _str_list(job.get("tags")) + _str_list(job.get("required_skills"))
    )
    return NormalizedJob(
        id=f"{source}_{ext}",
        source=source,
        external_id=ext,
        title=title,
        company=company,
        company_logo=job.get("logo") or job.get("company_logo") or None,
        location=location,
        location_type=location_type,
        country=_str(job.get("country")),
        city=_str(job.get("city")),
        salary=_str(job.get("salary")) or format_salary(lo, hi, currency),
        salary_min=lo,
        salary_max=hi,
        salary_currency=currency,
        job_type=job_type,
        experience_level=normalize_experience_level(_str(job.get("experience_level") or job.get("experience")))
        or infer_experience_level(title, description),
        description=description,
        requirements=_str_list(job.get("requirements")),
        benefits=_str_list(job.get("benefits")),
        skills=explicit_skills or extract_skills_from_text(description),
        apply_url=_str(job.get("url") or job.get("apply_url") or job.get("application_url"), "#"),
        posted_at=parse_date(job.get("date") or job.get("posted_at") or job.get("created_at")),
        expires_at=parse_date(job.get("expires_at")) or None,
        tags=build_tags(job_type if (job.get("job_type") or job.get("type")) else None, location_type, lo),
        featured=bool(job.get("featured")),
        raw_data=dict(job),
    )


def _safe_generic(rec: Mapping[str, Any], source: str, raw: Any) -> NormalizedJob:
    try:
        return _normalize_generic(rec, source)
    except Exception:
        # Defaults-only record; still deterministic.
        ext = content_hash(repr(raw), source)
        return NormalizedJob(id=f"{source}_{ext}", source=source, external_id=ext, raw_data=raw)


_MAPPERS: dict[str, Callable[[Mapping[str, Any], str], NormalizedJob]] = {
    "remoteok": _normalize_remoteok,
    "adzuna": _normalize_adzuna,
    "ausbildung": _normalize_adzuna,
    "jsearch": _normalize_jsearch,
    "themuse": _normalize_themuse,
    "stub": _normalize_generic,
}


# -----------------------------------------------------------------------------
# Field helpers
# -----------------------------------------------------------------------------
_MOROCCAN_CITIES = (
    "casablanca", "rabat", "marrakech", "fes", "fès", "tanger", "tangier", "agadir",
    "meknes", "meknès", "oujda", "kenitra", "kénitra", "tetouan", "tétouan", "safi",
    "el jadida", "nador", "beni mellal", "mohammedia", "essaouira", "settat", "salé", "temara",
)


def _regional_location(value: Any) -> str:
    loc = _str(value)
    if not loc:
        return "Maroc"
    low = loc.lower()
    if "maroc" in low or "morocco" in low:
        return loc
    if any(city in low for city in _MOROCCAN_CITIES):
        return f"{loc}, Maroc"
    return loc


def _ext_id(native: Any, job: Mapping[str, Any], source: str) -> str:
    s = _str(native)
    if s:
        return s
    return content_hash(job.get("title") or job.get("position") or job.get("job_title"),
                        job.get("company") if isinstance(job.get("company"), str) else job.get("employer_name"),
                        source)


def _str(v: Any, default: str = "") -> str:
    if v is None or isinstance(v, (dict, list)):
        return default
    s = str(v).strip()
    return s or default


def _str_list(v: Any) -> list[str]:
    if not v:
        return []
    if isinstance(v, str):
        return [v]
    if not isinstance(v, (list, tuple)):
        return []
    return [str(x).strip() for x in v if x is not None and str(x).strip()]


def _num(v: Any) -> float | None:
    if v is None or v == "" or isinstance(v, bool):
        return None
    try:
        n = float(v)
    except (TypeError, ValueError):
        return None
    if n != n or n <= 0:  # NaN or non-positive
        return None
    return int(n) if n.is_integer() else n


def _last_part(location: Any) -> str:
    loc = _str(location)
    if not loc:
        return ""
    return loc.split(",")[-1].strip()
