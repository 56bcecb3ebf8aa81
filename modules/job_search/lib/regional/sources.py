# job_search/regional/sources.py
"""
Moroccan job sites: descriptors, the scrape engine, and one provider per site.

None of these sites has a public API. `HtmlScrapeEngine` fetches a listing
page, reads JSON-LD `JobPosting` blocks first and falls back to CSS card
selectors. Each site has a deterministic mock generator used when the live
scrape fails.
"""

from __future__ import annotations

import json
import re
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any
from urllib.parse import urljoin

from bs4 import BeautifulSoup  # pip install beautifulsoup4 html5lib

from .. import logging_bridge
from ..http_client import HttpClient
from ..models import ProviderResult, SearchParams
from ..providers.base import BaseProvider
from ..utils import parse_iso, to_iso, utcnow

BROWSER_HEADERS = {
    "Accept": "text/html,application/xhtml+xml",
    "Accept-Language": "fr-FR,fr;q=0.9,en;q=0.8,ar;q=0.7",
}

RESULT_CACHE_TTL = timedelta(minutes=5)
MIN_REQUEST_INTERVAL_MS = 2000


@dataclass(frozen=True)
class RegionalSite:
    id: str
    name: str
    base_url: str
    search_path: str
    priority: int
    category: str = "general"  # general | public | internship
    query_param: str = "q"
    city_param: str | None = "ville"
    page_param: str = "page"
    # CSS selectors; comma-separated alternatives
    card: str = "article.job, .job-listing, .offre-emploi, .search-result-item, [class*='job-card']"
    title: str = "h2 a, h3 a, .job-title a, [class*='title'] a, h2, h3"
    company: str = ".company, .entreprise, [class*='company']"
    location: str = ".location, .ville, [class*='location']"
    date: str = "time, .date, [class*='date']"
    default_company: str = "Entreprise Marocaine"
    rate_limit_ms: int = MIN_REQUEST_INTERVAL_MS
    extra_params: Mapping[str, str] = field(default_factory=dict)

    def search_url(self) -> str:
        return urljoin(self.base_url, self.search_path)


SITES: dict[str, RegionalSite] = {
    s.id: s
    for s in (
        RegionalSite(
            id="emploi", name="Emploi.ma", base_url="https://www.emploi.ma",
            search_path="/recherche-jobs-maroc", priority=1, city_param="lieu",
        ),
        RegionalSite(
            id="dreamjob", name="Dreamjob.ma", base_url="https://www.dreamjob.ma",
            search_path="/offres-emploi", priority=2, query_param="keywords", city_param="location",
        ),
        RegionalSite(
            id="rekrute", name="Rekrute.com", base_url="https://www.rekrute.com",
            search_path="/offres.html", priority=3, query_param="s", city_param="city", page_param="p",
            card=".post-id, .job-item, li.offre, [class*='job-listing']",
            title=".titreoffre, h2 a, h3 a, h2, h3",
        ),
        RegionalSite(
            id="marocannonces", name="MarocAnnonces", base_url="https://www.marocannonces.com",
            search_path="/maroc/offres-emploi", priority=4, query_param="texte",
            card="ul.cars-list li, .annonce, [class*='listing']", default_company="Via MarocAnnonces",
        ),
        RegionalSite(
            id="alwadifa", name="Alwadifa-Maroc", base_url="https://alwadifa-maroc.com",
            search_path="/category/offres-demploi", priority=5, category="public",
            query_param="s", city_param=None, page_param="paged",
            card="article, .post", title="h2 a, h3 a, .entry-title a", default_company="Administration Publique",
        ),
        RegionalSite(
            id="emploipublic", name="Emploi-Public.ma", base_url="https://www.emploi-public.ma",
            search_path="/concours", priority=6, category="public",
            card="article, .concours-item, .card", default_company="Secteur Public",
        ),
        RegionalSite(
            id="stagiaires", name="Stagiaires.ma", base_url="https://www.stagiaires.ma",
            search_path="/offres-de-stage", priority=7, category="internship",
        ),
    )
}

# site-local contract vocabulary
_CONTRACT_TYPES = {
    "full-time": "CDI",
    "part-time": "CDD",
    "contract": "CDD",
    "internship": "Stage",
    "temporary": "Intérim",
}


# -----------------------------------------------------------------------------
# Scrape engine boundary
# -----------------------------------------------------------------------------
class ScrapeEngine(ABC):
    """`scrape(site_id, params)` returns raw records; rate limiting and caching are the engine's job."""

    @abstractmethod
    def scrape(self, site_id: str, params: SearchParams) -> list[dict[str, Any]]:
        raise NotImplementedError


class HtmlScrapeEngine(ScrapeEngine):
    """
    requests + BeautifulSoup engine.

    - At most one request per site every `site.rate_limit_ms` (per process).
    - Results cached in-process for `cache_ttl`, keyed by site/query/city/page.
    """

    def __init__(
        self,
        client: HttpClient | None = None,
        *,
        sites: Mapping[str, RegionalSite] | None = None,
        cache_ttl: timedelta = RESULT_CACHE_TTL,
        clock: Callable[[], datetime] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.client = client or HttpClient()
        self.sites = dict(sites or SITES)
        self.cache_ttl = cache_ttl
        self._clock = clock or utcnow
        self._sleep = sleep
        self._lock = threading.Lock()
        self._site_locks: dict[str, threading.Lock] = {}
        self._last_request: dict[str, float] = {}
        self._results: dict[tuple[str, ...], tuple[datetime, list[dict[str, Any]]]] = {}

    def scrape(self, site_id: str, params: SearchParams) -> list[dict[str, Any]]:
        site = self.sites.get(site_id)
        if site is None:
            raise KeyError(f"unknown regional site {site_id!r}")

        key = (site.id, params.query.lower(), params.city.lower(), str(params.page))
        hit = self._results.get(key)
        if hit is not None and self._clock() - hit[0] <= self.cache_ttl:
            return [dict(r) for r in hit[1]]

        self._wait_turn(site)
        html = self.client.get_text(site.search_url(), params=self._query(site, params), headers=BROWSER_HEADERS)
        records = parse_listing_page(html, site, now=self._clock())
        self._results[key] = (self._clock(), records)
        return [dict(r) for r in records]

    def clear(self) -> None:
        self._results.clear()

    def _query(self, site: RegionalSite, params: SearchParams) -> dict[str, Any]:
        q: dict[str, Any] = dict(site.extra_params)
        if params.query:
            q[site.query_param] = params.query
        if params.city and site.city_param:
            q[site.city_param] = params.city
        contract = _CONTRACT_TYPES.get(params.job_type.lower())
        if contract and site.category == "general":
            q["contrat"] = contract
        if params.page > 1:
            q[site.page_param] = params.page
        return q

    def _wait_turn(self, site: RegionalSite) -> None:
        with self._lock:
            lock = self._site_locks.setdefault(site.id, threading.Lock())
        with lock:
            last = self._last_request.get(site.id)
            if last is not None:
                wait = last + site.rate_limit_ms / 1000.0 - time.monotonic()
                if wait > 0:
                    self._sleep(wait)
            self._last_request[site.id] = time.monotonic()


# -----------------------------------------------------------------------------
# Parsing
# -----------------------------------------------------------------------------
def parse_listing_page(html: str, site: RegionalSite, *, now: datetime | None = None) -> list[dict[str, Any]]:
    """Raw records from one listing page: JSON-LD first, then CSS cards."""
    soup = BeautifulSoup(html or "", "html5lib")
    now = now or utcnow()
    out = _parse_json_ld(soup, site)

    for card in soup.select(site.card):
        title_el = card.select_one(site.title)
        title = _text(title_el)
        if not title:
            continue
        link = card.select_one("a[href]")
        href = (link.get("href") or "").strip() if link else ""
        date_el = card.select_one(site.date)
        date_raw = (date_el.get("datetime") or _text(date_el)) if date_el else ""
        out.append({
            "title": title,
            "company": _text(card.select_one(site.company)) or site.default_company,
            "location": _text(card.select_one(site.location)) or "Maroc",
            "url": urljoin(site.base_url, href) if href else "",
            "posted_at": parse_relative_date(date_raw, now=now),
        })
    return out


def _parse_json_ld(soup: BeautifulSoup, site: RegionalSite) -> list[dict[str, Any]]:
    out: list[dict[str, Any]] = []
    for script in soup.select('script[type="application/ld+json"]'):
        try:
            data = json.loads(script.string or script.get_text() or "")
        except ValueError:
            continue
        nodes = data if isinstance(data, list) else [data]
        for node in nodes:
            if not isinstance(node, dict):
                continue
            items = node.get("@graph") if isinstance(node.get("@graph"), list) else [node]
            for item in items:
                if isinstance(item, dict) and item.get("@type") == "JobPosting":
                    out.append(_from_job_posting(item, site))
    return out


def _from_job_posting(item: Mapping[str, Any], site: RegionalSite) -> dict[str, Any]:
    org = item.get("hiringOrganization") if isinstance(item.get("hiringOrganization"), dict) else {}
    loc = item.get("jobLocation")
    if isinstance(loc, list):
        loc = loc[0] if loc else {}
    address = loc.get("address") if isinstance(loc, dict) and isinstance(loc.get("address"), dict) else {}
    salary = item.get("baseSalary") if isinstance(item.get("baseSalary"), dict) else {}
    value = salary.get("value") if isinstance(salary.get("value"), dict) else {}
    return {
        "title": item.get("title"),
        "company": org.get("name") or site.default_company,
        "location": address.get("addressLocality") or "Maroc",
        "description": item.get("description") or "",
        "url": item.get("url") or item.get("@id") or "",
        "posted_at": item.get("datePosted") or "",
        "expires_at": item.get("validThrough") or "",
        "job_type": item.get("employmentType") or "",
        "salary_min": value.get("minValue"),
        "salary_max": value.get("maxValue"),
    }


_DAYS_RE = re.compile(r"(\d+)\s*(?:jours?|days?)")
_WEEKS_RE = re.compile(r"(\d+)\s*(?:semaines?|weeks?)")
_DMY_RE = re.compile(r"\b(\d{1,2})[/.-](\d{1,2})[/.-](\d{4})\b")


def parse_relative_date(value: str | None, *, now: datetime) -> str:
    """
    French/English listing dates to ISO-8601 UTC: "aujourd'hui", "hier",
    "il y a 3 jours", "2 weeks ago", "12/05/2025" (day first), or ISO.
    Unreadable values give "".
    """
    s = " ".join((value or "").split()).lower()
    if not s:
        return ""
    if "aujourd" in s or "today" in s:
        return to_iso(now)
    if "hier" in s or "yesterday" in s:
        return to_iso(now - timedelta(days=1))
    m = _DAYS_RE.search(s)
    if m:
        return to_iso(now - timedelta(days=int(m.group(1))))
    m = _WEEKS_RE.search(s)
    if m:
        return to_iso(now - timedelta(weeks=int(m.group(1))))
    m = _DMY_RE.search(s)
    if m:
        day, month, year = (int(g) for g in m.groups())
        try:
            return to_iso(datetime(year, month, day, tzinfo=now.tzinfo))
        except ValueError:
            return ""
    dt = parse_iso(value)
    return to_iso(dt) if dt else ""


def _text(el: Any) -> str:
    if el is None:
        return ""
    return " ".join(el.get_text(" ", strip=True).split())


# -----------------------------------------------------------------------------
# Mock fallback
# -----------------------------------------------------------------------------
# (title, company, city, days_ago, contract)
_MOCK_LISTINGS: dict[str, list[tuple[str, str, str, int, str]]] = {
    "emploi": [
        ("Développeur Full Stack", "Tech Maroc Solutions", "Casablanca", 2, "CDI"),
        ("Ingénieur DevOps", "Entreprise Digitale MA", "Rabat", 3, "CDI"),
        ("Chef de Projet IT", "Groupe Industriel Marocain", "Marrakech", 5, "CDI"),
        ("Analyste Data", "Banque Populaire", "Casablanca", 1, "CDI"),
        ("Commercial B2B", "Société de Services", "Tanger", 4, "CDI"),
    ],
    "dreamjob": [
        ("Responsable Marketing Digital", "Agence Web Maroc", "Casablanca", 1, "CDI"),
        ("Stage Développeur Mobile", "Startup Fintech", "Rabat", 2, "Stage"),
        ("Comptable Senior", "Cabinet Audit", "Casablanca", 3, "CDI"),
        ("Ingénieur Qualité", "Industrie Automobile", "Tanger", 4, "CDD"),
        ("Chargé(e) RH", "Multinationale", "Casablanca", 6, "CDI"),
    ],
    "rekrute": [
        ("Directeur Commercial", "Groupe Industriel", "Casablanca", 1, "CDI"),
        ("Architecte Cloud AWS", "ESN Internationale", "Casablanca", 2, "CDI"),
        ("Responsable Supply Chain", "Logistique Maroc", "Tanger", 3, "CDI"),
        ("Ingénieur Cybersécurité", "Banque Marocaine", "Rabat", 5, "CDI"),
        ("Stage PFE - Data Science", "Assurance Taamine", "Casablanca", 7, "Stage"),
    ],
    "marocannonces": [
        ("Technicien Maintenance", "Via MarocAnnonces", "Casablanca", 1, "CDD"),
        ("Secrétaire de Direction", "Via MarocAnnonces", "Rabat", 2, "CDI"),
        ("Chauffeur Livreur", "Via MarocAnnonces", "Casablanca", 3, "CDD"),
        ("Agent Commercial", "Via MarocAnnonces", "Marrakech", 4, "Intérim"),
        ("Cuisinier / Chef", "Via MarocAnnonces", "Agadir", 6, "CDI"),
    ],
    "alwadifa": [
        ("Concours de Recrutement - Ministère de l'Intérieur", "Ministère de l'Intérieur", "Rabat", 2, "CDI"),
        ("Recrutement ANAPEC - Agents Administratifs", "ANAPEC", "Casablanca", 3, "CDD"),
        ("Concours Office National des Chemins de Fer", "ONCF", "Rabat", 5, "CDI"),
        ("Ministère de la Santé - Recrutement Infirmiers", "Ministère de la Santé", "", 6, "CDI"),
        ("Communes Territoriales - Techniciens", "Collectivités Territoriales", "", 8, "CDI"),
    ],
    "emploipublic": [
        ("Concours Ministère des Finances - Inspecteurs", "Ministère des Finances", "Rabat", 1, "CDI"),
        ("Ministère de l'Education - Professeurs Contractuels", "Ministère de l'Education Nationale", "", 3, "CDD"),
        ("Agence Urbaine - Architectes et Urbanistes", "Agences Urbaines", "Casablanca", 4, "CDI"),
        ("Direction Générale de la Sûreté Nationale", "DGSN", "Rabat", 6, "CDI"),
        ("Cour des Comptes - Magistrats", "Cour des Comptes", "Rabat", 9, "CDI"),
    ],
    "stagiaires": [
        ("Stage PFE - Développement Web", "Tech Solutions Maroc", "Casablanca", 1, "Stage"),
        ("Stage Pré-Embauche - Marketing Digital", "Agence Digital MA", "Rabat", 2, "Stage"),
        ("Stage Data Science - Intelligence Artificielle", "AI Labs Morocco", "Casablanca", 3, "Stage"),
        ("Stage Finance - Audit", "Cabinet Audit Maroc", "Casablanca", 4, "Stage"),
        ("Stage RH - Ressources Humaines", "Groupe Industriel MA", "Tanger", 5, "Stage"),
        ("Stage Ingénieur - Génie Civil", "BTP Maroc Construction", "Marrakech", 6, "Stage"),
    ],
}


class MockRegionalSource:
    """Deterministic sample listings for one site (given the clock)."""

    def __init__(self, site: RegionalSite, clock: Callable[[], datetime] | None = None) -> None:
        self.site = site
        self._clock = clock or utcnow

    def listings(self, params: SearchParams) -> list[dict[str, Any]]:
        now = self._clock().replace(hour=0, minute=0, second=0, microsecond=0)
        out: list[dict[str, Any]] = []
        for i, (title, company, city, days, contract) in enumerate(_MOCK_LISTINGS.get(self.site.id, []), start=1):
            out.append({
                "title": title,
                "company": company,
                "location": params.city or city or "Tout le Maroc",
                "description": f"{title} chez {company}. Offre publiée sur {self.site.name}.",
                "job_type": contract,
                "posted_at": to_iso(now - timedelta(days=days)),
                "url": f"{self.site.base_url}/offre/{self.site.id}-{i}",
                "mock": True,
            })
        q = params.query.lower()
        if q:
            out = [r for r in out if q in r["title"].lower() or q in r["description"].lower()]
        return out


# -----------------------------------------------------------------------------
# Per-site provider
# -----------------------------------------------------------------------------
class RegionalSource(BaseProvider):
    """
    One Moroccan site as a provider. Not in the global provider registry;
    the Morocco aggregator owns the closed set.

    A failed scrape falls back to the site's mock listings when
    `mock_fallback` is on; otherwise the failure becomes the provider error.
    """

    def __init__(
        self,
        site: RegionalSite,
        engine: ScrapeEngine,
        *,
        mock_fallback: bool = True,
        clock: Callable[[], datetime] | None = None,
        client: HttpClient | None = None,
    ) -> None:
        super().__init__(client=client or getattr(engine, "client", None))
        self.site = site
        self.id = site.id
        self.name = site.name
        self.priority = site.priority
        self.engine = engine
        self.mock_fallback = mock_fallback
        self.mock = MockRegionalSource(site, clock=clock)

    def _search(self, params: SearchParams) -> ProviderResult:
        try:
            jobs = self.engine.scrape(self.site.id, params)
        except Exception as e:
            if not self.mock_fallback:
                raise
            logging_bridge.warning({
                "component": "job_search.regional",
                "op": "mock_fallback",
                "site": self.site.id,
                "error": repr(e),
            })
            jobs = self.mock.listings(params)
        return ProviderResult(source=self.site.id, jobs=jobs, total=len(jobs))


def build_sources(
    engine: ScrapeEngine,
    *,
    only: list[str] | tuple[str, ...] | None = None,
    mock_fallback: bool = True,
    clock: Callable[[], datetime] | None = None,
) -> list[RegionalSource]:
    """RegionalSource per known site (optionally restricted), by ascending priority."""
    wanted = {s.lower() for s in only} if only else None
    sites = sorted(SITES.values(), key=lambda s: s.priority)
    return [
        RegionalSource(site, engine, mock_fallback=mock_fallback, clock=clock)
        for site in sites
        if wanted is None or site.id in wanted
    ]
