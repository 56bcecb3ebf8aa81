"""
Search orchestrator: cache-first fan-out across job providers.

Per request:
  BuildKey -> CacheLookup -> (miss) FanOut -> Normalize -> Dedup -> Sort
  -> PostFilter -> Paginate -> CacheWrite -> SearchResult

Features:
  - Provider failure isolation: an exception or error result from one branch
    becomes an empty branch with an entry in `errors`
  - Routing: opt-in providers (Ausbildung) and the Morocco sub-aggregator
  - Optional unified per-provider timeout (`provider_timeout_sec`)
  - Full filtered set cached per key so every page is served from one entry
  - Comprehensive logging via `logging_bridge`
"""

from __future__ import annotations

import dataclasses
import time
from collections.abc import Callable, Mapping
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from typing import Any

from . import filters, logging_bridge
from .cache import JobCache
from .config import CredentialsProvider, EnvCredentials, Settings
from .http_client import HttpClient
from .models import CachedSearch, NormalizedJob, ProviderOutcome, SearchParams, SearchResult
from .normalizer import normalize, normalize_many
from .providers.ausbildung import is_ausbildung_search
from .providers.registry import ProviderDescriptor, ProviderRegistry, build_registry
from .regional import HtmlScrapeEngine, MoroccoAggregator, build_sources, is_regional

# provider id -> predicate that opts it in for a request
OPT_IN_PREDICATES: dict[str, Callable[[SearchParams], bool]] = {
    "ausbildung": is_ausbildung_search,
}

# Providers are asked for enough items to fill this many pages, so the cached
# set serves later pages of the same query.
FETCH_WINDOW_PAGES = 5
# Extra items per provider to absorb dedupe/filter losses.
FETCH_HEADROOM = 5


class JobSearchService:
    def __init__(
        self,
        registry: ProviderRegistry,
        cache: JobCache | None = None,
        settings: Settings | None = None,
        regional: MoroccoAggregator | None = None,
    ) -> None:
        self.registry = registry
        self.cache = cache
        self.settings = settings or Settings(sqlite_path=None)
        self.regional = regional

    # =========================================================================
    # CONSTRUCTION (PRODUCTION)
    # =========================================================================
    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        credentials: CredentialsProvider | None = None,
        client: HttpClient | None = None,
        cache: JobCache | None = None,
    ) -> JobSearchService:
        """Wire registry, cache and the Morocco sub-aggregator from Settings."""
        client = client or HttpClient(timeout=settings.http_timeout, user_agent=settings.user_agent)
        registry = build_registry(
            credentials or EnvCredentials.from_env(),
            client=client,
            enable_stub=settings.enable_stub,
            provider_options={"stub": {"items": settings.stub_items}},
        )
        supplement = [
            d.provider
            for d in (registry.get(pid) for pid in settings.regional_supplement_chain)
            if d is not None and d.enabled
        ]
        regional = MoroccoAggregator(
            build_sources(HtmlScrapeEngine(client), mock_fallback=settings.regional_mock_fallback),
            timeout_sec=settings.regional_timeout_sec,
            supplement_chain=supplement,
            max_threads=settings.max_threads,
        )
        return cls(
            registry,
            cache if cache is not None else JobCache(settings.sqlite_path),
            settings,
            regional,
        )

    def close(self) -> None:
        if self.cache is not None:
            self.cache.close()
        self.registry.close()

    # =========================================================================
    # CACHE KEY
    # =========================================================================
    def build_cache_key(self, params: SearchParams) -> str:
        """
        Lower-cased, order-stable signature of everything that changes the
        filtered result set. `page` and `use_cache` are not part of it.
        """
        sources = ",".join(sorted(params.sources)) if params.sources else "*"
        if self.regional is not None and is_regional(params):
            sites = params.regional_sources or tuple(self.regional.site_ids())
            regional_sig = ",".join(sorted(sites))
        else:
            regional_sig = ""
        ausbildung = f"1{params.ausbildung_field}" if is_ausbildung_search(params) else "0"
        parts = [
            "jobs",
            params.query,
            params.location,
            params.country,
            params.city,
            params.job_type,
            params.experience_level,
            str(params.remote),
            f"{params.salary_min}-{params.salary_max}",
            str(params.limit),
            sources,
            regional_sig,
            ausbildung,
            _extras_signature(params.extra),
        ]
        return ":".join(p.strip() for p in parts).lower()

    # =========================================================================
    # SEARCH
    # =========================================================================
    def search_jobs(self, params: SearchParams | Mapping[str, Any]) -> SearchResult:
        """
        Run one search. Never raises for provider, cache, parse or timeout
        failures; those end up in `errors` / `provider_stats` and the logs.
        """
        start_ns = time.perf_counter_ns()
        if not isinstance(params, SearchParams):
            params = SearchParams.from_mapping(params)
        key = self.build_cache_key(params)

        # ---------------------------------------------------------------------
        # CACHE LOOKUP
        # ---------------------------------------------------------------------
        if params.use_cache:
            cached = self._cache_get(key)
            if cached is not None:
                logging_bridge.activity({
                    "component": "job_search.orchestrator",
                    "op": "cache_hit",
                    "cache_key": key,
                    "page": params.page,
                    "total": cached.total,
                })
                return self._respond(list(cached.jobs), params, list(cached.sources), cached=True)

        # ---------------------------------------------------------------------
        # ROUTING + FAN-OUT
        # ---------------------------------------------------------------------
        branches = self._plan(params)
        window = max(params.page, FETCH_WINDOW_PAGES) * params.limit
        fetch_params = dataclasses.replace(
            params,
            page=1,
            limit=-(-window // max(1, len(branches))) + FETCH_HEADROOM,
        )
        outcomes = self._fan_out(branches, fetch_params)

        # ---------------------------------------------------------------------
        # MERGE (priority order) -> DEDUP -> SORT -> POST-FILTER
        # ---------------------------------------------------------------------
        merged: list[NormalizedJob] = []
        sources: list[str] = []
        provider_stats: dict[str, int] = {}
        errors: dict[str, str] = {}
        for out in sorted(outcomes, key=lambda o: (o.priority, o.source)):
            if out.stats:
                provider_stats.update(out.stats)
            else:
                provider_stats[out.source] = len(out.jobs)
            if out.error:
                errors[out.source] = out.error
                continue
            sources.extend(out.sources or [out.source])
            merged.extend(out.jobs)

        deduped = filters.dedupe(merged)
        ordered = filters.sort_by_recency(deduped)
        filtered = filters.post_filter(ordered, params)

        # ---------------------------------------------------------------------
        # CACHE WRITE (full filtered set, non-empty only)
        # ---------------------------------------------------------------------
        if filtered:
            self._cache_put(key, CachedSearch(jobs=tuple(filtered), total=len(filtered), sources=tuple(sources)))

        result = self._respond(filtered, params, sources, cached=False, provider_stats=provider_stats, errors=errors)

        logging_bridge.activity({
            "component": "job_search.orchestrator",
            "op": "summary",
            "cache_key": key,
            "branches": [b[0] for b in branches],
            "provider_stats": provider_stats,
            "errors": errors,
            "merged": len(merged),
            "deduped": len(deduped),
            "filtered": len(filtered),
            "page": params.page,
            "total_us": int((time.perf_counter_ns() - start_ns) // 1000),
        })
        return result

    # =========================================================================
    # SINGLE JOB
    # =========================================================================
    def get_job_by_id(self, job_id: str) -> NormalizedJob | None:
        """
        Job cache first (both tiers). Otherwise split on the first "_" into
        (provider id, external id) and use the provider's direct lookup if it
        has one.
        """
        job_id = (job_id or "").strip()
        if not job_id:
            return None
        if self.cache is not None:
            hit = self.cache.get_job(job_id)
            if hit is not None:
                return hit

        source, sep, external_id = job_id.partition("_")
        if not sep or not source or not external_id:
            return None
        desc = self.registry.get(source)
        if desc is None or not desc.enabled or not desc.provider.supports_lookup:
            return None

        raw = desc.provider.get_job(external_id)
        if raw is None:
            return None
        job = normalize(raw, desc.id)
        if self.cache is not None:
            self.cache.set_jobs([job])
        return job

    # =========================================================================
    # ADMIN
    # =========================================================================
    def available_providers(self) -> list[dict[str, Any]]:
        out = [d.to_dict() for d in self.registry.all()]
        if self.regional is not None:
            out.append({
                "id": "morocco",
                "name": "Morocco (regional)",
                "priority": self.regional.priority,
                "enabled": True,
                "requires_opt_in": False,
                "supports_lookup": False,
                "sites": self.regional.site_ids(),
            })
        return out

    def clear_cache(self, kind: str = "all") -> dict[str, Any]:
        kind = (kind or "all").strip().lower()
        if kind not in ("search", "jobs", "all"):
            raise ValueError(f"unknown cache kind {kind!r}; expected search, jobs or all")
        if self.cache is None:
            return {}
        if kind == "search":
            removed: dict[str, Any] = self.cache.clear_search()
        elif kind == "jobs":
            removed = self.cache.clear_jobs()
        else:
            removed = self.cache.clear_all()
        logging_bridge.activity({
            "component": "job_search.orchestrator",
            "op": "clear_cache",
            "kind": kind,
            "removed": removed,
        })
        return removed

    # =========================================================================
    # INTERNALS
    # =========================================================================
    def _plan(self, params: SearchParams) -> list[tuple[str, Callable[[SearchParams], ProviderOutcome]]]:
        """(branch id, runner) pairs for this request."""
        skip_network = self.settings.skip_network
        branches: list[tuple[str, Callable[[SearchParams], ProviderOutcome]]] = []

        if self.regional is not None and is_regional(params):
            # A sources allow-list must name "morocco" for the regional branch to run.
            allowed = not params.sources or "morocco" in params.sources
            if allowed and skip_network:
                self._log_skipped("morocco")
            elif allowed:
                branches.append(("morocco", self.regional.search))
            blend = self.registry.get(self.settings.regional_blend_provider or "")
            selected = [blend] if blend is not None and blend.enabled else []
            if params.sources:
                selected = [d for d in selected if d.id in params.sources]
        else:
            selected = self.registry.select(
                params,
                opt_in=lambda pid: OPT_IN_PREDICATES.get(pid, _never)(params),
            )

        for desc in selected:
            if skip_network and desc.id != "stub":
                self._log_skipped(desc.id)
                continue
            branches.append((desc.id, _provider_runner(desc)))
        return branches

    def _fan_out(
        self,
        branches: list[tuple[str, Callable[[SearchParams], ProviderOutcome]]],
        params: SearchParams,
    ) -> list[ProviderOutcome]:
        if not branches:
            return []
        timeout = self.settings.provider_timeout_sec
        pool = ThreadPoolExecutor(
            max_workers=min(len(branches), self.settings.max_threads),
            thread_name_prefix="job-search",
        )
        outcomes: list[ProviderOutcome] = []
        try:
            futures: dict[str, Future[ProviderOutcome]] = {bid: pool.submit(fn, params) for bid, fn in branches}
            deadline = time.monotonic() + timeout if timeout else None
            for bid, fut in futures.items():
                try:
                    wait = None if deadline is None else max(0.0, deadline - time.monotonic())
                    outcomes.append(fut.result(timeout=wait))
                except FuturesTimeout:
                    fut.cancel()
                    outcomes.append(self._failed(bid, f"timeout after {timeout:g}s"))
                except Exception as e:
                    outcomes.append(self._failed(bid, str(e) or repr(e)))
        finally:
            # With a timeout, stragglers are abandoned rather than joined.
            pool.shutdown(wait=timeout is None, cancel_futures=True)
        return outcomes

    def _failed(self, branch_id: str, message: str) -> ProviderOutcome:
        logging_bridge.error({
            "component": "job_search.orchestrator",
            "op": "branch_failed",
            "provider": branch_id,
            "error": message,
        })
        priority = 0
        desc = self.registry.get(branch_id)
        if desc is not None:
            priority = desc.priority
        return ProviderOutcome(source=branch_id, priority=priority, error=message)

    def _respond(
        self,
        jobs: list[NormalizedJob],
        params: SearchParams,
        sources: list[str],
        *,
        cached: bool,
        provider_stats: dict[str, int] | None = None,
        errors: dict[str, str] | None = None,
    ) -> SearchResult:
        total = len(jobs)
        return SearchResult(
            jobs=filters.paginate(jobs, params.page, params.limit),
            total=total,
            page=params.page,
            limit=params.limit,
            total_pages=SearchResult.pages_for(total, params.limit),
            sources=list(sources),
            cached=cached,
            provider_stats=dict(provider_stats or {}),
            errors=dict(errors or {}),
        )

    def _cache_get(self, key: str) -> CachedSearch | None:
        if self.cache is None:
            return None
        try:
            return self.cache.get_search(key)
        except Exception as e:
            self._log_cache_error("get_search", key, e)
            return None

    def _cache_put(self, key: str, payload: CachedSearch) -> None:
        if self.cache is None:
            return
        try:
            self.cache.set_search(key, payload)
            self.cache.set_jobs(payload.jobs)
        except Exception as e:
            self._log_cache_error("set_search", key, e)

    def _log_cache_error(self, op: str, key: str, e: Exception) -> None:
        logging_bridge.error({
            "component": "job_search.orchestrator",
            "op": op,
            "cache_key": key,
            "error": repr(e),
        })

    def _log_skipped(self, branch_id: str) -> None:
        logging_bridge.activity({
            "component": "job_search.orchestrator",
            "op": "skipped_provider",
            "provider": branch_id,
            "reason": "skip_network",
        })


# =============================================================================
# HELPERS
# =============================================================================
def _never(_params: SearchParams) -> bool:
    return False


def _extras_signature(extra: Mapping[str, Any]) -> str:
    """
    Provider pass-through params (tags, category, date_posted, ...) as
    `k=v` pairs sorted by key; list values are sorted too. Empty values drop out.
    """
    pairs: list[str] = []
    for k in sorted(extra, key=str):
        v = extra[k]
        if v is None or v == "" or v == [] or v == ():
            continue
        if isinstance(v, (list, tuple, set, frozenset)):
            v = ",".join(sorted(str(x).strip().lower() for x in v))
        pairs.append(f"{str(k).strip().lower()}={str(v).strip().lower()}")
    return "&".join(pairs)


def _provider_runner(desc: ProviderDescriptor) -> Callable[[SearchParams], ProviderOutcome]:
    def run(params: SearchParams) -> ProviderOutcome:
        res = desc.provider.search(params)
        if res.error:
            return ProviderOutcome(source=desc.id, priority=desc.priority, error=res.error)
        jobs = normalize_many(res.jobs, desc.id)
        return ProviderOutcome(
            source=desc.id,
            priority=desc.priority,
            jobs=jobs,
            total=res.total,
            sources=[desc.id],
        )

    return run
