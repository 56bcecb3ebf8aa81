# job_search/regional/morocco.py
"""
Morocco sub-aggregator: the orchestrator's fan-out pattern at a nested scale.

Differences from the top level:
  - every site call is time-boxed (default 10 s); a timeout is reported
    exactly like a provider error,
  - one supplementary international provider (first link of a fallback chain
    that returns jobs) is unioned after the regional results,
  - an optional city filter that only drops jobs clearly located elsewhere.
"""

from __future__ import annotations

import dataclasses
import time
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout

from .. import filters, logging_bridge
from ..models import NormalizedJob, ProviderOutcome, ProviderResult, SearchParams
from ..normalizer import REGIONAL_PREFIX, normalize_many
from ..providers.base import BaseProvider
from .sources import RegionalSource

# Routing and post-filtering share one alias class.
MOROCCO_ALIASES = frozenset(filters.COUNTRY_ALIASES["ma"])

REGIONAL_ID = "morocco"
DEFAULT_TIMEOUT_SEC = 10.0
MIN_SOURCE_LIMIT = 30
SUPPLEMENT_LIMIT = 10

_GENERIC_LOCATION_WORDS = ("maroc", "morocco", "tout le", "plusieurs villes", "المغرب")


def is_regional(params: SearchParams) -> bool:
    """Country (or bare location) names Morocco, or regional sites were requested."""
    if params.regional_sources:
        return True
    if params.country.strip().lower() in MOROCCO_ALIASES:
        return True
    return params.location.strip().lower() in MOROCCO_ALIASES


def matches_city(job: NormalizedJob, city: str) -> bool:
    """
    Permissive: the city appears in the location, or the location says
    nothing more specific than "Maroc" (or nothing at all).
    """
    c = (city or "").strip().lower()
    if not c:
        return True
    loc = (job.location or "").lower()
    if c in loc or c in (job.city or "").lower():
        return True
    rest = loc
    for word in _GENERIC_LOCATION_WORDS:
        rest = rest.replace(word, "")
    return not rest.strip(" ,-/()")


class MoroccoAggregator:
    def __init__(
        self,
        sources: Sequence[RegionalSource],
        *,
        timeout_sec: float = DEFAULT_TIMEOUT_SEC,
        supplement_chain: Sequence[BaseProvider] = (),
        max_threads: int = 8,
        priority: int = 0,
    ) -> None:
        self.sources = sorted(sources, key=lambda s: s.priority)
        self.timeout_sec = float(timeout_sec)
        self.supplement_chain = list(supplement_chain)
        self.max_threads = max_threads
        self.priority = priority

    def site_ids(self) -> list[str]:
        return [s.id for s in self.sources]

    def search(self, params: SearchParams) -> ProviderOutcome:
        t0 = time.perf_counter_ns()
        wanted = set(params.regional_sources) if params.regional_sources else None
        selected = [s for s in self.sources if wanted is None or s.id in wanted]

        outcome = ProviderOutcome(source=REGIONAL_ID, priority=self.priority)
        if not selected:
            outcome.error = "no regional sources enabled or selected"
            return outcome

        site_params = dataclasses.replace(params, limit=max(params.limit, MIN_SOURCE_LIMIT))
        results = self._fan_out(selected, site_params)

        merged: list[NormalizedJob] = []
        errors: dict[str, str] = {}
        for src in selected:
            res = results[src.id]
            tag = f"{REGIONAL_PREFIX}{src.id}"
            if res.error:
                errors[tag] = res.error
                outcome.stats[tag] = 0
                continue
            jobs = normalize_many(res.jobs, tag)
            outcome.stats[tag] = len(jobs)
            if jobs:
                outcome.sources.append(tag)
            merged.extend(jobs)

        jobs = filters.sort_by_recency(filters.dedupe(merged))

        supplement_id, extra = self._supplement(params)
        if supplement_id:
            outcome.stats[supplement_id] = len(extra)
            if extra:
                outcome.sources.append(supplement_id)
                jobs = filters.sort_by_recency(filters.dedupe([*jobs, *extra]))

        if params.city:
            jobs = [j for j in jobs if matches_city(j, params.city)]

        outcome.jobs = jobs
        outcome.total = len(jobs)
        if errors and not outcome.sources:
            outcome.error = "; ".join(f"{k}: {v}" for k, v in sorted(errors.items()))

        logging_bridge.activity({
            "component": "job_search.regional",
            "op": "summary",
            "query": params.query,
            "city": params.city,
            "provider_stats": dict(outcome.stats),
            "errors": errors,
            "total": outcome.total,
            "total_us": int((time.perf_counter_ns() - t0) // 1000),
        })
        return outcome

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _fan_out(self, sources: list[RegionalSource], params: SearchParams) -> dict[str, ProviderResult]:
        """
        Run every site concurrently and wait at most `timeout_sec` (from a
        shared start) for each. Slow sites are abandoned, not joined.
        """
        results: dict[str, ProviderResult] = {}
        pool = ThreadPoolExecutor(max_workers=min(len(sources), self.max_threads), thread_name_prefix="morocco")
        try:
            futures = {s.id: pool.submit(s.search, params) for s in sources}
            deadline = time.monotonic() + self.timeout_sec
            for sid, fut in futures.items():
                try:
                    results[sid] = fut.result(timeout=max(0.0, deadline - time.monotonic()))
                except FuturesTimeout:
                    fut.cancel()
                    results[sid] = ProviderResult(
                        source=sid, error=f"timeout after {self.timeout_sec:g}s"
                    )
                    logging_bridge.error({
                        "component": "job_search.regional",
                        "op": "timeout",
                        "site": sid,
                        "timeout_sec": self.timeout_sec,
                    })
                except Exception as e:
                    results[sid] = ProviderResult(source=sid, error=str(e) or repr(e))
        finally:
            pool.shutdown(wait=False, cancel_futures=True)
        return results

    def _supplement(self, params: SearchParams) -> tuple[str | None, list[NormalizedJob]]:
        """First provider in the chain that returns jobs for a Morocco-scoped query."""
        if not self.supplement_chain:
            return None, []
        scoped = dataclasses.replace(
            params,
            country="Morocco",
            location=params.city or "Morocco",
            page=1,
            limit=min(params.limit, SUPPLEMENT_LIMIT),
        )
        last_id: str | None = None
        for provider in self.supplement_chain:
            last_id = provider.id
            res = provider.search(scoped)
            if res.error or not res.jobs:
                continue
            return provider.id, normalize_many(res.jobs, provider.id)
        return last_id, []
