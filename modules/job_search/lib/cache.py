"""
Two-tier cache for search pages and individual jobs.

Tier 1 is an in-process bounded map (fast, volatile, short TTL).
Tier 2 is the SQLite store in `store.py` (survives restarts, longer TTL).

Tier 2 is an optimization only: a missing path, missing schema or any I/O
error reads as a miss and writes as a no-op. Nothing in here raises to the
caller.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from concurrent.futures import Executor, ThreadPoolExecutor
from datetime import datetime, timedelta
from typing import Any, Generic, TypeVar

from . import logging_bridge, store
from .models import CachedSearch, NormalizedJob
from .store import StoreError
from .utils import utcnow

T = TypeVar("T")

SEARCH_MEMORY_TTL = timedelta(minutes=15)
JOB_MEMORY_TTL = timedelta(minutes=60)
SEARCH_DB_TTL = timedelta(minutes=30)

SEARCH_MEMORY_CAPACITY = 100
SEARCH_MEMORY_EVICT = 20  # 20% of capacity
JOB_MEMORY_CAPACITY = 500
JOB_MEMORY_EVICT = 20


class MemoryCache(Generic[T]):
    """
    Bounded insertion-ordered map with read-time TTL.

    Overflow evicts the `evict_count` oldest entries by insertion order, not
    by last access. Single get/set operations only; no locking.
    """

    def __init__(
        self,
        capacity: int,
        ttl: timedelta,
        evict_count: int,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if capacity <= 0 or evict_count <= 0:
            raise ValueError("capacity and evict_count must be positive")
        self.capacity = capacity
        self.ttl = ttl
        self.evict_count = evict_count
        self._clock = clock or utcnow
        self._entries: dict[str, tuple[T, datetime]] = {}

    def get(self, key: str) -> T | None:
        hit = self._entries.get(key)
        if hit is None:
            return None
        value, created_at = hit
        if self._clock() - created_at > self.ttl:
            self._entries.pop(key, None)
            return None
        return value

    def set(self, key: str, value: T, created_at: datetime | None = None) -> None:
        # Replace wholesale; a rewritten key becomes the newest entry.
        self._entries.pop(key, None)
        if len(self._entries) >= self.capacity:
            for old in list(self._entries)[: self.evict_count]:
                self._entries.pop(old, None)
        self._entries[key] = (value, created_at or self._clock())

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> int:
        n = len(self._entries)
        self._entries.clear()
        return n

    def keys(self) -> list[str]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries


class JobCache:
    """
    Cache service handed to the orchestrator (no module-level singletons).

    Args:
        sqlite_path: tier-2 database file; None disables tier 2.
        clock: returns aware UTC datetimes; defaults to utils.utcnow.
        background: executor for tier-2 writes and expired-row deletes.
            Pass None to run them inline (still error-swallowing), which is
            what tests use for determinism.
    """

    def __init__(
        self,
        sqlite_path: str | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
        background: Executor | None | str = "thread",
        search_ttl: timedelta = SEARCH_MEMORY_TTL,
        job_ttl: timedelta = JOB_MEMORY_TTL,
        search_db_ttl: timedelta = SEARCH_DB_TTL,
    ) -> None:
        self.sqlite_path = sqlite_path
        self._clock = clock or utcnow
        self.search_db_ttl = search_db_ttl
        self.searches: MemoryCache[CachedSearch] = MemoryCache(
            SEARCH_MEMORY_CAPACITY, search_ttl, SEARCH_MEMORY_EVICT, clock=self._clock
        )
        self.jobs: MemoryCache[NormalizedJob] = MemoryCache(
            JOB_MEMORY_CAPACITY, job_ttl, JOB_MEMORY_EVICT, clock=self._clock
        )
        self._owns_background = background == "thread"
        if background == "thread":
            self._background: Executor | None = ThreadPoolExecutor(max_workers=1, thread_name_prefix="job-cache")
        else:
            self._background = background  # type: ignore[assignment]
        self._pending: list[Any] = []

    # ------------------------------------------------------------------
    # Search pages
    # ------------------------------------------------------------------
    def get_search(self, key: str) -> CachedSearch | None:
        hit = self.searches.get(key)
        if hit is not None:
            return hit
        if not self.sqlite_path:
            return None

        try:
            row = store.get_search(self.sqlite_path, key)
        except StoreError as e:
            self._log_store_error("get_search", e, cache_key=key)
            return None
        if row is None:
            return None

        payload, created_at = row
        if self._clock() - created_at > self.search_db_ttl:
            self._spawn("delete_search", store.delete_search, self.sqlite_path, key)
            return None

        try:
            cached = CachedSearch.from_dict(payload)
        except (TypeError, ValueError, AttributeError) as e:
            self._log_store_error("decode_search", e, cache_key=key)
            return None
        self.searches.set(key, cached)
        return cached

    def set_search(self, key: str, payload: CachedSearch) -> None:
        self.searches.set(key, payload)
        if self.sqlite_path:
            self._spawn("put_search", store.put_search, self.sqlite_path, key, payload.to_dict(), self._clock())

    # ------------------------------------------------------------------
    # Individual jobs
    # ------------------------------------------------------------------
    def get_job(self, job_id: str) -> NormalizedJob | None:
        hit = self.jobs.get(job_id)
        if hit is not None:
            return hit
        if not self.sqlite_path:
            return None
        try:
            job = store.get_job_by_id(self.sqlite_path, job_id)
        except StoreError as e:
            self._log_store_error("get_job", e, job_id=job_id)
            return None
        if job is not None:
            self.jobs.set(job_id, job)
        return job

    def set_jobs(self, jobs: Iterable[NormalizedJob]) -> None:
        batch = list(jobs)
        for job in batch:
            self.jobs.set(job.id, job)
        if self.sqlite_path and batch:
            self._spawn("upsert_jobs", store.upsert_jobs, self.sqlite_path, batch)

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------
    def clear_search(self) -> dict[str, int]:
        return {
            "memory": self.searches.clear(),
            "persistent": self._admin("clear_searches", store.clear_searches),
        }

    def clear_jobs(self) -> dict[str, int]:
        return {
            "memory": self.jobs.clear(),
            "persistent": self._admin("clear_jobs", store.clear_jobs),
        }

    def clear_all(self) -> dict[str, dict[str, int]]:
        return {"search": self.clear_search(), "jobs": self.clear_jobs()}

    def purge_expired(self) -> int:
        """Drop persistent search rows older than the tier-2 TTL."""
        cutoff = self._clock() - self.search_db_ttl
        return self._admin("purge_searches", lambda path: store.purge_searches(path, cutoff))

    def stats(self) -> dict[str, Any]:
        return {
            "search_memory_entries": len(self.searches),
            "job_memory_entries": len(self.jobs),
            "persistent": bool(self.sqlite_path),
        }

    def drain(self) -> None:
        """Wait for background tier-2 work submitted so far (tests, shutdown)."""
        pending, self._pending = self._pending, []
        for fut in pending:
            fut.exception()

    def close(self) -> None:
        self.drain()
        if self._owns_background and self._background is not None:
            self._background.shutdown(wait=True)
            self._background = None

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _admin(self, op: str, fn: Callable[[str], int]) -> int:
        if not self.sqlite_path:
            return 0
        try:
            return fn(self.sqlite_path)
        except StoreError as e:
            self._log_store_error(op, e)
            return 0

    def _spawn(self, op: str, fn: Callable[..., Any], *args: Any) -> None:
        """Fire-and-forget tier-2 work; failures are logged, never raised."""

        def _run() -> None:
            try:
                fn(*args)
            except Exception as e:
                self._log_store_error(op, e)

        if self._background is None:
            _run()
            return
        try:
            fut = self._background.submit(_run)
        except RuntimeError as e:  # executor already shut down
            self._log_store_error(op, e)
            return
        self._pending = [f for f in self._pending if not f.done()]
        self._pending.append(fut)

    def _log_store_error(self, op: str, e: Exception, **extra: Any) -> None:
        logging_bridge.error({
            "component": "job_search.cache",
            "op": op,
            "sqlite_path": self.sqlite_path,
            "error": repr(e),
            **extra,
        })
