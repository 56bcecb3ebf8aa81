from datetime import timedelta

import pytest
from freezegun import freeze_time

from modules.job_search.lib import store
from modules.job_search.lib.cache import JobCache, MemoryCache
from modules.job_search.lib.models import CachedSearch, NormalizedJob


def _job(n, source="alpha"):
    return NormalizedJob(
        id=f"{source}_{n}",
        source=source,
        external_id=str(n),
        title=f"Engineer {n}",
        company="Acme",
        location="Berlin, Germany",
        skills=["Python"],
        posted_at="2025-01-01T00:00:00Z",
        raw_data={"id": n},
    )


def _payload(*ns):
    jobs = tuple(_job(n) for n in ns)
    return CachedSearch(jobs=jobs, total=len(jobs), sources=("alpha",))


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "state" / "jobsearch.db")


# ---------------------------------------------------------------------
# MemoryCache
# ---------------------------------------------------------------------
def test_memory_cache_evicts_oldest_by_insertion():
    mc = MemoryCache(capacity=5, ttl=timedelta(minutes=5), evict_count=2)
    for i in range(5):
        mc.set(f"k{i}", i)
    mc.get("k0")  # reads do not refresh position
    mc.set("k5", 5)
    assert mc.keys() == ["k2", "k3", "k4", "k5"]


def test_memory_cache_rewrite_moves_key_to_newest():
    mc = MemoryCache(capacity=3, ttl=timedelta(minutes=5), evict_count=1)
    mc.set("a", 1)
    mc.set("b", 2)
    mc.set("a", 10)
    mc.set("c", 3)
    mc.set("d", 4)
    assert mc.keys() == ["a", "c", "d"]
    assert mc.get("a") == 10


def test_memory_cache_ttl():
    with freeze_time("2025-01-01T00:00:00Z") as frozen:
        mc = MemoryCache(capacity=10, ttl=timedelta(minutes=15), evict_count=2)
        mc.set("k", "v")
        frozen.tick(timedelta(minutes=14))
        assert mc.get("k") == "v"
        frozen.tick(timedelta(minutes=2))
        assert mc.get("k") is None
        assert "k" not in mc


def test_memory_cache_rejects_bad_bounds():
    with pytest.raises(ValueError):
        MemoryCache(capacity=0, ttl=timedelta(minutes=1), evict_count=1)


# ---------------------------------------------------------------------
# JobCache, memory only
# ---------------------------------------------------------------------
def test_search_round_trip_in_memory(memory_cache):
    payload = _payload(1, 2)
    memory_cache.set_search("jobs:python", payload)
    assert memory_cache.get_search("jobs:python") == payload
    assert memory_cache.get_search("jobs:other") is None


def test_search_memory_ttl_is_fifteen_minutes():
    with freeze_time("2025-01-01T00:00:00Z") as frozen:
        cache = JobCache(None, background=None)
        cache.set_search("k", _payload(1))
        frozen.tick(timedelta(minutes=14, seconds=59))
        assert cache.get_search("k") is not None
        frozen.tick(timedelta(seconds=2))
        assert cache.get_search("k") is None


def test_single_job_ttl_is_an_hour():
    with freeze_time("2025-01-01T00:00:00Z") as frozen:
        cache = JobCache(None, background=None)
        cache.set_jobs([_job(1)])
        frozen.tick(timedelta(minutes=59))
        assert cache.get_job("alpha_1") == _job(1)
        frozen.tick(timedelta(minutes=2))
        assert cache.get_job("alpha_1") is None


def test_clear_counts_without_persistent_tier(memory_cache):
    memory_cache.set_search("a", _payload(1))
    memory_cache.set_search("b", _payload(2))
    memory_cache.set_jobs([_job(1), _job(2), _job(3)])
    assert memory_cache.clear_all() == {
        "search": {"memory": 2, "persistent": 0},
        "jobs": {"memory": 3, "persistent": 0},
    }
    assert memory_cache.stats()["search_memory_entries"] == 0


# ---------------------------------------------------------------------
# JobCache with SQLite
# ---------------------------------------------------------------------
def test_persistent_tier_survives_a_new_process(db_path):
    first = JobCache(db_path, background=None)
    first.set_search("jobs:python", _payload(1, 2))
    first.set_jobs([_job(1)])

    second = JobCache(db_path, background=None)
    hit = second.get_search("jobs:python")
    assert hit is not None
    assert [j.id for j in hit.jobs] == ["alpha_1", "alpha_2"]
    assert hit.jobs[0].skills == ["Python"]
    # repopulated tier 1
    assert "jobs:python" in second.searches
    assert second.get_job("alpha_1").title == "Engineer 1"


def test_persistent_search_expires_after_thirty_minutes(db_path):
    with freeze_time("2025-01-01T00:00:00Z") as frozen:
        JobCache(db_path, background=None).set_search("k", _payload(1))
        frozen.tick(timedelta(minutes=29))
        assert JobCache(db_path, background=None).get_search("k") is not None
        frozen.tick(timedelta(minutes=2))
        assert JobCache(db_path, background=None).get_search("k") is None
    # the expired row was deleted
    assert store.count_rows(db_path) == 0


def test_background_writes_are_drained(db_path):
    cache = JobCache(db_path)
    cache.set_search("k", _payload(1))
    cache.set_jobs([_job(1), _job(2)])
    cache.drain()
    assert store.count_rows(db_path) == 1
    assert store.count_rows(db_path, "jobs_cache") == 2
    cache.close()


def test_store_failure_degrades_to_miss(tmp_path):
    # a directory is not a database file
    cache = JobCache(str(tmp_path), background=None)
    cache.set_search("k", _payload(1))  # tier 1 still works
    cache.searches.clear()
    assert cache.get_search("k") is None
    assert cache.get_job("alpha_1") is None
    assert cache.purge_expired() == 0


def test_purge_expired(db_path):
    with freeze_time("2025-01-01T00:00:00Z") as frozen:
        cache = JobCache(db_path, background=None)
        cache.set_search("old", _payload(1))
        frozen.tick(timedelta(minutes=45))
        cache.set_search("new", _payload(2))
        assert cache.purge_expired() == 1
    assert store.get_search(db_path, "old") is None
    assert store.get_search(db_path, "new") is not None


def test_clear_all_with_persistent_tier(db_path):
    cache = JobCache(db_path, background=None)
    cache.set_search("a", _payload(1))
    cache.set_jobs([_job(1), _job(2)])
    removed = cache.clear_all()
    assert removed["search"] == {"memory": 1, "persistent": 1}
    assert removed["jobs"] == {"memory": 2, "persistent": 2}
    assert store.count_rows(db_path, "jobs_cache") == 0
