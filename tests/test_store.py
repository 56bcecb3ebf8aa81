from datetime import datetime, timezone

import pytest

from modules.job_search.lib import store
from modules.job_search.lib.models import NormalizedJob
from modules.job_search.lib.store import StoreError


@pytest.fixture
def db(tmp_path):
    path = str(tmp_path / "jobsearch.db")
    store.init_db(path)
    yield path
    store.reset_db(path)


def _job(ext, title="Engineer", source="adzuna", **kw):
    return NormalizedJob(id=f"{source}_{ext}", source=source, external_id=ext, title=title, **kw)


def test_init_db_is_idempotent(db):
    store.init_db(db)
    store.init_db(db)
    assert store.count_rows(db) == 0
    assert store.count_rows(db, "jobs_cache") == 0


def test_put_and_get_search(db):
    created = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)
    store.put_search(db, "jobs:python", {"jobs": [], "total": 0, "sources": ["remoteok"]}, created)
    payload, created_at = store.get_search(db, "jobs:python")
    assert payload["sources"] == ["remoteok"]
    assert created_at == created
    assert store.get_search(db, "jobs:missing") is None


def test_put_search_upserts(db):
    store.put_search(db, "k", {"total": 1})
    store.put_search(db, "k", {"total": 2})
    assert store.count_rows(db) == 1
    assert store.get_search(db, "k")[0] == {"total": 2}


def test_delete_and_purge(db):
    store.put_search(db, "a", {}, datetime(2025, 1, 1, tzinfo=timezone.utc))
    store.put_search(db, "b", {}, datetime(2025, 1, 2, tzinfo=timezone.utc))
    store.put_search(db, "c", {}, datetime(2025, 1, 3, tzinfo=timezone.utc))
    assert store.delete_search(db, "a") == 1
    assert store.delete_search(db, "a") == 0
    assert store.purge_searches(db, datetime(2025, 1, 3, tzinfo=timezone.utc)) == 1
    assert store.get_search(db, "c") is not None
    assert store.clear_searches(db) == 1


def test_upsert_jobs_keys_on_source_and_external_id(db):
    store.upsert_jobs(db, [_job("1", title="Old title"), _job("2")])
    store.upsert_jobs(db, [_job("1", title="New title")])
    assert store.count_rows(db, "jobs_cache") == 2
    assert store.get_job(db, "adzuna", "1").title == "New title"
    assert store.get_job_by_id(db, "adzuna_2").external_id == "2"
    assert store.get_job(db, "adzuna", "404") is None


def test_job_round_trip_keeps_lists_and_raw_data(db):
    job = _job(
        "7",
        skills=["Python", "SQL"],
        tags=["Remote"],
        requirements=["3 years"],
        salary_min=50000,
        featured=True,
        raw_data={"nested": {"k": [1, 2]}},
    )
    store.upsert_jobs(db, [job])
    back = store.get_job_by_id(db, "adzuna_7")
    assert back == job
    assert back.featured is True


def test_upsert_empty_batch_is_noop(db):
    assert store.upsert_jobs(db, []) == 0


def test_clear_jobs(db):
    store.upsert_jobs(db, [_job("1"), _job("2")])
    assert store.clear_jobs(db) == 2


def test_corrupt_file_raises_store_error(tmp_path):
    path = tmp_path / "broken.db"
    path.write_bytes(b"this is not a sqlite database" * 100)
    with pytest.raises(StoreError):
        store.get_search(str(path), "k")


def test_count_rows_on_missing_db(tmp_path):
    assert store.count_rows(str(tmp_path / "nope.db")) == 0
    with pytest.raises(ValueError):
        store.count_rows(str(tmp_path / "nope.db"), "sqlite_master")
