# tests/conftest.py
import os
import time
from datetime import datetime, timedelta, timezone

import pytest
from freezegun import freeze_time

from modules.job_search.lib.cache import JobCache
from modules.job_search.lib.config import EnvCredentials, Settings
from modules.job_search.lib.models import ProviderResult
from modules.job_search.lib.orchestrator import JobSearchService
from modules.job_search.lib.providers.base import BaseProvider
from modules.job_search.lib.providers.registry import ProviderDescriptor, ProviderRegistry

_CREDENTIAL_ENV = (
    "ADZUNA_APP_ID",
    "ADZUNA_APP_KEY",
    "JSEARCH_API_KEY",
    "JOB_SEARCH_SETTINGS",
    "JOB_SEARCH_SQLITE_PATH",
    "JOB_SEARCH_MAX_THREADS",
    "JOB_SEARCH_PROVIDER_TIMEOUT",
    "JOB_SEARCH_SKIP_NETWORK",
)

BASE_TIME = datetime(2025, 1, 31, tzinfo=timezone.utc)


# ---------------------------------------------------------------------
# Live tests are opt-in: use --live or RUN_LIVE_TESTS=1
# ---------------------------------------------------------------------
def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--live",
        action="store_true",
        default=False,
        help="Run tests marked as 'live' (network calls to job providers).",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "live: marks tests that perform live network calls (skipped by default).",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    run_live = config.getoption("--live") or os.getenv("RUN_LIVE_TESTS") == "1"
    if run_live:
        return
    skip_live = pytest.mark.skip(reason="live tests disabled (use --live or RUN_LIVE_TESTS=1)")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


# ---------------------------------------------------------------------
# Test-wide env defaults (autouse, function-scoped)
# ---------------------------------------------------------------------
@pytest.fixture(autouse=True)
def _env_defaults(monkeypatch, tmp_path_factory):
    # Logs go to a throwaway dir so real logs stay clean (per test)
    monkeypatch.setenv("LOG_DIR", str(tmp_path_factory.mktemp("logs")))
    monkeypatch.setenv("ACTIVITY_LOG_PREFIX", "activity-test")
    monkeypatch.setenv("ERROR_LOG_PREFIX", "error-test")
    # No real credentials or settings leak in from the developer's shell
    for key in _CREDENTIAL_ENV:
        monkeypatch.delenv(key, raising=False)
    yield


@pytest.fixture
def frozen_utc():
    with freeze_time("2025-01-01T00:00:00Z") as frozen:
        yield frozen


# ---------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------
class FakeProvider(BaseProvider):
    """
    In-memory provider. Records every SearchParams it sees in `calls`.
    `raises` is raised from _search, `error` is returned as a provider error,
    `delay` sleeps before answering.
    """

    def __init__(self, pid, items=(), *, priority=10, requires_opt_in=False, error=None, raises=None, delay=0.0):
        super().__init__(credentials=EnvCredentials({}))
        self.id = pid
        self.name = pid.title()
        self.priority = priority
        self.requires_opt_in = requires_opt_in
        self.items = [dict(i) for i in items]
        self.error = error
        self.raises = raises
        self.delay = delay
        self.calls = []

    def _search(self, params):
        self.calls.append(params)
        if self.delay:
            time.sleep(self.delay)
        if self.raises is not None:
            raise self.raises
        if self.error:
            return ProviderResult(source=self.id, error=self.error)
        return ProviderResult(source=self.id, jobs=self.items[: params.limit], total=len(self.items))


class LookupProvider(FakeProvider):
    def _get_job(self, external_id):
        for item in self.items:
            if str(item.get("id")) == external_id:
                return item
        return None


def raw_job(n, *, title=None, company=None, location="Berlin, Germany", **extra):
    """Generic-shape raw record; a higher `n` is posted one hour earlier per step."""
    posted = BASE_TIME - timedelta(hours=n)
    rec = {
        "id": str(n),
        "title": title or f"Engineer {n}",
        "company": company or f"Company {n}",
        "location": location,
        "date": posted.isoformat(),
        "url": f"https://jobs.example.com/{n}",
    }
    rec.update(extra)
    return rec


def make_registry(*providers, disabled=()):
    return ProviderRegistry(
        ProviderDescriptor(
            id=p.id,
            name=p.name,
            priority=p.priority,
            enabled=p.id not in disabled,
            requires_opt_in=p.requires_opt_in,
            rate_limit_ms=0,
            provider=p,
        )
        for p in providers
    )


@pytest.fixture
def memory_cache():
    cache = JobCache(None, background=None)
    yield cache
    cache.close()


@pytest.fixture
def make_service(memory_cache):
    def _make(*providers, regional=None, cache=memory_cache, **settings_kwargs):
        settings = Settings(sqlite_path=None, **settings_kwargs)
        return JobSearchService(make_registry(*providers), cache, settings, regional)

    return _make
