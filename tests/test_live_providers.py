import pytest

from modules.job_search.lib.config import EnvCredentials, Settings
from modules.job_search.lib.models import SearchParams
from modules.job_search.lib.orchestrator import JobSearchService

pytestmark = pytest.mark.live


def test_live_keyless_providers():
    service = JobSearchService.from_settings(Settings(sqlite_path=None), credentials=EnvCredentials({}))
    try:
        result = service.search_jobs(SearchParams(query="engineer", sources=("remoteok", "themuse"), limit=5))
    finally:
        service.close()
    assert set(result.provider_stats) == {"remoteok", "themuse"}
    for job in result.jobs:
        assert job.id.startswith(("remoteok_", "themuse_"))
        assert job.title


def test_live_morocco_search():
    settings = Settings(sqlite_path=None, regional_blend_provider=None)
    service = JobSearchService.from_settings(settings, credentials=EnvCredentials({}))
    try:
        result = service.search_jobs(SearchParams(query="comptable", country="Maroc", limit=10))
    finally:
        service.close()
    assert any(k.startswith("regional_") for k in result.provider_stats)
