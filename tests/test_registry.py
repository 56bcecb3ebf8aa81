import pytest

from modules.job_search.lib.config import EnvCredentials
from modules.job_search.lib.models import SearchParams
from modules.job_search.lib.providers import (
    AdzunaProvider,
    AusbildungProvider,
    JSearchProvider,
    RemoteOKProvider,
    StubProvider,
    TheMuseProvider,
    build_registry,
    is_ausbildung_search,
    register,
)
from modules.job_search.lib.providers.adzuna import adzuna_country
from modules.job_search.lib.providers.base import BaseProvider

CREDS = EnvCredentials({"ADZUNA_APP_ID": "id-1", "ADZUNA_APP_KEY": "key-1", "JSEARCH_API_KEY": "rapid-1"})


class FakeClient:
    """Stands in for HttpClient: returns `payload` (or payload(url, params)) and records calls."""

    def __init__(self, payload=None, exc=None):
        self.payload = payload
        self.exc = exc
        self.calls = []
        self.closed = False

    def get_json(self, url, *, params=None, headers=None, **kwargs):
        self.calls.append({"url": url, "params": dict(params or {}), "headers": dict(headers or {})})
        if self.exc is not None:
            raise self.exc
        return self.payload(url, params) if callable(self.payload) else self.payload

    def close(self):
        self.closed = True


# ---------------------------------------------------------------------
# Class registry
# ---------------------------------------------------------------------
def test_register_rejects_missing_id():
    class NoId(BaseProvider):
        def _search(self, params):
            raise NotImplementedError

    with pytest.raises(ValueError):
        register(NoId)


def test_register_rejects_duplicate_id():
    class Impostor(BaseProvider):
        id = "remoteok"

        def _search(self, params):
            raise NotImplementedError

    with pytest.raises(ValueError):
        register(Impostor)
    # re-registering the same class is a no-op
    assert register(RemoteOKProvider) is RemoteOKProvider


# ---------------------------------------------------------------------
# build_registry / select
# ---------------------------------------------------------------------
def test_enabled_follows_credentials():
    reg = build_registry(EnvCredentials({"ADZUNA_APP_ID": "x", "ADZUNA_APP_KEY": "your_key"}), client=FakeClient())
    enabled = {d.id: d.enabled for d in reg.all()}
    assert enabled == {
        "remoteok": True,
        "adzuna": False,
        "jsearch": False,
        "themuse": True,
        "ausbildung": False,
        "stub": False,
    }
    assert [d.id for d in reg.all()] == ["remoteok", "adzuna", "jsearch", "themuse", "ausbildung", "stub"]


def test_stub_enabled_only_on_request():
    reg = build_registry(EnvCredentials({}), client=FakeClient(), enable_stub=True)
    assert reg.get("stub").enabled
    assert "STUB" in reg


def test_select_honours_opt_in_and_allow_list():
    reg = build_registry(CREDS, client=FakeClient())
    plain = SearchParams(query="python developer")
    assert [d.id for d in reg.select(plain)] == ["remoteok", "adzuna", "jsearch", "themuse"]

    apprentice = SearchParams(query="Ausbildung Mechatroniker")
    chosen = reg.select(apprentice, opt_in=lambda pid: is_ausbildung_search(apprentice))
    assert "ausbildung" in [d.id for d in chosen]

    limited = SearchParams(sources=("themuse", "adzuna", "nope"))
    assert [d.id for d in reg.select(limited)] == ["adzuna", "themuse"]


def test_descriptor_to_dict():
    reg = build_registry(CREDS, client=FakeClient())
    d = reg.get("jsearch").to_dict()
    assert d == {
        "id": "jsearch",
        "name": "JSearch",
        "priority": 3,
        "enabled": True,
        "requires_opt_in": False,
        "supports_lookup": True,
    }
    assert reg.get("remoteok").to_dict()["supports_lookup"] is False


def test_registry_close_closes_shared_client():
    client = FakeClient()
    build_registry(CREDS, client=client, include=["remoteok"]).close()
    assert client.closed


# ---------------------------------------------------------------------
# Provider contract
# ---------------------------------------------------------------------
def test_search_never_raises():
    provider = RemoteOKProvider(client=FakeClient(exc=ConnectionError("boom")), credentials=CREDS)
    res = provider.search(SearchParams(query="python"))
    assert res.error == "boom"
    assert res.jobs == []


def test_stub_error_modes():
    assert StubProvider(client=FakeClient(), error="down").search(SearchParams()).error == "down"
    res = StubProvider(client=FakeClient(), raise_error=True).search(SearchParams())
    assert res.error == "stub failure"


def test_stub_query_and_lookup():
    items = [{"id": "1", "title": "Welder", "company": "Forge"}, {"id": "2", "title": "Baker", "company": "Bread"}]
    stub = StubProvider(client=FakeClient(), items=items)
    res = stub.search(SearchParams(query="weld"))
    assert [i["id"] for i in res.jobs] == ["1"]
    assert stub.get_job("2")["title"] == "Baker"
    assert stub.get_job("3") is None


# ---------------------------------------------------------------------
# Upstream request shapes
# ---------------------------------------------------------------------
def test_remoteok_skips_notice_and_filters_locally():
    feed = [
        {"legal": "notice"},
        {"id": "1", "position": "Python Dev", "company": "A", "tags": ["python"]},
        {"id": "2", "position": "Designer", "company": "B", "tags": ["figma"]},
        {"id": "3", "position": "Backend", "company": "C", "tags": ["Python", "go"]},
    ]
    client = FakeClient(feed)
    res = RemoteOKProvider(client=client, credentials=CREDS).search(SearchParams(query="python", limit=5))
    assert [j["id"] for j in res.jobs] == ["1", "3"]
    assert client.calls[0]["params"] == {"api": 1}


def test_remoteok_rejects_unexpected_payload():
    res = RemoteOKProvider(client=FakeClient({"oops": True}), credentials=CREDS).search(SearchParams())
    assert "unexpected RemoteOK payload" in res.error


def test_adzuna_request():
    client = FakeClient({"results": [{"id": 1}], "count": 120})
    params = SearchParams(query="nurse", location="Leeds", country="UK", job_type="part-time", page=2, limit=10)
    res = AdzunaProvider(client=client, credentials=CREDS).search(params)
    call = client.calls[0]
    assert call["url"].endswith("/gb/search/2")
    assert call["params"]["what"] == "nurse"
    assert call["params"]["where"] == "Leeds"
    assert call["params"]["contract_type"] == "part_time"
    assert call["params"]["results_per_page"] == 10
    assert res.total == 120


@pytest.mark.parametrize("limit,expected", [(255, 50), (50, 50), (1, 1)])
def test_adzuna_page_size_is_capped(limit, expected):
    # the orchestrator's fetch window can ask for far more than one page
    client = FakeClient({"results": [], "count": 0})
    AdzunaProvider(client=client, credentials=CREDS).search(SearchParams(query="nurse", limit=limit))
    assert client.calls[0]["params"]["results_per_page"] == expected


def test_adzuna_without_credentials_is_an_error():
    res = AdzunaProvider(client=FakeClient({}), credentials=EnvCredentials({})).search(SearchParams())
    assert res.error == "Adzuna credentials are not configured"


@pytest.mark.parametrize("country,code", [("Morocco", "fr"), ("Deutschland", "de"), ("", "us"), ("Atlantis", "us")])
def test_adzuna_country_codes(country, code):
    assert adzuna_country(country) == code


def test_ausbildung_builds_german_query():
    client = FakeClient({"results": [], "count": 0})
    params = SearchParams(query="Koch", location="Deutschland", ausbildung_field="gastronomie", job_type="full-time")
    AusbildungProvider(client=client, credentials=CREDS).search(params)
    call = client.calls[0]
    assert "/de/search/1" in call["url"]
    assert call["params"]["what"] == "ausbildung Koch Gastronomie & Hotel"
    assert "where" not in call["params"]
    assert "contract_type" not in call["params"]


def test_jsearch_search_and_lookup():
    def payload(url, params):
        if url.endswith("/job-details"):
            return {"data": [{"job_id": params["job_id"]}]}
        return {"data": [{"job_id": "a"}, "junk"]}

    client = FakeClient(payload)
    provider = JSearchProvider(client=client, credentials=CREDS)
    res = provider.search(SearchParams(query="devops", location="Austin", remote=True, experience_level="senior"))
    q = client.calls[0]["params"]
    assert q["query"] == "devops in Austin"
    assert q["remote_jobs_only"] == "true"
    assert q["job_requirements"] == "more_than_3_years_experience"
    assert client.calls[0]["headers"]["X-RapidAPI-Key"] == "rapid-1"
    assert [j["job_id"] for j in res.jobs] == ["a"]
    assert provider.get_job("xyz") == {"job_id": "xyz"}


def test_lookup_failure_returns_none():
    provider = JSearchProvider(client=FakeClient(exc=TimeoutError("slow")), credentials=CREDS)
    assert provider.get_job("xyz") is None
    assert RemoteOKProvider(client=FakeClient(), credentials=CREDS).get_job("1") is None


def test_themuse_pages_are_zero_based():
    client = FakeClient({"results": [{"id": 1, "name": "Data Engineer"}, {"id": 2, "name": "Nurse"}], "total": 2})
    res = TheMuseProvider(client=client, credentials=CREDS).search(
        SearchParams(query="data", page=3, experience_level="entry")
    )
    assert client.calls[0]["params"] == {"page": 2, "level": "Entry Level"}
    assert [j["id"] for j in res.jobs] == [1]
