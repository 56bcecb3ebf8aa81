import json

from modules.job_search import run
from modules.job_search.lib.models import NormalizedJob, SearchResult
from modules.job_search.lib.render import build_table, render_result
from service.logging_utils import log_path

STUB_ITEMS = [
    {
        "id": "1",
        "title": "Welder",
        "company": "Forge & Sons",
        "location": "Hamburg, Germany",
        "date": "2025-01-30T00:00:00Z",
        "url": "https://jobs.example.com/1",
    },
    {"id": "2", "title": "Baker", "company": "Bread Co", "location": "Remote"},
]


def _run(**overrides):
    kwargs = {
        "enable_stub": True,
        "skip_network": True,
        "sqlite_path": "none",
        "stub_items": STUB_ITEMS,
    }
    kwargs.update(overrides)
    return run(**kwargs)


def test_run_returns_html_and_meta():
    out = _run(search={"query": "welder"})
    assert out is not None
    html, meta = out
    assert meta["subject"] == "Jobs: welder (1)"
    assert meta["result"]["sources"] == ["stub"]
    assert meta["result"]["jobs"][0]["id"] == "stub_1"
    assert "<h2>Jobs: welder</h2>" in html
    assert "Forge &amp; Sons" in html
    assert '<a href="https://jobs.example.com/1">apply</a>' in html


def test_run_without_results_returns_none():
    assert _run(search={"query": "astronaut"}) is None


def test_run_email_if_empty():
    html, meta = _run(search={"query": "astronaut"}, email_if_empty=True)
    assert meta["subject"] == "Jobs: astronaut (0)"
    assert "0 job(s) from stub" in html


def test_run_logs_start_and_summary():
    _run(search={"query": "baker"})
    with open(log_path("activity-test"), encoding="utf-8") as fh:
        records = [json.loads(line) for line in fh]
    ops = [(r.get("component"), r.get("op")) for r in records]
    assert ("job_search.main", "start") in ops
    assert ("job_search.orchestrator", "skipped_provider") in ops
    assert ("job_search.orchestrator", "summary") in ops


# ---------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------
def test_build_table_escapes_cells_and_skips_placeholder_links():
    job = NormalizedJob(
        id="x_1",
        source="x",
        external_id="1",
        title="<script>alert(1)</script>",
        company="A&B",
        apply_url="#",
        posted_at="2025-01-02T03:04:05Z",
    )
    html = build_table([job])
    assert "&lt;script&gt;" in html
    assert "A&amp;B" in html
    assert "<td>2025-01-02</td>" in html
    assert "<a " not in html


def test_render_result_lists_unavailable_sources():
    result = SearchResult(
        jobs=[],
        total=0,
        page=1,
        limit=20,
        total_pages=0,
        sources=[],
        cached=True,
        errors={"adzuna": "HTTP 500"},
    )
    html = render_result(result, heading="Jobs")
    assert "0 job(s) from no sources - page 1 of 1 (cached)" in html
    assert "<li>adzuna: HTTP 500</li>" in html
