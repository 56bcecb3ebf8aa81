from __future__ import annotations

from typing import Any

from .lib.config import Settings
from .lib.logging_bridge import activity as log_activity
from .lib.models import SearchParams
from .lib.orchestrator import JobSearchService
from .lib.render import render_result


def run(**kwargs: Any) -> tuple[str, dict] | None:
    """
    Entry point for the 'job_search' module.

    Accepts kwargs (from a scheduled job or a caller), including:
      settings_path: str            # JSON/YAML file merged under kwargs
      sqlite_path: str = "/app/local/state/jobsearch.db"
      max_threads: int = 8
      provider_timeout_sec: float | None
      skip_network: bool = False
      enable_stub / stub_items       # offline provider for dry runs
      search: dict                   # query, location, country, city, page, limit, ...
      email_if_empty: bool = False

    Returns:
      - None (nothing to send), or
      - (html: str, meta: dict) with meta["result"] holding the SearchResult dict.
    """
    settings = Settings.from_env_and_kwargs(kwargs)
    params = SearchParams.from_mapping(settings.search)

    log_activity({
        "component": "job_search.main",
        "op": "start",
        "query": params.query,
        "country": params.country,
        "page": params.page,
        "flags": {
            "skip_network": settings.skip_network,
            "enable_stub": settings.enable_stub,
            "persistent_cache": bool(settings.sqlite_path),
        },
    })

    service = JobSearchService.from_settings(settings)
    try:
        result = service.search_jobs(params)
    finally:
        service.close()

    if not result.jobs and not settings.email_if_empty:
        return None

    heading = f"Jobs: {params.query}" if params.query else "Jobs"
    html = render_result(result, heading=heading)
    meta = {
        "subject": f"{heading} ({result.total})",
        "result": result.to_dict(),
    }
    return html, meta
