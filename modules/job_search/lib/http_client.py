# job_search/http_client.py
from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

LOG = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "JobSearchAggregator/1.0 (job-search-aggregator)"
RETRY_STATUSES = (429, 500, 502, 503, 504)


class HttpClient:
    """
    One `requests.Session` shared by every provider and the scrape engine.

    Only GETs are issued. 429/5xx are retried with backoff by urllib3; once
    retries run out the status surfaces as `requests.HTTPError`, which the
    provider wrapper turns into a provider error.
    """

    def __init__(self, timeout: float = 15.0, user_agent: str = DEFAULT_USER_AGENT, retries: int = 3):
        self.timeout = float(timeout)
        self.session = requests.Session()
        self.session.headers["User-Agent"] = user_agent
        adapter = HTTPAdapter(
            max_retries=Retry(
                total=retries,
                backoff_factor=0.5,
                status_forcelist=RETRY_STATUSES,
                allowed_methods=frozenset({"GET"}),
                raise_on_status=False,
            ),
            pool_maxsize=20,
        )
        for prefix in ("http://", "https://"):
            self.session.mount(prefix, adapter)

    def _get(
        self,
        url: str,
        params: Mapping[str, Any] | None,
        headers: Mapping[str, str] | None,
        timeout: float | None,
    ) -> requests.Response:
        resp = self.session.get(url, params=params, headers=headers, timeout=timeout or self.timeout)
        LOG.debug("GET %s -> %s", resp.url, resp.status_code)
        resp.raise_for_status()
        return resp

    def get_text(
        self,
        url: str,
        *,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> str:
        """Listing pages; servers that omit a charset get requests' guess."""
        resp = self._get(url, params, headers, timeout)
        if not resp.encoding:
            resp.encoding = resp.apparent_encoding
        return resp.text

    def get_json(
        self,
        url: str,
        *,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> Any:
        resp = self._get(url, params, {"Accept": "application/json", **dict(headers or {})}, timeout)
        try:
            return json.loads(resp.text)
        except ValueError as e:
            preview = resp.text[:200].replace("\n", " ")
            raise ValueError(f"{url!r} did not return JSON; body starts: {preview!r}") from e

    def close(self) -> None:
        self.session.close()
