from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from typing import Any

from .. import logging_bridge
from ..config import CredentialsProvider, EnvCredentials
from ..http_client import HttpClient
from ..models import ProviderResult, SearchParams


class ProviderError(Exception):
    """A provider detected a failure it can describe (bad credentials, bad payload)."""


class BaseProvider(ABC):
    """
    Abstract job provider.

    Contract:
      - search(params) returns a ProviderResult and NEVER raises; subclasses
        implement _search() and may raise freely from it.
      - Raw records are returned untouched; normalization happens upstream.
      - Do NOT print, cache or mutate global state.
    """

    # Concrete subclasses MUST set a stable id, e.g. "remoteok", "adzuna", "stub"
    id: str = ""
    name: str = ""
    priority: int = 100  # lower is merged first
    rate_limit_ms: int = 0
    requires_opt_in: bool = False
    credential_keys: tuple[str, ...] = ()

    def __init__(
        self,
        client: HttpClient | None = None,
        credentials: CredentialsProvider | None = None,
        **options: Any,
    ) -> None:
        self.client = client or HttpClient()
        self.credentials = credentials or EnvCredentials.from_env()
        self.options = dict(options)
        self._throttle_lock = threading.Lock()
        self._last_call = 0.0

    # ---- public ----

    def search(self, params: SearchParams) -> ProviderResult:
        try:
            self._throttle()
            result = self._search(params)
        except Exception as e:
            logging_bridge.error({
                "component": "job_search.providers",
                "op": "search",
                "provider": self.id,
                "error": repr(e),
            })
            return ProviderResult(source=self.id, jobs=[], total=0, error=str(e) or repr(e))
        if result.error:
            return ProviderResult(source=self.id, jobs=[], total=0, error=result.error)
        return result

    @property
    def supports_lookup(self) -> bool:
        return type(self)._get_job is not BaseProvider._get_job

    def get_job(self, external_id: str) -> Any | None:
        """Direct lookup of one raw record; None when unsupported or not found."""
        if not self.supports_lookup:
            return None
        try:
            return self._get_job(external_id)
        except Exception as e:
            logging_bridge.error({
                "component": "job_search.providers",
                "op": "get_job",
                "provider": self.id,
                "external_id": external_id,
                "error": repr(e),
            })
            return None

    def close(self) -> None:
        self.client.close()

    def _throttle(self) -> None:
        """Keep at least rate_limit_ms between calls to this provider."""
        if self.rate_limit_ms <= 0:
            return
        with self._throttle_lock:
            wait = self._last_call + self.rate_limit_ms / 1000.0 - time.monotonic()
            if wait > 0:
                time.sleep(wait)
            self._last_call = time.monotonic()

    # ---- subclass hooks ----

    @abstractmethod
    def _search(self, params: SearchParams) -> ProviderResult:
        raise NotImplementedError

    def _get_job(self, external_id: str) -> Any | None:
        return None
