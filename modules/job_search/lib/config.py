from __future__ import annotations

import json
import os
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

import yaml

from .utils import truthy

DEFAULT_SQLITE_PATH = "/app/local/state/jobsearch.db"
_DISABLED = {"", "none", "off", "false", "0", "memory"}


# -----------------------------
# Exceptions
# -----------------------------
class ConfigError(ValueError):
    """Raised when provided kwargs/env cannot form a valid Settings."""


# -----------------------------
# Credentials
# -----------------------------
_PLACEHOLDER_RE = re.compile(r"^(your[_-].*|changeme|change[_-]me|xxx+|todo|placeholder|<.*>|\*+)$", re.I)


class CredentialsProvider(Protocol):
    def get(self, key: str) -> str | None: ...

    def has(self, *keys: str) -> bool: ...


class EnvCredentials:
    """
    Read-only view over provider credentials (process env unless a mapping is given).

    A credential counts as present only when it is non-empty and does not
    look like a template placeholder ("your_api_key", "changeme", "<key>").
    """

    def __init__(self, values: Mapping[str, str] | None = None) -> None:
        self._values = dict(values) if values is not None else None

    @classmethod
    def from_env(cls) -> EnvCredentials:
        return cls(None)

    def get(self, key: str) -> str | None:
        raw = os.getenv(key) if self._values is None else self._values.get(key)
        val = (raw or "").strip()
        if not val or _PLACEHOLDER_RE.match(val):
            return None
        return val

    def has(self, *keys: str) -> bool:
        return all(self.get(k) for k in keys)


# -----------------------------
# Models
# -----------------------------
@dataclass
class Settings:
    """
    Canonical configuration for the job search service.

    Precedence: explicit kwargs > settings file (JSON or YAML) > environment > defaults.
    """

    # Persistent cache (tier 2). None disables it: always miss, never write.
    sqlite_path: str | None = DEFAULT_SQLITE_PATH

    # Fan-out
    max_threads: int = 8
    provider_timeout_sec: float | None = None  # None: rely on each provider's HTTP timeout
    skip_network: bool = False

    # Regional sub-aggregator
    regional_timeout_sec: float = 10.0
    regional_blend_provider: str | None = "remoteok"
    regional_supplement_chain: tuple[str, ...] = ("jsearch", "adzuna")
    regional_mock_fallback: bool = True

    # HTTP
    http_timeout: float = 15.0
    user_agent: str = "JobSearchAggregator/1.0 (job-search-aggregator)"

    # Zero-network provider for dry runs
    enable_stub: bool = False
    stub_items: list[dict[str, Any]] = field(default_factory=list)

    # Module entry point
    search: dict[str, Any] = field(default_factory=dict)
    email_if_empty: bool = False

    # ------------- constructors -------------
    @classmethod
    def from_env_and_kwargs(cls, kwargs: Mapping[str, Any] | None) -> Settings:
        """
        Build Settings from kwargs with validation.

        Recognised kwargs (all optional):

            settings_path: str            # JSON or YAML file merged under kwargs
            sqlite_path: str | None       # "" / "none" disables the persistent tier
            max_threads: int = 8
            provider_timeout_sec: float | None
            regional_timeout_sec: float = 10
            regional_blend_provider: str | None = "remoteok"
            regional_supplement_chain: list[str] | "a,b"
            regional_mock_fallback: bool = true
            http_timeout: float = 15
            user_agent: str
            enable_stub: bool = false
            stub_items: list[dict]
            skip_network: bool = false
            search: dict                  # search params for the module entry point
            email_if_empty: bool = false

        Environment fallbacks: JOB_SEARCH_SETTINGS, JOB_SEARCH_SQLITE_PATH,
        JOB_SEARCH_MAX_THREADS, JOB_SEARCH_PROVIDER_TIMEOUT, JOB_SEARCH_SKIP_NETWORK.
        """
        kw = dict(kwargs or {})

        settings_path = kw.pop("settings_path", None) or os.getenv("JOB_SEARCH_SETTINGS")
        merged: dict[str, Any] = {}
        if settings_path:
            merged.update(_load_settings_file(str(settings_path)))
        merged.update(kw)

        def pick(name: str, env: str | None, default: Any) -> Any:
            if name in merged:
                return merged[name]
            if env and os.getenv(env) is not None:
                return os.getenv(env)
            return default

        try:
            settings = cls(
                sqlite_path=_path_or_none(pick("sqlite_path", "JOB_SEARCH_SQLITE_PATH", DEFAULT_SQLITE_PATH)),
                max_threads=int(pick("max_threads", "JOB_SEARCH_MAX_THREADS", 8)),
                provider_timeout_sec=_float_or_none(pick("provider_timeout_sec", "JOB_SEARCH_PROVIDER_TIMEOUT", None)),
                skip_network=truthy(pick("skip_network", "JOB_SEARCH_SKIP_NETWORK", False)),
                regional_timeout_sec=float(pick("regional_timeout_sec", None, 10.0)),
                regional_blend_provider=_str_or_none(pick("regional_blend_provider", None, "remoteok")),
                regional_supplement_chain=_id_tuple(pick("regional_supplement_chain", None, ("jsearch", "adzuna"))),
                regional_mock_fallback=truthy(pick("regional_mock_fallback", None, True)),
                http_timeout=float(pick("http_timeout", None, 15.0)),
                user_agent=str(pick("user_agent", None, cls.user_agent)),
                enable_stub=truthy(pick("enable_stub", None, False)),
                stub_items=list(pick("stub_items", None, []) or []),
                search=dict(pick("search", None, {}) or {}),
                email_if_empty=truthy(pick("email_if_empty", None, False)),
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid job_search settings: {e}") from e

        _validate_settings(settings)
        return settings


# -----------------------------
# Helpers
# -----------------------------
def _load_settings_file(path: str) -> dict[str, Any]:
    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise ConfigError(f"job_search settings file not found: {path}") from e
    try:
        if p.suffix.lower() in (".yml", ".yaml"):
            data = yaml.safe_load(text) or {}
        else:
            data = json.loads(text or "{}")
    except (ValueError, yaml.YAMLError) as e:
        raise ConfigError(f"job_search settings file is invalid: {path}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"job_search settings file must hold an object: {path}")
    return data


def _path_or_none(v: Any) -> str | None:
    if v is None:
        return None
    s = str(v).strip()
    return None if s.lower() in _DISABLED else s


def _str_or_none(v: Any) -> str | None:
    if v is None:
        return None
    s = str(v).strip().lower()
    return None if s in _DISABLED else s


def _float_or_none(v: Any) -> float | None:
    if v is None or (isinstance(v, str) and v.strip().lower() in _DISABLED):
        return None
    f = float(v)
    return f if f > 0 else None


def _id_tuple(v: Any) -> tuple[str, ...]:
    if not v:
        return ()
    if isinstance(v, str):
        v = v.split(",")
    return tuple(str(x).strip().lower() for x in v if str(x).strip())


def _validate_settings(s: Settings) -> None:
    if s.max_threads <= 0:
        raise ConfigError("'max_threads' must be >= 1.")
    if s.regional_timeout_sec <= 0:
        raise ConfigError("'regional_timeout_sec' must be > 0.")
    if s.http_timeout <= 0:
        raise ConfigError("'http_timeout' must be > 0.")
    for i, item in enumerate(s.stub_items):
        if not isinstance(item, dict):
            raise ConfigError(f"stub_items[{i}] must be an object.")
