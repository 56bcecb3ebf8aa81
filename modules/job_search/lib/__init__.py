# modules/job_search/lib/__init__.py
from __future__ import annotations

# Importing the providers package registers every built-in provider.
from . import providers as _providers
from .cache import JobCache
from .config import ConfigError, EnvCredentials, Settings
from .models import NormalizedJob, SearchParams, SearchResult
from .normalizer import normalize, normalize_many
from .orchestrator import JobSearchService

__all__ = [
    "ConfigError",
    "EnvCredentials",
    "JobCache",
    "JobSearchService",
    "NormalizedJob",
    "SearchParams",
    "SearchResult",
    "Settings",
    "normalize",
    "normalize_many",
]
