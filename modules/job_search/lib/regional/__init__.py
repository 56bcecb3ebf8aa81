# job_search/regional/__init__.py
from __future__ import annotations

from .morocco import MOROCCO_ALIASES, MoroccoAggregator, is_regional, matches_city
from .sources import (
    SITES,
    HtmlScrapeEngine,
    MockRegionalSource,
    RegionalSite,
    RegionalSource,
    ScrapeEngine,
    build_sources,
)

__all__ = [
    "MOROCCO_ALIASES",
    "SITES",
    "HtmlScrapeEngine",
    "MockRegionalSource",
    "MoroccoAggregator",
    "RegionalSite",
    "RegionalSource",
    "ScrapeEngine",
    "build_sources",
    "is_regional",
    "matches_city",
]
