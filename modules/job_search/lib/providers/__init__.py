# job_search/providers/__init__.py
from __future__ import annotations

from .adzuna import AdzunaProvider
from .ausbildung import AusbildungProvider, is_ausbildung_search
from .base import BaseProvider, ProviderError
from .jsearch import JSearchProvider
from .registry import ProviderDescriptor, ProviderRegistry, build_registry, register
from .remoteok import RemoteOKProvider
from .stub import StubProvider
from .themuse import TheMuseProvider

__all__ = [
    "AdzunaProvider",
    "AusbildungProvider",
    "BaseProvider",
    "JSearchProvider",
    "ProviderDescriptor",
    "ProviderError",
    "ProviderRegistry",
    "RemoteOKProvider",
    "StubProvider",
    "TheMuseProvider",
    "build_registry",
    "is_ausbildung_search",
    "register",
]
