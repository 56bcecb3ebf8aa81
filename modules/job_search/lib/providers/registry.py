from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from ..config import CredentialsProvider
from ..http_client import HttpClient
from ..models import SearchParams
from .base import BaseProvider

# Global in-process registry: provider id -> provider class
_REGISTRY: dict[str, type[BaseProvider]] = {}


def register(cls: type[BaseProvider]) -> type[BaseProvider]:
    """
    Class decorator or direct call to register a provider class.
    Requires cls.id to be a non-empty string.
    """
    pid = getattr(cls, "id", "") or ""
    if not isinstance(pid, str) or not pid.strip():
        raise ValueError(f"Cannot register provider {cls!r}: missing/empty 'id'.")
    key = pid.strip().lower()
    if key in _REGISTRY and _REGISTRY[key] is not cls:
        raise ValueError(f"Provider id {key!r} already registered to {_REGISTRY[key]!r}.")
    _REGISTRY[key] = cls
    return cls


def get(provider_id: str) -> type[BaseProvider]:
    """
    Look up a provider class by id (case-insensitive).
    Raises KeyError if not found.
    """
    key = (provider_id or "").strip().lower()
    if key not in _REGISTRY:
        raise KeyError(f"No provider registered for id {provider_id!r}.")
    return _REGISTRY[key]


def all_ids() -> dict[str, type[BaseProvider]]:
    """Shallow copy of the class registry (debugging/tests)."""
    return dict(_REGISTRY)


@dataclass(frozen=True)
class ProviderDescriptor:
    id: str
    name: str
    priority: int
    enabled: bool
    requires_opt_in: bool
    rate_limit_ms: int
    provider: BaseProvider

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "priority": self.priority,
            "enabled": self.enabled,
            "requires_opt_in": self.requires_opt_in,
            "supports_lookup": self.provider.supports_lookup,
        }


class ProviderRegistry:
    """
    Immutable set of provider descriptors, built once per process.

    `enabled` is decided at build time (credential presence); it is not
    re-evaluated per request.
    """

    def __init__(self, descriptors: Iterable[ProviderDescriptor]) -> None:
        ordered = sorted(descriptors, key=lambda d: (d.priority, d.id))
        self._by_id: dict[str, ProviderDescriptor] = {d.id: d for d in ordered}

    def get(self, provider_id: str) -> ProviderDescriptor | None:
        return self._by_id.get((provider_id or "").strip().lower())

    def all(self) -> list[ProviderDescriptor]:
        return list(self._by_id.values())

    def available(self) -> list[ProviderDescriptor]:
        return [d for d in self._by_id.values() if d.enabled]

    def select(self, params: SearchParams, *, opt_in: Callable[[str], bool] | bool = False) -> list[ProviderDescriptor]:
        """
        Providers for one search: enabled, in the caller's allow-list when one
        is given, and opt-in providers only when `opt_in` says so. Sorted by
        ascending priority.
        """
        allow = set(params.sources) if params.sources else None
        out: list[ProviderDescriptor] = []
        for d in self._by_id.values():
            if not d.enabled:
                continue
            if allow is not None and d.id not in allow:
                continue
            if d.requires_opt_in:
                wanted = opt_in(d.id) if callable(opt_in) else bool(opt_in)
                if not wanted:
                    continue
            out.append(d)
        return out

    def close(self) -> None:
        for d in self._by_id.values():
            d.provider.close()

    def __contains__(self, provider_id: object) -> bool:
        return isinstance(provider_id, str) and provider_id.strip().lower() in self._by_id

    def __len__(self) -> int:
        return len(self._by_id)


def build_registry(
    credentials: CredentialsProvider,
    *,
    client: HttpClient | None = None,
    include: Iterable[str] | None = None,
    enable_stub: bool = False,
    provider_options: dict[str, dict[str, Any]] | None = None,
) -> ProviderRegistry:
    """
    Instantiate every registered provider and evaluate `enabled` once.

    A provider is enabled when all its `credential_keys` are present and not
    placeholders. The stub provider is enabled only with `enable_stub`.
    """
    from . import adzuna, ausbildung, jsearch, remoteok, stub, themuse  # noqa: F401  (register)

    client = client or HttpClient()
    wanted = {i.strip().lower() for i in include} if include is not None else None
    options = provider_options or {}

    descriptors: list[ProviderDescriptor] = []
    for pid, cls in sorted(_REGISTRY.items()):
        if wanted is not None and pid not in wanted:
            continue
        provider = cls(client=client, credentials=credentials, **options.get(pid, {}))
        if pid == "stub":
            enabled = enable_stub
        else:
            enabled = credentials.has(*cls.credential_keys) if cls.credential_keys else True
        descriptors.append(
            ProviderDescriptor(
                id=pid,
                name=cls.name or pid,
                priority=cls.priority,
                enabled=enabled,
                requires_opt_in=cls.requires_opt_in,
                rate_limit_ms=cls.rate_limit_ms,
                provider=provider,
            )
        )
    return ProviderRegistry(descriptors)
