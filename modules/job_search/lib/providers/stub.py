from __future__ import annotations

from typing import Any

from ..models import ProviderResult, SearchParams
from .base import BaseProvider, ProviderError
from .registry import register


@register
class StubProvider(BaseProvider):
    """
    A zero-network provider used for tests and dry-runs.

    Options (from Settings.stub_items / provider_options["stub"]):
      - items: list[dict]   # raw records in the generic shape (title, company, id, ...)
      - error: str          # OPTIONAL, returned as the provider error
      - raise_error: bool   # OPTIONAL, raise from _search (exercises isolation)

    Behavior:
      - Query is a case-insensitive substring match on title/company.
      - Slices to params.limit; total is the match count.
      - Supports direct lookup by the record's "id".
    """

    id = "stub"
    name = "Stub"
    priority = 99

    def _items(self) -> list[dict[str, Any]]:
        raw = self.options.get("items") or []
        return [dict(i) for i in raw if isinstance(i, dict)] if isinstance(raw, list) else []

    def _search(self, params: SearchParams) -> ProviderResult:
        if self.options.get("raise_error"):
            raise ProviderError(str(self.options.get("error") or "stub failure"))
        if self.options.get("error"):
            return ProviderResult(source=self.id, error=str(self.options["error"]))

        items = self._items()
        q = params.query.lower()
        if q:
            items = [
                i for i in items
                if q in str(i.get("title") or "").lower() or q in str(i.get("company") or "").lower()
            ]
        return ProviderResult(source=self.id, jobs=items[: max(1, params.limit)], total=len(items))

    def _get_job(self, external_id: str) -> Any | None:
        for item in self._items():
            if str(item.get("id") or "") == external_id:
                return item
        return None
