from __future__ import annotations

from typing import Any

from ..models import SearchParams
from .adzuna import AdzunaProvider
from .registry import register

AUSBILDUNG_KEYWORDS = (
    "ausbildung",
    "azubi",
    "auszubildende",
    "berufsausbildung",
    "lehrstelle",
    "lehrling",
    "trainee",
    "dual studium",
    "duales studium",
)

# field id -> German search term appended to the query
AUSBILDUNG_FIELDS = {
    "kaufmaennisch": "Kaufmännische Berufe",
    "it": "IT & Informatik",
    "handwerk": "Handwerk & Technik",
    "gesundheit": "Gesundheit & Pflege",
    "gastronomie": "Gastronomie & Hotel",
    "einzelhandel": "Einzelhandel & Verkauf",
    "industrie": "Industrie & Produktion",
    "logistik": "Logistik & Transport",
    "elektro": "Elektro & Elektronik",
    "bau": "Bau & Architektur",
    "medien": "Medien & Design",
    "banken": "Banken & Versicherung",
}


def is_ausbildung_search(params: SearchParams) -> bool:
    """Explicit flag, a chosen field, or an apprenticeship keyword in the query."""
    if params.is_ausbildung or params.ausbildung_field:
        return True
    q = params.query.lower()
    return any(kw in q for kw in AUSBILDUNG_KEYWORDS)


@register
class AusbildungProvider(AdzunaProvider):
    """
    German apprenticeships through the Adzuna Germany index.

    Opt-in only: it joins a fan-out just when `is_ausbildung_search` holds.
    """

    id = "ausbildung"
    name = "Ausbildung (DE)"
    priority = 5
    requires_opt_in = True

    def _country(self, params: SearchParams) -> str:
        return "de"

    def _query(self, params: SearchParams) -> dict[str, Any]:
        q = super()._query(params)
        what = params.query or "ausbildung"
        if not any(kw in what.lower() for kw in AUSBILDUNG_KEYWORDS):
            what = f"ausbildung {what}"
        field = AUSBILDUNG_FIELDS.get(params.ausbildung_field.lower())
        if field:
            what = f"{what} {field}"
        start_year = params.extra.get("start_year") or params.extra.get("startYear")
        if start_year:
            what = f"{what} {start_year}"
        q["what"] = what

        # The /de/ index already scopes to Germany.
        where = params.location.strip().lower()
        if where in ("germany", "deutschland"):
            q.pop("where", None)
        q.pop("contract_type", None)
        return q
