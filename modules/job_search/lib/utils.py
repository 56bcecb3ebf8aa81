from __future__ import annotations

import hashlib
import html
from datetime import datetime, timezone
from typing import Any

from dateutil import parser as date_parser

_HTML_ESCAPE_QUOTE = True  # keep quotes escaped for attributes

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def esc(s: str | None) -> str:
    """
    Escape text for HTML contexts (titles, URLs). Do NOT wrap or add tags.
    """
    if s is None:
        return ""
    return html.escape(str(s), quote=_HTML_ESCAPE_QUOTE)


def truthy(v: Any) -> bool:
    """
    Normalize common truthy inputs from env/kwargs.
    Accepts bools or strings like: '1', 'true', 'yes', 'on'.
    """
    if isinstance(v, bool):
        return v
    if v is None:
        return False
    if isinstance(v, (int, float)):
        return v != 0
    s = str(v).strip().lower()
    return s in {"1", "true", "yes", "on", "y", "t"}


def utcnow() -> datetime:
    """Timezone-aware 'now' in UTC (freezegun-friendly)."""
    return datetime.now(timezone.utc)


def now_iso() -> str:
    """
    UTC ISO-8601 timestamp with 'Z' suffix.
    """
    return utcnow().isoformat().replace("+00:00", "Z")


def to_iso(dt: datetime) -> str:
    dt = dt.replace(tzinfo=timezone.utc) if dt.tzinfo is None else dt.astimezone(timezone.utc)
    return dt.isoformat().replace("+00:00", "Z")


def parse_iso(ts: Any) -> datetime | None:
    """
    Parse a date-ish value into a timezone-aware UTC datetime.

    Accepts unix seconds (int/float), ISO-8601 strings (with or without 'Z')
    and the looser formats python-dateutil understands. Returns None when the
    value is empty or unparsable.
    """
    if ts is None or ts == "" or isinstance(ts, bool):
        return None
    if isinstance(ts, datetime):
        dt = ts
    elif isinstance(ts, (int, float)):
        try:
            return datetime.fromtimestamp(float(ts), tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    else:
        s = str(ts).strip()
        if not s:
            return None
        if s.isdigit():
            return parse_iso(int(s))
        try:
            dt = date_parser.parse(s)
        except (ValueError, OverflowError):
            return None
    return dt.replace(tzinfo=timezone.utc) if dt.tzinfo is None else dt.astimezone(timezone.utc)


def content_hash(*parts: Any, length: int = 16) -> str:
    """Deterministic short hash for records without a native id."""
    raw = "|".join(str(p or "").strip().lower() for p in parts)
    return hashlib.sha1(raw.encode("utf-8")).hexdigest()[:length]


def uniq_preserve_order(items: Any) -> list[Any]:
    seen: set[Any] = set()
    out: list[Any] = []
    for x in items or []:
        key = x.lower() if isinstance(x, str) else x
        if key in seen:
            continue
        seen.add(key)
        out.append(x)
    return out
