# service/logging_utils.py
from __future__ import annotations

import datetime as _dt
import json
import os
import socket
import threading
from collections.abc import Iterable
from typing import Any

# ---- Configuration (env-driven) ---------------------------------------------

# Directory and file prefixes are read per write so tests can redirect them.
_DEFAULT_LOG_DIR = "/app/local/logs"

# Size rotation in bytes; <=0 disables it. Daily rotation comes from the filename.
_MAX_BYTES = int(os.getenv("ACTIVITY_LOG_MAX_BYTES", "0"))

# Substrings of keys whose values are scrubbed (case-insensitive)
_REDACT_KEYS = {
    "password",
    "token",
    "apikey",
    "api_key",
    "app_key",
    "app_id",
    "secret",
    "authorization",
    "rapidapi",
    "cookie",
}
_REDACTED = "***REDACTED***"

_HOSTNAME = socket.gethostname()
_PID = os.getpid()

# Fan-out threads log concurrently; one writer at a time per process.
_WRITE_LOCK = threading.Lock()


# ---- Public API --------------------------------------------------------------


def write_activity_log(record: dict[str, Any]) -> None:
    """
    Append one structured activity record to today's activity file.

    Never mutates `record`. Values that JSON can't encode (datetimes,
    tuples of dataclasses...) are written via str(). May raise OSError.
    """
    _write_jsonl(log_path(os.getenv("ACTIVITY_LOG_PREFIX", "activity")), record)


def write_error_log(record: dict[str, Any]) -> None:
    """Same as write_activity_log, into the error stream."""
    _write_jsonl(log_path(os.getenv("ERROR_LOG_PREFIX", "error")), record)


def log_path(prefix: str, day: _dt.date | None = None) -> str:
    """<LOG_DIR>/<prefix>-YYYY-MM-DD.jsonl"""
    day = day or _dt.date.today()
    return os.path.join(os.getenv("LOG_DIR", _DEFAULT_LOG_DIR), f"{prefix}-{day.isoformat()}.jsonl")


def redact(record: dict[str, Any], keys: Iterable[str] | None = None) -> dict[str, Any]:
    return _redact_deep(record, tuple(keys or _REDACT_KEYS))


# ---- Internal helpers --------------------------------------------------------


def _redact_deep(value: Any, patterns: tuple[str, ...]) -> Any:
    if isinstance(value, dict):
        out: dict[str, Any] = {}
        for k, v in value.items():
            if isinstance(k, str) and any(p in k.lower() for p in patterns):
                out[k] = _REDACTED
            else:
                out[k] = _redact_deep(v, patterns)
        return out
    if isinstance(value, (list, tuple)):
        return [_redact_deep(v, patterns) for v in value]
    if isinstance(value, str) and value.lower().startswith("bearer "):
        return "Bearer " + _REDACTED
    return value


def _rotate_if_needed(path: str) -> None:
    if _MAX_BYTES <= 0:
        return
    try:
        if os.path.getsize(path) < _MAX_BYTES:
            return
    except FileNotFoundError:
        return
    stamp = _dt.datetime.now().strftime("%Y%m%d-%H%M%S")
    try:
        os.replace(path, f"{path}.{stamp}")
    except FileNotFoundError:
        pass


def _write_jsonl(path: str, record: dict[str, Any]) -> None:
    payload = _redact_deep(record, tuple(_REDACT_KEYS))
    payload["_meta"] = {
        "ts": _dt.datetime.now(_dt.timezone.utc).isoformat(),
        "host": _HOSTNAME,
        "pid": _PID,
        "thread": threading.current_thread().name,
    }
    # Serialize before touching the file so encoding errors leave no partial line.
    data = (json.dumps(payload, ensure_ascii=False, separators=(",", ":"), default=str) + "\n").encode("utf-8")

    with _WRITE_LOCK:
        os.makedirs(os.path.dirname(path), exist_ok=True)
        _rotate_if_needed(path)
        fd = os.open(path, os.O_CREAT | os.O_APPEND | os.O_WRONLY, 0o644)
        try:
            os.write(fd, data)
        finally:
            os.close(fd)
