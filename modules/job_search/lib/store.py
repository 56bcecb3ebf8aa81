from __future__ import annotations

import contextlib
import json
import os
import sqlite3
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from .models import NormalizedJob
from .utils import now_iso, parse_iso, to_iso


class StoreError(RuntimeError):
    """Raised for any persistent-store failure (missing schema, I/O, bad rows)."""


_JOB_COLUMNS = (
    "id",
    "source",
    "external_id",
    "title",
    "company",
    "company_logo",
    "location",
    "location_type",
    "country",
    "city",
    "salary",
    "salary_min",
    "salary_max",
    "salary_currency",
    "job_type",
    "experience_level",
    "description",
    "requirements",
    "benefits",
    "skills",
    "apply_url",
    "posted_at",
    "expires_at",
    "tags",
    "featured",
    "raw_data",
)
_JSON_COLUMNS = {"requirements", "benefits", "skills", "tags", "raw_data"}


# ---- Public API -------------------------------------------------------------


def init_db(sqlite_path: str) -> None:
    """
    Ensure the SQLite database and schema exist.
    Safe to call multiple times.
    """
    with _guard("init_db"):
        _ensure_dir(sqlite_path)
        with contextlib.closing(_connect(sqlite_path)) as conn:
            _apply_pragmas(conn)
            _ensure_schema(conn)


def get_search(sqlite_path: str, cache_key: str) -> tuple[dict[str, Any], datetime] | None:
    """
    Return (results_payload, created_at) for a cached search, or None.
    Expiry is the caller's decision.
    """
    with _guard("get_search"), contextlib.closing(_open(sqlite_path)) as conn:
        row = conn.execute(
            "SELECT results, created_at FROM job_search_cache WHERE cache_key = ?",
            (cache_key,),
        ).fetchone()
    if row is None:
        return None
    created = parse_iso(row[1])
    if created is None:
        raise StoreError(f"job_search_cache row {cache_key!r} has unreadable created_at {row[1]!r}")
    try:
        return json.loads(row[0]), created
    except ValueError as e:
        raise StoreError(f"job_search_cache row {cache_key!r} is not valid JSON") from e


def put_search(sqlite_path: str, cache_key: str, results: dict[str, Any], created_at: datetime | None = None) -> None:
    """Upsert one search payload; a rewrite replaces the row wholesale."""
    created = to_iso(created_at) if created_at else now_iso()
    with _guard("put_search"), contextlib.closing(_open(sqlite_path)) as conn:
        conn.execute("BEGIN IMMEDIATE")
        conn.execute(
            """
            INSERT INTO job_search_cache (cache_key, results, created_at)
            VALUES (?, ?, ?)
            ON CONFLICT(cache_key) DO UPDATE SET
              results = excluded.results,
              created_at = excluded.created_at
            """,
            (cache_key, json.dumps(results, ensure_ascii=False, default=str), created),
        )
        conn.commit()


def delete_search(sqlite_path: str, cache_key: str) -> int:
    with _guard("delete_search"), contextlib.closing(_open(sqlite_path)) as conn:
        cur = conn.execute("DELETE FROM job_search_cache WHERE cache_key = ?", (cache_key,))
        return int(cur.rowcount or 0)


def purge_searches(sqlite_path: str, older_than: datetime) -> int:
    """Delete search rows created before `older_than`; returns rows removed."""
    with _guard("purge_searches"), contextlib.closing(_open(sqlite_path)) as conn:
        cur = conn.execute("DELETE FROM job_search_cache WHERE created_at < ?", (to_iso(older_than),))
        return int(cur.rowcount or 0)


def clear_searches(sqlite_path: str) -> int:
    with _guard("clear_searches"), contextlib.closing(_open(sqlite_path)) as conn:
        cur = conn.execute("DELETE FROM job_search_cache")
        return int(cur.rowcount or 0)


def upsert_jobs(sqlite_path: str, jobs: Iterable[NormalizedJob]) -> int:
    """
    Upsert normalized jobs keyed by (source, external_id).
    Rows have no TTL; every re-fetch refreshes them.
    """
    rows = [_job_to_row(j) for j in jobs]
    if not rows:
        return 0
    ts = now_iso()
    cols = ", ".join(_JOB_COLUMNS)
    marks = ", ".join("?" for _ in _JOB_COLUMNS)
    updates = ", ".join(f"{c} = excluded.{c}" for c in _JOB_COLUMNS if c not in ("source", "external_id"))
    sql = (
        f"INSERT INTO jobs_cache ({cols}, updated_at) VALUES ({marks}, ?) "
        f"ON CONFLICT(source, external_id) DO UPDATE SET {updates}, updated_at = excluded.updated_at"
    )
    with _guard("upsert_jobs"), contextlib.closing(_open(sqlite_path)) as conn:
        conn.execute("BEGIN IMMEDIATE")
        conn.executemany(sql, [(*r, ts) for r in rows])
        conn.commit()
    return len(rows)


def get_job(sqlite_path: str, source: str, external_id: str) -> NormalizedJob | None:
    return _select_job(sqlite_path, "source = ? AND external_id = ?", (source, external_id))


def get_job_by_id(sqlite_path: str, job_id: str) -> NormalizedJob | None:
    return _select_job(sqlite_path, "id = ?", (job_id,))


def clear_jobs(sqlite_path: str) -> int:
    with _guard("clear_jobs"), contextlib.closing(_open(sqlite_path)) as conn:
        cur = conn.execute("DELETE FROM jobs_cache")
        return int(cur.rowcount or 0)


# ---- Nice-to-have helpers for tests & diagnostics --------------------------


def count_rows(sqlite_path: str, table: str = "job_search_cache") -> int:
    """Return total rows in a cache table; 0 if DB missing/empty."""
    if table not in ("job_search_cache", "jobs_cache"):
        raise ValueError(f"unknown table {table!r}")
    if not os.path.exists(sqlite_path):
        return 0
    with _guard("count_rows"), contextlib.closing(_open(sqlite_path)) as conn:
        (n,) = conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()
    return int(n or 0)


def reset_db(sqlite_path: str) -> None:
    """
    Remove the DB file entirely (for pytest fixtures).
    Safe if it doesn't exist.
    """
    for suffix in ("", "-wal", "-shm"):
        with contextlib.suppress(FileNotFoundError):
            os.remove(sqlite_path + suffix)


# ---- Internal utilities -----------------------------------------------------


@contextlib.contextmanager
def _guard(op: str):
    try:
        yield
    except StoreError:
        raise
    except (sqlite3.Error, OSError) as e:
        raise StoreError(f"{op}: {e}") from e


def _open(sqlite_path: str) -> sqlite3.Connection:
    init_db(sqlite_path)
    conn = _connect(sqlite_path)
    _apply_pragmas(conn)
    return conn


def _select_job(sqlite_path: str, where: str, args: tuple[Any, ...]) -> NormalizedJob | None:
    cols = ", ".join(_JOB_COLUMNS)
    with _guard("select_job"), contextlib.closing(_open(sqlite_path)) as conn:
        row = conn.execute(f"SELECT {cols} FROM jobs_cache WHERE {where} LIMIT 1", args).fetchone()
    if row is None:
        return None
    return _row_to_job(row)


def _job_to_row(job: NormalizedJob) -> tuple[Any, ...]:
    data = job.to_dict()
    out: list[Any] = []
    for c in _JOB_COLUMNS:
        v = data.get(c)
        if c in _JSON_COLUMNS:
            v = json.dumps(v, ensure_ascii=False, default=str)
        elif c == "featured":
            v = 1 if v else 0
        out.append(v)
    return tuple(out)


def _row_to_job(row: tuple[Any, ...]) -> NormalizedJob:
    data: dict[str, Any] = {}
    for c, v in zip(_JOB_COLUMNS, row):
        if c in _JSON_COLUMNS and v is not None:
            try:
                v = json.loads(v)
            except ValueError as e:
                raise StoreError(f"jobs_cache column {c!r} is not valid JSON") from e
        elif c == "featured":
            v = bool(v)
        data[c] = v
    return NormalizedJob.from_dict(data)


def _ensure_dir(sqlite_path: str) -> None:
    d = os.path.dirname(os.path.abspath(sqlite_path)) or "."
    os.makedirs(d, exist_ok=True)


def _connect(sqlite_path: str) -> sqlite3.Connection:
    # isolation_level=None gives autocommit mode; we'll manage transactions explicitly.
    return sqlite3.connect(sqlite_path, timeout=30.0, isolation_level=None, check_same_thread=False)


def _apply_pragmas(conn: sqlite3.Connection) -> None:
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    conn.execute("PRAGMA temp_store=MEMORY;")
    conn.execute("PRAGMA cache_size=-8000;")  # approx 8MB cache


def _ensure_schema(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS job_search_cache (
          cache_key  TEXT PRIMARY KEY,
          results    TEXT NOT NULL,
          created_at TEXT NOT NULL
        );
        """
    )
    conn.execute(
        """
        CREATE INDEX IF NOT EXISTS ix_job_search_cache_created
          ON job_search_cache (created_at);
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS jobs_cache (
          id               TEXT NOT NULL,
          source           TEXT NOT NULL,
          external_id      TEXT NOT NULL,
          title            TEXT,
          company          TEXT,
          company_logo     TEXT,
          location         TEXT,
          location_type    TEXT,
          country          TEXT,
          city             TEXT,
          salary           TEXT,
          salary_min       REAL,
          salary_max       REAL,
          salary_currency  TEXT,
          job_type         TEXT,
          experience_level TEXT,
          description      TEXT,
          requirements     TEXT,
          benefits         TEXT,
          skills           TEXT,
          apply_url        TEXT,
          posted_at        TEXT,
          expires_at       TEXT,
          tags             TEXT,
          featured         INTEGER NOT NULL DEFAULT 0,
          raw_data         TEXT,
          updated_at       TEXT NOT NULL
        );
        """
    )
    conn.execute(
        """
        CREATE UNIQUE INDEX IF NOT EXISTS ux_jobs_cache_natural
          ON jobs_cache (source, external_id);
        """
    )
    conn.execute("CREATE INDEX IF NOT EXISTS ix_jobs_cache_id ON jobs_cache (id);")
