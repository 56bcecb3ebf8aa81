# service/cli.py
"""
Command-line tools for the job search service.

Subcommands
-----------
search [--kwargs k=v ...] [--json]
    - Runs one search through JobSearchService and prints a job table
      (or the full SearchResult as JSON)

get JOB_ID
    - Looks a single job up (cache first, then the provider's direct lookup)

providers
    - Prints the provider registry (enabled, opt-in, lookup support)

clear {search,jobs,all}
    - Clears cache entries of the given kind from both tiers

purge
    - Deletes persistent search rows older than the persistent TTL

Every subcommand accepts --settings PATH (JSON/YAML) and --set k=v overrides,
which feed Settings.from_env_and_kwargs.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from collections.abc import Iterable
from typing import Any

from modules.job_search.lib.config import ConfigError, Settings
from modules.job_search.lib.models import SearchParams
from modules.job_search.lib.orchestrator import JobSearchService

LOG = logging.getLogger("service.cli")


# ----------------------------- Logging setup ---------------------------------
def _ensure_logging() -> None:
    root = logging.getLogger()
    if not root.handlers:
        level = os.getenv("LOG_LEVEL", "INFO").upper()
        logging.basicConfig(
            level=getattr(logging, level, logging.INFO),
            format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        )


# -------------------------- Utility / glue code ------------------------------
def _parse_kv_pairs(pairs: Iterable[str] | None) -> dict[str, Any]:
    """
    Parse key=value strings into a dict. JSON-looking values (numbers, bools,
    arrays, objects) are decoded; everything else stays a string.
    """
    out: dict[str, Any] = {}
    for raw in pairs or ():
        if "=" not in raw:
            raise argparse.ArgumentTypeError(f"item must be key=value (got {raw!r})")
        k, v = raw.split("=", 1)
        k = k.strip()
        if not k:
            raise argparse.ArgumentTypeError(f"Invalid key in item {raw!r}")
        try:
            out[k] = json.loads(v.strip())
        except ValueError:
            out[k] = v.strip()
    return out


def _print_table(rows: list[tuple[str, ...]], headers: tuple[str, ...]) -> None:
    widths = [max(len(h), *(len(r[i]) for r in rows)) if rows else len(h) for i, h in enumerate(headers)]
    sep = "+" + "+".join("-" * (w + 2) for w in widths) + "+"
    print(sep)
    print("| " + " | ".join(h.ljust(w) for h, w in zip(headers, widths)) + " |")
    print(sep)
    for r in rows:
        print("| " + " | ".join(c.ljust(w) for c, w in zip(r, widths)) + " |")
    print(sep)


def _service(args: argparse.Namespace) -> JobSearchService:
    kwargs = _parse_kv_pairs(args.set)
    if args.settings:
        kwargs["settings_path"] = args.settings
    return JobSearchService.from_settings(Settings.from_env_and_kwargs(kwargs))


# ------------------------------ Subcommands ----------------------------------
def cmd_search(args: argparse.Namespace) -> int:
    params = SearchParams.from_mapping(_parse_kv_pairs(args.kwargs))
    service = _service(args)
    try:
        result = service.search_jobs(params)
    finally:
        service.close()

    if args.json:
        print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2, default=str))
        return 0
    rows = [(j.title[:60], j.company[:30], j.location[:30], j.source, j.posted_at[:10]) for j in result.jobs]
    _print_table(rows, headers=("TITLE", "COMPANY", "LOCATION", "SOURCE", "POSTED"))
    print(
        f"total={result.total} page={result.page}/{result.total_pages} "
        f"cached={result.cached} sources={','.join(result.sources) or '-'}"
    )
    for src, msg in sorted(result.errors.items()):
        print(f"  ! {src}: {msg}", file=sys.stderr)
    return 0


def cmd_get(args: argparse.Namespace) -> int:
    service = _service(args)
    try:
        job = service.get_job_by_id(args.job_id)
    finally:
        service.close()
    if job is None:
        print(f"Not found: {args.job_id}", file=sys.stderr)
        return 1
    payload = job.to_dict()
    payload.pop("raw_data", None)
    print(json.dumps(payload, ensure_ascii=False, indent=2, default=str))
    return 0


def cmd_providers(args: argparse.Namespace) -> int:
    service = _service(args)
    try:
        providers = service.available_providers()
    finally:
        service.close()
    rows = [
        (
            p["id"],
            str(p["priority"]),
            "yes" if p["enabled"] else "no",
            "yes" if p["requires_opt_in"] else "no",
            "yes" if p["supports_lookup"] else "no",
        )
        for p in providers
    ]
    _print_table(rows, headers=("PROVIDER", "PRIORITY", "ENABLED", "OPT-IN", "LOOKUP"))
    return 0


def cmd_clear(args: argparse.Namespace) -> int:
    service = _service(args)
    try:
        removed = service.clear_cache(args.kind)
    finally:
        service.close()
    print(json.dumps(removed, indent=2))
    return 0


def cmd_purge(args: argparse.Namespace) -> int:
    service = _service(args)
    try:
        removed = service.cache.purge_expired() if service.cache is not None else 0
    finally:
        service.close()
    print(f"purged {removed} expired search row(s)")
    return 0


# ------------------------------- Argparse ------------------------------------
def _build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--settings", help="JSON or YAML settings file (fallbacks to JOB_SEARCH_SETTINGS env).")
    common.add_argument(
        "--set",
        metavar="k=v",
        nargs="*",
        help="Settings overrides, e.g. sqlite_path=none skip_network=true (JSON values supported).",
    )

    p = argparse.ArgumentParser(prog="job-search", description="Job search aggregator tools")
    sub = p.add_subparsers(dest="cmd", required=True)

    sp = sub.add_parser("search", parents=[common], help="Run one search.")
    sp.add_argument(
        "--kwargs",
        metavar="k=v",
        nargs="*",
        help="Search parameters, e.g. query=python country=de page=2 (JSON values supported).",
    )
    sp.add_argument("--json", action="store_true", help="Print the full result as JSON.")
    sp.set_defaults(func=cmd_search)

    sp = sub.add_parser("get", parents=[common], help="Look up one job by id.")
    sp.add_argument("job_id", help="Job id as returned by search, e.g. remoteok_12345.")
    sp.set_defaults(func=cmd_get)

    sp = sub.add_parser("providers", parents=[common], help="List registered providers.")
    sp.set_defaults(func=cmd_providers)

    sp = sub.add_parser("clear", parents=[common], help="Clear cache entries.")
    sp.add_argument("kind", choices=("search", "jobs", "all"))
    sp.set_defaults(func=cmd_clear)

    sp = sub.add_parser("purge", parents=[common], help="Delete expired persistent search rows.")
    sp.set_defaults(func=cmd_purge)

    return p


# --------------------------------- Main --------------------------------------
def main(argv: Iterable[str] | None = None) -> int:
    _ensure_logging()
    parser = _build_parser()
    args = parser.parse_args(args=list(argv) if argv is not None else None)
    try:
        return args.func(args)
    except ConfigError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
