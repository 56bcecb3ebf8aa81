from __future__ import annotations

from collections.abc import Iterable

from . import utils
from .models import NormalizedJob, SearchResult

_COLUMNS = ("Title", "Company", "Location", "Salary", "Posted", "Link")


def build_table(jobs: Iterable[NormalizedJob]) -> str:
    """
    One HTML table, a row per job:
      Title | Company | Location | Salary | Posted | Link
    Every cell is escaped; the <a> wrapper is not.
    """
    rows: list[str] = []
    for j in jobs:
        posted = j.posted_at[:10] if j.posted_at else ""
        url = j.apply_url if j.apply_url and j.apply_url != "#" else ""
        link_html = f'<a href="{utils.esc(url)}">apply</a>' if url else ""
        cells = [
            utils.esc(j.title),
            utils.esc(j.company),
            utils.esc(j.location),
            utils.esc(j.salary),
            utils.esc(posted),
        ]
        rows.append("<tr>" + "".join(f"<td>{c}</td>" for c in cells) + f"<td>{link_html}</td></tr>")
    header = "<tr>" + "".join(f"<th>{c}</th>" for c in _COLUMNS) + "</tr>"
    return "<table border='1' cellspacing='0' cellpadding='6'>" + header + "".join(rows) + "</table>"


def render_result(result: SearchResult, *, heading: str | None = None) -> str:
    intro = (
        f"{result.total} job(s) from {', '.join(result.sources) or 'no sources'}"
        f" - page {result.page} of {max(1, result.total_pages)}"
    )
    if result.cached:
        intro += " (cached)"
    parts = [build_table(result.jobs)]
    if result.errors:
        items = "".join(
            f"<li>{utils.esc(src)}: {utils.esc(msg)}</li>" for src, msg in sorted(result.errors.items())
        )
        parts.append(f"<p>Unavailable sources:</p><ul>{items}</ul>")
    return wrap_document("\n".join(parts), heading=heading, intro=intro)


def wrap_document(content_html: str, *, heading: str | None = None, intro: str | None = None) -> str:
    parts: list[str] = ["<div>"]
    if heading:
        parts.append(f"<h2>{utils.esc(heading)}</h2>")
    if intro:
        parts.append(f"<p>{utils.esc(intro)}</p>")
    parts.append(content_html)
    parts.append("</div>")
    return "\n".join(parts)
