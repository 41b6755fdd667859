"""Server-rendered HTML board for the plan file."""

from __future__ import annotations

import textwrap
from html import escape
from typing import Any, Dict, List, Optional

from .models import STATUSES

COLUMN_TITLES = {
    "backlog": "Backlog",
    "in_progress": "In Progress",
    "blocked": "Paused",
    "review": "Review",
    "done": "Done",
}

_BASE_CSS = textwrap.dedent(
    """
    body { font-family: system-ui, sans-serif; margin: 0; background: #f3f4f6; color: #111827; }
    header { padding: 1rem 1.5rem; background: #1f2937; color: #f9fafb; }
    header small { color: #9ca3af; }
    .board { display: grid; grid-template-columns: repeat(5, minmax(0, 1fr)); gap: 1rem; padding: 1rem 1.5rem; }
    .column { background: #e5e7eb; border-radius: 8px; padding: 0.75rem; }
    .column h2 { font-size: 0.95rem; margin: 0 0 0.5rem; }
    .card { background: #fff; border-radius: 6px; padding: 0.5rem 0.6rem; margin-bottom: 0.5rem; }
    .card .id { font-family: ui-monospace, monospace; font-size: 0.8rem; color: #6b7280; }
    .column.done .card .id { text-decoration: line-through; }
    .notice { padding: 1rem 1.5rem; color: #b91c1c; }
    """
).strip()


def _render_column(status: str, tasks: List[Dict[str, Any]]) -> str:
    cards = "\n".join(
        f'<div class="card" data-task-id="{escape(task["id"])}">'
        f'<div class="id">{escape(task["id"])}</div>'
        f'<div class="title">{escape(task["title"])}</div></div>'
        for task in tasks
    )
    return (
        f'<section class="column {status}">'
        f"<h2>{COLUMN_TITLES[status]} ({len(tasks)})</h2>\n{cards}</section>"
    )


def render_dashboard(
    groups: Optional[Dict[str, List[Dict[str, Any]]]],
    *,
    plan_path: Optional[str],
    stylesheets: List[str],
    completion_rate: float = 0.0,
    error: Optional[str] = None,
) -> str:
    """Render the dashboard page from tasks grouped by status."""
    links = "\n".join(
        f'<link rel="stylesheet" href="/local/css/{escape(name)}">' for name in stylesheets
    )
    if groups is None:
        body = f'<p class="notice">{escape(error or "No plan file loaded.")}</p>'
    else:
        body = '<main class="board">' + "\n".join(
            _render_column(status, groups.get(status, [])) for status in STATUSES
        ) + "</main>"

    subtitle = escape(plan_path) if plan_path else "no plan file configured"
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<title>Dev Maestro</title>
<link rel="icon" href="/favicon.svg" type="image/svg+xml">
<style>{_BASE_CSS}</style>
{links}
</head>
<body>
<header><strong>Dev Maestro</strong> &middot; {completion_rate:.0f}% done<br><small>{subtitle}</small></header>
{body}
</body>
</html>
"""
