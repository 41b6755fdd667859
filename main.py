"""MCP server exposing Dev Maestro task tools for MASTER_PLAN.md."""

from __future__ import annotations

import json
import logging
from dataclasses import replace
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from mcp.server.fastmcp import FastMCP

from maestro.board import TaskBoard
from maestro.config import (
    ConfigHolder,
    load_config,
    project_root_from_plan,
    resolve_plan_location,
)
from maestro.dashboard import COLUMN_TITLES
from maestro.errors import MaestroError, PersistenceError, TaskNotFoundError
from maestro.models import STATUSES
from maestro.maestro_logging import setup_logging

mcp = FastMCP("dev-maestro")

logger = logging.getLogger("maestro.mcp")

PROJECT_MARKER_FILE = ".dev-maestro.json"

_HOLDER: Optional[ConfigHolder] = None


def _candidate_bases() -> List[Path]:
    cwd = Path.cwd().resolve()
    return [cwd, *cwd.parents]


def _locate_marker_plan() -> Optional[Path]:
    """Find the plan recorded in a project's ``.dev-maestro.json`` marker."""
    for base in _candidate_bases():
        marker = base / PROJECT_MARKER_FILE
        if not marker.is_file():
            continue
        try:
            data = json.loads(marker.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable project marker {marker}: {e}")
            continue
        plan_path = data.get("masterPlanPath") if isinstance(data, dict) else None
        if plan_path and Path(plan_path).expanduser().is_file():
            return Path(plan_path).expanduser().resolve()
    return None


def _default_holder() -> ConfigHolder:
    global _HOLDER
    if _HOLDER is None:
        config = load_config()
        if config.plan_path is None:
            marker_plan = _locate_marker_plan()
            if marker_plan:
                config = replace(config, plan_path=marker_plan, project_root=project_root_from_plan(marker_plan))
        _HOLDER = ConfigHolder(config)
    return _HOLDER


def _board(root: Optional[str] = None) -> TaskBoard:
    """Board for the configured plan, or for the plan under ``root`` when given."""
    holder = _default_holder()
    if root:
        plan_path = resolve_plan_location(root)
        holder = ConfigHolder(
            replace(holder.config, plan_path=plan_path, project_root=project_root_from_plan(plan_path))
        )
    return TaskBoard(holder)


def _run(operation: Callable[[], Dict[str, Any]]) -> Dict[str, Any]:
    """Run a board operation, turning Dev Maestro errors into error payloads."""
    try:
        return operation()
    except TaskNotFoundError as e:
        return {"error": str(e), "kind": "not_found"}
    except PersistenceError as e:
        return {"error": f"Failed to write plan file: {e}", "kind": "persistence"}
    except (MaestroError, ValueError) as e:
        return {"error": str(e), "kind": type(e).__name__}


@mcp.tool()
def maestro_get_tasks(status: Optional[str] = None, root: Optional[str] = None) -> Dict[str, Any]:
    """Get all tasks from MASTER_PLAN.md.
    Optional status filter: backlog, in_progress, blocked, review, done."""

    return _run(lambda: _board(root).list_tasks(status))


@mcp.tool()
def maestro_get_task(task_id: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Get details of a specific task by ID (e.g., TASK-001)."""

    return _run(lambda: _board(root).get_task(task_id))


@mcp.tool()
def maestro_update_status(task_id: str, status: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Update the status of a task. This modifies MASTER_PLAN.md directly.
    Status is one of backlog, in_progress, blocked, review, done."""

    return _run(lambda: _board(root).update_status(task_id, status))


@mcp.tool()
def maestro_add_task(
    title: str,
    status: str = "backlog",
    prefix: Optional[str] = None,
    body: Optional[str] = None,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """Add a new task heading to MASTER_PLAN.md using the next available ID."""

    return _run(lambda: _board(root).add_task(title, prefix=prefix, status=status, body=body))


@mcp.tool()
def maestro_next_id(prefix: Optional[str] = None, root: Optional[str] = None) -> Dict[str, Any]:
    """Get the next available task ID for creating a new task."""

    return _run(lambda: _board(root).next_id(prefix))


@mcp.tool()
def maestro_master_plan(root: Optional[str] = None) -> Dict[str, Any]:
    """Get the raw MASTER_PLAN.md content."""

    return _run(lambda: _board(root).master_plan())


@mcp.tool()
def maestro_status(root: Optional[str] = None) -> Dict[str, Any]:
    """Report which plan file is tracked and how many tasks sit in each status."""

    return _run(lambda: _board(root).status())


@mcp.resource("maestro://tasks")
def resource_tasks() -> str:
    """Text board of the tracked plan, one section per status."""

    try:
        grouped = _board().grouped_tasks()
    except MaestroError as e:
        return f"No plan available: {e}"

    lines = ["Dev Maestro Tasks"]
    for status in STATUSES:
        tasks = grouped["groups"][status]
        lines.append("")
        lines.append(f"{COLUMN_TITLES[status]} ({len(tasks)})")
        for task in tasks:
            lines.append(f"- {task['id']}: {task['title']}")
    return "\n".join(lines)


def run() -> None:
    """Serve the tools over stdio."""
    config = _default_holder().config
    setup_logging(config.log_level, config.log_file)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    run()
