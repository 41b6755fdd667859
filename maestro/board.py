"""Task board operations shared by the HTTP API and the MCP server.

``TaskBoard`` resolves the current plan file from the configuration holder on
every call, so a reconfiguration takes effect for the next request without a
restart. Results are plain dictionaries ready to be serialized as JSON.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from . import __version__
from .config import ConfigHolder, MaestroConfig
from .errors import MaestroError
from .models import STATUS_BACKLOG, STATUSES, normalize_status
from .store import PlanStore
from .maestro_logging import log_error_with_context

logger = logging.getLogger("maestro.board")


class TaskBoard:
    """Manage the tasks of the configured plan file."""

    def __init__(self, holder: ConfigHolder):
        self.holder = holder

    @property
    def config(self) -> MaestroConfig:
        return self.holder.config

    @property
    def store(self) -> PlanStore:
        return PlanStore(self.config.plan_path)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def status(self) -> Dict[str, Any]:
        """Report whether the service is up and which plan it serves."""
        config = self.config
        store = PlanStore(config.plan_path)
        payload: Dict[str, Any] = {
            "running": True,
            "version": __version__,
            "masterPlanPath": str(config.plan_path) if config.plan_path else None,
            "masterPlanExists": store.exists(),
            "projectRoot": str(config.project_root) if config.project_root else None,
            "port": config.port,
            "url": config.url,
            "summary": None,
        }
        if store.exists():
            try:
                payload["summary"] = store.summary().to_dict()
            except MaestroError as e:
                payload["error"] = str(e)
        return payload

    def master_plan(self) -> Dict[str, Any]:
        """Return the raw plan file."""
        store = self.store
        return {"path": str(store.path) if store.path else None, "content": store.read()}

    def list_tasks(self, status: Optional[str] = None) -> Dict[str, Any]:
        """List tasks in document order, optionally filtered by status."""
        wanted = normalize_status(status) if status else None
        tasks = self.store.tasks()
        selected = [task for task in tasks if wanted is None or task.status == wanted]
        counts = {name: 0 for name in STATUSES}
        for task in tasks:
            counts[task.status] += 1
        return {
            "tasks": [task.to_dict() for task in selected],
            "count": len(selected),
            "total": len(tasks),
            "counts": counts,
            "filter": wanted,
        }

    def grouped_tasks(self) -> Dict[str, Any]:
        """Return tasks grouped by status column."""
        summary = self.store.summary()
        return summary.to_dict(include_tasks=True)

    def get_task(self, task_id: str) -> Dict[str, Any]:
        return {"task": self.store.get(task_id).to_dict()}

    def next_id(self, prefix: Optional[str] = None) -> Dict[str, Any]:
        prefix = prefix or self.config.task_prefix
        return {"nextId": self.store.next_id(prefix), "prefix": prefix}

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def update_status(self, task_id: str, status: str) -> Dict[str, Any]:
        """Change the status of one task in the plan file."""
        try:
            before, after = self.store.update_status(task_id, status)
        except MaestroError as e:
            log_error_with_context(e, {"operation": "update_status", "task_id": task_id, "status": status})
            raise

        changed = before.raw_heading_line != after.raw_heading_line
        logger.info(f"Task {task_id}: {before.status} -> {after.status}")
        return {
            "success": True,
            "task": after.to_dict(),
            "previousStatus": before.status,
            "changed": changed,
            "message": (
                f"Task {task_id} marked as {after.status}"
                if changed else f"Task {task_id} already {after.status}"
            ),
        }

    def add_task(
        self,
        title: str,
        *,
        prefix: Optional[str] = None,
        status: str = STATUS_BACKLOG,
        body: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Append a new task to the plan file."""
        prefix = prefix or self.config.task_prefix
        try:
            task = self.store.add_task(title, prefix=prefix, status=status, body=body)
        except (MaestroError, ValueError) as e:
            log_error_with_context(e, {"operation": "add_task", "prefix": prefix, "status": status})
            raise

        return {
            "success": True,
            "task": task.to_dict(),
            "message": f"Created task {task.id}",
        }

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def reload_config(self) -> Dict[str, Any]:
        config = self.holder.reload()
        return {"success": True, "config": config.to_dict()}

    def set_plan_path(self, location: str) -> Dict[str, Any]:
        config = self.holder.set_plan_path(location)
        return {"success": True, "config": config.to_dict()}
