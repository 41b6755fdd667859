"""File-backed access to a plan file.

``PlanStore`` reads the plan file, hands the text to the pure functions in
``maestro.plan`` and writes results back. Writers to the same path are
serialized with a process-wide lock per resolved path, and every write goes
through a temporary file that replaces the plan atomically.
"""

from __future__ import annotations

import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from . import plan
from .errors import PersistenceError, PlanFileMissingError
from .models import DEFAULT_TASK_PREFIX, STATUS_BACKLOG, PlanSummary, Task, normalize_status
from .maestro_logging import (
    log_error_with_context,
    log_operation,
    log_performance,
    log_status_change,
    log_task_added,
)

logger = logging.getLogger("maestro.store")

_PATH_LOCKS: Dict[Path, threading.Lock] = {}
_PATH_LOCKS_GUARD = threading.Lock()


def lock_for(path: Path) -> threading.Lock:
    """Return the lock that serializes writers of ``path``."""
    key = Path(path).resolve()
    with _PATH_LOCKS_GUARD:
        lock = _PATH_LOCKS.get(key)
        if lock is None:
            lock = _PATH_LOCKS[key] = threading.Lock()
        return lock


class PlanStore:
    """Read and update the tasks of one plan file."""

    def __init__(self, path: Optional[Path | str]):
        self.path = Path(path).expanduser().resolve() if path else None

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def exists(self) -> bool:
        return self.path is not None and self.path.is_file()

    def read(self) -> str:
        """Return the plan file text."""
        if self.path is None:
            raise PlanFileMissingError("No plan file configured. Set MASTER_PLAN_PATH or PROJECT_ROOT.")
        try:
            # newline="" keeps CRLF line endings intact
            with open(self.path, "r", encoding="utf-8", newline="") as handle:
                return handle.read()
        except FileNotFoundError as e:
            raise PlanFileMissingError(f"Plan file not found: {self.path}") from e

    def tasks(self, status: Optional[str] = None) -> List[Task]:
        """Parse the plan and return its tasks, optionally filtered by status."""
        return plan.filter_tasks(plan.iter_tasks(self.read()), status)

    def get(self, task_id: str) -> Task:
        return plan.get_task(self.read(), task_id)

    def summary(self) -> PlanSummary:
        return PlanSummary.from_tasks(self.tasks())

    def next_id(self, prefix: str = DEFAULT_TASK_PREFIX) -> str:
        return plan.next_task_id((task.id for task in self.tasks()), prefix)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @log_performance("update_status")
    def update_status(self, task_id: str, status: str) -> Tuple[Task, Task]:
        """Rewrite the heading of ``task_id`` for ``status`` and persist it.

        Returns the task as it was before and after the change.
        """
        status = normalize_status(status)
        with lock_for(self._require_path()), log_operation("update_status", task_id=task_id, status=status):
            original = self.read()
            before = plan.get_task(original, task_id)
            updated = plan.update_status(original, task_id, status)
            after = plan.get_task(updated, task_id)

            if updated != original:
                self._write(updated, expected=original)
                log_status_change(str(self.path), task_id, before.status, after.status)
            else:
                logger.debug(f"Task {task_id} already {status}; plan file left untouched")
            return before, after

    @log_performance("add_task")
    def add_task(
        self,
        title: str,
        *,
        prefix: str = DEFAULT_TASK_PREFIX,
        status: str = STATUS_BACKLOG,
        body: Optional[str] = None,
    ) -> Task:
        """Append a new task heading to the plan and persist it."""
        status = normalize_status(status)
        with lock_for(self._require_path()), log_operation("add_task", prefix=prefix, status=status):
            original = self.read()
            updated, task_id = plan.add_task(original, title, prefix=prefix, status=status, body=body)
            self._write(updated, expected=original)
            task = plan.get_task(updated, task_id)
            log_task_added(str(self.path), task_id, task.status, title=task.title)
            return task

    def _require_path(self) -> Path:
        if self.path is None:
            raise PlanFileMissingError("No plan file configured. Set MASTER_PLAN_PATH or PROJECT_ROOT.")
        return self.path

    def _write(self, text: str, *, expected: str) -> None:
        """Atomically replace the plan file, refusing if it changed since it was read."""
        path = self._require_path()
        tmp_name: Optional[str] = None
        try:
            fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
                handle.write(text)
                handle.flush()
                os.fsync(handle.fileno())

            if self.read() != expected:
                raise PersistenceError(
                    f"Plan file {path} was modified by another process; update not applied",
                    path,
                )

            try:
                os.chmod(tmp_name, path.stat().st_mode & 0o7777)
            except OSError:
                logger.debug(f"Could not copy permissions onto {tmp_name}")
            os.replace(tmp_name, path)
            tmp_name = None
        except PersistenceError as e:
            log_error_with_context(e, {"operation": "write_plan", "path": str(path)})
            raise
        except OSError as e:
            log_error_with_context(e, {"operation": "write_plan", "path": str(path)})
            raise PersistenceError(f"Failed to write plan file {path}: {e}", path) from e
        finally:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
