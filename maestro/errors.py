"""Exception types raised by Dev Maestro."""

from __future__ import annotations


class MaestroError(Exception):
    """Base class for Dev Maestro errors."""


class TaskNotFoundError(MaestroError, KeyError):
    """No heading in the plan file carries the requested task identifier."""

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task {task_id} not found")

    def __str__(self) -> str:
        return f"Task {self.task_id} not found"


class InvalidStatusError(MaestroError, ValueError):
    """A status value outside the five known statuses."""


class PersistenceError(MaestroError):
    """A computed plan file could not be written back to disk."""

    def __init__(self, message: str, path: object = None):
        self.path = path
        super().__init__(message)


class PlanFileMissingError(MaestroError, FileNotFoundError):
    """The plan file is not configured or does not exist."""


class ConfigurationError(MaestroError, ValueError):
    """Invalid Dev Maestro configuration."""
