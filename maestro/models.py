"""Data models for Dev Maestro task tracking.

This module contains the core data structures used throughout the Dev Maestro
system: the task statuses and their textual markers, the task record parsed
from a plan file heading, and the per-status summary of a plan.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from .errors import InvalidStatusError


STATUS_BACKLOG = "backlog"
STATUS_IN_PROGRESS = "in_progress"
STATUS_BLOCKED = "blocked"
STATUS_REVIEW = "review"
STATUS_DONE = "done"

# Display order of the board columns
STATUSES: Tuple[str, ...] = (
    STATUS_BACKLOG,
    STATUS_IN_PROGRESS,
    STATUS_BLOCKED,
    STATUS_REVIEW,
    STATUS_DONE,
)

# Marker tokens written into plan file headings. Changing any of these is a
# breaking change to the plan file format.
STATUS_MARKERS: Dict[str, str] = {
    STATUS_DONE: "✅ DONE",
    STATUS_IN_PROGRESS: "🔄 IN PROGRESS",
    STATUS_BLOCKED: "⏸️ PAUSED",
    STATUS_REVIEW: "👀 REVIEW",
}

# Alternate spellings accepted from API clients
STATUS_ALIASES: Dict[str, str] = {
    "in-progress": STATUS_IN_PROGRESS,
    "inprogress": STATUS_IN_PROGRESS,
    "paused": STATUS_BLOCKED,
    "todo": STATUS_BACKLOG,
    "completed": STATUS_DONE,
}

DEFAULT_TASK_PREFIX = "TASK"


def normalize_status(value: Optional[str]) -> str:
    """Return the canonical status name for ``value`` or raise InvalidStatusError."""
    if value is None:
        raise InvalidStatusError("Status is required")
    key = value.strip().lower()
    key = STATUS_ALIASES.get(key, key)
    if key not in STATUSES:
        raise InvalidStatusError(
            f"Invalid status '{value}'. Expected one of: {', '.join(STATUSES)}"
        )
    return key


@dataclass(slots=True)
class Task:
    """A single task heading parsed from the plan file."""

    id: str
    title: str
    status: str
    raw_heading_line: str
    line_range: Tuple[int, int]
    is_completed: bool = False

    @property
    def line_index(self) -> int:
        """Zero-based index of the heading line."""
        return self.line_range[0]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "title": self.title,
            "status": self.status,
            "isCompleted": self.is_completed,
            "line": self.line_index + 1,
            "rawHeadingLine": self.raw_heading_line,
        }


@dataclass(slots=True)
class PlanSummary:
    """Per-status view of the tasks in one plan file snapshot."""

    total: int = 0
    counts: Dict[str, int] = field(default_factory=lambda: {status: 0 for status in STATUSES})
    groups: Dict[str, List[Task]] = field(default_factory=lambda: {status: [] for status in STATUSES})
    generated_at: str = field(default_factory=lambda: datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"))

    @classmethod
    def from_tasks(cls, tasks: List[Task]) -> "PlanSummary":
        """Build a summary from parsed tasks, preserving document order within each group."""
        summary = cls()
        for task in tasks:
            summary.groups[task.status].append(task)
            summary.counts[task.status] += 1
            summary.total += 1
        return summary

    def get_completion_rate(self) -> float:
        """Get task completion rate as percentage."""
        if self.total == 0:
            return 0.0
        return (self.counts[STATUS_DONE] / self.total) * 100

    def to_dict(self, include_tasks: bool = False) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        data: Dict[str, Any] = {
            "total": self.total,
            "counts": dict(self.counts),
            "completion_rate": round(self.get_completion_rate(), 1),
            "generated_at": self.generated_at,
        }
        if include_tasks:
            data["groups"] = {
                status: [task.to_dict() for task in tasks]
                for status, tasks in self.groups.items()
            }
        return data
