"""Plan file parsing and rewriting for Dev Maestro.

A plan file is a markdown document in which every task is a level-three
heading of the form::

    ### TASK-001: Add auth
    ### TASK-002: Fix bug (🔄 IN PROGRESS)
    ### ~~TASK-003~~: Setup CI (✅ DONE)

This module turns such a document into ``Task`` records, rewrites a single
heading to reflect a new status, appends new task headings and allocates the
next free identifier. Every function here is pure: it takes the document text
and returns new values, leaving file access to ``maestro.store``.
"""

from __future__ import annotations

import re
from typing import Iterable, Iterator, List, Optional, Tuple

from .errors import TaskNotFoundError
from .models import (
    DEFAULT_TASK_PREFIX,
    STATUS_BACKLOG,
    STATUS_BLOCKED,
    STATUS_DONE,
    STATUS_IN_PROGRESS,
    STATUS_MARKERS,
    STATUS_REVIEW,
    Task,
    normalize_status,
)


DEFAULT_ID_WIDTH = 3
STRIKETHROUGH = "~~"

# Identifier prefixes the heading parser recognises
PREFIX_PATTERN = re.compile(r"[A-Za-z]+")

_HEADING_PATTERN = re.compile(
    r"^(?P<lead>###\s+)"
    r"(?P<open>~~)?"
    rf"(?P<id>(?P<prefix>{PREFIX_PATTERN.pattern})-(?P<number>\d+))"
    r"(?P<close>~~)?"
    r":(?P<sep>\s*)(?P<rest>.+)$"
)
_LINE_PATTERN = re.compile(r"[^\n]*\n|[^\n]+")


def _token_pattern(token: str) -> str:
    # The paused marker is often typed without its emoji variation selector.
    return re.escape(token).replace("\ufe0f", "\ufe0f?")


_MARKER_PATTERNS = {
    status: re.compile(_token_pattern(token)) for status, token in STATUS_MARKERS.items()
}
_ANY_MARKER = "|".join(_token_pattern(token) for token in STATUS_MARKERS.values())
_MARKER_STRIP_PATTERN = re.compile(r"\s*(?:\(\s*(?:%s)\s*\)|(?:%s))\s*" % (_ANY_MARKER, _ANY_MARKER))

# Status inference order; the first marker found wins.
_INFERENCE_ORDER = (STATUS_DONE, STATUS_IN_PROGRESS, STATUS_BLOCKED, STATUS_REVIEW)


# ---------------------------------------------------------------------------
# Line handling
# ---------------------------------------------------------------------------


def split_lines(text: str) -> List[str]:
    """Split text into lines that keep their terminators, so ``"".join`` restores it."""
    return _LINE_PATTERN.findall(text)


def _split_terminator(line: str) -> Tuple[str, str]:
    if line.endswith("\r\n"):
        return line[:-2], "\r\n"
    if line.endswith("\n"):
        return line[:-1], "\n"
    return line, ""


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def infer_status(rest: str, struck: bool = False) -> str:
    """Derive a task status from the heading remainder and its strikethrough state."""
    if struck:
        return STATUS_DONE
    for status in _INFERENCE_ORDER:
        if _MARKER_PATTERNS[status].search(rest):
            return status
    return STATUS_BACKLOG


def clean_title(rest: str) -> str:
    """Remove every marker token (and its parentheses) from a heading remainder."""
    return _MARKER_STRIP_PATTERN.sub(" ", rest).strip()


def parse_heading(line: str, line_index: int = 0) -> Optional[Task]:
    """Parse one line into a Task, or return None when it is not a task heading."""
    body, _ = _split_terminator(line)
    match = _HEADING_PATTERN.match(body)
    if not match:
        return None

    struck = match.group("open") is not None and match.group("close") is not None
    rest = match.group("rest")
    return Task(
        id=match.group("id"),
        title=clean_title(rest),
        status=infer_status(rest, struck),
        raw_heading_line=body,
        line_range=(line_index, line_index + 1),
        is_completed=struck,
    )


def iter_tasks(text: str) -> Iterator[Task]:
    """Yield task headings in document order, skipping every other line."""
    for index, line in enumerate(split_lines(text)):
        task = parse_heading(line, index)
        if task is not None:
            yield task


def parse_tasks(text: str) -> List[Task]:
    """Parse the full plan document into an ordered list of tasks."""
    return list(iter_tasks(text))


def filter_tasks(tasks: Iterable[Task], status: Optional[str] = None) -> List[Task]:
    """Return the tasks with the given status, or all of them when status is None."""
    if status is None:
        return list(tasks)
    wanted = normalize_status(status)
    return [task for task in tasks if task.status == wanted]


def find_task(tasks: Iterable[Task], task_id: str) -> Task:
    """Return the first task carrying ``task_id``.

    Plan files are edited by hand and may contain the same identifier twice;
    lookups and mutations always resolve to the first occurrence in document
    order.
    """
    for task in tasks:
        if task.id == task_id:
            return task
    raise TaskNotFoundError(task_id)


def get_task(text: str, task_id: str) -> Task:
    """Parse ``text`` and return the first task carrying ``task_id``."""
    return find_task(iter_tasks(text), task_id)


# ---------------------------------------------------------------------------
# Mutator
# ---------------------------------------------------------------------------


def render_heading(task_id: str, title: str, status: str, *, lead: str = "### ", sep: str = " ") -> str:
    """Render a task heading line (without terminator) for the given status."""
    status = normalize_status(status)
    identifier = f"{STRIKETHROUGH}{task_id}{STRIKETHROUGH}" if status == STATUS_DONE else task_id

    parts = [title] if title else []
    marker = STATUS_MARKERS.get(status)
    if marker:
        parts.append(f"({marker})")
    remainder = " ".join(parts)
    if not remainder and not sep:
        sep = " "
    return f"{lead}{identifier}:{sep}{remainder}"


def update_status(text: str, task_id: str, status: str) -> str:
    """Return ``text`` with the heading of ``task_id`` rewritten for ``status``.

    Existing markers and strikethrough are removed before the new status is
    applied, so repeated updates never accumulate stale markers. Only the
    heading line changes; its line terminator and every other line are kept
    as they are.
    """
    status = normalize_status(status)
    lines = split_lines(text)
    for index, line in enumerate(lines):
        body, terminator = _split_terminator(line)
        match = _HEADING_PATTERN.match(body)
        if not match or match.group("id") != task_id:
            continue

        heading = render_heading(
            task_id,
            clean_title(match.group("rest")),
            status,
            lead=match.group("lead"),
            sep=match.group("sep"),
        )
        lines[index] = heading + terminator
        return "".join(lines)

    raise TaskNotFoundError(task_id)


def add_task(
    text: str,
    title: str,
    *,
    prefix: str = DEFAULT_TASK_PREFIX,
    status: str = STATUS_BACKLOG,
    body: Optional[str] = None,
) -> Tuple[str, str]:
    """Append a new task heading to the document.

    Returns the new document text and the allocated task identifier.
    """
    prefix = validate_prefix(prefix)
    title = " ".join((title or "").split())
    if not title:
        raise ValueError("Task title cannot be empty")
    if clean_title(title) != title:
        raise ValueError("Task title cannot contain status markers")

    task_id = next_task_id((task.id for task in iter_tasks(text)), prefix)
    block = [render_heading(task_id, title, status)]
    if body and body.strip():
        block.append("")
        block.extend(body.strip("\n").splitlines())

    newline = "\r\n" if "\r\n" in text else "\n"
    prefix_text = text
    if prefix_text and not prefix_text.endswith("\n"):
        prefix_text += newline
    if prefix_text.strip() and not prefix_text.endswith(newline * 2):
        prefix_text += newline
    return prefix_text + newline.join(block) + newline, task_id


# ---------------------------------------------------------------------------
# ID allocation
# ---------------------------------------------------------------------------


def validate_prefix(prefix: str) -> str:
    """Return ``prefix`` unchanged, or raise ValueError if headings using it would not parse."""
    if not isinstance(prefix, str) or not PREFIX_PATTERN.fullmatch(prefix):
        raise ValueError(f"Invalid task prefix {prefix!r}: use letters only, e.g. {DEFAULT_TASK_PREFIX}")
    return prefix


def next_task_id(task_ids: Iterable[str], prefix: str = DEFAULT_TASK_PREFIX) -> str:
    """Return the identifier following the highest ``<prefix>-<digits>`` in ``task_ids``.

    Numbers are compared numerically. When existing identifiers are
    zero-padded the result is padded to the same width; with no matching
    identifiers the default width of three digits is used.
    """
    prefix = validate_prefix(prefix)
    pattern = re.compile(rf"^{re.escape(prefix)}-(\d+)$")
    highest = 0
    padded_width = 0
    seen = False
    for task_id in task_ids:
        match = pattern.match(task_id)
        if not match:
            continue
        digits = match.group(1)
        seen = True
        highest = max(highest, int(digits))
        if len(digits) > 1 and digits.startswith("0"):
            padded_width = max(padded_width, len(digits))

    width = padded_width if seen else DEFAULT_ID_WIDTH
    return f"{prefix}-{str(highest + 1).zfill(width)}"
