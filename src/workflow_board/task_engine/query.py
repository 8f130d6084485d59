"""Filter and sort pipeline applied to a task snapshot before projection."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Iterable, Optional

from ..utils import _parse_iso
from .model import Priority, Task


class SortKey(str, Enum):
    DUE_DATE = "dueDate"
    PRIORITY = "priority"
    PROJECT = "project"
    CREATED = "created"

    @classmethod
    def coerce(cls, raw: "SortKey | str | None") -> "SortKey":
        if raw is None or raw == "":
            return cls.DUE_DATE
        if isinstance(raw, cls):
            return raw
        aliases = {"due_date": cls.DUE_DATE, "createdAt": cls.CREATED, "created_at": cls.CREATED}
        if raw in aliases:
            return aliases[raw]
        return cls(raw)


@dataclass(frozen=True)
class TaskFilter:
    """Conjunction of optional predicates; an unset criterion matches all."""

    project_id: Optional[str] = None
    assignee: Optional[str] = None
    priority: Optional[Priority] = None
    query: Optional[str] = None
    completed: Optional[bool] = None

    def __post_init__(self) -> None:
        if self.priority is not None and not isinstance(self.priority, Priority):
            object.__setattr__(self, "priority", Priority(str(self.priority)))

    def matches(self, task: Task) -> bool:
        if self.project_id and task.project_id != self.project_id:
            return False
        if self.assignee and not task.has_assignee(self.assignee):
            return False
        if self.priority is not None and task.priority != self.priority:
            return False
        if self.completed is not None and task.completed != self.completed:
            return False
        if self.query:
            q = self.query.lower()
            haystacks = (task.title, task.description, task.project_name or "")
            if not any(q in h.lower() for h in haystacks):
                return False
        return True


def filter_tasks(tasks: Iterable[Task], task_filter: Optional[TaskFilter] = None) -> list[Task]:
    if task_filter is None:
        return list(tasks)
    return [t for t in tasks if task_filter.matches(t)]


def _created_ts(task: Task) -> float:
    dt = _parse_iso(task.created_at)
    return dt.timestamp() if dt else 0.0


def sort_tasks(tasks: Iterable[Task], key: SortKey | str = SortKey.DUE_DATE) -> list[Task]:
    """Return a new list sorted by exactly one key.

    Sorts are stable, and always start from the given order rather than
    refining a previous sort.
    """
    key = SortKey.coerce(key)
    items = list(tasks)
    if key is SortKey.DUE_DATE:
        # Undated tasks go after every dated one, whichever side they are on.
        return sorted(items, key=lambda t: (t.due_date is None, t.due_date or date.min))
    if key is SortKey.PRIORITY:
        return sorted(items, key=lambda t: t.priority.sort_key)
    if key is SortKey.PROJECT:
        return sorted(items, key=lambda t: (t.project_name or "").casefold())
    return sorted(items, key=_created_ts, reverse=True)


def apply_pipeline(
    tasks: Iterable[Task],
    task_filter: Optional[TaskFilter] = None,
    sort_key: SortKey | str | None = SortKey.DUE_DATE,
) -> list[Task]:
    """Filter then sort.  ``sort_key=None`` keeps the fetched order."""
    narrowed = filter_tasks(tasks, task_filter)
    if sort_key is None:
        return narrowed
    return sort_tasks(narrowed, sort_key)
