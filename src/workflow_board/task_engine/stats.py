"""Live counters for the task dashboard."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import date, datetime, timedelta, tzinfo
from typing import Any, Iterable, Optional

from ..constants import DUE_THIS_WEEK_DAYS
from ..utils import _day_of_timestamp
from .model import Priority, Task


@dataclass(frozen=True)
class TaskStats:
    overdue: int = 0
    due_today: int = 0
    due_this_week: int = 0
    high_priority_open: int = 0
    completed_today: int = 0
    total: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def compute_stats(
    tasks: Iterable[Task],
    today: date | datetime,
    tz: Optional[tzinfo] = None,
) -> TaskStats:
    """Count tasks per dashboard category relative to *today*.

    Categories are independent: one task may count as both overdue and
    high priority.  All counters except ``completed_today`` only look at
    incomplete tasks.
    """
    if isinstance(today, datetime):
        today = (today.astimezone(tz) if tz and today.tzinfo else today).date()
    week_end = today + timedelta(days=DUE_THIS_WEEK_DAYS)

    overdue = due_today = due_this_week = high_open = completed_today = total = 0
    for task in tasks:
        total += 1
        if task.completed:
            if _day_of_timestamp(task.completed_at, tz) == today:
                completed_today += 1
            continue
        if task.priority is Priority.HIGH:
            high_open += 1
        due = task.due_date
        if due is None:
            continue
        if due < today:
            overdue += 1
        if due == today:
            due_today += 1
        if today <= due <= week_end:
            due_this_week += 1

    return TaskStats(
        overdue=overdue,
        due_today=due_today,
        due_this_week=due_this_week,
        high_priority_open=high_open,
        completed_today=completed_today,
        total=total,
    )
