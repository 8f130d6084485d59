"""Read-only projections of a reconciled (registry, tasks) pair.

* board    -- one column per stage, in stage order, empty columns included
* list     -- the same grouping with empty groups dropped, flattened into
              header and task rows for single-column scanning
* calendar -- tasks keyed by due day, plus a 42-cell Monday-first month grid

Nothing here mutates its inputs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Iterable, Optional

from loguru import logger

from ..constants import CALENDAR_GRID_CELLS
from .model import Stage, Task
from .stages import StageRegistry


# ---------------------------------------------------------------------------
# Board / list
# ---------------------------------------------------------------------------

@dataclass
class BoardColumn:
    stage: Stage
    tasks: list[Task] = field(default_factory=list)

    @property
    def total_count(self) -> int:
        return len(self.tasks)

    @property
    def completed_count(self) -> int:
        return sum(1 for t in self.tasks if t.completed)

    def to_dict(self) -> dict[str, Any]:
        return {
            "stage": self.stage.to_dict(),
            "placeholder": self.stage.is_placeholder,
            "completed_count": self.completed_count,
            "total_count": self.total_count,
            "tasks": [t.to_dict() for t in self.tasks],
        }


@dataclass
class ListRow:
    """A flattened list entry: a stage header or a task row."""

    kind: str  # "header" | "task"
    stage: Stage
    task: Optional[Task] = None
    completed_count: int = 0
    total_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        if self.kind == "header":
            return {
                "kind": "header",
                "stage": self.stage.to_dict(),
                "completed_count": self.completed_count,
                "total_count": self.total_count,
            }
        return {"kind": "task", "stage_id": self.stage.id, "task": self.task.to_dict() if self.task else None}


def board_columns(registry: StageRegistry, tasks: Iterable[Task]) -> list[BoardColumn]:
    """Group tasks by stage; every registry stage gets a column."""
    columns = [BoardColumn(stage=s) for s in registry]
    by_id = {c.stage.id: c for c in columns}
    unplaced = 0
    for task in tasks:
        column = by_id.get(task.stage_id)
        if column is None:
            unplaced += 1
            continue
        column.tasks.append(task)
    if unplaced:
        logger.debug("{} task(s) reference stages missing from an unreconciled registry", unplaced)
    return columns


def list_sections(registry: StageRegistry, tasks: Iterable[Task]) -> list[BoardColumn]:
    """Board grouping with empty stages omitted."""
    return [c for c in board_columns(registry, tasks) if c.tasks]


def list_rows(registry: StageRegistry, tasks: Iterable[Task]) -> list[ListRow]:
    rows: list[ListRow] = []
    for section in list_sections(registry, tasks):
        rows.append(ListRow(
            kind="header",
            stage=section.stage,
            completed_count=section.completed_count,
            total_count=section.total_count,
        ))
        rows.extend(ListRow(kind="task", stage=section.stage, task=t) for t in section.tasks)
    return rows


# ---------------------------------------------------------------------------
# Calendar
# ---------------------------------------------------------------------------

@dataclass
class CalendarCell:
    day: date
    in_month: bool
    tasks: list[Task] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.day.isoformat(),
            "in_month": self.in_month,
            "tasks": [t.to_dict() for t in self.tasks],
        }


def tasks_by_due_date(tasks: Iterable[Task]) -> dict[date, list[Task]]:
    """Map each due day to the tasks due that day.  Undated tasks are skipped."""
    grouped: dict[date, list[Task]] = {}
    for task in tasks:
        if task.due_date is None:
            continue
        grouped.setdefault(task.due_date, []).append(task)
    return grouped


def month_grid(year: int, month: int) -> list[CalendarCell]:
    """Six Monday-first weeks covering *month*, padded with adjacent days."""
    if not 1 <= month <= 12:
        raise ValueError(f"month must be in 1..12, got {month}")
    first = date(year, month, 1)
    start = first - timedelta(days=first.weekday())
    try:
        days = [start + timedelta(days=offset) for offset in range(CALENDAR_GRID_CELLS)]
    except OverflowError:
        raise ValueError(f"{year}-{month:02d} is outside the calendar range") from None
    return [CalendarCell(day=day, in_month=(day.year == year and day.month == month)) for day in days]


def calendar_month(year: int, month: int, tasks: Iterable[Task]) -> list[CalendarCell]:
    """The month grid with each cell's due tasks attached."""
    by_day = tasks_by_due_date(tasks)
    cells = month_grid(year, month)
    for cell in cells:
        cell.tasks = list(by_day.get(cell.day, []))
    return cells
