"""Tests for board, list and calendar projections (task_engine/views.py)."""

from __future__ import annotations

from datetime import date, timedelta

import pytest

from workflow_board.task_engine.model import Task
from workflow_board.task_engine.stages import StageRegistry
from workflow_board.task_engine.views import (
    board_columns,
    calendar_month,
    list_rows,
    list_sections,
    month_grid,
    tasks_by_due_date,
)


@pytest.fixture
def registry() -> StageRegistry:
    return StageRegistry.default()


@pytest.fixture
def tasks() -> list[Task]:
    return [
        Task(title="a", stage_id="planning"),
        Task(title="b", stage_id="planning", completed=True),
        Task(title="c", stage_id="test", due_date=date(2024, 6, 10)),
    ]


class TestBoard:
    def test_one_column_per_stage(self, registry: StageRegistry, tasks: list[Task]) -> None:
        columns = board_columns(registry, tasks)
        assert [c.stage.id for c in columns] == registry.ids()
        assert sum(c.total_count for c in columns) == len(tasks)

    def test_counts(self, registry: StageRegistry, tasks: list[Task]) -> None:
        planning = board_columns(registry, tasks)[0]
        assert planning.total_count == 2
        assert planning.completed_count == 1
        assert planning.to_dict()["placeholder"] is False

    def test_keeps_input_order_within_column(self, registry: StageRegistry) -> None:
        ordered = [Task(title=t, stage_id="planning") for t in "zyx"]
        assert [t.title for t in board_columns(registry, ordered)[0].tasks] == ["z", "y", "x"]

    def test_empty_registry_gives_no_columns(self) -> None:
        assert board_columns(StageRegistry(), [Task(title="x")]) == []


class TestList:
    def test_omits_empty_groups(self, registry: StageRegistry, tasks: list[Task]) -> None:
        sections = list_sections(registry, tasks)
        assert [s.stage.id for s in sections] == ["planning", "test"]
        assert sum(s.total_count for s in sections) == len(tasks)

    def test_rows_interleave_headers(self, registry: StageRegistry, tasks: list[Task]) -> None:
        rows = list_rows(registry, tasks)
        assert [r.kind for r in rows] == ["header", "task", "task", "header", "task"]
        assert rows[0].completed_count == 1
        assert rows[0].total_count == 2
        assert rows[-1].task.title == "c"


class TestCalendar:
    def test_undated_tasks_excluded(self, tasks: list[Task]) -> None:
        by_day = tasks_by_due_date(tasks)
        assert list(by_day) == [date(2024, 6, 10)]

    @pytest.mark.parametrize("year,month", [(2024, 2), (2024, 6), (2023, 1), (2026, 12)])
    def test_grid_shape(self, year: int, month: int) -> None:
        cells = month_grid(year, month)
        assert len(cells) == 42
        assert cells[0].day.weekday() == 0
        assert all(b.day - a.day == timedelta(days=1) for a, b in zip(cells, cells[1:]))
        in_month = [c.day for c in cells if c.in_month]
        assert in_month[0] == date(year, month, 1)
        assert all(d.month == month for d in in_month)
        next_first = date(year + (month == 12), month % 12 + 1, 1)
        assert in_month[-1] == next_first - timedelta(days=1)

    def test_month_starting_monday_has_no_leading_days(self) -> None:
        # 1 July 2024 is a Monday
        cells = month_grid(2024, 7)
        assert cells[0].day == date(2024, 7, 1)
        assert cells[0].in_month

    def test_bad_month(self) -> None:
        with pytest.raises(ValueError):
            month_grid(2024, 13)

    def test_month_past_date_range(self) -> None:
        with pytest.raises(ValueError, match="outside the calendar range"):
            month_grid(9999, 12)
        assert len(month_grid(1, 1)) == 42

    def test_tasks_attached_to_cells(self, tasks: list[Task]) -> None:
        cells = calendar_month(2024, 6, tasks)
        hit = [c for c in cells if c.tasks]
        assert len(hit) == 1
        assert hit[0].day == date(2024, 6, 10)
        assert hit[0].to_dict()["date"] == "2024-06-10"
