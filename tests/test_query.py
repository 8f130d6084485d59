"""Tests for the filter/sort pipeline (task_engine/query.py)."""

from __future__ import annotations

from datetime import date

import pytest

from workflow_board.task_engine.model import Priority, Task
from workflow_board.task_engine.query import SortKey, TaskFilter, apply_pipeline, filter_tasks, sort_tasks


@pytest.fixture
def tasks() -> list[Task]:
    return [
        Task(id="t1", title="Pull cable", project_id="p1", project_name="beta", priority=Priority.LOW,
             due_date=date(2024, 6, 12), assignees=["u1"], created_at="2024-06-01T00:00:00+00:00"),
        Task(id="t2", title="Mount panel", project_id="p2", project_name="Alpha", priority=Priority.HIGH,
             created_at="2024-06-03T00:00:00+00:00", description="Needs cable ties"),
        Task(id="t3", title="Test RCDs", project_id="p1", project_name="beta", priority=Priority.HIGH,
             due_date=date(2024, 6, 9), completed=True, assignees=["u2"],
             created_at="2024-06-02T00:00:00+00:00"),
    ]


def _ids(tasks: list[Task]) -> list[str]:
    return [t.id for t in tasks]


class TestFilter:
    def test_no_filter_keeps_all(self, tasks: list[Task]) -> None:
        assert _ids(filter_tasks(tasks)) == ["t1", "t2", "t3"]

    def test_search_covers_title_description_project(self, tasks: list[Task]) -> None:
        assert _ids(filter_tasks(tasks, TaskFilter(query="CABLE"))) == ["t1", "t2"]
        assert _ids(filter_tasks(tasks, TaskFilter(query="alpha"))) == ["t2"]

    def test_conjunction(self, tasks: list[Task]) -> None:
        f = TaskFilter(project_id="p1", priority="high", completed=True, assignee="u2")
        assert _ids(filter_tasks(tasks, f)) == ["t3"]

    def test_assignee(self, tasks: list[Task]) -> None:
        assert _ids(filter_tasks(tasks, TaskFilter(assignee="u1"))) == ["t1"]

    def test_invalid_priority(self) -> None:
        with pytest.raises(ValueError):
            TaskFilter(priority="urgent")


class TestSort:
    def test_due_date_puts_undated_last(self, tasks: list[Task]) -> None:
        assert _ids(sort_tasks(tasks, SortKey.DUE_DATE)) == ["t3", "t1", "t2"]

    def test_priority_is_stable(self, tasks: list[Task]) -> None:
        assert _ids(sort_tasks(tasks, "priority")) == ["t2", "t3", "t1"]

    def test_project_name_case_insensitive(self, tasks: list[Task]) -> None:
        assert _ids(sort_tasks(tasks, SortKey.PROJECT)) == ["t2", "t1", "t3"]

    def test_created_newest_first(self, tasks: list[Task]) -> None:
        assert _ids(sort_tasks(tasks, "createdAt")) == ["t2", "t3", "t1"]

    def test_unknown_key(self, tasks: list[Task]) -> None:
        with pytest.raises(ValueError):
            sort_tasks(tasks, "colour")

    def test_does_not_mutate_input(self, tasks: list[Task]) -> None:
        sort_tasks(tasks, SortKey.PRIORITY)
        assert _ids(tasks) == ["t1", "t2", "t3"]


def test_pipeline_filters_then_sorts(tasks: list[Task]) -> None:
    result = apply_pipeline(tasks, TaskFilter(completed=False), SortKey.PRIORITY)
    assert _ids(result) == ["t2", "t1"]


def test_pipeline_without_sort_keeps_fetch_order(tasks: list[Task]) -> None:
    assert _ids(apply_pipeline(tasks, None, None)) == ["t1", "t2", "t3"]
