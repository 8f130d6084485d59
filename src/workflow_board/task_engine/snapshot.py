"""The (stage registry, task store) pair a projection is computed from."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, tzinfo
from typing import Any, Optional

from ..utils import _now_iso
from .model import Stage, Task
from .query import SortKey, TaskFilter, apply_pipeline
from .reconcile import find_orphaned_stage_ids, reconcile
from .stages import StageRegistry
from .stats import TaskStats, compute_stats
from .views import BoardColumn, CalendarCell, ListRow, board_columns, calendar_month, list_rows, list_sections


@dataclass
class ProjectSnapshot:
    """One project's reconciled registry and tasks at a point in time.

    ``project_id`` is ``None`` for the cross-project dashboard snapshot.
    ``stages`` holds the registry exactly as fetched, before placeholders.
    """

    project_id: Optional[str]
    registry: StageRegistry
    tasks: list[Task]
    stages: list[Stage] = field(default_factory=list)
    loaded_at: str = field(default_factory=_now_iso)
    generation: int = 0

    @classmethod
    def build(
        cls,
        project_id: Optional[str],
        stages: list[Stage],
        tasks: list[Task],
        generation: int = 0,
    ) -> "ProjectSnapshot":
        """Reconcile freshly fetched stages and tasks into a snapshot."""
        fetched = StageRegistry.from_list(stages)
        return cls(
            project_id=project_id,
            registry=reconcile(fetched, tasks),
            tasks=list(tasks),
            stages=fetched.stages,
            generation=generation,
        )

    @property
    def orphaned_stage_ids(self) -> list[str]:
        fetched = StageRegistry(self.stages) if self.stages else StageRegistry.default()
        return find_orphaned_stage_ids(fetched, self.tasks)

    def task(self, task_id: str) -> Optional[Task]:
        for t in self.tasks:
            if t.id == task_id:
                return t
        return None

    def referenced_stage_ids(self) -> set[str]:
        return {t.stage_id for t in self.tasks}

    # -- projections --------------------------------------------------------

    def select(
        self,
        task_filter: Optional[TaskFilter] = None,
        sort_key: SortKey | str | None = None,
    ) -> list[Task]:
        return apply_pipeline(self.tasks, task_filter, sort_key)

    def board(
        self,
        task_filter: Optional[TaskFilter] = None,
        sort_key: SortKey | str | None = None,
    ) -> list[BoardColumn]:
        return board_columns(self.registry, self.select(task_filter, sort_key))

    def sections(
        self,
        task_filter: Optional[TaskFilter] = None,
        sort_key: SortKey | str | None = None,
    ) -> list[BoardColumn]:
        return list_sections(self.registry, self.select(task_filter, sort_key))

    def list_rows(
        self,
        task_filter: Optional[TaskFilter] = None,
        sort_key: SortKey | str | None = None,
    ) -> list[ListRow]:
        return list_rows(self.registry, self.select(task_filter, sort_key))

    def calendar(
        self,
        year: int,
        month: int,
        task_filter: Optional[TaskFilter] = None,
        sort_key: SortKey | str | None = None,
    ) -> list[CalendarCell]:
        return calendar_month(year, month, self.select(task_filter, sort_key))

    def stats(
        self,
        today: date | datetime,
        task_filter: Optional[TaskFilter] = None,
        tz: Optional[tzinfo] = None,
    ) -> TaskStats:
        return compute_stats(self.select(task_filter), today, tz=tz)

    def to_dict(self) -> dict[str, Any]:
        return {
            "project_id": self.project_id,
            "loaded_at": self.loaded_at,
            "generation": self.generation,
            "stages": self.registry.to_list(),
            "orphaned_stage_ids": self.orphaned_stage_ids,
            "tasks": [t.to_dict() for t in self.tasks],
        }
