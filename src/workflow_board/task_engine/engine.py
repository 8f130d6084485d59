"""Workflow engine: load, reconcile, project, and dispatch user actions.

This is the primary entry point for everything that touches a project's
pipeline.  It wraps a :class:`~workflow_board.services.base.TaskService`
with the engine's rules:

* loads fetch stages and tasks together, reconcile them, and replace the
  in-memory snapshot wholesale; an older load finishing after a newer one is
  discarded
* mutations are validated (and stage deletions guarded) locally before any
  request, sent to the collaborator, and followed by a fresh load; the
  snapshot itself is never edited optimistically
* each action site (one task, one project's stage list, ...) accepts a
  single outstanding request at a time
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from datetime import date, datetime, tzinfo
from typing import Any, AsyncIterator, Iterable, Optional

from loguru import logger

from ..errors import (
    ActionInFlightError,
    CollaboratorError,
    TaskNotFoundError,
    TaskValidationError,
    UnknownStageError,
    WorkflowValidationError,
)
from ..services.base import TaskService
from ..utils import _parse_day
from .model import Priority, Stage, Subtask, Task
from .query import SortKey, TaskFilter
from .snapshot import ProjectSnapshot
from .stages import MoveDirection, StageRegistry
from .stats import TaskStats
from .views import BoardColumn, CalendarCell, ListRow

# Fields update_task accepts.
_EDITABLE_FIELDS = {"title", "description", "stage_id", "priority", "due_date", "assignees", "subtasks"}


def _clean_assignees(value: Any) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, (list, tuple)):
        raise TaskValidationError("'assignees' must be a list")
    return list(dict.fromkeys(str(a) for a in value if a))


class WorkflowEngine:
    """Manage one loaded snapshot (a project, or the cross-project dashboard).

    Parameters
    ----------
    service:
        The remote collaborator.
    user:
        Reference of the acting user, recorded on completions and comments.
    """

    def __init__(self, service: TaskService, user: Optional[str] = None) -> None:
        self.service = service
        self.user = user
        self.snapshot: Optional[ProjectSnapshot] = None
        self._load_seq = 0
        self._applied_seq = 0
        self._last_load: Optional[tuple[Optional[str], Optional[bool]]] = None
        self._pending: set[tuple[str, str]] = set()

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def load_project(self, project_id: str, completed: Optional[bool] = None) -> ProjectSnapshot:
        """Fetch and reconcile one project's stages and tasks."""
        if not project_id or not str(project_id).strip():
            raise TaskValidationError("A project reference is required")
        self._last_load = (project_id, completed)
        seq = self._next_seq()
        try:
            stages, tasks = await asyncio.gather(
                self.service.get_stages(project_id),
                self.service.list_project_tasks(project_id, completed=completed),
            )
        except OSError as exc:
            raise CollaboratorError(f"Failed to load project {project_id}: {exc}") from exc
        return self._apply(ProjectSnapshot.build(project_id, stages, tasks, generation=seq))

    async def load_dashboard(self, completed: Optional[bool] = None) -> ProjectSnapshot:
        """Fetch tasks across all projects, grouped against the default stages."""
        self._last_load = (None, completed)
        seq = self._next_seq()
        try:
            tasks = await self.service.list_all_tasks(completed=completed)
        except OSError as exc:
            raise CollaboratorError(f"Failed to load tasks: {exc}") from exc
        return self._apply(ProjectSnapshot.build(None, [], tasks, generation=seq))

    async def refresh(self) -> Optional[ProjectSnapshot]:
        """Re-run the most recent load."""
        if self._last_load is None:
            return None
        project_id, completed = self._last_load
        if project_id is None:
            return await self.load_dashboard(completed=completed)
        return await self.load_project(project_id, completed=completed)

    def _next_seq(self) -> int:
        self._load_seq += 1
        return self._load_seq

    def _apply(self, snapshot: ProjectSnapshot) -> ProjectSnapshot:
        if snapshot.generation < self._applied_seq and self.snapshot is not None:
            logger.warning(
                "Discarding stale load #{} (load #{} already applied)",
                snapshot.generation,
                self._applied_seq,
            )
            return self.snapshot
        self._applied_seq = snapshot.generation
        self.snapshot = snapshot
        orphaned = snapshot.orphaned_stage_ids if snapshot.project_id else []
        logger.debug(
            "Applied load #{} for {}: {} stage(s), {} task(s), orphaned={}",
            snapshot.generation,
            snapshot.project_id or "dashboard",
            len(snapshot.registry),
            len(snapshot.tasks),
            orphaned,
        )
        return snapshot

    def require_snapshot(self) -> ProjectSnapshot:
        if self.snapshot is None:
            raise WorkflowValidationError("Nothing loaded yet")
        return self.snapshot

    def _require_project_snapshot(self) -> ProjectSnapshot:
        snapshot = self.require_snapshot()
        if snapshot.project_id is None:
            raise WorkflowValidationError("Stage changes need a project to be loaded")
        return snapshot

    # ------------------------------------------------------------------
    # Action sites
    # ------------------------------------------------------------------

    def is_pending(self, kind: str, key: str) -> bool:
        return (kind, key) in self._pending

    @asynccontextmanager
    async def _action(self, kind: str, key: str) -> AsyncIterator[None]:
        """Hold an action site for one request plus the reload that follows."""
        site = (kind, key)
        if site in self._pending:
            raise ActionInFlightError(site)
        self._pending.add(site)
        try:
            yield
        except OSError as exc:
            logger.error("{} {} failed: {}", kind, key, exc)
            raise CollaboratorError(f"{exc.__class__.__name__}: {exc}") from exc
        except (CollaboratorError, TaskNotFoundError) as exc:
            logger.error("{} {} failed: {}", kind, key, exc)
            raise
        finally:
            self._pending.discard(site)

    # ------------------------------------------------------------------
    # Stage registry
    # ------------------------------------------------------------------

    async def persist_stages(self, registry: Optional[StageRegistry] = None) -> list[Stage]:
        """Save the complete registry as one atomic replacement, then reload."""
        snapshot = self._require_project_snapshot()
        registry = registry if registry is not None else snapshot.registry
        project_id = snapshot.project_id
        async with self._action("stages", project_id):
            saved = await self.service.save_stages(project_id, registry.stages)
            logger.info("Persisted {} stage(s) for project {}", len(registry), project_id)
            await self.refresh()
        return saved

    async def add_stage(self, label: str) -> Stage:
        snapshot = self._require_project_snapshot()
        registry = snapshot.registry.copy()
        stage = registry.add_stage(label, reserved_ids=snapshot.referenced_stage_ids())
        await self.persist_stages(registry)
        return stage

    async def rename_stage(self, stage_id: str, label: str) -> Stage:
        registry = self._require_project_snapshot().registry.copy()
        stage = registry.rename_stage(stage_id, label)
        await self.persist_stages(registry)
        return stage

    async def recolor_stage(self, stage_id: str, color: str) -> Stage:
        registry = self._require_project_snapshot().registry.copy()
        stage = registry.recolor_stage(stage_id, color)
        await self.persist_stages(registry)
        return stage

    async def update_stage(
        self, stage_id: str, label: Optional[str] = None, color: Optional[str] = None
    ) -> Stage:
        """Rename and/or recolor a stage with a single save."""
        if label is None and color is None:
            raise WorkflowValidationError("Nothing to update")
        registry = self._require_project_snapshot().registry.copy()
        if label is not None:
            stage = registry.rename_stage(stage_id, label)
        if color is not None:
            stage = registry.recolor_stage(stage_id, color)
        await self.persist_stages(registry)
        return stage

    async def move_stage(self, stage_id: str, direction: MoveDirection | str) -> bool:
        """Move a stage one step; a boundary move sends nothing."""
        registry = self._require_project_snapshot().registry.copy()
        if not registry.move_stage(stage_id, direction):
            return False
        await self.persist_stages(registry)
        return True

    async def delete_stage(self, stage_id: str) -> Stage:
        """Delete a stage no loaded task references.

        Raises :class:`~workflow_board.errors.StageInUseError` (carrying the
        blocking count) without contacting the collaborator otherwise.
        """
        snapshot = self._require_project_snapshot()
        registry = snapshot.registry.copy()
        removed = registry.delete_stage(stage_id, snapshot.tasks)
        await self.persist_stages(registry)
        return removed

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def _check_stage(self, stage_id: Any) -> str:
        if not isinstance(stage_id, str) or not stage_id.strip():
            raise TaskValidationError("A stage reference is required")
        snapshot = self.snapshot
        if snapshot is not None and snapshot.project_id is not None and stage_id not in snapshot.registry:
            raise UnknownStageError(stage_id)
        return stage_id

    def _check_task(self, task_id: str) -> None:
        snapshot = self.snapshot
        if snapshot is not None and snapshot.project_id is not None and snapshot.task(task_id) is None:
            raise TaskNotFoundError(task_id)

    def _validate_changes(self, changes: dict[str, Any]) -> dict[str, Any]:
        unknown = sorted(set(changes) - _EDITABLE_FIELDS)
        if unknown:
            raise TaskValidationError(f"Fields cannot be edited: {unknown}")
        clean = dict(changes)
        if "title" in clean:
            title = clean["title"]
            if not isinstance(title, str) or not title.strip():
                raise TaskValidationError("'title' is required and must be non-empty")
            clean["title"] = title.strip()
        if "priority" in clean:
            try:
                clean["priority"] = Priority(getattr(clean["priority"], "value", clean["priority"]))
            except ValueError:
                raise TaskValidationError(f"Invalid priority: {clean['priority']!r}") from None
        if "due_date" in clean:
            raw = clean["due_date"]
            day = _parse_day(raw)
            if raw not in (None, "") and day is None:
                raise TaskValidationError(f"Invalid due date: {raw!r}")
            clean["due_date"] = day
        if "stage_id" in clean:
            self._check_stage(clean["stage_id"])
        if "assignees" in clean:
            clean["assignees"] = _clean_assignees(clean["assignees"])
        return clean

    async def create_task(
        self,
        title: str,
        *,
        project_id: Optional[str] = None,
        description: str = "",
        stage_id: Optional[str] = None,
        priority: Priority | str = Priority.MEDIUM,
        due_date: Any = None,
        assignees: Optional[Iterable[str]] = None,
        subtasks: Optional[Iterable[str]] = None,
    ) -> Task:
        """Validate locally, create through the collaborator, then reload."""
        snapshot = self.snapshot
        project_id = project_id or (snapshot.project_id if snapshot else None)
        if not project_id:
            raise TaskValidationError("A project reference is required")
        priority_value = getattr(priority, "value", priority)
        errors = Task.validate_dict({"title": title, "priority": priority_value, "due_date": due_date})
        if errors:
            raise TaskValidationError("; ".join(errors))
        if stage_id is None:
            first = snapshot.registry.first() if snapshot and snapshot.project_id == project_id else None
            stage_id = first.id if first else StageRegistry.default().ids()[0]
        elif snapshot is not None and snapshot.project_id == project_id:
            self._check_stage(stage_id)

        task = Task(
            project_id=project_id,
            title=title.strip(),
            description=description or "",
            stage_id=stage_id,
            priority=Priority(priority_value),
            due_date=_parse_day(due_date),
            assignees=_clean_assignees(assignees),
            subtasks=[Subtask(title=s) for s in subtasks or [] if s and s.strip()],
            created_by=self.user,
        )
        async with self._action("project", project_id):
            created = await self.service.create_task(task)
            logger.info("Created task {} in {} / {}", created.id, project_id, stage_id)
            await self.refresh()
        return created

    async def update_task(self, task_id: str, changes: dict[str, Any]) -> Task:
        clean = self._validate_changes(changes)
        self._check_task(task_id)
        async with self._action("task", task_id):
            task = await self.service.update_task(task_id, clean)
            logger.info("Updated task {} fields={}", task_id, sorted(clean))
            await self.refresh()
        return task

    async def delete_task(self, task_id: str) -> None:
        self._check_task(task_id)
        async with self._action("task", task_id):
            await self.service.delete_task(task_id)
            logger.info("Deleted task {}", task_id)
            await self.refresh()

    async def toggle_task(self, task_id: str) -> Task:
        self._check_task(task_id)
        async with self._action("task", task_id):
            task = await self.service.toggle_task(task_id, user=self.user)
            logger.info("Task {} completed={}", task_id, task.completed)
            await self.refresh()
        return task

    async def move_task(self, task_id: str, stage_id: str) -> Task:
        self._check_stage(stage_id)
        self._check_task(task_id)
        async with self._action("task", task_id):
            task = await self.service.move_task(task_id, stage_id)
            logger.info("Moved task {} to stage {}", task_id, stage_id)
            await self.refresh()
        return task

    async def add_comment(self, task_id: str, text: str) -> Task:
        if not text or not text.strip():
            raise TaskValidationError("Comment text must not be empty")
        self._check_task(task_id)
        async with self._action("task", task_id):
            task = await self.service.add_comment(task_id, text.strip(), user=self.user)
            await self.refresh()
        return task

    async def toggle_subtask(self, task_id: str, index: int) -> Task:
        """Flip one checklist item by sending the task's full subtask list."""
        current = self.require_snapshot().task(task_id)
        if current is None:
            raise TaskNotFoundError(task_id)
        draft = Task.from_dict(current.to_dict())
        try:
            draft.toggle_subtask(index, self.user)
        except IndexError as exc:
            raise TaskValidationError(str(exc)) from None
        async with self._action("task", task_id):
            task = await self.service.update_task(task_id, {"subtasks": draft.subtasks})
            await self.refresh()
        return task

    async def reorder_tasks(self, task_ids: list[str]) -> None:
        snapshot = self._require_project_snapshot()
        known = {t.id for t in snapshot.tasks}
        missing = [tid for tid in task_ids if tid not in known]
        if missing:
            raise TaskValidationError(f"Tasks not in project {snapshot.project_id}: {missing}")
        async with self._action("project", snapshot.project_id):
            await self.service.reorder_tasks(snapshot.project_id, task_ids)
            await self.refresh()

    # ------------------------------------------------------------------
    # Projections over the current snapshot
    # ------------------------------------------------------------------

    def board(
        self,
        task_filter: Optional[TaskFilter] = None,
        sort_key: SortKey | str | None = None,
    ) -> list[BoardColumn]:
        return self.require_snapshot().board(task_filter, sort_key)

    def list_rows(
        self,
        task_filter: Optional[TaskFilter] = None,
        sort_key: SortKey | str | None = None,
    ) -> list[ListRow]:
        return self.require_snapshot().list_rows(task_filter, sort_key)

    def calendar(
        self,
        year: int,
        month: int,
        task_filter: Optional[TaskFilter] = None,
    ) -> list[CalendarCell]:
        return self.require_snapshot().calendar(year, month, task_filter)

    def stats(
        self,
        today: date | datetime,
        task_filter: Optional[TaskFilter] = None,
        tz: Optional[tzinfo] = None,
    ) -> TaskStats:
        return self.require_snapshot().stats(today, task_filter, tz=tz)
