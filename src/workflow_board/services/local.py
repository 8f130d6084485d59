"""File-backed collaborator for offline use and tests."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

from loguru import logger

from ..constants import STATE_DIR_NAME
from ..errors import TaskNotFoundError, TaskValidationError
from ..task_engine.model import Comment, Priority, Stage, Subtask, Task
from ..task_engine.store import WorkflowStore
from ..utils import _parse_day, _parse_iso
from .base import TaskService

# Fields a caller may change through update_task.
_UPDATABLE = {
    "title",
    "description",
    "stage_id",
    "priority",
    "due_date",
    "assignees",
    "subtasks",
    "project_name",
}


def _fetch_order(tasks: list[Task]) -> list[Task]:
    """Manual order first, newest first within the same order."""
    def created(t: Task) -> float:
        dt = _parse_iso(t.created_at)
        return dt.timestamp() if dt else 0.0

    return sorted(tasks, key=lambda t: (t.order, -created(t)))


def _coerce_changes(changes: dict[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key, value in changes.items():
        if key not in _UPDATABLE:
            continue
        if key == "title":
            if not isinstance(value, str) or not value.strip():
                raise TaskValidationError("'title' is required and must be non-empty")
            value = value.strip()
        elif key == "priority":
            try:
                value = value if isinstance(value, Priority) else Priority(str(value))
            except ValueError:
                raise TaskValidationError(f"Invalid priority: {value!r}") from None
        elif key == "due_date":
            parsed = _parse_day(value)
            if value not in (None, "") and parsed is None:
                raise TaskValidationError(f"Invalid due date: {value!r}")
            value = parsed
        elif key == "assignees":
            value = list(dict.fromkeys(str(a) for a in value or [] if a))
        elif key == "subtasks":
            value = [s if isinstance(s, Subtask) else Subtask.from_dict(s) for s in value or []]
        out[key] = value
    return out


class LocalTaskService(TaskService):
    """Serve the collaborator contract from a :class:`WorkflowStore`."""

    def __init__(self, store: WorkflowStore) -> None:
        self.store = store

    @classmethod
    def for_project_dir(cls, project_dir: Path) -> "LocalTaskService":
        return cls(WorkflowStore(project_dir / STATE_DIR_NAME))

    # -- reads --------------------------------------------------------------

    async def list_project_tasks(self, project_id: str, completed: Optional[bool] = None) -> list[Task]:
        with self.store.transaction() as tx:
            tasks = tx.for_project(project_id)
        if completed is not None:
            tasks = [t for t in tasks if t.completed == completed]
        return _fetch_order(tasks)

    async def list_all_tasks(self, completed: Optional[bool] = None) -> list[Task]:
        tasks = self.store.read_snapshot()
        if completed is not None:
            tasks = [t for t in tasks if t.completed == completed]
        return _fetch_order(tasks)

    async def get_stages(self, project_id: str) -> list[Stage]:
        with self.store.transaction() as tx:
            return tx.get_stages(project_id)

    # -- writes -------------------------------------------------------------

    async def save_stages(self, project_id: str, stages: list[Stage]) -> list[Stage]:
        with self.store.transaction() as tx:
            tx.replace_stages(project_id, stages)
        logger.info("Saved {} stage(s) for project {}", len(stages), project_id)
        return list(stages)

    async def create_task(self, task: Task) -> Task:
        with self.store.transaction() as tx:
            existing = tx.for_project(task.project_id)
            task.order = max((t.order for t in existing), default=-1) + 1
            tx.add(task)
        logger.info("Created task {}: {}", task.id, task.title)
        return task

    async def update_task(self, task_id: str, changes: dict[str, Any]) -> Task:
        clean = _coerce_changes(changes)
        with self.store.transaction() as tx:
            task = tx.get(task_id)
            if task is None:
                raise TaskNotFoundError(task_id)
            for key, value in clean.items():
                setattr(task, key, value)
            task.touch()
            tx.dirty = True
        return task

    async def delete_task(self, task_id: str) -> None:
        with self.store.transaction() as tx:
            if not tx.remove(task_id):
                raise TaskNotFoundError(task_id)
        logger.info("Deleted task {}", task_id)

    async def toggle_task(self, task_id: str, user: Optional[str] = None) -> Task:
        with self.store.transaction() as tx:
            task = tx.get(task_id)
            if task is None:
                raise TaskNotFoundError(task_id)
            task.set_completed(not task.completed, user)
            tx.dirty = True
        return task

    async def move_task(self, task_id: str, stage_id: str) -> Task:
        return await self.update_task(task_id, {"stage_id": stage_id})

    async def add_comment(self, task_id: str, text: str, user: Optional[str] = None) -> Task:
        with self.store.transaction() as tx:
            task = tx.get(task_id)
            if task is None:
                raise TaskNotFoundError(task_id)
            task.comments.append(Comment(text=text, user=user))
            task.touch()
            tx.dirty = True
        return task

    async def reorder_tasks(self, project_id: str, task_ids: list[str]) -> None:
        with self.store.transaction() as tx:
            for position, tid in enumerate(task_ids):
                task = tx.get(tid)
                if task is not None and task.project_id == project_id:
                    task.order = position
                    tx.dirty = True
