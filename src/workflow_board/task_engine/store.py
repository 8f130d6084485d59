"""File-based task and stage store with exclusive locking.

Tasks for every project live in ``tasks.yaml`` and stage registries, keyed by
project id, in ``stages.yaml``, both inside ``<project_dir>/.workflow_board/``.
All reads and writes go through :meth:`WorkflowStore.transaction`, which holds
an exclusive file lock; files are written to a temp file and renamed into
place so a crash never leaves a half-written store.
"""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional

from ..constants import LOCK_FILE, STAGES_FILE, STORE_VERSION, TASKS_FILE
from ..errors import CollaboratorError
from ..io_utils import FileLock, _atomic_write_yaml, _load_data_with_error
from .model import Stage, Task


def _load_section(path: Path, key: str, default: Any) -> Any:
    data, err = _load_data_with_error(path, {})
    if err:
        # Refuse to continue rather than overwrite a corrupted file.
        raise CollaboratorError(f"Cannot read store: {err}")
    value = data.get(key, default)
    return value if isinstance(value, type(default)) else default


class WorkflowStore:
    """Lock-protected YAML store for :class:`Task` and :class:`Stage` records.

    Parameters
    ----------
    state_dir:
        Path to the ``.workflow_board/`` directory.
    """

    def __init__(self, state_dir: Path) -> None:
        self._state_dir = state_dir
        self._tasks_path = state_dir / TASKS_FILE
        self._stages_path = state_dir / STAGES_FILE
        self._lock = FileLock(state_dir / LOCK_FILE)

    @property
    def state_dir(self) -> Path:
        return self._state_dir

    def _load(self) -> tuple[list[Task], dict[str, list[Stage]]]:
        raw_tasks = _load_section(self._tasks_path, "tasks", [])
        raw_stages = _load_section(self._stages_path, "projects", {})
        tasks = [Task.from_dict(d) for d in raw_tasks if isinstance(d, dict)]
        stages = {
            str(pid): [Stage.from_dict(s) for s in items if isinstance(s, dict)]
            for pid, items in raw_stages.items()
            if isinstance(items, list)
        }
        return tasks, stages

    @contextmanager
    def transaction(self) -> Iterator["_StoreTx"]:
        """Acquire the lock, load everything, yield a transaction, save on exit.

        Usage::

            with store.transaction() as tx:
                task = tx.get("task-abc123")
                task.stage_id = "test"
                tx.dirty = True
        """
        with self._lock:
            tasks, stages = self._load()
            tx = _StoreTx(tasks, stages)
            yield tx
            if tx.dirty:
                _atomic_write_yaml(
                    self._tasks_path,
                    {"version": STORE_VERSION, "tasks": [t.to_dict() for t in tx.tasks]},
                )
            if tx.stages_dirty:
                _atomic_write_yaml(
                    self._stages_path,
                    {
                        "version": STORE_VERSION,
                        "projects": {
                            pid: [s.to_dict() for s in items] for pid, items in tx.stages.items()
                        },
                    },
                )

    def read_snapshot(self) -> list[Task]:
        """Return every stored task (no lock held after return)."""
        with self._lock:
            return self._load()[0]


class _StoreTx:
    """In-memory transaction over the stored tasks and stage registries."""

    def __init__(self, tasks: list[Task], stages: dict[str, list[Stage]]) -> None:
        self.tasks = tasks
        self.stages = stages
        self.dirty = False
        self.stages_dirty = False
        self._index: dict[str, int] = {t.id: i for i, t in enumerate(tasks)}

    # -- tasks --------------------------------------------------------------

    def get(self, task_id: str) -> Optional[Task]:
        idx = self._index.get(task_id)
        return self.tasks[idx] if idx is not None else None

    def for_project(self, project_id: str) -> list[Task]:
        return [t for t in self.tasks if t.project_id == project_id]

    def add(self, task: Task) -> Task:
        if task.id in self._index:
            raise ValueError(f"Task {task.id} already exists")
        self._index[task.id] = len(self.tasks)
        self.tasks.append(task)
        self.dirty = True
        return task

    def remove(self, task_id: str) -> bool:
        idx = self._index.pop(task_id, None)
        if idx is None:
            return False
        self.tasks.pop(idx)
        self._index = {t.id: i for i, t in enumerate(self.tasks)}
        self.dirty = True
        return True

    # -- stages -------------------------------------------------------------

    def get_stages(self, project_id: str) -> list[Stage]:
        return list(self.stages.get(project_id, []))

    def replace_stages(self, project_id: str, stages: list[Stage]) -> None:
        """Swap in a project's complete registry; never merged."""
        self.stages[project_id] = list(stages)
        self.stages_dirty = True
