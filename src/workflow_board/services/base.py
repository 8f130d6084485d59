from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional

from ..task_engine.model import Stage, Task


class TaskService(ABC):
    """Request/response contract of the remote collaborator.

    Implementations raise :class:`~workflow_board.errors.TaskNotFoundError`
    for unknown task ids and :class:`~workflow_board.errors.CollaboratorError`
    for any transport or storage failure.
    """

    @abstractmethod
    async def list_project_tasks(self, project_id: str, completed: Optional[bool] = None) -> list[Task]:
        raise NotImplementedError

    @abstractmethod
    async def list_all_tasks(self, completed: Optional[bool] = None) -> list[Task]:
        raise NotImplementedError

    @abstractmethod
    async def get_stages(self, project_id: str) -> list[Stage]:
        """Persisted registry; empty when the project never saved one."""
        raise NotImplementedError

    @abstractmethod
    async def save_stages(self, project_id: str, stages: list[Stage]) -> list[Stage]:
        """Atomically replace the project's whole registry."""
        raise NotImplementedError

    @abstractmethod
    async def create_task(self, task: Task) -> Task:
        raise NotImplementedError

    @abstractmethod
    async def update_task(self, task_id: str, changes: dict[str, Any]) -> Task:
        raise NotImplementedError

    @abstractmethod
    async def delete_task(self, task_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    async def toggle_task(self, task_id: str, user: Optional[str] = None) -> Task:
        raise NotImplementedError

    @abstractmethod
    async def move_task(self, task_id: str, stage_id: str) -> Task:
        raise NotImplementedError

    @abstractmethod
    async def add_comment(self, task_id: str, text: str, user: Optional[str] = None) -> Task:
        raise NotImplementedError

    @abstractmethod
    async def reorder_tasks(self, project_id: str, task_ids: list[str]) -> None:
        raise NotImplementedError

    async def aclose(self) -> None:
        """Release transport resources, if any."""
