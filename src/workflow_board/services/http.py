"""HTTP collaborator: the project-management REST API.

The wire format is owned by the API.  Records use ``_id`` keys and camelCase
timestamps, and references (``project``, ``assignee(s)``, ``completedBy``,
``createdBy``) arrive either as plain ids or as populated objects; both are
accepted here.
"""

from __future__ import annotations

from typing import Any, Optional

import httpx
from loguru import logger

from ..errors import CollaboratorError, TaskNotFoundError
from ..task_engine.model import Priority, Stage, Subtask, Task
from ..utils import _parse_day
from .base import TaskService


# ---------------------------------------------------------------------------
# Wire mapping
# ---------------------------------------------------------------------------

def _ref(value: Any) -> Optional[str]:
    """Id of a plain or populated reference."""
    if value in (None, ""):
        return None
    if isinstance(value, dict):
        ref = value.get("_id") or value.get("id")
        return str(ref) if ref else None
    return str(value)


def task_from_wire(data: dict[str, Any]) -> Task:
    project = data.get("project")
    project_name = project.get("name") if isinstance(project, dict) else None
    assignees = [_ref(a) for a in data.get("assignees") or []]
    single = _ref(data.get("assignee"))
    if single:
        assignees.insert(0, single)
    return Task.from_dict({
        "id": _ref(data.get("_id") or data.get("id")),
        "project_id": _ref(project) or data.get("projectId") or "",
        "project_name": project_name or data.get("projectName"),
        "title": data.get("title", ""),
        "description": data.get("description") or "",
        "stage_id": data.get("stage") or data.get("stageId"),
        "priority": data.get("priority"),
        "due_date": data.get("dueDate"),
        "order": data.get("order", 0),
        "completed": data.get("completed", False),
        "completed_at": data.get("completedAt"),
        "completed_by": _ref(data.get("completedBy")),
        "assignees": [a for a in assignees if a],
        "subtasks": [
            {
                "title": s.get("title", ""),
                "completed": s.get("completed", False),
                "completed_at": s.get("completedAt"),
                "completed_by": _ref(s.get("completedBy")),
            }
            for s in data.get("subtasks") or []
            if isinstance(s, dict)
        ],
        "comments": [
            {"text": c.get("text", ""), "user": _ref(c.get("user")), "created_at": c.get("createdAt")}
            for c in data.get("comments") or []
            if isinstance(c, dict)
        ],
        "created_by": _ref(data.get("createdBy")),
        "created_at": data.get("createdAt"),
        "updated_at": data.get("updatedAt"),
    })


def _subtask_to_wire(sub: Subtask | dict[str, Any]) -> dict[str, Any]:
    if isinstance(sub, dict):
        sub = Subtask.from_dict(sub)
    return {"title": sub.title, "completed": sub.completed}


_CHANGE_KEYS = {
    "title": "title",
    "description": "description",
    "stage_id": "stage",
    "priority": "priority",
    "due_date": "dueDate",
    "assignees": "assignees",
    "subtasks": "subtasks",
}


def changes_to_wire(changes: dict[str, Any]) -> dict[str, Any]:
    body: dict[str, Any] = {}
    for key, value in changes.items():
        wire_key = _CHANGE_KEYS.get(key)
        if wire_key is None:
            continue
        if key == "priority" and isinstance(value, Priority):
            value = value.value
        elif key == "due_date":
            day = _parse_day(value)
            value = day.isoformat() if day else None
        elif key == "subtasks":
            value = [_subtask_to_wire(s) for s in value or []]
        body[wire_key] = value
    return body


def task_to_wire(task: Task) -> dict[str, Any]:
    body = changes_to_wire({
        "title": task.title,
        "description": task.description,
        "stage_id": task.stage_id,
        "priority": task.priority,
        "due_date": task.due_date,
        "assignees": task.assignees,
        "subtasks": task.subtasks,
    })
    body["project"] = task.project_id
    return body


def _stages_from_payload(payload: Any) -> list[Stage]:
    items = payload.get("stages") if isinstance(payload, dict) else payload
    return [Stage.from_dict(s) for s in items or [] if isinstance(s, dict)]


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class HttpTaskService(TaskService):
    """Async client for the remote task API.

    Parameters
    ----------
    base_url:
        API root, e.g. ``https://portal.example.com/api``.
    token:
        Bearer token sent with every request.
    timeout:
        Seconds; ``None`` leaves httpx's default in place.
    transport:
        Optional httpx transport (tests pass ``httpx.MockTransport``).
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        kwargs: dict[str, Any] = {"base_url": base_url.rstrip("/"), "headers": headers}
        if timeout is not None:
            kwargs["timeout"] = timeout
        if transport is not None:
            kwargs["transport"] = transport
        self._client = httpx.AsyncClient(**kwargs)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        task_id: Optional[str] = None,
        **kwargs: Any,
    ) -> Any:
        try:
            resp = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("{} {} failed: {}", method, path, exc)
            raise CollaboratorError(f"Request failed: {exc.__class__.__name__}: {exc}") from exc
        if resp.status_code == 404 and task_id is not None:
            raise TaskNotFoundError(task_id)
        if resp.status_code >= 400:
            message = f"{method} {path} returned {resp.status_code}"
            try:
                payload = resp.json()
                if isinstance(payload, dict) and payload.get("message"):
                    message = str(payload["message"])
            except ValueError:
                pass
            logger.warning("{} {} -> {}: {}", method, path, resp.status_code, message)
            raise CollaboratorError(message, status_code=resp.status_code)
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as exc:
            raise CollaboratorError(f"{method} {path} returned invalid JSON") from exc

    @staticmethod
    def _completed_param(completed: Optional[bool]) -> dict[str, str]:
        return {} if completed is None else {"completed": "true" if completed else "false"}

    def _tasks(self, payload: Any) -> list[Task]:
        if not isinstance(payload, list):
            raise CollaboratorError("Expected a list of tasks")
        return [task_from_wire(d) for d in payload if isinstance(d, dict)]

    def _task(self, payload: Any) -> Task:
        if not isinstance(payload, dict):
            raise CollaboratorError("Expected a task object")
        return task_from_wire(payload)

    # -- reads --------------------------------------------------------------

    async def list_project_tasks(self, project_id: str, completed: Optional[bool] = None) -> list[Task]:
        payload = await self._request(
            "GET", f"/tasks/project/{project_id}", params=self._completed_param(completed)
        )
        return self._tasks(payload)

    async def list_all_tasks(self, completed: Optional[bool] = None) -> list[Task]:
        payload = await self._request("GET", "/tasks", params=self._completed_param(completed))
        return self._tasks(payload)

    async def get_stages(self, project_id: str) -> list[Stage]:
        payload = await self._request("GET", f"/projects/{project_id}/task-stages")
        return _stages_from_payload(payload)

    # -- writes -------------------------------------------------------------

    async def save_stages(self, project_id: str, stages: list[Stage]) -> list[Stage]:
        payload = await self._request(
            "PUT",
            f"/projects/{project_id}/task-stages",
            json={"stages": [s.to_dict() for s in stages]},
        )
        return _stages_from_payload(payload) if payload is not None else list(stages)

    async def create_task(self, task: Task) -> Task:
        return self._task(await self._request("POST", "/tasks", json=task_to_wire(task)))

    async def update_task(self, task_id: str, changes: dict[str, Any]) -> Task:
        payload = await self._request(
            "PUT", f"/tasks/{task_id}", task_id=task_id, json=changes_to_wire(changes)
        )
        return self._task(payload)

    async def delete_task(self, task_id: str) -> None:
        await self._request("DELETE", f"/tasks/{task_id}", task_id=task_id)

    async def toggle_task(self, task_id: str, user: Optional[str] = None) -> Task:
        return self._task(await self._request("PATCH", f"/tasks/{task_id}/toggle", task_id=task_id))

    async def move_task(self, task_id: str, stage_id: str) -> Task:
        payload = await self._request(
            "PATCH", f"/tasks/{task_id}/stage", task_id=task_id, json={"stage": stage_id}
        )
        return self._task(payload)

    async def add_comment(self, task_id: str, text: str, user: Optional[str] = None) -> Task:
        payload = await self._request(
            "POST", f"/tasks/{task_id}/comments", task_id=task_id, json={"text": text}
        )
        return self._task(payload)

    async def reorder_tasks(self, project_id: str, task_ids: list[str]) -> None:
        await self._request("POST", "/tasks/reorder", json={"taskIds": list(task_ids)})

