"""Board API endpoints: project views, stage management, tasks, dashboard.

This module provides a FastAPI router over :class:`WorkflowEngine`.  It is
mounted under ``/api/v1`` by the main ``create_app`` factory.  Every request
reloads the snapshot it works on; mutations go through the engine so local
validation and the stage-deletion guard run before the collaborator is
contacted.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import date
from typing import Any, Callable, Iterator, Optional

from fastapi import APIRouter, HTTPException, Query
from loguru import logger
from pydantic import BaseModel, Field

from ..errors import (
    ActionInFlightError,
    CollaboratorError,
    StageInUseError,
    TaskNotFoundError,
    WorkflowValidationError,
)
from ..task_engine.engine import WorkflowEngine
from ..task_engine.query import SortKey, TaskFilter


# ---------------------------------------------------------------------------
# Pydantic request models
# ---------------------------------------------------------------------------

class CreateStageRequest(BaseModel):
    label: str


class UpdateStageRequest(BaseModel):
    label: Optional[str] = None
    color: Optional[str] = None


class MoveStageRequest(BaseModel):
    direction: str


class CreateTaskRequest(BaseModel):
    title: str
    description: str = ""
    stage_id: Optional[str] = None
    priority: str = "medium"
    due_date: Optional[str] = None
    assignees: list[str] = Field(default_factory=list)
    subtasks: list[str] = Field(default_factory=list)


class UpdateTaskRequest(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    stage_id: Optional[str] = None
    priority: Optional[str] = None
    due_date: Optional[str] = None
    assignees: Optional[list[str]] = None


class MoveTaskRequest(BaseModel):
    stage_id: str


class CommentRequest(BaseModel):
    text: str


class ReorderRequest(BaseModel):
    task_ids: list[str]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

@contextmanager
def _http_errors() -> Iterator[None]:
    """Translate engine errors into HTTP responses."""
    try:
        yield
    except StageInUseError as exc:
        raise HTTPException(
            status_code=409,
            detail={"message": str(exc), "stage_id": exc.stage_id, "blocking_count": exc.blocking_count},
        ) from exc
    except ActionInFlightError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except TaskNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except (WorkflowValidationError, ValueError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except CollaboratorError as exc:
        logger.error("Collaborator failure: {}", exc)
        raise HTTPException(status_code=502, detail=str(exc)) from exc


def _task_filter(
    project_id: Optional[str] = None,
    assignee: Optional[str] = None,
    priority: Optional[str] = None,
    q: Optional[str] = None,
    completed: Optional[bool] = None,
) -> TaskFilter:
    return TaskFilter(
        project_id=project_id or None,
        assignee=assignee or None,
        priority=priority or None,
        query=q or None,
        completed=completed,
    )


def _stage_payload(engine: WorkflowEngine) -> dict[str, Any]:
    snapshot = engine.require_snapshot()
    return {"stages": snapshot.registry.to_list(), "orphaned_stage_ids": snapshot.orphaned_stage_ids}


# ---------------------------------------------------------------------------
# Router factory
# ---------------------------------------------------------------------------

def create_board_router(
    get_engine: Callable[[Optional[str]], WorkflowEngine],
    dashboard_defaults: Optional[dict[str, Any]] = None,
) -> APIRouter:
    """Create the board API router.

    Parameters
    ----------
    get_engine:
        A callable ``(project_id | None) -> WorkflowEngine``; ``None``
        selects the cross-project dashboard engine.
    dashboard_defaults:
        ``{"sort": SortKey, "show_completed": bool}`` from the board config.
    """
    router = APIRouter(prefix="/api/v1", tags=["board"])
    defaults = dashboard_defaults or {}

    async def _project(project_id: str) -> WorkflowEngine:
        engine = get_engine(project_id)
        with _http_errors():
            await engine.load_project(project_id)
        return engine

    async def _known_stage(project_id: str, stage_id: str) -> WorkflowEngine:
        engine = await _project(project_id)
        if stage_id not in engine.require_snapshot().registry:
            raise HTTPException(status_code=404, detail=f"Stage {stage_id} not found")
        return engine

    # ------------------------------------------------------------------
    # Project views
    # ------------------------------------------------------------------

    @router.get("/projects/{project_id}/snapshot")
    async def get_snapshot(project_id: str) -> dict[str, Any]:
        engine = await _project(project_id)
        return engine.require_snapshot().to_dict()

    @router.get("/projects/{project_id}/board")
    async def get_board(
        project_id: str,
        assignee: Optional[str] = Query(None),
        priority: Optional[str] = Query(None),
        q: Optional[str] = Query(None),
        completed: Optional[bool] = Query(None),
        sort: Optional[str] = Query(None),
    ) -> dict[str, Any]:
        engine = await _project(project_id)
        with _http_errors():
            columns = engine.board(_task_filter(None, assignee, priority, q, completed), sort)
        return {"project_id": project_id, "columns": [c.to_dict() for c in columns]}

    @router.get("/projects/{project_id}/list")
    async def get_list(
        project_id: str,
        assignee: Optional[str] = Query(None),
        priority: Optional[str] = Query(None),
        q: Optional[str] = Query(None),
        completed: Optional[bool] = Query(None),
        sort: Optional[str] = Query(None),
    ) -> dict[str, Any]:
        engine = await _project(project_id)
        with _http_errors():
            rows = engine.list_rows(_task_filter(None, assignee, priority, q, completed), sort)
        return {"project_id": project_id, "rows": [r.to_dict() for r in rows]}

    @router.get("/projects/{project_id}/calendar")
    async def get_calendar(
        project_id: str,
        year: Optional[int] = Query(None),
        month: Optional[int] = Query(None),
        assignee: Optional[str] = Query(None),
        priority: Optional[str] = Query(None),
        q: Optional[str] = Query(None),
        completed: Optional[bool] = Query(None),
    ) -> dict[str, Any]:
        today = date.today()
        year = year or today.year
        month = month or today.month
        engine = await _project(project_id)
        with _http_errors():
            cells = engine.calendar(year, month, _task_filter(None, assignee, priority, q, completed))
        return {"year": year, "month": month, "cells": [c.to_dict() for c in cells]}

    @router.get("/projects/{project_id}/stats")
    async def get_stats(
        project_id: str,
        today: Optional[date] = Query(None),
        assignee: Optional[str] = Query(None),
        priority: Optional[str] = Query(None),
        q: Optional[str] = Query(None),
    ) -> dict[str, Any]:
        engine = await _project(project_id)
        with _http_errors():
            stats = engine.stats(today or date.today(), _task_filter(None, assignee, priority, q))
        return stats.to_dict()

    # ------------------------------------------------------------------
    # Stage registry
    # ------------------------------------------------------------------

    @router.get("/projects/{project_id}/stages")
    async def list_stages(project_id: str) -> dict[str, Any]:
        return _stage_payload(await _project(project_id))

    @router.post("/projects/{project_id}/stages", status_code=201)
    async def add_stage(project_id: str, body: CreateStageRequest) -> dict[str, Any]:
        engine = await _project(project_id)
        with _http_errors():
            stage = await engine.add_stage(body.label)
        return {"stage": stage.to_dict(), **_stage_payload(engine)}

    @router.patch("/projects/{project_id}/stages/{stage_id}")
    async def update_stage(project_id: str, stage_id: str, body: UpdateStageRequest) -> dict[str, Any]:
        if body.label is None and body.color is None:
            raise HTTPException(status_code=400, detail="Nothing to update")
        engine = await _known_stage(project_id, stage_id)
        with _http_errors():
            stage = await engine.update_stage(stage_id, label=body.label, color=body.color)
        return {"stage": stage.to_dict(), **_stage_payload(engine)}

    @router.post("/projects/{project_id}/stages/{stage_id}/move")
    async def move_stage(project_id: str, stage_id: str, body: MoveStageRequest) -> dict[str, Any]:
        engine = await _known_stage(project_id, stage_id)
        with _http_errors():
            moved = await engine.move_stage(stage_id, body.direction)
        return {"moved": moved, **_stage_payload(engine)}

    @router.delete("/projects/{project_id}/stages/{stage_id}")
    async def delete_stage(project_id: str, stage_id: str) -> dict[str, Any]:
        engine = await _known_stage(project_id, stage_id)
        with _http_errors():
            stage = await engine.delete_stage(stage_id)
        return {"status": "deleted", "stage": stage.to_dict(), **_stage_payload(engine)}

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    @router.post("/projects/{project_id}/tasks", status_code=201)
    async def create_task(project_id: str, body: CreateTaskRequest) -> dict[str, Any]:
        engine = await _project(project_id)
        with _http_errors():
            task = await engine.create_task(project_id=project_id, **body.model_dump())
        return {"task": task.to_dict()}

    @router.post("/projects/{project_id}/tasks/reorder")
    async def reorder_tasks(project_id: str, body: ReorderRequest) -> dict[str, str]:
        engine = await _project(project_id)
        with _http_errors():
            await engine.reorder_tasks(body.task_ids)
        return {"status": "ok"}

    @router.patch("/projects/{project_id}/tasks/{task_id}")
    async def update_task(project_id: str, task_id: str, body: UpdateTaskRequest) -> dict[str, Any]:
        changes = body.model_dump(exclude_unset=True)
        if not changes:
            raise HTTPException(status_code=400, detail="Nothing to update")
        engine = await _project(project_id)
        with _http_errors():
            task = await engine.update_task(task_id, changes)
        return {"task": task.to_dict()}

    @router.delete("/projects/{project_id}/tasks/{task_id}")
    async def delete_task(project_id: str, task_id: str) -> dict[str, str]:
        engine = await _project(project_id)
        with _http_errors():
            await engine.delete_task(task_id)
        return {"status": "deleted"}

    @router.post("/projects/{project_id}/tasks/{task_id}/toggle")
    async def toggle_task(project_id: str, task_id: str) -> dict[str, Any]:
        engine = await _project(project_id)
        with _http_errors():
            task = await engine.toggle_task(task_id)
        return {"task": task.to_dict()}

    @router.post("/projects/{project_id}/tasks/{task_id}/move")
    async def move_task(project_id: str, task_id: str, body: MoveTaskRequest) -> dict[str, Any]:
        engine = await _project(project_id)
        with _http_errors():
            task = await engine.move_task(task_id, body.stage_id)
        return {"task": task.to_dict()}

    @router.post("/projects/{project_id}/tasks/{task_id}/comments", status_code=201)
    async def add_comment(project_id: str, task_id: str, body: CommentRequest) -> dict[str, Any]:
        engine = await _project(project_id)
        with _http_errors():
            task = await engine.add_comment(task_id, body.text)
        return {"task": task.to_dict()}

    @router.post("/projects/{project_id}/tasks/{task_id}/subtasks/{index}/toggle")
    async def toggle_subtask(project_id: str, task_id: str, index: int) -> dict[str, Any]:
        engine = await _project(project_id)
        with _http_errors():
            task = await engine.toggle_subtask(task_id, index)
        return {"task": task.to_dict()}

    # ------------------------------------------------------------------
    # Cross-project dashboard
    # ------------------------------------------------------------------

    @router.get("/dashboard/tasks")
    async def dashboard_tasks(
        view: str = Query("list"),
        project_id: Optional[str] = Query(None),
        assignee: Optional[str] = Query(None),
        priority: Optional[str] = Query(None),
        q: Optional[str] = Query(None),
        completed: Optional[bool] = Query(None),
        sort: Optional[str] = Query(None),
        year: Optional[int] = Query(None),
        month: Optional[int] = Query(None),
    ) -> dict[str, Any]:
        if view not in {"list", "board", "calendar"}:
            raise HTTPException(status_code=400, detail=f"Unknown view: {view}")
        if completed is None and not defaults.get("show_completed", False):
            completed = False
        engine = get_engine(None)
        with _http_errors():
            snapshot = await engine.load_dashboard(completed=completed)
            task_filter = _task_filter(project_id, assignee, priority, q)
            sort_key = SortKey.coerce(sort or defaults.get("sort"))
            if view == "board":
                return {"view": view, "columns": [c.to_dict() for c in engine.board(task_filter, sort_key)]}
            if view == "calendar":
                today = date.today()
                cells = engine.calendar(year or today.year, month or today.month, task_filter)
                return {"view": view, "cells": [c.to_dict() for c in cells]}
            tasks = snapshot.select(task_filter, sort_key)
        return {"view": view, "tasks": [t.to_dict() for t in tasks], "total": len(tasks)}

    @router.get("/dashboard/stats")
    async def dashboard_stats(
        today: Optional[date] = Query(None),
        project_id: Optional[str] = Query(None),
        assignee: Optional[str] = Query(None),
    ) -> dict[str, Any]:
        engine = get_engine(None)
        with _http_errors():
            await engine.load_dashboard()
            stats = engine.stats(today or date.today(), _task_filter(project_id, assignee))
        return stats.to_dict()

    return router
