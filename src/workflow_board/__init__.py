"""Provide the public `workflow_board` package exports."""

from __future__ import annotations

from .task_engine.engine import WorkflowEngine
from .task_engine.model import Priority, Stage, Task
from .task_engine.stages import StageRegistry

__all__ = ["Priority", "Stage", "StageRegistry", "Task", "WorkflowEngine"]
