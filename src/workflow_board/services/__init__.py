"""Collaborators that own persisted tasks and stage registries."""

from .base import TaskService
from .http import HttpTaskService
from .local import LocalTaskService

__all__ = ["HttpTaskService", "LocalTaskService", "TaskService"]
