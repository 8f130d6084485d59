"""Error taxonomy for the workflow engine.

Validation errors and guard violations are raised before any request reaches
the collaborator.  Collaborator failures wrap transport/API problems.  None of
them are fatal: the loaded snapshot is left as it was, so the triggering
action can simply be retried.
"""

from __future__ import annotations

from typing import Optional


class WorkflowError(Exception):
    """Base class for all workflow engine errors."""


class WorkflowValidationError(WorkflowError, ValueError):
    """Input rejected locally; no request was issued."""


class StageValidationError(WorkflowValidationError):
    pass


class TaskValidationError(WorkflowValidationError):
    pass


class UnknownStageError(WorkflowValidationError):
    def __init__(self, stage_id: str) -> None:
        super().__init__(f"Stage {stage_id} not found")
        self.stage_id = stage_id


class StageInUseError(WorkflowError):
    """Deleting a stage that tasks still reference."""

    def __init__(self, stage_id: str, blocking_count: int) -> None:
        noun = "task" if blocking_count == 1 else "tasks"
        super().__init__(
            f"Cannot delete stage {stage_id}: {blocking_count} {noun} still assigned. "
            "Move or delete them first."
        )
        self.stage_id = stage_id
        self.blocking_count = blocking_count


class TaskNotFoundError(WorkflowError, LookupError):
    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task {task_id} not found")
        self.task_id = task_id


class ActionInFlightError(WorkflowError):
    """A mutation on the same action site is still awaiting its response."""

    def __init__(self, site: tuple[str, str]) -> None:
        super().__init__(f"{site[0]} {site[1]} is already being updated")
        self.site = site


class CollaboratorError(WorkflowError):
    """The remote collaborator failed (network, API or storage error)."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
