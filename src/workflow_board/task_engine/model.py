"""Task and stage model for the workflow engine.

A project's pipeline is runtime data: stages are plain records keyed by a
stable id and kept in an ordered registry (see :mod:`.stages`).  Tasks point
at a stage through ``stage_id``, a reference that storage does not enforce.
Everything here serializes to plain dicts for YAML / JSON persistence.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Optional

from ..constants import PLACEHOLDER_COLOR, PLACEHOLDER_LABEL_PREFIX
from ..utils import _now_iso, _parse_day


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class Priority(str, Enum):
    """Task priority.  High sorts first."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def sort_key(self) -> int:
        return {"high": 0, "medium": 1, "low": 2}[self.value]

    @classmethod
    def coerce(cls, raw: Any, default: "Priority | None" = None) -> "Priority":
        if isinstance(raw, cls):
            return raw
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            return default or cls.MEDIUM


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _generate_id(prefix: str = "task") -> str:
    """Short human-friendly id: ``<prefix>-<8hex>``."""
    return f"{prefix}-{uuid.uuid4().hex[:8]}"


def _unique(values: list[Any]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for value in values:
        if value is None or value == "":
            continue
        item = str(value)
        if item not in seen:
            seen.add(item)
            out.append(item)
    return out


# ---------------------------------------------------------------------------
# Stage
# ---------------------------------------------------------------------------

@dataclass
class Stage:
    """One named, ordered, coloured step of a project's pipeline."""

    id: str
    label: str
    color: str
    order: int = 0

    @property
    def is_placeholder(self) -> bool:
        """True for stages synthesized to hold tasks with an unknown stage."""
        return self.color == PLACEHOLDER_COLOR and self.label.startswith(PLACEHOLDER_LABEL_PREFIX)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "label": self.label, "color": self.color, "order": self.order}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Stage":
        try:
            order = int(data.get("order", 0) or 0)
        except (TypeError, ValueError):
            order = 0
        stage_id = str(data.get("id") or "")
        return cls(
            id=stage_id,
            label=str(data.get("label") or stage_id),
            color=str(data.get("color") or PLACEHOLDER_COLOR),
            order=order,
        )


# ---------------------------------------------------------------------------
# Task parts
# ---------------------------------------------------------------------------

@dataclass
class Subtask:
    title: str
    completed: bool = False
    completed_at: Optional[str] = None
    completed_by: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "completed": self.completed,
            "completed_at": self.completed_at,
            "completed_by": self.completed_by,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Subtask":
        return cls(
            title=str(data.get("title", "")),
            completed=bool(data.get("completed", False)),
            completed_at=data.get("completed_at"),
            completed_by=data.get("completed_by"),
        )


@dataclass
class Comment:
    text: str
    user: Optional[str] = None
    created_at: str = field(default_factory=_now_iso)

    def to_dict(self) -> dict[str, Any]:
        return {"text": self.text, "user": self.user, "created_at": self.created_at}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Comment":
        return cls(
            text=str(data.get("text", "")),
            user=data.get("user"),
            created_at=str(data.get("created_at") or _now_iso()),
        )


# ---------------------------------------------------------------------------
# Task
# ---------------------------------------------------------------------------

_LIST_FIELDS = ("assignees", "subtasks", "comments")


@dataclass
class Task:
    """A unit of work belonging to exactly one project."""

    # Identity
    id: str = field(default_factory=_generate_id)
    project_id: str = ""
    project_name: Optional[str] = None
    title: str = ""
    description: str = ""

    # Workflow
    stage_id: str = "planning"
    priority: Priority = Priority.MEDIUM
    due_date: Optional[date] = None
    order: int = 0

    # Completion
    completed: bool = False
    completed_at: Optional[str] = None
    completed_by: Optional[str] = None

    # People and checklist
    assignees: list[str] = field(default_factory=list)
    subtasks: list[Subtask] = field(default_factory=list)
    comments: list[Comment] = field(default_factory=list)

    # Provenance
    created_by: Optional[str] = None
    created_at: str = field(default_factory=_now_iso)
    updated_at: str = field(default_factory=_now_iso)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    @classmethod
    def validate_dict(cls, data: dict[str, Any]) -> list[str]:
        """Check the constraints that must hold before a task is sent anywhere.

        Returns a list of error strings (empty = valid).
        """
        errors: list[str] = []
        if not isinstance(data, dict):
            return ["Expected a dict"]
        title = data.get("title")
        if not isinstance(title, str) or not title.strip():
            errors.append("'title' is required and must be non-empty")
        priority = data.get("priority")
        if priority is not None:
            valid = {p.value for p in Priority}
            if isinstance(priority, Priority):
                priority = priority.value
            if priority not in valid:
                errors.append(f"'priority' must be one of {sorted(valid)}, got '{priority}'")
        due = data.get("due_date")
        if due not in (None, "") and _parse_day(due) is None:
            errors.append(f"'due_date' must be a calendar date, got '{due}'")
        for list_field in _LIST_FIELDS:
            val = data.get(list_field)
            if val is not None and not isinstance(val, list):
                errors.append(f"'{list_field}' must be an array")
        return errors

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a plain dict for YAML/JSON persistence."""
        return {
            "id": self.id,
            "project_id": self.project_id,
            "project_name": self.project_name,
            "title": self.title,
            "description": self.description,
            "stage_id": self.stage_id,
            "priority": self.priority.value,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "order": self.order,
            "completed": self.completed,
            "completed_at": self.completed_at,
            "completed_by": self.completed_by,
            "assignees": list(self.assignees),
            "subtasks": [s.to_dict() for s in self.subtasks],
            "comments": [c.to_dict() for c in self.comments],
            "created_by": self.created_by,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Task":
        """Deserialize from a plain dict, coercing loose values gracefully."""
        d = dict(data)  # shallow copy

        assignees = list(d.pop("assignees", []) or [])
        legacy_assignee = d.pop("assignee", None)
        if legacy_assignee:
            assignees.insert(0, legacy_assignee)

        try:
            order = int(d.pop("order", 0) or 0)
        except (TypeError, ValueError):
            order = 0

        return cls(
            id=str(d.pop("id", None) or _generate_id()),
            project_id=str(d.pop("project_id", "") or ""),
            project_name=d.pop("project_name", None),
            title=str(d.pop("title", "") or ""),
            description=str(d.pop("description", "") or ""),
            stage_id=str(d.pop("stage_id", None) or d.pop("stage", None) or "planning"),
            priority=Priority.coerce(d.pop("priority", None)),
            due_date=_parse_day(d.pop("due_date", None)),
            order=order,
            completed=bool(d.pop("completed", False)),
            completed_at=d.pop("completed_at", None),
            completed_by=d.pop("completed_by", None),
            assignees=_unique(assignees),
            subtasks=[Subtask.from_dict(s) for s in d.pop("subtasks", []) or [] if isinstance(s, dict)],
            comments=[Comment.from_dict(c) for c in d.pop("comments", []) or [] if isinstance(c, dict)],
            created_by=d.pop("created_by", None),
            created_at=str(d.pop("created_at", None) or _now_iso()),
            updated_at=str(d.pop("updated_at", None) or _now_iso()),
        )

    # ------------------------------------------------------------------
    # Mutation helpers (used by collaborators that own the data)
    # ------------------------------------------------------------------

    def touch(self) -> None:
        """Bump ``updated_at`` to now."""
        self.updated_at = _now_iso()

    def set_completed(self, completed: bool, user: Optional[str] = None) -> None:
        """Flip completion with timestamp bookkeeping."""
        if completed and not self.completed:
            self.completed_at = _now_iso()
            self.completed_by = user
        elif not completed:
            self.completed_at = None
            self.completed_by = None
        self.completed = completed
        self.touch()

    def toggle_subtask(self, index: int, user: Optional[str] = None) -> Subtask:
        if index < 0 or index >= len(self.subtasks):
            raise IndexError(f"Task {self.id} has no subtask #{index}")
        sub = self.subtasks[index]
        sub.completed = not sub.completed
        sub.completed_at = _now_iso() if sub.completed else None
        sub.completed_by = user if sub.completed else None
        self.touch()
        return sub

    def has_assignee(self, user: str) -> bool:
        return user in self.assignees

    @property
    def subtask_progress(self) -> tuple[int, int]:
        done = sum(1 for s in self.subtasks if s.completed)
        return done, len(self.subtasks)
