"""Ordered, coloured stage registry for one project.

The registry owns the display order of a project's pipeline.  ``order`` is a
registry-wide property: every insert, move and delete renumbers the stages to
the dense sequence ``0..N-1``, which is also why the registry is always
persisted as one complete list rather than per-stage deltas.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Iterable, Iterator, Optional

from ..constants import DEFAULT_STAGES, STAGE_PALETTE
from ..errors import StageInUseError, StageValidationError, UnknownStageError
from .model import Stage, Task, _generate_id


class MoveDirection(str, Enum):
    UP = "up"
    DOWN = "down"

    @property
    def offset(self) -> int:
        return -1 if self is MoveDirection.UP else 1


class StageRegistry:
    """In-memory ordered collection of :class:`Stage` records."""

    def __init__(self, stages: Optional[Iterable[Stage]] = None) -> None:
        self._stages: list[Stage] = list(stages or [])
        self._renumber()

    # -- construction -------------------------------------------------------

    @classmethod
    def default(cls) -> "StageRegistry":
        """Planning → Rough-in → Fit-off → Configure → Test → Commission."""
        return cls(
            Stage(id=s["id"], label=s["label"], color=s["color"], order=i)
            for i, s in enumerate(DEFAULT_STAGES)
        )

    @classmethod
    def from_list(cls, items: Iterable[Any]) -> "StageRegistry":
        """Load persisted stages (dicts or :class:`Stage`), normalising order.

        Stages are sorted by their stored ``order`` (ties keep input order)
        and renumbered.  Entries without an id and repeated ids are dropped.
        """
        parsed: list[Stage] = []
        seen: set[str] = set()
        for item in items or []:
            stage = item if isinstance(item, Stage) else Stage.from_dict(dict(item))
            if not stage.id or stage.id in seen:
                continue
            seen.add(stage.id)
            parsed.append(Stage(id=stage.id, label=stage.label, color=stage.color, order=stage.order))
        parsed.sort(key=lambda s: s.order)
        return cls(parsed)

    def copy(self) -> "StageRegistry":
        return StageRegistry(
            Stage(id=s.id, label=s.label, color=s.color, order=s.order) for s in self._stages
        )

    # -- lookups ------------------------------------------------------------

    def __iter__(self) -> Iterator[Stage]:
        return iter(self._stages)

    def __len__(self) -> int:
        return len(self._stages)

    def __contains__(self, stage_id: object) -> bool:
        return any(s.id == stage_id for s in self._stages)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, StageRegistry):
            return NotImplemented
        return self.to_list() == other.to_list()

    def __repr__(self) -> str:
        return f"StageRegistry({[s.id for s in self._stages]!r})"

    @property
    def stages(self) -> list[Stage]:
        return list(self._stages)

    def ids(self) -> list[str]:
        return [s.id for s in self._stages]

    def get(self, stage_id: str) -> Optional[Stage]:
        for stage in self._stages:
            if stage.id == stage_id:
                return stage
        return None

    def first(self) -> Optional[Stage]:
        return self._stages[0] if self._stages else None

    def _require(self, stage_id: str) -> Stage:
        stage = self.get(stage_id)
        if stage is None:
            raise UnknownStageError(stage_id)
        return stage

    # -- mutations ----------------------------------------------------------

    def add_stage(self, label: str, reserved_ids: Iterable[str] = ()) -> Stage:
        """Append a new stage with a fresh id and the next palette colour.

        *reserved_ids* are ids the new stage must not take even though they
        are not in the registry, e.g. stage references held by tasks.
        """
        clean = (label or "").strip()
        if not clean:
            raise StageValidationError("Stage label must not be empty")
        taken = set(self.ids()) | set(reserved_ids)
        stage_id = _generate_id("stage")
        while stage_id in taken:
            stage_id = _generate_id("stage")
        stage = Stage(
            id=stage_id,
            label=clean,
            color=STAGE_PALETTE[len(self._stages) % len(STAGE_PALETTE)],
            order=len(self._stages),
        )
        self._stages.append(stage)
        return stage

    def append(self, stage: Stage) -> Stage:
        """Append an already-built stage at the end (used by reconciliation)."""
        if stage.id in self:
            raise StageValidationError(f"Stage {stage.id} already exists")
        stage.order = len(self._stages)
        self._stages.append(stage)
        return stage

    def rename_stage(self, stage_id: str, label: str) -> Stage:
        clean = (label or "").strip()
        if not clean:
            raise StageValidationError("Stage label must not be empty")
        stage = self._require(stage_id)
        stage.label = clean
        return stage

    def recolor_stage(self, stage_id: str, color: str) -> Stage:
        clean = (color or "").strip()
        if not clean:
            raise StageValidationError("Stage color must not be empty")
        stage = self._require(stage_id)
        stage.color = clean
        return stage

    def move_stage(self, stage_id: str, direction: MoveDirection | str) -> bool:
        """Swap a stage with its neighbour.  Returns False at either boundary."""
        try:
            step = MoveDirection(direction).offset
        except ValueError:
            raise StageValidationError(f"Unknown move direction: {direction!r}") from None
        stage = self._require(stage_id)
        idx = self._stages.index(stage)
        target = idx + step
        if target < 0 or target >= len(self._stages):
            return False
        self._stages[idx], self._stages[target] = self._stages[target], self._stages[idx]
        self._renumber()
        return True

    def blocking_count(self, stage_id: str, tasks: Iterable[Task]) -> int:
        """Number of tasks that still reference *stage_id*."""
        return sum(1 for t in tasks if t.stage_id == stage_id)

    def delete_stage(self, stage_id: str, tasks: Iterable[Task]) -> Stage:
        """Remove a stage nobody references.

        Raises :class:`StageInUseError` with the blocking count otherwise,
        leaving the registry unchanged.
        """
        stage = self._require(stage_id)
        count = self.blocking_count(stage_id, tasks)
        if count > 0:
            raise StageInUseError(stage_id, count)
        self._stages.remove(stage)
        self._renumber()
        return stage

    # -- serialization ------------------------------------------------------

    def to_list(self) -> list[dict[str, Any]]:
        """The complete ordered stage list, as persisted."""
        return [s.to_dict() for s in self._stages]

    def _renumber(self) -> None:
        for idx, stage in enumerate(self._stages):
            stage.order = idx
