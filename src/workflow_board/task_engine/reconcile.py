"""Repair drift between a stage registry and the tasks that reference it.

Registries and tasks are stored and fetched independently, so a task can
reference a stage the registry no longer (or never) had.  Reconciliation
appends a visibly-marked placeholder for every such id so that each task can
still be grouped and edited; the user resolves the placeholder by moving its
tasks elsewhere, after which it is an ordinary empty stage that can be
deleted.
"""

from __future__ import annotations

from typing import Iterable

from loguru import logger

from ..constants import PLACEHOLDER_COLOR, PLACEHOLDER_LABEL_PREFIX
from .model import Stage, Task
from .stages import StageRegistry


def placeholder_stage(stage_id: str) -> Stage:
    return Stage(
        id=stage_id,
        label=f"{PLACEHOLDER_LABEL_PREFIX} ({stage_id})",
        color=PLACEHOLDER_COLOR,
    )


def find_orphaned_stage_ids(registry: StageRegistry, tasks: Iterable[Task]) -> list[str]:
    """Stage ids referenced by *tasks* but missing from *registry*.

    First-seen order, duplicates collapsed.
    """
    known = set(registry.ids())
    orphaned: list[str] = []
    for task in tasks:
        sid = task.stage_id
        if sid not in known:
            known.add(sid)
            orphaned.append(sid)
    return orphaned


def reconcile(registry: StageRegistry, tasks: Iterable[Task]) -> StageRegistry:
    """Return a registry in which every task's ``stage_id`` resolves.

    An empty registry is replaced by the default stage set first.  The input
    registry and the tasks are left untouched; running this on its own output
    is a no-op.
    """
    tasks = list(tasks)
    result = registry.copy() if len(registry) else StageRegistry.default()
    orphaned = find_orphaned_stage_ids(result, tasks)
    for sid in orphaned:
        result.append(placeholder_stage(sid))
    if orphaned:
        logger.debug("Synthesized {} placeholder stage(s): {}", len(orphaned), orphaned)
    return result
