"""Tests for the ordered stage registry (task_engine/stages.py)."""

from __future__ import annotations

import pytest

from workflow_board.constants import DEFAULT_STAGES, STAGE_PALETTE
from workflow_board.errors import StageInUseError, StageValidationError, UnknownStageError
from workflow_board.task_engine.model import Stage, Task
from workflow_board.task_engine.stages import MoveDirection, StageRegistry


def _orders(registry: StageRegistry) -> list[int]:
    return [s.order for s in registry]


@pytest.fixture
def three() -> StageRegistry:
    return StageRegistry.from_list([
        {"id": "a", "label": "A", "color": "#111111", "order": 0},
        {"id": "b", "label": "B", "color": "#222222", "order": 1},
        {"id": "c", "label": "C", "color": "#333333", "order": 2},
    ])


class TestConstruction:
    def test_default_pipeline(self) -> None:
        reg = StageRegistry.default()
        assert reg.ids() == [s["id"] for s in DEFAULT_STAGES]
        assert _orders(reg) == list(range(len(DEFAULT_STAGES)))

    def test_from_list_sorts_and_renumbers(self) -> None:
        reg = StageRegistry.from_list([
            {"id": "late", "label": "Late", "color": "#fff", "order": 10},
            {"id": "early", "label": "Early", "color": "#000", "order": -2},
        ])
        assert reg.ids() == ["early", "late"]
        assert _orders(reg) == [0, 1]

    def test_from_list_drops_duplicates_and_blank_ids(self) -> None:
        reg = StageRegistry.from_list([
            {"id": "a", "label": "A", "color": "#fff", "order": 0},
            {"id": "", "label": "Blank", "color": "#fff", "order": 1},
            {"id": "a", "label": "Again", "color": "#fff", "order": 2},
        ])
        assert reg.ids() == ["a"]
        assert reg.get("a").label == "A"

    def test_copy_is_independent(self, three: StageRegistry) -> None:
        clone = three.copy()
        clone.rename_stage("a", "Changed")
        assert three.get("a").label == "A"
        assert clone != three


class TestAddStage:
    def test_appends_with_palette_colour(self, three: StageRegistry) -> None:
        stage = three.add_stage("  Inspect  ")
        assert stage.label == "Inspect"
        assert stage.id.startswith("stage-")
        assert stage.order == 3
        assert stage.color == STAGE_PALETTE[3 % len(STAGE_PALETTE)]
        assert three.ids()[-1] == stage.id

    def test_rejects_blank_label(self, three: StageRegistry) -> None:
        with pytest.raises(StageValidationError):
            three.add_stage("   ")
        assert len(three) == 3

    def test_avoids_reserved_ids(self, three: StageRegistry, monkeypatch: pytest.MonkeyPatch) -> None:
        issued = iter(["stage-taken", "stage-free"])
        monkeypatch.setattr(
            "workflow_board.task_engine.stages._generate_id", lambda prefix: next(issued)
        )
        stage = three.add_stage("New", reserved_ids={"stage-taken"})
        assert stage.id == "stage-free"


class TestEdit:
    def test_rename_and_recolor(self, three: StageRegistry) -> None:
        three.rename_stage("b", "Bee")
        three.recolor_stage("b", "#abcdef")
        assert three.get("b") == Stage(id="b", label="Bee", color="#abcdef", order=1)

    def test_blank_values_rejected(self, three: StageRegistry) -> None:
        with pytest.raises(StageValidationError):
            three.rename_stage("b", "")
        with pytest.raises(StageValidationError):
            three.recolor_stage("b", " ")

    def test_unknown_stage(self, three: StageRegistry) -> None:
        with pytest.raises(UnknownStageError):
            three.rename_stage("zzz", "Z")


class TestMoveStage:
    def test_move_up_swaps_neighbours(self, three: StageRegistry) -> None:
        assert three.move_stage("c", MoveDirection.UP) is True
        assert three.ids() == ["a", "c", "b"]
        assert _orders(three) == [0, 1, 2]

    def test_move_accepts_plain_strings(self, three: StageRegistry) -> None:
        assert three.move_stage("a", "down") is True
        assert three.ids() == ["b", "a", "c"]

    def test_last_stage_down_is_noop(self, three: StageRegistry) -> None:
        assert three.move_stage("c", "down") is False
        assert three.ids() == ["a", "b", "c"]
        assert _orders(three) == [0, 1, 2]

    def test_first_stage_up_is_noop(self, three: StageRegistry) -> None:
        assert three.move_stage("a", "up") is False

    def test_bad_direction(self, three: StageRegistry) -> None:
        with pytest.raises(StageValidationError):
            three.move_stage("a", "sideways")


class TestDeleteStage:
    def test_refused_while_referenced(self, three: StageRegistry) -> None:
        tasks = [Task(title="t1", stage_id="a")]
        with pytest.raises(StageInUseError) as excinfo:
            three.delete_stage("a", tasks)
        assert excinfo.value.blocking_count == 1
        assert three.ids() == ["a", "b", "c"]

    def test_blocking_count_includes_completed_tasks(self, three: StageRegistry) -> None:
        tasks = [Task(title="x", stage_id="b", completed=True), Task(title="y", stage_id="b")]
        assert three.blocking_count("b", tasks) == 2

    def test_delete_renumbers(self, three: StageRegistry) -> None:
        removed = three.delete_stage("a", [Task(title="t", stage_id="b")])
        assert removed.id == "a"
        assert three.ids() == ["b", "c"]
        assert _orders(three) == [0, 1]

    def test_orders_stay_dense_after_mixed_edits(self, three: StageRegistry) -> None:
        three.add_stage("D")
        three.move_stage("a", "down")
        three.delete_stage("c", [])
        three.add_stage("E")
        three.move_stage(three.ids()[-1], "up")
        assert _orders(three) == list(range(len(three)))


def test_to_list_is_complete_and_ordered(three: StageRegistry) -> None:
    assert [s["id"] for s in three.to_list()] == ["a", "b", "c"]
    assert StageRegistry.from_list(three.to_list()) == three
