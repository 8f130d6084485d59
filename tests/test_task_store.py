"""Tests for the YAML store (task_engine/store.py) and the local collaborator."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from workflow_board.errors import CollaboratorError, TaskNotFoundError, TaskValidationError
from workflow_board.services.local import LocalTaskService
from workflow_board.task_engine.model import Priority, Stage, Subtask, Task
from workflow_board.task_engine.store import WorkflowStore


@pytest.fixture
def state_dir(tmp_path: Path) -> Path:
    d = tmp_path / ".workflow_board"
    d.mkdir()
    return d


@pytest.fixture
def store(state_dir: Path) -> WorkflowStore:
    return WorkflowStore(state_dir)


@pytest.fixture
def service(store: WorkflowStore) -> LocalTaskService:
    return LocalTaskService(store)


# ---------------------------------------------------------------------------
# Store tests
# ---------------------------------------------------------------------------

class TestWorkflowStore:
    def test_empty_read(self, store: WorkflowStore) -> None:
        assert store.read_snapshot() == []

    def test_add_and_read(self, store: WorkflowStore) -> None:
        with store.transaction() as tx:
            tx.add(Task(id="t1", title="First", project_id="p1"))
            tx.add(Task(id="t2", title="Second", project_id="p2"))

        tasks = store.read_snapshot()
        assert [t.id for t in tasks] == ["t1", "t2"]

    def test_duplicate_add_raises(self, store: WorkflowStore) -> None:
        with store.transaction() as tx:
            tx.add(Task(id="t1", title="First"))
            with pytest.raises(ValueError, match="already exists"):
                tx.add(Task(id="t1", title="Again"))

    def test_remove_reindexes(self, store: WorkflowStore) -> None:
        with store.transaction() as tx:
            for i in range(3):
                tx.add(Task(id=f"t{i}", title=str(i)))
        with store.transaction() as tx:
            assert tx.remove("t0") is True
            assert tx.remove("missing") is False
            assert tx.get("t2").title == "2"

    def test_clean_transaction_writes_nothing(self, store: WorkflowStore, state_dir: Path) -> None:
        with store.transaction() as tx:
            tx.get("nothing")
        assert not (state_dir / "tasks.yaml").exists()
        assert not (state_dir / "stages.yaml").exists()

    def test_stages_replaced_whole(self, store: WorkflowStore, state_dir: Path) -> None:
        with store.transaction() as tx:
            tx.replace_stages("p1", [Stage(id="a", label="A", color="#fff", order=0)])
        with store.transaction() as tx:
            tx.replace_stages("p1", [Stage(id="b", label="B", color="#000", order=0)])
            assert tx.get_stages("p2") == []

        raw = yaml.safe_load((state_dir / "stages.yaml").read_text(encoding="utf-8"))
        assert [s["id"] for s in raw["projects"]["p1"]] == ["b"]

    def test_corrupt_file_is_not_overwritten(self, store: WorkflowStore, state_dir: Path) -> None:
        path = state_dir / "tasks.yaml"
        path.write_text("tasks: [unclosed\n", encoding="utf-8")
        with pytest.raises(CollaboratorError):
            with store.transaction() as tx:
                tx.add(Task(title="x"))
        assert path.read_text(encoding="utf-8") == "tasks: [unclosed\n"


# ---------------------------------------------------------------------------
# Local collaborator
# ---------------------------------------------------------------------------

@pytest.mark.anyio
class TestLocalTaskService:
    async def test_stages_empty_until_saved(self, service: LocalTaskService) -> None:
        assert await service.get_stages("p1") == []
        saved = await service.save_stages("p1", [Stage(id="x", label="X", color="#fff")])
        assert [s.id for s in await service.get_stages("p1")] == [s.id for s in saved]

    async def test_create_assigns_trailing_order(self, service: LocalTaskService) -> None:
        a = await service.create_task(Task(title="a", project_id="p1"))
        b = await service.create_task(Task(title="b", project_id="p1"))
        other = await service.create_task(Task(title="c", project_id="p2"))
        assert (a.order, b.order, other.order) == (0, 1, 0)

    async def test_fetch_order_then_newest(self, service: LocalTaskService, store: WorkflowStore) -> None:
        with store.transaction() as tx:
            tx.add(Task(id="old", title="old", project_id="p1", order=0, created_at="2024-01-01T00:00:00+00:00"))
            tx.add(Task(id="new", title="new", project_id="p1", order=0, created_at="2024-02-01T00:00:00+00:00"))
            tx.add(Task(id="first", title="first", project_id="p1", order=-1))
        tasks = await service.list_project_tasks("p1")
        assert [t.id for t in tasks] == ["first", "new", "old"]

    async def test_completed_filter(self, service: LocalTaskService) -> None:
        t = await service.create_task(Task(title="a", project_id="p1"))
        await service.create_task(Task(title="b", project_id="p1"))
        await service.toggle_task(t.id, user="u1")
        assert [x.title for x in await service.list_all_tasks(completed=True)] == ["a"]
        assert [x.title for x in await service.list_project_tasks("p1", completed=False)] == ["b"]

    async def test_update_coerces_and_ignores_unknown(self, service: LocalTaskService) -> None:
        t = await service.create_task(Task(title="a", project_id="p1"))
        updated = await service.update_task(t.id, {
            "priority": "high",
            "due_date": "2024-06-10",
            "subtasks": [{"title": "s1"}],
            "completed": True,
        })
        assert updated.priority is Priority.HIGH
        assert updated.due_date.isoformat() == "2024-06-10"
        assert updated.subtasks == [Subtask(title="s1")]
        assert updated.completed is False

    async def test_update_rejects_bad_values(self, service: LocalTaskService) -> None:
        t = await service.create_task(Task(title="a", project_id="p1"))
        with pytest.raises(TaskValidationError):
            await service.update_task(t.id, {"title": " "})
        with pytest.raises(TaskValidationError):
            await service.update_task(t.id, {"due_date": "soon"})

    async def test_missing_task(self, service: LocalTaskService) -> None:
        with pytest.raises(TaskNotFoundError):
            await service.toggle_task("nope")
        with pytest.raises(TaskNotFoundError):
            await service.delete_task("nope")
        with pytest.raises(TaskNotFoundError):
            await service.add_comment("nope", "hi")

    async def test_toggle_records_user(self, service: LocalTaskService) -> None:
        t = await service.create_task(Task(title="a", project_id="p1"))
        done = await service.toggle_task(t.id, user="u7")
        assert done.completed is True
        assert done.completed_by == "u7"
        reopened = await service.toggle_task(t.id)
        assert reopened.completed is False
        assert reopened.completed_by is None

    async def test_move_and_comment(self, service: LocalTaskService) -> None:
        t = await service.create_task(Task(title="a", project_id="p1"))
        moved = await service.move_task(t.id, "test")
        assert moved.stage_id == "test"
        commented = await service.add_comment(t.id, "on site", user="u1")
        assert commented.comments[0].text == "on site"
        assert commented.comments[0].user == "u1"

    async def test_reorder_only_touches_project(self, service: LocalTaskService) -> None:
        a = await service.create_task(Task(title="a", project_id="p1"))
        b = await service.create_task(Task(title="b", project_id="p1"))
        c = await service.create_task(Task(title="c", project_id="p2"))
        await service.reorder_tasks("p1", [b.id, a.id, c.id])
        assert [t.title for t in await service.list_project_tasks("p1")] == ["b", "a"]
        assert (await service.list_project_tasks("p2"))[0].order == 0

    async def test_for_project_dir(self, tmp_path: Path) -> None:
        svc = LocalTaskService.for_project_dir(tmp_path)
        await svc.create_task(Task(title="a", project_id="p1"))
        assert (tmp_path / ".workflow_board" / "tasks.yaml").exists()
