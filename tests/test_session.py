"""Tests for the optimistic editing session."""

from dataclasses import replace
from datetime import date

import pytest
import pytest_asyncio

from wbs_gantt.errors import DerivedFieldError, InvalidLevel, RepositoryRejected, StructuralViolation
from wbs_gantt.gantt import DragMode
from wbs_gantt.models import DisplayStatus, Level
from wbs_gantt.repository import InMemoryItemRepository
from wbs_gantt.rollup import rollup_all
from wbs_gantt.session import CommitStep, WBSSession, plan_commit

from conftest import PEOPLE, TODAY, RejectingRepository, build_items, make_session


class ExplodingRepository(InMemoryItemRepository):
    async def update(self, item_id, fields):
        raise ConnectionError("backend unavailable")


class PickyRepository(InMemoryItemRepository):
    """Accepts every write except those touching one item."""

    def __init__(self, items, people, refused):
        super().__init__(items, people)
        self.refused = refused

    async def update(self, item_id, fields):
        if item_id == self.refused:
            return False
        return await super().update(item_id, fields)

    async def delete(self, item_id):
        if item_id == self.refused:
            return False
        return await super().delete(item_id)


class RenamingRepository(InMemoryItemRepository):
    """Assigns its own ids to created items."""

    async def create(self, item, order=0):
        return await super().create(replace(item, id=f"srv-{item.id}"), order)


@pytest_asyncio.fixture
async def rejecting() -> WBSSession:
    return await make_session(RejectingRepository(build_items(), PEOPLE))


class TestPlanCommit:
    def test_creates_updates_deletes(self):
        before = {"a": {"id": "a", "name": "A"}, "gone": {"id": "gone"}, "child": {"id": "child"}}
        after = {"a": {"id": "a", "name": "B"}, "new": {"id": "new", "name": "N"}}
        steps = plan_commit(before, after)
        assert steps == [
            CommitStep("create", "new", {"id": "new", "name": "N"}),
            CommitStep("update", "a", {"name": "B"}),
            CommitStep("delete", "child"),
            CommitStep("delete", "gone"),
        ]

    def test_nothing_changed(self):
        records = {"a": {"id": "a"}}
        assert plan_commit(records, dict(records)) == []


class TestLoad:
    @pytest.mark.asyncio
    async def test_load_rolls_up(self, session):
        assert len(session.tree) == 8
        assert session.tree.get("design").progress == 25
        assert session.project_progress() == pytest.approx(55.0)

    @pytest.mark.asyncio
    async def test_load_people(self, session):
        assert [p.id for p in session.people] == ["kim", "lee"]
        assert session.people_by_id["lee"].name == "Lee"

    @pytest.mark.asyncio
    async def test_display_status(self, session):
        assert session.display_status("stake") == DisplayStatus.DELAYED
        assert session.delay_days("stake") == 5
        assert session.display_status("notes") == DisplayStatus.PENDING


class TestFieldEdits:
    @pytest.mark.asyncio
    async def test_progress_is_applied_before_commit(self, session, repository):
        mutation = session.set_progress("notes", 80)
        assert session.tree.get("interviews").progress == 60
        assert repository.records["notes"]["progress"] == 60
        assert await mutation.committed()
        assert repository.records["notes"]["progress"] == 80
        assert repository.records["interviews"]["progress"] == 60
        assert repository.records["design"]["progress"] == 30

    @pytest.mark.asyncio
    async def test_derived_field_on_parent(self, session):
        with pytest.raises(DerivedFieldError):
            session.set_progress("interviews", 10)
        with pytest.raises(DerivedFieldError):
            session.update_fields("design", planned_end=date(2026, 5, 1))

    @pytest.mark.asyncio
    async def test_parent_can_edit_other_fields(self, session, repository):
        mutation = session.update_fields("design", name="Discovery", weight=50)
        assert await mutation.committed()
        assert repository.records["design"]["name"] == "Discovery"
        assert repository.records["design"]["weight"] == 50

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "fields",
        [
            {"progress": 101},
            {"progress": -1},
            {"weight": 0},
            {"level": Level.LEVEL2},
            {"bogus": 1},
            {"planned_start": date(2026, 1, 30)},
        ],
    )
    async def test_invalid_edits(self, session, fields):
        before = session.tree.snapshot()
        with pytest.raises(ValueError):
            session.update_fields("notes", **fields)
        assert session.tree.snapshot() is before

    @pytest.mark.asyncio
    async def test_status_string_is_parsed(self, session, repository):
        mutation = session.update_fields("notes", status="completed")
        assert await mutation.committed()
        assert repository.records["notes"]["status"] == "COMPLETED"

    @pytest.mark.asyncio
    async def test_no_op_edit_has_no_commit(self, session):
        mutation = session.set_progress("notes", 60)
        assert mutation.task is None
        assert await mutation.committed()

    @pytest.mark.asyncio
    async def test_change_listener(self, session):
        calls = []
        session.add_change_listener(lambda: calls.append(1))
        session.set_progress("notes", 10)
        assert calls == [1]
        await session.flush()


class TestStructuralCommits:
    @pytest.mark.asyncio
    async def test_add_child_creates_record(self, session, repository):
        mutation = session.add_child("interviews", Level.LEVEL4, "Survey")
        new_id = mutation.result.item_id
        assert await mutation.committed()
        record = repository.records[new_id]
        assert record["parentId"] == "interviews"
        assert record["code"] == "1.1.1.3"
        assert record["level"] == "LEVEL4"

    @pytest.mark.asyncio
    async def test_delete_removes_records_and_tasks(self, session, repository):
        assert await session.register_task("stake").committed()
        assert "stake" in repository.tasks
        mutation = session.delete("req")
        assert await mutation.committed()
        for item_id in ("req", "interviews", "stake", "notes"):
            assert item_id not in repository.records
        assert "stake" not in repository.tasks

    @pytest.mark.asyncio
    async def test_promote_updates_codes(self, session, repository):
        assert await session.promote("interviews").committed()
        assert repository.records["interviews"]["parentId"] == "design"
        assert repository.records["interviews"]["level"] == "LEVEL2"
        assert repository.records["stake"]["level"] == "LEVEL3"
        assert repository.records["review"]["code"] == "1.3"

    @pytest.mark.asyncio
    async def test_commits_run_in_order(self, session, repository):
        first = session.set_progress("notes", 70)
        second = session.set_progress("notes", 90)
        await session.flush()
        assert await first.committed()
        assert await second.committed()
        assert repository.records["notes"]["progress"] == 90

    @pytest.mark.asyncio
    async def test_repository_assigned_ids(self):
        session = await make_session(RenamingRepository(build_items(), PEOPLE))
        mutation = session.add_child("interviews", Level.LEVEL4, "Survey")
        local_id = mutation.result.item_id
        assert await mutation.committed()
        server_id = session.resolve(local_id)
        assert server_id == f"srv-{local_id}"
        assert server_id in session.tree
        assert local_id not in session.tree
        assert await session.set_progress(server_id, 30).committed()
        assert session.repository.records[server_id]["progress"] == 30


class TestRollback:
    @pytest.mark.asyncio
    async def test_field_edit_rolls_back(self, rejecting):
        before = rejecting.tree.snapshot()
        errors = []
        rejecting.add_failure_listener(errors.append)
        mutation = rejecting.set_progress("notes", 90)
        assert rejecting.tree.get("notes").progress == 90
        assert not await mutation.committed()
        assert rejecting.tree.roots == before
        assert len(errors) == 1
        assert isinstance(errors[0], RepositoryRejected)

    @pytest.mark.asyncio
    async def test_drag_rolls_back(self, rejecting):
        before = rejecting.tree.snapshot()
        rejecting.begin_drag("stake", DragMode.MOVE, 0)
        rejecting.drag_to(3)
        mutation = rejecting.end_drag()
        assert rejecting.tree.get("stake").planned_start == date(2026, 1, 8)
        assert not await mutation.committed()
        assert rejecting.tree.roots == before
        assert not rejecting.drag.dragging

    @pytest.mark.asyncio
    async def test_delete_rolls_back(self, rejecting):
        before = rejecting.tree.snapshot()
        mutation = rejecting.delete("req")
        assert "notes" not in rejecting.tree
        assert not await mutation.committed()
        assert rejecting.tree.roots == before
        assert rejecting.tree.parent_of("notes").id == "interviews"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "edit",
        [
            lambda s: s.delete("design"),
            lambda s: s.delete("interviews"),
            lambda s: s.promote("interviews"),
            lambda s: s.promote("stake"),
            lambda s: s.demote("review"),
            lambda s: s.demote("build"),
            lambda s: s.reorder("review", -1),
            lambda s: s.add_sibling("proto", "Prototype B"),
            lambda s: s.set_progress("proto", 10),
        ],
    )
    async def test_every_rejected_edit_restores_tree(self, rejecting, edit):
        before = rejecting.tree.snapshot()
        changes = []
        rejecting.add_change_listener(lambda: changes.append(True))
        assert not await edit(rejecting).committed()
        assert rejecting.tree.roots == before
        rejecting.tree.validate()
        assert len(changes) == 2

    @pytest.mark.asyncio
    async def test_failed_undo_restores_snapshot(self, rejecting, monkeypatch):
        before = rejecting.tree.snapshot()
        mutation = rejecting.delete("req")
        changes = []
        rejecting.add_change_listener(lambda: changes.append(True))

        def refuse(*args, **kwargs):
            raise StructuralViolation("cannot reattach")

        monkeypatch.setattr(rejecting.tree, "insert", refuse)
        assert not await mutation.committed()
        assert rejecting.tree.roots == before
        assert changes == [True]

    @pytest.mark.asyncio
    async def test_partial_promote_is_reverted_in_repository(self):
        repository = PickyRepository(build_items(), PEOPLE, refused="stake")
        session = await make_session(repository)
        before = session.tree.snapshot()
        assert not await session.promote("interviews").committed()
        assert session.tree.roots == before
        assert repository.records["interviews"]["parentId"] == "req"
        assert repository.records["interviews"]["level"] == "LEVEL3"
        reloaded = await make_session(repository)
        assert reloaded.tree.roots == before

    @pytest.mark.asyncio
    async def test_partial_delete_is_reverted_in_repository(self):
        repository = PickyRepository(build_items(), PEOPLE, refused="stake")
        session = await make_session(repository)
        before = session.tree.snapshot()
        assert not await session.delete("interviews").committed()
        assert session.tree.roots == before
        assert set(repository.records) == {item.id for item in session.tree}
        reloaded = await make_session(repository)
        assert reloaded.tree.roots == before

    @pytest.mark.asyncio
    async def test_promote_rolls_back(self, rejecting):
        before = rejecting.tree.snapshot()
        assert not await rejecting.promote("interviews").committed()
        assert rejecting.tree.roots == before

    @pytest.mark.asyncio
    async def test_add_child_to_leaf_rolls_back(self, rejecting):
        before = rejecting.tree.snapshot()
        mutation = rejecting.add_child("review", Level.LEVEL3, "Checklist")
        assert rejecting.tree.get("review").planned_start is None
        assert not await mutation.committed()
        assert rejecting.tree.roots == before
        assert rejecting.tree.get("review").planned_start == date(2026, 2, 1)

    @pytest.mark.asyncio
    async def test_exception_is_wrapped(self):
        session = await make_session(ExplodingRepository(build_items(), PEOPLE))
        errors = []
        session.add_failure_listener(errors.append)
        assert not await session.set_progress("notes", 5).committed()
        assert isinstance(errors[0], RepositoryRejected)
        assert isinstance(errors[0].__cause__, ConnectionError)
        assert session.tree.get("notes").progress == 60

    @pytest.mark.asyncio
    async def test_rejected_registration(self, rejecting):
        errors = []
        rejecting.add_failure_listener(errors.append)
        assert not await rejecting.register_task("notes").committed()
        assert len(errors) == 1


class TestDrag:
    @pytest.mark.asyncio
    async def test_drag_commits_dates(self, session, repository):
        session.set_cell_width(2)
        session.begin_drag("stake", DragMode.RESIZE_END, 10)
        assert session.drag_to(14) == (date(2026, 1, 5), date(2026, 1, 12))
        mutation = session.end_drag()
        assert await mutation.committed()
        assert repository.records["stake"]["plannedEnd"] == "2026-01-12"

    @pytest.mark.asyncio
    async def test_undated_leaf_starts_today(self, session, repository):
        session.tree.update_fields("review", planned_start=None, planned_end=None)
        session.begin_drag("review", DragMode.RESIZE_END, 0)
        assert session.drag_to(2) == (TODAY, date(2026, 1, 17))
        assert await session.end_drag().committed()
        assert repository.records["review"]["plannedStart"] == "2026-01-15"
        assert repository.records["review"]["plannedEnd"] == "2026-01-17"

    @pytest.mark.asyncio
    async def test_undated_leaf_rolls_back_to_no_dates(self, rejecting):
        rejecting.tree.update_fields("review", planned_start=None, planned_end=None)
        rollup_all(rejecting.tree)
        before = rejecting.tree.snapshot()
        rejecting.begin_drag("review", DragMode.MOVE, 0)
        rejecting.drag_to(1)
        mutation = rejecting.end_drag()
        assert rejecting.tree.get("review").planned_start == date(2026, 1, 16)
        assert not await mutation.committed()
        assert rejecting.tree.roots == before
        assert rejecting.tree.get("review").planned_start is None

    @pytest.mark.asyncio
    async def test_release_outside_cancels(self, session):
        before = session.tree.snapshot()
        session.begin_drag("stake", DragMode.MOVE, 0)
        session.drag_to(5)
        assert session.end_drag(in_bounds=False) is None
        assert session.tree.snapshot() is before

    @pytest.mark.asyncio
    async def test_release_without_movement(self, session):
        session.begin_drag("stake", DragMode.MOVE, 0)
        assert session.end_drag() is None
        assert not session.drag.dragging


class TestRegisterTask:
    @pytest.mark.asyncio
    async def test_register_work_unit(self, session, repository):
        assert await session.register_task("notes").committed()
        task = repository.tasks["notes"]
        assert task["title"] == "[1.1.1.2] Notes"
        assert task["assigneeIds"] == ["kim"]
        assert task["dueDate"] == "2026-01-20"
        assert session.tree.get("notes").status.value == "PENDING"

    @pytest.mark.asyncio
    async def test_only_level4(self, session):
        with pytest.raises(InvalidLevel):
            session.register_task("review")
