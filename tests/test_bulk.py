"""Tests for bulk assignment and task registration."""

import pytest

from wbs_gantt.bulk import BulkResult, bulk_assign, bulk_register_tasks
from wbs_gantt.errors import ItemNotFound

from conftest import PEOPLE, RejectingRepository, build_items, make_session


class TestBulkResult:
    def test_summary(self):
        result = BulkResult(succeeded=["a", "b"], skipped=["c"])
        assert result.ok
        assert result.summary() == "2 done, 1 skipped"

    def test_failed(self):
        result = BulkResult(failed=["a"])
        assert not result.ok
        assert result.summary() == "0 done, 1 failed"


class TestBulkAssign:
    @pytest.mark.asyncio
    async def test_assigns_each_item(self, session, repository):
        result = await bulk_assign(session, ["stake", "notes", "review"], ["lee"])
        assert result.succeeded == ["stake", "notes", "review"]
        assert session.tree.get("notes").assignees == ("lee",)
        assert repository.records["stake"]["assigneeIds"] == ["lee"]

    @pytest.mark.asyncio
    async def test_parents_can_be_assigned(self, session):
        result = await bulk_assign(session, ["design"], ["kim", "lee"])
        assert result.ok
        assert session.tree.get("design").assignees == ("kim", "lee")

    @pytest.mark.asyncio
    async def test_unchanged_items_are_skipped(self, session):
        result = await bulk_assign(session, ["notes", "notes"], ["kim"])
        assert result.skipped == ["notes"]
        assert result.succeeded == []

    @pytest.mark.asyncio
    async def test_unknown_person(self, session):
        with pytest.raises(ValueError):
            await bulk_assign(session, ["notes"], ["park"])

    @pytest.mark.asyncio
    async def test_no_people(self, session):
        with pytest.raises(ValueError):
            await bulk_assign(session, ["notes"], [])

    @pytest.mark.asyncio
    async def test_unknown_item_changes_nothing(self, session, repository):
        with pytest.raises(ItemNotFound):
            await bulk_assign(session, ["stake", "nope"], ["lee"])
        assert repository.records["stake"]["assigneeIds"] == []

    @pytest.mark.asyncio
    async def test_rejected_items_fail(self):
        session = await make_session(RejectingRepository(build_items(), PEOPLE))
        result = await bulk_assign(session, ["stake", "notes"], ["lee"])
        assert result.failed == ["stake", "notes"]
        assert session.tree.get("notes").assignees == ("kim",)


class TestBulkRegister:
    @pytest.mark.asyncio
    async def test_registers_work_units_only(self, session, repository):
        result = await bulk_register_tasks(session, ["stake", "notes", "req"], fallback_assignee="lee")
        assert result.succeeded == ["stake", "notes"]
        assert result.skipped == ["req"]
        assert set(repository.tasks) == {"stake", "notes"}

    @pytest.mark.asyncio
    async def test_fallback_fills_only_unassigned(self, session, repository):
        await bulk_register_tasks(session, ["stake", "notes"], fallback_assignee="lee")
        assert session.tree.get("stake").assignees == ("lee",)
        assert session.tree.get("notes").assignees == ("kim",)
        assert repository.tasks["stake"]["assigneeIds"] == ["lee"]

    @pytest.mark.asyncio
    async def test_without_fallback(self, session, repository):
        result = await bulk_register_tasks(session, ["stake"])
        assert result.ok
        assert repository.tasks["stake"]["assigneeIds"] == []

    @pytest.mark.asyncio
    async def test_unknown_fallback(self, session):
        with pytest.raises(ValueError):
            await bulk_register_tasks(session, ["stake"], fallback_assignee="park")

    @pytest.mark.asyncio
    async def test_rejected(self):
        session = await make_session(RejectingRepository(build_items(), PEOPLE))
        result = await bulk_register_tasks(session, ["stake", "notes"], fallback_assignee="lee")
        assert result.failed == ["stake", "notes"]
        assert not result.ok

    @pytest.mark.asyncio
    async def test_no_registry_changes_nothing(self, session, repository):
        session.registry = None
        with pytest.raises(ValueError, match="no task registry"):
            await bulk_register_tasks(session, ["stake", "notes"], fallback_assignee="lee")
        assert session.tree.get("stake").assignees == ()
        assert repository.records["stake"]["assigneeIds"] == []
        assert repository.tasks == {}
