"""Shared fixtures: a small rolled-up project.

    1   Design (w60)
    1.1   Requirements
    1.1.1   Interviews
    1.1.1.1   Stakeholders   2026-01-05..2026-01-10  40%
    1.1.1.2   Notes          2026-01-12..2026-01-20  60%
    1.2   Review             2026-02-01..2026-02-05   0%
    2   Build (w40)
    2.1   Prototype          2026-01-01..2026-01-03 100%  COMPLETED
"""

from datetime import date

import pytest
import pytest_asyncio

from wbs_gantt.models import Level, Person, Status, WorkItem
from wbs_gantt.repository import InMemoryItemRepository
from wbs_gantt.rollup import rollup_all
from wbs_gantt.session import WBSSession
from wbs_gantt.tree import WBSTree

TODAY = date(2026, 1, 15)


def build_items() -> list[WorkItem]:
    return [
        WorkItem(id="design", name="Design", level=Level.LEVEL1, weight=60),
        WorkItem(id="req", name="Requirements", level=Level.LEVEL2, parent_id="design"),
        WorkItem(id="interviews", name="Interviews", level=Level.LEVEL3, parent_id="req"),
        WorkItem(
            id="stake",
            name="Stakeholders",
            level=Level.LEVEL4,
            parent_id="interviews",
            planned_start=date(2026, 1, 5),
            planned_end=date(2026, 1, 10),
            progress=40,
            status=Status.IN_PROGRESS,
        ),
        WorkItem(
            id="notes",
            name="Notes",
            level=Level.LEVEL4,
            parent_id="interviews",
            planned_start=date(2026, 1, 12),
            planned_end=date(2026, 1, 20),
            progress=60,
            assignees=("kim",),
        ),
        WorkItem(
            id="review",
            name="Review",
            level=Level.LEVEL2,
            parent_id="design",
            planned_start=date(2026, 2, 1),
            planned_end=date(2026, 2, 5),
        ),
        WorkItem(id="build", name="Build", level=Level.LEVEL1, weight=40),
        WorkItem(
            id="proto",
            name="Prototype",
            level=Level.LEVEL2,
            parent_id="build",
            planned_start=date(2026, 1, 1),
            planned_end=date(2026, 1, 3),
            progress=100,
            status=Status.COMPLETED,
        ),
    ]


PEOPLE = [Person(id="kim", name="Kim"), Person(id="lee", name="Lee")]


@pytest.fixture
def flat_items() -> list[WorkItem]:
    return build_items()


@pytest.fixture
def tree() -> WBSTree:
    t = WBSTree.from_items(build_items())
    rollup_all(t)
    return t


@pytest.fixture
def repository() -> InMemoryItemRepository:
    return InMemoryItemRepository(build_items(), PEOPLE)


@pytest_asyncio.fixture
async def session(repository) -> WBSSession:
    s = WBSSession(repository, "demo", today=lambda: TODAY)
    await s.load()
    return s


class RejectingRepository(InMemoryItemRepository):
    """Loads fine, refuses every write."""

    async def update(self, item_id, fields):
        return False

    async def create(self, item, order=0):
        return None

    async def delete(self, item_id):
        return False

    async def register_as_task(self, item):
        return False


async def make_session(repository) -> WBSSession:
    s = WBSSession(repository, "demo", today=lambda: TODAY)
    await s.load()
    return s
