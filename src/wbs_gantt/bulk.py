"""Bulk operators over a checked selection.

Items are processed strictly one at a time: each item's mutation, rollup and
repository commit finish before the next item is touched.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable

from wbs_gantt.errors import WBSError
from wbs_gantt.models import Level
from wbs_gantt.session import WBSSession

logger = logging.getLogger(__name__)


@dataclass
class BulkResult:
    succeeded: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    def summary(self) -> str:
        parts = [f"{len(self.succeeded)} done"]
        if self.failed:
            parts.append(f"{len(self.failed)} failed")
        if self.skipped:
            parts.append(f"{len(self.skipped)} skipped")
        return ", ".join(parts)


async def _known_people(session: WBSSession) -> set[str] | None:
    if session.directory is None:
        return None
    people = await session.directory.list(session.project_id)
    session.people = list(people)
    return {p.id for p in people}


async def bulk_assign(session: WBSSession, item_ids: Iterable[str], person_ids: Iterable[str]) -> BulkResult:
    """Replace the assignees of every selected item with ``person_ids``."""
    item_ids = list(dict.fromkeys(item_ids))
    person_ids = tuple(dict.fromkeys(person_ids))
    if not person_ids:
        raise ValueError("select at least one person")
    known = await _known_people(session)
    if known is not None:
        unknown = [p for p in person_ids if p not in known]
        if unknown:
            raise ValueError(f"unknown people: {', '.join(unknown)}")
    for item_id in item_ids:
        session.tree.get(item_id)

    result = BulkResult()
    for item_id in item_ids:
        current = session.resolve(item_id)
        if current not in session.tree:
            result.skipped.append(item_id)
            continue
        if session.tree.get(current).assignees == person_ids:
            result.skipped.append(item_id)
            continue
        try:
            mutation = session.update_fields(current, assignees=person_ids)
        except (WBSError, ValueError) as e:
            logger.warning("cannot assign %s: %s", item_id, e)
            result.failed.append(item_id)
            continue
        if await mutation.committed():
            result.succeeded.append(item_id)
        else:
            result.failed.append(item_id)
    logger.info("bulk assign: %s", result.summary())
    return result


async def bulk_register_tasks(
    session: WBSSession,
    item_ids: Iterable[str],
    fallback_assignee: str | None = None,
) -> BulkResult:
    """Register the selected LEVEL4 work units as tasks.

    Items without assignees get ``fallback_assignee`` first. Items of other
    levels are skipped.
    """
    if session.registry is None:
        raise ValueError("no task registry configured")
    item_ids = list(dict.fromkeys(item_ids))
    if fallback_assignee is not None:
        known = await _known_people(session)
        if known is not None and fallback_assignee not in known:
            raise ValueError(f"unknown person: {fallback_assignee}")

    result = BulkResult()
    for item_id in item_ids:
        current = session.resolve(item_id)
        if current not in session.tree or session.tree.get(current).level != Level.LEVEL4:
            result.skipped.append(item_id)
            continue
        item = session.tree.get(current)
        if not item.assignees and fallback_assignee is not None:
            assigned = session.update_fields(current, assignees=(fallback_assignee,))
            if not await assigned.committed():
                result.failed.append(item_id)
                continue
        mutation = session.register_task(session.resolve(current))
        if await mutation.committed():
            result.succeeded.append(item_id)
        else:
            result.failed.append(item_id)
    logger.info("bulk register: %s", result.summary())
    return result
