"""Structural edits: add, delete, promote, demote, reorder.

Every precondition is checked before the tree is touched. After a successful
edit the tree has been renumbered and both the old and the new ancestor
chains have been rolled up.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from wbs_gantt.errors import (
    InvalidLevel,
    MaxLevelExceeded,
    NoPrecedingSibling,
)
from wbs_gantt.models import MAX_LEVEL, MIN_LEVEL, Level, WorkItem
from wbs_gantt.rollup import recompute
from wbs_gantt.tree import WBSTree

logger = logging.getLogger(__name__)

# Fields a new item may not be created with.
_CREATE_FORBIDDEN = frozenset({"parent_id", "level", "code", "children", "progress", "status"})


@dataclass(frozen=True)
class EditResult:
    """What a structural edit did, with enough context to undo it."""

    item_id: str
    affected: frozenset[str] = frozenset()
    removed_ids: tuple[str, ...] = ()
    previous_parent_id: str | None = None
    previous_index: int | None = None
    removed_subtree: WorkItem | None = None

    @property
    def changed(self) -> bool:
        return bool(self.affected or self.removed_ids) or self.previous_index is not None


class LevelEditor:
    def __init__(self, tree: WBSTree) -> None:
        self.tree = tree

    def add_child(self, parent_id: str | None, level: Level | str | int, name: str = "", **fields: Any) -> EditResult:
        """Create a PENDING, progress-0 leaf as the last child of ``parent_id``.

        ``parent_id=None`` adds a LEVEL1 root.
        """
        try:
            level = Level.parse(level)
        except (KeyError, ValueError):
            raise InvalidLevel(f"unknown level: {level!r}") from None
        if parent_id is None:
            if level != MIN_LEVEL:
                raise InvalidLevel(f"a root item must be {MIN_LEVEL.name}, not {level.name}")
        else:
            parent = self.tree.get(parent_id)
            if parent.level >= MAX_LEVEL:
                raise InvalidLevel(f"{MAX_LEVEL.name} items cannot have children")
            if int(level) != int(parent.level) + 1:
                raise InvalidLevel(
                    f"a child of {parent.level.name} must be {Level(int(parent.level) + 1).name}, not {level.name}"
                )
        bad = _CREATE_FORBIDDEN.intersection(fields)
        if bad:
            raise ValueError(f"cannot set {', '.join(sorted(bad))} on a new item")

        item = WorkItem(name=name, level=level, **fields)
        affected = self.tree.insert(parent_id, item)
        recompute(self.tree, affected)
        logger.info("added %s %s under %s", level.name, item.id, parent_id)
        return EditResult(item.id, frozenset(affected))

    def add_sibling(self, item_id: str, name: str = "", **fields: Any) -> EditResult:
        """Create a new item of the same level right after ``item_id``."""
        node = self.tree.get(item_id)
        parent_id = node.parent_id
        index = self.tree.index_of(item_id) + 1
        bad = _CREATE_FORBIDDEN.intersection(fields)
        if bad:
            raise ValueError(f"cannot set {', '.join(sorted(bad))} on a new item")
        item = WorkItem(name=name, level=node.level, **fields)
        affected = self.tree.insert(parent_id, item, index)
        recompute(self.tree, affected)
        logger.info("added %s %s after %s", node.level.name, item.id, item_id)
        return EditResult(item.id, frozenset(affected))

    def promote(self, item_id: str) -> EditResult:
        """Lift the item (and subtree) one level, right after its former parent."""
        node = self.tree.get(item_id)
        if node.level == MIN_LEVEL:
            raise InvalidLevel(f"{item_id} is already {MIN_LEVEL.name}")
        parent = self.tree.parent_of(item_id)
        previous_index = self.tree.index_of(item_id)
        target_index = self.tree.index_of(parent.id) + 1

        affected = self.tree.move(item_id, parent.parent_id, target_index)
        emptied = {parent.id} if self.tree.get(parent.id).is_leaf else set()
        recompute(self.tree, affected, emptied=emptied)
        logger.info("promoted %s to %s", item_id, self.tree.get(item_id).level.name)
        return EditResult(
            item_id,
            frozenset(affected),
            previous_parent_id=parent.id,
            previous_index=previous_index,
        )

    def demote(self, item_id: str) -> EditResult:
        """Push the item (and subtree) one level down, under its preceding sibling."""
        node = self.tree.get(item_id)
        if node.level >= MAX_LEVEL:
            raise MaxLevelExceeded(f"{item_id} is already {MAX_LEVEL.name}")
        if int(node.level) + 1 + node.max_depth_below() > MAX_LEVEL:
            raise MaxLevelExceeded(f"demoting {item_id} would push descendants past {MAX_LEVEL.name}")
        index = self.tree.index_of(item_id)
        if index == 0:
            raise NoPrecedingSibling(f"{item_id} is the first child and has no sibling to move under")
        previous_sibling = self.tree.children_of(node.parent_id)[index - 1]

        affected = self.tree.move(item_id, previous_sibling.id)
        recompute(self.tree, affected)
        logger.info("demoted %s under %s", item_id, previous_sibling.id)
        return EditResult(
            item_id,
            frozenset(affected),
            previous_parent_id=node.parent_id,
            previous_index=index,
        )

    def delete(self, item_id: str) -> EditResult:
        """Remove the item and its whole subtree. ``removed_ids`` is in pre-order."""
        node = self.tree.get(item_id)
        parent_id = node.parent_id
        index = self.tree.index_of(item_id)
        removed = tuple(n.id for n in node.all_nodes())

        affected = self.tree.remove(item_id)
        emptied = {parent_id} if parent_id is not None and self.tree.get(parent_id).is_leaf else set()
        recompute(self.tree, affected, emptied=emptied)
        logger.info("deleted %s (%d items)", item_id, len(removed))
        return EditResult(
            item_id,
            frozenset(affected),
            removed_ids=removed,
            previous_parent_id=parent_id,
            previous_index=index,
            removed_subtree=node,
        )

    def reorder(self, item_id: str, direction: int) -> EditResult:
        """Swap with the previous (-1) or next (+1) sibling. No-op at either edge."""
        node = self.tree.get(item_id)
        index = self.tree.index_of(item_id)
        siblings = self.tree.children_of(node.parent_id)
        target = index + (1 if direction > 0 else -1)
        if target < 0 or target >= len(siblings):
            return EditResult(item_id)
        affected = self.tree.move(item_id, node.parent_id, target)
        recompute(self.tree, affected)
        return EditResult(
            item_id,
            frozenset(affected),
            previous_parent_id=node.parent_id,
            previous_index=index,
        )
