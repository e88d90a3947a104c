"""In-memory WBS tree: the only owner of structure, ordering and codes.

Nodes are immutable ``WorkItem`` values; every edit path-copies the nodes
between the changed one and its root and re-indexes the lookup maps, so a
snapshot of ``roots`` taken before an edit stays valid as a rollback point.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Iterable, Iterator

from wbs_gantt.errors import ItemNotFound, StructuralViolation
from wbs_gantt.models import (
    MAX_LEVEL,
    MIN_LEVEL,
    STRUCTURAL_FIELDS,
    WorkItem,
    item_to_record,
)

logger = logging.getLogger(__name__)


class WBSTree:
    """An ordered forest of LEVEL1..LEVEL4 work items."""

    def __init__(self, roots: Iterable[WorkItem] = ()) -> None:
        self._roots: tuple[WorkItem, ...] = tuple(roots)
        self._node_map: dict[str, WorkItem] = {}
        self._parent_map: dict[str, str | None] = {}
        for root in self._roots:
            self._check_subtree(root, None)
        self._check_unique(self._roots)
        self._normalize()
        self._reindex()

    @classmethod
    def from_items(cls, items: Iterable[WorkItem]) -> WBSTree:
        """Assemble a tree from a flat list linked by ``parent_id``.

        Siblings keep their relative input order. Orphans, cycles and
        duplicate ids raise StructuralViolation.
        """
        flat = list(items)
        by_id: dict[str, WorkItem] = {}
        for item in flat:
            if item.id in by_id:
                raise StructuralViolation(f"duplicate work item id: {item.id}")
            by_id[item.id] = item

        children: dict[str | None, list[str]] = {}
        for item in flat:
            parent_id = item.parent_id
            if parent_id is not None and parent_id not in by_id:
                raise StructuralViolation(
                    f"{item.id} references missing parent {parent_id}"
                )
            children.setdefault(parent_id, []).append(item.id)

        built: set[str] = set()

        def _build(item_id: str) -> WorkItem:
            built.add(item_id)
            node = by_id[item_id]
            kids = tuple(_build(cid) for cid in children.get(item_id, []))
            return replace(node, children=kids)

        roots = [_build(rid) for rid in children.get(None, [])]
        if len(built) != len(by_id):
            stray = sorted(set(by_id) - built)
            raise StructuralViolation(f"items not reachable from a root: {', '.join(stray)}")
        return cls(roots)

    # ── Read access ──

    @property
    def roots(self) -> tuple[WorkItem, ...]:
        return self._roots

    def __len__(self) -> int:
        return len(self._node_map)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._node_map

    def __iter__(self) -> Iterator[WorkItem]:
        """Pre-order traversal."""
        for root in self._roots:
            yield from root.all_nodes()

    def get(self, item_id: str) -> WorkItem:
        try:
            return self._node_map[item_id]
        except KeyError:
            raise ItemNotFound(item_id) from None

    def parent_of(self, item_id: str) -> WorkItem | None:
        self.get(item_id)
        parent_id = self._parent_map[item_id]
        return self._node_map[parent_id] if parent_id is not None else None

    def children_of(self, parent_id: str | None) -> tuple[WorkItem, ...]:
        if parent_id is None:
            return self._roots
        return self.get(parent_id).children

    def index_of(self, item_id: str) -> int:
        """Position of the item among its siblings."""
        self.get(item_id)
        siblings = self.children_of(self._parent_map[item_id])
        for i, sibling in enumerate(siblings):
            if sibling.id == item_id:
                return i
        raise ItemNotFound(item_id)

    def ancestors_of(self, item_id: str) -> list[WorkItem]:
        """Ancestors, nearest first."""
        self.get(item_id)
        result: list[WorkItem] = []
        parent_id = self._parent_map[item_id]
        while parent_id is not None:
            result.append(self._node_map[parent_id])
            parent_id = self._parent_map[parent_id]
        return result

    def descendants_of(self, item_id: str) -> list[WorkItem]:
        """Descendants in pre-order, excluding the item itself."""
        return self.get(item_id).all_nodes()[1:]

    def snapshot(self) -> tuple[WorkItem, ...]:
        return self._roots

    def restore(self, roots: tuple[WorkItem, ...]) -> None:
        """Reset to a snapshot previously taken from this tree."""
        self._roots = tuple(roots)
        self._reindex()

    def records(self) -> dict[str, dict]:
        """Flat record form of every node, keyed by id."""
        result: dict[str, dict] = {}

        def _walk(nodes: tuple[WorkItem, ...]) -> None:
            for order, node in enumerate(nodes):
                result[node.id] = item_to_record(node, order)
                _walk(node.children)

        _walk(self._roots)
        return result

    # ── Structural mutators ──

    def insert(self, parent_id: str | None, item: WorkItem, index: int | None = None) -> set[str]:
        """Attach ``item`` (possibly a whole subtree) under ``parent_id``.

        Returns the ids of the ancestors whose derived fields are now stale.
        """
        self._check_attachable(item, parent_id)
        self._check_subtree(item, parent_id)
        incoming = item.all_nodes()
        self._check_unique([item])
        clash = [n.id for n in incoming if n.id in self._node_map]
        if clash:
            raise StructuralViolation(f"work item id already in tree: {clash[0]}")

        siblings = list(self.children_of(parent_id))
        siblings.insert(self._clamp(index, len(siblings)), item)
        self._set_children(parent_id, siblings)
        self._normalize()
        logger.debug("inserted %s under %s", item.id, parent_id)
        return self._chain(parent_id)

    def remove(self, item_id: str) -> set[str]:
        """Detach an item together with its whole subtree."""
        self.get(item_id)
        parent_id = self._parent_map[item_id]
        affected = self._chain(parent_id)
        siblings = [c for c in self.children_of(parent_id) if c.id != item_id]
        self._set_children(parent_id, siblings)
        self._normalize()
        logger.debug("removed %s from %s", item_id, parent_id)
        return affected

    def move(self, item_id: str, new_parent_id: str | None, new_index: int | None = None) -> set[str]:
        """Re-parent an item; the subtree keeps its shape and shifts level by the depth delta.

        ``new_index`` is a position among the new siblings after the item has
        been detached. Returns the stale ancestor ids of both locations.
        """
        node = self.get(item_id)
        if new_parent_id is not None:
            if new_parent_id == item_id or any(
                d.id == new_parent_id for d in self.descendants_of(item_id)
            ):
                raise StructuralViolation(f"cannot move {item_id} under its own subtree")
            target_level = int(self.get(new_parent_id).level) + 1
        else:
            target_level = int(MIN_LEVEL)
        if target_level > MAX_LEVEL:
            raise StructuralViolation(f"{new_parent_id} is {MAX_LEVEL.name} and cannot have children")
        delta = target_level - int(node.level)
        if int(node.level) + delta + node.max_depth_below() > MAX_LEVEL:
            raise StructuralViolation(f"moving {item_id} would push descendants past {MAX_LEVEL.name}")

        old_parent_id = self._parent_map[item_id]
        affected = self._chain(old_parent_id)
        self._set_children(
            old_parent_id, [c for c in self.children_of(old_parent_id) if c.id != item_id]
        )
        siblings = list(self.children_of(new_parent_id))
        siblings.insert(self._clamp(new_index, len(siblings)), node.shifted(delta))
        self._set_children(new_parent_id, siblings)
        self._normalize()
        logger.debug("moved %s from %s to %s", item_id, old_parent_id, new_parent_id)
        return affected | self._chain(new_parent_id)

    def rekey(self, old_id: str, new_id: str) -> None:
        """Give an item a new id (e.g. one assigned by the repository)."""
        if old_id == new_id:
            return
        node = self.get(old_id)
        if new_id in self._node_map:
            raise StructuralViolation(f"work item id already in tree: {new_id}")
        parent_id = self._parent_map[old_id]
        renamed = replace(node, id=new_id)
        self._set_children(
            parent_id, [renamed if c.id == old_id else c for c in self.children_of(parent_id)]
        )
        self._normalize()

    # ── Field mutators ──

    def update_fields(self, item_id: str, **fields) -> WorkItem:
        """Replace non-structural fields of a single item."""
        illegal = STRUCTURAL_FIELDS.intersection(fields)
        if illegal:
            raise ValueError(f"structural fields cannot be edited directly: {', '.join(sorted(illegal))}")
        node = self.get(item_id)
        new_node = replace(node, **fields)
        if new_node != node:
            self._swap(new_node)
        return self._node_map[item_id]

    def renumber(self) -> set[str]:
        """Recompute every code from tree position. Returns ids whose code changed."""
        before = {node.id: node.code for node in self}
        self._normalize()
        return {node.id for node in self if before.get(node.id) != node.code}

    def validate(self) -> None:
        """Raise StructuralViolation if any invariant does not hold."""
        for root in self._roots:
            self._check_subtree(root, None)

        def _walk(nodes: tuple[WorkItem, ...], parent: WorkItem | None) -> None:
            for i, node in enumerate(nodes, start=1):
                code = f"{parent.code}.{i}" if parent else str(i)
                if node.code != code:
                    raise StructuralViolation(f"{node.id} has code {node.code!r}, expected {code!r}")
                if node.parent_id != (parent.id if parent else None):
                    raise StructuralViolation(f"{node.id} has a stale parent reference")
                _walk(node.children, node)

        _walk(self._roots, None)

    # ── Internals ──

    @staticmethod
    def _clamp(index: int | None, size: int) -> int:
        if index is None:
            return size
        return max(0, min(index, size))

    def _chain(self, item_id: str | None) -> set[str]:
        """The item and all its ancestors."""
        result: set[str] = set()
        while item_id is not None:
            result.add(item_id)
            item_id = self._parent_map.get(item_id)
        return result

    def _check_attachable(self, item: WorkItem, parent_id: str | None) -> None:
        if parent_id is None:
            if item.level != MIN_LEVEL:
                raise StructuralViolation(f"root items must be {MIN_LEVEL.name}, got {item.level.name}")
            return
        parent = self.get(parent_id)
        if parent.level >= MAX_LEVEL:
            raise StructuralViolation(f"{MAX_LEVEL.name} item {parent_id} cannot have children")
        if int(item.level) != int(parent.level) + 1:
            raise StructuralViolation(
                f"{item.level.name} cannot be a child of {parent.level.name}"
            )

    @staticmethod
    def _check_subtree(node: WorkItem, parent_id: str | None) -> None:
        if parent_id is None and node.level != MIN_LEVEL:
            raise StructuralViolation(f"root items must be {MIN_LEVEL.name}, got {node.level.name}")
        for child in node.children:
            if int(child.level) != int(node.level) + 1:
                raise StructuralViolation(
                    f"{child.level.name} cannot be a child of {node.level.name}"
                )
            WBSTree._check_subtree(child, node.id)

    @staticmethod
    def _check_unique(nodes: Iterable[WorkItem]) -> None:
        seen: set[str] = set()
        for root in nodes:
            for node in root.all_nodes():
                if node.id in seen:
                    raise StructuralViolation(f"duplicate work item id: {node.id}")
                seen.add(node.id)

    def _reindex(self) -> None:
        self._node_map = {}
        self._parent_map = {}

        def _walk(node: WorkItem, parent_id: str | None) -> None:
            self._node_map[node.id] = node
            self._parent_map[node.id] = parent_id
            for child in node.children:
                _walk(child, node.id)

        for root in self._roots:
            _walk(root, None)

    def _swap(self, new_node: WorkItem) -> None:
        """Replace one node in place, path-copying up to its root."""
        current = new_node
        self._node_map[current.id] = current
        parent_id = self._parent_map[current.id]
        while parent_id is not None:
            current = self._node_map[parent_id].replace_child(current.id, current)
            self._node_map[current.id] = current
            parent_id = self._parent_map[parent_id]
        self._roots = tuple(current if r.id == current.id else r for r in self._roots)

    def _set_children(self, parent_id: str | None, children: Iterable[WorkItem]) -> None:
        children = tuple(children)
        if parent_id is None:
            self._roots = children
        else:
            self._swap(replace(self.get(parent_id), children=children))
        self._reindex()

    def _normalize(self) -> None:
        """Bring every code and parent reference in line with tree position."""

        def _fix(node: WorkItem, parent_id: str | None, code: str) -> WorkItem:
            children = tuple(
                _fix(child, node.id, f"{code}.{i}")
                for i, child in enumerate(node.children, start=1)
            )
            unchanged = (
                node.parent_id == parent_id
                and node.code == code
                and all(a is b for a, b in zip(children, node.children))
            )
            if unchanged:
                return node
            return replace(node, parent_id=parent_id, code=code, children=children)

        roots = tuple(_fix(root, None, str(i)) for i, root in enumerate(self._roots, start=1))
        if any(a is not b for a, b in zip(roots, self._roots)):
            self._roots = roots
            self._reindex()
