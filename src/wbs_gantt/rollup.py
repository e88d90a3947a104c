"""Rollup engine: derive parent dates/progress from children, and status from today.

Everything here is a pure function of its arguments except ``recompute`` and
``rollup_all``, which write the derived values back through the tree.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date
from typing import Iterable, Sequence

from wbs_gantt.models import (
    CLOSED_STATUSES,
    DisplayStatus,
    Level,
    WeightMode,
    WorkItem,
)
from wbs_gantt.tree import WBSTree


def rollup_dates(children: Iterable[WorkItem]) -> tuple[date | None, date | None]:
    """Earliest start and latest end over children that have them."""
    children = list(children)
    starts = [c.planned_start for c in children if c.planned_start is not None]
    ends = [c.planned_end for c in children if c.planned_end is not None]
    return (min(starts) if starts else None, max(ends) if ends else None)


def _clamp_progress(value: int) -> int:
    return max(0, min(100, value))


def _round_half_up(total: int, count: int) -> int:
    """Integer total/count rounded half-up; exact for non-negative ints."""
    return (2 * total + count) // (2 * count)


def mean_progress(children: Sequence[WorkItem]) -> int:
    """Unweighted mean of immediate children's progress, rounded, clamped."""
    if not children:
        return 0
    total = sum(_clamp_progress(c.progress) for c in children)
    return _clamp_progress(_round_half_up(total, len(children)))


def rollup_item(item: WorkItem) -> WorkItem:
    """Return ``item`` with derived fields recomputed from its immediate children.

    A leaf is returned unchanged; its dates and progress are authoritative.
    """
    if item.is_leaf:
        return item
    start, end = rollup_dates(item.children)
    progress = mean_progress(item.children)
    if (start, end, progress) == (item.planned_start, item.planned_end, item.progress):
        return item
    return replace(item, planned_start=start, planned_end=end, progress=progress)


def rollup_tree(roots: Iterable[WorkItem]) -> tuple[WorkItem, ...]:
    """Bottom-up rollup of a whole forest without touching a WBSTree."""

    def _walk(node: WorkItem) -> WorkItem:
        if node.is_leaf:
            return node
        children = tuple(_walk(c) for c in node.children)
        if any(a is not b for a, b in zip(children, node.children)):
            node = replace(node, children=children)
        return rollup_item(node)

    return tuple(_walk(r) for r in roots)


def _derived_values(item: WorkItem) -> dict:
    if item.is_leaf:
        # A formerly derived node with no children left: definite empty values.
        return {"planned_start": None, "planned_end": None, "progress": 0}
    start, end = rollup_dates(item.children)
    return {
        "planned_start": start,
        "planned_end": end,
        "progress": mean_progress(item.children),
    }


def recompute(tree: WBSTree, ids: Iterable[str], *, emptied: Iterable[str] = ()) -> list[str]:
    """Re-derive the given items deepest-first so parents see updated children.

    Leaves in ``ids`` are left alone unless they are also listed in
    ``emptied`` (non-leaf items that just lost their last child). Ids no
    longer in the tree are ignored. Returns the ids whose values changed.
    """
    emptied = set(emptied)
    present = [i for i in set(ids) | emptied if i in tree]
    present.sort(key=lambda i: (-int(tree.get(i).level), i))
    changed: list[str] = []
    for item_id in present:
        item = tree.get(item_id)
        if item.is_leaf and item_id not in emptied:
            continue
        values = _derived_values(item)
        current = {k: getattr(item, k) for k in values}
        if values != current:
            tree.update_fields(item_id, **values)
            changed.append(item_id)
    return changed


def rollup_all(tree: WBSTree) -> list[str]:
    """Recompute every non-leaf item in the tree."""
    return recompute(tree, [item.id for item in tree if not item.is_leaf])


# ── Project level ──


def weight_total(roots: Iterable[WorkItem]) -> int:
    return sum(r.weight for r in roots if r.level == Level.LEVEL1)


def weights_balanced(roots: Iterable[WorkItem]) -> bool:
    """Whether LEVEL1 weights add up to 100. Violations are tolerated, only reported."""
    return weight_total(roots) == 100


def project_progress(
    roots: Iterable[WorkItem], weight_mode: WeightMode = WeightMode.NORMALIZE
) -> float:
    """Weighted progress over LEVEL1 items.

    LEVEL1 siblings use their weights while every other level uses a plain
    mean; the two rules are kept separate on purpose. NORMALIZE divides by
    the actual weight sum, LITERAL divides by 100 and is not clamped.
    """
    tops = [r for r in roots if r.level == Level.LEVEL1]
    if not tops:
        return 0.0
    weighted = sum(_clamp_progress(r.progress) * r.weight for r in tops)
    if weight_mode is WeightMode.LITERAL:
        return weighted / 100
    total = sum(r.weight for r in tops)
    if total <= 0:
        return 0.0
    return weighted / total


# ── Display status ──


def is_delayed(item: WorkItem, today: date) -> bool:
    if item.status in CLOSED_STATUSES or item.planned_end is None:
        return False
    return item.planned_end < today


def display_status(item: WorkItem, today: date) -> DisplayStatus:
    if is_delayed(item, today):
        return DisplayStatus.DELAYED
    return DisplayStatus(item.status.value)


def delay_days(item: WorkItem, today: date) -> int:
    """Days past the planned end; 0 unless the item is delayed."""
    if not is_delayed(item, today):
        return 0
    return (today - item.planned_end).days
