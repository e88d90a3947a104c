"""Gantt drag protocol and chart geometry.

The controller turns pointer positions on a day grid into date deltas. Cells
are whatever unit the host draws in (terminal columns in the TUI); the only
thing that matters is the fixed ``cell_width`` per day captured when a drag
begins.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import Callable

from wbs_gantt.errors import NotDraggable
from wbs_gantt.models import WorkItem
from wbs_gantt.rollup import recompute
from wbs_gantt.tree import WBSTree

logger = logging.getLogger(__name__)

# Days of padding around the project window, and the minimum chart width.
CHART_LEAD_DAYS = 3
CHART_TRAIL_DAYS = 7
CHART_MIN_DAYS = 30
# Window used when the project has no dates.
CHART_FALLBACK_LEAD_DAYS = 7
CHART_FALLBACK_DAYS = 45


class DragMode(Enum):
    MOVE = "move"
    RESIZE_START = "resize_start"
    RESIZE_END = "resize_end"


class DragPhase(Enum):
    IDLE = "idle"
    DRAGGING = "dragging"


@dataclass(frozen=True)
class DragCommit:
    """Dates written into the tree by a completed drag."""

    item_id: str
    original_start: date
    original_end: date
    new_start: date
    new_end: date
    affected: frozenset[str]
    # Dates stored before the drag; None where the gesture started from today.
    previous_start: date | None = None
    previous_end: date | None = None

    @property
    def delta_days(self) -> int:
        return (self.new_start - self.original_start).days or (self.new_end - self.original_end).days


@dataclass
class _Gesture:
    item_id: str
    mode: DragMode
    origin_x: float
    cell_width: float
    original_start: date
    original_end: date
    previous_start: date | None = None
    previous_end: date | None = None
    delta: int = 0


def draggable_dates(item: WorkItem, today: date) -> tuple[date, date]:
    """Dates a drag starts from; a missing date is taken from today."""
    start = item.planned_start or min(today, item.planned_end or today)
    end = item.planned_end or max(today, start)
    return start, end


def delta_days(pointer_x: float, origin_x: float, cell_width: float) -> int:
    """Pointer offset snapped to the nearest whole day, halves rounding up."""
    return math.floor((pointer_x - origin_x) / cell_width + 0.5)


def apply_delta(mode: DragMode, start: date, end: date, delta: int) -> tuple[date, date]:
    """New (start, end) for a drag of ``delta`` days.

    Resizing keeps at least one day between start and end.
    """
    if delta == 0:
        return start, end
    shift = timedelta(days=delta)
    if mode is DragMode.MOVE:
        return start + shift, end + shift
    if mode is DragMode.RESIZE_START:
        new_start = start + shift
        if new_start >= end:
            new_start = end - timedelta(days=1)
        return new_start, end
    new_end = end + shift
    if new_end <= start:
        new_end = start + timedelta(days=1)
    return start, new_end


class GanttDragController:
    """IDLE → DRAGGING → (commit | cancel) → IDLE."""

    def __init__(
        self, tree: WBSTree, cell_width: float = 1, today: Callable[[], date] = date.today
    ) -> None:
        self.tree = tree
        self.cell_width = cell_width
        self.today = today
        self._gesture: _Gesture | None = None

    @property
    def phase(self) -> DragPhase:
        return DragPhase.IDLE if self._gesture is None else DragPhase.DRAGGING

    @property
    def dragging(self) -> bool:
        return self._gesture is not None

    @property
    def item_id(self) -> str | None:
        return self._gesture.item_id if self._gesture else None

    @property
    def mode(self) -> DragMode | None:
        return self._gesture.mode if self._gesture else None

    @property
    def delta(self) -> int:
        return self._gesture.delta if self._gesture else 0

    def begin(self, item_id: str, mode: DragMode, origin_x: float) -> None:
        if self._gesture is not None:
            raise RuntimeError(f"a drag on {self._gesture.item_id} is already in progress")
        item = self.tree.get(item_id)
        if not item.is_leaf:
            raise NotDraggable(f"{item.code or item_id} has children; its dates are derived")
        if self.cell_width <= 0:
            raise ValueError("cell width must be positive")
        start, end = draggable_dates(item, self.today())
        self._gesture = _Gesture(
            item_id=item_id,
            mode=mode,
            origin_x=origin_x,
            cell_width=self.cell_width,
            original_start=start,
            original_end=end,
            previous_start=item.planned_start,
            previous_end=item.planned_end,
        )
        logger.debug("drag %s on %s from x=%s", mode.value, item_id, origin_x)

    def update(self, pointer_x: float) -> tuple[date, date]:
        """Track the pointer; returns the uncommitted preview dates."""
        gesture = self._require()
        gesture.delta = delta_days(pointer_x, gesture.origin_x, gesture.cell_width)
        return self.preview()

    def preview(self) -> tuple[date, date]:
        gesture = self._require()
        return apply_delta(gesture.mode, gesture.original_start, gesture.original_end, gesture.delta)

    def preview_for(self, item: WorkItem) -> tuple[date | None, date | None]:
        """Dates to draw for ``item``: the preview while it is being dragged."""
        if self._gesture is not None and self._gesture.item_id == item.id:
            return self.preview()
        return item.planned_start, item.planned_end

    def release(self, in_bounds: bool = True) -> DragCommit | None:
        """End the gesture: commit inside the cancel region, cancel outside it."""
        if not in_bounds:
            self.cancel()
            return None
        return self.commit()

    def commit(self) -> DragCommit | None:
        """Write the preview into the tree and roll up ancestors.

        Returns None (and leaves the tree alone) when the dates did not change.
        """
        gesture = self._require()
        self._gesture = None
        new_start, new_end = apply_delta(
            gesture.mode, gesture.original_start, gesture.original_end, gesture.delta
        )
        if (new_start, new_end) == (gesture.original_start, gesture.original_end):
            return None
        if gesture.item_id not in self.tree:
            logger.warning("drag target %s vanished before commit", gesture.item_id)
            return None
        self.tree.update_fields(gesture.item_id, planned_start=new_start, planned_end=new_end)
        affected = {a.id for a in self.tree.ancestors_of(gesture.item_id)}
        recompute(self.tree, affected)
        logger.info(
            "drag %s %s: %s..%s -> %s..%s",
            gesture.mode.value,
            gesture.item_id,
            gesture.original_start,
            gesture.original_end,
            new_start,
            new_end,
        )
        return DragCommit(
            item_id=gesture.item_id,
            original_start=gesture.original_start,
            original_end=gesture.original_end,
            new_start=new_start,
            new_end=new_end,
            affected=frozenset(affected),
            previous_start=gesture.previous_start,
            previous_end=gesture.previous_end,
        )

    def cancel(self) -> None:
        if self._gesture is not None:
            logger.debug("drag on %s cancelled", self._gesture.item_id)
        self._gesture = None

    def _require(self) -> _Gesture:
        if self._gesture is None:
            raise RuntimeError("no drag in progress")
        return self._gesture


# ── Chart geometry ──


def zoom_cell_width(zoom_levels: list[int], zoom_index: int) -> int:
    """Cells per day for a zoom index; the index is clamped to the list."""
    if not zoom_levels:
        return 1
    index = max(0, min(zoom_index, len(zoom_levels) - 1))
    return max(1, int(zoom_levels[index]))


def chart_range(start: date | None, end: date | None, today: date) -> tuple[date, int]:
    """First visible day and number of days for a project window."""
    if start is not None and end is not None:
        first = start - timedelta(days=CHART_LEAD_DAYS)
        last = end + timedelta(days=CHART_TRAIL_DAYS)
        return first, max((last - first).days + 1, CHART_MIN_DAYS)
    return today - timedelta(days=CHART_FALLBACK_LEAD_DAYS), CHART_FALLBACK_DAYS


def date_to_offset(d: date, chart_start: date, cell_width: int) -> int:
    return (d - chart_start).days * cell_width


def offset_to_date(offset: int, chart_start: date, cell_width: int) -> date:
    return chart_start + timedelta(days=offset // cell_width)


def bar_span(
    start: date | None, end: date | None, chart_start: date, cell_width: int
) -> tuple[int, int] | None:
    """(left offset, width) of a bar, or None without both dates."""
    if start is None or end is None:
        return None
    days = (end - start).days + 1
    return date_to_offset(start, chart_start, cell_width), max(1, days) * cell_width


def shift_date(d: date, days: int) -> date:
    return d + timedelta(days=days)
