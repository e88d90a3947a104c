"""Tests for the Gantt drag controller and chart geometry."""

from datetime import date

import pytest

from wbs_gantt.errors import NotDraggable
from wbs_gantt.gantt import (
    DragMode,
    DragPhase,
    GanttDragController,
    apply_delta,
    bar_span,
    chart_range,
    date_to_offset,
    delta_days,
    offset_to_date,
    zoom_cell_width,
)
from wbs_gantt.widgets.gantt_chart import hit_mode

from conftest import TODAY

START = date(2026, 1, 5)
END = date(2026, 1, 10)


class TestDeltaDays:
    @pytest.mark.parametrize(
        "pointer_x, expected",
        [(0, 0), (1.4, 1), (1.5, 2), (-0.5, 0), (-0.6, -1), (-1.5, -1), (3, 3)],
    )
    def test_snaps_to_nearest_day(self, pointer_x, expected):
        assert delta_days(pointer_x, 0, 1) == expected

    def test_scales_by_cell_width(self):
        assert delta_days(16, 10, 2) == 3
        assert delta_days(12, 10, 4) == 1
        assert delta_days(11, 10, 4) == 0


class TestApplyDelta:
    def test_move(self):
        assert apply_delta(DragMode.MOVE, START, END, 3) == (date(2026, 1, 8), date(2026, 1, 13))

    def test_resize_start(self):
        assert apply_delta(DragMode.RESIZE_START, START, END, -2) == (date(2026, 1, 3), END)

    def test_resize_start_clamps_before_end(self):
        assert apply_delta(DragMode.RESIZE_START, START, END, 10) == (date(2026, 1, 9), END)

    def test_resize_end_clamps_after_start(self):
        assert apply_delta(DragMode.RESIZE_END, START, END, -20) == (START, date(2026, 1, 6))

    def test_zero(self):
        assert apply_delta(DragMode.RESIZE_END, START, END, 0) == (START, END)


class TestDragController:
    def test_move_commit(self, tree):
        drag = GanttDragController(tree, cell_width=2)
        drag.begin("stake", DragMode.MOVE, origin_x=10)
        assert drag.phase == DragPhase.DRAGGING
        assert drag.update(16) == (date(2026, 1, 8), date(2026, 1, 13))
        result = drag.commit()
        assert drag.phase == DragPhase.IDLE
        stake = tree.get("stake")
        assert (stake.planned_start, stake.planned_end) == (date(2026, 1, 8), date(2026, 1, 13))
        assert result.delta_days == 3
        assert result.affected == {"interviews", "req", "design"}
        assert tree.get("interviews").planned_start == date(2026, 1, 8)

    def test_preview_does_not_touch_tree(self, tree):
        drag = GanttDragController(tree)
        drag.begin("stake", DragMode.RESIZE_END, origin_x=0)
        drag.update(4)
        assert drag.preview_for(tree.get("stake")) == (START, date(2026, 1, 14))
        assert tree.get("stake").planned_end == END
        assert drag.preview_for(tree.get("notes")) == (date(2026, 1, 12), date(2026, 1, 20))

    def test_release_outside_cancels(self, tree):
        before = tree.snapshot()
        drag = GanttDragController(tree)
        drag.begin("stake", DragMode.MOVE, origin_x=0)
        drag.update(5)
        assert drag.release(in_bounds=False) is None
        assert drag.phase == DragPhase.IDLE
        assert tree.snapshot() is before

    def test_cancel(self, tree):
        before = tree.snapshot()
        drag = GanttDragController(tree)
        drag.begin("stake", DragMode.MOVE, origin_x=0)
        drag.update(-3)
        drag.cancel()
        assert not drag.dragging
        assert tree.snapshot() is before

    def test_unchanged_commit_is_none(self, tree):
        before = tree.snapshot()
        drag = GanttDragController(tree, cell_width=3)
        drag.begin("stake", DragMode.MOVE, origin_x=0)
        drag.update(1)
        assert drag.release() is None
        assert tree.snapshot() is before

    def test_parent_not_draggable(self, tree):
        drag = GanttDragController(tree)
        with pytest.raises(NotDraggable):
            drag.begin("interviews", DragMode.MOVE, origin_x=0)
        assert drag.phase == DragPhase.IDLE

    def test_leaf_without_dates_starts_today(self, tree):
        tree.update_fields("review", planned_start=None, planned_end=None)
        drag = GanttDragController(tree, today=lambda: TODAY)
        drag.begin("review", DragMode.MOVE, origin_x=0)
        assert drag.preview() == (TODAY, TODAY)
        assert drag.update(2) == (date(2026, 1, 17), date(2026, 1, 17))
        commit = drag.release()
        assert commit.previous_start is None and commit.previous_end is None
        assert tree.get("review").planned_start == date(2026, 1, 17)
        assert tree.get("design").planned_end == date(2026, 1, 20)

    def test_leaf_without_dates_unmoved(self, tree):
        tree.update_fields("review", planned_start=None, planned_end=None)
        before = tree.snapshot()
        drag = GanttDragController(tree, today=lambda: TODAY)
        drag.begin("review", DragMode.RESIZE_END, origin_x=0)
        assert drag.release() is None
        assert tree.snapshot() is before

    def test_missing_end_follows_start(self, tree):
        tree.update_fields("review", planned_end=None)
        drag = GanttDragController(tree, today=lambda: TODAY)
        drag.begin("review", DragMode.MOVE, origin_x=0)
        assert drag.preview() == (date(2026, 2, 1), date(2026, 2, 1))

    def test_single_gesture(self, tree):
        drag = GanttDragController(tree)
        drag.begin("stake", DragMode.MOVE, origin_x=0)
        with pytest.raises(RuntimeError):
            drag.begin("notes", DragMode.MOVE, origin_x=0)
        assert drag.item_id == "stake"

    def test_update_without_gesture(self, tree):
        with pytest.raises(RuntimeError):
            GanttDragController(tree).update(3)


class TestGeometry:
    def test_zoom_cell_width_clamps(self):
        assert zoom_cell_width([1, 2, 3], 9) == 3
        assert zoom_cell_width([1, 2, 3], -1) == 1
        assert zoom_cell_width([], 0) == 1

    def test_chart_range_minimum(self):
        assert chart_range(START, END, TODAY) == (date(2026, 1, 2), 30)

    def test_chart_range_long_project(self):
        first, days = chart_range(date(2026, 1, 1), date(2026, 3, 31), TODAY)
        assert first == date(2025, 12, 29)
        assert days == 100

    def test_chart_range_without_dates(self):
        assert chart_range(None, None, TODAY) == (date(2026, 1, 8), 45)

    def test_offsets(self):
        chart_start = date(2026, 1, 1)
        assert date_to_offset(START, chart_start, 2) == 8
        assert offset_to_date(5, chart_start, 2) == date(2026, 1, 3)

    def test_bar_span(self):
        assert bar_span(START, END, date(2026, 1, 1), 2) == (8, 12)
        assert bar_span(None, END, date(2026, 1, 1), 2) is None


class TestHitMode:
    def test_edges_and_body(self):
        # bar covers columns 8..19 at two columns per day
        assert hit_mode(8, 8, 12, 2) == DragMode.RESIZE_START
        assert hit_mode(9, 8, 12, 2) == DragMode.RESIZE_START
        assert hit_mode(12, 8, 12, 2) == DragMode.MOVE
        assert hit_mode(18, 8, 12, 2) == DragMode.RESIZE_END
        assert hit_mode(19, 8, 12, 2) == DragMode.RESIZE_END

    def test_outside_bar(self):
        assert hit_mode(7, 8, 12, 2) is None
        assert hit_mode(20, 8, 12, 2) is None

    def test_one_day_bar_only_moves(self):
        assert hit_mode(8, 8, 2, 2) == DragMode.MOVE
