"""Gantt chart widget: date header plus one bar per visible tree row."""

from __future__ import annotations

from datetime import date, timedelta

from rich.segment import Segment
from rich.style import Style
from rich.text import Text
from textual import events
from textual.app import ComposeResult
from textual.containers import Container
from textual.geometry import Size
from textual.message import Message
from textual.scroll_view import ScrollView
from textual.strip import Strip
from textual.widget import Widget

from wbs_gantt import theme
from wbs_gantt.gantt import DragMode, bar_span, chart_range, date_to_offset, draggable_dates
from wbs_gantt.renderer import TreeRow
from wbs_gantt.rollup import rollup_dates


def _is_dark(widget: Widget) -> bool:
    try:
        return widget.app.current_theme.dark
    except Exception:
        return True


def _day_background(day: date, holidays: set[date], dark: bool) -> Style | None:
    if day in holidays:
        return Style(bgcolor=theme.GANTT_HOLIDAY_BG.resolve(dark))
    if day.weekday() >= 5:
        return Style(bgcolor=theme.GANTT_WEEKEND_BG.resolve(dark))
    return None


def hit_mode(x: int, left: int, width: int, cell_width: int) -> DragMode | None:
    """Which drag a press at chart column ``x`` starts on a bar, if any.

    The first day cell grabs the start edge, the last day cell the end edge.
    A one-day bar only moves.
    """
    if not left <= x < left + width:
        return None
    if width <= cell_width:
        return DragMode.MOVE
    if x < left + cell_width:
        return DragMode.RESIZE_START
    if x >= left + width - cell_width:
        return DragMode.RESIZE_END
    return DragMode.MOVE


class _ChartGeometry:
    """Shared day grid of header and view."""

    def __init__(self) -> None:
        self.chart_start: date = date.today()
        self.days: int = 0
        self.cell_width: int = 1
        self.today: date = date.today()
        self.holidays: set[date] = set()

    @property
    def width(self) -> int:
        return self.days * self.cell_width

    def day_at(self, column: int) -> date:
        return self.chart_start + timedelta(days=column // self.cell_width)


class GanttHeader(Widget):
    """Month row, day-number row and today marker, scrolled with the view."""

    DEFAULT_CSS = """
    GanttHeader {
        height: 3;
        background: $background;
    }
    """

    def __init__(self, geometry: _ChartGeometry, **kwargs) -> None:
        super().__init__(**kwargs)
        self._geometry = geometry
        self.scroll_x_offset = 0

    def render_line(self, y: int) -> Strip:
        g = self._geometry
        dark = _is_dark(self)
        width = max(self.size.width, g.width)
        base = Style(bgcolor=theme.GANTT_BASE_BG.resolve(dark))
        header = Style(bold=True, color=theme.GANTT_HEADER.resolve(dark))
        segments: list[Segment] = []

        if y == 0:
            column = 0
            while column < g.width:
                day = g.day_at(column)
                month_end = date(day.year + day.month // 12, day.month % 12 + 1, 1)
                span = min((month_end - day).days * g.cell_width, g.width - column)
                label = day.strftime("%b %Y")[:span].ljust(span)
                segments.append(Segment(label, header + base))
                column += span
        elif y == 1:
            for offset in range(g.days):
                day = g.chart_start + timedelta(days=offset)
                label = day.strftime("%d")[-g.cell_width:].rjust(g.cell_width)
                bg = _day_background(day, g.holidays, dark) or base
                segments.append(Segment(label, header + bg))
        elif y == 2:
            marker = Style(color=theme.GANTT_TODAY_MARKER.resolve(dark))
            today_col = date_to_offset(g.today, g.chart_start, g.cell_width)
            for column in range(g.width):
                if column == today_col:
                    segments.append(Segment("▼", marker + base))
                else:
                    segments.append(Segment("┄", Style(dim=True) + base))
        else:
            return Strip.blank(self.size.width)

        drawn = sum(len(s.text) for s in segments)
        if drawn < width:
            segments.append(Segment(" " * (width - drawn), base))
        return Strip(segments).crop(self.scroll_x_offset, self.scroll_x_offset + self.size.width)


class GanttView(ScrollView):
    """Bars for the visible rows. Leaf bars can be dragged with the mouse."""

    class ScrollXChanged(Message):
        def __init__(self, scroll_x: float) -> None:
            super().__init__()
            self.scroll_x = scroll_x

    class ScrollYChanged(Message):
        def __init__(self, scroll_y: float) -> None:
            super().__init__()
            self.scroll_y = scroll_y

    class BarPressed(Message):
        def __init__(self, item_id: str, mode: DragMode, pointer_x: int) -> None:
            super().__init__()
            self.item_id = item_id
            self.mode = mode
            self.pointer_x = pointer_x

    class BarDragged(Message):
        def __init__(self, pointer_x: int) -> None:
            super().__init__()
            self.pointer_x = pointer_x

    class BarReleased(Message):
        def __init__(self, in_bounds: bool) -> None:
            super().__init__()
            self.in_bounds = in_bounds

    class RowClicked(Message):
        def __init__(self, item_id: str) -> None:
            super().__init__()
            self.item_id = item_id

    DEFAULT_CSS = """
    GanttView {
        height: 1fr;
        background: $background;
    }
    """

    def __init__(self, geometry: _ChartGeometry, **kwargs) -> None:
        super().__init__(**kwargs)
        self._geometry = geometry
        self._rows: list[TreeRow] = []
        self._highlighted_row = -1
        self._preview: tuple[str, date, date] | None = None
        self._pressed = False

    def update_rows(self, rows: list[TreeRow]) -> None:
        self._rows = rows
        self.virtual_size = Size(self._geometry.width, max(len(rows), self.size.height))
        self.refresh()

    def set_highlighted_row(self, index: int) -> None:
        self._highlighted_row = index
        self.refresh()

    def set_preview(self, item_id: str | None, start: date | None = None, end: date | None = None) -> None:
        """Draw ``item_id`` at the given dates until the preview is cleared."""
        if item_id is None or start is None or end is None:
            self._preview = None
        else:
            self._preview = (item_id, start, end)
        self.refresh()

    def watch_scroll_x(self, old: float, new: float) -> None:
        super().watch_scroll_x(old, new)
        self.post_message(self.ScrollXChanged(new))

    def watch_scroll_y(self, old: float, new: float) -> None:
        super().watch_scroll_y(old, new)
        self.post_message(self.ScrollYChanged(new))

    # ── Rendering ──

    def render_line(self, y: int) -> Strip:
        g = self._geometry
        width = max(self.size.width, g.width)
        virtual_y = y + int(self.scroll_y)
        dark = _is_dark(self)

        if not self._rows:
            if y == 0:
                return Strip(Text("  No items", style="dim").render(self.app.console))
            return Strip.blank(self.size.width)

        if virtual_y == self._highlighted_row:
            base = Style(bgcolor=theme.GANTT_HIGHLIGHT_BG.resolve(dark))
            day_bg = None
        else:
            base = Style(bgcolor=theme.GANTT_BASE_BG.resolve(dark))
            day_bg = g.holidays

        row = self._rows[virtual_y] if 0 <= virtual_y < len(self._rows) else None
        span, bar_style, filled = self._bar(row, dark) if row is not None else (None, None, 0)
        today_col = date_to_offset(g.today, g.chart_start, g.cell_width)
        today_style = Style(color=theme.GANTT_TODAY_MARKER.resolve(dark))

        segments: list[Segment] = []
        for column in range(width):
            bg = base
            if day_bg is not None and column < g.width:
                bg = _day_background(g.day_at(column), day_bg, dark) or base
            if span is not None and span[0] <= column < span[0] + span[1]:
                glyph = "█" if column - span[0] < filled else "░"
                segments.append(Segment(glyph, bar_style + bg))
            elif column == today_col and row is not None:
                segments.append(Segment("│", today_style + bg))
            else:
                segments.append(Segment(" ", bg))

        scroll_x = int(self.scroll_x)
        return Strip(segments).crop(scroll_x, scroll_x + self.size.width)

    def _bar(self, row: TreeRow, dark: bool) -> tuple[tuple[int, int] | None, Style, int]:
        g = self._geometry
        item = row.item
        start, end = item.planned_start, item.planned_end
        if self._preview is not None and self._preview[0] == item.id:
            _, start, end = self._preview
            style = Style(color=theme.GANTT_BAR_DRAGGING.resolve(dark), bold=True)
        elif row.has_children:
            style = Style(color=theme.GANTT_BAR_DERIVED.resolve(dark))
        else:
            style = Style(color=theme.STATUS_COLORS[row.display_status].resolve(dark))
        span = bar_span(start, end, g.chart_start, g.cell_width)
        filled = span[1] * item.progress // 100 if span is not None else 0
        return span, style, filled

    # ── Mouse ──

    def _row_at(self, y: int) -> TreeRow | None:
        index = y + int(self.scroll_y)
        if 0 <= index < len(self._rows):
            return self._rows[index]
        return None

    def on_mouse_down(self, event: events.MouseDown) -> None:
        row = self._row_at(event.y)
        if row is None:
            return
        self.post_message(self.RowClicked(row.item.id))
        if row.has_children:
            return
        start, end = draggable_dates(row.item, self._geometry.today)
        span = bar_span(start, end, self._geometry.chart_start, self._geometry.cell_width)
        mode = hit_mode(event.x + int(self.scroll_x), span[0], span[1], self._geometry.cell_width)
        if mode is None:
            return
        self._pressed = True
        self.capture_mouse()
        self.post_message(self.BarPressed(row.item.id, mode, event.screen_x))

    def on_mouse_move(self, event: events.MouseMove) -> None:
        if self._pressed:
            self.post_message(self.BarDragged(event.screen_x))

    def on_mouse_up(self, event: events.MouseUp) -> None:
        if not self._pressed:
            return
        self._pressed = False
        self.release_mouse()
        in_bounds = 0 <= event.x < self.size.width and 0 <= event.y < self.size.height
        self.post_message(self.BarReleased(in_bounds))

    def abort_press(self) -> None:
        if self._pressed:
            self._pressed = False
            self.release_mouse()


class GanttChart(Container):
    """Header and bar view over one shared day grid."""

    DEFAULT_CSS = """
    GanttChart {
        width: 1fr;
        height: 1fr;
    }
    GanttChart #gantt-header {
        height: 3;
    }
    GanttChart #gantt-view {
        height: 1fr;
    }
    """

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self.geometry = _ChartGeometry()
        self._rows: list[TreeRow] = []
        self._project_span: tuple[date | None, date | None] = (None, None)

    def compose(self) -> ComposeResult:
        yield GanttHeader(self.geometry, id="gantt-header")
        yield GanttView(self.geometry, id="gantt-view")

    def configure(
        self,
        *,
        today: date | None = None,
        cell_width: int | None = None,
        holidays: list[date] | None = None,
        roots=None,
    ) -> None:
        """Update the day grid. ``roots`` sets the project window."""
        g = self.geometry
        if today is not None:
            g.today = today
        if cell_width is not None:
            g.cell_width = max(1, cell_width)
        if holidays is not None:
            g.holidays = set(holidays)
        if roots is not None:
            self._project_span = rollup_dates(roots)
        g.chart_start, g.days = chart_range(*self._project_span, g.today)
        self._push()

    def update_rows(self, rows: list[TreeRow]) -> None:
        self._rows = rows
        self._push()

    def _push(self) -> None:
        if not self.is_mounted:
            return
        self.query_one("#gantt-view", GanttView).update_rows(self._rows)
        self.query_one("#gantt-header", GanttHeader).refresh()

    @property
    def view(self) -> GanttView:
        return self.query_one("#gantt-view", GanttView)

    def on_mount(self) -> None:
        self._push()

    def on_gantt_view_scroll_x_changed(self, event: GanttView.ScrollXChanged) -> None:
        header = self.query_one("#gantt-header", GanttHeader)
        header.scroll_x_offset = int(event.scroll_x)
        header.refresh()

    def scroll_to_today(self) -> None:
        g = self.geometry
        column = date_to_offset(g.today, g.chart_start, g.cell_width)
        view = self.view
        view.scroll_to(x=max(0, column - view.size.width // 3), animate=False)

    def sync_scroll_y(self, scroll_y: float) -> None:
        self.view.scroll_to(y=scroll_y, animate=False)
