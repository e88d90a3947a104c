"""Tree table of work items based on DataTable."""

from __future__ import annotations

from datetime import date
from typing import Iterable

from rich.text import Text
from textual.app import ComposeResult
from textual.containers import Container
from textual.message import Message
from textual.widgets import DataTable

from wbs_gantt import theme
from wbs_gantt.models import DEFAULT_DATE_FORMAT, Level, WorkItem, format_date
from wbs_gantt.renderer import (
    ExpansionState,
    Intent,
    TreeIntent,
    TreeRow,
    flatten_visible,
    progress_cell,
    status_cell,
    title_cell,
)
from wbs_gantt.rollup import weights_balanced


class SyncedDataTable(DataTable):
    """DataTable that reports vertical scrolling so the chart can follow."""

    class ScrollChanged(Message):
        def __init__(self, scroll_y: float) -> None:
            super().__init__()
            self.scroll_y = scroll_y

    def watch_scroll_y(self, old_value: float, new_value: float) -> None:
        super().watch_scroll_y(old_value, new_value)
        self.post_message(self.ScrollChanged(new_value))


COLUMNS: list[tuple[str, str, int | None]] = [
    ("title", "WBS", 40),
    ("status", "Status", 16),
    ("start", "Start", 12),
    ("end", "End", 12),
    ("progress", "Progress", 14),
    ("weight", "Wt", 4),
    ("assignees", "Assignees", 16),
]


class WBSTreeView(Container):
    """Renders visible rows and reports user requests as intents.

    The widget never edits the tree. Expansion and the checked selection are
    view-local state.
    """

    DEFAULT_CSS = """
    WBSTreeView {
        width: auto;
        height: 1fr;
    }
    WBSTreeView SyncedDataTable {
        width: auto;
        height: 1fr;
        margin-top: 3;
    }
    """

    class IntentRequested(Message):
        def __init__(self, intent: TreeIntent) -> None:
            super().__init__()
            self.intent = intent

    class CursorRowChanged(Message):
        def __init__(self, row_index: int, item_id: str) -> None:
            super().__init__()
            self.row_index = row_index
            self.item_id = item_id

    class RowsChanged(Message):
        def __init__(self, rows: list[TreeRow]) -> None:
            super().__init__()
            self.rows = rows

    def __init__(self, date_format: str = DEFAULT_DATE_FORMAT, **kwargs) -> None:
        super().__init__(**kwargs)
        self.expansion = ExpansionState()
        self.checked: set[str] = set()
        self._roots: tuple[WorkItem, ...] = ()
        self._rows: list[TreeRow] = []
        self._today = date.today()
        self._people: dict[str, str] = {}
        self._date_format = date_format

    def compose(self) -> ComposeResult:
        yield SyncedDataTable(id="wbs-data-table", cursor_type="row", zebra_stripes=True)

    def on_mount(self) -> None:
        table = self.query_one("#wbs-data-table", SyncedDataTable)
        for key, label, width in COLUMNS:
            table.add_column(label, key=key, width=width)
        self._rebuild()

    @property
    def _is_dark(self) -> bool:
        try:
            return self.app.current_theme.dark
        except Exception:
            return True

    @property
    def rows(self) -> list[TreeRow]:
        return list(self._rows)

    @property
    def highlighted_item_id(self) -> str | None:
        table = self.query_one("#wbs-data-table", SyncedDataTable)
        if table.cursor_row is not None and 0 <= table.cursor_row < len(self._rows):
            return self._rows[table.cursor_row].item.id
        return None

    def update_data(
        self,
        roots: Iterable[WorkItem],
        today: date,
        people: dict[str, str] | None = None,
        date_format: str | None = None,
    ) -> None:
        self._roots = tuple(roots)
        self._today = today
        if people is not None:
            self._people = people
        if date_format is not None:
            self._date_format = date_format
        existing = {n.id for root in self._roots for n in root.all_nodes()}
        self.expansion.prune(existing)
        self.checked &= existing
        self._rebuild()

    def _rebuild(self) -> None:
        if not self.is_mounted:
            return
        table = self.query_one("#wbs-data-table", SyncedDataTable)
        saved = self.highlighted_item_id if self._rows else None

        self._rows = flatten_visible(self._roots, self.expansion.ids, self._today)
        table.clear()
        for row in self._rows:
            table.add_row(*self._make_row(row), key=row.item.id)

        if saved is not None:
            self.move_cursor_to(saved)
        self.post_message(self.RowsChanged(list(self._rows)))

    def _make_row(self, row: TreeRow) -> list[Text | str]:
        item = row.item
        dark = self._is_dark
        weight: Text | str = ""
        if item.level == Level.LEVEL1:
            weight = Text(str(item.weight))
            if not weights_balanced(self._roots):
                weight.stylize(theme.WEIGHT_WARNING.resolve(dark))
        return [
            title_cell(row, dark, checked=item.id in self.checked),
            status_cell(row, dark),
            format_date(item.planned_start, self._date_format),
            format_date(item.planned_end, self._date_format),
            progress_cell(item.progress, is_dark=dark),
            weight,
            ", ".join(self._people.get(p, p) for p in item.assignees),
        ]

    # ── View-local state ──

    def move_cursor_to(self, item_id: str) -> bool:
        for index, row in enumerate(self._rows):
            if row.item.id == item_id:
                table = self.query_one("#wbs-data-table", SyncedDataTable)
                table.move_cursor(row=index, animate=False)
                return True
        return False

    def toggle_expand(self, item_id: str) -> None:
        self.expansion.toggle(item_id)
        self._rebuild()

    def expand_all(self) -> None:
        self.expansion.expand_all(self._roots)
        self._rebuild()

    def collapse_all(self) -> None:
        self.expansion.collapse_all()
        self._rebuild()

    def expand_to_level(self, level: int) -> None:
        self.expansion.expand_to_level(self._roots, level)
        self._rebuild()

    def reveal(self, ancestors: Iterable[WorkItem]) -> None:
        self.expansion.reveal(ancestors)
        self._rebuild()

    def toggle_check(self, item_id: str) -> bool:
        if item_id in self.checked:
            self.checked.discard(item_id)
            checked = False
        else:
            self.checked.add(item_id)
            checked = True
        self._rebuild()
        return checked

    def clear_checks(self) -> None:
        self.checked.clear()
        self._rebuild()

    def checked_in_order(self) -> list[str]:
        """Checked ids in pre-order, hidden rows included."""
        return [n.id for root in self._roots for n in root.all_nodes() if n.id in self.checked]

    # ── DataTable events ──

    def on_data_table_row_highlighted(self, event: DataTable.RowHighlighted) -> None:
        event.stop()
        if event.row_key is None or event.row_key.value is None:
            return
        item_id = str(event.row_key.value)
        self.post_message(self.IntentRequested(TreeIntent(Intent.SELECT, item_id)))
        self.post_message(self.CursorRowChanged(event.cursor_row, item_id))

    def on_data_table_row_selected(self, event: DataTable.RowSelected) -> None:
        event.stop()
        if event.row_key is None or event.row_key.value is None:
            return
        item_id = str(event.row_key.value)
        self.post_message(self.IntentRequested(TreeIntent(Intent.REQUEST_EDIT, item_id)))
