"""Main Textual App for WBS Gantt."""

from __future__ import annotations

import logging
import os
from datetime import date
from pathlib import Path
from typing import Callable

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal
from textual.widgets import Footer, Header, Static

from wbs_gantt import theme
from wbs_gantt.bulk import BulkResult, bulk_assign, bulk_register_tasks
from wbs_gantt.commands import WBSCommandProvider
from wbs_gantt.config import get_holidays, load_config, load_settings, save_config
from wbs_gantt.errors import RepositoryRejected, WBSError
from wbs_gantt.filelock import acquire_lock, release_lock
from wbs_gantt.logging_config import setup_logging
from wbs_gantt.models import (
    DATE_FORMAT_PRESETS,
    Level,
    ProjectConfig,
    Status,
    format_date,
)
from wbs_gantt.renderer import Intent
from wbs_gantt.repository import JsonFileRepository
from wbs_gantt.rollup import weight_total, weights_balanced
from wbs_gantt.screens.confirm_screen import ConfirmScreen
from wbs_gantt.screens.edit_screen import (
    EditScreen,
    progress_validator,
    required_validator,
    weight_validator,
)
from wbs_gantt.screens.help_screen import HelpScreen
from wbs_gantt.screens.select_screen import PeopleSelectScreen, SelectScreen
from wbs_gantt.session import WBSSession
from wbs_gantt.stats import wbs_stats
from wbs_gantt.widgets.gantt_chart import GanttChart, GanttView
from wbs_gantt.widgets.wbs_tree import SyncedDataTable, WBSTreeView

logger = logging.getLogger(__name__)


class WBSApp(App):
    """Tree table on the left, Gantt chart on the right."""

    TITLE = "WBS Gantt"

    CSS = """
    #main-content {
        height: 1fr;
    }
    #status-bar {
        height: 1;
        padding: 0 1;
        background: $panel;
    }
    """

    COMMANDS = App.COMMANDS | {WBSCommandProvider}

    BINDINGS = [
        Binding("question_mark", "help", "Help"),
        Binding("q", "quit_app", "Quit"),
        # Tree view state
        Binding("space", "toggle_expand", "Fold/Unfold", show=False),
        Binding("E", "expand_all", show=False),
        Binding("C", "collapse_all", show=False),
        Binding("1", "show_level(1)", show=False),
        Binding("2", "show_level(2)", show=False),
        Binding("3", "show_level(3)", show=False),
        Binding("4", "show_level(4)", show=False),
        Binding("x", "toggle_check", "Check", show=False),
        # Structure
        Binding("a", "add_child", "Add child"),
        Binding("A", "add_sibling", "Add sibling", show=False),
        Binding("e", "rename", "Rename", show=False),
        Binding("d", "delete_item", "Delete"),
        Binding("H", "promote", show=False),
        Binding("L", "demote", show=False),
        Binding("K", "move_up", show=False),
        Binding("J", "move_down", show=False),
        # Fields
        Binding("p", "edit_progress", "Progress"),
        Binding("s", "edit_status", "Status", show=False),
        Binding("w", "edit_weight", show=False),
        # Bulk
        Binding("b", "bulk_assign", "Assign"),
        Binding("r", "bulk_register", "Register", show=False),
        # Gantt
        Binding("plus", "zoom_in", show=False),
        Binding("minus", "zoom_out", show=False),
        Binding("t", "gantt_today", show=False),
        Binding("escape", "cancel_drag", show=False),
    ]

    def __init__(
        self,
        project_dir: Path,
        no_color: bool = False,
        verbose: bool = False,
        session: WBSSession | None = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        if no_color:
            os.environ["NO_COLOR"] = "1"
        super().__init__()
        self.project_dir = project_dir
        self.no_color = no_color
        self.verbose = verbose
        self.config: ProjectConfig = ProjectConfig()
        self._settings: dict = {}
        self._holidays: list[date] = []
        self._today = today
        self._session = session
        self._scroll_syncing = False
        self._locked = False

    # ── Loading ──

    @property
    def session(self) -> WBSSession:
        if self._session is None:
            raise RuntimeError("project not loaded")
        return self._session

    def compose(self) -> ComposeResult:
        yield Header()
        with Horizontal(id="main-content"):
            yield WBSTreeView(id="wbs-tree")
            yield GanttChart(id="gantt")
        yield Static("", id="status-bar")
        yield Footer()

    async def on_mount(self) -> None:
        await self._load_project()

    async def _load_project(self) -> None:
        self._settings = load_settings(self.project_dir)
        setup_logging(self._settings, self.verbose, self.project_dir)
        theme.load_theme(self.project_dir)
        self._holidays = get_holidays(self._settings)
        self.config = load_config(self.project_dir)
        self.title = f"WBS Gantt - {self.config.name or self.project_dir.name}"

        if acquire_lock(self.project_dir):
            self._locked = True
        else:
            self.notify("Project is open in another process", severity="error")

        if self._session is None:
            self._session = WBSSession(
                JsonFileRepository(self.project_dir),
                self.config.project_id,
                weight_mode=self.config.weight_mode,
                today=self._today,
                cell_width=self.config.cell_width,
            )
        else:
            self._session.set_cell_width(self.config.cell_width)
        self.session.add_change_listener(self._refresh_ui)
        self.session.add_failure_listener(self._on_commit_failed)

        try:
            await self.session.load()
        except (WBSError, OSError) as e:
            logger.error("cannot load %s: %s", self.project_dir, e)
            self.notify(f"Cannot load project: {e}", severity="error", timeout=10)
            return

        tree_view = self.query_one(WBSTreeView)
        tree_view.expansion.expand_to_level(self.session.tree.roots, self.config.expand_level)
        self.query_one(GanttChart).configure(
            today=self.session.today(),
            cell_width=self.config.cell_width,
            holidays=self._holidays,
        )
        self._refresh_ui()

    # ── UI refresh ──

    def _refresh_ui(self) -> None:
        session = self.session
        roots = session.tree.roots
        people = {p.id: p.name for p in session.people}
        self.query_one(GanttChart).configure(today=session.today(), roots=roots)
        self.query_one(WBSTreeView).update_data(roots, session.today(), people, self.config.date_format)
        self._update_status_bar()

    def _update_status_bar(self) -> None:
        session = self.session
        parts = [f"Progress {session.project_progress():.1f}%"]
        roots = session.tree.roots
        if roots and not weights_balanced(roots):
            color = theme.WEIGHT_WARNING.resolve(self.current_theme.dark)
            parts.append(f"[{color}]weights {weight_total(roots)}/100[/{color}]")
        checked = len(self.query_one(WBSTreeView).checked)
        if checked:
            parts.append(f"{checked} checked")
        drag = session.drag
        if drag.dragging:
            start, end = drag.preview()
            parts.append(
                f"{drag.mode.value} {format_date(start, self.config.date_format)}"
                f" .. {format_date(end, self.config.date_format)} ({drag.delta:+d}d)"
            )
        parts.append(f"zoom {session.drag.cell_width}x")
        self.query_one("#status-bar", Static).update(" | ".join(parts))

    def _on_commit_failed(self, error: RepositoryRejected) -> None:
        self.notify(str(error), title="Change rolled back", severity="error", timeout=8)

    def _highlighted(self) -> str | None:
        return self.query_one(WBSTreeView).highlighted_item_id

    def _attempt(self, operation: Callable, *args, **kwargs):
        """Run a session operation, showing refusals as warnings."""
        try:
            return operation(*args, **kwargs)
        except (WBSError, ValueError, RuntimeError) as e:
            self.notify(str(e), severity="warning")
            return None

    def _focus_item(self, item_id: str) -> None:
        session = self.session
        item_id = session.resolve(item_id)
        if item_id not in session.tree:
            return
        tree_view = self.query_one(WBSTreeView)
        tree_view.reveal(session.tree.ancestors_of(item_id))
        self.call_after_refresh(tree_view.move_cursor_to, item_id)

    # ── Tree view events ──

    def on_wbs_tree_view_rows_changed(self, event: WBSTreeView.RowsChanged) -> None:
        self.query_one(GanttChart).update_rows(event.rows)

    def on_wbs_tree_view_cursor_row_changed(self, event: WBSTreeView.CursorRowChanged) -> None:
        self.query_one(GanttChart).view.set_highlighted_row(event.row_index)

    def on_wbs_tree_view_intent_requested(self, event: WBSTreeView.IntentRequested) -> None:
        if event.intent.kind == Intent.REQUEST_EDIT:
            self.action_rename()

    def _reset_scroll_syncing(self) -> None:
        self._scroll_syncing = False

    def on_synced_data_table_scroll_changed(self, event: SyncedDataTable.ScrollChanged) -> None:
        if self._scroll_syncing:
            return
        self._scroll_syncing = True
        self.query_one(GanttChart).sync_scroll_y(event.scroll_y)
        self.set_timer(0.05, self._reset_scroll_syncing)

    def on_gantt_view_scroll_y_changed(self, event: GanttView.ScrollYChanged) -> None:
        if self._scroll_syncing:
            return
        self._scroll_syncing = True
        table = self.query_one(WBSTreeView).query_one("#wbs-data-table", SyncedDataTable)
        table.scroll_to(y=event.scroll_y, animate=False)
        self.set_timer(0.05, self._reset_scroll_syncing)

    # ── Gantt drag ──

    def on_gantt_view_row_clicked(self, event: GanttView.RowClicked) -> None:
        self.query_one(WBSTreeView).move_cursor_to(event.item_id)

    def on_gantt_view_bar_pressed(self, event: GanttView.BarPressed) -> None:
        self._attempt(self.session.begin_drag, event.item_id, event.mode, event.pointer_x)
        if not self.session.drag.dragging:
            self.query_one(GanttChart).view.abort_press()
            return
        self._update_status_bar()

    def on_gantt_view_bar_dragged(self, event: GanttView.BarDragged) -> None:
        drag = self.session.drag
        if not drag.dragging:
            return
        start, end = self.session.drag_to(event.pointer_x)
        self.query_one(GanttChart).view.set_preview(drag.item_id, start, end)
        self._update_status_bar()

    def on_gantt_view_bar_released(self, event: GanttView.BarReleased) -> None:
        if not self.session.drag.dragging:
            return
        self.query_one(GanttChart).view.set_preview(None)
        if self.session.end_drag(event.in_bounds) is None:
            self._update_status_bar()

    def action_cancel_drag(self) -> None:
        if not self.session.drag.dragging:
            return
        self.session.cancel_drag()
        view = self.query_one(GanttChart).view
        view.abort_press()
        view.set_preview(None)
        self._update_status_bar()

    # ── Structure ──

    def action_add_child(self) -> None:
        parent_id = self._highlighted()
        if parent_id is None:
            prompt = "New LEVEL1 item"
        else:
            parent = self.session.tree.get(parent_id)
            if parent.level == Level.LEVEL4:
                self.notify("LEVEL4 work units cannot have children", severity="warning")
                return
            prompt = f"New child of {parent.code} {parent.name}"
        self.push_screen(
            EditScreen(prompt, placeholder="Name", validator=required_validator),
            callback=lambda name: self._on_child_named(parent_id, name),
        )

    def _on_child_named(self, parent_id: str | None, name: str | None) -> None:
        if name is None:
            return
        level = 1 if parent_id is None else int(self.session.tree.get(parent_id).level) + 1
        mutation = self._attempt(self.session.add_child, parent_id, level, name.strip())
        if mutation is not None:
            self._focus_item(mutation.result.item_id)

    def action_add_sibling(self) -> None:
        item_id = self._highlighted()
        if item_id is None:
            self.action_add_child()
            return
        item = self.session.tree.get(item_id)
        self.push_screen(
            EditScreen(f"New {item.level.name} item after {item.code}", placeholder="Name", validator=required_validator),
            callback=lambda name: self._on_sibling_named(item_id, name),
        )

    def _on_sibling_named(self, item_id: str, name: str | None) -> None:
        if name is None:
            return
        mutation = self._attempt(self.session.add_sibling, item_id, name.strip())
        if mutation is not None:
            self._focus_item(mutation.result.item_id)

    def action_rename(self) -> None:
        item_id = self._highlighted()
        if item_id is None:
            return
        item = self.session.tree.get(item_id)
        self.push_screen(
            EditScreen(f"Rename {item.code}", initial_value=item.name, validator=required_validator),
            callback=lambda name: name is not None and self._attempt(self.session.update_fields, item_id, name=name.strip()),
        )

    def action_delete_item(self) -> None:
        item_id = self._highlighted()
        if item_id is None:
            return
        item = self.session.tree.get(item_id)
        below = len(item.all_nodes()) - 1
        detail = f"{below} descendant item(s) will be deleted too." if below else ""
        self.push_screen(
            ConfirmScreen(f"Delete {item.code} {item.name}?", detail=detail),
            callback=lambda confirmed: confirmed and self._attempt(self.session.delete, item_id),
        )

    def _move(self, operation: Callable, item_id: str | None) -> None:
        if item_id is None:
            return
        if self._attempt(operation, item_id) is not None:
            self._focus_item(item_id)

    def action_promote(self) -> None:
        self._move(self.session.promote, self._highlighted())

    def action_demote(self) -> None:
        self._move(self.session.demote, self._highlighted())

    def action_move_up(self) -> None:
        self._move(lambda i: self.session.reorder(i, -1), self._highlighted())

    def action_move_down(self) -> None:
        self._move(lambda i: self.session.reorder(i, 1), self._highlighted())

    # ── Fields ──

    def action_edit_progress(self) -> None:
        item_id = self._highlighted()
        if item_id is None:
            return
        item = self.session.tree.get(item_id)
        if not item.is_leaf:
            self.notify(f"Progress of {item.code} is derived from its children", severity="warning")
            return
        self.push_screen(
            EditScreen(f"Progress of {item.code} (0-100)", initial_value=str(item.progress), validator=progress_validator),
            callback=lambda value: value is not None
            and self._attempt(self.session.set_progress, item_id, int(value.strip().rstrip("%"))),
        )

    def action_edit_status(self) -> None:
        item_id = self._highlighted()
        if item_id is None:
            return
        item = self.session.tree.get(item_id)
        options = [(s.value, s.value.replace("_", " ").title()) for s in Status]
        self.push_screen(
            SelectScreen(f"Status of {item.code}", options, initial_value=item.status.value),
            callback=lambda value: value is not None and self._attempt(self.session.update_fields, item_id, status=value),
        )

    def action_edit_weight(self) -> None:
        item_id = self._highlighted()
        if item_id is None:
            return
        item = self.session.tree.get(item_id)
        if item.level != Level.LEVEL1:
            self.notify("Only LEVEL1 items carry a weight", severity="warning")
            return
        self.push_screen(
            EditScreen(f"Weight of {item.code} (1-100)", initial_value=str(item.weight), validator=weight_validator),
            callback=lambda value: value is not None
            and self._attempt(self.session.update_fields, item_id, weight=int(value.strip())),
        )

    # ── View state ──

    def action_toggle_expand(self) -> None:
        item_id = self._highlighted()
        if item_id is not None:
            self.query_one(WBSTreeView).toggle_expand(item_id)

    def action_expand_all(self) -> None:
        self.query_one(WBSTreeView).expand_all()

    def action_collapse_all(self) -> None:
        self.query_one(WBSTreeView).collapse_all()

    def action_show_level(self, level: int) -> None:
        self.query_one(WBSTreeView).expand_to_level(level)

    def action_toggle_check(self) -> None:
        item_id = self._highlighted()
        if item_id is not None:
            self.query_one(WBSTreeView).toggle_check(item_id)
            self._update_status_bar()

    # ── Bulk ──

    def _selection(self) -> list[str]:
        checked = self.query_one(WBSTreeView).checked_in_order()
        if checked:
            return checked
        item_id = self._highlighted()
        return [item_id] if item_id else []

    def _report(self, verb: str, result: BulkResult) -> None:
        self.notify(f"{verb}: {result.summary()}", severity="information" if result.ok else "warning")
        if result.ok:
            self.query_one(WBSTreeView).clear_checks()

    def action_bulk_assign(self) -> None:
        items = self._selection()
        if not items:
            return
        if not self.session.people:
            self.notify("No people in this project", severity="warning")
            return
        people = [(p.id, p.name or p.id) for p in self.session.people]
        current = self.session.tree.get(items[0]).assignees if len(items) == 1 else ()
        self.push_screen(
            PeopleSelectScreen(f"Assign {len(items)} item(s)", people, selected=current),
            callback=lambda chosen: chosen and self.run_worker(self._bulk_assign(items, chosen), exclusive=True),
        )

    async def _bulk_assign(self, items: list[str], people: list[str]) -> None:
        try:
            result = await bulk_assign(self.session, items, people)
        except (WBSError, ValueError) as e:
            self.notify(str(e), severity="warning")
            return
        self._report("Assigned", result)

    def action_bulk_register(self) -> None:
        items = [i for i in self._selection() if self.session.tree.get(i).level == Level.LEVEL4]
        if not items:
            self.notify("Select LEVEL4 work units to register", severity="warning")
            return
        unassigned = [i for i in items if not self.session.tree.get(i).assignees]
        if unassigned and self.session.people:
            people = [(p.id, p.name or p.id) for p in self.session.people]
            self.push_screen(
                SelectScreen(f"Assignee for {len(unassigned)} unassigned item(s)", people),
                callback=lambda person: person and self.run_worker(self._bulk_register(items, person), exclusive=True),
            )
            return
        self.run_worker(self._bulk_register(items, None), exclusive=True)

    async def _bulk_register(self, items: list[str], fallback: str | None) -> None:
        try:
            result = await bulk_register_tasks(self.session, items, fallback)
        except (WBSError, ValueError) as e:
            self.notify(str(e), severity="warning")
            return
        self._report("Registered", result)

    # ── Gantt ──

    def _set_zoom(self, step: int) -> None:
        if self.session.drag.dragging:
            return
        index = max(0, min(self.config.zoom_index + step, len(self.config.zoom_levels) - 1))
        if index == self.config.zoom_index:
            return
        self.config.zoom_index = index
        self.session.set_cell_width(self.config.cell_width)
        self.query_one(GanttChart).configure(cell_width=self.config.cell_width)
        save_config(self.project_dir, self.config)
        self._update_status_bar()

    def action_zoom_in(self) -> None:
        self._set_zoom(1)

    def action_zoom_out(self) -> None:
        self._set_zoom(-1)

    def action_gantt_today(self) -> None:
        self.query_one(GanttChart).scroll_to_today()

    # ── Misc ──

    def action_stats(self) -> None:
        summary = wbs_stats(self.session.tree.roots, self.session.today())
        self.notify(
            f"{summary.total} work units: {summary.completed} completed, "
            f"{summary.in_progress} in progress, {summary.delayed} delayed. "
            f"Weighted progress {summary.overall_progress:.1f}%",
            title="Statistics",
        )

    def action_init_theme(self) -> None:
        try:
            dest = theme.init_theme(self.project_dir)
            self.notify(f"Created {dest.name}", severity="information")
        except FileExistsError:
            self.notify("Theme file already exists", severity="warning")

    def action_change_date_format(self) -> None:
        self.set_timer(0.1, self._show_date_format_screen)

    def _show_date_format_screen(self) -> None:
        today = self.session.today()
        options = [(fmt, f"{fmt}  ({format_date(today, fmt)})") for fmt in DATE_FORMAT_PRESETS]
        self.push_screen(
            SelectScreen("Date Format", options, initial_value=self.config.date_format),
            callback=self._on_date_format_selected,
        )

    def _on_date_format_selected(self, fmt: str | None) -> None:
        if fmt and fmt != self.config.date_format:
            self.config.date_format = fmt
            save_config(self.project_dir, self.config)
            self._refresh_ui()

    def action_help(self) -> None:
        self.push_screen(HelpScreen(), callback=self._on_help_action)

    def _on_help_action(self, action: str) -> None:
        if action:
            self.call_after_refresh(self.run_action, action)

    async def action_quit_app(self) -> None:
        if self._session is not None:
            await self._session.flush()
        if self._locked:
            release_lock(self.project_dir)
        self.exit()
