"""Command Palette provider for WBS Gantt."""

from __future__ import annotations

from dataclasses import dataclass

from textual.command import Hit, Hits, Provider


@dataclass(frozen=True)
class CommandDef:
    """A single command entry for the palette."""

    display: str
    action: str
    help: str = ""
    category: str = ""
    needs_item: bool = True  # hidden while the tree is empty


COMMANDS: list[CommandDef] = [
    # -- Edit --
    CommandDef("Add Child", "add_child", "Add an item under the selected one (a)", "Edit", needs_item=False),
    CommandDef("Add Sibling", "add_sibling", "Add an item after the selected one (A)", "Edit"),
    CommandDef("Rename", "rename", "Rename the selected item (e)", "Edit"),
    CommandDef("Delete", "delete_item", "Delete the selected item and its subtree (d)", "Edit"),
    CommandDef("Promote", "promote", "Move up one level, after the parent (H)", "Edit"),
    CommandDef("Demote", "demote", "Move under the preceding sibling (L)", "Edit"),
    CommandDef("Move Up", "move_up", "Move before the previous sibling (K)", "Edit"),
    CommandDef("Move Down", "move_down", "Move after the next sibling (J)", "Edit"),
    CommandDef("Set Progress", "edit_progress", "Progress of a work unit (p)", "Edit"),
    CommandDef("Set Status", "edit_status", "Status of the selected item (s)", "Edit"),
    CommandDef("Set Weight", "edit_weight", "Weight of a LEVEL1 item (w)", "Edit"),
    # -- Bulk --
    CommandDef("Check Item", "toggle_check", "Add or remove the item from the checked set (x)", "Bulk"),
    CommandDef("Assign People", "bulk_assign", "Assign people to checked items (b)", "Bulk"),
    CommandDef("Register Tasks", "bulk_register", "Register checked work units as tasks (r)", "Bulk"),
    # -- View --
    CommandDef("Fold/Unfold", "toggle_expand", "Toggle the selected item (Space)", "View"),
    CommandDef("Expand All", "expand_all", "Show every level (E)", "View"),
    CommandDef("Collapse All", "collapse_all", "Show LEVEL1 items only (C)", "View"),
    CommandDef("Statistics", "stats", "Work unit counts and weighted progress", "View"),
    CommandDef("Change Date Format", "change_date_format", "Switch date display format", "View", needs_item=False),
    CommandDef("Init Theme", "init_theme", "Copy the default theme into the project", "View", needs_item=False),
    CommandDef("Help", "help", "Show keybindings (?)", "View", needs_item=False),
    # -- Gantt --
    CommandDef("Gantt: Zoom In", "zoom_in", "Wider day cells (+)", "Gantt", needs_item=False),
    CommandDef("Gantt: Zoom Out", "zoom_out", "Narrower day cells (-)", "Gantt", needs_item=False),
    CommandDef("Gantt: Go to Today", "gantt_today", "Scroll the chart to today (t)", "Gantt", needs_item=False),
    CommandDef("Quit", "quit_app", "Quit application (q)", "App", needs_item=False),
]


class WBSCommandProvider(Provider):
    """Textual Command Palette provider for WBS Gantt actions."""

    @property
    def _has_items(self) -> bool:
        try:
            return len(self.app.session.tree) > 0  # type: ignore[attr-defined]
        except (AttributeError, RuntimeError):
            return False

    def _available(self) -> list[CommandDef]:
        has_items = self._has_items
        return [cmd for cmd in COMMANDS if has_items or not cmd.needs_item]

    async def discover(self) -> Hits:
        for cmd in self._available():
            yield Hit(1.0, cmd.display, self._make_callback(cmd.action), help=cmd.help)

    async def search(self, query: str) -> Hits:
        """Fuzzy match against display name, help text and category."""
        query = query.lower()
        for cmd in self._available():
            searchable = f"{cmd.display} {cmd.help} {cmd.category}".lower()
            if self._fuzzy_match(query, searchable):
                yield Hit(
                    self._score(query, cmd.display.lower()),
                    cmd.display,
                    self._make_callback(cmd.action),
                    help=cmd.help,
                )

    def _make_callback(self, action: str):
        async def callback() -> None:
            await self.app.run_action(action)

        return callback

    @staticmethod
    def _fuzzy_match(query: str, text: str) -> bool:
        """All characters of query appear in order in text."""
        it = iter(text)
        return all(ch in it for ch in query)

    @staticmethod
    def _score(query: str, text: str) -> float:
        if not query:
            return 0.5
        if text == query:
            return 1.0
        if text.startswith(query):
            return 0.9
        if query in text:
            return 0.8
        return 0.7
