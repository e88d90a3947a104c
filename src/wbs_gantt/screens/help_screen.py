"""Keybinding reference. Selecting a row runs its action."""

from __future__ import annotations

from textual.app import ComposeResult
from textual.containers import VerticalScroll
from textual.screen import ModalScreen
from textual.widgets import OptionList, Static
from textual.widgets.option_list import Option

HELP_SECTIONS: list[tuple[str, list[tuple[str, str, str]]]] = [
    (
        "Tree",
        [
            ("↑ / ↓", "Move cursor", ""),
            ("Space", "Expand / collapse", "toggle_expand"),
            ("E / C", "Expand all / collapse all", "expand_all"),
            ("1-4", "Show down to level", ""),
            ("x", "Check / uncheck for bulk actions", "toggle_check"),
        ],
    ),
    (
        "Edit",
        [
            ("a", "Add child", "add_child"),
            ("A", "Add sibling", "add_sibling"),
            ("e", "Rename", "rename"),
            ("d", "Delete with subtree", "delete_item"),
            ("H / L", "Promote / demote", "promote"),
            ("K / J", "Move up / down among siblings", ""),
            ("p", "Set progress (work units)", "edit_progress"),
            ("s", "Set status", "edit_status"),
            ("w", "Set weight (phases)", "edit_weight"),
        ],
    ),
    (
        "Bulk",
        [
            ("b", "Assign people to checked items", "bulk_assign"),
            ("r", "Register checked work units as tasks", "bulk_register"),
        ],
    ),
    (
        "Gantt",
        [
            ("drag bar", "Move dates", ""),
            ("drag bar edge", "Change start or end", ""),
            ("Esc", "Cancel drag", "cancel_drag"),
            ("+ / -", "Zoom in / out", "zoom_in"),
            ("t", "Scroll to today", "gantt_today"),
        ],
    ),
    (
        "App",
        [
            ("Ctrl+P", "Command palette", "command_palette"),
            ("?", "This help", ""),
            ("q", "Quit", "quit_app"),
        ],
    ),
]


class HelpScreen(ModalScreen[str]):
    """Dismisses with the chosen action name, or "" when closed."""

    BINDINGS = [
        ("escape", "close", "Close"),
        ("question_mark", "close", "Close"),
    ]

    DEFAULT_CSS = """
    HelpScreen {
        align: center middle;
    }
    #help-container {
        width: 72;
        max-height: 80%;
        background: $surface;
        border: thick $primary;
        padding: 1 2;
    }
    #help-title {
        text-align: center;
        text-style: bold;
        margin-bottom: 1;
    }
    #help-list {
        height: auto;
        max-height: 100%;
    }
    """

    def compose(self) -> ComposeResult:
        with VerticalScroll(id="help-container"):
            yield Static("[bold]Keybindings[/bold]  (Enter to run)", id="help-title")
            options: list[Option | None] = []
            for heading, entries in HELP_SECTIONS:
                if options:
                    options.append(None)
                options.append(Option(f"[b]{heading}[/b]", disabled=True))
                for key_display, desc, action in entries:
                    options.append(Option(f"  {key_display:<16} {desc}", id=action or None))
            yield OptionList(*options, id="help-list")

    def on_mount(self) -> None:
        self.query_one("#help-list", OptionList).focus()

    def on_option_list_option_selected(self, event: OptionList.OptionSelected) -> None:
        self.dismiss(event.option.id or "")

    def action_close(self) -> None:
        self.dismiss("")
