"""Pick one value, or several people for a bulk assignment."""

from __future__ import annotations

from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, OptionList, SelectionList, Static
from textual.widgets.option_list import Option

_CSS = """
{name} {{
    align: center middle;
}}
#select-container {{
    width: 56;
    max-height: 70%;
    height: auto;
    background: $surface;
    border: thick $primary;
    padding: 1 2;
}}
#select-label {{
    text-style: bold;
    margin-bottom: 1;
}}
#select-list {{
    height: auto;
    max-height: 20;
}}
#select-buttons {{
    align: center middle;
    height: 3;
    margin-top: 1;
}}
#select-buttons Button {{
    margin: 0 1;
}}
"""


class SelectScreen(ModalScreen[str | None]):
    """Choose one of ``options`` given as (value, display) pairs."""

    BINDINGS = [("escape", "cancel", "Cancel")]

    DEFAULT_CSS = _CSS.format(name="SelectScreen")

    def __init__(self, label: str, options: list[tuple[str, str]], initial_value: str = "") -> None:
        super().__init__()
        self._label = label
        self._options = options
        self._initial_value = initial_value

    def compose(self) -> ComposeResult:
        with Vertical(id="select-container"):
            yield Static(self._label, id="select-label")
            yield OptionList(*(Option(f"  {display}", id=value) for value, display in self._options), id="select-list")

    def on_mount(self) -> None:
        option_list = self.query_one("#select-list", OptionList)
        for i, (value, _) in enumerate(self._options):
            if value == self._initial_value:
                option_list.highlighted = i
                break
        option_list.focus()

    def on_option_list_option_selected(self, event: OptionList.OptionSelected) -> None:
        self.dismiss(event.option.id)

    def action_cancel(self) -> None:
        self.dismiss(None)


class PeopleSelectScreen(ModalScreen[list[str] | None]):
    """Tick any number of people. Dismisses with their ids, None on cancel."""

    BINDINGS = [("escape", "cancel", "Cancel")]

    DEFAULT_CSS = _CSS.format(name="PeopleSelectScreen")

    def __init__(self, label: str, people: list[tuple[str, str]], selected: tuple[str, ...] = ()) -> None:
        super().__init__()
        self._label = label
        self._people = people
        self._selected = set(selected)

    def compose(self) -> ComposeResult:
        with Vertical(id="select-container"):
            yield Static(self._label, id="select-label")
            yield SelectionList[str](
                *((name, person_id, person_id in self._selected) for person_id, name in self._people),
                id="select-list",
            )
            with Horizontal(id="select-buttons"):
                yield Button("Assign", variant="primary", id="ok-btn")
                yield Button("Cancel", variant="default", id="cancel-btn")

    def on_mount(self) -> None:
        self.query_one("#select-list", SelectionList).focus()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id != "ok-btn":
            self.dismiss(None)
            return
        chosen = list(self.query_one("#select-list", SelectionList).selected)
        if not chosen:
            self.notify("Select at least one person", severity="warning")
            return
        self.dismiss(chosen)

    def action_cancel(self) -> None:
        self.dismiss(None)
