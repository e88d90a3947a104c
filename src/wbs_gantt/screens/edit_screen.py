"""Single-value prompt with inline validation."""

from __future__ import annotations

from typing import Callable

from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Static

# Returns an error message, or None when the value is acceptable.
Validator = Callable[[str], "str | None"]


def progress_validator(value: str) -> str | None:
    try:
        number = int(value.strip().rstrip("%"))
    except ValueError:
        return "Enter a whole number"
    if not 0 <= number <= 100:
        return "Progress must be between 0 and 100"
    return None


def weight_validator(value: str) -> str | None:
    try:
        number = int(value.strip())
    except ValueError:
        return "Enter a whole number"
    if not 1 <= number <= 100:
        return "Weight must be between 1 and 100"
    return None


def required_validator(value: str) -> str | None:
    return None if value.strip() else "Value cannot be empty"


class EditScreen(ModalScreen[str | None]):
    """Prompt for one value. Dismisses with None on cancel."""

    BINDINGS = [("escape", "cancel", "Cancel")]

    DEFAULT_CSS = """
    EditScreen {
        align: center middle;
    }
    #edit-container {
        width: 60;
        height: auto;
        background: $surface;
        border: thick $primary;
        padding: 1 2;
    }
    #edit-label {
        margin-bottom: 1;
        text-style: bold;
    }
    #edit-error {
        color: $error;
        height: auto;
    }
    #edit-buttons {
        align: center middle;
        height: 3;
        margin-top: 1;
    }
    #edit-buttons Button {
        margin: 0 1;
    }
    """

    def __init__(
        self,
        label: str,
        initial_value: str = "",
        placeholder: str = "",
        validator: Validator | None = None,
    ) -> None:
        super().__init__()
        self._label = label
        self._initial_value = initial_value
        self._placeholder = placeholder
        self._validator = validator

    def compose(self) -> ComposeResult:
        with Vertical(id="edit-container"):
            yield Static(self._label, id="edit-label")
            yield Input(value=self._initial_value, placeholder=self._placeholder, id="edit-input")
            yield Static("", id="edit-error")
            with Horizontal(id="edit-buttons"):
                yield Button("OK", variant="primary", id="ok-btn")
                yield Button("Cancel", variant="default", id="cancel-btn")

    def on_mount(self) -> None:
        self.query_one("#edit-input", Input).focus()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "ok-btn":
            self._submit(self.query_one("#edit-input", Input).value)
        else:
            self.dismiss(None)

    def on_input_submitted(self, event: Input.Submitted) -> None:
        event.stop()
        self._submit(event.value)

    def _submit(self, value: str) -> None:
        if self._validator is not None:
            error = self._validator(value)
            if error:
                self.query_one("#edit-error", Static).update(error)
                return
        self.dismiss(value)

    def action_cancel(self) -> None:
        self.dismiss(None)
