"""Reusable widgets for the TUI screens."""

from __future__ import annotations

from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Vertical
from textual.screen import ModalScreen
from textual.widgets import Input, Label, Static

from tuiporal.commands import Outcome
from tuiporal.session import OperationView, RenderState
from tuiporal.view_state import Banner


class StatusLine(Static):
    """Connection, namespace and refresh state."""

    DEFAULT_CSS = """
    StatusLine {
        height: 1;
        padding: 0 1;
        background: $boost;
    }
    """

    def show(self, state: RenderState) -> None:
        refresh = f"auto {state.poll_interval:g}s" if state.auto_refresh else "auto off"
        self.update(
            f"Profile: {state.profile}  |  Namespace: {state.namespace}  |  {refresh}"
        )


class BannerBar(Static):
    """Transient or persistent status message."""

    DEFAULT_CSS = """
    BannerBar {
        height: auto;
        padding: 0 1;
        display: none;
    }

    BannerBar.-visible {
        display: block;
    }

    BannerBar.level-error {
        color: $error;
        text-style: bold;
    }

    BannerBar.level-warning {
        color: $warning;
    }

    BannerBar.level-success {
        color: $success;
    }
    """

    def show(self, banner: Banner | None) -> None:
        for level in ("info", "warning", "error", "success"):
            self.remove_class(f"level-{level}")
        if banner is None:
            self.remove_class("-visible")
            self.update("")
            return
        self.add_class("-visible", f"level-{banner.level}")
        self.update(banner.message)


class OperationsPanel(Static):
    """Outcome of recently dispatched commands."""

    DEFAULT_CSS = """
    OperationsPanel {
        height: auto;
        border: solid $primary;
        padding: 0 1;
        display: none;
    }

    OperationsPanel.-visible {
        display: block;
    }
    """

    ICONS = {
        Outcome.PENDING: "…",
        Outcome.SUCCEEDED: "✓",
        Outcome.FAILED: "✗",
    }

    def show(self, operations: tuple[OperationView, ...]) -> None:
        if not operations:
            self.remove_class("-visible")
            self.update("")
            return
        self.add_class("-visible")
        lines = [f"{self.ICONS[op.outcome]} {op.message}" for op in operations]
        self.update("\n".join(lines))


class PromptScreen(ModalScreen):
    """Single-line prompt; dismisses with the entered text or None."""

    BINDINGS = [Binding("escape", "cancel", "Cancel")]

    DEFAULT_CSS = """
    PromptScreen {
        align: center middle;
    }

    PromptScreen > Vertical {
        width: 70;
        height: auto;
        border: thick $primary;
        padding: 1 2;
        background: $surface;
    }

    PromptScreen .title {
        text-style: bold;
        margin-bottom: 1;
    }
    """

    def __init__(self, title: str, placeholder: str = "", value: str = "", **kwargs) -> None:
        super().__init__(**kwargs)
        self._title = title
        self._placeholder = placeholder
        self._value = value

    def compose(self) -> ComposeResult:
        with Vertical():
            yield Label(self._title, classes="title", markup=False)
            yield Input(value=self._value, placeholder=self._placeholder)
            yield Label("Enter to confirm, Esc to cancel")

    def on_mount(self) -> None:
        self.query_one(Input).focus()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        self.dismiss(event.value)

    def action_cancel(self) -> None:
        self.dismiss(None)
