"""Key binding reference."""

from textual.app import ComposeResult
from textual.screen import Screen
from textual.widgets import Footer, Header, Static

from tuiporal.session import RenderState
from tuiporal.view_state import HelpScreen


class HelpView(Screen):
    DEFAULT_CSS = """
    HelpView Static {
        padding: 1 2;
    }
    """

    def compose(self) -> ComposeResult:
        yield Header()
        yield Static("", markup=False)
        yield Footer()

    def on_mount(self) -> None:
        # is_mounted is only set once this handler returns.
        self.call_after_refresh(self.render_snapshot)

    def render_snapshot(self) -> None:
        self.update_view(self.app.session.snapshot())

    def update_view(self, state: RenderState) -> None:
        if not self.is_mounted or not isinstance(state.screen, HelpScreen):
            return
        lines = state.help_lines[state.screen.scroll :]
        self.query_one(Static).update("\n".join(lines))
