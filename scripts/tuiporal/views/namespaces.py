"""Namespace list view."""

from rich.text import Text
from textual.app import ComposeResult
from textual.screen import Screen
from textual.widgets import DataTable, Footer, Header, Label

from tuiporal.keymap import NAMESPACE_KEYS
from tuiporal.session import RenderState
from tuiporal.view_state import NamespaceListScreen
from tuiporal.views import bindings_for
from tuiporal.views.widgets import BannerBar, StatusLine


class NamespaceListView(Screen):
    """Namespaces registered on the connected service."""

    BINDINGS = bindings_for(NAMESPACE_KEYS)

    DEFAULT_CSS = """
    NamespaceListView DataTable {
        height: 1fr;
    }

    NamespaceListView .info {
        padding: 0 1;
    }
    """

    def compose(self) -> ComposeResult:
        yield Header()
        yield StatusLine(markup=False)
        yield BannerBar(markup=False)
        table = DataTable(cursor_type="row")
        table.can_focus = False
        yield table
        yield Label("", classes="info", markup=False)
        yield Footer()

    def on_mount(self) -> None:
        self.query_one(DataTable).add_columns("", "Namespace", "State", "Description")
        # is_mounted is only set once this handler returns.
        self.call_after_refresh(self.render_snapshot)

    def render_snapshot(self) -> None:
        self.update_view(self.app.session.snapshot())

    def update_view(self, state: RenderState) -> None:
        if not self.is_mounted or not isinstance(state.screen, NamespaceListScreen):
            return
        self.query_one(StatusLine).show(state)
        self.query_one(BannerBar).show(state.banner)

        table = self.query_one(DataTable)
        table.clear()
        for namespace in state.namespaces:
            marker = "●" if namespace.name == state.namespace else ""
            cells = (marker, namespace.name, namespace.state, namespace.description)
            table.add_row(*(Text(cell) for cell in cells))
        if state.namespaces:
            table.move_cursor(row=state.screen.selection)

        if state.namespaces_loading:
            info = "Loading…"
        elif not state.namespaces:
            info = "No namespaces loaded"
        else:
            info = f"{len(state.namespaces)} namespaces"
        self.query_one(".info", Label).update(info)
