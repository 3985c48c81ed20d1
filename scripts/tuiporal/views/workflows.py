"""Workflow list view."""

from rich.text import Text
from textual.app import ComposeResult
from textual.screen import Screen
from textual.widgets import DataTable, Footer, Header, Input, Label

from tuiporal.events import Action
from tuiporal.formatting import summary_row
from tuiporal.keymap import WORKFLOW_KEYS
from tuiporal.session import RenderState
from tuiporal.view_state import WorkflowListScreen
from tuiporal.views import bindings_for
from tuiporal.views.widgets import BannerBar, OperationsPanel, StatusLine

COLUMNS = ("Status", "Workflow ID", "Type", "Started", "Duration")


class WorkflowListView(Screen):
    """Paged, filterable list of workflow executions."""

    BINDINGS = bindings_for(WORKFLOW_KEYS)

    DEFAULT_CSS = """
    WorkflowListView #search {
        display: none;
    }

    WorkflowListView #search.-visible {
        display: block;
    }

    WorkflowListView DataTable {
        height: 1fr;
    }

    WorkflowListView .query {
        padding: 0 1;
        color: $text-muted;
    }

    WorkflowListView .paging {
        padding: 0 1;
    }
    """

    def compose(self) -> ComposeResult:
        yield Header()
        yield StatusLine(markup=False)
        yield BannerBar(markup=False)
        yield Input(placeholder="Temporal visibility query, e.g. WorkflowType='MyWorkflow'", id="search")
        yield Label("", classes="query", markup=False)
        table = DataTable(cursor_type="row", zebra_stripes=True)
        table.can_focus = False
        yield table
        yield Label("", classes="paging", markup=False)
        yield OperationsPanel(markup=False)
        yield Footer()

    def on_mount(self) -> None:
        self.query_one(DataTable).add_columns(*COLUMNS)
        # is_mounted is only set once this handler returns.
        self.call_after_refresh(self.render_snapshot)

    def render_snapshot(self) -> None:
        self.update_view(self.app.session.snapshot())

    @property
    def searching(self) -> bool:
        return self.query_one("#search", Input).has_class("-visible")

    def open_search(self, text: str) -> None:
        search = self.query_one("#search", Input)
        search.value = text
        search.add_class("-visible")
        search.focus()

    def close_search(self) -> None:
        search = self.query_one("#search", Input)
        search.remove_class("-visible")
        self.set_focus(None)

    def on_input_changed(self, event: Input.Changed) -> None:
        if self.searching:
            self.app.post(Action.SEARCH, text=event.value)

    def on_input_submitted(self, event: Input.Submitted) -> None:
        self.close_search()

    def update_view(self, state: RenderState) -> None:
        if not self.is_mounted or not isinstance(state.screen, WorkflowListScreen):
            return
        self.query_one(StatusLine).show(state)
        self.query_one(BannerBar).show(state.banner)
        self.query_one(OperationsPanel).show(state.operations)

        query = state.query
        parts = []
        if query.status is not None:
            parts.append(f"Filter: {query.status.value}")
        if query.search_text:
            parts.append(f"Search: {query.search_text}")
        self.query_one(".query", Label).update("  ".join(parts) or "All workflows")

        table = self.query_one(DataTable)
        table.clear()
        for row in state.rows:
            table.add_row(*(Text(cell) for cell in summary_row(row.summary, row.pending)))
            if row.selected:
                table.move_cursor(row=table.row_count - 1)

        if state.list_loading:
            status = "Loading…"
        elif state.list_stale:
            status = "Waiting for input…"
        elif not state.rows:
            status = "No workflows found"
        else:
            status = f"{len(state.rows)} workflows"
        arrows = ("← " if state.has_prev_page else "") + ("→" if state.has_next_page else "")
        self.query_one(".paging", Label).update(f"Page {state.page_number}  {arrows}  {status}")
