"""Workflow detail view for drilling into a single execution."""

import json

from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Vertical, VerticalScroll
from textual.screen import ModalScreen, Screen
from textual.widgets import Footer, Header, Label, Static

from tuiporal.formatting import STATUS_CLASSES, format_duration, format_timestamp, status_label
from tuiporal.keymap import DETAIL_KEYS
from tuiporal.providers import HistoryEventInfo, WorkflowDetail
from tuiporal.session import RenderState
from tuiporal.view_state import DETAIL_TABS, DetailTab, WorkflowDetailScreen
from tuiporal.views import bindings_for
from tuiporal.views.widgets import BannerBar, OperationsPanel, StatusLine

# Lines of history or pending activities rendered below the scroll offset.
VISIBLE_LINES = 40
# Attribute lines shown in the event modal before truncating.
MAX_ATTRIBUTE_LINES = 50


def summary_lines(detail: WorkflowDetail) -> list[str]:
    summary = detail.summary
    lines = [
        f"Workflow ID:  {summary.workflow_id}",
        f"Run ID:       {summary.run_id}",
        f"Type:         {summary.workflow_type}",
        f"Task Queue:   {summary.task_queue or 'N/A'}",
        f"Started:      {format_timestamp(summary.start_time)}",
        f"Closed:       {format_timestamp(summary.close_time)}",
        f"Duration:     {format_duration(summary.start_time, summary.close_time)}",
        f"History:      {detail.history_length} events",
    ]
    if detail.signal_names:
        lines.append(f"Signals seen: {', '.join(detail.signal_names)}")
    return lines


def history_lines(detail: WorkflowDetail) -> list[str]:
    if not detail.history:
        return ["No history events"]
    return [
        f"{event.event_id:>6}  {format_timestamp(event.event_time)}  {event.event_type}"
        for event in detail.history
    ]


def pending_lines(detail: WorkflowDetail) -> list[str]:
    if not detail.pending_activities:
        return ["No pending activities"]
    return [
        f"{activity.activity_id}  {activity.activity_type}  "
        f"{activity.state}  attempt {activity.attempt}"
        for activity in detail.pending_activities
    ]


def event_detail_lines(event: HistoryEventInfo) -> list[str]:
    lines = [
        f"Event ID:   {event.event_id}",
        f"Event Type: {event.event_type}",
    ]
    if event.event_time is not None:
        lines.append(f"Timestamp:  {format_timestamp(event.event_time)}")
    lines += ["", "Event Attributes:", ""]

    if not event.attributes:
        lines.append("No attributes available")
        return lines
    attributes = json.dumps(event.attributes, indent=2, sort_keys=True).splitlines()
    lines += attributes[:MAX_ATTRIBUTE_LINES]
    if len(attributes) > MAX_ATTRIBUTE_LINES:
        lines.append("... (output truncated)")
    return lines


TAB_RENDERERS = {
    DetailTab.SUMMARY: summary_lines,
    DetailTab.HISTORY: history_lines,
    DetailTab.PENDING: pending_lines,
}


class WorkflowDetailView(Screen):
    """Summary, event history and pending activities of one workflow."""

    BINDINGS = bindings_for(DETAIL_KEYS)

    DEFAULT_CSS = """
    WorkflowDetailView .header {
        text-style: bold;
        padding: 0 1;
    }

    WorkflowDetailView .tabs {
        padding: 0 1;
        color: $text-muted;
    }

    WorkflowDetailView #body {
        height: 1fr;
        border: solid $primary;
        padding: 0 1;
    }

    WorkflowDetailView .status-running {
        color: $warning;
    }

    WorkflowDetailView .status-complete {
        color: $success;
    }

    WorkflowDetailView .status-failed {
        color: $error;
    }

    WorkflowDetailView .status-muted {
        color: $text-muted;
    }
    """

    def compose(self) -> ComposeResult:
        yield Header()
        yield StatusLine(markup=False)
        yield BannerBar(markup=False)
        with Vertical():
            yield Label("", classes="header", markup=False)
            yield Label("", classes="tabs", markup=False)
            yield Static("", id="body", markup=False)
        yield OperationsPanel(markup=False)
        yield Footer()

    def on_mount(self) -> None:
        # is_mounted is only set once this handler returns.
        self.call_after_refresh(self.render_snapshot)

    def render_snapshot(self) -> None:
        self.update_view(self.app.session.snapshot())

    def update_view(self, state: RenderState) -> None:
        if not self.is_mounted or not isinstance(state.screen, WorkflowDetailScreen):
            return
        screen = state.screen
        self.query_one(StatusLine).show(state)
        self.query_one(BannerBar).show(state.banner)
        self.query_one(OperationsPanel).show(state.operations)

        detail = state.detail
        header = self.query_one(".header", Label)
        header.remove_class(*STATUS_CLASSES.values())
        if detail is None or detail.workflow_id != screen.workflow_id:
            header.update(f"{screen.workflow_id}  Loading…")
            self.query_one("#body", Static).update("")
        else:
            status = detail.summary.status
            if status is not None:
                header.add_class(STATUS_CLASSES[status])
            header.update(
                f"{status_label(status, state.detail_pending)}  {detail.workflow_id}"
                + ("  (refreshing)" if state.detail_loading else "")
            )
            lines = TAB_RENDERERS[screen.tab](detail)
            window = lines[screen.scroll : screen.scroll + VISIBLE_LINES]
            if screen.tab == DetailTab.HISTORY and detail.history:
                window = [("▸ " if i == 0 else "  ") + line for i, line in enumerate(window)]
            self.query_one("#body", Static).update("\n".join(window))

        tabs = "  ".join(
            f"▸ {tab.value.title()}" if tab == screen.tab else tab.value.title()
            for tab in DETAIL_TABS
        )
        self.query_one(".tabs", Label).update(tabs)


class EventDetailScreen(ModalScreen):
    """Scrollable attributes of one history event."""

    BINDINGS = [
        Binding("escape,q", "close", "Close"),
        Binding("down,j", "scroll('down')", "Down", show=False),
        Binding("up,k", "scroll('up')", "Up", show=False),
        Binding("pagedown", "scroll('page_down')", "Page down", show=False),
        Binding("pageup", "scroll('page_up')", "Page up", show=False),
    ]

    DEFAULT_CSS = """
    EventDetailScreen {
        align: center middle;
    }

    EventDetailScreen > VerticalScroll {
        width: 80%;
        height: 80%;
        border: thick $primary;
        border-title-color: $accent;
        background: $surface;
        padding: 0 1;
    }
    """

    def __init__(self, event: HistoryEventInfo, **kwargs) -> None:
        super().__init__(**kwargs)
        self.event = event

    def compose(self) -> ComposeResult:
        with VerticalScroll() as body:
            body.border_title = "Event Details | ESC/q to close"
            yield Static("\n".join(event_detail_lines(self.event)), markup=False)

    def action_close(self) -> None:
        self.dismiss()

    def action_scroll(self, direction: str) -> None:
        getattr(self.query_one(VerticalScroll), f"scroll_{direction}")()
