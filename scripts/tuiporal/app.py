"""
Tuiporal TUI Application.

Main entry point for the terminal user interface and the one-shot
printer.

Usage:
    tuiporal                    Launch the interactive dashboard
    tuiporal --once             Print the first page of workflows and exit
    tuiporal --once --json      Same, as JSON
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import asdict, replace
from pathlib import Path

from textual.app import App
from textual.binding import Binding
from textual.screen import ModalScreen, Screen

from tuiporal.client import RemoteClientFacade
from tuiporal.commands import DEFAULT_TERMINATE_REASON
from tuiporal.config import Config, load_config
from tuiporal.errors import ConfigError, ProfileError, RemoteError
from tuiporal.events import Action, InputEvent
from tuiporal.formatting import summary_row
from tuiporal.keymap import GLOBAL_KEYS, MOVE_KEYS
from tuiporal.log import configure_logging
from tuiporal.profiles import ProfileStore
from tuiporal.providers import ListQuery
from tuiporal.session import Session
from tuiporal.view_state import (
    HelpScreen,
    NamespaceListScreen,
    WorkflowDetailScreen,
    WorkflowListScreen,
)
from tuiporal.views import bindings_for
from tuiporal.views.help import HelpView
from tuiporal.views.namespaces import NamespaceListView
from tuiporal.views.widgets import PromptScreen
from tuiporal.views.workflow_detail import EventDetailScreen, WorkflowDetailView
from tuiporal.views.workflows import WorkflowListView

logger = logging.getLogger(__name__)

VIEWS: dict[type, type[Screen]] = {
    WorkflowListScreen: WorkflowListView,
    WorkflowDetailScreen: WorkflowDetailView,
    NamespaceListScreen: NamespaceListView,
    HelpScreen: HelpView,
}


class TuiporalApp(App):
    """Main Tuiporal TUI application."""

    TITLE = "Tuiporal"
    SUB_TITLE = "Temporal Workflow Monitor"

    CSS = """
    Screen {
        background: $surface;
    }
    """

    BINDINGS = bindings_for(GLOBAL_KEYS) + bindings_for(MOVE_KEYS) + [
        Binding("ctrl+c", "core('quit')", "Quit", show=False, priority=True),
    ]

    def __init__(self, session: Session, **kwargs) -> None:
        super().__init__(**kwargs)
        self.session = session
        self.session.on_change = self.refresh_view
        self._view: Screen | None = None

    def on_mount(self) -> None:
        """Called when app is mounted."""
        self._view = WorkflowListView()
        self.push_screen(self._view)
        self.session.start()

    def on_unmount(self) -> None:
        self.session.stop()

    def post(self, action: Action, text: str | None = None, payload=None) -> None:
        self.session.post(InputEvent(action, text=text, payload=payload))

    def refresh_view(self) -> None:
        """Bring the visible screen in line with the session snapshot."""
        if not self.session.running:
            self.exit()
            return
        # Screen changes wait until an open prompt is dismissed.
        if isinstance(self.screen, ModalScreen):
            return

        state = self.session.snapshot()
        view_type = VIEWS[type(state.screen)]
        if isinstance(self._view, view_type):
            self._view.update_view(state)
        else:
            self._view = view_type()
            self.switch_screen(self._view)

    def action_core(self, name: str) -> None:
        """Forward a key binding to the session, prompting first where needed."""
        action = Action(name)
        state = self.session.snapshot()

        if action == Action.SEARCH and isinstance(self._view, WorkflowListView):
            self._view.open_search(state.query.search_text)
        elif action == Action.ESCAPE and isinstance(self._view, WorkflowListView) and self._view.searching:
            self._view.close_search()
        elif action == Action.ENTER and state.selected_event is not None:
            self.push_screen(EventDetailScreen(state.selected_event), lambda _: self.refresh_view())
        elif action == Action.TERMINATE:
            self._prompt_terminate(state)
        elif action == Action.CANCEL:
            self._prompt_cancel(state)
        elif action == Action.SIGNAL:
            self._prompt_signal(state)
        else:
            self.post(action)

    def _target(self, state) -> str | None:
        if isinstance(state.screen, WorkflowDetailScreen):
            return state.screen.workflow_id
        return None

    def _prompt_terminate(self, state) -> None:
        workflow_id = self._target(state)
        if workflow_id is None:
            return

        def submitted(reason: str | None) -> None:
            if reason is not None:
                self.post(Action.TERMINATE, text=reason.strip() or DEFAULT_TERMINATE_REASON)
            self.refresh_view()

        self.push_screen(
            PromptScreen(f"Terminate {workflow_id}? Reason:", value=DEFAULT_TERMINATE_REASON),
            submitted,
        )

    def _prompt_cancel(self, state) -> None:
        workflow_id = self._target(state)
        if workflow_id is None:
            return

        def submitted(answer: str | None) -> None:
            if answer is not None and answer.strip().lower() in ("y", "yes"):
                self.post(Action.CANCEL)
            self.refresh_view()

        self.push_screen(PromptScreen(f"Cancel {workflow_id}? (y/n)", placeholder="y"), submitted)

    def _prompt_signal(self, state) -> None:
        workflow_id = self._target(state)
        if workflow_id is None:
            return
        known = state.detail.signal_names if state.detail is not None else ()
        hint = f"Known: {', '.join(known)}" if known else "signal-name {\"json\": \"payload\"}"

        def submitted(value: str | None) -> None:
            if value is not None:
                name, _, raw = value.strip().partition(" ")
                try:
                    payload = json.loads(raw) if raw.strip() else None
                except json.JSONDecodeError as e:
                    self.notify(f"Invalid JSON payload: {e}", severity="error")
                else:
                    self.post(Action.SIGNAL, text=name, payload=payload)
            self.refresh_view()

        self.push_screen(
            PromptScreen(f"Signal {workflow_id}: name [JSON payload]", placeholder=hint),
            submitted,
        )


def build_session(config: Config, profile: str | None, namespace: str | None,
                  auto_refresh: bool = True) -> Session:
    """Profile store, facade and session for the given overrides."""
    store: ProfileStore = config.profile_store()
    if profile:
        store.switch(profile)

    settings = config.settings
    if not auto_refresh:
        settings = replace(settings, auto_refresh=False)

    facade = RemoteClientFacade(
        store.active,
        namespace=namespace,
        request_timeout=settings.request_timeout,
        max_consecutive_failures=settings.max_consecutive_failures,
        history_limit=settings.history_limit,
    )
    return Session(store, facade, settings)


async def print_once(session: Session, as_json: bool) -> int:
    """Print the first page of workflows and exit."""
    query = ListQuery(page_size=session.settings.page_size)
    try:
        page = await session.service.list_workflows(query)
    except RemoteError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if as_json:
        rows = []
        for summary in page.items:
            row = asdict(summary)
            row["status"] = summary.status.value if summary.status else None
            rows.append(row)
        print(json.dumps(
            {
                "profile": session.store.active.name,
                "namespace": session.service.namespace,
                "workflows": rows,
                "has_next_page": page.has_next,
            },
            indent=2,
            default=str,
        ))
        return 0

    print(f"Profile: {session.store.active.name}")
    print(f"Namespace: {session.service.namespace}")
    print()
    if not page.items:
        print("No workflows found.")
        return 0
    for summary in page.items:
        status, workflow_id, workflow_type, started, duration = summary_row(summary)
        print(f"  {status:<16} {workflow_id:<40} {workflow_type:<24} {started:>10} {duration:>8}")
    if page.has_next:
        print()
        print("More workflows available; open the dashboard to page through them.")
    return 0


def run(session: Session) -> None:
    """Run the TUI application."""
    app = TuiporalApp(session)
    app.run()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Tuiporal: terminal dashboard for Temporal")
    parser.add_argument("--config", type=Path, help="Path to config file")
    parser.add_argument("--profile", help="Connection profile to start with")
    parser.add_argument("--namespace", help="Namespace override for the starting profile")
    parser.add_argument("--no-auto-refresh", action="store_true", help="Start with auto-refresh off")
    parser.add_argument("--log-level", default="INFO", help="Log level (default: INFO)")
    parser.add_argument("--log-file", type=Path, help="Log file path")
    parser.add_argument("--once", action="store_true", help="Print workflows once and exit (no TUI)")
    parser.add_argument("--json", action="store_true", help="Print workflows as JSON and exit")
    args = parser.parse_args(argv)

    log_file = configure_logging(args.log_level, args.log_file)

    try:
        config = load_config(args.config)
        session = build_session(config, args.profile, args.namespace, not args.no_auto_refresh)
    except (ConfigError, ProfileError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    logger.info(
        "Starting",
        extra={"profile": session.store.active.name, "log_file": str(log_file)},
    )

    if args.once or args.json:
        return asyncio.run(print_once(session, args.json))

    run(session)
    return 0


if __name__ == "__main__":
    sys.exit(main())
