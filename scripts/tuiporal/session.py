"""
Session: the single-writer core.

Every state change goes through ``Session.apply``, fed from one event
queue. Network work happens in asyncio tasks owned by the polling engine
and the command dispatcher; those tasks only ever post events back.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

from tuiporal.commands import Cancel, CommandDispatcher, Outcome, Signal, Terminate
from tuiporal.config import Settings
from tuiporal.errors import AuthError, CommandRejected, ProfileError
from tuiporal.events import (
    NAVIGATION_ACTIONS,
    Action,
    CommandResolved,
    DataArrived,
    DataFailed,
    InputEvent,
    RefreshDue,
    RequestKind,
    Tick,
)
from tuiporal.keymap import help_lines
from tuiporal.polling import PollingEngine
from tuiporal.profiles import ProfileStore
from tuiporal.providers import (
    ConnectionManager,
    HistoryEventInfo,
    ListQuery,
    NamespaceInfo,
    WorkflowDetail,
    WorkflowSummary,
)
from tuiporal.view_state import (
    Banner,
    NamespaceListScreen,
    ScreenState,
    ViewState,
    WorkflowDetailScreen,
    WorkflowListScreen,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RowView:
    summary: WorkflowSummary
    pending: bool = False
    selected: bool = False


@dataclass(frozen=True)
class OperationView:
    workflow_id: str
    kind: str
    outcome: Outcome
    message: str


@dataclass(frozen=True)
class RenderState:
    """Read-only snapshot pulled by the render surface."""

    screen: ScreenState
    profile: str
    profiles: tuple[str, ...]
    namespace: str
    query: ListQuery
    rows: tuple[RowView, ...]
    page_number: int
    has_next_page: bool
    has_prev_page: bool
    list_loading: bool
    list_stale: bool
    detail: WorkflowDetail | None
    detail_loading: bool
    detail_pending: bool
    namespaces: tuple[NamespaceInfo, ...]
    namespaces_loading: bool
    banner: Banner | None
    auto_refresh: bool
    poll_interval: float
    operations: tuple[OperationView, ...]
    help_lines: tuple[str, ...]
    selected_event: HistoryEventInfo | None = None


class Session:
    """Wires the profile store, facade, view, poller and dispatcher."""

    def __init__(
        self,
        store: ProfileStore,
        service: ConnectionManager,
        settings: Settings | None = None,
        *,
        on_change: Callable[[], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.service = service
        self.settings = settings or Settings()
        self.on_change = on_change
        self.running = True

        self.view = ViewState(page_size=self.settings.page_size, clock=clock)
        self.poller = PollingEngine(
            self.view,
            service,
            self.post,
            interval=self.settings.poll_interval,
            enabled=self.settings.auto_refresh,
            debounce=self.settings.search_debounce,
            detail_stale_after=self.settings.detail_stale_after,
            timeout=self.settings.request_timeout,
            connection=lambda: self.service.generation,
        )
        self.dispatcher = CommandDispatcher(
            service,
            self.post,
            retention=self.settings.operation_retention,
            clock=clock,
            timeout=self.settings.request_timeout,
            connection=lambda: self.service.generation,
        )

        self._events: asyncio.Queue = asyncio.Queue()
        self._consumer: asyncio.Task | None = None

    # -- event loop ----------------------------------------------------------

    def post(self, event: Any) -> None:
        self._events.put_nowait(event)

    def start(self) -> None:
        """Begin consuming events, start the timer and load the first page."""
        if self._consumer is None:
            self._consumer = asyncio.create_task(self._consume())
        self.poller.start()
        self.poller.refresh()

    def stop(self) -> None:
        self.poller.stop()
        if self._consumer is not None:
            self._consumer.cancel()
            self._consumer = None

    async def _consume(self) -> None:
        while True:
            event = await self._events.get()
            self.apply(event)

    async def settle(self) -> None:
        """Wait for outstanding work and apply every resulting event."""
        while True:
            while not self._events.empty():
                self.apply(self._events.get_nowait())
            pending = self.poller.tasks | self.dispatcher.tasks
            if not pending:
                if self._events.empty():
                    return
                continue
            await asyncio.wait(pending)

    def apply(self, event: Any) -> None:
        """Apply one event. The only place state is mutated."""
        if isinstance(event, InputEvent):
            self._on_input(event)
        elif isinstance(event, (DataArrived, DataFailed)):
            self._on_data(event)
        elif isinstance(event, CommandResolved):
            self._on_command_resolved(event)
        elif isinstance(event, Tick):
            self.dispatcher.prune()
            self.poller.on_tick()
        elif isinstance(event, RefreshDue):
            self.poller.refresh()
        else:
            raise TypeError(f"Unknown event: {event!r}")

        if self.on_change is not None:
            self.on_change()

    # -- input -----------------------------------------------------------------

    def _on_input(self, event: InputEvent) -> None:
        action = event.action
        view = self.view

        if action in NAVIGATION_ACTIONS:
            view.navigate(action)
        elif action == Action.ENTER:
            if isinstance(view.screen, WorkflowListScreen):
                if view.open_selected() is not None:
                    self.poller.refresh()
            elif isinstance(view.screen, NamespaceListScreen):
                namespace = view.selected_namespace()
                if namespace is not None:
                    self.switch_namespace(namespace.name)
        elif action == Action.SHOW_NAMESPACES:
            view.show_namespaces()
            if not view.namespaces:
                self.poller.refresh()
        elif action == Action.SEARCH:
            if view.set_search(event.text or ""):
                self.poller.schedule()
        elif action == Action.CYCLE_FILTER:
            view.cycle_filter()
            self.poller.schedule()
        elif action == Action.CLEAR_QUERY:
            if view.clear_query():
                self.poller.schedule()
        elif action == Action.NEXT_PAGE:
            if view.next_page():
                self.poller.refresh()
        elif action == Action.PREV_PAGE:
            if view.prev_page():
                self.poller.refresh()
        elif action == Action.REFRESH:
            if isinstance(view.screen, WorkflowDetailScreen):
                view.mark_detail_stale()
            self.poller.refresh()
        elif action == Action.TOGGLE_AUTO_REFRESH:
            enabled = self.poller.toggle()
            state = "enabled" if enabled else "disabled"
            view.notify(f"Auto-refresh {state}")
        elif action == Action.RECONNECT:
            self.reconnect()
        elif action in (Action.TERMINATE, Action.CANCEL, Action.SIGNAL):
            self._submit(event)
        elif action == Action.SWITCH_PROFILE:
            self.switch_profile(event.text or self.store.next_name())
        elif action == Action.DISMISS:
            self.dispatcher.dismiss()
        elif action == Action.QUIT:
            self.running = False

    def _submit(self, event: InputEvent) -> None:
        if event.action == Action.TERMINATE:
            command = Terminate(reason=event.text) if event.text else Terminate()
        elif event.action == Action.CANCEL:
            command = Cancel()
        else:
            command = Signal(name=(event.text or "").strip(), payload=event.payload)

        try:
            op = self.dispatcher.submit(self.view.selected_workflow(), command)
        except CommandRejected as e:
            self.view.notify(str(e), "warning")
            return
        self.view.notify(op.message)

    # -- async results ---------------------------------------------------------

    def _on_data(self, event: DataArrived | DataFailed) -> None:
        request = event.request
        self.poller.complete(request)

        if request.connection != self.service.generation:
            logger.debug(
                "Discarding result from superseded connection",
                extra={"kind": request.kind.value, "connection": request.connection},
            )
            return

        if isinstance(event, DataArrived):
            merged = self.view.merge(request, event.result)
            if merged and request.kind in (RequestKind.DETAIL, RequestKind.WORKFLOW):
                self.dispatcher.mark_refreshed(event.result.workflow_id)
        else:
            self.view.fail(request, event.error)
            if request.kind == RequestKind.WORKFLOW:
                self.dispatcher.mark_refreshed(request.key[0])

    def _on_command_resolved(self, event: CommandResolved) -> None:
        if event.connection != self.service.generation:
            return
        op = self.dispatcher.resolve(event)
        if op is None:
            return

        if event.error is None:
            self.view.notify(op.message, "success")
            # Remote truth wins: re-read the workflow instead of assuming a status.
            self.view.mark_detail_stale()
            self.poller.fetch(RequestKind.WORKFLOW, (op.workflow_id, op.run_id))
        elif isinstance(event.error, AuthError):
            self.view.show_error(event.error)
        else:
            self.view.notify(op.message, "error")

    # -- connection changes ----------------------------------------------------

    def _reset_connection(self, namespace: str | None = None) -> None:
        # Bumping the connection generation first makes every in-flight
        # result from the old target stale.
        self.service.reconnect(self.store.active, namespace)
        self.poller.clear()
        self.dispatcher.clear()
        self.view.reset()
        self.poller.refresh()

    def switch_profile(self, name: str) -> bool:
        """Switch profiles; on failure nothing changes."""
        try:
            self.store.switch(name)
        except ProfileError as e:
            self.view.notify(str(e), "error")
            return False
        self._reset_connection()
        self.view.notify(f"Switched to profile {name}")
        return True

    def switch_namespace(self, namespace: str) -> None:
        logger.info("Switching namespace", extra={"namespace": namespace})
        self._reset_connection(namespace)
        self.view.notify(f"Switched to namespace {namespace}")

    def reconnect(self) -> None:
        """Rebuild the connection for the active profile and refresh."""
        self.service.reconnect(self.store.active, self.service.namespace)
        for request in self.poller.clear():
            self.view.abandon(request)
        if self.view.banner is not None and self.view.banner.persistent:
            self.view.banner = None
        self.poller.refresh()

    # -- rendering -------------------------------------------------------------

    def snapshot(self) -> RenderState:
        view = self.view
        selected = view.list_screen.selection
        rows = tuple(
            RowView(
                summary=row,
                pending=self.dispatcher.is_pending(row.workflow_id),
                selected=index == selected,
            )
            for index, row in enumerate(view.rows)
        )

        detail = view.detail
        detail_pending = False
        detail_loading = False
        if isinstance(view.screen, WorkflowDetailScreen):
            detail_loading = detail is None or view.is_loading(RequestKind.DETAIL, view.screen.key)
            detail_pending = self.dispatcher.is_pending(view.screen.workflow_id)

        return RenderState(
            screen=view.screen,
            profile=self.store.active.name,
            profiles=tuple(self.store.names),
            namespace=self.service.namespace,
            query=view.list_screen.query,
            rows=rows,
            page_number=view.page_number,
            has_next_page=view.has_next_page,
            has_prev_page=view.has_prev_page,
            list_loading=view.is_loading(RequestKind.LIST),
            list_stale=view.list_stale,
            detail=detail,
            detail_loading=detail_loading,
            detail_pending=detail_pending,
            namespaces=view.namespaces,
            namespaces_loading=view.is_loading(RequestKind.NAMESPACES),
            banner=view.banner,
            auto_refresh=self.poller.enabled,
            poll_interval=self.poller.interval,
            operations=tuple(
                OperationView(op.workflow_id, op.kind, op.outcome, op.message)
                for op in self.dispatcher.operations
            ),
            help_lines=tuple(help_lines()),
            selected_event=view.selected_event(),
        )
