"""
View state machine.

Owns the current screen, the cached workflow/namespace data shown on it,
and the rules for merging asynchronous results into that cache.
Navigation is a pure function of (screen, action, bounds); everything
that needs the network is left to the session.
"""

from __future__ import annotations

import itertools
import logging
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Union

from tuiporal.errors import AuthError, RemoteError, RemoteRejected
from tuiporal.events import NAVIGATION_ACTIONS, Action, FetchRequest, RequestKind
from tuiporal.keymap import help_lines
from tuiporal.providers import (
    STATUS_FILTER_CYCLE,
    HistoryEventInfo,
    ListQuery,
    NamespaceInfo,
    Page,
    WorkflowDetail,
    WorkflowSummary,
)

logger = logging.getLogger(__name__)

# Rows moved by PAGE_UP / PAGE_DOWN.
PAGE_STEP = 10


class DetailTab(str, Enum):
    SUMMARY = "summary"
    HISTORY = "history"
    PENDING = "pending"


DETAIL_TABS = tuple(DetailTab)


@dataclass(frozen=True)
class WorkflowListScreen:
    query: ListQuery = field(default_factory=ListQuery)
    page_number: int = 1
    selection: int = 0


@dataclass(frozen=True)
class WorkflowDetailScreen:
    workflow_id: str
    run_id: str | None = None
    tab: DetailTab = DetailTab.SUMMARY
    scroll: int = 0

    @property
    def key(self) -> tuple[str, str | None]:
        return (self.workflow_id, self.run_id)


@dataclass(frozen=True)
class NamespaceListScreen:
    selection: int = 0


@dataclass(frozen=True)
class HelpScreen:
    scroll: int = 0
    previous: Any = None


ScreenState = Union[WorkflowListScreen, WorkflowDetailScreen, NamespaceListScreen, HelpScreen]


@dataclass(frozen=True)
class NavContext:
    """Row counts of the data currently held, used to clamp movement."""

    list_screen: WorkflowListScreen
    list_rows: int = 0
    detail_rows: dict = field(default_factory=dict)
    namespace_rows: int = 0
    help_rows: int = 0


@dataclass(frozen=True)
class Banner:
    """Status line shown above the active screen."""

    level: str
    message: str
    kind: str = "info"

    @property
    def persistent(self) -> bool:
        return self.kind == "auth"


def _move(position: int, action: Action, rows: int) -> int:
    last = max(rows - 1, 0)
    if action == Action.UP:
        position -= 1
    elif action == Action.DOWN:
        position += 1
    elif action == Action.PAGE_UP:
        position -= PAGE_STEP
    elif action == Action.PAGE_DOWN:
        position += PAGE_STEP
    elif action == Action.TOP:
        position = 0
    elif action == Action.BOTTOM:
        position = last
    return min(max(position, 0), last)


def navigate(screen: ScreenState, action: Action, ctx: NavContext) -> ScreenState:
    """Pure transition for navigation-only actions.

    Anything outside NAVIGATION_ACTIONS leaves the screen unchanged.
    """
    if action not in NAVIGATION_ACTIONS:
        return screen

    if action == Action.SHOW_HELP:
        if isinstance(screen, HelpScreen):
            return screen.previous or ctx.list_screen
        return HelpScreen(previous=screen)

    if isinstance(screen, WorkflowListScreen):
        if action in (Action.ESCAPE, Action.SHOW_WORKFLOWS, Action.NEXT_TAB, Action.PREV_TAB):
            return screen
        return replace(screen, selection=_move(screen.selection, action, ctx.list_rows))

    if isinstance(screen, WorkflowDetailScreen):
        if action in (Action.ESCAPE, Action.SHOW_WORKFLOWS):
            return ctx.list_screen
        if action in (Action.NEXT_TAB, Action.PREV_TAB):
            step = 1 if action == Action.NEXT_TAB else -1
            index = (DETAIL_TABS.index(screen.tab) + step) % len(DETAIL_TABS)
            return replace(screen, tab=DETAIL_TABS[index], scroll=0)
        rows = ctx.detail_rows.get(screen.tab, 0)
        return replace(screen, scroll=_move(screen.scroll, action, rows))

    if isinstance(screen, NamespaceListScreen):
        if action in (Action.ESCAPE, Action.SHOW_WORKFLOWS):
            return ctx.list_screen
        if action in (Action.NEXT_TAB, Action.PREV_TAB):
            return screen
        return replace(screen, selection=_move(screen.selection, action, ctx.namespace_rows))

    if isinstance(screen, HelpScreen):
        if action == Action.ESCAPE:
            return screen.previous or ctx.list_screen
        if action == Action.SHOW_WORKFLOWS:
            return ctx.list_screen
        if action in (Action.NEXT_TAB, Action.PREV_TAB):
            return screen
        return replace(screen, scroll=_move(screen.scroll, action, ctx.help_rows))

    return screen


class ViewState:
    """Authoritative model of what is on screen and what it shows."""

    def __init__(self, page_size: int = 50, clock=time.monotonic):
        self._page_size = page_size
        self._clock = clock
        # Never reset, so generations stay monotonic across profile switches.
        self._generations = itertools.count(1)
        self._help_rows = len(help_lines())
        self.reset()

    def reset(self) -> None:
        """Drop all cached data and return to the default screen."""
        self.list_screen = WorkflowListScreen(query=ListQuery(page_size=self._page_size))
        self.screen: ScreenState = self.list_screen
        self.page: Page | None = None
        self.list_stale = True
        self._page_tokens: list[bytes | None] = [None]

        self.detail: WorkflowDetail | None = None
        self.detail_fetched_at: float | None = None
        self.detail_stale = False
        self.namespaces: tuple[NamespaceInfo, ...] = ()
        self.banner: Banner | None = None

        self._issued: dict[Any, int] = {}
        self._settled: dict[Any, int] = {}
        # Newest described summary per run, with the generation it was read at.
        self._described: dict[tuple[str, str], tuple[int, WorkflowSummary]] = {}

    # -- screen bookkeeping -------------------------------------------------

    def _set_list_screen(self, screen: WorkflowListScreen) -> None:
        on_list = isinstance(self.screen, WorkflowListScreen)
        self.list_screen = screen
        if on_list:
            self.screen = screen

    def _nav_context(self) -> NavContext:
        detail_rows = {tab: 0 for tab in DETAIL_TABS}
        if self.detail is not None:
            detail_rows = {
                DetailTab.SUMMARY: 0,
                DetailTab.HISTORY: len(self.detail.history),
                DetailTab.PENDING: len(self.detail.pending_activities),
            }
        return NavContext(
            list_screen=self.list_screen,
            list_rows=len(self.rows),
            detail_rows=detail_rows,
            namespace_rows=len(self.namespaces),
            help_rows=self._help_rows,
        )

    def navigate(self, action: Action) -> ScreenState:
        """Apply a navigation-only action. Never touches the network."""
        self.screen = navigate(self.screen, action, self._nav_context())
        if isinstance(self.screen, WorkflowListScreen):
            self.list_screen = self.screen
        return self.screen

    @property
    def rows(self) -> tuple[WorkflowSummary, ...]:
        return self.page.items if self.page is not None else ()

    @property
    def page_number(self) -> int:
        return self.list_screen.page_number

    @property
    def has_prev_page(self) -> bool:
        return self.list_screen.page_number > 1

    @property
    def has_next_page(self) -> bool:
        return self.page is not None and self.page.has_next and not self.list_stale

    def selected_workflow(self) -> WorkflowSummary | None:
        """The workflow targeted by commands on the current screen."""
        if isinstance(self.screen, WorkflowDetailScreen):
            if self.detail is not None and self.detail.workflow_id == self.screen.workflow_id:
                return self.detail.summary
            for row in self.rows:
                if row.workflow_id == self.screen.workflow_id:
                    return row
            return None
        if isinstance(self.screen, WorkflowListScreen):
            rows = self.rows
            if 0 <= self.list_screen.selection < len(rows):
                return rows[self.list_screen.selection]
        return None

    def selected_event(self) -> HistoryEventInfo | None:
        """History event at the top of the History tab, which acts as its cursor."""
        screen = self.screen
        if not isinstance(screen, WorkflowDetailScreen) or screen.tab != DetailTab.HISTORY:
            return None
        if self.detail is None or self.detail.workflow_id != screen.workflow_id:
            return None
        if 0 <= screen.scroll < len(self.detail.history):
            return self.detail.history[screen.scroll]
        return None

    def selected_namespace(self) -> NamespaceInfo | None:
        if isinstance(self.screen, NamespaceListScreen):
            if 0 <= self.screen.selection < len(self.namespaces):
                return self.namespaces[self.screen.selection]
        return None

    # -- transitions that lead to a fetch -----------------------------------

    def open_selected(self) -> WorkflowDetailScreen | None:
        """Enter the detail screen for the selected list row."""
        if not isinstance(self.screen, WorkflowListScreen):
            return None
        summary = self.selected_workflow()
        if summary is None:
            return None
        if self.detail is None or self.detail.workflow_id != summary.workflow_id:
            self.detail = None
            self.detail_fetched_at = None
        self.screen = WorkflowDetailScreen(summary.workflow_id, summary.run_id)
        return self.screen

    def show_namespaces(self) -> None:
        if isinstance(self.screen, NamespaceListScreen):
            return
        self.screen = NamespaceListScreen()

    def set_search(self, text: str) -> bool:
        """Change the search text; resets to the first page."""
        query = self.list_screen.query
        if text == query.search_text:
            return False
        self._restart_listing(query.with_search(text))
        return True

    def cycle_filter(self) -> None:
        query = self.list_screen.query
        index = STATUS_FILTER_CYCLE.index(query.status)
        status = STATUS_FILTER_CYCLE[(index + 1) % len(STATUS_FILTER_CYCLE)]
        self._restart_listing(query.with_status(status))

    def clear_query(self) -> bool:
        query = self.list_screen.query
        if not query.search_text and query.status is None and self.page_number == 1:
            return False
        self._restart_listing(replace(query.with_search(""), status=None))
        return True

    def _restart_listing(self, query: ListQuery) -> None:
        self._page_tokens = [None]
        self.list_stale = True
        self._set_list_screen(WorkflowListScreen(query=query.with_page_token(None)))

    def next_page(self) -> bool:
        """Move to the next page. No-op on the last page or while loading."""
        if not self.has_next_page:
            return False
        number = self.list_screen.page_number
        token = self.page.next_page_token
        self._page_tokens = self._page_tokens[:number] + [token]
        self.list_stale = True
        self._set_list_screen(
            WorkflowListScreen(
                query=self.list_screen.query.with_page_token(token),
                page_number=number + 1,
            )
        )
        return True

    def prev_page(self) -> bool:
        """Move to the previous page. No-op on the first page."""
        number = self.list_screen.page_number
        if number <= 1:
            return False
        number -= 1
        self._page_tokens = self._page_tokens[:number]
        self.list_stale = True
        self._set_list_screen(
            WorkflowListScreen(
                query=self.list_screen.query.with_page_token(self._page_tokens[-1]),
                page_number=number,
            )
        )
        return True

    # -- requests and merges -------------------------------------------------

    def current_request(self) -> tuple[RequestKind, Any] | None:
        """Kind and key of the fetch backing the current screen."""
        screen = self.screen
        if isinstance(screen, WorkflowListScreen):
            return (RequestKind.LIST, screen.query)
        if isinstance(screen, WorkflowDetailScreen):
            return (RequestKind.DETAIL, screen.key)
        if isinstance(screen, NamespaceListScreen):
            return (RequestKind.NAMESPACES, "namespaces")
        return None

    def is_current(self, kind: RequestKind, key: Any) -> bool:
        if kind == RequestKind.LIST:
            return key == self.list_screen.query
        if kind == RequestKind.DETAIL:
            return isinstance(self.screen, WorkflowDetailScreen) and key == self.screen.key
        return kind in (RequestKind.NAMESPACES, RequestKind.WORKFLOW)

    @staticmethod
    def _slot(kind: RequestKind, key: Any) -> Any:
        # Every describe of one workflow shares a slot, so an older describe
        # never lands over a newer one whichever path issued it.
        if kind in (RequestKind.DETAIL, RequestKind.WORKFLOW):
            return ("describe", key[0])
        return kind

    def begin(self, kind: RequestKind, key: Any = None) -> int:
        """Allocate a generation for a fetch about to be issued."""
        generation = next(self._generations)
        self._issued[self._slot(kind, key)] = generation
        return generation

    def is_loading(self, kind: RequestKind, key: Any = None) -> bool:
        slot = self._slot(kind, key)
        return self._issued.get(slot, 0) > self._settled.get(slot, 0)

    def abandon(self, request: FetchRequest) -> None:
        """Stop waiting for a fetch whose result will never be merged."""
        slot = self._slot(request.kind, request.key)
        if self._issued.get(slot) == request.generation:
            self._settled[slot] = request.generation

    def _accepts(self, request: FetchRequest) -> bool:
        if not self.is_current(request.kind, request.key):
            return False
        slot = self._slot(request.kind, request.key)
        return request.generation > self._settled.get(slot, 0)

    def merge(self, request: FetchRequest, result: Any) -> bool:
        """Merge a fetch result. Returns False if it was stale."""
        if not self._accepts(request):
            logger.debug(
                "Discarding stale result",
                extra={"kind": request.kind.value, "generation": request.generation},
            )
            return False

        self._settled[self._slot(request.kind, request.key)] = request.generation
        if self.banner is not None and not self.banner.persistent and self.banner.kind != "info":
            self.banner = None

        if request.kind == RequestKind.WORKFLOW:
            self.patch_summary(result.summary, request.generation)
            screen = self.screen
            if isinstance(screen, WorkflowDetailScreen) and screen.workflow_id == result.workflow_id:
                self.detail = result
                self.detail_fetched_at = self._clock()
                self.detail_stale = False
        elif request.kind == RequestKind.LIST:
            self.page = replace(
                result, items=tuple(self._newest(row, request.generation) for row in result.items)
            )
            self.list_stale = False
            self._described = {
                run: entry for run, entry in self._described.items() if entry[0] > request.generation
            }
            selection = min(self.list_screen.selection, max(len(result.items) - 1, 0))
            self._set_list_screen(replace(self.list_screen, selection=selection))
        elif request.kind == RequestKind.DETAIL:
            self.detail = result
            self.detail_fetched_at = self._clock()
            self.detail_stale = False
            self.patch_summary(result.summary, request.generation)
        elif request.kind == RequestKind.NAMESPACES:
            self.namespaces = tuple(result)
            if isinstance(self.screen, NamespaceListScreen):
                selection = min(self.screen.selection, max(len(self.namespaces) - 1, 0))
                self.screen = replace(self.screen, selection=selection)
        return True

    def fail(self, request: FetchRequest, error: RemoteError) -> bool:
        """Record a failed fetch; previously fetched data stays displayed."""
        if not self._accepts(request):
            return False
        self._settled[self._slot(request.kind, request.key)] = request.generation
        self.show_error(error)
        return True

    def show_error(self, error: RemoteError) -> None:
        if isinstance(error, AuthError):
            self.banner = Banner("error", f"Authentication failed: {error.message}", "auth")
        elif isinstance(error, RemoteRejected):
            self.banner = Banner("error", f"Request rejected: {error.message}", error.kind)
        else:
            self.banner = Banner(
                "warning", f"Connection problem: {error.message} (showing last data)", error.kind
            )

    def notify(self, message: str, level: str = "info") -> None:
        if self.banner is not None and self.banner.persistent:
            return
        self.banner = Banner(level, message)

    def patch_summary(self, summary: WorkflowSummary, generation: int) -> None:
        """Replace a cached row with a fresher summary of the same run."""
        self._described[(summary.workflow_id, summary.run_id)] = (generation, summary)
        if self.page is None:
            return
        items = tuple(
            summary
            if row.workflow_id == summary.workflow_id and row.run_id == summary.run_id
            else row
            for row in self.page.items
        )
        if items != self.page.items:
            self.page = replace(self.page, items=items)

    def _newest(self, row: WorkflowSummary, generation: int) -> WorkflowSummary:
        """A listed row, unless a describe issued after the listing saw it later."""
        described = self._described.get((row.workflow_id, row.run_id))
        if described is not None and described[0] > generation:
            return described[1]
        return row

    def mark_detail_stale(self) -> None:
        self.detail_stale = True

    def detail_needs_refresh(self, stale_after: float) -> bool:
        if self.detail is None or self.detail_fetched_at is None or self.detail_stale:
            return True
        return self._clock() - self.detail_fetched_at >= stale_after
