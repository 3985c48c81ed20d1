"""Events consumed by the session's single merge path."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from tuiporal.errors import RemoteError


class Action(str, Enum):
    """Input event names recognised by the core."""

    # Movement within the current screen
    UP = "up"
    DOWN = "down"
    PAGE_UP = "page_up"
    PAGE_DOWN = "page_down"
    TOP = "top"
    BOTTOM = "bottom"
    NEXT_TAB = "next_tab"
    PREV_TAB = "prev_tab"

    # Screen switching
    ENTER = "enter"
    ESCAPE = "escape"
    SHOW_WORKFLOWS = "show_workflows"
    SHOW_NAMESPACES = "show_namespaces"
    SHOW_HELP = "show_help"

    # List query
    SEARCH = "search"
    CYCLE_FILTER = "cycle_filter"
    CLEAR_QUERY = "clear_query"
    NEXT_PAGE = "next_page"
    PREV_PAGE = "prev_page"

    # Refresh
    REFRESH = "refresh"
    TOGGLE_AUTO_REFRESH = "toggle_auto_refresh"
    RECONNECT = "reconnect"

    # Mutating commands
    TERMINATE = "terminate"
    CANCEL = "cancel"
    SIGNAL = "signal"
    SWITCH_PROFILE = "switch_profile"
    DISMISS = "dismiss"

    QUIT = "quit"


# Actions that only ever move within data already held.
NAVIGATION_ACTIONS = frozenset(
    {
        Action.UP,
        Action.DOWN,
        Action.PAGE_UP,
        Action.PAGE_DOWN,
        Action.TOP,
        Action.BOTTOM,
        Action.NEXT_TAB,
        Action.PREV_TAB,
        Action.ESCAPE,
        Action.SHOW_WORKFLOWS,
        Action.SHOW_HELP,
    }
)


class RequestKind(str, Enum):
    LIST = "list"
    DETAIL = "detail"
    NAMESPACES = "namespaces"
    # Describe of one workflow after a command, merged into its list row.
    WORKFLOW = "workflow"


@dataclass(frozen=True)
class FetchRequest:
    """A list/describe/namespace fetch, tagged for staleness checks."""

    kind: RequestKind
    key: Any
    generation: int
    connection: int


@dataclass(frozen=True)
class InputEvent:
    action: Action
    text: str | None = None
    payload: Any = None


@dataclass(frozen=True)
class Tick:
    """Emitted by the polling loop on every interval."""


@dataclass(frozen=True)
class RefreshDue:
    """A debounced refresh window has elapsed."""


@dataclass(frozen=True)
class DataArrived:
    request: FetchRequest
    result: Any


@dataclass(frozen=True)
class DataFailed:
    request: FetchRequest
    error: RemoteError


@dataclass(frozen=True)
class CommandResolved:
    operation_id: int
    connection: int
    error: RemoteError | None = None
