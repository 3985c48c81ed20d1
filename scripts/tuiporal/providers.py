"""
Data providers for the TUI.

Snapshot types are immutable; the WorkflowService protocol defines the
remote capability surface so implementations can be swapped for testing.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Protocol


class WorkflowStatus(str, Enum):
    """Lifecycle status of a workflow execution."""

    RUNNING = "Running"
    COMPLETED = "Completed"
    FAILED = "Failed"
    CANCELED = "Canceled"
    TERMINATED = "Terminated"
    TIMED_OUT = "TimedOut"
    CONTINUED_AS_NEW = "ContinuedAsNew"

    @property
    def is_terminal(self) -> bool:
        return self is not WorkflowStatus.RUNNING

    @classmethod
    def from_remote(cls, name: str | None) -> "WorkflowStatus | None":
        """Map a temporalio enum name (``TIMED_OUT``) onto a status."""
        if not name:
            return None
        try:
            return cls[name.upper()]
        except KeyError:
            return None


# Order used by the status filter cycle; None means "no filter".
STATUS_FILTER_CYCLE: tuple[WorkflowStatus | None, ...] = (
    None,
    WorkflowStatus.RUNNING,
    WorkflowStatus.COMPLETED,
    WorkflowStatus.FAILED,
    WorkflowStatus.CANCELED,
    WorkflowStatus.TERMINATED,
    WorkflowStatus.TIMED_OUT,
)


@dataclass(frozen=True)
class WorkflowSummary:
    """Immutable snapshot of one workflow execution row."""

    workflow_id: str
    run_id: str
    workflow_type: str
    status: WorkflowStatus | None
    start_time: datetime | None = None
    close_time: datetime | None = None
    task_queue: str = ""

    @property
    def is_terminal(self) -> bool:
        return self.status is not None and self.status.is_terminal


@dataclass(frozen=True)
class PendingActivityInfo:
    """An activity the workflow is still waiting on."""

    activity_id: str
    activity_type: str
    state: str
    attempt: int = 1


@dataclass(frozen=True)
class HistoryEventInfo:
    """One entry of the (truncated) event history."""

    event_id: int
    event_type: str
    event_time: datetime | None = None
    # The event's attributes message as JSON-compatible data.
    attributes: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class WorkflowDetail:
    """Summary plus the fields only fetched when a workflow is opened."""

    summary: WorkflowSummary
    pending_activities: tuple[PendingActivityInfo, ...] = ()
    history: tuple[HistoryEventInfo, ...] = ()
    history_length: int = 0
    signal_names: tuple[str, ...] = ()

    @property
    def workflow_id(self) -> str:
        return self.summary.workflow_id


@dataclass(frozen=True)
class NamespaceInfo:
    """A namespace registered on the remote service."""

    name: str
    state: str = ""
    description: str = ""


@dataclass(frozen=True)
class Page:
    """One page of a workflow listing."""

    items: tuple[WorkflowSummary, ...]
    next_page_token: bytes | None = None

    @property
    def has_next(self) -> bool:
        return bool(self.next_page_token)


@dataclass(frozen=True)
class ListQuery:
    """What the workflow list currently asks the remote service for."""

    search_text: str = ""
    status: WorkflowStatus | None = None
    page_token: bytes | None = None
    page_size: int = 50

    def visibility_query(self) -> str:
        """Build the Temporal visibility query string."""
        parts = []
        if self.status is not None:
            parts.append(f"ExecutionStatus = '{self.status.value}'")
        if self.search_text.strip():
            parts.append(self.search_text.strip())
        return " AND ".join(parts)

    def with_search(self, text: str) -> "ListQuery":
        return replace(self, search_text=text, page_token=None)

    def with_status(self, status: WorkflowStatus | None) -> "ListQuery":
        return replace(self, status=status, page_token=None)

    def with_page_token(self, token: bytes | None) -> "ListQuery":
        return replace(self, page_token=token)


@dataclass(frozen=True)
class Ack:
    """Acknowledgement of a mutating call."""

    workflow_id: str
    operation: str
    details: dict = field(default_factory=dict)


class WorkflowService(Protocol):
    """Protocol for the remote calls the core needs.

    Every method raises a ``RemoteError`` subclass on failure.
    """

    async def list_workflows(self, query: ListQuery) -> Page:
        """List one page of workflow executions."""
        ...

    async def describe_workflow(
        self, workflow_id: str, run_id: str | None = None
    ) -> WorkflowDetail:
        """Fetch the detail view of one execution."""
        ...

    async def terminate(
        self, workflow_id: str, reason: str, run_id: str | None = None
    ) -> Ack:
        """Terminate an execution."""
        ...

    async def cancel(self, workflow_id: str, run_id: str | None = None) -> Ack:
        """Request cancellation of an execution."""
        ...

    async def signal(
        self,
        workflow_id: str,
        signal_name: str,
        payload: Any = None,
        run_id: str | None = None,
    ) -> Ack:
        """Deliver a signal to an execution."""
        ...

    async def list_namespaces(self) -> list[NamespaceInfo]:
        """List namespaces visible to the active profile."""
        ...


class ConnectionManager(WorkflowService, Protocol):
    """A WorkflowService that also owns a connection lifecycle."""

    @property
    def generation(self) -> int:
        """Bumped whenever the connection target changes."""
        ...

    @property
    def namespace(self) -> str:
        ...

    def reconnect(self, profile: Any, namespace: str | None = None) -> None:
        """Drop the current connection and target ``profile``."""
        ...
