"""
Polling engine.

Drives periodic refreshes of whatever the current screen shows and
issues the on-demand fetches requested by navigation. Results are never
applied here: each fetch runs as its own asyncio task and posts a
DataArrived/DataFailed event to the session's merge path.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

from tuiporal.errors import RemoteError, TransportError
from tuiporal.events import DataArrived, DataFailed, FetchRequest, RefreshDue, RequestKind, Tick
from tuiporal.providers import WorkflowService
from tuiporal.view_state import ViewState

logger = logging.getLogger(__name__)


class PollingEngine:
    """Timer loop plus the per-request in-flight guard."""

    def __init__(
        self,
        view: ViewState,
        service: WorkflowService,
        post: Callable[[Any], None],
        *,
        interval: float = 5.0,
        enabled: bool = True,
        debounce: float = 0.3,
        detail_stale_after: float = 30.0,
        timeout: float = 10.0,
        connection: Callable[[], int] = lambda: 0,
    ):
        self._view = view
        self._service = service
        self._post = post
        self.interval = interval
        self._enabled = enabled
        self._debounce = debounce
        self._detail_stale_after = detail_stale_after
        self._timeout = timeout
        self._connection = connection

        self._in_flight: dict[tuple[RequestKind, Any], FetchRequest] = {}
        self._tasks: set[asyncio.Task] = set()
        self._timer: asyncio.Task | None = None
        self._debounce_task: asyncio.Task | None = None

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def tasks(self) -> set[asyncio.Task]:
        """Outstanding fetch and debounce tasks."""
        tasks = set(self._tasks)
        if self.debouncing:
            tasks.add(self._debounce_task)
        return tasks

    @property
    def debouncing(self) -> bool:
        """True while a debounced list refresh has not fired yet."""
        return self._debounce_task is not None and not self._debounce_task.done()

    def in_flight(self, kind: RequestKind, key: Any) -> bool:
        return (kind, key) in self._in_flight

    def toggle(self) -> bool:
        """Flip auto-refresh on/off. Returns the new state."""
        self._enabled = not self._enabled
        logger.info("Auto-refresh toggled", extra={"enabled": self._enabled})
        return self._enabled

    def start(self) -> None:
        if self._timer is None:
            self._timer = asyncio.create_task(self._run())

    def stop(self) -> None:
        for task in (self._timer, self._debounce_task, *self._tasks):
            if task is not None:
                task.cancel()
        self._timer = None
        self._debounce_task = None
        self._tasks.clear()

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self._post(Tick())

    def on_tick(self) -> FetchRequest | None:
        """Scheduled refresh of the current screen, if enabled."""
        if not self._enabled:
            return None
        target = self._view.current_request()
        if target is None:
            return None
        kind, key = target
        if kind == RequestKind.LIST and self.debouncing:
            # The query is still being edited; RefreshDue fetches it.
            return None
        if kind == RequestKind.DETAIL and not self._view.detail_needs_refresh(
            self._detail_stale_after
        ):
            return None
        return self.fetch(kind, key)

    def refresh(self) -> FetchRequest | None:
        """Out-of-band refresh of the current screen."""
        target = self._view.current_request()
        if target is None:
            return None
        return self.fetch(*target)

    def schedule(self) -> None:
        """Debounced refresh: restarts the window on every call."""
        if self._debounce_task is not None:
            self._debounce_task.cancel()
        self._debounce_task = asyncio.create_task(self._debounced())

    async def _debounced(self) -> None:
        await asyncio.sleep(self._debounce)
        self._post(RefreshDue())

    def fetch(self, kind: RequestKind, key: Any) -> FetchRequest | None:
        """Issue a fetch unless an identical one is already in flight."""
        if (kind, key) in self._in_flight:
            logger.debug("Fetch suppressed, already in flight", extra={"kind": kind.value})
            return None

        request = FetchRequest(
            kind=kind,
            key=key,
            generation=self._view.begin(kind, key),
            connection=self._connection(),
        )
        self._in_flight[(kind, key)] = request
        task = asyncio.create_task(self._execute(request))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return request

    def complete(self, request: FetchRequest) -> None:
        """Clear the in-flight flag for a request that has resolved."""
        if self._in_flight.get((request.kind, request.key)) is request:
            del self._in_flight[(request.kind, request.key)]

    def clear(self) -> list[FetchRequest]:
        """Forget every in-flight request; their results will be stale."""
        abandoned = list(self._in_flight.values())
        self._in_flight.clear()
        if self._debounce_task is not None:
            self._debounce_task.cancel()
            self._debounce_task = None
        return abandoned

    async def _call(self, request: FetchRequest) -> Any:
        if request.kind == RequestKind.LIST:
            return await self._service.list_workflows(request.key)
        if request.kind in (RequestKind.DETAIL, RequestKind.WORKFLOW):
            workflow_id, run_id = request.key
            return await self._service.describe_workflow(workflow_id, run_id)
        if request.kind == RequestKind.NAMESPACES:
            return await self._service.list_namespaces()
        raise ValueError(f"Unknown request kind: {request.kind}")

    async def _execute(self, request: FetchRequest) -> None:
        try:
            result = await asyncio.wait_for(self._call(request), self._timeout)
        except asyncio.TimeoutError:
            self._post(DataFailed(request, TransportError("Request timed out")))
        except RemoteError as e:
            self._post(DataFailed(request, e))
        else:
            self._post(DataArrived(request, result))
