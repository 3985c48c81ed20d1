"""
Command dispatcher for mutating workflow actions.

Commands are a closed set of variants (Terminate, Cancel, Signal) handled
by one exhaustive function. Each dispatched command is tracked as an
InFlightOperation until the user has seen its outcome.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, ClassVar, Union

from tuiporal.errors import CommandRejected, RemoteError, TransportError
from tuiporal.events import CommandResolved
from tuiporal.providers import Ack, WorkflowService, WorkflowSummary

logger = logging.getLogger(__name__)

DEFAULT_TERMINATE_REASON = "Terminated by user"


@dataclass(frozen=True)
class Terminate:
    reason: str = DEFAULT_TERMINATE_REASON
    kind: ClassVar[str] = "terminate"


@dataclass(frozen=True)
class Cancel:
    kind: ClassVar[str] = "cancel"


@dataclass(frozen=True)
class Signal:
    name: str
    payload: Any = None
    kind: ClassVar[str] = "signal"


Command = Union[Terminate, Cancel, Signal]


class Outcome(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class InFlightOperation:
    """One dispatched command and what became of it."""

    id: int
    workflow_id: str
    run_id: str | None
    command: Command
    submitted_at: float
    connection: int = 0
    outcome: Outcome = Outcome.PENDING
    reason: str | None = None
    resolved_at: float | None = None
    refreshed: bool = False

    @property
    def kind(self) -> str:
        return self.command.kind

    @property
    def shows_pending(self) -> bool:
        """Row marker stays until the post-success re-fetch lands."""
        if self.outcome == Outcome.PENDING:
            return True
        return self.outcome == Outcome.SUCCEEDED and not self.refreshed

    @property
    def message(self) -> str:
        target = self.workflow_id
        if self.outcome == Outcome.PENDING:
            return f"{self.kind.capitalize()} requested for {target}"
        if self.outcome == Outcome.SUCCEEDED:
            if isinstance(self.command, Signal):
                return f"Signal '{self.command.name}' sent to {target}"
            verb = "terminated" if self.kind == "terminate" else "cancel requested"
            return f"Workflow {target} {verb}"
        return f"Failed to {self.kind} {target}: {self.reason}"


def validate_command(summary: WorkflowSummary | None, command: Command) -> None:
    """Local preconditions. Raises CommandRejected."""
    if summary is None:
        raise CommandRejected("No workflow selected")
    if isinstance(command, Signal) and not command.name.strip():
        raise CommandRejected("Signal name cannot be empty")
    if summary.is_terminal:
        raise CommandRejected(
            f"Workflow {summary.workflow_id} is already {summary.status.value}"
        )


class CommandDispatcher:
    """Validates, sends and tracks mutating commands."""

    def __init__(
        self,
        service: WorkflowService,
        post: Callable[[Any], None],
        *,
        retention: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
        timeout: float = 10.0,
        connection: Callable[[], int] = lambda: 0,
    ):
        self._service = service
        self._post = post
        self._retention = retention
        self._timeout = timeout
        self._clock = clock
        self._connection = connection
        self._ids = itertools.count(1)
        self._operations: dict[int, InFlightOperation] = {}
        self._tasks: set[asyncio.Task] = set()

    @property
    def operations(self) -> tuple[InFlightOperation, ...]:
        return tuple(self._operations.values())

    @property
    def tasks(self) -> set[asyncio.Task]:
        return set(self._tasks)

    def is_pending(self, workflow_id: str) -> bool:
        return any(
            op.workflow_id == workflow_id and op.shows_pending
            for op in self._operations.values()
        )

    def submit(self, summary: WorkflowSummary | None, command: Command) -> InFlightOperation:
        """Validate and dispatch ``command`` against ``summary``'s workflow."""
        validate_command(summary, command)
        for op in self._operations.values():
            if (
                op.workflow_id == summary.workflow_id
                and op.kind == command.kind
                and op.outcome == Outcome.PENDING
            ):
                raise CommandRejected(
                    f"{command.kind.capitalize()} already pending for {summary.workflow_id}"
                )

        op = InFlightOperation(
            id=next(self._ids),
            workflow_id=summary.workflow_id,
            run_id=summary.run_id,
            command=command,
            submitted_at=self._clock(),
            connection=self._connection(),
        )
        self._operations[op.id] = op
        logger.info(
            "Dispatching command",
            extra={"operation": op.kind, "workflow_id": op.workflow_id},
        )

        task = asyncio.create_task(self._execute(op))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return op

    async def _send(self, op: InFlightOperation) -> Ack:
        command = op.command
        if isinstance(command, Terminate):
            return await self._service.terminate(op.workflow_id, command.reason, run_id=op.run_id)
        if isinstance(command, Cancel):
            return await self._service.cancel(op.workflow_id, run_id=op.run_id)
        if isinstance(command, Signal):
            return await self._service.signal(
                op.workflow_id, command.name, command.payload, run_id=op.run_id
            )
        raise TypeError(f"Unhandled command: {command!r}")

    async def _execute(self, op: InFlightOperation) -> None:
        try:
            await asyncio.wait_for(self._send(op), self._timeout)
        except asyncio.TimeoutError:
            self._post(CommandResolved(op.id, op.connection, TransportError("Request timed out")))
        except RemoteError as e:
            self._post(CommandResolved(op.id, op.connection, e))
        else:
            self._post(CommandResolved(op.id, op.connection))

    def resolve(self, event: CommandResolved) -> InFlightOperation | None:
        """Record the outcome of a dispatched command."""
        op = self._operations.get(event.operation_id)
        if op is None:
            return None
        op.resolved_at = self._clock()
        if event.error is None:
            op.outcome = Outcome.SUCCEEDED
            logger.info("Command succeeded", extra={"operation": op.kind, "workflow_id": op.workflow_id})
        else:
            op.outcome = Outcome.FAILED
            op.reason = event.error.message
            logger.warning(
                "Command failed",
                extra={"operation": op.kind, "workflow_id": op.workflow_id, "error": op.reason},
            )
        return op

    def mark_refreshed(self, workflow_id: str) -> None:
        for op in self._operations.values():
            if op.workflow_id == workflow_id and op.outcome == Outcome.SUCCEEDED:
                op.refreshed = True

    def dismiss(self) -> int:
        """Drop every resolved operation; returns how many were removed."""
        done = [
            op_id
            for op_id, op in self._operations.items()
            if op.outcome != Outcome.PENDING
        ]
        for op_id in done:
            del self._operations[op_id]
        return len(done)

    def prune(self) -> None:
        """Forget operations resolved longer ago than the retention period."""
        now = self._clock()
        expired = [
            op_id
            for op_id, op in self._operations.items()
            if op.resolved_at is not None and now - op.resolved_at >= self._retention
        ]
        for op_id in expired:
            del self._operations[op_id]

    def clear(self) -> None:
        self._operations.clear()
