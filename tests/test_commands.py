"""Tests for commands.py - validation, dispatch and operation tracking."""

import asyncio
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "scripts"))

from fakes import FakeClock, FakeService, make_summary
from tuiporal.commands import (
    DEFAULT_TERMINATE_REASON,
    Cancel,
    CommandDispatcher,
    Outcome,
    Signal,
    Terminate,
    validate_command,
)
from tuiporal.errors import CommandRejected, RemoteRejected
from tuiporal.events import CommandResolved
from tuiporal.providers import WorkflowStatus


def make_dispatcher(service: FakeService, clock: FakeClock | None = None):
    events: list = []
    dispatcher = CommandDispatcher(
        service, events.append, retention=10.0, clock=clock or FakeClock()
    )
    return dispatcher, events


async def drain(dispatcher: CommandDispatcher) -> None:
    while dispatcher.tasks:
        await asyncio.wait(dispatcher.tasks)


class TestValidateCommand:
    """Tests for local preconditions."""

    def test_no_selection(self) -> None:
        with pytest.raises(CommandRejected, match="No workflow selected"):
            validate_command(None, Cancel())

    def test_terminal_workflow(self) -> None:
        summary = make_summary("W1", WorkflowStatus.FAILED)

        with pytest.raises(CommandRejected, match="already Failed"):
            validate_command(summary, Terminate())

    def test_empty_signal_name(self) -> None:
        with pytest.raises(CommandRejected, match="Signal name"):
            validate_command(make_summary("W1"), Signal(name="  "))

    def test_running_workflow_accepted(self) -> None:
        validate_command(make_summary("W1"), Signal(name="approve"))

    def test_default_terminate_reason(self) -> None:
        assert Terminate().reason == DEFAULT_TERMINATE_REASON


class TestDispatch:
    """Tests for submitting commands."""

    @pytest.mark.asyncio
    async def test_terminate_succeeds(self) -> None:
        service = FakeService({"local": [make_summary("W1")]})
        dispatcher, events = make_dispatcher(service)

        op = dispatcher.submit(make_summary("W1"), Terminate(reason="cleanup"))
        assert op.outcome == Outcome.PENDING
        assert dispatcher.is_pending("W1")
        await drain(dispatcher)

        assert events == [CommandResolved(op.id, 0)]
        assert ("terminate", "W1", "cleanup") in service.calls

        dispatcher.resolve(events[0])
        assert op.outcome == Outcome.SUCCEEDED
        assert op.message == "Workflow W1 terminated"
        # Marker stays until the workflow has been re-read.
        assert dispatcher.is_pending("W1")
        dispatcher.mark_refreshed("W1")
        assert not dispatcher.is_pending("W1")

    @pytest.mark.asyncio
    async def test_remote_rejection_recorded(self) -> None:
        service = FakeService({"local": [make_summary("W1")]})
        service.errors["cancel"] = RemoteRejected("FAILED_PRECONDITION", "workflow already closed")
        dispatcher, events = make_dispatcher(service)

        op = dispatcher.submit(make_summary("W1"), Cancel())
        await drain(dispatcher)
        dispatcher.resolve(events[0])

        assert op.outcome == Outcome.FAILED
        assert "workflow already closed" in op.reason
        assert op.message.startswith("Failed to cancel W1")
        assert not dispatcher.is_pending("W1")

    @pytest.mark.asyncio
    async def test_duplicate_pending_command_rejected(self) -> None:
        service = FakeService({"local": [make_summary("W1")]})
        dispatcher, events = make_dispatcher(service)
        gate = service.hold("terminate")

        dispatcher.submit(make_summary("W1"), Terminate())
        with pytest.raises(CommandRejected, match="already pending"):
            dispatcher.submit(make_summary("W1"), Terminate())

        gate.set()
        await drain(dispatcher)
        assert service.count("terminate") == 1

    @pytest.mark.asyncio
    async def test_signal_sends_payload(self) -> None:
        service = FakeService({"local": [make_summary("W1")]})
        dispatcher, events = make_dispatcher(service)

        op = dispatcher.submit(make_summary("W1"), Signal(name="approve", payload=[1, 2]))
        await drain(dispatcher)
        dispatcher.resolve(events[0])

        assert ("signal", "W1", "approve", [1, 2]) in service.calls
        assert op.message == "Signal 'approve' sent to W1"

    def test_rejected_command_not_tracked(self) -> None:
        dispatcher, events = make_dispatcher(FakeService())

        with pytest.raises(CommandRejected):
            dispatcher.submit(make_summary("W1", WorkflowStatus.COMPLETED), Cancel())
        assert dispatcher.operations == ()

    def test_resolve_unknown_operation(self) -> None:
        dispatcher, events = make_dispatcher(FakeService())

        assert dispatcher.resolve(CommandResolved(99, 0)) is None


class TestRetention:
    """Tests for dismissing and pruning resolved operations."""

    @pytest.mark.asyncio
    async def test_prune_after_retention(self) -> None:
        clock = FakeClock()
        service = FakeService({"local": [make_summary("W1"), make_summary("W2")]})
        dispatcher, events = make_dispatcher(service, clock)

        dispatcher.submit(make_summary("W1"), Cancel())
        await drain(dispatcher)
        dispatcher.resolve(events[0])
        clock.advance(5)
        dispatcher.submit(make_summary("W2"), Cancel())

        dispatcher.prune()
        assert len(dispatcher.operations) == 2

        clock.advance(6)
        dispatcher.prune()
        assert [op.workflow_id for op in dispatcher.operations] == ["W2"]
        await drain(dispatcher)

    @pytest.mark.asyncio
    async def test_dismiss_keeps_pending(self) -> None:
        service = FakeService({"local": [make_summary("W1"), make_summary("W2")]})
        dispatcher, events = make_dispatcher(service)

        dispatcher.submit(make_summary("W1"), Cancel())
        await drain(dispatcher)
        dispatcher.resolve(events[0])
        gate = service.hold("cancel")
        dispatcher.submit(make_summary("W2"), Cancel())

        assert dispatcher.dismiss() == 1
        assert [op.workflow_id for op in dispatcher.operations] == ["W2"]

        gate.set()
        await drain(dispatcher)
