"""End-to-end tests for the session: input, polling, commands and merges."""

import asyncio
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "scripts"))

from fakes import FakeClock, FakeService, make_session, make_summary, wait_for_event
from tuiporal.commands import Outcome
from tuiporal.errors import AuthError, TransportError
from tuiporal.events import Action, InputEvent, Tick
from tuiporal.providers import WorkflowStatus
from tuiporal.view_state import (
    DetailTab,
    HelpScreen,
    NamespaceListScreen,
    WorkflowDetailScreen,
    WorkflowListScreen,
)


def press(session, action: Action, text: str | None = None, payload=None) -> None:
    session.apply(InputEvent(action, text=text, payload=payload))


def two_profiles() -> FakeService:
    return FakeService(
        {
            "local": [
                make_summary("W1"),
                make_summary("W2", WorkflowStatus.COMPLETED),
            ],
            "staging": [make_summary("S1"), make_summary("S2"), make_summary("S3")],
        }
    )


async def loaded(service: FakeService, **settings):
    session = make_session(service, **settings)
    session.poller.refresh()
    await session.settle()
    return session


class TestInitialLoad:
    """Tests for the first listing."""

    @pytest.mark.asyncio
    async def test_refresh_populates_rows(self) -> None:
        session = await loaded(two_profiles())

        state = session.snapshot()
        assert [row.summary.workflow_id for row in state.rows] == ["W1", "W2"]
        assert state.rows[0].selected
        assert not state.list_loading
        assert not state.list_stale

    @pytest.mark.asyncio
    async def test_loading_flag_while_in_flight(self) -> None:
        service = two_profiles()
        session = make_session(service)
        gate = service.hold("list_workflows")

        session.poller.refresh()
        assert session.snapshot().list_loading

        gate.set()
        await session.settle()
        assert not session.snapshot().list_loading

    @pytest.mark.asyncio
    async def test_duplicate_refresh_issues_one_call(self) -> None:
        service = two_profiles()
        session = make_session(service)

        press(session, Action.REFRESH)
        press(session, Action.REFRESH)
        await session.settle()

        assert service.count("list_workflows") == 1

    @pytest.mark.asyncio
    async def test_failure_keeps_last_data(self) -> None:
        service = two_profiles()
        session = await loaded(service)

        service.errors["list_workflows"] = TransportError("connection refused")
        press(session, Action.REFRESH)
        await session.settle()

        state = session.snapshot()
        assert len(state.rows) == 2
        assert state.banner.level == "warning"
        assert "connection refused" in state.banner.message


class TestNavigation:
    """Tests for navigation through the session."""

    @pytest.mark.asyncio
    async def test_navigation_issues_no_fetch(self) -> None:
        service = two_profiles()
        session = await loaded(service)

        press(session, Action.DOWN)
        press(session, Action.UP)
        press(session, Action.BOTTOM)
        await session.settle()

        assert service.count("list_workflows") == 1
        assert session.view.list_screen.selection == 1

    @pytest.mark.asyncio
    async def test_enter_opens_detail_and_fetches(self) -> None:
        service = two_profiles()
        session = await loaded(service)

        press(session, Action.ENTER)
        assert isinstance(session.view.screen, WorkflowDetailScreen)
        assert session.snapshot().detail_loading
        await session.settle()

        state = session.snapshot()
        assert state.detail.workflow_id == "W1"
        assert not state.detail_loading
        assert service.calls[-1] == ("describe_workflow", "W1", "W1-run")

    @pytest.mark.asyncio
    async def test_escape_returns_to_same_list(self) -> None:
        service = two_profiles()
        session = await loaded(service)

        press(session, Action.DOWN)
        press(session, Action.ENTER)
        await session.settle()
        press(session, Action.NEXT_TAB)
        assert session.view.screen.tab == DetailTab.HISTORY
        press(session, Action.ESCAPE)

        assert isinstance(session.view.screen, WorkflowListScreen)
        assert session.view.screen.selection == 1
        assert len(session.snapshot().rows) == 2

    @pytest.mark.asyncio
    async def test_help_toggle_restores_previous_screen(self) -> None:
        session = await loaded(two_profiles())

        press(session, Action.SHOW_HELP)
        assert isinstance(session.view.screen, HelpScreen)
        assert session.snapshot().help_lines

        press(session, Action.ESCAPE)
        assert isinstance(session.view.screen, WorkflowListScreen)

    @pytest.mark.asyncio
    async def test_namespaces_fetched_once(self) -> None:
        service = two_profiles()
        session = await loaded(service)

        press(session, Action.SHOW_NAMESPACES)
        await session.settle()
        press(session, Action.SHOW_WORKFLOWS)
        press(session, Action.SHOW_NAMESPACES)
        await session.settle()

        assert isinstance(session.view.screen, NamespaceListScreen)
        assert service.count("list_namespaces") == 1
        assert [ns.name for ns in session.snapshot().namespaces] == ["default", "staging"]

    @pytest.mark.asyncio
    async def test_enter_on_namespace_switches(self) -> None:
        service = two_profiles()
        session = await loaded(service)

        press(session, Action.SHOW_NAMESPACES)
        await session.settle()
        press(session, Action.DOWN)
        press(session, Action.ENTER)
        await session.settle()

        assert service.namespace == "staging"
        assert isinstance(session.view.screen, WorkflowListScreen)
        assert session.snapshot().namespace == "staging"


class TestQuery:
    """Tests for search, filter and paging."""

    @pytest.mark.asyncio
    async def test_filter_cycle_refetches_after_debounce(self) -> None:
        service = two_profiles()
        session = await loaded(service)

        press(session, Action.CYCLE_FILTER)
        assert session.snapshot().query.status == WorkflowStatus.RUNNING
        await session.settle()

        assert service.count("list_workflows") == 2
        assert [row.summary.workflow_id for row in session.snapshot().rows] == ["W1"]

    @pytest.mark.asyncio
    async def test_typing_debounces_to_one_call(self) -> None:
        service = two_profiles()
        session = await loaded(service)

        for text in ("W", "Wo", "Wor"):
            press(session, Action.SEARCH, text=text)
        await session.settle()

        assert service.count("list_workflows") == 2
        assert service.calls[-1][1].search_text == "Wor"

    @pytest.mark.asyncio
    async def test_tick_while_typing_fetches_only_final_text(self) -> None:
        service = two_profiles()
        session = await loaded(service)

        press(session, Action.SEARCH, text="f")
        session.apply(Tick())
        press(session, Action.SEARCH, text="fo")
        press(session, Action.SEARCH, text="foo")
        await session.settle()

        searched = [call[1].search_text for call in service.calls if call[0] == "list_workflows"]
        assert searched == ["", "foo"]

    @pytest.mark.asyncio
    async def test_next_page_on_last_page_is_noop(self) -> None:
        service = two_profiles()
        session = await loaded(service)
        before = session.snapshot()
        assert not before.has_next_page

        press(session, Action.NEXT_PAGE)
        await session.settle()

        after = session.snapshot()
        assert service.count("list_workflows") == 1
        assert after.screen == before.screen
        assert after.rows == before.rows

    @pytest.mark.asyncio
    async def test_repeated_refresh_gives_same_rows(self) -> None:
        service = two_profiles()
        session = await loaded(service)
        first = session.snapshot().rows

        for _ in range(3):
            press(session, Action.REFRESH)
            await session.settle()

        assert service.count("list_workflows") == 4
        assert session.snapshot().rows == first

    @pytest.mark.asyncio
    async def test_paging_forward_and_back(self) -> None:
        service = two_profiles()
        session = await loaded(service, page_size=1)

        assert session.snapshot().has_next_page
        press(session, Action.NEXT_PAGE)
        await session.settle()
        state = session.snapshot()
        assert state.page_number == 2
        assert [row.summary.workflow_id for row in state.rows] == ["W2"]
        assert not state.has_next_page

        press(session, Action.NEXT_PAGE)
        await session.settle()
        assert session.snapshot().page_number == 2

        press(session, Action.PREV_PAGE)
        await session.settle()
        state = session.snapshot()
        assert state.page_number == 1
        assert [row.summary.workflow_id for row in state.rows] == ["W1"]


class TestCommands:
    """Tests for terminate/cancel/signal through the session."""

    @pytest.mark.asyncio
    async def test_terminate_running_workflow(self) -> None:
        service = two_profiles()
        session = await loaded(service)
        press(session, Action.ENTER)
        await session.settle()

        gate = service.hold("terminate")
        press(session, Action.TERMINATE, text="cleanup")
        state = session.snapshot()
        assert state.detail_pending
        assert state.rows[0].pending
        assert state.operations[0].outcome == Outcome.PENDING

        gate.set()
        await session.settle()

        assert ("terminate", "W1", "cleanup") in service.calls
        state = session.snapshot()
        assert state.detail.summary.status == WorkflowStatus.TERMINATED
        assert state.rows[0].summary.status == WorkflowStatus.TERMINATED
        assert not state.detail_pending
        assert state.operations[0].outcome == Outcome.SUCCEEDED

    @pytest.mark.asyncio
    async def test_describe_issued_before_terminate_cannot_revert_status(self) -> None:
        service = two_profiles()
        session = await loaded(service)
        press(session, Action.ENTER)
        await session.settle()

        held = service.hold("describe_workflow")
        press(session, Action.REFRESH)
        while service.count("describe_workflow") < 2:
            await asyncio.sleep(0)

        press(session, Action.TERMINATE, text="cleanup")
        while session.snapshot().rows[0].summary.status != WorkflowStatus.TERMINATED:
            await wait_for_event(session)
            session.apply(session._events.get_nowait())
        assert session.snapshot().detail.summary.status == WorkflowStatus.TERMINATED

        held.set()
        await session.settle()

        state = session.snapshot()
        assert service.count("describe_workflow") == 3
        assert state.detail.summary.status == WorkflowStatus.TERMINATED
        assert state.rows[0].summary.status == WorkflowStatus.TERMINATED

    @pytest.mark.asyncio
    async def test_hung_command_times_out(self) -> None:
        service = two_profiles()
        session = await loaded(service, request_timeout=0.01)
        press(session, Action.ENTER)
        await session.settle()

        service.hold("cancel")
        press(session, Action.CANCEL)
        await session.settle()

        state = session.snapshot()
        assert state.operations[0].outcome == Outcome.FAILED
        assert "timed out" in state.banner.message
        assert not state.detail_pending

    @pytest.mark.asyncio
    async def test_terminate_completed_workflow_rejected_locally(self) -> None:
        service = two_profiles()
        session = await loaded(service)
        press(session, Action.DOWN)
        press(session, Action.ENTER)
        await session.settle()

        press(session, Action.TERMINATE)
        await session.settle()

        assert service.count("terminate") == 0
        assert "already Completed" in session.snapshot().banner.message

    @pytest.mark.asyncio
    async def test_signal_with_payload(self) -> None:
        service = two_profiles()
        session = await loaded(service)
        press(session, Action.ENTER)
        await session.settle()

        press(session, Action.SIGNAL, text="approve", payload={"by": "ops"})
        await session.settle()

        assert ("signal", "W1", "approve", {"by": "ops"}) in service.calls
        assert session.snapshot().detail.summary.status == WorkflowStatus.RUNNING

    @pytest.mark.asyncio
    async def test_failed_command_reports_reason(self) -> None:
        service = two_profiles()
        session = await loaded(service)
        press(session, Action.ENTER)
        await session.settle()

        service.errors["cancel"] = TransportError("connection reset")
        press(session, Action.CANCEL)
        await session.settle()

        state = session.snapshot()
        assert state.operations[0].outcome == Outcome.FAILED
        assert "connection reset" in state.banner.message
        assert not state.detail_pending

    @pytest.mark.asyncio
    async def test_resolved_operations_pruned_on_tick(self) -> None:
        service = two_profiles()
        clock = FakeClock()
        session = make_session(service, clock=clock, operation_retention=10.0)
        session.poller.refresh()
        await session.settle()
        press(session, Action.ENTER)
        await session.settle()
        press(session, Action.CANCEL)
        await session.settle()
        assert session.snapshot().operations

        clock.advance(11)
        session.apply(Tick())
        assert session.snapshot().operations == ()


class TestConnectionChanges:
    """Tests for profile switching and reconnects."""

    @pytest.mark.asyncio
    async def test_switch_discards_in_flight_result(self) -> None:
        service = two_profiles()
        session = make_session(service)
        gate = service.hold("list_workflows")
        session.poller.refresh()
        while service.count("list_workflows") == 0:
            await asyncio.sleep(0)

        assert session.switch_profile("staging")
        await wait_for_event(session)
        gate.set()
        await session.settle()

        state = session.snapshot()
        assert state.profile == "staging"
        assert [row.summary.workflow_id for row in state.rows] == ["S1", "S2", "S3"]

    @pytest.mark.asyncio
    async def test_switch_drops_cache_and_operations(self) -> None:
        service = two_profiles()
        session = await loaded(service)
        press(session, Action.ENTER)
        await session.settle()
        press(session, Action.CANCEL)
        await session.settle()

        service.hold("list_workflows")
        press(session, Action.SWITCH_PROFILE)

        state = session.snapshot()
        assert state.profile == "staging"
        assert state.rows == ()
        assert state.detail is None
        assert state.operations == ()
        assert isinstance(state.screen, WorkflowListScreen)
        session.stop()

    @pytest.mark.asyncio
    async def test_switch_to_unknown_profile_keeps_active(self) -> None:
        service = two_profiles()
        session = await loaded(service)

        assert not session.switch_profile("nope")

        state = session.snapshot()
        assert state.profile == "local"
        assert len(state.rows) == 2
        assert service.generation == 0

    @pytest.mark.asyncio
    async def test_auth_failure_banner_persists_until_reconnect(self) -> None:
        service = two_profiles()
        session = make_session(service)
        service.errors["list_workflows"] = AuthError("invalid API key")
        session.poller.refresh()
        await session.settle()

        assert session.snapshot().banner.persistent
        press(session, Action.TOGGLE_AUTO_REFRESH)
        assert "invalid API key" in session.snapshot().banner.message

        del service.errors["list_workflows"]
        press(session, Action.RECONNECT)
        await session.settle()

        state = session.snapshot()
        assert state.banner is None
        assert len(state.rows) == 2

    @pytest.mark.asyncio
    async def test_quit_stops_running(self) -> None:
        session = make_session(two_profiles())
        press(session, Action.QUIT)
        assert not session.running
