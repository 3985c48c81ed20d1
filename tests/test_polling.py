"""Tests for polling.py - scheduled and on-demand fetches."""

import asyncio
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "scripts"))

from fakes import FakeClock, FakeService, make_summary
from tuiporal.errors import TransportError
from tuiporal.events import DataArrived, DataFailed, RefreshDue, RequestKind
from tuiporal.polling import PollingEngine
from tuiporal.providers import WorkflowDetail
from tuiporal.view_state import ViewState


class Recorder:
    def __init__(self) -> None:
        self.events: list = []

    def __call__(self, event) -> None:
        self.events.append(event)


def make_engine(service: FakeService, **kwargs):
    view = ViewState(clock=kwargs.pop("clock", FakeClock()))
    post = Recorder()
    engine = PollingEngine(view, service, post, **kwargs)
    return engine, view, post


async def drain(engine: PollingEngine) -> None:
    while engine.tasks:
        await asyncio.wait(engine.tasks)


class TestFetch:
    """Tests for fetch issuing and the in-flight guard."""

    @pytest.mark.asyncio
    async def test_refresh_posts_data_arrived(self) -> None:
        service = FakeService({"local": [make_summary("W1")]})
        engine, view, post = make_engine(service)

        request = engine.refresh()
        assert request.kind == RequestKind.LIST
        assert engine.in_flight(RequestKind.LIST, request.key)
        await drain(engine)

        assert len(post.events) == 1
        assert isinstance(post.events[0], DataArrived)
        assert post.events[0].result.items[0].workflow_id == "W1"

    @pytest.mark.asyncio
    async def test_in_flight_request_suppresses_duplicate(self) -> None:
        service = FakeService({"local": [make_summary("W1")]})
        engine, view, post = make_engine(service)

        first = engine.refresh()
        assert engine.refresh() is None
        await drain(engine)
        assert service.count("list_workflows") == 1

        engine.complete(first)
        assert engine.refresh() is not None
        await drain(engine)
        assert service.count("list_workflows") == 2

    @pytest.mark.asyncio
    async def test_timeout_posts_transport_failure(self) -> None:
        service = FakeService({"local": [make_summary("W1")]})
        engine, view, post = make_engine(service, timeout=0.01)
        service.hold("list_workflows")

        engine.refresh()
        await drain(engine)

        assert isinstance(post.events[0], DataFailed)
        assert isinstance(post.events[0].error, TransportError)
        assert post.events[0].error.message == "Request timed out"

    @pytest.mark.asyncio
    async def test_clear_returns_abandoned_requests(self) -> None:
        service = FakeService({"local": [make_summary("W1")]})
        engine, view, post = make_engine(service)
        gate = service.hold("list_workflows")

        request = engine.refresh()
        assert engine.clear() == [request]
        assert not engine.in_flight(RequestKind.LIST, request.key)

        gate.set()
        await drain(engine)

    @pytest.mark.asyncio
    async def test_complete_ignores_superseded_request(self) -> None:
        service = FakeService({"local": [make_summary("W1")]})
        engine, view, post = make_engine(service)

        old = engine.refresh()
        engine.clear()
        new = engine.refresh()
        engine.complete(old)

        assert engine.in_flight(RequestKind.LIST, new.key)
        await drain(engine)


class TestTick:
    """Tests for scheduled refreshes."""

    @pytest.mark.asyncio
    async def test_tick_disabled_does_nothing(self) -> None:
        service = FakeService({"local": [make_summary("W1")]})
        engine, view, post = make_engine(service, enabled=False)

        assert engine.on_tick() is None
        assert engine.toggle()
        assert engine.on_tick() is not None
        await drain(engine)

    @pytest.mark.asyncio
    async def test_tick_skips_fresh_detail(self) -> None:
        clock = FakeClock()
        service = FakeService({"local": [make_summary("W1")]})
        engine, view, post = make_engine(service, clock=clock, detail_stale_after=30)

        request = engine.refresh()
        await drain(engine)
        engine.complete(request)
        view.merge(request, post.events[-1].result)
        view.open_selected()
        request = engine.refresh()
        await drain(engine)
        engine.complete(request)
        view.merge(request, post.events[-1].result)
        assert isinstance(view.detail, WorkflowDetail)

        assert engine.on_tick() is None
        clock.advance(30)
        assert engine.on_tick() is not None
        await drain(engine)

    @pytest.mark.asyncio
    async def test_timer_posts_ticks(self) -> None:
        engine, view, post = make_engine(FakeService(), interval=0.01)

        engine.start()
        await asyncio.sleep(0.05)
        engine.stop()

        assert post.events
        assert engine.tasks == set()


class TestDebounce:
    """Tests for debounced refreshes."""

    @pytest.mark.asyncio
    async def test_burst_collapses_to_one_refresh(self) -> None:
        engine, view, post = make_engine(FakeService(), debounce=0.01)

        for _ in range(5):
            engine.schedule()
        await drain(engine)

        assert post.events == [RefreshDue()]

    @pytest.mark.asyncio
    async def test_clear_cancels_pending_debounce(self) -> None:
        engine, view, post = make_engine(FakeService(), debounce=0.01)

        engine.schedule()
        engine.clear()
        await asyncio.sleep(0.03)

        assert post.events == []

    @pytest.mark.asyncio
    async def test_tick_waits_for_debounced_query(self) -> None:
        engine, view, post = make_engine(FakeService(), debounce=0.01)

        view.set_search("f")
        engine.schedule()
        assert engine.debouncing
        assert engine.on_tick() is None

        await drain(engine)
        assert post.events == [RefreshDue()]
        assert not engine.debouncing
        assert engine.on_tick() is not None
        await drain(engine)
