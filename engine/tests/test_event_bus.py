"""
Tests for the progress event bus.
"""

import pytest

from bench_engine.runtime.event_bus import Event, EventBus, EventType, emit


class TestEventBus:
    """Tests for subscribe/publish."""

    @pytest.mark.asyncio
    async def test_typed_and_wildcard_handlers(self) -> None:
        bus = EventBus()
        typed: list[Event] = []
        everything: list[Event] = []

        async def on_alert(event: Event) -> None:
            typed.append(event)

        async def on_any(event: Event) -> None:
            everything.append(event)

        await bus.subscribe(EventType.CANARY_ALERT, on_alert)
        await bus.subscribe(None, on_any)

        await bus.publish(Event(type=EventType.CANARY_PROBE))
        await bus.publish(Event(type=EventType.CANARY_ALERT, data={"sequence": 2}))

        assert [e.type for e in typed] == [EventType.CANARY_ALERT]
        assert len(everything) == 2

    @pytest.mark.asyncio
    async def test_failing_handler_isolated(self) -> None:
        bus = EventBus()
        received: list[Event] = []

        async def broken(event: Event) -> None:
            raise RuntimeError("handler bug")

        async def healthy(event: Event) -> None:
            received.append(event)

        await bus.subscribe(EventType.STEP_STARTED, broken)
        await bus.subscribe(EventType.STEP_STARTED, healthy)

        await bus.publish(Event(type=EventType.STEP_STARTED))

        assert len(received) == 1

    @pytest.mark.asyncio
    async def test_unsubscribe_and_clear(self) -> None:
        bus = EventBus()
        received: list[Event] = []

        async def handler(event: Event) -> None:
            received.append(event)

        await bus.subscribe(EventType.RUN_STARTED, handler)
        await bus.unsubscribe(EventType.RUN_STARTED, handler)
        await bus.publish(Event(type=EventType.RUN_STARTED))

        await bus.subscribe(None, handler)
        await bus.clear()
        await bus.publish(Event(type=EventType.RUN_COMPLETED))

        assert received == []

    @pytest.mark.asyncio
    async def test_emit_without_bus_is_noop(self) -> None:
        await emit(None, EventType.RUN_STARTED, {"x": 1})

    @pytest.mark.asyncio
    async def test_emit_sets_run_id(self) -> None:
        bus = EventBus()
        received: list[Event] = []

        async def handler(event: Event) -> None:
            received.append(event)

        await bus.subscribe(None, handler)
        await emit(bus, EventType.CYCLE_STARTED, {"index": 0}, run_id="bench_1")

        assert received[0].run_id == "bench_1"
        assert received[0].data == {"index": 0}
