"""
Event bus for benchmark progress and alert notifications.

Components publish progress (step started, cycle completed, canary alert)
to an EventBus handed to them explicitly; there is no process-wide instance.
"""

import asyncio
from collections.abc import Callable, Coroutine
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from bench_engine.logging import get_logger

logger = get_logger(__name__)


class EventType(str, Enum):
    """Types of events emitted during a benchmark run."""

    # Run lifecycle
    RUN_STARTED = "run.started"
    RUN_COMPLETED = "run.completed"
    CRITERION_COMPLETED = "criterion.completed"

    # Load generator
    STEP_STARTED = "step.started"
    STEP_COMPLETED = "step.completed"

    # Fault recovery harness
    CYCLE_STARTED = "cycle.started"
    CYCLE_COMPLETED = "cycle.completed"

    # Canary prober
    CANARY_PROBE = "canary.probe"
    CANARY_ALERT = "canary.alert"


@dataclass
class Event:
    """
    An event in the system.

    Carries type, timestamp, and arbitrary payload data.
    """

    type: EventType
    data: dict[str, Any] = field(default_factory=dict)
    id: UUID = field(default_factory=uuid4)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    run_id: str | None = None

    def __hash__(self) -> int:
        return hash(self.id)


# Type for event handlers
EventHandler = Callable[[Event], Coroutine[Any, Any, None]]


class EventBus:
    """
    Simple async event bus for pub/sub.

    Supports:
    - Multiple handlers per event type
    - Wildcard subscriptions
    - Async handlers
    """

    def __init__(self) -> None:
        self._handlers: dict[EventType, list[EventHandler]] = {}
        self._wildcard_handlers: list[EventHandler] = []
        self._lock = asyncio.Lock()

    async def subscribe(
        self,
        event_type: EventType | None,
        handler: EventHandler,
    ) -> None:
        """
        Subscribe to events.

        Args:
            event_type: Event type to subscribe to, or None for all events
            handler: Async handler function
        """
        async with self._lock:
            if event_type is None:
                self._wildcard_handlers.append(handler)
            else:
                self._handlers.setdefault(event_type, []).append(handler)

    async def unsubscribe(
        self,
        event_type: EventType | None,
        handler: EventHandler,
    ) -> None:
        """
        Unsubscribe from events.

        Args:
            event_type: Event type, or None for wildcard
            handler: Handler to remove
        """
        async with self._lock:
            if event_type is None:
                if handler in self._wildcard_handlers:
                    self._wildcard_handlers.remove(handler)
            else:
                handlers = self._handlers.get(event_type, [])
                if handler in handlers:
                    handlers.remove(handler)

    async def publish(self, event: Event) -> None:
        """
        Publish an event to all subscribers.

        Handler failures are logged and never reach the publisher.

        Args:
            event: Event to publish
        """
        handlers: list[EventHandler] = []

        async with self._lock:
            handlers.extend(self._handlers.get(event.type, []))
            handlers.extend(self._wildcard_handlers)

        if not handlers:
            return

        results = await asyncio.gather(
            *[handler(event) for handler in handlers],
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, Exception):
                logger.warning("Event handler failed for %s: %s", event.type.value, result)

    async def clear(self) -> None:
        """Remove all handlers."""
        async with self._lock:
            self._handlers.clear()
            self._wildcard_handlers.clear()


async def emit(
    bus: EventBus | None,
    event_type: EventType,
    data: dict[str, Any],
    run_id: str | None = None,
) -> None:
    """Publish to bus if one is attached; no-op otherwise."""
    if bus is None:
        return
    await bus.publish(Event(type=event_type, data=data, run_id=run_id))
