"""
Runtime infrastructure: clocks, retrying executor, events, run context.
"""

from bench_engine.runtime.clock import Clock, ManualClock, SystemClock
from bench_engine.runtime.event_bus import Event, EventBus, EventType
from bench_engine.runtime.executor import (
    Operation,
    OperationFactory,
    RetryPolicy,
    execute,
    exponential_backoff,
    fixed_backoff,
)
from bench_engine.runtime.run_context import RunContext, RunDeadline, generate_run_id

__all__ = [
    "Clock",
    "Event",
    "EventBus",
    "EventType",
    "ManualClock",
    "Operation",
    "OperationFactory",
    "RetryPolicy",
    "RunContext",
    "RunDeadline",
    "SystemClock",
    "execute",
    "exponential_backoff",
    "fixed_backoff",
    "generate_run_id",
]
