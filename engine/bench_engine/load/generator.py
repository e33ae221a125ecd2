"""
Step-rate load generator.

Drives an operation at a fixed dispatch rate for a fixed duration per step,
stepping through increasing rates. Dispatch is open loop: the timer fires on
schedule regardless of how many operations are still outstanding, so latency
growth under load shows up instead of being absorbed by the generator.
"""

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from bench_engine.domain.load import LoadStep, StepSpec
from bench_engine.domain.outcome import MeasurementSeries, OperationOutcome
from bench_engine.logging import get_logger
from bench_engine.runtime.clock import Clock, default_clock
from bench_engine.runtime.event_bus import EventBus, EventType, emit
from bench_engine.runtime.executor import OperationFactory, RetryPolicy, execute
from bench_engine.runtime.run_context import RunDeadline

logger = get_logger(__name__)

DEFAULT_ERROR_THRESHOLD = 0.05


class LoadGenerator:
    """
    Runs load steps strictly one after another.

    Each dispatched operation runs as its own task through the retrying
    executor; finished outcomes come back through a queue and are recorded
    by the step in completion order.
    """

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        *,
        clock: Clock | None = None,
        cooldown_s: float = 0.0,
        deadline: RunDeadline | None = None,
        event_bus: EventBus | None = None,
        run_id: str | None = None,
    ) -> None:
        if cooldown_s < 0:
            raise ValueError("cooldown_s must be >= 0")
        self._policy = policy or RetryPolicy()
        self._clock = clock or default_clock()
        self._cooldown_s = cooldown_s
        self._deadline = deadline
        self._event_bus = event_bus
        self._run_id = run_id

    async def run(self, steps: Sequence[StepSpec], new_operation: OperationFactory) -> list[LoadStep]:
        """
        Execute every step in order.

        new_operation is called once per dispatch; the operation it returns is
        what the executor retries, so a retried dispatch keeps its identity.

        Steps that could not start because the run deadline expired are
        returned with nothing dispatched so callers can report them as
        untested.
        """
        results: list[LoadStep] = []

        for i, spec in enumerate(steps):
            if self._deadline_expired():
                logger.warning("Run deadline expired, skipping step at %.2f ops/s", spec.rate)
                results.append(self._skipped_step(spec))
                continue

            if i > 0 and self._cooldown_s > 0:
                await self._clock.sleep(self._cooldown_s)

            results.append(await self.run_step(spec, new_operation))

        return results

    async def run_step(self, spec: StepSpec, new_operation: OperationFactory) -> LoadStep:
        """Dispatch a new operation at spec.rate for spec.duration_s and wait for every dispatched call."""
        clock = self._clock
        interval = spec.interval_s
        series = MeasurementSeries(label=f"step_{spec.rate:g}rps")
        completed: asyncio.Queue[OperationOutcome] = asyncio.Queue()
        tasks: list[asyncio.Task[None]] = []

        async def dispatch() -> None:
            outcome = await execute(new_operation(), self._policy, clock=clock)
            completed.put_nowait(outcome)

        def drain() -> None:
            while not completed.empty():
                series.append(completed.get_nowait())

        started_at = clock.now()
        start = clock.monotonic()
        window_end = start + spec.duration_s

        logger.info("Load step started: %.2f ops/s for %.1fs", spec.rate, spec.duration_s)
        await emit(
            self._event_bus,
            EventType.STEP_STARTED,
            {"rate": spec.rate, "duration_s": spec.duration_s},
            self._run_id,
        )

        try:
            k = 0
            while True:
                due = start + k * interval
                if due >= window_end:
                    break
                delay = due - clock.monotonic()
                if delay > 0:
                    await clock.sleep(delay)

                if self._deadline_expired():
                    logger.warning("Run deadline expired during step at %.2f ops/s", spec.rate)
                    break

                tasks.append(asyncio.create_task(dispatch()))
                k += 1
                drain()

            # Hold the step open for its full window before collecting
            remaining = window_end - clock.monotonic()
            if remaining > 0 and not self._deadline_expired():
                await clock.sleep(remaining)

            await asyncio.gather(*tasks)
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            raise

        drain()
        series.freeze()

        step = LoadStep(
            target_rate=spec.rate,
            duration_s=spec.duration_s,
            started_at=started_at,
            finished_at=clock.now(),
            dispatched=len(tasks),
            series=series,
            started_monotonic=start,
            finished_monotonic=clock.monotonic(),
        )

        logger.info(
            "Load step finished: %.2f ops/s dispatched=%d completed=%d success_rate=%.2f",
            spec.rate,
            step.dispatched,
            step.completed,
            step.success_rate,
        )
        await emit(self._event_bus, EventType.STEP_COMPLETED, step.to_dict(), self._run_id)
        return step

    def _deadline_expired(self) -> bool:
        return self._deadline is not None and self._deadline.expired()

    def _skipped_step(self, spec: StepSpec) -> LoadStep:
        now = self._clock.now()
        mono = self._clock.monotonic()
        return LoadStep(
            target_rate=spec.rate,
            duration_s=spec.duration_s,
            started_at=now,
            finished_at=now,
            dispatched=0,
            series=MeasurementSeries(label=f"step_{spec.rate:g}rps").freeze(),
            started_monotonic=mono,
            finished_monotonic=mono,
        )


@dataclass(frozen=True)
class ThroughputAnalysis:
    """
    Knee point and sustainable rate derived from a set of load steps.

    knee_rate is the first rate (ascending) whose error rate exceeds the
    threshold. sustainable_rate is the highest tested rate below the knee that
    stayed within the threshold; a rate above the knee that happens to pass
    again is ignored, since the system already failed at a lower load. Steps
    with no completed operation are untested: their error rate is unknown,
    not zero.
    """

    knee_rate: float | None
    sustainable_rate: float | None
    untested_rates: tuple[float, ...]
    conclusive: bool
    error_threshold: float = DEFAULT_ERROR_THRESHOLD
    overall_error_rate: float = 0.0
    steps: tuple[dict[str, Any], ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "knee_rate": self.knee_rate,
            "sustainable_rate": self.sustainable_rate,
            "untested_rates": list(self.untested_rates),
            "conclusive": self.conclusive,
            "error_threshold": self.error_threshold,
            "overall_error_rate": self.overall_error_rate,
            "steps": list(self.steps),
        }


def achieved_rate(step: LoadStep) -> float:
    """Successful operations per second of step window."""
    if step.duration_s <= 0:
        return 0.0
    return step.successes / step.duration_s


def analyze_throughput(
    steps: Sequence[LoadStep],
    error_threshold: float = DEFAULT_ERROR_THRESHOLD,
) -> ThroughputAnalysis:
    """
    Find the knee point and the sustainable rate.

    Rates above the knee never count as sustainable, even when their own
    error rate is within the threshold.

    Args:
        steps: Executed load steps (any order)
        error_threshold: Error rate above which a step is past the knee

    Returns:
        ThroughputAnalysis. conclusive is False when an untested rate lies
        between the sustainable rate and the knee (or above the sustainable
        rate when no knee was seen).
    """
    if not 0 < error_threshold < 1:
        raise ValueError("error_threshold must be within (0, 1)")

    ordered = sorted(steps, key=lambda s: s.target_rate)

    knee: float | None = None
    sustainable: float | None = None
    untested: list[float] = []
    per_step: list[dict[str, Any]] = []

    for step in ordered:
        rate = step.target_rate
        error = step.error_rate
        per_step.append(
            {
                "target_rate": rate,
                "dispatched": step.dispatched,
                "completed": step.completed,
                "success_rate": step.success_rate,
                "error_rate": error,
                "achieved_rate": achieved_rate(step),
            }
        )

        if error is None:
            untested.append(rate)
            continue
        if knee is not None:
            continue
        if error > error_threshold:
            knee = rate
        else:
            sustainable = rate

    floor = sustainable if sustainable is not None else float("-inf")
    ceiling = knee if knee is not None else float("inf")
    conclusive = not any(floor < rate < ceiling for rate in untested)

    total_completed = sum(step.completed for step in ordered)
    total_failures = sum(step.failures for step in ordered)
    overall_error_rate = total_failures / total_completed if total_completed else 0.0

    if not conclusive:
        logger.warning(
            "Throughput result inconclusive: untested rates %s between %s and %s",
            untested,
            sustainable,
            knee,
        )

    return ThroughputAnalysis(
        knee_rate=knee,
        sustainable_rate=sustainable,
        untested_rates=tuple(untested),
        conclusive=conclusive,
        error_threshold=error_threshold,
        overall_error_rate=overall_error_rate,
        steps=tuple(per_step),
    )
