"""
Per-criterion benchmark entry points and run orchestration.

Each evaluate_* function drives one component against a connected system
under test, summarizes the measurements and classifies them into a
BenchmarkResult whose evidence holds the raw series, cycles or probes.
BenchmarkRun executes a list of criteria under one run id and deadline and
always yields one result per criterion.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from uuid import uuid4

from bench_engine.analysis.statistics import summarize
from bench_engine.canary.prober import AlertHandler, CanaryProber
from bench_engine.classify.classifier import SuiteSummary, build_result, summarize_results
from bench_engine.config import Settings, get_settings
from bench_engine.domain.load import StepSpec
from bench_engine.domain.outcome import MeasurementSeries
from bench_engine.domain.result import (
    BenchmarkResult,
    BenchmarkStatus,
    Direction,
    Thresholds,
)
from bench_engine.errors import classify_error
from bench_engine.interfaces.system_under_test import SystemUnderTest
from bench_engine.load.generator import LoadGenerator, analyze_throughput
from bench_engine.logging import clear_run_id, get_logger, set_run_id
from bench_engine.recovery.harness import FaultRecoveryHarness
from bench_engine.runtime.clock import Clock, default_clock
from bench_engine.runtime.event_bus import EventBus, EventType, emit
from bench_engine.runtime.executor import Operation, OperationFactory, RetryPolicy, execute
from bench_engine.runtime.run_context import RunContext, RunDeadline, generate_run_id

logger = get_logger(__name__)

# Success-rate gates applied on top of the latency thresholds
LATENCY_SUCCESS_PASSED = 0.80
LATENCY_SUCCESS_PARTIAL = 0.50


class Criterion(str, Enum):
    """Benchmark criteria this engine can evaluate."""

    LATENCY = "latency"
    THROUGHPUT = "throughput"
    FAULT_RECOVERY = "fault_recovery"
    AVAILABILITY = "availability"


def single_operation(system: SystemUnderTest, params: dict[str, Any] | None = None) -> Operation:
    """One logical operation; retries of it reuse the same operation_id."""
    call_params = dict(params or {})
    call_params["operation_id"] = f"op-{uuid4().hex[:12]}"
    return lambda: system.execute_operation(call_params)


def operation_stream(
    system: SystemUnderTest, params: dict[str, Any] | None = None
) -> OperationFactory:
    """
    Factory minting a new logical operation (fresh operation_id) per dispatch.

    Used where each dispatch is an independent unit of work (load steps,
    canary probes). The executor retries the operation a dispatch was given,
    so a retried dispatch never turns into a second logical operation.
    """
    base = dict(params or {})
    return lambda: single_operation(system, base)


# =============================================================================
# Criteria
# =============================================================================


async def evaluate_latency(
    system: SystemUnderTest,
    settings: Settings | None = None,
    *,
    params: dict[str, Any] | None = None,
    clock: Clock | None = None,
    deadline: RunDeadline | None = None,
) -> BenchmarkResult:
    """
    Issue latency_samples sequential operations and classify the median.

    Value is the p50 latency of successful operations (seconds), lower is
    better; the status is additionally capped by the success rate.
    """
    settings = settings or get_settings()
    clock = clock or default_clock()
    policy = RetryPolicy.from_settings(settings)
    series = MeasurementSeries(label="latency")

    for i in range(settings.latency_samples):
        if deadline is not None and deadline.expired():
            logger.warning("Run deadline expired after %d latency samples", i)
            break
        if i > 0 and settings.latency_sample_delay_s > 0:
            await clock.sleep(settings.latency_sample_delay_s)
        series.append(await execute(single_operation(system, params), policy, clock=clock))

    series.freeze()
    summary = summarize(series)

    ceiling = BenchmarkStatus.PASSED
    if summary.success_rate < LATENCY_SUCCESS_PARTIAL:
        ceiling = BenchmarkStatus.FAILED
    elif summary.success_rate < LATENCY_SUCCESS_PASSED:
        ceiling = BenchmarkStatus.PARTIAL

    return build_result(
        Criterion.LATENCY.value,
        summary.p50_s,
        Thresholds(passed=settings.latency_passed_s, partial=settings.latency_partial_s),
        Direction.LOWER_IS_BETTER,
        unit="seconds",
        method=(
            f"{settings.latency_samples} sequential operations, "
            "client-side timestamps, nearest-rank percentiles"
        ),
        evidence={
            "measurements": series.to_frame(),
            "error_breakdown": summary.error_breakdown,
        },
        details=summary.model_dump(),
        ceiling=ceiling,
    )


async def evaluate_throughput(
    system: SystemUnderTest,
    settings: Settings | None = None,
    *,
    params: dict[str, Any] | None = None,
    clock: Clock | None = None,
    deadline: RunDeadline | None = None,
    event_bus: EventBus | None = None,
    run_id: str | None = None,
) -> BenchmarkResult:
    """
    Step the dispatch rate through load_step_rates and classify the sustainable rate.

    Value is the highest tested rate (ops/s) below the knee with an error
    rate within load_error_threshold. The status is capped at partial when
    untested rates leave the result inconclusive.
    """
    settings = settings or get_settings()
    generator = LoadGenerator(
        RetryPolicy.from_settings(settings),
        clock=clock,
        cooldown_s=settings.load_step_cooldown_s,
        deadline=deadline,
        event_bus=event_bus,
        run_id=run_id,
    )
    specs = [
        StepSpec(rate=rate, duration_s=settings.load_step_duration_s)
        for rate in settings.load_step_rates
    ]

    steps = await generator.run(specs, operation_stream(system, params))
    analysis = analyze_throughput(steps, settings.load_error_threshold)

    ceiling = BenchmarkStatus.PASSED if analysis.conclusive else BenchmarkStatus.PARTIAL

    return build_result(
        Criterion.THROUGHPUT.value,
        analysis.sustainable_rate,
        Thresholds(
            passed=settings.throughput_passed_rps,
            partial=settings.throughput_partial_rps,
        ),
        Direction.HIGHER_IS_BETTER,
        unit="ops/sec",
        method=(
            "Open-loop step load "
            + " -> ".join(f"{rate:g}" for rate in settings.load_step_rates)
            + f" ops/s, {settings.load_step_duration_s:g}s per step"
        ),
        evidence={"steps": [step.series.to_frame() for step in steps]},
        details=analysis.to_dict(),
        ceiling=ceiling,
    )


async def evaluate_fault_recovery(
    system: SystemUnderTest,
    settings: Settings | None = None,
    *,
    params: dict[str, Any] | None = None,
    clock: Clock | None = None,
    deadline: RunDeadline | None = None,
    event_bus: EventBus | None = None,
    run_id: str | None = None,
) -> BenchmarkResult:
    """
    Run idle and mid-operation crash cycles and classify the mean MTTR.

    A violated exactly-once guarantee caps the status at partial; no cycle
    restarting leaves no MTTR and fails the criterion. Cycles the run
    deadline left no time for are reported as skipped and also cap the
    status at partial.
    """
    settings = settings or get_settings()
    harness = FaultRecoveryHarness.from_settings(
        system,
        settings,
        operation_params=params,
        clock=clock,
        deadline=deadline,
        event_bus=event_bus,
        run_id=run_id,
    )
    report = await harness.run()

    ceiling = BenchmarkStatus.PASSED
    if not report.exactly_once_completion or report.skipped_cycles:
        ceiling = BenchmarkStatus.PARTIAL

    return build_result(
        Criterion.FAULT_RECOVERY.value,
        report.avg_mttr_s,
        Thresholds(passed=settings.mttr_passed_s, partial=settings.mttr_partial_s),
        Direction.LOWER_IS_BETTER,
        unit="seconds",
        method=(
            f"{settings.recovery_cycles} idle and {settings.recovery_cycles} mid-operation "
            "crash/restart cycles; MTTR is the restart call duration"
        ),
        evidence={"cycles": [cycle.to_dict() for cycle in report.cycles]},
        details={
            "avg_mttr_s": report.avg_mttr_s,
            "avg_downtime_s": report.avg_downtime_s,
            "exactly_once_completion": report.exactly_once_completion,
            "total_manual_steps": report.total_manual_steps,
            "total_restarts": report.total_restarts,
            "harness_faults": report.harness_faults,
            "recovered_cycles": report.recovered_cycles,
            "skipped_cycles": report.skipped_cycles,
            # Crash to verified completion; not MTTR
            "legacy_avg_end_to_end_s": report.avg_end_to_end_s,
        },
        ceiling=ceiling,
    )


async def evaluate_availability(
    system: SystemUnderTest,
    settings: Settings | None = None,
    *,
    params: dict[str, Any] | None = None,
    on_alert: AlertHandler | None = None,
    clock: Clock | None = None,
    deadline: RunDeadline | None = None,
    event_bus: EventBus | None = None,
    run_id: str | None = None,
) -> BenchmarkResult:
    """Probe at canary_interval_s over canary_total_duration_s and classify availability (%)."""
    settings = settings or get_settings()
    prober = CanaryProber.from_settings(
        operation_stream(system, params),
        settings,
        on_alert=on_alert,
        clock=clock,
        deadline=deadline,
        event_bus=event_bus,
        run_id=run_id,
    )
    report = await prober.run()

    return build_result(
        Criterion.AVAILABILITY.value,
        report.availability_pct if report.total else None,
        Thresholds(
            passed=settings.availability_passed_pct,
            partial=settings.availability_partial_pct,
        ),
        Direction.HIGHER_IS_BETTER,
        unit="percent",
        method=(
            f"Canary operation every {settings.canary_interval_s:g}s "
            f"for {settings.canary_total_duration_s:g}s"
        ),
        evidence={"canary_log": [probe.to_dict() for probe in report.probes]},
        details=report.to_dict(),
    )


# =============================================================================
# Run orchestration
# =============================================================================


@dataclass
class BenchmarkReport:
    """Results of one benchmark run."""

    context: RunContext
    results: list[BenchmarkResult] = field(default_factory=list)

    @property
    def summary(self) -> SuiteSummary:
        return summarize_results(self.results)

    def to_dict(self) -> dict[str, Any]:
        return {
            "run": self.context.to_dict(),
            "summary": self.summary.to_dict(),
            "results": [result.to_dict() for result in self.results],
        }


def failed_result(criterion: Criterion, exc: BaseException) -> BenchmarkResult:
    """Result recorded for a criterion that could not be measured."""
    return BenchmarkResult(
        criterion=criterion.value,
        unit="",
        value=None,
        status=BenchmarkStatus.FAILED,
        evidence={"error": str(exc), "error_kind": classify_error(exc).value},
        details={"error": f"{type(exc).__name__}: {exc}"},
        method="not measured",
    )


class BenchmarkRun:
    """
    Executes criteria one after another against one system under test.

    The system is connected before the first criterion and disconnected after
    the last. Errors inside a criterion become a failed result for that
    criterion; run() itself does not raise for them.
    """

    def __init__(
        self,
        system: SystemUnderTest,
        settings: Settings | None = None,
        *,
        criteria: Sequence[Criterion] = tuple(Criterion),
        params: dict[str, Any] | None = None,
        on_alert: AlertHandler | None = None,
        clock: Clock | None = None,
        event_bus: EventBus | None = None,
        run_id: str | None = None,
    ) -> None:
        self._system = system
        self._settings = settings or get_settings()
        self._criteria = list(criteria)
        self._params = dict(params or {})
        self._on_alert = on_alert
        self._clock = clock or default_clock()
        self._event_bus = event_bus
        self._run_id = run_id or generate_run_id()

    @property
    def run_id(self) -> str:
        return self._run_id

    async def run(self) -> BenchmarkReport:
        context = RunContext(
            run_id=self._run_id,
            config_snapshot=self._settings.model_dump(),
            criteria=[c.value for c in self._criteria],
        )
        report = BenchmarkReport(context=context)
        deadline = RunDeadline(self._settings.run_deadline_s, self._clock)

        set_run_id(self._run_id)
        try:
            logger.info("Benchmark run started: %s", ", ".join(context.criteria))
            await emit(self._event_bus, EventType.RUN_STARTED, context.to_dict(), self._run_id)

            try:
                await self._system.connect()
            except Exception as exc:
                logger.error("Could not connect to system under test: %s", exc)
                report.results = [failed_result(c, exc) for c in self._criteria]
                context.mark_completed(error=str(exc))
                return report

            try:
                for criterion in self._criteria:
                    result = await self._evaluate(criterion, deadline)
                    report.results.append(result)
                    if criterion == Criterion.FAULT_RECOVERY:
                        await self._ensure_connected()
                    await emit(
                        self._event_bus,
                        EventType.CRITERION_COMPLETED,
                        result.to_dict(),
                        self._run_id,
                    )
            finally:
                await self._disconnect()

            context.mark_completed()
            summary = report.summary
            logger.info(
                "Benchmark run completed: passed=%d partial=%d failed=%d score=%d",
                summary.passed,
                summary.partial,
                summary.failed,
                summary.overall_score,
            )
            await emit(self._event_bus, EventType.RUN_COMPLETED, report.to_dict(), self._run_id)
            return report
        finally:
            clear_run_id()

    async def _evaluate(self, criterion: Criterion, deadline: RunDeadline) -> BenchmarkResult:
        logger.info("Evaluating %s", criterion.value)
        common: dict[str, Any] = {"params": self._params, "clock": self._clock}

        try:
            if criterion == Criterion.LATENCY:
                return await evaluate_latency(
                    self._system, self._settings, deadline=deadline, **common
                )
            if criterion == Criterion.THROUGHPUT:
                return await evaluate_throughput(
                    self._system,
                    self._settings,
                    deadline=deadline,
                    event_bus=self._event_bus,
                    run_id=self._run_id,
                    **common,
                )
            if criterion == Criterion.FAULT_RECOVERY:
                return await evaluate_fault_recovery(
                    self._system,
                    self._settings,
                    deadline=deadline,
                    event_bus=self._event_bus,
                    run_id=self._run_id,
                    **common,
                )
            return await evaluate_availability(
                self._system,
                self._settings,
                on_alert=self._on_alert,
                deadline=deadline,
                event_bus=self._event_bus,
                run_id=self._run_id,
                **common,
            )
        except Exception as exc:
            logger.exception("Criterion %s failed: %s", criterion.value, exc)
            return failed_result(criterion, exc)

    async def _ensure_connected(self) -> None:
        """Crash cycles can leave the system down; bring it back for later criteria."""
        try:
            if not await self._system.health_check():
                await self._system.connect()
        except Exception as exc:
            logger.warning("Reconnect after fault recovery failed: %s", exc)

    async def _disconnect(self) -> None:
        try:
            await self._system.disconnect()
        except Exception as exc:
            logger.warning("Disconnect after run failed: %s", exc)
