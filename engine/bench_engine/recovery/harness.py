"""
Fault-recovery (crash/restart) harness.

Simulates process crashes by disconnecting the system under test, restarts it,
and verifies it is usable again. Two phases are measured:

- idle: crash with nothing in flight
- mid-operation: crash while an operation is in flight, then check the
  operation was completed exactly once after recovery

Cycles run strictly one after another; each cycle owns its own counters and
a harness fault only aborts the cycle it happened in.
"""

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from bench_engine.domain.outcome import OperationOutcome
from bench_engine.domain.recovery import (
    CycleState,
    InflightResolution,
    RecoveryCycle,
    RecoveryPhase,
)
from bench_engine.errors import ErrorKind, HarnessFault
from bench_engine.interfaces.system_under_test import (
    OperationReceipt,
    ReceiptStatus,
    SystemUnderTest,
)
from bench_engine.logging import get_logger, redact_sensitive
from bench_engine.runtime.clock import Clock, default_clock
from bench_engine.runtime.event_bus import EventBus, EventType, emit
from bench_engine.runtime.executor import RetryPolicy, execute
from bench_engine.runtime.run_context import RunDeadline

if TYPE_CHECKING:
    from bench_engine.config import Settings

logger = get_logger(__name__)

# Failure kinds after which an interrupted operation may still have taken effect
_UNCERTAIN_KINDS = frozenset(
    {
        ErrorKind.TIMEOUT,
        ErrorKind.TRANSIENT,
        ErrorKind.RATE_LIMIT,
        ErrorKind.INDETERMINATE,
    }
)


class RestartFailed(HarnessFault):
    """Every restart attempt of a cycle failed."""

    def __init__(self, message: str, attempts: int) -> None:
        super().__init__(message)
        self.attempts = attempts


@dataclass
class _Restart:
    restarted_at: datetime
    restarted_monotonic: float
    mttr_s: float
    attempts: int


@dataclass
class _Verification:
    succeeded: bool
    failures: int
    fresh_completions: int
    verified_monotonic: float | None
    replayed: bool = False
    expired: bool = False


@dataclass(frozen=True)
class RecoveryReport:
    """Aggregated results of both crash phases."""

    idle_cycles: tuple[RecoveryCycle, ...] = field(default_factory=tuple)
    mid_operation_cycles: tuple[RecoveryCycle, ...] = field(default_factory=tuple)
    # Cycles never started because the run deadline expired
    skipped_cycles: int = 0

    @property
    def cycles(self) -> tuple[RecoveryCycle, ...]:
        return self.idle_cycles + self.mid_operation_cycles

    @property
    def avg_mttr_s(self) -> float | None:
        """Mean restart duration over cycles that restarted; None if none did."""
        values = [c.mttr_s for c in self.cycles if c.mttr_s is not None]
        if not values:
            return None
        return sum(values) / len(values)

    @property
    def avg_downtime_s(self) -> float | None:
        values = [c.downtime_s for c in self.cycles if c.downtime_s is not None]
        if not values:
            return None
        return sum(values) / len(values)

    @property
    def avg_end_to_end_s(self) -> float | None:
        """
        Legacy crash-to-verified-completion figure.

        Includes settle delay and verification; reported alongside MTTR, never
        in place of it.
        """
        values = [c.end_to_end_s for c in self.cycles if c.end_to_end_s is not None]
        if not values:
            return None
        return sum(values) / len(values)

    @property
    def exactly_once_completion(self) -> bool:
        """True only if every cycle completed its operation exactly once."""
        cycles = self.cycles
        return bool(cycles) and all(c.exactly_once for c in cycles)

    @property
    def total_manual_steps(self) -> int:
        return sum(c.manual_steps for c in self.cycles)

    @property
    def total_restarts(self) -> int:
        return sum(c.restart_attempts for c in self.cycles)

    @property
    def harness_faults(self) -> int:
        return sum(1 for c in self.cycles if c.harness_fault)

    @property
    def recovered_cycles(self) -> int:
        return sum(1 for c in self.cycles if c.recovered)

    def to_dict(self) -> dict[str, Any]:
        return {
            "idle_cycles": [c.to_dict() for c in self.idle_cycles],
            "mid_operation_cycles": [c.to_dict() for c in self.mid_operation_cycles],
            "avg_mttr_s": self.avg_mttr_s,
            "avg_downtime_s": self.avg_downtime_s,
            "avg_end_to_end_s": self.avg_end_to_end_s,
            "exactly_once_completion": self.exactly_once_completion,
            "total_manual_steps": self.total_manual_steps,
            "total_restarts": self.total_restarts,
            "harness_faults": self.harness_faults,
            "recovered_cycles": self.recovered_cycles,
            "skipped_cycles": self.skipped_cycles,
        }


def _enter(transitions: list[CycleState], state: CycleState) -> None:
    if not transitions or transitions[-1] != state:
        transitions.append(state)


def _is_completed(outcome: OperationOutcome) -> bool:
    if not outcome.success:
        return False
    receipt = outcome.result
    if isinstance(receipt, OperationReceipt):
        return receipt.status == ReceiptStatus.COMPLETED
    return True


def _is_fresh_completion(outcome: OperationOutcome) -> bool:
    if not _is_completed(outcome):
        return False
    receipt = outcome.result
    if isinstance(receipt, OperationReceipt):
        return not receipt.deduplicated
    return True


def _is_replay(outcome: OperationOutcome) -> bool:
    return _is_completed(outcome) and not _is_fresh_completion(outcome)


def _verification_error(verification: _Verification) -> str | None:
    if verification.expired:
        return "Run deadline expired before verification"
    return None


def _count_completions(fresh: int, replayed: bool, committed: bool = False) -> int:
    """
    Completions of one logical operation.

    committed means the system confirmed an interrupted attempt took effect,
    so every fresh completion on top of it is a duplicate. A deduplicated
    receipt with no fresh one means an earlier attempt completed but its
    acknowledgement was lost; that still counts as one completion.
    """
    if committed:
        return 1 + fresh
    if fresh:
        return fresh
    return 1 if replayed else 0


class FaultRecoveryHarness:
    """
    Crash/restart cycles against one system under test.

    Manual steps count every intervention an operator would have had to
    perform: the crash itself, each restart attempt, each failed
    verification, and re-issuing an operation whose fate was unknown. A
    clean cycle therefore costs exactly two (crash + restart).

    Once the run deadline expires no further cycle starts and no further
    verification or re-issue is attempted; cycles not started are counted
    as skipped.
    """

    def __init__(
        self,
        system: SystemUnderTest,
        *,
        cycles: int = 3,
        settle_delay_s: float = 1.0,
        inflight_crash_delay_s: float = 0.5,
        inflight_resolve_timeout_s: float = 30.0,
        verification_attempts: int = 3,
        retry_delay_s: float = 2.0,
        between_cycles_s: float = 2.0,
        restart_attempts: int = 3,
        operation_timeout_s: float | None = 120.0,
        operation_params: dict[str, Any] | None = None,
        clock: Clock | None = None,
        deadline: RunDeadline | None = None,
        event_bus: EventBus | None = None,
        run_id: str | None = None,
    ) -> None:
        if cycles < 1:
            raise ValueError("cycles must be >= 1")
        if verification_attempts < 1:
            raise ValueError("verification_attempts must be >= 1")
        if restart_attempts < 1:
            raise ValueError("restart_attempts must be >= 1")

        self._system = system
        self._cycles = cycles
        self._settle_delay_s = settle_delay_s
        self._inflight_crash_delay_s = inflight_crash_delay_s
        self._inflight_resolve_timeout_s = inflight_resolve_timeout_s
        self._verification_attempts = verification_attempts
        self._retry_delay_s = retry_delay_s
        self._between_cycles_s = between_cycles_s
        self._restart_attempts = restart_attempts
        self._operation_timeout_s = operation_timeout_s
        self._operation_params = dict(operation_params or {})
        self._clock = clock or default_clock()
        self._deadline = deadline
        self._event_bus = event_bus
        self._run_id = run_id

        # Each verification attempt is visible to the harness on its own
        self._attempt_policy = RetryPolicy.single_attempt(operation_timeout_s)

    @classmethod
    def from_settings(
        cls,
        system: SystemUnderTest,
        settings: "Settings",
        **kwargs: Any,
    ) -> "FaultRecoveryHarness":
        """Build a harness with timings taken from settings."""
        options: dict[str, Any] = {
            "cycles": settings.recovery_cycles,
            "settle_delay_s": settings.recovery_settle_delay_s,
            "inflight_crash_delay_s": settings.recovery_inflight_crash_delay_s,
            "inflight_resolve_timeout_s": settings.recovery_inflight_resolve_timeout_s,
            "verification_attempts": settings.recovery_verification_attempts,
            "retry_delay_s": settings.recovery_retry_delay_s,
            "between_cycles_s": settings.recovery_between_cycles_s,
            "restart_attempts": settings.recovery_restart_attempts,
            "operation_timeout_s": settings.operation_timeout_s,
        }
        options.update(kwargs)
        return cls(system, **options)

    # =========================================================================
    # Phases
    # =========================================================================

    async def run(
        self,
        phases: Sequence[RecoveryPhase] = (RecoveryPhase.IDLE, RecoveryPhase.MID_OPERATION),
    ) -> RecoveryReport:
        """Run every requested phase, idle first, cycles strictly sequential."""
        idle: list[RecoveryCycle] = []
        mid: list[RecoveryCycle] = []
        planned = len(phases) * self._cycles
        first = True

        for phase in phases:
            for index in range(self._cycles):
                if not first and self._between_cycles_s > 0 and not self._deadline_expired():
                    await self._clock.sleep(self._between_cycles_s)
                first = False

                if self._deadline_expired():
                    break

                if phase == RecoveryPhase.IDLE:
                    idle.append(await self.run_idle_cycle(index))
                else:
                    mid.append(await self.run_mid_operation_cycle(index))

        skipped = planned - len(idle) - len(mid)
        if skipped:
            logger.warning("Run deadline expired, %d crash cycle(s) not run", skipped)

        report = RecoveryReport(
            idle_cycles=tuple(idle),
            mid_operation_cycles=tuple(mid),
            skipped_cycles=skipped,
        )
        logger.info(
            "Fault recovery finished: cycles=%d avg_mttr=%s exactly_once=%s manual_steps=%d",
            len(report.cycles),
            report.avg_mttr_s,
            report.exactly_once_completion,
            report.total_manual_steps,
        )
        return report

    async def run_idle_cycle(self, index: int) -> RecoveryCycle:
        """Crash with nothing in flight, restart, then verify with a fresh operation."""
        phase = RecoveryPhase.IDLE
        operation_id = self._new_operation_id(phase, index)
        params = self._params_for(operation_id)
        transitions: list[CycleState] = [CycleState.HEALTHY]
        manual_steps = 0
        await self._cycle_started(phase, index, operation_id)

        crashed_at = self._clock.now()
        crash_mono = self._clock.monotonic()
        restart: _Restart | None = None

        try:
            await self._crash(transitions)
            manual_steps += 1

            await self._clock.sleep(self._settle_delay_s)
            restart = await self._restart(transitions)
            manual_steps += restart.attempts
        except HarnessFault as fault:
            attempts = fault.attempts if isinstance(fault, RestartFailed) else 0
            return await self._harness_fault_cycle(
                phase,
                index,
                operation_id,
                crashed_at,
                transitions,
                manual_steps + attempts,
                attempts,
                fault,
            )

        verification = await self._verify(params, transitions)
        manual_steps += verification.failures
        completions = _count_completions(verification.fresh_completions, verification.replayed)

        cycle = RecoveryCycle(
            phase=phase,
            index=index,
            operation_id=operation_id,
            crashed_at=crashed_at,
            restarted_at=restart.restarted_at,
            mttr_s=restart.mttr_s,
            downtime_s=restart.restarted_monotonic - crash_mono,
            end_to_end_s=self._end_to_end(crash_mono, verification),
            manual_steps=manual_steps,
            exactly_once=completions == 1,
            status=transitions[-1],
            completions=completions,
            restart_attempts=restart.attempts,
            transitions=tuple(transitions),
            error=_verification_error(verification),
        )
        await self._cycle_completed(cycle)
        return cycle

    async def run_mid_operation_cycle(self, index: int) -> RecoveryCycle:
        """
        Crash while an operation is in flight.

        After restart the in-flight operation is resolved. If its fate is
        unknown the system is asked about it by operation_id, then the same
        logical operation is re-issued. exactly_once holds only if the
        operation completed once across the original call and every re-issue,
        and is never claimed when a fresh re-issue followed a crash the system
        could not account for.
        """
        phase = RecoveryPhase.MID_OPERATION
        operation_id = self._new_operation_id(phase, index)
        params = self._params_for(operation_id)
        transitions: list[CycleState] = [CycleState.HEALTHY]
        manual_steps = 0
        await self._cycle_started(phase, index, operation_id)

        inflight = asyncio.create_task(self._attempt(params))
        await self._clock.sleep(self._inflight_crash_delay_s)

        crashed_at = self._clock.now()
        crash_mono = self._clock.monotonic()

        try:
            await self._crash(transitions)
            manual_steps += 1

            await self._clock.sleep(self._settle_delay_s)
            restart = await self._restart(transitions)
            manual_steps += restart.attempts
        except HarnessFault as fault:
            await self._abandon(inflight)
            attempts = fault.attempts if isinstance(fault, RestartFailed) else 0
            return await self._harness_fault_cycle(
                phase,
                index,
                operation_id,
                crashed_at,
                transitions,
                manual_steps + attempts,
                attempts,
                fault,
            )

        resolution, original = await self._resolve_inflight(inflight)
        committed: bool | None = None

        if resolution == InflightResolution.COMPLETED:
            logger.info("Cycle %s#%d in-flight operation completed", phase.value, index)
            # The tracked operation is done; check usability with a separate one
            check_params = self._params_for(self._new_operation_id(phase, index))
            verification = await self._verify(check_params, transitions)
            fresh = 0
            replayed = False
        else:
            # Operator has to re-submit an operation whose fate is unknown
            manual_steps += 1
            committed = await self._lookup(operation_id)
            logger.info(
                "Cycle %s#%d in-flight operation %s (committed=%s)",
                phase.value,
                index,
                resolution.value,
                committed,
            )
            verification = await self._verify(params, transitions)
            fresh = verification.fresh_completions
            replayed = verification.replayed

        manual_steps += verification.failures
        if original is not None:
            fresh += int(_is_fresh_completion(original))
            replayed = replayed or _is_replay(original)
        completions = _count_completions(fresh, replayed, committed=committed is True)

        # A fresh re-issue after an unresolved crash may hide a duplicate
        proven = not (
            resolution == InflightResolution.INDETERMINATE
            and committed is None
            and verification.fresh_completions > 0
        )

        if completions > 1:
            logger.warning(
                "Operation %s completed %d times across crash and re-issue",
                operation_id,
                completions,
            )
        elif not proven:
            logger.warning(
                "Operation %s re-issued without knowing whether the crashed attempt committed",
                operation_id,
            )

        cycle = RecoveryCycle(
            phase=phase,
            index=index,
            operation_id=operation_id,
            crashed_at=crashed_at,
            restarted_at=restart.restarted_at,
            mttr_s=restart.mttr_s,
            downtime_s=restart.restarted_monotonic - crash_mono,
            end_to_end_s=self._end_to_end(crash_mono, verification),
            manual_steps=manual_steps,
            exactly_once=completions == 1 and proven,
            status=transitions[-1],
            completions=completions,
            restart_attempts=restart.attempts,
            inflight=resolution,
            inflight_committed=committed,
            transitions=tuple(transitions),
            error=_verification_error(verification),
        )
        await self._cycle_completed(cycle)
        return cycle

    # =========================================================================
    # Steps
    # =========================================================================

    async def _crash(self, transitions: list[CycleState]) -> None:
        try:
            await self._system.disconnect()
        except Exception as exc:
            raise HarnessFault(f"Could not crash system under test: {exc}") from exc
        _enter(transitions, CycleState.CRASHED)

    async def _restart(self, transitions: list[CycleState]) -> _Restart:
        """
        Reconnect the system, retrying up to restart_attempts.

        MTTR is the duration of the successful connect call only.

        Raises:
            RestartFailed: if every attempt failed.
        """
        _enter(transitions, CycleState.RESTARTING)
        last_error: Exception | None = None

        for attempt in range(1, self._restart_attempts + 1):
            started = self._clock.monotonic()
            try:
                if self._operation_timeout_s is None:
                    await self._system.connect()
                else:
                    await asyncio.wait_for(self._system.connect(), timeout=self._operation_timeout_s)
            except Exception as exc:
                last_error = exc
                logger.warning(
                    "Restart attempt %d/%d failed: %s",
                    attempt,
                    self._restart_attempts,
                    exc,
                )
                if attempt < self._restart_attempts:
                    await self._clock.sleep(self._retry_delay_s)
                continue

            finished = self._clock.monotonic()
            return _Restart(
                restarted_at=self._clock.now(),
                restarted_monotonic=finished,
                mttr_s=finished - started,
                attempts=attempt,
            )

        raise RestartFailed(
            f"System did not restart after {self._restart_attempts} attempts: {last_error}",
            attempts=self._restart_attempts,
        )

    async def _attempt(self, params: dict[str, Any]) -> OperationOutcome:
        return await execute(
            lambda: self._system.execute_operation(dict(params)),
            self._attempt_policy,
            clock=self._clock,
        )

    async def _verify(self, params: dict[str, Any], transitions: list[CycleState]) -> _Verification:
        """Issue the operation until it completes or the verification budget runs out."""
        _enter(transitions, CycleState.VERIFYING)
        fresh = 0
        failures = 0
        replayed = False

        for attempt in range(1, self._verification_attempts + 1):
            if self._deadline_expired():
                logger.warning(
                    "Run deadline expired, verification stopped after %d attempt(s)",
                    attempt - 1,
                )
                _enter(transitions, CycleState.FAILED)
                return _Verification(
                    succeeded=False,
                    failures=failures,
                    fresh_completions=fresh,
                    verified_monotonic=None,
                    replayed=replayed,
                    expired=True,
                )

            outcome = await self._attempt(params)
            if _is_fresh_completion(outcome):
                fresh += 1
            replayed = replayed or _is_replay(outcome)

            if _is_completed(outcome):
                _enter(transitions, CycleState.HEALTHY if failures == 0 else CycleState.DEGRADED)
                return _Verification(
                    succeeded=True,
                    failures=failures,
                    fresh_completions=fresh,
                    verified_monotonic=self._clock.monotonic(),
                    replayed=replayed,
                )

            failures += 1
            _enter(transitions, CycleState.DEGRADED)
            logger.warning(
                "Verification %d/%d failed: %s",
                attempt,
                self._verification_attempts,
                outcome.error or "operation not completed",
            )
            if attempt < self._verification_attempts:
                await self._clock.sleep(self._retry_delay_s)

        _enter(transitions, CycleState.FAILED)
        return _Verification(
            succeeded=False,
            failures=failures,
            fresh_completions=fresh,
            verified_monotonic=None,
            replayed=replayed,
        )

    async def _lookup(self, operation_id: str) -> bool | None:
        """Ask the restarted system whether operation_id took effect; None if it cannot tell."""
        try:
            if self._operation_timeout_s is None:
                receipt = await self._system.lookup_operation(operation_id)
            else:
                receipt = await asyncio.wait_for(
                    self._system.lookup_operation(operation_id),
                    timeout=self._operation_timeout_s,
                )
        except Exception as exc:
            logger.warning("Lookup of operation %s failed: %s", operation_id, exc)
            return None

        if receipt is None or receipt.status == ReceiptStatus.PENDING:
            return None
        return receipt.status == ReceiptStatus.COMPLETED

    async def _resolve_inflight(
        self, task: "asyncio.Task[OperationOutcome]"
    ) -> tuple[InflightResolution, OperationOutcome | None]:
        """Wait (bounded) for the interrupted operation and decide what happened to it."""
        done, _ = await asyncio.wait({task}, timeout=self._inflight_resolve_timeout_s)
        if not done:
            await self._abandon(task)
            return InflightResolution.INDETERMINATE, None

        outcome = task.result()
        if _is_completed(outcome):
            return InflightResolution.COMPLETED, outcome
        if outcome.success or outcome.error_kind in _UNCERTAIN_KINDS:
            # Pending receipt, or failed in a way that may have taken effect
            return InflightResolution.INDETERMINATE, outcome
        return InflightResolution.FAILED, outcome

    async def _abandon(self, task: "asyncio.Task[OperationOutcome]") -> None:
        if task.done():
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _harness_fault_cycle(
        self,
        phase: RecoveryPhase,
        index: int,
        operation_id: str,
        crashed_at: datetime,
        transitions: list[CycleState],
        manual_steps: int,
        restart_attempts: int,
        fault: HarnessFault,
    ) -> RecoveryCycle:
        logger.error("Cycle %s#%d aborted: %s", phase.value, index, fault)
        _enter(transitions, CycleState.FAILED)
        cycle = RecoveryCycle(
            phase=phase,
            index=index,
            operation_id=operation_id,
            crashed_at=crashed_at,
            restarted_at=None,
            mttr_s=None,
            downtime_s=None,
            end_to_end_s=None,
            manual_steps=manual_steps,
            exactly_once=False,
            status=CycleState.FAILED,
            restart_attempts=restart_attempts,
            transitions=tuple(transitions),
            error=str(fault),
        )
        await self._cycle_completed(cycle)
        return cycle

    def _deadline_expired(self) -> bool:
        return self._deadline is not None and self._deadline.expired()

    def _end_to_end(self, crash_mono: float, verification: _Verification) -> float | None:
        if verification.verified_monotonic is None:
            return None
        return verification.verified_monotonic - crash_mono

    def _new_operation_id(self, phase: RecoveryPhase, index: int) -> str:
        return f"recovery-{phase.value}-{index}-{uuid4().hex[:8]}"

    def _params_for(self, operation_id: str) -> dict[str, Any]:
        params = dict(self._operation_params)
        params["operation_id"] = operation_id
        return params

    async def _cycle_started(self, phase: RecoveryPhase, index: int, operation_id: str) -> None:
        logger.info(
            "Cycle %s#%d started (operation %s, params=%s)",
            phase.value,
            index,
            operation_id,
            redact_sensitive(self._operation_params),
        )
        await emit(
            self._event_bus,
            EventType.CYCLE_STARTED,
            {"phase": phase.value, "index": index, "operation_id": operation_id},
            self._run_id,
        )

    async def _cycle_completed(self, cycle: RecoveryCycle) -> None:
        logger.info(
            "Cycle %s#%d %s: mttr=%s manual_steps=%d exactly_once=%s",
            cycle.phase.value,
            cycle.index,
            cycle.status.value,
            cycle.mttr_s,
            cycle.manual_steps,
            cycle.exactly_once,
        )
        await emit(self._event_bus, EventType.CYCLE_COMPLETED, cycle.to_dict(), self._run_id)
