"""
Canary/availability prober.

Issues one low-frequency synthetic operation every interval for the whole
observation window and derives availability, MTBF and MTTR from the probe
log. Alerts for failed probes are delivered before the next probe fires.
"""

import math
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from bench_engine.domain.canary import CanaryAlert, CanaryProbe
from bench_engine.logging import get_logger
from bench_engine.runtime.clock import Clock, default_clock
from bench_engine.runtime.event_bus import EventBus, EventType, emit
from bench_engine.runtime.executor import OperationFactory, RetryPolicy, execute
from bench_engine.runtime.run_context import RunDeadline

if TYPE_CHECKING:
    from bench_engine.config import Settings

logger = get_logger(__name__)

AlertHandler = Callable[[CanaryAlert], None]


@dataclass(frozen=True)
class CanaryReport:
    """Probe log and availability figures of one canary run."""

    probes: tuple[CanaryProbe, ...]
    total_duration_s: float
    interval_s: float
    alerts: tuple[CanaryAlert, ...] = field(default_factory=tuple)

    @property
    def total(self) -> int:
        return len(self.probes)

    @property
    def successes(self) -> int:
        return sum(1 for p in self.probes if p.success)

    @property
    def failures(self) -> int:
        return self.total - self.successes

    @property
    def success_ratio(self) -> float:
        """Successful probes / total probes; 0.0 when nothing was probed."""
        if self.total == 0:
            return 0.0
        return self.successes / self.total

    @property
    def availability_pct(self) -> float:
        return self.success_ratio * 100

    @property
    def mtbf_s(self) -> float:
        """Observation window divided by the number of failed probes (at least 1)."""
        return self.total_duration_s / max(self.failures, 1)

    @property
    def mttr_s(self) -> float | None:
        """
        Mean time from the first failed probe of an outage to the next good one.

        Outages still open when the window closed are not counted; None when
        no recovery was observed.
        """
        repairs: list[float] = []
        outage_start: float | None = None

        for probe in self.probes:
            if not probe.success:
                if outage_start is None:
                    outage_start = probe.offset_s
            elif outage_start is not None:
                repairs.append(probe.offset_s - outage_start)
                outage_start = None

        if not repairs:
            return None
        return sum(repairs) / len(repairs)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "successes": self.successes,
            "failures": self.failures,
            "success_ratio": self.success_ratio,
            "availability_pct": self.availability_pct,
            "mtbf_s": self.mtbf_s,
            "mttr_s": self.mttr_s,
            "total_duration_s": self.total_duration_s,
            "interval_s": self.interval_s,
            "alerts": [alert.message for alert in self.alerts],
        }


class CanaryProber:
    """
    Fires a new operation at start + k * interval_s while the clock is before
    start + total_duration_s.

    Each probe is a single attempt bounded by timeout_s; a failed probe is an
    observation, not something to retry away. A probe that runs past its
    slot makes the prober skip the slots it missed instead of firing them
    back to back, and probe offsets are the times the probes actually fired.
    """

    def __init__(
        self,
        new_operation: OperationFactory,
        *,
        interval_s: float = 300.0,
        total_duration_s: float = 86400.0,
        timeout_s: float | None = 120.0,
        on_alert: AlertHandler | None = None,
        clock: Clock | None = None,
        deadline: RunDeadline | None = None,
        event_bus: EventBus | None = None,
        run_id: str | None = None,
    ) -> None:
        if interval_s <= 0:
            raise ValueError("interval_s must be > 0")
        if total_duration_s <= 0:
            raise ValueError("total_duration_s must be > 0")

        self._new_operation = new_operation
        self._interval_s = interval_s
        self._total_duration_s = total_duration_s
        self._policy = RetryPolicy.single_attempt(timeout_s)
        self._on_alert = on_alert
        self._clock = clock or default_clock()
        self._deadline = deadline
        self._event_bus = event_bus
        self._run_id = run_id

    @classmethod
    def from_settings(
        cls,
        new_operation: OperationFactory,
        settings: "Settings",
        **kwargs: Any,
    ) -> "CanaryProber":
        options: dict[str, Any] = {
            "interval_s": settings.canary_interval_s,
            "total_duration_s": settings.canary_total_duration_s,
            "timeout_s": settings.canary_timeout_s,
        }
        options.update(kwargs)
        return cls(new_operation, **options)

    async def run(self) -> CanaryReport:
        """Probe for the whole window and return the report."""
        clock = self._clock
        probes: list[CanaryProbe] = []
        alerts: list[CanaryAlert] = []
        consecutive_failures = 0

        start = clock.monotonic()
        window_end = start + self._total_duration_s
        logger.info(
            "Canary started: every %.0fs for %.0fs",
            self._interval_s,
            self._total_duration_s,
        )

        k = 0
        while True:
            due = start + k * self._interval_s
            delay = due - clock.monotonic()
            if delay > 0:
                await clock.sleep(delay)

            # Never earlier than the slot, whatever the clock rounding
            fired = max(clock.monotonic(), due)
            if fired >= window_end:
                break
            if self._deadline is not None and self._deadline.expired():
                logger.warning("Run deadline expired, canary stopped after %d probes", len(probes))
                break

            outcome = await execute(self._new_operation(), self._policy, clock=clock)
            k = self._next_slot(k, clock.monotonic() - start)

            probe = CanaryProbe(
                timestamp=outcome.started_at,
                offset_s=fired - start,
                success=outcome.success,
                latency_s=outcome.latency_s,
                error=outcome.error,
                error_kind=outcome.error_kind,
            )
            probes.append(probe)
            await emit(self._event_bus, EventType.CANARY_PROBE, probe.to_dict(), self._run_id)

            if probe.success:
                consecutive_failures = 0
                continue

            consecutive_failures += 1
            alert = CanaryAlert(
                probe=probe,
                sequence=len(probes),
                consecutive_failures=consecutive_failures,
            )
            alerts.append(alert)
            await self._deliver(alert)

        report = CanaryReport(
            probes=tuple(probes),
            total_duration_s=self._total_duration_s,
            interval_s=self._interval_s,
            alerts=tuple(alerts),
        )
        logger.info(
            "Canary finished: %d/%d probes succeeded (%.2f%%), MTBF=%.0fs",
            report.successes,
            report.total,
            report.availability_pct,
            report.mtbf_s,
        )
        return report

    def _next_slot(self, k: int, elapsed_s: float) -> int:
        """First slot after k that is not already in the past."""
        following = max(k + 1, math.ceil(elapsed_s / self._interval_s))
        if following > k + 1:
            logger.warning(
                "Canary probe overran its interval, skipping %d slot(s)",
                following - k - 1,
            )
        return following

    async def _deliver(self, alert: CanaryAlert) -> None:
        """Hand the alert to the callback and the event bus before the next probe."""
        logger.warning(alert.message)

        if self._on_alert is not None:
            try:
                self._on_alert(alert)
            except Exception as exc:
                logger.error("Canary alert handler failed: %s", exc)

        await emit(
            self._event_bus,
            EventType.CANARY_ALERT,
            {
                "sequence": alert.sequence,
                "consecutive_failures": alert.consecutive_failures,
                "message": alert.message,
                "probe": alert.probe.to_dict(),
            },
            self._run_id,
        )
