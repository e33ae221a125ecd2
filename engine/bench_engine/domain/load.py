"""
Load step models.

A load generator run owns an ordered sequence of LoadSteps that execute
strictly one after another.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from bench_engine.domain.outcome import MeasurementSeries


class StepSpec(BaseModel):
    """Requested rate and duration of one load step."""

    rate: float = Field(..., gt=0, description="Target dispatch rate (ops/sec)")
    duration_s: float = Field(..., gt=0, description="How long to dispatch at this rate")

    @property
    def interval_s(self) -> float:
        return 1.0 / self.rate


@dataclass(frozen=True)
class LoadStep:
    """Measurements of one executed load step."""

    target_rate: float
    duration_s: float
    started_at: datetime
    finished_at: datetime
    dispatched: int
    series: MeasurementSeries
    started_monotonic: float = 0.0
    finished_monotonic: float = 0.0

    @property
    def completed(self) -> int:
        return len(self.series)

    @property
    def successes(self) -> int:
        return self.series.successes

    @property
    def failures(self) -> int:
        return self.series.failures

    @property
    def success_rate(self) -> float:
        """0.0 when nothing completed (extreme rate limiting), never NaN."""
        return self.series.success_rate

    @property
    def error_rate(self) -> float | None:
        """None when no operation completed: the rate is unknown, not zero."""
        if self.completed == 0:
            return None
        return self.series.error_rate

    def to_dict(self) -> dict[str, Any]:
        return {
            "target_rate": self.target_rate,
            "duration_s": self.duration_s,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat(),
            "dispatched": self.dispatched,
            "completed": self.completed,
            "successes": self.successes,
            "failures": self.failures,
            "success_rate": self.success_rate,
            "error_rate": self.error_rate,
            "error_breakdown": self.series.error_breakdown(),
        }
