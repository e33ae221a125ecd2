"""
Operation outcome and measurement series.

An OperationOutcome is produced once per executor invocation. Outcomes for one
logical test phase are collected into a MeasurementSeries, which is
append-only while the phase runs and read-only once frozen.
"""

from collections import Counter
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import pandas as pd

from bench_engine.errors import ErrorKind, SeriesFrozenError


@dataclass(frozen=True)
class OperationOutcome:
    """
    Result of one executor call against the system under test.

    latency_s covers every attempt and backoff sleep, so it is what a caller
    actually waited for.
    """

    started_at: datetime
    finished_at: datetime
    latency_s: float
    success: bool
    error_kind: ErrorKind = ErrorKind.NONE
    attempts: int = 1
    error: str | None = None
    result: Any = field(default=None, compare=False, repr=False)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for evidence."""
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat(),
            "latency_s": self.latency_s,
            "success": self.success,
            "error_kind": self.error_kind.value,
            "attempts": self.attempts,
            "error": self.error,
        }


FRAME_COLUMNS = [
    "started_at",
    "finished_at",
    "latency_s",
    "success",
    "error_kind",
    "attempts",
    "error",
]


class MeasurementSeries:
    """
    Ordered outcomes for one phase (a load step, a latency sample run).

    Order is append order, which for concurrent phases is completion order.
    """

    def __init__(self, label: str = "") -> None:
        self.label = label
        self._outcomes: list[OperationOutcome] = []
        self._frozen = False

    def append(self, outcome: OperationOutcome) -> None:
        """Record an outcome. Only the task owning the phase may append."""
        if self._frozen:
            raise SeriesFrozenError(f"Series '{self.label}' is frozen")
        self._outcomes.append(outcome)

    def freeze(self) -> "MeasurementSeries":
        """Mark the phase as finished; further appends raise."""
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def outcomes(self) -> tuple[OperationOutcome, ...]:
        return tuple(self._outcomes)

    def __iter__(self) -> Iterator[OperationOutcome]:
        return iter(tuple(self._outcomes))

    def __len__(self) -> int:
        return len(self._outcomes)

    @property
    def successes(self) -> int:
        return sum(1 for o in self._outcomes if o.success)

    @property
    def failures(self) -> int:
        return len(self._outcomes) - self.successes

    @property
    def success_rate(self) -> float:
        """Successes / total; 0.0 for an empty series rather than NaN."""
        if not self._outcomes:
            return 0.0
        return self.successes / len(self._outcomes)

    @property
    def error_rate(self) -> float:
        """Failures / total; 0.0 for an empty series."""
        if not self._outcomes:
            return 0.0
        return self.failures / len(self._outcomes)

    def latencies(self, successful_only: bool = True) -> list[float]:
        """Latencies in seconds, by default of successful outcomes only."""
        return [o.latency_s for o in self._outcomes if o.success or not successful_only]

    def error_breakdown(self) -> dict[str, int]:
        """Count of failed outcomes per error kind."""
        counter = Counter(o.error_kind.value for o in self._outcomes if not o.success)
        return dict(counter)

    def to_frame(self) -> pd.DataFrame:
        """Evidence table with one row per outcome."""
        if not self._outcomes:
            return pd.DataFrame(columns=FRAME_COLUMNS)
        return pd.DataFrame([o.to_dict() for o in self._outcomes], columns=FRAME_COLUMNS)

    def to_dict(self) -> dict[str, Any]:
        return {
            "label": self.label,
            "outcomes": [o.to_dict() for o in self._outcomes],
        }
