"""
Run context for tracking benchmark runs.

Provides unique run IDs, the run-level deadline, and run metadata.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from bench_engine.runtime.clock import Clock, default_clock


def generate_run_id(prefix: str = "bench") -> str:
    """
    Generate a unique run ID.

    Format: {prefix}_{timestamp}_{uuid8}
    Example: bench_20240115_143022_a1b2c3d4

    Args:
        prefix: ID prefix (e.g., "bench", "canary")

    Returns:
        Unique run ID string.
    """
    timestamp = datetime.now(UTC).strftime("%Y%m%d_%H%M%S")
    short_uuid = uuid4().hex[:8]
    return f"{prefix}_{timestamp}_{short_uuid}"


class RunDeadline:
    """
    Overall time budget for a benchmark run.

    Once expired no new operations are dispatched; operations already in
    flight finish or time out on their own.
    """

    def __init__(self, budget_s: float | None, clock: Clock | None = None) -> None:
        if budget_s is not None and budget_s <= 0:
            raise ValueError("Deadline budget must be > 0")
        self._clock = clock or default_clock()
        self._budget_s = budget_s
        self._started = self._clock.monotonic()

    @classmethod
    def unbounded(cls, clock: Clock | None = None) -> "RunDeadline":
        return cls(None, clock)

    @property
    def budget_s(self) -> float | None:
        return self._budget_s

    def remaining_s(self) -> float | None:
        """Seconds left, None for an unbounded run."""
        if self._budget_s is None:
            return None
        return max(self._budget_s - (self._clock.monotonic() - self._started), 0.0)

    def expired(self) -> bool:
        remaining = self.remaining_s()
        return remaining is not None and remaining <= 0


@dataclass
class RunContext:
    """
    Context for one benchmark run.

    Tracks run metadata and a configuration snapshot for reproducibility.
    """

    run_id: str
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    config_snapshot: dict[str, Any] = field(default_factory=dict)
    criteria: list[str] = field(default_factory=list)

    # Status
    is_completed: bool = False
    completed_at: datetime | None = None
    error: str | None = None

    def mark_completed(self, error: str | None = None) -> None:
        """Mark run as completed."""
        self.is_completed = True
        self.completed_at = datetime.now(UTC)
        self.error = error

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "run_id": self.run_id,
            "created_at": self.created_at.isoformat(),
            "config_snapshot": self.config_snapshot,
            "criteria": self.criteria,
            "is_completed": self.is_completed,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "error": self.error,
        }
