"""
Canary probe models.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from bench_engine.errors import ErrorKind


@dataclass(frozen=True)
class CanaryProbe:
    """One low-frequency synthetic operation."""

    timestamp: datetime
    offset_s: float  # Seconds since the canary run started
    success: bool
    latency_s: float
    error: str | None = None
    error_kind: ErrorKind = ErrorKind.NONE

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "offset_s": self.offset_s,
            "success": self.success,
            "latency_s": self.latency_s,
            "error": self.error,
            "error_kind": self.error_kind.value,
        }


@dataclass(frozen=True)
class CanaryAlert:
    """Raised to operators as soon as a probe fails."""

    probe: CanaryProbe
    sequence: int  # 1-based probe number
    consecutive_failures: int

    @property
    def message(self) -> str:
        return (
            f"Canary probe #{self.sequence} failed "
            f"({self.consecutive_failures} consecutive): {self.probe.error or 'unknown error'}"
        )
