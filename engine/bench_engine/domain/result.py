"""
Benchmark result models.

A BenchmarkResult is the terminal record for one criterion: produced once by
the classifier from completed measurements and never mutated.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from types import MappingProxyType
from typing import Any

from pydantic import BaseModel, Field


class BenchmarkStatus(str, Enum):
    """Classification of a criterion."""

    PASSED = "passed"
    PARTIAL = "partial"
    FAILED = "failed"


class Direction(str, Enum):
    """Which way a metric improves."""

    HIGHER_IS_BETTER = "higher_is_better"  # throughput, availability
    LOWER_IS_BETTER = "lower_is_better"  # latency, MTTR, error rate


class Thresholds(BaseModel):
    """Two ordered thresholds; passed is the stricter one."""

    passed: float = Field(..., description="Boundary for 'passed' (inclusive)")
    partial: float = Field(..., description="Boundary for 'partial' (inclusive)")


@dataclass(frozen=True)
class BenchmarkResult:
    """Terminal outcome of one benchmark criterion."""

    criterion: str
    unit: str
    value: float | None
    status: BenchmarkStatus
    evidence: Mapping[str, Any] = field(default_factory=dict)
    details: Mapping[str, Any] = field(default_factory=dict)
    method: str = ""
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __post_init__(self) -> None:
        # Freeze the mappings so the record cannot be changed through them
        if not isinstance(self.evidence, MappingProxyType):
            object.__setattr__(self, "evidence", MappingProxyType(dict(self.evidence)))
        if not isinstance(self.details, MappingProxyType):
            object.__setattr__(self, "details", MappingProxyType(dict(self.details)))

    @property
    def passed(self) -> bool:
        return self.status == BenchmarkStatus.PASSED

    def to_dict(self) -> dict[str, Any]:
        """Summary view for report generation (evidence is left to the caller)."""
        return {
            "criterion": self.criterion,
            "unit": self.unit,
            "value": self.value,
            "status": self.status.value,
            "method": self.method,
            "timestamp": self.timestamp.isoformat(),
            "details": dict(self.details),
        }
