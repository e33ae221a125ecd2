"""
Result classification.

Maps a measured value to passed / partial / failed against two thresholds.
Boundaries are inclusive: a value exactly on the passed threshold passes.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from bench_engine.domain.result import (
    BenchmarkResult,
    BenchmarkStatus,
    Direction,
    Thresholds,
)
from bench_engine.errors import ThresholdOrderError
from bench_engine.logging import get_logger

logger = get_logger(__name__)

_STATUS_RANK = {
    BenchmarkStatus.FAILED: 0,
    BenchmarkStatus.PARTIAL: 1,
    BenchmarkStatus.PASSED: 2,
}


def validate_thresholds(thresholds: Thresholds, direction: Direction) -> None:
    """
    Check the passed threshold is at least as strict as the partial one.

    Raises:
        ThresholdOrderError: if the thresholds are ordered against direction.
    """
    if direction == Direction.LOWER_IS_BETTER and thresholds.passed > thresholds.partial:
        raise ThresholdOrderError(
            f"Lower-is-better thresholds need passed <= partial "
            f"(got {thresholds.passed} > {thresholds.partial})"
        )
    if direction == Direction.HIGHER_IS_BETTER and thresholds.passed < thresholds.partial:
        raise ThresholdOrderError(
            f"Higher-is-better thresholds need passed >= partial "
            f"(got {thresholds.passed} < {thresholds.partial})"
        )


def classify(
    criterion: str,
    value: float | None,
    thresholds: Thresholds,
    direction: Direction,
) -> BenchmarkStatus:
    """
    Classify one measured value.

    Args:
        criterion: Criterion name (for logging)
        value: Measured value; None means no data and always fails
        thresholds: passed / partial boundaries (inclusive)
        direction: Whether higher or lower values are better

    Returns:
        BenchmarkStatus
    """
    validate_thresholds(thresholds, direction)

    if value is None:
        logger.info("%s: no data, classified as failed", criterion)
        return BenchmarkStatus.FAILED

    if direction == Direction.LOWER_IS_BETTER:
        if value <= thresholds.passed:
            status = BenchmarkStatus.PASSED
        elif value <= thresholds.partial:
            status = BenchmarkStatus.PARTIAL
        else:
            status = BenchmarkStatus.FAILED
    else:
        if value >= thresholds.passed:
            status = BenchmarkStatus.PASSED
        elif value >= thresholds.partial:
            status = BenchmarkStatus.PARTIAL
        else:
            status = BenchmarkStatus.FAILED

    logger.debug("%s: value=%s -> %s", criterion, value, status.value)
    return status


def cap_status(status: BenchmarkStatus, ceiling: BenchmarkStatus) -> BenchmarkStatus:
    """Return the worse of status and ceiling (e.g. cap at partial when a gate fails)."""
    if _STATUS_RANK[status] > _STATUS_RANK[ceiling]:
        return ceiling
    return status


def build_result(
    criterion: str,
    value: float | None,
    thresholds: Thresholds,
    direction: Direction,
    *,
    unit: str,
    method: str = "",
    evidence: Mapping[str, Any] | None = None,
    details: Mapping[str, Any] | None = None,
    ceiling: BenchmarkStatus | None = None,
    timestamp: datetime | None = None,
) -> BenchmarkResult:
    """
    Classify value and wrap it in a BenchmarkResult.

    ceiling, when given, caps the status (a gating condition such as an
    exactly-once violation).
    """
    status = classify(criterion, value, thresholds, direction)
    if ceiling is not None:
        capped = cap_status(status, ceiling)
        if capped != status:
            logger.info("%s: status capped from %s to %s", criterion, status.value, capped.value)
        status = capped

    summary = dict(details or {})
    summary.setdefault("thresholds", {"passed": thresholds.passed, "partial": thresholds.partial})
    summary.setdefault("direction", direction.value)

    return BenchmarkResult(
        criterion=criterion,
        unit=unit,
        value=value,
        status=status,
        evidence=dict(evidence or {}),
        details=summary,
        method=method,
        timestamp=timestamp or datetime.now(UTC),
    )


@dataclass(frozen=True)
class SuiteSummary:
    """Counts per status over a set of criteria."""

    total: int
    passed: int
    partial: int
    failed: int

    @property
    def overall_score(self) -> int:
        """round((passed + 0.5 * partial) / total * 100); 0 for an empty suite."""
        if self.total == 0:
            return 0
        return round((self.passed + 0.5 * self.partial) / self.total * 100)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "passed": self.passed,
            "partial": self.partial,
            "failed": self.failed,
            "overall_score": self.overall_score,
        }


def summarize_results(results: Sequence[BenchmarkResult]) -> SuiteSummary:
    """Tally results by status."""
    return SuiteSummary(
        total=len(results),
        passed=sum(1 for r in results if r.status == BenchmarkStatus.PASSED),
        partial=sum(1 for r in results if r.status == BenchmarkStatus.PARTIAL),
        failed=sum(1 for r in results if r.status == BenchmarkStatus.FAILED),
    )
