"""
Latency and reliability statistics.

Percentiles use the nearest-rank method so small samples (30 latency
operations, a handful of load-step completions) report values that were
actually observed instead of interpolated ones.
"""

import math
from collections.abc import Iterable, Sequence

from pydantic import BaseModel, Field

from bench_engine.domain.outcome import MeasurementSeries
from bench_engine.logging import get_logger

logger = get_logger(__name__)


def percentile(values: Iterable[float], p: float) -> float | None:
    """
    Nearest-rank percentile.

    Sort ascending and take index ceil(p/100 * n) - 1, clamped to [0, n-1].

    Returns:
        The percentile value, or None when there is no data.
    """
    if not 0 <= p <= 100:
        raise ValueError(f"Percentile must be within [0, 100], got {p}")

    ordered = sorted(values)
    n = len(ordered)
    if n == 0:
        return None

    index = math.ceil(p / 100 * n) - 1
    index = min(max(index, 0), n - 1)
    return ordered[index]


def iqr(values: Iterable[float]) -> float | None:
    """Interquartile range (p75 - p25) under nearest-rank; None for no data."""
    ordered = sorted(values)
    q3 = percentile(ordered, 75)
    q1 = percentile(ordered, 25)
    if q3 is None or q1 is None:
        return None
    return q3 - q1


def mean(values: Sequence[float]) -> float | None:
    """Arithmetic mean; None for no data."""
    if not values:
        return None
    return sum(values) / len(values)


def success_rate(successes: int, total: int) -> float:
    """Successes / total, 0.0 when nothing was attempted."""
    if total <= 0:
        return 0.0
    return successes / total


def error_rate(failures: int, total: int) -> float:
    """Failures / total, 0.0 when nothing was attempted."""
    if total <= 0:
        return 0.0
    return failures / total


class SeriesSummary(BaseModel):
    """Descriptive statistics of one measurement series."""

    count: int = Field(default=0, ge=0)
    successes: int = Field(default=0, ge=0)
    failures: int = Field(default=0, ge=0)
    success_rate: float = 0.0
    error_rate: float = 0.0

    # Latency of successful outcomes (seconds); None when none succeeded
    p50_s: float | None = None
    p95_s: float | None = None
    iqr_s: float | None = None
    mean_s: float | None = None
    min_s: float | None = None
    max_s: float | None = None

    error_breakdown: dict[str, int] = Field(default_factory=dict)


def summarize(series: MeasurementSeries) -> SeriesSummary:
    """
    Summarize a measurement series.

    Latency figures only consider successful outcomes; failed attempts are
    reflected in the success and error rates.
    """
    latencies = sorted(series.latencies())
    total = len(series)

    summary = SeriesSummary(
        count=total,
        successes=series.successes,
        failures=series.failures,
        success_rate=success_rate(series.successes, total),
        error_rate=error_rate(series.failures, total),
        p50_s=percentile(latencies, 50),
        p95_s=percentile(latencies, 95),
        iqr_s=iqr(latencies),
        mean_s=mean(latencies),
        min_s=latencies[0] if latencies else None,
        max_s=latencies[-1] if latencies else None,
        error_breakdown=series.error_breakdown(),
    )

    logger.debug(
        "Summarized series '%s': n=%d p50=%s p95=%s",
        series.label,
        total,
        summary.p50_s,
        summary.p95_s,
    )
    return summary
