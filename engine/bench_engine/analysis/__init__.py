"""
Statistics over measurement series.
"""

from bench_engine.analysis.statistics import (
    SeriesSummary,
    error_rate,
    iqr,
    mean,
    percentile,
    success_rate,
    summarize,
)

__all__ = [
    "SeriesSummary",
    "error_rate",
    "iqr",
    "mean",
    "percentile",
    "success_rate",
    "summarize",
]
