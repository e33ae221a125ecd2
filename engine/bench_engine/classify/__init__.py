"""
Threshold classification of benchmark metrics.
"""

from bench_engine.classify.classifier import (
    SuiteSummary,
    build_result,
    cap_status,
    classify,
    summarize_results,
    validate_thresholds,
)

__all__ = [
    "SuiteSummary",
    "build_result",
    "cap_status",
    "classify",
    "summarize_results",
    "validate_thresholds",
]
