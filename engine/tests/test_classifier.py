"""
Tests for passed/partial/failed classification.
"""

import pytest

from bench_engine.classify import (
    build_result,
    cap_status,
    classify,
    summarize_results,
    validate_thresholds,
)
from bench_engine.domain.result import BenchmarkResult, BenchmarkStatus, Direction, Thresholds
from bench_engine.errors import ThresholdOrderError

LOWER = Direction.LOWER_IS_BETTER
HIGHER = Direction.HIGHER_IS_BETTER


def result(status: BenchmarkStatus) -> BenchmarkResult:
    return BenchmarkResult(criterion="c", unit="u", value=1.0, status=status)


class TestClassify:
    """Tests for threshold classification."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            (50, BenchmarkStatus.PASSED),
            (100, BenchmarkStatus.PASSED),
            (150, BenchmarkStatus.PARTIAL),
            (200, BenchmarkStatus.PARTIAL),
            (250, BenchmarkStatus.FAILED),
        ],
    )
    def test_lower_is_better(self, value: float, expected: BenchmarkStatus) -> None:
        thresholds = Thresholds(passed=100, partial=200)
        assert classify("latency", value, thresholds, LOWER) == expected

    @pytest.mark.parametrize(
        "value,expected",
        [
            (99.9, BenchmarkStatus.PASSED),
            (99.0, BenchmarkStatus.PASSED),
            (97.0, BenchmarkStatus.PARTIAL),
            (95.0, BenchmarkStatus.PARTIAL),
            (90.0, BenchmarkStatus.FAILED),
        ],
    )
    def test_higher_is_better(self, value: float, expected: BenchmarkStatus) -> None:
        thresholds = Thresholds(passed=99, partial=95)
        assert classify("availability", value, thresholds, HIGHER) == expected

    def test_no_data_fails(self) -> None:
        assert classify("mttr", None, Thresholds(passed=1, partial=2), LOWER) == BenchmarkStatus.FAILED

    def test_misordered_thresholds_rejected(self) -> None:
        with pytest.raises(ThresholdOrderError):
            classify("latency", 1.0, Thresholds(passed=200, partial=100), LOWER)
        with pytest.raises(ThresholdOrderError):
            validate_thresholds(Thresholds(passed=95, partial=99), HIGHER)

    def test_equal_thresholds_allowed(self) -> None:
        validate_thresholds(Thresholds(passed=5, partial=5), LOWER)
        assert classify("x", 6, Thresholds(passed=5, partial=5), LOWER) == BenchmarkStatus.FAILED


class TestCapStatus:
    """Tests for gating ceilings."""

    def test_cap_lowers_passed(self) -> None:
        assert cap_status(BenchmarkStatus.PASSED, BenchmarkStatus.PARTIAL) == BenchmarkStatus.PARTIAL

    def test_cap_never_raises(self) -> None:
        assert cap_status(BenchmarkStatus.FAILED, BenchmarkStatus.PARTIAL) == BenchmarkStatus.FAILED


class TestBuildResult:
    """Tests for result construction."""

    def test_thresholds_recorded_in_details(self) -> None:
        res = build_result(
            "throughput",
            8.0,
            Thresholds(passed=10, partial=5),
            HIGHER,
            unit="ops/s",
            method="step load",
            evidence={"steps": [1, 2]},
        )

        assert res.status == BenchmarkStatus.PARTIAL
        assert res.details["thresholds"] == {"passed": 10, "partial": 5}
        assert res.details["direction"] == "higher_is_better"
        assert res.evidence["steps"] == [1, 2]

    def test_ceiling_applied(self) -> None:
        res = build_result(
            "fault_recovery",
            0.5,
            Thresholds(passed=1, partial=5),
            LOWER,
            unit="seconds",
            ceiling=BenchmarkStatus.PARTIAL,
        )

        assert res.status == BenchmarkStatus.PARTIAL


class TestSummary:
    """Tests for suite scoring."""

    def test_overall_score(self) -> None:
        summary = summarize_results(
            [
                result(BenchmarkStatus.PASSED),
                result(BenchmarkStatus.PASSED),
                result(BenchmarkStatus.PARTIAL),
                result(BenchmarkStatus.FAILED),
            ]
        )

        assert (summary.passed, summary.partial, summary.failed) == (2, 1, 1)
        # (2 + 0.5) / 4 * 100 = 62.5 -> 62 (round half to even)
        assert summary.overall_score == 62

    def test_empty_suite(self) -> None:
        summary = summarize_results([])

        assert summary.total == 0
        assert summary.overall_score == 0
        assert summary.to_dict()["overall_score"] == 0
