"""
Tests for domain models.
"""

from datetime import UTC, datetime

import pytest

from bench_engine.domain import (
    BenchmarkResult,
    BenchmarkStatus,
    CycleState,
    LoadStep,
    MeasurementSeries,
    OperationOutcome,
    RecoveryCycle,
    RecoveryPhase,
    StepSpec,
)
from bench_engine.errors import ErrorKind, SeriesFrozenError

T0 = datetime(2024, 1, 1, tzinfo=UTC)


def outcome(success: bool = True, kind: ErrorKind = ErrorKind.NONE) -> OperationOutcome:
    return OperationOutcome(
        started_at=T0,
        finished_at=T0,
        latency_s=1.0,
        success=success,
        error_kind=kind,
    )


class TestMeasurementSeries:
    """Tests for MeasurementSeries."""

    def test_append_after_freeze_raises(self) -> None:
        series = MeasurementSeries("phase")
        series.append(outcome())
        series.freeze()

        with pytest.raises(SeriesFrozenError):
            series.append(outcome())
        assert len(series) == 1

    def test_rates_and_breakdown(self) -> None:
        series = MeasurementSeries("phase")
        series.append(outcome())
        series.append(outcome(False, ErrorKind.RATE_LIMIT))
        series.append(outcome(False, ErrorKind.RATE_LIMIT))
        series.append(outcome(False, ErrorKind.TIMEOUT))

        assert series.success_rate == 0.25
        assert series.error_rate == 0.75
        assert series.error_breakdown() == {"rate_limit": 2, "timeout": 1}

    def test_empty_series_rates(self) -> None:
        series = MeasurementSeries()

        assert series.success_rate == 0.0
        assert series.error_rate == 0.0
        assert series.latencies() == []

    def test_to_frame(self) -> None:
        series = MeasurementSeries()
        series.append(outcome())
        series.append(outcome(False, ErrorKind.TIMEOUT))

        frame = series.to_frame()

        assert len(frame) == 2
        assert list(frame["success"]) == [True, False]
        assert list(frame["error_kind"]) == ["none", "timeout"]

    def test_empty_frame_has_columns(self) -> None:
        frame = MeasurementSeries().to_frame()

        assert frame.empty
        assert "latency_s" in frame.columns

    def test_outcome_is_immutable(self) -> None:
        o = outcome()
        with pytest.raises(AttributeError):
            o.success = False  # type: ignore[misc]


class TestLoadStep:
    """Tests for LoadStep derived values."""

    def test_zero_completions_error_rate_unknown(self) -> None:
        step = LoadStep(
            target_rate=8.0,
            duration_s=10.0,
            started_at=T0,
            finished_at=T0,
            dispatched=80,
            series=MeasurementSeries().freeze(),
        )

        assert step.success_rate == 0.0
        assert step.error_rate is None

    def test_step_spec_validation(self) -> None:
        with pytest.raises(ValueError):
            StepSpec(rate=0, duration_s=10)
        assert StepSpec(rate=4, duration_s=10).interval_s == 0.25


class TestRecoveryCycle:
    """Tests for RecoveryCycle."""

    def test_harness_fault_when_not_restarted(self) -> None:
        cycle = RecoveryCycle(
            phase=RecoveryPhase.IDLE,
            index=0,
            operation_id="op",
            crashed_at=T0,
            restarted_at=None,
            mttr_s=None,
            downtime_s=None,
            end_to_end_s=None,
            manual_steps=4,
            exactly_once=False,
            status=CycleState.FAILED,
        )

        assert cycle.harness_fault is True
        assert cycle.recovered is False
        assert cycle.to_dict()["restarted_at"] is None


class TestBenchmarkResult:
    """Tests for BenchmarkResult."""

    def test_evidence_read_only(self) -> None:
        result = BenchmarkResult(
            criterion="latency",
            unit="seconds",
            value=1.0,
            status=BenchmarkStatus.PASSED,
            evidence={"raw": [1, 2]},
        )

        with pytest.raises(TypeError):
            result.evidence["raw"] = []  # type: ignore[index]
        assert result.passed is True
        assert result.to_dict()["status"] == "passed"
