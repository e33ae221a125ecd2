"""
Domain models for the benchmark engine.

These models represent the measurements collected during a run:
- OperationOutcome / MeasurementSeries: one executor call / one phase of calls
- StepSpec / LoadStep: requested and measured load steps
- RecoveryCycle: one crash/restart iteration
- CanaryProbe / CanaryAlert: availability probes and failure alerts
- BenchmarkResult: classified outcome of one criterion
"""

from bench_engine.domain.canary import CanaryAlert, CanaryProbe
from bench_engine.domain.load import LoadStep, StepSpec
from bench_engine.domain.outcome import MeasurementSeries, OperationOutcome
from bench_engine.domain.recovery import (
    CycleState,
    InflightResolution,
    RecoveryCycle,
    RecoveryPhase,
)
from bench_engine.domain.result import (
    BenchmarkResult,
    BenchmarkStatus,
    Direction,
    Thresholds,
)

__all__ = [
    "BenchmarkResult",
    "BenchmarkStatus",
    "CanaryAlert",
    "CanaryProbe",
    "CycleState",
    "Direction",
    "InflightResolution",
    "LoadStep",
    "MeasurementSeries",
    "OperationOutcome",
    "RecoveryCycle",
    "RecoveryPhase",
    "StepSpec",
    "Thresholds",
]
