"""
Crash/restart fault-recovery harness.
"""

from bench_engine.recovery.harness import FaultRecoveryHarness, RecoveryReport, RestartFailed

__all__ = [
    "FaultRecoveryHarness",
    "RecoveryReport",
    "RestartFailed",
]
