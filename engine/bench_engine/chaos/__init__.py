"""
Fault simulation: scripted and seeded fault injection, rate-limited backends.
"""

from bench_engine.chaos.rate_limit import TokenBucket
from bench_engine.chaos.simulator import (
    Fault,
    FaultSimulator,
    FaultType,
    NoFaults,
    RandomFaultSimulator,
    ScriptedFaultSimulator,
)
from bench_engine.chaos.system import FaultInjectingSystem

__all__ = [
    "Fault",
    "FaultInjectingSystem",
    "FaultSimulator",
    "FaultType",
    "NoFaults",
    "RandomFaultSimulator",
    "ScriptedFaultSimulator",
    "TokenBucket",
]
