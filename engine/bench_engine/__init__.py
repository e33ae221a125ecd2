"""
Benchmark orchestration engine.

Measures operational properties of asynchronous, fallible remote operations:
- Retrying operation execution with timeouts and backoff
- Open-loop step-rate load generation
- Crash/restart fault-recovery cycles (MTTR, exactly-once completion)
- Canary availability probing (success ratio, MTBF, MTTR)
- Threshold-based pass/partial/fail classification
"""

__version__ = "1.0.0"
__author__ = "Benchmark Engine Team"

from bench_engine.config import Settings, get_settings

__all__ = ["__version__", "Settings", "get_settings"]
