"""
Low-frequency availability probing.
"""

from bench_engine.canary.prober import AlertHandler, CanaryProber, CanaryReport

__all__ = [
    "AlertHandler",
    "CanaryProber",
    "CanaryReport",
]
