"""
Open-loop step-rate load generation.
"""

from bench_engine.load.generator import (
    LoadGenerator,
    ThroughputAnalysis,
    achieved_rate,
    analyze_throughput,
)

__all__ = [
    "LoadGenerator",
    "ThroughputAnalysis",
    "achieved_rate",
    "analyze_throughput",
]
