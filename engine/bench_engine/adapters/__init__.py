"""
Concrete SystemUnderTest adapters.
"""

from bench_engine.adapters.http import HttpSystemUnderTest

__all__ = ["HttpSystemUnderTest"]
