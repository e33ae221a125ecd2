"""
Interfaces (abstract base classes) for the benchmark engine.

These define the contracts that must be implemented by:
- SystemUnderTest: the target being benchmarked
"""

from bench_engine.interfaces.system_under_test import (
    OperationReceipt,
    ReceiptStatus,
    SystemUnderTest,
)

__all__ = [
    "OperationReceipt",
    "ReceiptStatus",
    "SystemUnderTest",
]
