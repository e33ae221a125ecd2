"""
Fault-injecting wrapper around a system under test.
"""

from collections import Counter
from typing import Any

from bench_engine.chaos.rate_limit import TokenBucket
from bench_engine.chaos.simulator import Fault, FaultSimulator, FaultType, NoFaults
from bench_engine.errors import (
    IndeterminateError,
    OperationTimeoutError,
    RateLimitError,
    TerminalError,
    TransientError,
)
from bench_engine.interfaces.system_under_test import OperationReceipt, SystemUnderTest
from bench_engine.logging import get_logger
from bench_engine.runtime.clock import Clock, default_clock

logger = get_logger(__name__)


class FaultInjectingSystem(SystemUnderTest):
    """
    Wraps another SystemUnderTest and injects faults into its operations.

    Rate limiting is applied first (an empty bucket raises RateLimitError),
    then the simulator's fault for the call. A CRASH fault lets the inner
    operation run, disconnects the inner system and raises
    IndeterminateError, so the caller cannot tell whether the work happened.
    """

    def __init__(
        self,
        inner: SystemUnderTest,
        simulator: FaultSimulator | None = None,
        *,
        rate_limiter: TokenBucket | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._inner = inner
        self._simulator = simulator or NoFaults()
        self._rate_limiter = rate_limiter
        self._clock = clock or default_clock()
        self._calls = 0
        self._connect_failures_pending = 0
        self.injected: Counter[str] = Counter()

    @property
    def calls(self) -> int:
        return self._calls

    def fail_next_connects(self, count: int) -> None:
        """Make the next `count` connect() calls fail."""
        self._connect_failures_pending = count

    async def connect(self) -> None:
        if self._connect_failures_pending > 0:
            self._connect_failures_pending -= 1
            self.injected["connect_failure"] += 1
            raise ConnectionError("Injected restart failure")
        await self._inner.connect()

    async def disconnect(self) -> None:
        await self._inner.disconnect()

    async def health_check(self) -> bool:
        return await self._inner.health_check()

    async def lookup_operation(self, operation_id: str) -> OperationReceipt | None:
        return await self._inner.lookup_operation(operation_id)

    async def execute_operation(self, params: dict[str, Any]) -> OperationReceipt:
        call_index = self._calls
        self._calls += 1

        if self._rate_limiter is not None and not self._rate_limiter.try_acquire():
            self.injected[FaultType.RATE_LIMIT.value] += 1
            raise RateLimitError(retry_after_s=self._rate_limiter.retry_after())

        fault = self._simulator.next_fault(call_index)
        if fault is None:
            return await self._inner.execute_operation(params)

        self.injected[fault.type.value] += 1
        return await self._apply(fault, params)

    async def _apply(self, fault: Fault, params: dict[str, Any]) -> OperationReceipt:
        if fault.type == FaultType.LATENCY:
            await self._clock.sleep(fault.delay_s)
            return await self._inner.execute_operation(params)

        if fault.type == FaultType.TIMEOUT:
            await self._clock.sleep(fault.delay_s)
            raise OperationTimeoutError(fault.describe())

        if fault.type == FaultType.RATE_LIMIT:
            raise RateLimitError(fault.describe())

        if fault.type == FaultType.TRANSIENT:
            raise TransientError(fault.describe())

        if fault.type == FaultType.TERMINAL:
            raise TerminalError(fault.describe())

        # CRASH: the work lands, the acknowledgement does not
        await self._inner.execute_operation(params)
        await self._inner.disconnect()
        logger.info("Injected crash after operation %s", params.get("operation_id"))
        raise IndeterminateError(fault.describe())
