"""
Tests for the retrying operation executor.

Tests:
- Retry on transient errors until success
- No retry for terminal errors
- Per-attempt timeout
- Backoff helpers
"""

import asyncio

import pytest

from bench_engine.errors import (
    ErrorKind,
    RateLimitError,
    TerminalError,
    TransientError,
    ValidationError,
)
from bench_engine.interfaces.system_under_test import OperationReceipt, ReceiptStatus
from bench_engine.runtime.clock import ManualClock
from bench_engine.runtime.executor import (
    RetryPolicy,
    execute,
    exponential_backoff,
    fixed_backoff,
)


class FlakyOperation:
    """Fails with the given exceptions, then returns "ok"."""

    def __init__(self, *errors: Exception) -> None:
        self.errors = list(errors)
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return "ok"


class TestRetries:
    """Tests for retry behaviour."""

    @pytest.mark.asyncio
    async def test_fail_fail_succeed(self) -> None:
        """Two transient failures then success: one successful outcome, three attempts."""
        clock = ManualClock()
        op = FlakyOperation(TransientError("blip"), TransientError("blip"))
        policy = RetryPolicy(max_attempts=3, backoff=fixed_backoff(1.0))

        outcome = await execute(op, policy, clock=clock)

        assert outcome.success is True
        assert outcome.attempts == 3
        assert outcome.error_kind == ErrorKind.NONE
        assert outcome.result == "ok"
        assert op.calls == 3

    @pytest.mark.asyncio
    async def test_latency_includes_backoff(self) -> None:
        """Latency covers every attempt and every backoff sleep."""
        clock = ManualClock()
        op = FlakyOperation(TransientError("blip"), TransientError("blip"))
        policy = RetryPolicy(max_attempts=3, backoff=exponential_backoff(1.0, 2.0))

        outcome = await execute(op, policy, clock=clock)

        # 1s + 2s of backoff
        assert outcome.latency_s == pytest.approx(3.0)
        assert (outcome.finished_at - outcome.started_at).total_seconds() == pytest.approx(3.0)

    @pytest.mark.asyncio
    async def test_exhausted_retries_return_failure(self) -> None:
        """Retry budget exhausted: failed outcome with the last error kind."""
        clock = ManualClock()
        op = FlakyOperation(*[TransientError("down")] * 5)
        policy = RetryPolicy(max_attempts=3, backoff=fixed_backoff(0.5))

        outcome = await execute(op, policy, clock=clock)

        assert outcome.success is False
        assert outcome.attempts == 3
        assert outcome.error_kind == ErrorKind.TRANSIENT
        assert "down" in (outcome.error or "")
        assert op.calls == 3

    @pytest.mark.asyncio
    async def test_terminal_error_not_retried(self) -> None:
        """Terminal errors stop after the first attempt."""
        op = FlakyOperation(TerminalError("unauthorized"))

        outcome = await execute(op, RetryPolicy(max_attempts=5), clock=ManualClock())

        assert outcome.success is False
        assert outcome.attempts == 1
        assert outcome.error_kind == ErrorKind.TERMINAL
        assert op.calls == 1

    @pytest.mark.asyncio
    async def test_validation_error_not_retried(self) -> None:
        op = FlakyOperation(ValidationError("bad amount"))

        outcome = await execute(op, RetryPolicy(max_attempts=3), clock=ManualClock())

        assert outcome.error_kind == ErrorKind.VALIDATION
        assert outcome.attempts == 1

    @pytest.mark.asyncio
    async def test_custom_predicate(self) -> None:
        """is_retryable decides which kinds are retried."""
        op = FlakyOperation(TerminalError("flaky terminal"))
        policy = RetryPolicy(max_attempts=2, backoff=fixed_backoff(0), is_retryable=lambda k: True)

        outcome = await execute(op, policy, clock=ManualClock())

        assert outcome.success is True
        assert outcome.attempts == 2

    @pytest.mark.asyncio
    async def test_rate_limit_honours_retry_after(self) -> None:
        """A retry-after hint longer than the backoff is waited out."""
        clock = ManualClock()
        op = FlakyOperation(RateLimitError(retry_after_s=7.0))
        policy = RetryPolicy(max_attempts=2, backoff=fixed_backoff(1.0))

        outcome = await execute(op, policy, clock=clock)

        assert outcome.success is True
        assert clock.elapsed == pytest.approx(7.0)

    @pytest.mark.asyncio
    async def test_message_heuristics_classify_untyped_errors(self) -> None:
        """Untyped provider errors mentioning a rate limit are retried."""
        op = FlakyOperation(RuntimeError("429 Too Many Requests"))
        policy = RetryPolicy(max_attempts=2, backoff=fixed_backoff(0))

        outcome = await execute(op, policy, clock=ManualClock())

        assert outcome.success is True
        assert outcome.attempts == 2

    @pytest.mark.asyncio
    async def test_sync_operation_supported(self) -> None:
        """Plain callables returning values work too."""
        outcome = await execute(lambda: 42, RetryPolicy(), clock=ManualClock())

        assert outcome.success is True
        assert outcome.result == 42


class TestReceipts:
    """Tests for receipt handling."""

    @pytest.mark.asyncio
    async def test_failed_receipt_is_failure(self) -> None:
        """A receipt reporting failure is a terminal failed outcome."""

        async def op() -> OperationReceipt:
            return OperationReceipt(
                operation_id="op-1",
                status=ReceiptStatus.FAILED,
                details={"error": "reverted"},
            )

        outcome = await execute(op, RetryPolicy(max_attempts=3), clock=ManualClock())

        assert outcome.success is False
        assert outcome.error_kind == ErrorKind.TERMINAL
        assert "reverted" in (outcome.error or "")
        assert outcome.attempts == 1


class TestTimeouts:
    """Tests for per-attempt timeouts."""

    @pytest.mark.asyncio
    async def test_attempt_timeout_classified(self) -> None:
        """A hanging attempt is cut off and classified as a timeout."""

        async def hang() -> None:
            await asyncio.sleep(10)

        policy = RetryPolicy(max_attempts=1, per_attempt_timeout_s=0.05)
        outcome = await execute(hang, policy)

        assert outcome.success is False
        assert outcome.error_kind == ErrorKind.TIMEOUT

    @pytest.mark.asyncio
    async def test_timeout_retried_then_succeeds(self) -> None:
        calls = 0

        async def slow_then_fast() -> str:
            nonlocal calls
            calls += 1
            if calls == 1:
                await asyncio.sleep(10)
            return "done"

        policy = RetryPolicy(max_attempts=2, backoff=fixed_backoff(0), per_attempt_timeout_s=0.05)
        outcome = await execute(slow_then_fast, policy)

        assert outcome.success is True
        assert outcome.attempts == 2

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self) -> None:
        """Cancelling the calling task is not swallowed as a failure."""

        async def hang() -> None:
            await asyncio.sleep(10)

        task = asyncio.create_task(execute(hang, RetryPolicy(per_attempt_timeout_s=None)))
        await asyncio.sleep(0.01)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task


class TestPolicy:
    """Tests for RetryPolicy and backoff helpers."""

    def test_exponential_backoff_capped(self) -> None:
        backoff = exponential_backoff(base_s=1.0, factor=2.0, ceiling_s=15.0)

        delays = [backoff(n) for n in range(1, 8)]

        assert delays[:4] == [1.0, 2.0, 4.0, 8.0]
        assert max(delays) == 15.0
        assert delays == sorted(delays)

    def test_invalid_backoff_rejected(self) -> None:
        with pytest.raises(ValueError):
            exponential_backoff(factor=0.5)
        with pytest.raises(ValueError):
            fixed_backoff(-1)

    def test_invalid_policy_rejected(self) -> None:
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)
        with pytest.raises(ValueError):
            RetryPolicy(per_attempt_timeout_s=0)

    def test_max_wall_time(self) -> None:
        policy = RetryPolicy(
            max_attempts=3,
            backoff=fixed_backoff(2.0),
            per_attempt_timeout_s=10.0,
        )

        assert policy.max_wall_time_s() == 34.0

    def test_single_attempt(self) -> None:
        policy = RetryPolicy.single_attempt(30.0)

        assert policy.max_attempts == 1
        assert policy.per_attempt_timeout_s == 30.0
        assert policy.is_retryable(ErrorKind.TRANSIENT) is False

    def test_from_settings(self, fast_settings) -> None:
        policy = RetryPolicy.from_settings(fast_settings)

        assert policy.max_attempts == fast_settings.retry_max_attempts
        assert policy.per_attempt_timeout_s == fast_settings.operation_timeout_s
