"""
Retrying operation executor.

Wraps one call to the system under test with a per-attempt timeout,
retry-on-transient-error with backoff, and latency timestamping. Failures are
returned as unsuccessful OperationOutcomes instead of being raised, so callers
can treat every call uniformly.
"""

import asyncio
import inspect
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from bench_engine.domain.outcome import OperationOutcome
from bench_engine.errors import (
    ErrorKind,
    RateLimitError,
    TerminalError,
    classify_error,
    is_transient,
)
from bench_engine.interfaces.system_under_test import OperationReceipt, ReceiptStatus
from bench_engine.logging import get_logger
from bench_engine.runtime.clock import Clock, default_clock

if TYPE_CHECKING:
    from bench_engine.config import Settings

logger = get_logger(__name__)

Operation = Callable[[], Any]
# Builds the operation for one dispatch; retries of that dispatch reuse it
OperationFactory = Callable[[], Operation]
BackoffFn = Callable[[int], float]
RetryPredicate = Callable[[ErrorKind], bool]

DEFAULT_BACKOFF_CEILING_S = 15.0


def exponential_backoff(
    base_s: float = 1.0,
    factor: float = 2.0,
    ceiling_s: float = DEFAULT_BACKOFF_CEILING_S,
) -> BackoffFn:
    """
    Exponential backoff capped at a ceiling.

    backoff(n) = min(base_s * factor ** (n - 1), ceiling_s) for the n-th
    failed attempt. Non-decreasing in n for factor >= 1.
    """
    if base_s < 0 or ceiling_s < 0:
        raise ValueError("Backoff durations must be >= 0")
    if factor < 1:
        raise ValueError("Backoff factor must be >= 1")

    def backoff(attempt: int) -> float:
        return min(base_s * factor ** max(attempt - 1, 0), ceiling_s)

    return backoff


def fixed_backoff(delay_s: float) -> BackoffFn:
    """Same delay before every retry."""
    if delay_s < 0:
        raise ValueError("Backoff delay must be >= 0")

    def backoff(attempt: int) -> float:
        return delay_s

    return backoff


@dataclass(frozen=True)
class RetryPolicy:
    """How many times, how long, and after which errors to retry."""

    max_attempts: int = 3
    backoff: BackoffFn = field(default_factory=exponential_backoff)
    is_retryable: RetryPredicate = is_transient
    per_attempt_timeout_s: float | None = 120.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.per_attempt_timeout_s is not None and self.per_attempt_timeout_s <= 0:
            raise ValueError("per_attempt_timeout_s must be > 0")

    @classmethod
    def single_attempt(cls, timeout_s: float | None) -> "RetryPolicy":
        """Best-effort policy for probes: one attempt, bounded timeout."""
        return cls(
            max_attempts=1,
            backoff=fixed_backoff(0.0),
            is_retryable=lambda kind: False,
            per_attempt_timeout_s=timeout_s,
        )

    @classmethod
    def from_settings(cls, settings: "Settings") -> "RetryPolicy":
        """Build the default policy from harness settings."""
        return cls(
            max_attempts=settings.retry_max_attempts,
            backoff=exponential_backoff(
                base_s=settings.retry_backoff_base_s,
                factor=settings.retry_backoff_factor,
                ceiling_s=settings.retry_backoff_ceiling_s,
            ),
            per_attempt_timeout_s=settings.operation_timeout_s,
        )

    def max_wall_time_s(self) -> float | None:
        """Upper bound on one execute() call, None if attempts are unbounded in time."""
        if self.per_attempt_timeout_s is None:
            return None
        sleeps = sum(self.backoff(n) for n in range(1, self.max_attempts))
        return self.per_attempt_timeout_s * self.max_attempts + sleeps


async def _run_attempt(op: Operation, timeout_s: float | None) -> Any:
    """Invoke op once, bounding awaitable results by the attempt timeout."""
    result = op()
    if inspect.isawaitable(result):
        if timeout_s is None:
            result = await result
        else:
            result = await asyncio.wait_for(result, timeout=timeout_s)
    if isinstance(result, OperationReceipt) and result.status == ReceiptStatus.FAILED:
        reason = result.details.get("error", "operation reported failure")
        raise TerminalError(f"Operation {result.operation_id} failed: {reason}")
    return result


def _describe(exc: BaseException) -> str:
    message = str(exc)
    if not message:
        return type(exc).__name__
    return f"{type(exc).__name__}: {message}"


async def execute(
    op: Operation,
    policy: RetryPolicy | None = None,
    *,
    clock: Clock | None = None,
) -> OperationOutcome:
    """
    Execute one operation under a retry policy.

    Args:
        op: Zero-argument callable performing one unit of work
        policy: Retry policy (defaults to RetryPolicy())
        clock: Time source (defaults to real time)

    Returns:
        OperationOutcome; failures are reported with success=False. Task
        cancellation is not swallowed.
    """
    policy = policy or RetryPolicy()
    clock = clock or default_clock()

    started_at = clock.now()
    start = clock.monotonic()
    attempt = 0
    error_kind = ErrorKind.NONE
    error: str | None = None

    while True:
        attempt += 1
        try:
            result = await _run_attempt(op, policy.per_attempt_timeout_s)
        except Exception as exc:
            error_kind = classify_error(exc)
            error = _describe(exc)

            if attempt >= policy.max_attempts or not policy.is_retryable(error_kind):
                break

            delay = policy.backoff(attempt)
            if isinstance(exc, RateLimitError) and exc.retry_after_s:
                delay = max(delay, exc.retry_after_s)
            logger.warning(
                "Operation failed (%s), backing off %.2fs (attempt %d/%d)",
                error_kind.value,
                delay,
                attempt,
                policy.max_attempts,
            )
            await clock.sleep(delay)
            continue

        return OperationOutcome(
            started_at=started_at,
            finished_at=clock.now(),
            latency_s=max(clock.monotonic() - start, 0.0),
            success=True,
            attempts=attempt,
            result=result,
        )

    logger.info(
        "Operation failed after %d attempt(s): %s [%s]",
        attempt,
        error,
        error_kind.value,
    )
    return OperationOutcome(
        started_at=started_at,
        finished_at=clock.now(),
        latency_s=max(clock.monotonic() - start, 0.0),
        success=False,
        error_kind=error_kind,
        attempts=attempt,
        error=error,
    )
