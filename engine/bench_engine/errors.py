"""
Error taxonomy for the benchmark engine.

Every failure observed while driving a system under test is reduced to an
ErrorKind. Transient kinds are retried by the executor, terminal kinds are
recorded as failed outcomes, indeterminate outcomes are re-verified by the
fault-recovery harness, and harness faults abort only the current cycle.
"""

import asyncio
from enum import Enum

import httpx


class ErrorKind(str, Enum):
    """Classification of an operation failure."""

    NONE = "none"
    RATE_LIMIT = "rate_limit"
    TIMEOUT = "timeout"
    TRANSIENT = "transient"
    TERMINAL = "terminal"
    VALIDATION = "validation"
    INDETERMINATE = "indeterminate"
    HARNESS_FAULT = "harness_fault"

    @property
    def is_transient(self) -> bool:
        return self in TRANSIENT_KINDS


TRANSIENT_KINDS = frozenset({ErrorKind.RATE_LIMIT, ErrorKind.TIMEOUT, ErrorKind.TRANSIENT})

# Substrings seen in RPC/provider error messages that indicate a retryable condition
_RATE_LIMIT_MARKERS = ("rate limit", "too many requests", "429", "quota exceeded")
_TIMEOUT_MARKERS = ("timeout", "timed out", "deadline exceeded")
_TRANSIENT_MARKERS = (
    "coalesce error",
    'code": 30',
    "econnreset",
    "socket hang up",
    "connection reset",
    "temporarily unavailable",
    "service unavailable",
)


class BenchmarkError(Exception):
    """Base class for errors raised by the benchmark engine and its adapters."""

    kind: ErrorKind = ErrorKind.TERMINAL


class TransientError(BenchmarkError):
    """Retryable failure (network blip, overloaded backend)."""

    kind = ErrorKind.TRANSIENT


class RateLimitError(TransientError):
    """Backend rejected the call because of a rate limit."""

    kind = ErrorKind.RATE_LIMIT

    def __init__(self, message: str = "Rate limit exceeded", retry_after_s: float | None = None):
        super().__init__(message)
        self.retry_after_s = retry_after_s


class OperationTimeoutError(TransientError):
    """An attempt did not finish within its timeout."""

    kind = ErrorKind.TIMEOUT


class TerminalError(BenchmarkError):
    """Non-retryable failure (authorization, rejected operation)."""

    kind = ErrorKind.TERMINAL


class ValidationError(TerminalError):
    """The system under test rejected the operation parameters."""

    kind = ErrorKind.VALIDATION


class IndeterminateError(BenchmarkError):
    """A crash happened mid-operation; the outcome is unknown until verified."""

    kind = ErrorKind.INDETERMINATE


class HarnessFault(BenchmarkError):
    """The harness itself could not restart or reconnect the system under test."""

    kind = ErrorKind.HARNESS_FAULT


class SeriesFrozenError(RuntimeError):
    """Raised when appending to a measurement series after its phase ended."""


class ThresholdOrderError(ValueError):
    """Raised when classification thresholds are ordered against their direction."""


def classify_error(exc: BaseException) -> ErrorKind:
    """
    Map an exception raised by an operation to an ErrorKind.

    Typed engine errors carry their own kind. Timeouts and httpx transport
    errors are transient, HTTP 429 is a rate limit and 5xx is transient.
    Untyped errors fall back to message heuristics matching common RPC
    provider failures; anything unrecognised is terminal.
    """
    if isinstance(exc, BenchmarkError):
        return exc.kind

    if isinstance(exc, (asyncio.TimeoutError, TimeoutError, httpx.TimeoutException)):
        return ErrorKind.TIMEOUT

    if isinstance(exc, httpx.HTTPStatusError):
        return _classify_status(exc.response.status_code)

    if isinstance(exc, (httpx.TransportError, ConnectionError)):
        return ErrorKind.TRANSIENT

    message = str(exc).lower()
    if any(marker in message for marker in _RATE_LIMIT_MARKERS):
        return ErrorKind.RATE_LIMIT
    if any(marker in message for marker in _TIMEOUT_MARKERS):
        return ErrorKind.TIMEOUT
    if any(marker in message for marker in _TRANSIENT_MARKERS):
        return ErrorKind.TRANSIENT

    if isinstance(exc, (ValueError, TypeError)):
        return ErrorKind.VALIDATION

    return ErrorKind.TERMINAL


def _classify_status(status_code: int) -> ErrorKind:
    """Classify an HTTP status code returned by a system under test."""
    if status_code == 429:
        return ErrorKind.RATE_LIMIT
    if status_code == 408:
        return ErrorKind.TIMEOUT
    if status_code >= 500:
        return ErrorKind.TRANSIENT
    if status_code in (401, 403):
        return ErrorKind.TERMINAL
    return ErrorKind.VALIDATION


def is_transient(kind: ErrorKind) -> bool:
    """Default retry predicate: rate limits, timeouts and transient errors."""
    return kind in TRANSIENT_KINDS
