"""
Logging for benchmark runs.

Every record is stamped with an ISO timestamp and, while a run is active, the
run id, so output from the load, recovery and canary phases of one run can be
correlated. Recent records are also kept in memory for post-run diagnostics.
Parameters handed to a system under test are redacted before they are logged.
"""

import json
import logging
import sys
from collections import deque
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from bench_engine.config import Settings

current_run_id: ContextVar[str | None] = ContextVar("current_run_id", default=None)

REDACTED = "[REDACTED]"

# Key fragments that mark a SUT parameter as secret
SENSITIVE_KEYS = (
    "password",
    "api_key",
    "apikey",
    "secret",
    "token",
    "authorization",
    "auth",
    "credential",
    "private_key",
    "mnemonic",
    "seed",
)

MAX_REDACTION_DEPTH = 10

# Record attributes copied into JSON output when passed via extra=
CONTEXT_FIELDS = ("criterion", "phase", "cycle", "rate")


def _is_sensitive(key: Any) -> bool:
    lowered = str(key).lower()
    return any(fragment in lowered for fragment in SENSITIVE_KEYS)


def redact_sensitive(data: Any, depth: int = 0) -> Any:
    """
    Return a copy of data with secret-looking keys replaced by "[REDACTED]".

    Dicts and lists are walked up to MAX_REDACTION_DEPTH levels; scalars are
    returned unchanged.
    """
    if depth > MAX_REDACTION_DEPTH:
        return data

    if isinstance(data, dict):
        return {
            k: REDACTED if _is_sensitive(k) else redact_sensitive(v, depth + 1)
            for k, v in data.items()
        }
    if isinstance(data, (list, tuple)):
        return [redact_sensitive(item, depth + 1) for item in data]
    return data


class RunFormatter(logging.Formatter):
    """Text or JSON lines carrying the active run id."""

    def __init__(self, json_output: bool = False) -> None:
        super().__init__("%(timestamp)s | %(levelname)-8s | %(name)s | %(run_label)s%(message)s")
        self.json_output = json_output

    def format(self, record: logging.LogRecord) -> str:
        record.timestamp = datetime.fromtimestamp(record.created, UTC).isoformat()
        run_id = current_run_id.get()
        record.run_id = run_id
        record.run_label = f"[{run_id}] " if run_id else ""

        if not self.json_output:
            return super().format(record)

        payload: dict[str, Any] = {
            "timestamp": record.timestamp,
            "level": record.levelname,
            "logger": record.name,
            "run_id": run_id,
            "message": record.getMessage(),
        }
        for name in CONTEXT_FIELDS:
            if hasattr(record, name):
                payload[name] = getattr(record, name)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class InMemoryHandler(logging.Handler):
    """Ring buffer of recent log records."""

    def __init__(self, capacity: int = 1000):
        super().__init__()
        self.logs: deque[dict[str, Any]] = deque(maxlen=capacity)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.logs.append(
                {
                    "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
                    "level": record.levelname,
                    "level_no": record.levelno,
                    "logger": record.name,
                    "run_id": current_run_id.get(),
                    "message": record.getMessage(),
                }
            )
        except Exception:
            self.handleError(record)


_in_memory_handler = InMemoryHandler()


def setup_logging(level: str = "INFO", json_output: bool = False) -> logging.Logger:
    """
    Configure the root logger for a benchmark process.

    Args:
        level: Logging level name
        json_output: Emit one JSON object per line instead of text

    Returns:
        Configured root logger
    """
    root = logging.getLogger()
    root.handlers.clear()

    numeric_level = getattr(logging, level.upper(), logging.INFO)
    root.setLevel(numeric_level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)
    handler.setFormatter(RunFormatter(json_output))
    root.addHandler(handler)

    _in_memory_handler.setLevel(numeric_level)
    root.addHandler(_in_memory_handler)

    # Adapters commonly talk HTTP; keep transport chatter out of run logs
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    return root


def setup_logging_from_settings(settings: "Settings") -> logging.Logger:
    return setup_logging(settings.log_level, settings.log_json)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def get_in_memory_logs(level: str = "INFO", limit: int = 50) -> list[dict[str, Any]]:
    """Most recent in-memory records at or above level, oldest first."""
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    filtered = [log for log in _in_memory_handler.logs if log["level_no"] >= numeric_level]
    return filtered[-limit:]


def clear_in_memory_logs() -> None:
    _in_memory_handler.logs.clear()


def set_run_id(run_id: str) -> None:
    """Set the current run ID for log correlation."""
    current_run_id.set(run_id)


def clear_run_id() -> None:
    current_run_id.set(None)
