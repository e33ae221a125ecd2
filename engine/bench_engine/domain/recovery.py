"""
Fault recovery models.

One RecoveryCycle is produced per crash/restart iteration. Idle-phase and
mid-operation-phase cycles are reported separately because an in-flight
operation changes what "recovered" means.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class RecoveryPhase(str, Enum):
    """When the crash is injected."""

    IDLE = "idle"
    MID_OPERATION = "mid_operation"


class CycleState(str, Enum):
    """States a crash cycle moves through."""

    HEALTHY = "healthy"
    CRASHED = "crashed"
    RESTARTING = "restarting"
    VERIFYING = "verifying"
    DEGRADED = "degraded"
    FAILED = "failed"


class InflightResolution(str, Enum):
    """What happened to the operation that was in flight during a crash."""

    COMPLETED = "completed"
    FAILED = "failed"
    INDETERMINATE = "indeterminate"


@dataclass(frozen=True)
class RecoveryCycle:
    """
    Measurements of one crash/restart cycle.

    mttr_s is the duration of the restart (connect) call only. downtime_s spans
    crash to restart completion (includes the settle delay) and end_to_end_s
    spans crash to verified completion; neither is folded into MTTR.

    inflight_committed is what the system reported, after restart, about the
    interrupted operation: True if it took effect, False if not, None when the
    system could not tell.
    """

    phase: RecoveryPhase
    index: int
    operation_id: str
    crashed_at: datetime
    restarted_at: datetime | None
    mttr_s: float | None
    downtime_s: float | None
    end_to_end_s: float | None
    manual_steps: int
    exactly_once: bool
    status: CycleState
    completions: int = 0
    restart_attempts: int = 0
    inflight: InflightResolution | None = None
    inflight_committed: bool | None = None
    transitions: tuple[CycleState, ...] = field(default_factory=tuple)
    error: str | None = None

    @property
    def recovered(self) -> bool:
        """Verified working again, with or without extra intervention."""
        return self.status in (CycleState.HEALTHY, CycleState.DEGRADED)

    @property
    def harness_fault(self) -> bool:
        """True when the system could not be restarted at all."""
        return self.restarted_at is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "phase": self.phase.value,
            "index": self.index,
            "operation_id": self.operation_id,
            "crashed_at": self.crashed_at.isoformat(),
            "restarted_at": self.restarted_at.isoformat() if self.restarted_at else None,
            "mttr_s": self.mttr_s,
            "downtime_s": self.downtime_s,
            "end_to_end_s": self.end_to_end_s,
            "manual_steps": self.manual_steps,
            "exactly_once": self.exactly_once,
            "status": self.status.value,
            "completions": self.completions,
            "restart_attempts": self.restart_attempts,
            "inflight": self.inflight.value if self.inflight else None,
            "inflight_committed": self.inflight_committed,
            "transitions": [state.value for state in self.transitions],
            "error": self.error,
        }
