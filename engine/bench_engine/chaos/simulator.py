"""
Fault simulators.

A FaultSimulator decides, call by call, which fault (if any) to inject into
a system under test. ScriptedFaultSimulator replays a fixed script for
deterministic tests; RandomFaultSimulator draws faults from a seeded RNG so
chaos runs are reproducible.
"""

import random
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Protocol, runtime_checkable

from bench_engine.logging import get_logger

logger = get_logger(__name__)


class FaultType(str, Enum):
    """Kinds of injectable faults."""

    LATENCY = "latency"  # Delay, then proceed normally
    TIMEOUT = "timeout"  # Delay, then fail with a timeout
    RATE_LIMIT = "rate_limit"
    TRANSIENT = "transient"
    TERMINAL = "terminal"
    CRASH = "crash"  # Perform the call, then crash before acknowledging it


@dataclass(frozen=True)
class Fault:
    """One injected fault."""

    type: FaultType
    delay_s: float = 0.0
    message: str = ""

    def describe(self) -> str:
        return self.message or f"Injected {self.type.value} fault"


@runtime_checkable
class FaultSimulator(Protocol):
    """Decides the fault for the call_index-th call (0-based)."""

    def next_fault(self, call_index: int) -> Fault | None: ...


class NoFaults:
    """Simulator that never injects anything."""

    def next_fault(self, call_index: int) -> Fault | None:
        return None


class ScriptedFaultSimulator:
    """
    Inject faults at fixed call indices.

    Example:
        ScriptedFaultSimulator({0: Fault(FaultType.TRANSIENT), 1: Fault(FaultType.TRANSIENT)})
        fails the first two calls and lets every later call through.
    """

    def __init__(self, script: Mapping[int, Fault]) -> None:
        if any(index < 0 for index in script):
            raise ValueError("Call indices must be >= 0")
        self._script = dict(script)

    @classmethod
    def from_sequence(cls, faults: list[Fault | None]) -> "ScriptedFaultSimulator":
        """Build from a per-call list; None entries pass through."""
        return cls({i: fault for i, fault in enumerate(faults) if fault is not None})

    def next_fault(self, call_index: int) -> Fault | None:
        return self._script.get(call_index)


class RandomFaultSimulator:
    """
    Draw faults from a seeded RNG.

    rates maps each FaultType to its per-call probability; the probabilities
    are checked in order and must sum to at most 1.
    """

    def __init__(
        self,
        seed: int,
        rates: Mapping[FaultType, float],
        delay_s: float = 0.0,
    ) -> None:
        if any(rate < 0 for rate in rates.values()):
            raise ValueError("Fault rates must be >= 0")
        if sum(rates.values()) > 1.0:
            raise ValueError("Fault rates must sum to <= 1")
        self._rng = random.Random(seed)
        self._rates = list(rates.items())
        self._delay_s = delay_s
        self.seed = seed

    def next_fault(self, call_index: int) -> Fault | None:
        draw = self._rng.random()
        cumulative = 0.0
        for fault_type, rate in self._rates:
            cumulative += rate
            if draw < cumulative:
                logger.debug("Call %d: injecting %s", call_index, fault_type.value)
                return Fault(type=fault_type, delay_s=self._delay_s)
        return None
