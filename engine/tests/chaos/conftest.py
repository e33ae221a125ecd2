"""
Chaos testing configuration and shared fixtures.

Provides common fixtures and configuration for chaos/failure injection tests.
"""

import random

import pytest

from bench_engine.runtime.clock import ManualClock
from tests.fakes import FakeSystem


@pytest.fixture(autouse=True)
def seed_random():
    """Seed random for reproducible chaos scenarios."""
    random.seed(42)
    yield
    random.seed()  # Reset after test


@pytest.fixture
def chaos_clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def inner_system(chaos_clock: ManualClock) -> FakeSystem:
    """Idempotent in-memory system wrapped by fault injectors."""
    return FakeSystem(chaos_clock, idempotent=True)
