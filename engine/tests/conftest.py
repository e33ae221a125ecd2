"""
Pytest configuration and shared fixtures.
"""

from collections.abc import Generator

import pytest

from bench_engine.config import Settings, get_settings
from bench_engine.runtime.clock import ManualClock
from tests.fakes import FakeSystem


@pytest.fixture(autouse=True)
def clear_settings_cache() -> Generator[None, None, None]:
    """Reset cached settings so env overrides apply per test."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Ensure no local BENCH_ overrides leak into tests."""
    import os

    for var in list(os.environ):
        if var.startswith("BENCH_"):
            monkeypatch.delenv(var, raising=False)


@pytest.fixture
def manual_clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def fake_system() -> FakeSystem:
    return FakeSystem()


@pytest.fixture
def fast_settings() -> Settings:
    """Settings with short timings for end-to-end criterion tests."""
    return Settings(
        _env_file=None,
        retry_max_attempts=2,
        retry_backoff_base_s=0.0,
        operation_timeout_s=5.0,
        latency_samples=5,
        latency_sample_delay_s=0.0,
        load_step_rates=[1.0, 2.0],
        load_step_duration_s=2.0,
        load_step_cooldown_s=0.0,
        recovery_cycles=2,
        recovery_settle_delay_s=0.0,
        recovery_inflight_crash_delay_s=0.01,
        recovery_inflight_resolve_timeout_s=1.0,
        recovery_verification_attempts=2,
        recovery_retry_delay_s=0.0,
        recovery_between_cycles_s=0.0,
        recovery_restart_attempts=2,
        canary_interval_s=300.0,
        canary_total_duration_s=900.0,
        canary_timeout_s=5.0,
    )
