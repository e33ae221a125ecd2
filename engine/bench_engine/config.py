"""
Configuration management for the benchmark engine.

Uses pydantic-settings for type-safe environment variable handling.
Only harness tuning lives here; credentials and endpoints for a system under
test are resolved by its adapter and passed in as opaque parameters.
"""

from functools import lru_cache

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Harness settings loaded from environment variables (prefix ``BENCH_``).

    Defaults mirror the reference benchmark runs: 3 retries with a 15s backoff
    ceiling, step load 1 -> 2 -> 4 -> 8 ops/s, three crash cycles per phase and
    a canary every 5 minutes.
    """

    model_config = SettingsConfigDict(
        env_prefix="BENCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_json: bool = Field(default=False, description="Emit JSON formatted log lines")

    # Retrying executor
    retry_max_attempts: int = Field(
        default=3,
        ge=1,
        le=20,
        description="Maximum attempts per operation (including the first)",
    )
    retry_backoff_base_s: float = Field(
        default=1.0,
        ge=0,
        le=60,
        description="Backoff before the first retry",
    )
    retry_backoff_factor: float = Field(
        default=2.0,
        ge=1.0,
        le=10.0,
        description="Multiplier applied to the backoff for each further retry",
    )
    retry_backoff_ceiling_s: float = Field(
        default=15.0,
        ge=0,
        le=600,
        description="Upper bound for a single backoff sleep",
    )
    operation_timeout_s: float = Field(
        default=120.0,
        gt=0,
        le=3600,
        description="Timeout applied to each individual attempt",
    )

    # Load generator
    load_step_rates: list[float] = Field(
        default_factory=lambda: [1.0, 2.0, 4.0, 8.0],
        min_length=1,
        description="Target rates (ops/sec) of consecutive load steps",
    )
    load_step_duration_s: float = Field(
        default=150.0,
        gt=0,
        description="Duration of each load step",
    )
    load_step_cooldown_s: float = Field(
        default=10.0,
        ge=0,
        description="Pause between load steps",
    )
    load_error_threshold: float = Field(
        default=0.05,
        gt=0,
        lt=1,
        description="Error rate above which a step marks the knee point",
    )

    # Latency sampling
    latency_samples: int = Field(
        default=30,
        ge=1,
        le=1000,
        description="Sequential operations issued for the latency criterion",
    )
    latency_sample_delay_s: float = Field(
        default=10.0,
        ge=0,
        description="Pause between latency samples",
    )

    # Fault recovery harness
    recovery_cycles: int = Field(
        default=3,
        ge=1,
        le=50,
        description="Crash/restart cycles per phase",
    )
    recovery_settle_delay_s: float = Field(
        default=1.0,
        ge=0,
        description="Wait between crash and restart",
    )
    recovery_inflight_crash_delay_s: float = Field(
        default=0.5,
        ge=0,
        description="Delay after starting an operation before crashing mid-operation",
    )
    recovery_inflight_resolve_timeout_s: float = Field(
        default=30.0,
        gt=0,
        description="How long to wait for an in-flight operation after restart",
    )
    recovery_verification_attempts: int = Field(
        default=3,
        ge=1,
        le=20,
        description="Verification operations attempted after each restart",
    )
    recovery_retry_delay_s: float = Field(
        default=2.0,
        ge=0,
        description="Pause between failed verification attempts",
    )
    recovery_between_cycles_s: float = Field(
        default=2.0,
        ge=0,
        description="Pause between consecutive crash cycles",
    )
    recovery_restart_attempts: int = Field(
        default=3,
        ge=1,
        le=20,
        description="Connect attempts before a restart is declared a harness fault",
    )

    # Canary prober
    canary_interval_s: float = Field(
        default=300.0,
        gt=0,
        description="Interval between canary probes",
    )
    canary_total_duration_s: float = Field(
        default=86400.0,
        gt=0,
        description="Total canary observation window",
    )
    canary_timeout_s: float = Field(
        default=120.0,
        gt=0,
        description="Timeout for a single canary probe",
    )

    # Run deadline
    run_deadline_s: float | None = Field(
        default=None,
        gt=0,
        description="Overall run budget; no new operations are dispatched after it expires",
    )

    # Classification thresholds
    latency_passed_s: float = Field(default=30.0, gt=0)
    latency_partial_s: float = Field(default=120.0, gt=0)
    throughput_passed_rps: float = Field(default=4.0, gt=0)
    throughput_partial_rps: float = Field(default=2.0, gt=0)
    mttr_passed_s: float = Field(default=30.0, gt=0)
    mttr_partial_s: float = Field(default=60.0, gt=0)
    availability_passed_pct: float = Field(default=99.0, gt=0, le=100)
    availability_partial_pct: float = Field(default=95.0, gt=0, le=100)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalise and validate the logging level name."""
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @field_validator("load_step_rates")
    @classmethod
    def validate_step_rates(cls, v: list[float]) -> list[float]:
        """Step rates must be positive."""
        if any(rate <= 0 for rate in v):
            raise ValueError("load_step_rates must all be > 0")
        return v

    @model_validator(mode="after")
    def validate_threshold_order(self) -> "Settings":
        """Passed thresholds must be at least as strict as partial ones."""
        if self.latency_passed_s > self.latency_partial_s:
            raise ValueError("latency_passed_s must be <= latency_partial_s")
        if self.mttr_passed_s > self.mttr_partial_s:
            raise ValueError("mttr_passed_s must be <= mttr_partial_s")
        if self.throughput_passed_rps < self.throughput_partial_rps:
            raise ValueError("throughput_passed_rps must be >= throughput_partial_rps")
        if self.availability_passed_pct < self.availability_partial_pct:
            raise ValueError("availability_passed_pct must be >= availability_partial_pct")
        return self


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure single instance throughout application.
    """
    return Settings()
