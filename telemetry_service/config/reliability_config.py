# =============================================================================
# File: telemetry_service/config/reliability_config.py
# Description: Reliability configuration for the stream circuit breaker,
#              consumer retry/dead-letter policy and fallback replay
# =============================================================================

from functools import lru_cache
from typing import Optional

from pydantic import BaseModel, Field
from pydantic_settings import SettingsConfigDict

from telemetry_service.common.base.base_config import BaseConfig


# =============================================================================
# Configuration Models (Pydantic BaseModel for type safety)
# =============================================================================

class CircuitBreakerConfig(BaseModel):
    """Circuit breaker configuration (count-based sliding window)."""
    name: str
    window_size: int = 10
    failure_rate_threshold: float = 0.5
    reset_timeout_seconds: float = 10.0
    half_open_max_calls: int = 3


class RetryConfig(BaseModel):
    """Retry configuration. max_attempts counts the first attempt."""
    max_attempts: int = 3
    initial_delay_ms: int = 100
    max_delay_ms: int = 10000
    backoff_factor: float = 2.0


# =============================================================================
# Main Reliability Config (loads from env)
# =============================================================================

class ReliabilitySettings(BaseConfig):
    """
    Global reliability settings loaded from environment.
    Concrete breaker/retry configs are created via the ReliabilityConfigs factory.
    """

    model_config = SettingsConfigDict(**{
        **BaseConfig.model_config,
        "env_prefix": "RELIABILITY_",
    })

    # Stream publish circuit breaker
    stream_window_size: int = Field(default=10, ge=1)
    stream_failure_rate_threshold: float = Field(default=0.5, gt=0.0, le=1.0)
    stream_open_wait_seconds: float = Field(default=10.0, ge=0.0)
    stream_half_open_calls: int = Field(default=3, ge=1)

    # Consumer retry before dead-lettering
    consumer_retry_initial_delay_ms: int = Field(default=1000, ge=0)
    consumer_retry_multiplier: float = Field(default=2.0, ge=1.0)
    consumer_retry_count: int = Field(default=3, ge=0)

    # Periodic fallback replay (0 disables the background task)
    fallback_replay_interval_seconds: float = Field(default=0.0, ge=0.0)


@lru_cache(maxsize=1)
def get_reliability_settings() -> ReliabilitySettings:
    """Get global reliability settings (cached)."""
    return ReliabilitySettings()


def reset_reliability_settings() -> None:
    """Reset settings singleton (for testing)."""
    get_reliability_settings.cache_clear()


# =============================================================================
# ReliabilityConfigs Factory Class
# =============================================================================

class ReliabilityConfigs:
    """Pre-configured reliability settings for the pipeline components"""

    @staticmethod
    def stream_circuit_breaker(
            name: str = "event_stream",
            settings: Optional[ReliabilitySettings] = None
    ) -> CircuitBreakerConfig:
        settings = settings or get_reliability_settings()
        return CircuitBreakerConfig(
            name=name,
            window_size=settings.stream_window_size,
            failure_rate_threshold=settings.stream_failure_rate_threshold,
            reset_timeout_seconds=settings.stream_open_wait_seconds,
            half_open_max_calls=settings.stream_half_open_calls,
        )

    @staticmethod
    def consumer_retry(settings: Optional[ReliabilitySettings] = None) -> RetryConfig:
        settings = settings or get_reliability_settings()
        initial = settings.consumer_retry_initial_delay_ms
        multiplier = settings.consumer_retry_multiplier
        retries = settings.consumer_retry_count
        return RetryConfig(
            # first delivery plus the configured retries
            max_attempts=retries + 1,
            initial_delay_ms=initial,
            max_delay_ms=int(initial * (multiplier ** max(retries - 1, 0))),
            backoff_factor=multiplier,
        )
