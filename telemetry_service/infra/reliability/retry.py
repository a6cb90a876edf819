# =============================================================================
# File: telemetry_service/infra/reliability/retry.py
# Description: Retry mechanism with exponential backoff
# =============================================================================

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from telemetry_service.config.reliability_config import RetryConfig

logger = logging.getLogger("telemetry.retry")

T = TypeVar('T')

# (attempt, error, delay_seconds) -> None, called before each backoff sleep
RetryCallback = Callable[[int, Exception, float], None]


def backoff_delay_ms(retry_config: RetryConfig, attempt: int) -> float:
    """Delay before the retry that follows failed attempt number `attempt` (1-based)."""
    return min(
        retry_config.initial_delay_ms * (retry_config.backoff_factor ** (attempt - 1)),
        retry_config.max_delay_ms
    )


async def retry_async(
        func: Callable[..., Awaitable[T]],
        *args,
        retry_config: Optional[RetryConfig] = None,
        context: str = "operation",
        on_retry: Optional[RetryCallback] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        **kwargs
) -> T:
    """
    Execute async function with retry logic.

    Every exception is retried until `max_attempts` calls have been made; the
    last exception is then re-raised unchanged.
    """
    if retry_config is None:
        retry_config = RetryConfig()

    for attempt in range(1, retry_config.max_attempts + 1):
        try:
            return await func(*args, **kwargs)

        except Exception as e:
            if attempt >= retry_config.max_attempts:
                logger.warning(
                    f"Retry exhausted for {context} after {attempt} attempts. Last error: {e}"
                )
                raise

            delay_seconds = backoff_delay_ms(retry_config, attempt) / 1000

            logger.warning(
                f"Retry attempt {attempt}/{retry_config.max_attempts - 1} for {context} "
                f"after error: {e}. Waiting {delay_seconds:.2f}s before retry."
            )

            if on_retry is not None:
                on_retry(attempt, e, delay_seconds)

            await sleep(delay_seconds)

    raise RuntimeError(f"Retry loop for {context} ended without a result")
