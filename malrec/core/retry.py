"""Retry utilities with exponential backoff for MAL API calls.

Only transient failures are retried: timeouts, network errors, 429 and 5xx.
Everything else propagates on the first attempt.
"""

import asyncio
import functools
import logging
import random
from dataclasses import dataclass, field
from typing import Awaitable, Callable, TypeVar

import httpx

from malrec.config import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_attempts: int = 3
    base_delay: float = 1.0  # Initial delay in seconds
    max_delay: float = 30.0  # Maximum delay between retries
    exponential_base: float = 2.0
    jitter: float = 0.1  # Random jitter factor (0.1 = +/- 10%)
    retryable_exceptions: tuple = field(
        default_factory=lambda: (
            httpx.TimeoutException,
            httpx.NetworkError,
            ConnectionError,
            asyncio.TimeoutError,
        )
    )
    retryable_status_codes: tuple = field(
        default_factory=lambda: (429, 500, 502, 503, 504)
    )

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryConfig":
        return cls(
            max_attempts=settings.max_retry_attempts,
            base_delay=settings.retry_base_delay,
            max_delay=settings.retry_max_delay,
        )


def calculate_delay(attempt: int, config: RetryConfig, retry_after: float | None = None) -> float:
    """Calculate delay with exponential backoff and jitter.

    A server-provided Retry-After wins over the computed backoff, still capped
    at max_delay.
    """
    if retry_after is not None:
        return min(max(0.0, retry_after), config.max_delay)

    delay = config.base_delay * (config.exponential_base ** attempt)
    delay = min(delay, config.max_delay)

    jitter_range = delay * config.jitter
    delay = delay + random.uniform(-jitter_range, jitter_range)

    return max(0, delay)


def is_retryable_exception(exc: Exception, config: RetryConfig) -> bool:
    """Check if an exception should trigger a retry."""
    if isinstance(exc, config.retryable_exceptions):
        return True

    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in config.retryable_status_codes

    return False


def _retry_after_seconds(exc: Exception) -> float | None:
    if not isinstance(exc, httpx.HTTPStatusError):
        return None
    value = exc.response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def async_retry(config: RetryConfig | None = None):
    """
    Decorator for retrying async functions with exponential backoff.

    Usage:
        @async_retry(RetryConfig(max_attempts=3))
        async def fetch_data():
            ...
    """
    if config is None:
        config = RetryConfig()

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            last_exception: Exception | None = None

            for attempt in range(config.max_attempts):
                try:
                    return await func(*args, **kwargs)
                except Exception as e:
                    last_exception = e

                    if not is_retryable_exception(e, config):
                        raise

                    if attempt < config.max_attempts - 1:
                        delay = calculate_delay(attempt, config, _retry_after_seconds(e))
                        logger.warning(
                            f"Retry {attempt + 1}/{config.max_attempts} for {func.__name__} "
                            f"after {type(e).__name__}: {e}. Waiting {delay:.2f}s"
                        )
                        await asyncio.sleep(delay)
                    else:
                        logger.error(
                            f"All {config.max_attempts} attempts failed for {func.__name__}: {e}"
                        )

            raise last_exception

        return wrapper

    return decorator
