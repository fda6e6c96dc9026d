"""
Retry utilities with exponential backoff.

Provides the retry policy shared by the evaluation queue and by one-off
provider calls, plus the classification of transient failures.
"""

from __future__ import annotations

import asyncio
import random
import re
from dataclasses import dataclass
from functools import wraps
from typing import Any, Callable, TypeVar, Awaitable

import structlog

logger = structlog.get_logger()

T = TypeVar("T")

RETRYABLE_MESSAGE_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"rate limit",
        r"too many requests",
        r"quota exceeded",
        r"resource exhausted",
        r"try again later",
        r"service unavailable",
    )
)

RETRYABLE_STATUS_CODES: frozenset[int] = frozenset({408, 429, 500, 502, 503, 504})


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    exponential_base: float = 2.0
    jitter: bool = False


def get_status_code(error: BaseException) -> int | None:
    """
    Extract an HTTP-like status code carried by an exception.

    Looks at ``status_code``, ``status``, an integer ``code`` and finally an
    attached ``response.status_code`` (httpx style).
    """
    for attr in ("status_code", "status", "code"):
        value = getattr(error, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value

    response = getattr(error, "response", None)
    value = getattr(response, "status_code", None)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


def is_retryable_error(error: BaseException) -> bool:
    """
    Decide whether a failure is transient and worth another attempt.

    An error is retryable when its message mentions rate limiting or
    temporary unavailability, or when it carries a 408/429/5xx gateway
    status. Everything else is terminal.
    """
    message = str(error)
    if message and any(p.search(message) for p in RETRYABLE_MESSAGE_PATTERNS):
        return True

    return get_status_code(error) in RETRYABLE_STATUS_CODES


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """
    Calculate delay before next retry attempt.

    Args:
        attempt: Current attempt number (0-indexed)
        config: Retry configuration

    Returns:
        Delay in seconds
    """
    delay = min(
        config.base_delay * (config.exponential_base ** attempt),
        config.max_delay,
    )

    if config.jitter:
        delay = delay * (0.5 + random.random())

    return delay


def with_retry(
    config: RetryConfig | None = None,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """
    Decorator for adding retry logic to async functions.

    Args:
        config: Retry configuration (uses defaults if not provided)

    Returns:
        Decorated function with retry logic
    """
    config = config or RetryConfig()

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            attempt = 0
            while True:
                try:
                    return await func(*args, **kwargs)

                except Exception as e:
                    if not is_retryable_error(e):
                        raise

                    if attempt >= config.max_retries:
                        logger.error(
                            "Max retries exceeded",
                            function=func.__name__,
                            attempts=attempt + 1,
                            error=str(e),
                        )
                        raise

                    delay = calculate_delay(attempt, config)

                    logger.warning(
                        "Retrying after error",
                        function=func.__name__,
                        attempt=attempt + 1,
                        max_retries=config.max_retries,
                        delay=delay,
                        error=str(e),
                    )

                    await asyncio.sleep(delay)
                    attempt += 1

        return wrapper

    return decorator


async def retry_async(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    config: RetryConfig | None = None,
    **kwargs: Any,
) -> T:
    """
    Execute an async function with retry logic.

    Args:
        func: Async function to execute
        *args: Positional arguments
        config: Retry configuration
        **kwargs: Keyword arguments

    Returns:
        Function result

    Raises:
        Last exception if all retries fail
    """
    config = config or RetryConfig()
    decorated = with_retry(config)(func)
    return await decorated(*args, **kwargs)
