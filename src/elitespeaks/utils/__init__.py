"""Utility modules for Elite Speaks."""

from elitespeaks.utils.logging import setup_logging
from elitespeaks.utils.metrics import Metrics
from elitespeaks.utils.retry import (
    RetryConfig,
    calculate_delay,
    is_retryable_error,
    retry_async,
    with_retry,
)

__all__ = [
    "setup_logging",
    "Metrics",
    "RetryConfig",
    "calculate_delay",
    "is_retryable_error",
    "retry_async",
    "with_retry",
]
