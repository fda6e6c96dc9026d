"""
Request queuing module.

Provides admission control in front of rate-limited provider calls.
"""

from elitespeaks.queue.request_queue import (
    RequestQueue,
    QueuedTask,
    QueueStats,
)

__all__ = [
    "RequestQueue",
    "QueuedTask",
    "QueueStats",
]
