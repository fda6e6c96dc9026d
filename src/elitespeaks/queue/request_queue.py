"""
Admission-control queue for rate-limited provider calls.

Serializes calls to the evaluation provider, retries transient failures with
exponential backoff, and reports queue depth so the HTTP layer can shed load
before a hard external quota is hit.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, TypeVar

import structlog

from elitespeaks.utils.retry import RetryConfig, calculate_delay, is_retryable_error

logger = structlog.get_logger()

T = TypeVar("T")


@dataclass
class QueuedTask(Generic[T]):
    """A unit of work waiting for a free slot."""

    task_id: str
    operation: Callable[[], Awaitable[T]]
    future: asyncio.Future = field(repr=False)
    submitted_at: float = field(default_factory=time.monotonic)


@dataclass
class QueueStats:
    """Cumulative queue statistics."""

    total_queued: int = 0
    total_processed: int = 0
    total_failed: int = 0
    total_retries: int = 0
    avg_wait_time_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_queued": self.total_queued,
            "total_processed": self.total_processed,
            "total_failed": self.total_failed,
            "total_retries": self.total_retries,
            "avg_wait_time_ms": round(self.avg_wait_time_ms, 2),
        }


class RequestQueue:
    """
    FIFO queue with bounded concurrency and retrying execution.

    At most ``max_concurrent`` operations run at once; waiting operations are
    started strictly in submission order. A failed attempt whose error is
    classified retryable is retried after ``base_delay * 2**n`` seconds while
    the task keeps its slot. There is no internal size limit: callers read
    ``queue_length`` and reject new work themselves.

    One instance is meant to be shared by the whole process; construct it
    where the application is wired and pass it to whoever needs it.

    Example:
        queue = RequestQueue()

        if queue.queue_length > 5:
            ...  # reject with "try again later"

        result = await queue.enqueue(lambda: provider.generate(prompt))
    """

    def __init__(
        self,
        max_concurrent: int = 1,
        retry_config: RetryConfig | None = None,
    ):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")

        self.max_concurrent = max_concurrent
        self.retry_config = retry_config or RetryConfig()

        self._pending: deque[QueuedTask[Any]] = deque()
        self._active = 0
        self._dispatching = False
        self._runners: set[asyncio.Task[None]] = set()
        self._stats = QueueStats()
        self._task_counter = 0
        self._dispatched = 0
        self._total_wait_time = 0.0

    @property
    def queue_length(self) -> int:
        """Number of tasks waiting to be dispatched (not running)."""
        return len(self._pending)

    @property
    def active_count(self) -> int:
        """Number of tasks dispatched and not yet settled."""
        return self._active

    @property
    def currently_processing(self) -> int:
        return self._active

    @property
    def stats(self) -> QueueStats:
        return self._stats

    def enqueue(self, operation: Callable[[], Awaitable[T]]) -> asyncio.Future[T]:
        """
        Submit an operation and return a future for its eventual result.

        Never blocks and never rejects for saturation. Must be called from a
        running event loop.

        Args:
            operation: Zero-argument coroutine function to execute

        Returns:
            Future resolved with the operation's result, or failed with the
            terminal (or retry-exhausted) error
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future[T] = loop.create_future()

        self._task_counter += 1
        task = QueuedTask(
            task_id=f"task_{self._task_counter}",
            operation=operation,
            future=future,
        )

        self._pending.append(task)
        self._stats.total_queued += 1
        logger.debug(
            "Task queued",
            task_id=task.task_id,
            queue_length=len(self._pending),
            active=self._active,
        )

        self._dispatch()
        return future

    def _dispatch(self) -> None:
        """Start waiting tasks while capacity is free."""
        if self._dispatching:
            return

        self._dispatching = True
        try:
            while self._pending and self._active < self.max_concurrent:
                task = self._pending.popleft()
                self._active += 1

                self._dispatched += 1
                self._total_wait_time += (time.monotonic() - task.submitted_at) * 1000
                self._stats.avg_wait_time_ms = self._total_wait_time / self._dispatched

                runner = asyncio.get_running_loop().create_task(self._run(task))
                self._runners.add(runner)
                runner.add_done_callback(self._runners.discard)
        finally:
            self._dispatching = False

    async def _run(self, task: QueuedTask[Any]) -> None:
        """Execute a dispatched task and release its slot when it settles."""
        result: Any = None
        error: BaseException | None = None

        try:
            result = await self._execute_with_retries(task)
        except asyncio.CancelledError:
            error = asyncio.CancelledError()
            raise
        except Exception as e:
            error = e
        finally:
            self._active -= 1
            self._settle(task, result, error)
            self._dispatch()

    async def _execute_with_retries(self, task: QueuedTask[T]) -> T:
        attempt = 0
        while True:
            try:
                return await task.operation()
            except Exception as e:
                if attempt >= self.retry_config.max_retries or not is_retryable_error(e):
                    raise

                delay = calculate_delay(attempt, self.retry_config)
                self._stats.total_retries += 1
                logger.warning(
                    "Retrying queued task",
                    task_id=task.task_id,
                    attempt=attempt + 1,
                    max_retries=self.retry_config.max_retries,
                    delay=delay,
                    error=str(e),
                )

                await asyncio.sleep(delay)
                attempt += 1

    def _settle(
        self,
        task: QueuedTask[Any],
        result: Any,
        error: BaseException | None,
    ) -> None:
        if error is None:
            self._stats.total_processed += 1
        else:
            self._stats.total_failed += 1
            if not isinstance(error, asyncio.CancelledError):
                logger.error(
                    "Queued task failed",
                    task_id=task.task_id,
                    error=str(error),
                    error_type=type(error).__name__,
                )

        # The caller may have given up (e.g. outer timeout); drop the outcome
        if task.future.done():
            return

        if isinstance(error, asyncio.CancelledError):
            task.future.cancel()
        elif error is not None:
            task.future.set_exception(error)
        else:
            task.future.set_result(result)
