"""
Metrics collection for provider calls.

Tracks latency and outcome of evaluation and transcription requests.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Any


@dataclass
class RequestMetrics:
    """Metrics for a single provider call."""

    timestamp: datetime
    provider: str
    operation: str
    latency_ms: float
    success: bool
    error_type: str | None = None


@dataclass
class ProviderMetrics:
    """Aggregated metrics for a provider."""

    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    total_latency_ms: float = 0.0
    errors: dict[str, int] = field(default_factory=lambda: defaultdict(int))

    @property
    def success_rate(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.successful_requests / self.total_requests

    @property
    def avg_latency_ms(self) -> float:
        if self.successful_requests == 0:
            return 0.0
        return self.total_latency_ms / self.successful_requests


class Metrics:
    """
    Thread-safe metrics collector.

    Collects and aggregates outcomes of calls to external providers.
    """

    def __init__(self, max_history: int = 1000):
        """
        Initialize metrics collector.

        Args:
            max_history: Maximum number of requests to keep in history
        """
        self._lock = Lock()
        self._max_history = max_history
        self._requests: list[RequestMetrics] = []
        self._provider_metrics: dict[str, ProviderMetrics] = defaultdict(ProviderMetrics)
        self._start_time = datetime.now(timezone.utc)

    def record_success(self, provider: str, operation: str, latency_ms: float) -> None:
        """Record a successful provider call."""
        with self._lock:
            self._add_request(RequestMetrics(
                timestamp=datetime.now(timezone.utc),
                provider=provider,
                operation=operation,
                latency_ms=latency_ms,
                success=True,
            ))

            pm = self._provider_metrics[provider]
            pm.total_requests += 1
            pm.successful_requests += 1
            pm.total_latency_ms += latency_ms

    def record_error(
        self,
        provider: str,
        operation: str,
        error_type: str,
        latency_ms: float = 0.0,
    ) -> None:
        """Record a failed provider call."""
        with self._lock:
            self._add_request(RequestMetrics(
                timestamp=datetime.now(timezone.utc),
                provider=provider,
                operation=operation,
                latency_ms=latency_ms,
                success=False,
                error_type=error_type,
            ))

            pm = self._provider_metrics[provider]
            pm.total_requests += 1
            pm.failed_requests += 1
            pm.errors[error_type] += 1

    def _add_request(self, request: RequestMetrics) -> None:
        self._requests.append(request)
        if len(self._requests) > self._max_history:
            self._requests = self._requests[-self._max_history:]

    def get_summary(self) -> dict[str, Any]:
        """Get aggregated metrics."""
        with self._lock:
            total_requests = sum(pm.total_requests for pm in self._provider_metrics.values())
            total_successful = sum(
                pm.successful_requests for pm in self._provider_metrics.values()
            )
            uptime = (datetime.now(timezone.utc) - self._start_time).total_seconds()

            return {
                "uptime_seconds": uptime,
                "total_requests": total_requests,
                "successful_requests": total_successful,
                "failed_requests": total_requests - total_successful,
                "success_rate": total_successful / total_requests if total_requests > 0 else 0,
                "providers": {
                    name: {
                        "total_requests": pm.total_requests,
                        "success_rate": pm.success_rate,
                        "avg_latency_ms": pm.avg_latency_ms,
                        "errors": dict(pm.errors),
                    }
                    for name, pm in self._provider_metrics.items()
                },
            }

    def get_recent_requests(self, limit: int = 100) -> list[dict[str, Any]]:
        """Get recent request history, oldest first."""
        with self._lock:
            return [
                {
                    "timestamp": r.timestamp.isoformat(),
                    "provider": r.provider,
                    "operation": r.operation,
                    "latency_ms": r.latency_ms,
                    "success": r.success,
                    "error": r.error_type,
                }
                for r in self._requests[-limit:]
            ]

    def reset(self) -> None:
        """Reset all metrics."""
        with self._lock:
            self._requests.clear()
            self._provider_metrics.clear()
            self._start_time = datetime.now(timezone.utc)
