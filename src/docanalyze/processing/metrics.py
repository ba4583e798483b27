"""Run-level performance aggregation."""

from __future__ import annotations

from docanalyze.types import PerformanceMetrics, TokenUsage


class PerformanceAggregator:
    """Accumulates latency, token and cost totals across one processing run."""

    def __init__(self, max_concurrency: int) -> None:
        self._max_concurrency = max_concurrency
        self._latencies: list[float] = []
        self._failed = 0
        self.total_tokens = 0
        self.total_cost = 0.0

    @property
    def completed_count(self) -> int:
        return len(self._latencies)

    @property
    def failed_count(self) -> int:
        return self._failed

    def record_completed(
        self,
        elapsed_seconds: float,
        usage: TokenUsage | None = None,
        cost: float = 0.0,
    ) -> None:
        """Record a completed task. Pass usage/cost only for fresh remote calls."""
        self._latencies.append(elapsed_seconds)
        if usage is not None:
            self.total_tokens += usage.total_tokens
        self.total_cost += cost

    def record_failed(self) -> None:
        self._failed += 1

    def summary(self, total_elapsed_seconds: float) -> PerformanceMetrics:
        """Compute throughput, mean latency and concurrency utilization."""
        completed = len(self._latencies)
        busy = sum(self._latencies)
        if total_elapsed_seconds <= 0:
            return PerformanceMetrics(
                average_latency=busy / completed if completed else 0.0,
            )
        return PerformanceMetrics(
            throughput_per_second=completed / total_elapsed_seconds,
            average_latency=busy / completed if completed else 0.0,
            concurrency_utilization=min(
                1.0, busy / self._max_concurrency / total_elapsed_seconds
            ),
        )
