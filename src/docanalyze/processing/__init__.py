"""Processing: retrying runner, batch scheduler and run metrics."""

from docanalyze.processing.metrics import PerformanceAggregator
from docanalyze.processing.priority import (
    calculate_priority,
    create_batches,
    estimate_tokens,
    prepare_tasks,
    split_large_document,
)
from docanalyze.processing.runner import RetryingTaskRunner, TaskOutcome
from docanalyze.processing.scheduler import BatchScheduler, ProcessingStatus, RemoteCompletion

__all__ = [
    "BatchScheduler",
    "PerformanceAggregator",
    "ProcessingStatus",
    "RemoteCompletion",
    "RetryingTaskRunner",
    "TaskOutcome",
    "calculate_priority",
    "create_batches",
    "estimate_tokens",
    "prepare_tasks",
    "split_large_document",
]
