"""Shared Pydantic models for docanalyze."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

# ── Enums ──


class RetryStrategy(StrEnum):
    EXPONENTIAL = "exponential"
    LINEAR = "linear"
    FIXED = "fixed"


# ── Remote call models ──


class TokenUsage(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


class SamplingParams(BaseModel):
    temperature: float = 0.7
    max_tokens: int = 4096
    top_p: float | None = None


class ModelConfig(BaseModel):
    provider: str = "openai"
    model: str = "gpt-4o-mini"
    sampling: SamplingParams = Field(default_factory=SamplingParams)


class CompletionResponse(BaseModel):
    """What the remote completion service returns for one prompt."""

    content: str
    model: str = ""
    provider: str = ""
    usage: TokenUsage = Field(default_factory=TokenUsage)
    cost: float = 0.0
    data: dict[str, Any] = Field(default_factory=dict)


# ── Task models ──


class DocumentTask(BaseModel):
    id: str = Field(min_length=1)
    display_name: str = ""
    content: str = Field(min_length=1)
    priority: int | None = Field(default=None, ge=1, le=5)
    estimated_tokens: int | None = Field(default=None, ge=0)

    # Set on sub-tasks produced by split_large_document
    parent_id: str | None = None
    chunk_index: int | None = None
    chunk_count: int | None = None

    @property
    def name(self) -> str:
        return self.display_name or self.id


class CompletedTask(BaseModel):
    task_id: str
    display_name: str = ""
    response: CompletionResponse
    elapsed_seconds: float = 0.0
    retries_used: int = 0
    cached: bool = False
    similarity: float | None = None
    parent_id: str | None = None


class FailedTask(BaseModel):
    task_id: str
    display_name: str = ""
    error: str
    error_type: str = "unknown"
    retries_used: int = 0
    parent_id: str | None = None


class PerformanceMetrics(BaseModel):
    throughput_per_second: float = 0.0
    average_latency: float = 0.0
    concurrency_utilization: float = 0.0


class RunCacheSummary(BaseModel):
    """Cache traffic observed during a single run."""

    hits: int = 0
    similar_hits: int = 0
    misses: int = 0
    cost_saved: float = 0.0


class ProcessingResult(BaseModel):
    completed: list[CompletedTask] = Field(default_factory=list)
    failed: list[FailedTask] = Field(default_factory=list)
    total_tokens: int = 0
    total_cost: float = 0.0
    total_elapsed_seconds: float = 0.0
    performance: PerformanceMetrics = Field(default_factory=PerformanceMetrics)
    cache: RunCacheSummary = Field(default_factory=RunCacheSummary)
    cancelled: bool = False

    @property
    def success(self) -> bool:
        return not self.failed

    @property
    def task_ids(self) -> list[str]:
        return [c.task_id for c in self.completed] + [f.task_id for f in self.failed]
