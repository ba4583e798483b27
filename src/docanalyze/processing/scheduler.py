"""Batch scheduler: prioritized, cache-aware, bounded-concurrency processing."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Protocol

from pydantic import BaseModel

from docanalyze.cache.keys import build_cache_key, hash_content
from docanalyze.cache.similarity import SimilarityIndex
from docanalyze.cache.stats import CacheMetadata
from docanalyze.cache.store import CacheStore
from docanalyze.config.schema import ProcessingOptions
from docanalyze.errors.exceptions import InvalidTaskError, RunCancelledError
from docanalyze.errors.retry import describe_error
from docanalyze.processing.metrics import PerformanceAggregator
from docanalyze.processing.priority import create_batches, prepare_tasks
from docanalyze.processing.runner import RetryingTaskRunner, TaskOutcome
from docanalyze.types import (
    CompletedTask,
    CompletionResponse,
    DocumentTask,
    FailedTask,
    ModelConfig,
    ProcessingResult,
    RunCacheSummary,
    SamplingParams,
)

logger = logging.getLogger(__name__)


class RemoteCompletion(Protocol):
    """The external AI call: ``(provider, model, prompt, sampling) -> response``."""

    def __call__(
        self,
        provider: str,
        model: str,
        prompt: str,
        sampling: SamplingParams,
    ) -> Awaitable[CompletionResponse]: ...


PromptBuilder = Callable[[DocumentTask], str]


class ProcessingStatus(BaseModel):
    active_tasks: int = 0
    queued_tasks: int = 0
    concurrency_limit: int = 0


def _content_prompt(task: DocumentTask) -> str:
    return task.content


class BatchScheduler:
    """Processes document tasks in paced batches with bounded concurrency.

    Per task the scheduler probes the cache by exact key, then (optionally) by
    similarity; only misses go through the RetryingTaskRunner. Fresh successes
    are written back to the cache. Task failures are reported in the result
    and never raised.
    """

    def __init__(
        self,
        remote: RemoteCompletion,
        model_config: ModelConfig | None = None,
        options: ProcessingOptions | None = None,
        cache: CacheStore | None = None,
        similarity: SimilarityIndex | None = None,
        runner: RetryingTaskRunner | None = None,
        prompt_builder: PromptBuilder | None = None,
        cache_extra: dict[str, str] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._options = (options or ProcessingOptions()).validate_bounds()
        self._remote = remote
        self._model = model_config or ModelConfig()
        self._cache = cache
        if similarity is None and cache is not None:
            similarity = SimilarityIndex(cache)
        self._similarity = similarity
        self._runner = runner or RetryingTaskRunner(
            max_retries=self._options.retry_attempts,
            timeout=self._options.timeout_seconds,
            base_delay=self._options.retry_base_delay,
            strategy=self._options.retry_strategy,
            jitter=self._options.retry_jitter,
            sleep=sleep,
            clock=clock,
        )
        self._prompt_builder = prompt_builder or _content_prompt
        self._cache_extra = cache_extra or {}
        self._sleep = sleep
        self._clock = clock
        # One entry per process_documents call still running
        self._runs: dict[int, ProcessingStatus] = {}

    @property
    def options(self) -> ProcessingOptions:
        return self._options

    def status(self) -> ProcessingStatus:
        """Active and queued tasks summed over every run in progress."""
        return ProcessingStatus(
            active_tasks=sum(run.active_tasks for run in self._runs.values()),
            queued_tasks=sum(run.queued_tasks for run in self._runs.values()),
            concurrency_limit=self._options.max_concurrency,
        )

    def plan(
        self,
        tasks: list[DocumentTask],
        options: ProcessingOptions | None = None,
    ) -> list[list[DocumentTask]]:
        """Return the batches ``process_documents`` would dispatch, in order."""
        opts = options.validate_bounds() if options else self._options
        prepared = prepare_tasks(tasks, opts.chunk_threshold, opts.split_large_documents)
        _check_unique_ids(prepared)
        if opts.priority_based:
            # sorted() is stable, so equal priorities keep input order
            prepared = sorted(prepared, key=lambda t: t.priority or 5)
        return create_batches(prepared, opts.batch_size)

    async def process_documents(
        self,
        tasks: list[DocumentTask],
        options: ProcessingOptions | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> ProcessingResult:
        """Process every task and account for each one in the result."""
        opts = options.validate_bounds() if options else self._options
        started = self._clock()
        batches = self.plan(tasks, opts)
        total = sum(len(b) for b in batches)
        logger.info("Processing %d tasks in %d batches", total, len(batches))

        aggregator = PerformanceAggregator(opts.max_concurrency)
        result = ProcessingResult()
        semaphore = asyncio.Semaphore(opts.max_concurrency)
        progress = ProcessingStatus(queued_tasks=total, concurrency_limit=opts.max_concurrency)
        self._runs[id(progress)] = progress

        try:
            for index, batch in enumerate(batches):
                if cancel_event is not None and cancel_event.is_set():
                    remaining = [t for b in batches[index:] for t in b]
                    logger.warning("Run cancelled; %d tasks not dispatched", len(remaining))
                    for task in remaining:
                        self._record_failure(
                            result, aggregator, task, RunCancelledError("run cancelled"), 0
                        )
                    result.cancelled = True
                    break

                logger.info("Batch %d/%d (%d tasks)", index + 1, len(batches), len(batch))
                outcomes = await asyncio.gather(
                    *(
                        self._process_task(
                            t, semaphore, opts, cancel_event, result.cache, progress
                        )
                        for t in batch
                    ),
                    return_exceptions=True,
                )
                for task, outcome in zip(batch, outcomes, strict=True):
                    self._record(result, aggregator, task, outcome)

                if index < len(batches) - 1 and not (cancel_event and cancel_event.is_set()):
                    await self._sleep(opts.batch_delay_seconds)
        finally:
            del self._runs[id(progress)]

        if cancel_event is not None and cancel_event.is_set():
            result.cancelled = True

        elapsed = self._clock() - started
        result.total_elapsed_seconds = elapsed
        result.total_tokens = aggregator.total_tokens
        result.total_cost = aggregator.total_cost
        result.performance = aggregator.summary(elapsed)
        logger.info(
            "Run finished: %d completed, %d failed, %.2f tasks/s",
            len(result.completed),
            len(result.failed),
            result.performance.throughput_per_second,
        )
        return result

    # ── Per-task flow ──

    async def _process_task(
        self,
        task: DocumentTask,
        semaphore: asyncio.Semaphore,
        opts: ProcessingOptions,
        cancel_event: asyncio.Event | None,
        summary: RunCacheSummary,
        progress: ProcessingStatus,
    ) -> CompletedTask | TaskOutcome:
        key: str | None = None
        hit: CompletedTask | None = None
        try:
            key = self._cache_key(task)
            hit = self._lookup(task, key, opts, summary)
        except Exception as e:
            logger.warning("Cache lookup failed for %s, treating as a miss: %s", task.id, e)
            summary.misses += 1
        if hit is not None:
            progress.queued_tasks -= 1
            return hit

        async with semaphore:
            progress.queued_tasks -= 1
            progress.active_tasks += 1
            try:
                outcome = await self._runner.run(
                    task,
                    self._call_remote,
                    max_retries=opts.retry_attempts,
                    timeout=opts.timeout_seconds,
                    cancel_event=cancel_event,
                    base_delay=opts.retry_base_delay,
                    strategy=opts.retry_strategy,
                    jitter=opts.retry_jitter,
                )
            finally:
                progress.active_tasks -= 1

        if outcome.response is not None and key is not None:
            try:
                self._store(task, key, outcome.response)
            except Exception as e:
                logger.warning("Cache write failed for %s: %s", task.id, e)
        return outcome

    async def _call_remote(self, task: DocumentTask) -> CompletionResponse:
        prompt = self._prompt_builder(task)
        return await self._remote(
            self._model.provider,
            self._model.model,
            prompt,
            self._model.sampling,
        )

    def _cache_key(self, task: DocumentTask) -> str:
        return build_cache_key(
            task.content,
            self._model.model,
            self._model.provider,
            self._model.sampling,
            self._cache_extra,
        )

    def _lookup(
        self,
        task: DocumentTask,
        key: str,
        opts: ProcessingOptions,
        summary: RunCacheSummary,
    ) -> CompletedTask | None:
        if self._cache is None or not self._cache.enabled:
            return None
        started = self._clock()

        entry = self._cache.get(key)
        if entry is not None:
            summary.hits += 1
            summary.cost_saved += entry.metadata.cost
            return self._completed_from_cache(task, entry.payload, started)

        if opts.similarity_enabled and self._similarity is not None:
            match = self._similarity.find_similar(
                task.content,
                self._model.model,
                self._model.provider,
                opts.similarity_threshold,
            )
            if match is not None:
                summary.similar_hits += 1
                summary.cost_saved += match.payload.cost
                return self._completed_from_cache(
                    task, match.payload, started, similarity=match.similarity
                )

        summary.misses += 1
        return None

    def _completed_from_cache(
        self,
        task: DocumentTask,
        payload: CompletionResponse,
        started: float,
        similarity: float | None = None,
    ) -> CompletedTask:
        return CompletedTask(
            task_id=task.id,
            display_name=task.name,
            response=payload,
            elapsed_seconds=self._clock() - started,
            cached=True,
            similarity=similarity,
            parent_id=task.parent_id,
        )

    def _store(self, task: DocumentTask, key: str, response: CompletionResponse) -> None:
        if self._cache is None:
            return
        metadata = CacheMetadata(
            model=self._model.model,
            provider=self._model.provider,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            cost=response.cost,
            content_hash=hash_content(task.content),
        )
        self._cache.set(key, response, metadata)

    # ── Result accounting ──

    def _record(
        self,
        result: ProcessingResult,
        aggregator: PerformanceAggregator,
        task: DocumentTask,
        outcome: CompletedTask | TaskOutcome | BaseException,
    ) -> None:
        if isinstance(outcome, CompletedTask):
            result.completed.append(outcome)
            aggregator.record_completed(outcome.elapsed_seconds)
        elif isinstance(outcome, TaskOutcome) and outcome.response is not None:
            result.completed.append(
                CompletedTask(
                    task_id=task.id,
                    display_name=task.name,
                    response=outcome.response,
                    elapsed_seconds=outcome.elapsed_seconds,
                    retries_used=outcome.retries_used,
                    parent_id=task.parent_id,
                )
            )
            aggregator.record_completed(
                outcome.elapsed_seconds, outcome.response.usage, outcome.response.cost
            )
        elif isinstance(outcome, TaskOutcome):
            error = outcome.error or RuntimeError("task failed without an error")
            self._record_failure(result, aggregator, task, error, outcome.retries_used)
        else:
            logger.error("Task %s raised unexpectedly: %r", task.id, outcome)
            self._record_failure(result, aggregator, task, outcome, 0)

    @staticmethod
    def _record_failure(
        result: ProcessingResult,
        aggregator: PerformanceAggregator,
        task: DocumentTask,
        error: BaseException,
        retries_used: int,
    ) -> None:
        message, error_type = describe_error(error)
        result.failed.append(
            FailedTask(
                task_id=task.id,
                display_name=task.name,
                error=message,
                error_type=error_type,
                retries_used=retries_used,
                parent_id=task.parent_id,
            )
        )
        aggregator.record_failed()


def _check_unique_ids(tasks: list[DocumentTask]) -> None:
    seen: set[str] = set()
    duplicates: set[str] = set()
    for task in tasks:
        if task.id in seen:
            duplicates.add(task.id)
        seen.add(task.id)
    if duplicates:
        raise InvalidTaskError(f"duplicate task ids: {', '.join(sorted(duplicates))}")
