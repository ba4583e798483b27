"""Tests for the batch scheduler."""

import asyncio
import threading

import pytest

from docanalyze.cache.store import CacheStore
from docanalyze.config.schema import CacheOptions, ProcessingOptions
from docanalyze.errors.exceptions import ConfigurationError, InvalidTaskError
from docanalyze.processing.scheduler import BatchScheduler
from docanalyze.types import CompletionResponse, DocumentTask, ModelConfig, SamplingParams


def _options(**kwargs) -> ProcessingOptions:
    return ProcessingOptions(**kwargs)


@pytest.fixture
def make_scheduler(recording_sleep):
    def _make(remote, **kwargs):
        kwargs.setdefault("sleep", recording_sleep)
        return BatchScheduler(remote, **kwargs)

    return _make


class TestConstruction:
    def test_zero_concurrency_rejected(self, stub_remote):
        with pytest.raises(ConfigurationError):
            BatchScheduler(stub_remote, options=_options(max_concurrency=0))

    def test_zero_batch_size_rejected(self, stub_remote):
        with pytest.raises(ConfigurationError):
            BatchScheduler(stub_remote, options=_options(batch_size=0))

    async def test_invalid_run_options_rejected(self, stub_remote, make_tasks):
        scheduler = BatchScheduler(stub_remote)
        with pytest.raises(ConfigurationError):
            await scheduler.process_documents(make_tasks(1), _options(timeout_seconds=0))

    def test_status_idle(self, stub_remote):
        status = BatchScheduler(stub_remote, options=_options(max_concurrency=4)).status()
        assert status.active_tasks == 0
        assert status.queued_tasks == 0
        assert status.concurrency_limit == 4


class TestPlan:
    def test_priority_order(self, stub_remote):
        tasks = [
            DocumentTask(id=f"p{p}", content=f"content {p}", priority=p) for p in (3, 1, 5, 2)
        ]
        batches = BatchScheduler(stub_remote, options=_options(batch_size=2)).plan(tasks)
        assert [[t.id for t in b] for b in batches] == [["p1", "p2"], ["p3", "p5"]]

    def test_equal_priorities_keep_input_order(self, stub_remote, make_tasks):
        batches = BatchScheduler(stub_remote).plan(make_tasks(4))
        assert [t.id for t in batches[0]] == ["task-1", "task-2", "task-3", "task-4"]

    def test_priority_disabled(self, stub_remote):
        tasks = [DocumentTask(id=f"p{p}", content="c", priority=p) for p in (3, 1)]
        scheduler = BatchScheduler(stub_remote, options=_options(priority_based=False))
        assert [t.id for t in scheduler.plan(tasks)[0]] == ["p3", "p1"]

    def test_duplicate_ids_rejected(self, stub_remote):
        tasks = [DocumentTask(id="a", content="x"), DocumentTask(id="a", content="y")]
        with pytest.raises(InvalidTaskError):
            BatchScheduler(stub_remote).plan(tasks)

    def test_large_documents_split(self, stub_remote):
        task = DocumentTask(id="big", content="x" * 25)
        batches = BatchScheduler(stub_remote, options=_options(chunk_threshold=10)).plan([task])
        assert [t.id for t in batches[0]] == ["big_chunk_1", "big_chunk_2", "big_chunk_3"]


class TestProcessDocuments:
    async def test_priority_dispatch_order(self, make_scheduler, stub_remote):
        tasks = [
            DocumentTask(id=f"p{p}", content=f"priority {p} body", priority=p) for p in (3, 1, 5, 2)
        ]
        scheduler = make_scheduler(stub_remote, options=_options(batch_size=1))
        await scheduler.process_documents(tasks)
        assert stub_remote.calls == [
            "priority 1 body",
            "priority 2 body",
            "priority 3 body",
            "priority 5 body",
        ]

    async def test_at_most_n_in_flight(self, make_scheduler, make_remote, make_tasks):
        remote = make_remote(delay=0.01)
        options = _options(max_concurrency=3, batch_size=10)
        result = await make_scheduler(remote, options=options).process_documents(make_tasks(10))
        assert len(result.completed) == 10
        assert remote.max_active == 3

    async def test_end_to_end_with_flaky_task(self, make_scheduler, make_remote, make_tasks):
        remote = make_remote(failures={"number 003": 2})
        options = _options(batch_size=5, max_concurrency=3, retry_attempts=2)
        result = await make_scheduler(remote, options=options).process_documents(make_tasks(7))

        assert len(result.completed) == 7
        assert len(result.failed) == 0
        third = next(c for c in result.completed if c.task_id == "task-3")
        assert third.retries_used == 2
        assert result.success

    async def test_retry_exhaustion_reported(self, make_scheduler, make_remote, make_tasks):
        remote = make_remote(failures={"number 002": 99})
        options = _options(retry_attempts=2)
        result = await make_scheduler(remote, options=options).process_documents(make_tasks(3))

        assert [f.task_id for f in result.failed] == ["task-2"]
        failed = result.failed[0]
        assert failed.retries_used == 2
        assert failed.error_type == "server_error"
        assert "number 002" in failed.error
        assert len(result.completed) == 2

    async def test_result_completeness(self, make_scheduler, make_remote, make_tasks):
        remote = make_remote(failures={"number 001": 99, "number 004": 99})
        tasks = make_tasks(9)
        options = _options(batch_size=4, retry_attempts=0)
        result = await make_scheduler(remote, options=options).process_documents(tasks)

        completed = {c.task_id for c in result.completed}
        failed = {f.task_id for f in result.failed}
        assert completed.isdisjoint(failed)
        assert completed | failed == {t.id for t in tasks}
        assert len(result.task_ids) == len(tasks)

    async def test_timeout_does_not_cancel_siblings(self, make_scheduler):
        async def remote(provider, model, prompt, sampling):
            if "slow" in prompt:
                await asyncio.sleep(10)
            return CompletionResponse(content="done")

        tasks = [
            DocumentTask(id="slow", content="slow document"),
            DocumentTask(id="fast", content="fast document"),
        ]
        options = _options(timeout_seconds=0.05, retry_attempts=0)
        result = await make_scheduler(remote, options=options).process_documents(tasks)
        assert [c.task_id for c in result.completed] == ["fast"]
        assert result.failed[0].error_type == "timeout"

    async def test_batch_pacing(self, make_scheduler, stub_remote, make_tasks, recording_sleep):
        options = _options(batch_size=5, batch_delay_seconds=2.5)
        await make_scheduler(stub_remote, options=options).process_documents(make_tasks(12))
        assert recording_sleep.delays == [2.5, 2.5]

    async def test_totals_and_metrics(self, make_scheduler, make_remote, make_tasks):
        remote = make_remote(cost=0.002)
        result = await make_scheduler(remote).process_documents(make_tasks(4))
        assert result.total_tokens == 4 * 150
        assert result.total_cost == pytest.approx(0.008)
        assert result.total_elapsed_seconds > 0
        assert result.performance.throughput_per_second > 0

    async def test_empty_task_list(self, make_scheduler, stub_remote):
        result = await make_scheduler(stub_remote).process_documents([])
        assert result.completed == []
        assert result.failed == []

    async def test_chunks_carry_parent(self, make_scheduler, stub_remote):
        task = DocumentTask(id="big", content="abcdefghij" * 3)
        options = _options(chunk_threshold=10)
        result = await make_scheduler(stub_remote, options=options).process_documents([task])
        assert len(result.completed) == 3
        assert {c.parent_id for c in result.completed} == {"big"}

    async def test_status_after_run(self, make_scheduler, stub_remote, make_tasks):
        scheduler = make_scheduler(stub_remote)
        await scheduler.process_documents(make_tasks(3))
        status = scheduler.status()
        assert status.active_tasks == 0
        assert status.queued_tasks == 0

    async def test_status_sums_concurrent_runs(self, make_scheduler, make_tasks):
        release = asyncio.Event()
        entered = []

        async def remote(provider, model, prompt, sampling):
            entered.append(prompt)
            await release.wait()
            return CompletionResponse(content="done")

        scheduler = make_scheduler(remote, options=_options(max_concurrency=1))
        first = asyncio.create_task(scheduler.process_documents(make_tasks(2)))
        second = asyncio.create_task(scheduler.process_documents(make_tasks(1)))
        while len(entered) < 2:
            await asyncio.sleep(0)

        status = scheduler.status()
        assert status.active_tasks == 2
        assert status.queued_tasks == 1

        release.set()
        results = await asyncio.gather(first, second)
        assert [len(r.completed) for r in results] == [2, 1]
        assert scheduler.status().active_tasks == 0
        assert scheduler.status().queued_tasks == 0

    async def test_per_run_retry_options(
        self, make_scheduler, make_remote, make_tasks, recording_sleep
    ):
        remote = make_remote(failures={"number 001": 2})
        scheduler = make_scheduler(remote)
        options = _options(retry_attempts=2, retry_base_delay=0.25)
        result = await scheduler.process_documents(make_tasks(1), options)

        assert result.completed[0].retries_used == 2
        assert recording_sleep.delays == [0.25, 0.5]

    async def test_per_run_retry_strategy(
        self, make_scheduler, make_remote, make_tasks, recording_sleep
    ):
        remote = make_remote(failures={"number 001": 2})
        options = _options(retry_attempts=2, retry_base_delay=0.5, retry_strategy="fixed")
        await make_scheduler(remote).process_documents(make_tasks(1), options)
        assert recording_sleep.delays == [0.5, 0.5]


class TestCaching:
    async def test_second_run_served_from_cache(self, make_scheduler, stub_remote, make_tasks):
        scheduler = make_scheduler(stub_remote, cache=CacheStore())
        first = await scheduler.process_documents(make_tasks(3))
        second = await scheduler.process_documents(make_tasks(3))

        assert first.cache.misses == 3
        assert second.cache.hits == 3
        assert second.cache.misses == 0
        assert len(stub_remote.calls) == 3
        assert all(c.cached for c in second.completed)
        assert second.total_cost == 0.0
        assert second.cache.cost_saved == pytest.approx(3 * 0.001)

    async def test_failures_not_cached(self, make_scheduler, make_remote, make_tasks):
        remote = make_remote(failures={"number 001": 1})
        cache = CacheStore()
        options = _options(retry_attempts=0)
        scheduler = make_scheduler(remote, cache=cache, options=options)
        first = await scheduler.process_documents(make_tasks(1))
        assert len(first.failed) == 1
        assert len(cache) == 0

        second = await scheduler.process_documents(make_tasks(1))
        assert len(second.completed) == 1
        assert second.cache.misses == 1

    async def test_model_change_misses(self, make_scheduler, stub_remote, make_tasks):
        cache = CacheStore()
        await make_scheduler(stub_remote, cache=cache).process_documents(make_tasks(2))
        other = make_scheduler(
            stub_remote, cache=cache, model_config=ModelConfig(model="gpt-4o")
        )
        result = await other.process_documents(make_tasks(2))
        assert result.cache.hits == 0
        assert len(stub_remote.calls) == 4

    async def test_similarity_reuse(self, make_scheduler, stub_remote, make_tasks):
        cache = CacheStore()
        await make_scheduler(stub_remote, cache=cache).process_documents(make_tasks(2))

        # Different sampling gives a different exact key for the same content
        model = ModelConfig(sampling=SamplingParams(temperature=0.1))
        options = _options(similarity_enabled=True, similarity_threshold=0.9)
        scheduler = make_scheduler(stub_remote, cache=cache, model_config=model, options=options)
        result = await scheduler.process_documents(make_tasks(2))

        assert result.cache.similar_hits == 2
        assert result.cache.misses == 0
        assert all(c.similarity == 1.0 for c in result.completed)
        assert len(stub_remote.calls) == 2

    async def test_uncacheable_response_still_completes(self, make_scheduler, make_tasks):
        calls = 0

        async def remote(provider, model, prompt, sampling):
            nonlocal calls
            calls += 1
            return CompletionResponse(content="ok", data={"handle": threading.Lock()})

        cache = CacheStore()
        result = await make_scheduler(remote, cache=cache).process_documents(make_tasks(1))

        assert [c.task_id for c in result.completed] == ["task-1"]
        assert result.failed == []
        assert calls == 1
        assert len(cache) == 0

    async def test_cache_failures_fall_back_to_remote(
        self, make_scheduler, stub_remote, make_tasks
    ):
        class BrokenCache(CacheStore):
            def get(self, key):
                raise RuntimeError("lookup exploded")

            def set(self, key, payload, metadata, ttl=None):
                raise RuntimeError("write exploded")

        scheduler = make_scheduler(stub_remote, cache=BrokenCache())
        result = await scheduler.process_documents(make_tasks(2))

        assert len(result.completed) == 2
        assert result.failed == []
        assert result.cache.misses == 2
        assert len(stub_remote.calls) == 2

    async def test_disabled_cache_always_calls(self, make_scheduler, stub_remote, make_tasks):
        cache = CacheStore(CacheOptions(enabled=False))
        scheduler = make_scheduler(stub_remote, cache=cache)
        await scheduler.process_documents(make_tasks(2))
        result = await scheduler.process_documents(make_tasks(2))
        assert result.cache.hits == 0
        assert len(stub_remote.calls) == 4


class TestCancellation:
    async def test_cancelled_before_run(self, make_scheduler, stub_remote, make_tasks):
        event = asyncio.Event()
        event.set()
        result = await make_scheduler(stub_remote).process_documents(
            make_tasks(3), cancel_event=event
        )
        assert result.cancelled
        assert len(result.failed) == 3
        assert {f.error_type for f in result.failed} == {"cancelled"}
        assert stub_remote.calls == []

    async def test_cancelled_between_batches(self, stub_remote, make_tasks):
        event = asyncio.Event()

        async def cancelling_sleep(seconds):
            event.set()
            await asyncio.sleep(0)

        scheduler = BatchScheduler(
            stub_remote, options=_options(batch_size=2), sleep=cancelling_sleep
        )
        result = await scheduler.process_documents(make_tasks(5), cancel_event=event)

        assert result.cancelled
        assert [c.task_id for c in result.completed] == ["task-1", "task-2"]
        assert [f.task_id for f in result.failed] == ["task-3", "task-4", "task-5"]
        assert len(stub_remote.calls) == 2
