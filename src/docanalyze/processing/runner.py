"""Single-task executor with per-attempt timeout and exponential backoff."""

from __future__ import annotations

import asyncio
import functools
import logging
import time
from collections.abc import Awaitable, Callable

from pydantic import BaseModel, ConfigDict
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_not_exception_type,
    stop_after_attempt,
)

from docanalyze.errors.exceptions import (
    RunCancelledError,
    TaskTimeoutError,
    TransientError,
)
from docanalyze.errors.retry import MAX_WAIT, compute_wait
from docanalyze.types import CompletionResponse, DocumentTask, RetryStrategy

logger = logging.getLogger(__name__)

TaskCall = Callable[[DocumentTask], Awaitable[CompletionResponse]]


class TaskOutcome(BaseModel):
    """Result of running one task: a response or the last error."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    task_id: str
    response: CompletionResponse | None = None
    error: Exception | None = None
    attempts: int = 0
    elapsed_seconds: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.response is not None

    @property
    def retries_used(self) -> int:
        return max(self.attempts - 1, 0)


class RetryingTaskRunner:
    """Runs a remote call for one task, retrying every failure with backoff.

    A timed-out attempt counts as a failure. Waits ``base_delay * 2 ** (n - 1)``
    after the n-th failed attempt (or the server's retry-after, if longer),
    never more than 60 s. ``sleep`` and ``clock`` are injectable so tests can
    skip real waiting.
    """

    def __init__(
        self,
        max_retries: int = 2,
        timeout: float = 30.0,
        base_delay: float = 1.0,
        strategy: RetryStrategy = RetryStrategy.EXPONENTIAL,
        jitter: bool = False,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._max_retries = max_retries
        self._timeout = timeout
        self._base_delay = base_delay
        self._strategy = strategy
        self._jitter = jitter
        self._sleep = sleep
        self._clock = clock

    async def run(
        self,
        task: DocumentTask,
        call_remote: TaskCall,
        max_retries: int | None = None,
        timeout: float | None = None,
        cancel_event: asyncio.Event | None = None,
        base_delay: float | None = None,
        strategy: RetryStrategy | None = None,
        jitter: bool | None = None,
    ) -> TaskOutcome:
        """Attempt ``call_remote(task)`` up to ``max_retries + 1`` times.

        Arguments left as None fall back to the values given at construction.
        """
        max_retries = self._max_retries if max_retries is None else max_retries
        timeout = self._timeout if timeout is None else timeout
        max_attempts = max_retries + 1
        wait = functools.partial(
            self._wait,
            base_delay=self._base_delay if base_delay is None else base_delay,
            strategy=strategy or self._strategy,
            jitter=self._jitter if jitter is None else jitter,
        )

        started = self._clock()
        attempts = 0
        retrying = AsyncRetrying(
            stop=stop_after_attempt(max_attempts),
            wait=wait,
            retry=retry_if_not_exception_type(RunCancelledError),
            before_sleep=lambda state: self._log_retry(task, state, max_attempts),
            sleep=self._sleep,
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    if cancel_event is not None and cancel_event.is_set():
                        raise RunCancelledError(f"run cancelled before attempt {attempts + 1}")
                    attempts = attempt.retry_state.attempt_number
                    response = await self._attempt(task, call_remote, timeout, cancel_event)
        except Exception as exc:
            logger.error("Task %s gave up after %d attempt(s): %s", task.id, attempts, exc)
            return TaskOutcome(
                task_id=task.id,
                error=exc,
                attempts=attempts,
                elapsed_seconds=self._clock() - started,
            )

        if attempts > 1:
            logger.info("Task %s succeeded on attempt %d", task.id, attempts)
        return TaskOutcome(
            task_id=task.id,
            response=response,
            attempts=attempts,
            elapsed_seconds=self._clock() - started,
        )

    @staticmethod
    def _wait(
        retry_state: RetryCallState,
        base_delay: float,
        strategy: RetryStrategy,
        jitter: bool,
    ) -> float:
        wait = compute_wait(
            retry_state.attempt_number, strategy, initial_wait=base_delay, jitter=jitter
        )
        error = retry_state.outcome.exception() if retry_state.outcome else None
        if isinstance(error, TransientError) and error.retry_after:
            wait = min(max(wait, error.retry_after), MAX_WAIT)
        return wait

    @staticmethod
    def _log_retry(task: DocumentTask, state: RetryCallState, max_attempts: int) -> None:
        error = state.outcome.exception() if state.outcome else None
        wait = state.next_action.sleep if state.next_action else 0.0
        logger.warning(
            "Task %s failed (attempt %d/%d): %s. Retrying in %.1fs",
            task.id,
            state.attempt_number,
            max_attempts,
            error,
            wait,
        )

    async def _attempt(
        self,
        task: DocumentTask,
        call_remote: TaskCall,
        timeout: float,
        cancel_event: asyncio.Event | None,
    ) -> CompletionResponse:
        """Race one remote call against the timeout and the cancel event."""
        call = asyncio.ensure_future(call_remote(task))
        waiters: set[asyncio.Future] = {call}
        cancelled: asyncio.Future | None = None
        if cancel_event is not None:
            cancelled = asyncio.ensure_future(cancel_event.wait())
            waiters.add(cancelled)

        try:
            done, _ = await asyncio.wait(
                waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            pending = [w for w in waiters if not w.done()]
            for waiter in pending:
                waiter.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        if call in done:
            response = call.result()
            if not isinstance(response, CompletionResponse):
                raise TransientError(
                    f"malformed response of type {type(response).__name__}",
                    error_type="malformed_response",
                )
            return response
        if cancelled is not None and cancelled in done:
            raise RunCancelledError("run cancelled during remote call")
        raise TaskTimeoutError(f"timed out after {timeout:.1f}s", timeout=timeout)
