"""Retry helpers: error classification and backoff computation."""

from __future__ import annotations

import contextlib
import random

import openai

from docanalyze.errors.exceptions import (
    DocAnalyzeError,
    TerminalError,
    TransientError,
)
from docanalyze.types import RetryStrategy

MAX_WAIT = 60.0  # seconds


def classify_openai_error(exc: Exception) -> DocAnalyzeError:
    """Convert an openai exception to our exception hierarchy."""
    if isinstance(exc, openai.RateLimitError):
        retry_after = None
        if hasattr(exc, "response") and exc.response:
            retry_after_str = exc.response.headers.get("retry-after")
            if retry_after_str:
                with contextlib.suppress(ValueError):
                    retry_after = float(retry_after_str)
        return TransientError(
            str(exc),
            error_type="rate_limit",
            http_status=429,
            retry_after=retry_after,
            original=exc,
        )
    if isinstance(exc, openai.InternalServerError):
        status = getattr(exc, "status_code", 500)
        return TransientError(
            str(exc),
            error_type="server_error",
            http_status=status,
            original=exc,
        )
    if isinstance(exc, (openai.APIConnectionError, openai.APITimeoutError)):
        return TransientError(str(exc), error_type="connection", original=exc)
    if isinstance(exc, openai.AuthenticationError):
        return TerminalError(str(exc), error_type="auth_failure", http_status=401)
    if isinstance(exc, openai.NotFoundError):
        return TerminalError(str(exc), error_type="model_not_found", http_status=404)
    if isinstance(exc, openai.BadRequestError):
        return TerminalError(str(exc), error_type="bad_input", http_status=400)
    return TerminalError(str(exc), error_type="unknown")


def compute_wait(
    attempt: int,
    strategy: RetryStrategy = RetryStrategy.EXPONENTIAL,
    initial_wait: float = 1.0,
    jitter: bool = False,
) -> float:
    """Compute the wait before retrying after the given 1-based attempt.

    Exponential: ``initial_wait * 2 ** (attempt - 1)``.
    """
    exponent = max(attempt - 1, 0)
    if strategy == RetryStrategy.EXPONENTIAL:
        wait = initial_wait * (2**exponent)
    elif strategy == RetryStrategy.LINEAR:
        wait = initial_wait * (exponent + 1)
    else:  # FIXED
        wait = initial_wait

    if jitter:
        wait += random.uniform(0, wait * 0.25)

    return min(wait, MAX_WAIT)


def describe_error(exc: BaseException) -> tuple[str, str]:
    """Return (message, error_type) for reporting a failed task."""
    error_type = getattr(exc, "error_type", None) or type(exc).__name__
    message = str(exc) or type(exc).__name__
    return message, error_type
