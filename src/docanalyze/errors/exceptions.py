"""Custom exception hierarchy for docanalyze."""

from __future__ import annotations

from typing import Any


class DocAnalyzeError(Exception):
    """Base exception for all docanalyze errors."""

    error_type = "unknown"

    def __init__(self, message: str = "", **kwargs: Any) -> None:
        super().__init__(message)
        self.message = message


class TransientError(DocAnalyzeError):
    """Remote call failed in a way that is safe to retry.

    Examples: 429 rate limit, 5xx server error, connection error, malformed response.
    """

    def __init__(
        self,
        message: str = "",
        error_type: str = "server_error",
        http_status: int | None = None,
        retry_after: float | None = None,
        original: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.error_type = error_type
        self.http_status = http_status
        self.retry_after = retry_after
        self.original = original


class TaskTimeoutError(TransientError):
    """A single attempt did not finish within its timeout."""

    def __init__(self, message: str = "", timeout: float | None = None) -> None:
        super().__init__(message, error_type="timeout")
        self.timeout = timeout


class TerminalError(DocAnalyzeError):
    """Remote call failed in a way a retry is unlikely to fix.

    Examples: 401 auth failure, 404 model not found, 400 bad input.
    """

    def __init__(
        self,
        message: str = "",
        error_type: str = "auth_failure",
        http_status: int | None = None,
    ) -> None:
        super().__init__(message)
        self.error_type = error_type
        self.http_status = http_status


class ConfigurationError(DocAnalyzeError):
    """Invalid options. Raised at construction time, never mid-run."""

    error_type = "configuration"

    def __init__(self, message: str = "", field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class CacheError(DocAnalyzeError):
    """Cache entry could not be serialized or stored."""

    error_type = "cache"


class RunCancelledError(DocAnalyzeError):
    """The run-level cancellation event fired before the task finished."""

    error_type = "cancelled"


class InvalidTaskError(DocAnalyzeError):
    """The submitted task list cannot be scheduled (e.g. duplicate ids)."""

    error_type = "invalid_task"
