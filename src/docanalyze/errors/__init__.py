"""Error handling: exception hierarchy and retry helpers."""

from docanalyze.errors.exceptions import (
    CacheError,
    ConfigurationError,
    DocAnalyzeError,
    InvalidTaskError,
    RunCancelledError,
    TaskTimeoutError,
    TerminalError,
    TransientError,
)

__all__ = [
    "DocAnalyzeError",
    "TransientError",
    "TaskTimeoutError",
    "TerminalError",
    "ConfigurationError",
    "CacheError",
    "RunCancelledError",
    "InvalidTaskError",
]
