"""Package-level default configuration values."""

from __future__ import annotations

from typing import Any

# Default model settings
DEFAULT_PROVIDER = "openai"
DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 4096

# Default processing settings
DEFAULT_MAX_CONCURRENCY = 3
DEFAULT_BATCH_SIZE = 5
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_RETRY_ATTEMPTS = 2
DEFAULT_RETRY_BASE_DELAY = 1.0
DEFAULT_RETRY_STRATEGY = "exponential"
DEFAULT_RETRY_JITTER = False
DEFAULT_BATCH_DELAY_SECONDS = 1.0
DEFAULT_PRIORITY_BASED = True
DEFAULT_CHUNK_THRESHOLD = 8000
DEFAULT_SPLIT_LARGE_DOCUMENTS = True
DEFAULT_SIMILARITY_ENABLED = False
DEFAULT_SIMILARITY_THRESHOLD = 0.8

# Default cache settings
DEFAULT_CACHE_MAX_ENTRIES = 1000
DEFAULT_CACHE_MAX_MEMORY_MB = 100.0
DEFAULT_CACHE_TTL_SECONDS = 24 * 3600.0
DEFAULT_CACHE_SWEEP_INTERVAL_SECONDS = 3600.0
DEFAULT_CACHE_DISABLED = False
DEFAULT_PREMIUM_MODELS = ["gpt-4", "o1", "claude-3-opus", "gemini-ultra"]

# Log level
DEFAULT_LOG_LEVEL = "WARNING"


def get_defaults() -> dict[str, Any]:
    """Return all defaults as a flat dictionary for merging."""
    return {
        "provider": DEFAULT_PROVIDER,
        "model": DEFAULT_MODEL,
        "temperature": DEFAULT_TEMPERATURE,
        "max_tokens": DEFAULT_MAX_TOKENS,
        "max_concurrency": DEFAULT_MAX_CONCURRENCY,
        "batch_size": DEFAULT_BATCH_SIZE,
        "timeout_seconds": DEFAULT_TIMEOUT_SECONDS,
        "retry_attempts": DEFAULT_RETRY_ATTEMPTS,
        "retry_base_delay": DEFAULT_RETRY_BASE_DELAY,
        "retry_strategy": DEFAULT_RETRY_STRATEGY,
        "retry_jitter": DEFAULT_RETRY_JITTER,
        "batch_delay_seconds": DEFAULT_BATCH_DELAY_SECONDS,
        "priority_based": DEFAULT_PRIORITY_BASED,
        "chunk_threshold": DEFAULT_CHUNK_THRESHOLD,
        "split_large_documents": DEFAULT_SPLIT_LARGE_DOCUMENTS,
        "similarity_enabled": DEFAULT_SIMILARITY_ENABLED,
        "similarity_threshold": DEFAULT_SIMILARITY_THRESHOLD,
        "cache_max_entries": DEFAULT_CACHE_MAX_ENTRIES,
        "cache_max_memory_mb": DEFAULT_CACHE_MAX_MEMORY_MB,
        "cache_ttl_seconds": DEFAULT_CACHE_TTL_SECONDS,
        "cache_sweep_interval_seconds": DEFAULT_CACHE_SWEEP_INTERVAL_SECONDS,
        "cache_disabled": DEFAULT_CACHE_DISABLED,
        "premium_models": list(DEFAULT_PREMIUM_MODELS),
        "log_level": DEFAULT_LOG_LEVEL,
    }
