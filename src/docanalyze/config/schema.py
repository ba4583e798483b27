"""Pydantic models for processing and cache configuration."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, ValidationError

from docanalyze.config import defaults
from docanalyze.errors.exceptions import ConfigurationError
from docanalyze.types import ModelConfig, RetryStrategy, SamplingParams


class ProcessingOptions(BaseModel):
    max_concurrency: int = defaults.DEFAULT_MAX_CONCURRENCY
    batch_size: int = defaults.DEFAULT_BATCH_SIZE
    timeout_seconds: float = defaults.DEFAULT_TIMEOUT_SECONDS
    retry_attempts: int = defaults.DEFAULT_RETRY_ATTEMPTS
    retry_base_delay: float = defaults.DEFAULT_RETRY_BASE_DELAY
    retry_strategy: RetryStrategy = RetryStrategy(defaults.DEFAULT_RETRY_STRATEGY)
    retry_jitter: bool = defaults.DEFAULT_RETRY_JITTER
    batch_delay_seconds: float = defaults.DEFAULT_BATCH_DELAY_SECONDS
    priority_based: bool = defaults.DEFAULT_PRIORITY_BASED
    chunk_threshold: int = defaults.DEFAULT_CHUNK_THRESHOLD
    split_large_documents: bool = defaults.DEFAULT_SPLIT_LARGE_DOCUMENTS
    similarity_enabled: bool = defaults.DEFAULT_SIMILARITY_ENABLED
    similarity_threshold: float = defaults.DEFAULT_SIMILARITY_THRESHOLD

    def validate_bounds(self) -> ProcessingOptions:
        """Raise ConfigurationError for values the scheduler cannot run with."""
        if self.max_concurrency < 1:
            raise ConfigurationError("max_concurrency must be >= 1", field="max_concurrency")
        if self.batch_size < 1:
            raise ConfigurationError("batch_size must be >= 1", field="batch_size")
        if self.timeout_seconds <= 0:
            raise ConfigurationError("timeout_seconds must be > 0", field="timeout_seconds")
        if self.retry_attempts < 0:
            raise ConfigurationError("retry_attempts must be >= 0", field="retry_attempts")
        if self.retry_base_delay < 0:
            raise ConfigurationError("retry_base_delay must be >= 0", field="retry_base_delay")
        if self.batch_delay_seconds < 0:
            raise ConfigurationError(
                "batch_delay_seconds must be >= 0", field="batch_delay_seconds"
            )
        if self.chunk_threshold < 1:
            raise ConfigurationError("chunk_threshold must be >= 1", field="chunk_threshold")
        if not 0.0 <= self.similarity_threshold <= 1.0:
            raise ConfigurationError(
                "similarity_threshold must be within [0, 1]", field="similarity_threshold"
            )
        return self


class CacheOptions(BaseModel):
    enabled: bool = not defaults.DEFAULT_CACHE_DISABLED
    max_entries: int = defaults.DEFAULT_CACHE_MAX_ENTRIES
    max_memory_mb: float = defaults.DEFAULT_CACHE_MAX_MEMORY_MB
    default_ttl_seconds: float = defaults.DEFAULT_CACHE_TTL_SECONDS
    sweep_interval_seconds: float = defaults.DEFAULT_CACHE_SWEEP_INTERVAL_SECONDS
    premium_models: list[str] = Field(
        default_factory=lambda: list(defaults.DEFAULT_PREMIUM_MODELS)
    )

    @property
    def max_bytes(self) -> int:
        return int(self.max_memory_mb * 1024 * 1024)

    def validate_bounds(self) -> CacheOptions:
        if self.max_entries < 1:
            raise ConfigurationError("cache max_entries must be >= 1", field="max_entries")
        if self.max_memory_mb <= 0:
            raise ConfigurationError("cache max_memory_mb must be > 0", field="max_memory_mb")
        if self.default_ttl_seconds <= 0:
            raise ConfigurationError(
                "cache default_ttl_seconds must be > 0", field="default_ttl_seconds"
            )
        if self.sweep_interval_seconds <= 0:
            raise ConfigurationError(
                "cache sweep_interval_seconds must be > 0", field="sweep_interval_seconds"
            )
        return self


def build_processing_options(config: dict[str, Any]) -> ProcessingOptions:
    """Build validated ProcessingOptions from a merged config dict."""
    fields = {k: config[k] for k in ProcessingOptions.model_fields if k in config}
    return _build(ProcessingOptions, fields).validate_bounds()


def build_cache_options(config: dict[str, Any]) -> CacheOptions:
    """Build validated CacheOptions from a merged config dict (``cache_*`` keys)."""
    fields: dict[str, Any] = {}
    if "cache_disabled" in config:
        fields["enabled"] = not config["cache_disabled"]
    mapping = {
        "cache_max_entries": "max_entries",
        "cache_max_memory_mb": "max_memory_mb",
        "cache_ttl_seconds": "default_ttl_seconds",
        "cache_sweep_interval_seconds": "sweep_interval_seconds",
        "premium_models": "premium_models",
    }
    for config_key, field in mapping.items():
        if config_key in config:
            fields[field] = config[config_key]
    return _build(CacheOptions, fields).validate_bounds()


def build_model_config(config: dict[str, Any]) -> ModelConfig:
    sampling = _build(
        SamplingParams,
        {k: config[k] for k in ("temperature", "max_tokens") if k in config},
    )
    return ModelConfig(
        provider=config.get("provider", defaults.DEFAULT_PROVIDER),
        model=config.get("model", defaults.DEFAULT_MODEL),
        sampling=sampling,
    )


def _build(model_cls: type[Any], fields: dict[str, Any]) -> Any:
    try:
        return model_cls(**fields)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid {model_cls.__name__}: {e}") from e
