"""Configuration hierarchy: merges sources in priority order.

Precedence (later overrides earlier):
  1. Package defaults
  2. Global config   (~/.docanalyze/config.yaml)
  3. Project config  (./docanalyze.yaml, searched upward)
  4. Environment variables (OPENAI_API_KEY, DOCANALYZE_*)
  5. Runtime arguments
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml

from docanalyze.config.defaults import get_defaults

logger = logging.getLogger(__name__)

_GLOBAL_CONFIG_PATH = Path.home() / ".docanalyze" / "config.yaml"
_PROJECT_CONFIG_NAME = "docanalyze.yaml"

_ENV_MAP: dict[str, str] = {
    "OPENAI_API_KEY": "api_key",
    "OPENAI_BASE_URL": "base_url",
    "DOCANALYZE_PROVIDER": "provider",
    "DOCANALYZE_MODEL": "model",
    "DOCANALYZE_TEMPERATURE": "temperature",
    "DOCANALYZE_MAX_CONCURRENCY": "max_concurrency",
    "DOCANALYZE_BATCH_SIZE": "batch_size",
    "DOCANALYZE_TIMEOUT_SECONDS": "timeout_seconds",
    "DOCANALYZE_RETRY_ATTEMPTS": "retry_attempts",
    "DOCANALYZE_RETRY_BASE_DELAY": "retry_base_delay",
    "DOCANALYZE_RETRY_STRATEGY": "retry_strategy",
    "DOCANALYZE_RETRY_JITTER": "retry_jitter",
    "DOCANALYZE_BATCH_DELAY_SECONDS": "batch_delay_seconds",
    "DOCANALYZE_PRIORITY_BASED": "priority_based",
    "DOCANALYZE_CHUNK_THRESHOLD": "chunk_threshold",
    "DOCANALYZE_SIMILARITY_ENABLED": "similarity_enabled",
    "DOCANALYZE_SIMILARITY_THRESHOLD": "similarity_threshold",
    "DOCANALYZE_CACHE_DISABLED": "cache_disabled",
    "DOCANALYZE_CACHE_MAX_ENTRIES": "cache_max_entries",
    "DOCANALYZE_CACHE_MAX_MEMORY_MB": "cache_max_memory_mb",
    "DOCANALYZE_CACHE_TTL_SECONDS": "cache_ttl_seconds",
    "DOCANALYZE_CACHE_SWEEP_INTERVAL_SECONDS": "cache_sweep_interval_seconds",
    "DOCANALYZE_PREMIUM_MODELS": "premium_models",
    "DOCANALYZE_LOG_LEVEL": "log_level",
}

# Keys that should be parsed as specific types
_TYPE_MAP: dict[str, type] = {
    "temperature": float,
    "max_tokens": int,
    "max_concurrency": int,
    "batch_size": int,
    "timeout_seconds": float,
    "retry_attempts": int,
    "retry_base_delay": float,
    "batch_delay_seconds": float,
    "chunk_threshold": int,
    "similarity_threshold": float,
    "cache_max_entries": int,
    "cache_max_memory_mb": float,
    "cache_ttl_seconds": float,
    "cache_sweep_interval_seconds": float,
}

_BOOL_KEYS = {"priority_based", "split_large_documents", "similarity_enabled", "retry_jitter"}
_LIST_KEYS = {"premium_models"}

_TRUTHY = {"1", "true", "yes", "on"}


def load_config_hierarchy(**runtime_overrides: Any) -> dict[str, Any]:
    """Load and merge configuration from all sources.

    Returns a merged dict with the final resolved values.
    """
    config = get_defaults()

    global_cfg = _load_yaml_config(_GLOBAL_CONFIG_PATH)
    if global_cfg:
        config.update(global_cfg)

    project_path = _find_project_config()
    if project_path:
        project_cfg = _load_yaml_config(project_path)
        if project_cfg:
            config.update(project_cfg)

    config.update(_load_env_vars())

    # Only override when explicitly set
    for key, value in runtime_overrides.items():
        if value is not None:
            config[key] = value

    return config


def _load_yaml_config(path: Path) -> dict[str, Any] | None:
    """Load a YAML config file if it exists."""
    if not path.exists() or not path.is_file():
        return None
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
        if isinstance(data, dict):
            return data
        logger.warning("Config file %s is not a mapping, ignoring", path)
    except (OSError, yaml.YAMLError) as e:
        logger.warning("Failed to load config %s: %s", path, e)
    return None


def _find_project_config() -> Path | None:
    """Search for docanalyze.yaml from cwd upward."""
    cwd = Path.cwd()
    for parent in [cwd, *cwd.parents]:
        candidate = parent / _PROJECT_CONFIG_NAME
        if candidate.exists():
            return candidate
    return None


def _load_env_vars() -> dict[str, Any]:
    result: dict[str, Any] = {}
    for env_key, config_key in _ENV_MAP.items():
        value = os.environ.get(env_key)
        if value is None:
            continue
        result[config_key] = _coerce_env_value(config_key, value)
    return result


def _coerce_env_value(key: str, value: str) -> Any:
    """Coerce an environment variable string to the appropriate type."""
    if key.endswith("_disabled") or key in _BOOL_KEYS:
        return value.lower() in _TRUTHY

    if key in _LIST_KEYS:
        return [item.strip() for item in value.split(",") if item.strip()]

    target_type = _TYPE_MAP.get(key)
    if target_type:
        try:
            return target_type(value)
        except (ValueError, TypeError):
            logger.warning(
                "Cannot convert env var for '%s' to %s: %s", key, target_type.__name__, value
            )
            return value

    return value
