"""Configuration: defaults, layered loading and validated option models."""

from docanalyze.config.hierarchy import load_config_hierarchy
from docanalyze.config.schema import (
    CacheOptions,
    ProcessingOptions,
    build_cache_options,
    build_model_config,
    build_processing_options,
)

__all__ = [
    "CacheOptions",
    "ProcessingOptions",
    "build_cache_options",
    "build_model_config",
    "build_processing_options",
    "load_config_hierarchy",
]
