"""Cache subsystem: in-memory response cache with smart TTL and fuzzy lookup."""

from docanalyze.cache.keys import build_cache_key, hash_content
from docanalyze.cache.similarity import SimilarityIndex, SimilarMatch
from docanalyze.cache.stats import CacheEntry, CacheMetadata, CacheSnapshot, CacheStats
from docanalyze.cache.store import CacheStore
from docanalyze.cache.ttl import compute_smart_ttl

__all__ = [
    "CacheEntry",
    "CacheMetadata",
    "CacheSnapshot",
    "CacheStats",
    "CacheStore",
    "SimilarMatch",
    "SimilarityIndex",
    "build_cache_key",
    "compute_smart_ttl",
    "hash_content",
]
