"""Cache entry, statistics and snapshot models."""

from __future__ import annotations

import time

from pydantic import BaseModel, Field, computed_field

from docanalyze.types import CompletionResponse

SNAPSHOT_VERSION = "1.0"


class CacheMetadata(BaseModel):
    model: str = ""
    provider: str = ""
    input_tokens: int = 0
    output_tokens: int = 0
    cost: float = 0.0
    content_hash: str = ""


class CacheEntry(BaseModel):
    """A cached completion response."""

    key: str
    payload: CompletionResponse
    created_at: float = Field(default_factory=time.time)
    last_accessed: float = Field(default_factory=time.time)
    ttl_seconds: float = 24 * 3600
    access_count: int = Field(default=0, ge=0)
    metadata: CacheMetadata = Field(default_factory=CacheMetadata)

    @property
    def expires_at(self) -> float:
        return self.created_at + self.ttl_seconds

    def is_expired_at(self, now: float) -> bool:
        return now >= self.expires_at

    @property
    def is_expired(self) -> bool:
        return self.is_expired_at(time.time())


class CacheStats(BaseModel):
    """Aggregate cache statistics."""

    entries: int = 0
    hits: int = 0
    misses: int = 0
    similar_hits: int = 0
    total_bytes: int = 0
    oldest_entry_age: float = 0.0
    newest_entry_age: float = 0.0
    average_access_count: float = 0.0
    estimated_cost_savings: float = 0.0

    @computed_field  # type: ignore[prop-decorator]
    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0


class CacheCounters(BaseModel):
    hits: int = 0
    misses: int = 0
    similar_hits: int = 0
    cost_saved: float = 0.0


class CacheSnapshot(BaseModel):
    """Serializable dump of a cache store, for backup and restore."""

    version: str = SNAPSHOT_VERSION
    exported_at: float = Field(default_factory=time.time)
    counters: CacheCounters = Field(default_factory=CacheCounters)
    entries: list[CacheEntry] = Field(default_factory=list)
