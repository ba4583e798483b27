"""In-memory response cache with smart TTL and LRU eviction."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import math
import threading
import time
from collections import OrderedDict
from collections.abc import Awaitable, Callable
from pathlib import Path

from pydantic import ValidationError

from docanalyze.cache.stats import (
    CacheCounters,
    CacheEntry,
    CacheMetadata,
    CacheSnapshot,
    CacheStats,
)
from docanalyze.cache.ttl import compute_smart_ttl
from docanalyze.config.schema import CacheOptions
from docanalyze.errors.exceptions import CacheError
from docanalyze.types import CompletionResponse

logger = logging.getLogger(__name__)

# Fraction of capacity that must be free after an eviction pass
_EVICTION_HEADROOM = 0.2


class CacheStore:
    """Thread-safe in-memory cache of completion responses.

    Entries are kept in an OrderedDict in least- to most-recently-used order.
    Every read and write happens under one lock, so access bookkeeping and
    eviction scans never interleave. Callers only ever see deep copies.
    """

    def __init__(
        self,
        options: CacheOptions | None = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._options = (options or CacheOptions()).validate_bounds()
        self._clock = clock
        self._sleep = sleep
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._sizes: dict[str, int] = {}
        self._total_bytes = 0
        self._counters = CacheCounters()
        self._lock = threading.RLock()
        self._sweeper: asyncio.Task[None] | None = None

    @property
    def options(self) -> CacheOptions:
        return self._options

    @property
    def enabled(self) -> bool:
        return self._options.enabled

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    # ── Lookup ──

    def get(self, key: str) -> CacheEntry | None:
        """Return a copy of the live entry for ``key``, or None on a miss."""
        with self._lock:
            entry = self._live_entry(key)
            if entry is None:
                self._counters.misses += 1
                logger.debug("Cache miss: %s", key)
                return None
            self._record_access(key, entry)
            self._counters.hits += 1
            self._counters.cost_saved += entry.metadata.cost
            logger.debug("Cache hit: %s (access #%d)", key, entry.access_count)
            return entry.model_copy(deep=True)

    def record_similar_hit(self, key: str) -> CacheEntry | None:
        """Mark a live entry as reused through a similarity match."""
        with self._lock:
            entry = self._live_entry(key)
            if entry is None:
                return None
            self._record_access(key, entry)
            self._counters.similar_hits += 1
            self._counters.cost_saved += entry.metadata.cost
            return entry.model_copy(deep=True)

    def live_digests(self, model: str, provider: str) -> list[tuple[str, str]]:
        """Return (key, content_hash) for every live entry of one model/provider."""
        now = self._clock()
        with self._lock:
            return [
                (key, entry.metadata.content_hash)
                for key, entry in self._entries.items()
                if entry.metadata.model == model
                and entry.metadata.provider == provider
                and entry.metadata.content_hash
                and not entry.is_expired_at(now)
            ]

    # ── Mutation ──

    def set(
        self,
        key: str,
        payload: CompletionResponse,
        metadata: CacheMetadata,
        ttl: float | None = None,
    ) -> None:
        """Store a response. Failures are logged and leave the cache unchanged."""
        if not self.enabled:
            return
        try:
            self._set(key, payload, metadata, ttl)
        except CacheError as e:
            logger.warning("Cache write skipped for %s: %s", key, e)

    def _set(
        self,
        key: str,
        payload: CompletionResponse,
        metadata: CacheMetadata,
        ttl: float | None,
    ) -> None:
        if ttl is None:
            ttl = compute_smart_ttl(
                metadata.input_tokens,
                metadata.output_tokens,
                metadata.cost,
                metadata.model,
                base_ttl=self._options.default_ttl_seconds,
                premium_models=self._options.premium_models,
            )
        now = self._clock()
        try:
            entry = CacheEntry(
                key=key,
                payload=payload.model_copy(deep=True),
                created_at=now,
                last_accessed=now,
                ttl_seconds=ttl,
                metadata=metadata.model_copy(),
            )
        except (TypeError, ValueError) as e:
            raise CacheError(f"payload cannot be copied: {e}") from e
        size = _entry_size(entry)
        if size > self._options.max_bytes:
            raise CacheError(
                f"entry is {size} bytes, larger than the {self._options.max_bytes} byte budget"
            )

        with self._lock:
            self._remove(key)
            self._ensure_capacity(size)
            self._entries[key] = entry
            self._sizes[key] = size
            self._total_bytes += size

        logger.debug(
            "Cache set: %s (ttl %.0fs, tokens %d+%d, cost $%.4f)",
            key,
            ttl,
            metadata.input_tokens,
            metadata.output_tokens,
            metadata.cost,
        )

    def invalidate(self, pattern: str | None = None) -> int:
        """Remove entries whose key or model contains ``pattern`` (all if None)."""
        with self._lock:
            if not pattern:
                removed = len(self._entries)
                self._clear()
            else:
                keys = [
                    key
                    for key, entry in self._entries.items()
                    if pattern in key or pattern in entry.metadata.model
                ]
                for key in keys:
                    self._remove(key)
                removed = len(keys)
        logger.info("Cache invalidated: %d entries removed", removed)
        return removed

    def sweep_expired(self) -> int:
        """Remove every entry whose TTL has elapsed."""
        now = self._clock()
        with self._lock:
            expired = [key for key, e in self._entries.items() if e.is_expired_at(now)]
            for key in expired:
                self._remove(key)
        if expired:
            logger.info("Swept %d expired cache entries", len(expired))
        return len(expired)

    def clear(self) -> None:
        """Drop all entries and reset counters."""
        with self._lock:
            self._clear()
            self._counters = CacheCounters()

    def reset_stats(self) -> None:
        with self._lock:
            self._counters = CacheCounters()

    # ── Reporting ──

    def stats(self) -> CacheStats:
        now = self._clock()
        with self._lock:
            entries = list(self._entries.values())
            counters = self._counters.model_copy()
            total_bytes = self._total_bytes

        created = [e.created_at for e in entries]
        return CacheStats(
            entries=len(entries),
            hits=counters.hits,
            misses=counters.misses,
            similar_hits=counters.similar_hits,
            total_bytes=total_bytes,
            oldest_entry_age=now - min(created) if created else 0.0,
            newest_entry_age=now - max(created) if created else 0.0,
            average_access_count=(
                sum(e.access_count for e in entries) / len(entries) if entries else 0.0
            ),
            estimated_cost_savings=counters.cost_saved,
        )

    # ── Snapshots ──

    def export_snapshot(self) -> CacheSnapshot:
        with self._lock:
            return CacheSnapshot(
                exported_at=self._clock(),
                counters=self._counters.model_copy(),
                entries=[e.model_copy(deep=True) for e in self._entries.values()],
            )

    def import_snapshot(self, snapshot: CacheSnapshot) -> int:
        """Replace the cache contents with a snapshot. Returns entries loaded.

        Expired entries are skipped; capacity limits still apply.
        """
        now = self._clock()
        live = sorted(
            (e for e in snapshot.entries if not e.is_expired_at(now)),
            key=lambda e: e.last_accessed,
        )
        with self._lock:
            self._clear()
            self._counters = CacheCounters(
                hits=self._counters.hits + snapshot.counters.hits,
                misses=self._counters.misses + snapshot.counters.misses,
                similar_hits=self._counters.similar_hits + snapshot.counters.similar_hits,
                cost_saved=self._counters.cost_saved + snapshot.counters.cost_saved,
            )
            for entry in live:
                size = _entry_size(entry)
                self._ensure_capacity(size)
                self._entries[entry.key] = entry.model_copy(deep=True)
                self._sizes[entry.key] = size
                self._total_bytes += size
            loaded = len(self._entries)
        logger.info(
            "Imported %d cache entries (%d expired skipped)",
            loaded,
            len(snapshot.entries) - len(live),
        )
        return loaded

    def save_snapshot(self, path: str | Path) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.export_snapshot().model_dump_json(), encoding="utf-8")
        logger.info("Cache snapshot written to %s", path)
        return path

    def load_snapshot(self, path: str | Path) -> int:
        """Load a snapshot file. A missing or unreadable file loads nothing."""
        path = Path(path)
        if not path.exists():
            return 0
        try:
            snapshot = CacheSnapshot.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            logger.warning("Ignoring unreadable cache snapshot %s: %s", path, e)
            return 0
        return self.import_snapshot(snapshot)

    # ── Background sweep ──

    def start_sweeper(self) -> asyncio.Task[None]:
        """Start the periodic expiry sweep on the running event loop."""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.get_running_loop().create_task(self._sweep_loop())
        return self._sweeper

    async def stop_sweeper(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._sweeper
        self._sweeper = None

    async def _sweep_loop(self) -> None:
        interval = self._options.sweep_interval_seconds
        logger.debug("Cache sweeper started (every %.0fs)", interval)
        while True:
            await self._sleep(interval)
            self.sweep_expired()

    # ── Internals (caller holds the lock) ──

    def _live_entry(self, key: str) -> CacheEntry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_expired_at(self._clock()):
            self._remove(key)
            logger.debug("Cache entry expired: %s", key)
            return None
        return entry

    def _record_access(self, key: str, entry: CacheEntry) -> None:
        entry.access_count += 1
        entry.last_accessed = max(self._clock(), entry.created_at)
        self._entries.move_to_end(key)

    def _ensure_capacity(self, incoming_bytes: int) -> None:
        max_entries = self._options.max_entries
        max_bytes = self._options.max_bytes
        over_count = len(self._entries) + 1 > max_entries
        over_bytes = self._total_bytes + incoming_bytes > max_bytes
        if not (over_count or over_bytes):
            return

        # Free at least 20% of capacity so the next inserts don't evict again
        target_count = max_entries - max(1, math.ceil(max_entries * _EVICTION_HEADROOM))
        target_bytes = max_bytes * (1 - _EVICTION_HEADROOM)
        evicted = 0
        while self._entries and (
            (over_count and len(self._entries) > target_count)
            or (over_bytes and self._total_bytes + incoming_bytes > target_bytes)
        ):
            key = next(iter(self._entries))
            self._remove(key)
            evicted += 1
        logger.info("LRU eviction removed %d cache entries", evicted)

    def _remove(self, key: str) -> None:
        if self._entries.pop(key, None) is not None:
            self._total_bytes -= self._sizes.pop(key, 0)

    def _clear(self) -> None:
        self._entries.clear()
        self._sizes.clear()
        self._total_bytes = 0


def _entry_size(entry: CacheEntry) -> int:
    """Approximate in-memory footprint: the entry's JSON size in bytes."""
    try:
        return len(entry.model_dump_json().encode("utf-8"))
    except (TypeError, ValueError) as e:
        raise CacheError(f"entry is not serializable: {e}") from e
