"""Secondary near-duplicate lookup over live cache entries."""

from __future__ import annotations

import logging

from pydantic import BaseModel

from docanalyze.cache.keys import hash_content
from docanalyze.cache.store import CacheStore
from docanalyze.types import CompletionResponse

logger = logging.getLogger(__name__)


class SimilarMatch(BaseModel):
    key: str
    payload: CompletionResponse
    similarity: float


class SimilarityIndex:
    """Linear scan of a CacheStore for a near-duplicate of new content.

    Only consulted after an exact-key miss. The score compares content digests
    position by position, so it is a cheap placeholder rather than semantic
    similarity; swap ``score`` for an embedding comparison without changing
    ``find_similar``.
    """

    def __init__(self, store: CacheStore) -> None:
        self._store = store

    def find_similar(
        self,
        content: str,
        model: str,
        provider: str,
        threshold: float = 0.8,
    ) -> SimilarMatch | None:
        """Return the best live same-model/provider match at or above ``threshold``."""
        if not self._store.enabled:
            return None
        digest = hash_content(content)

        best_key: str | None = None
        best_score = 0.0
        for key, candidate in self._store.live_digests(model, provider):
            score = self.score(digest, candidate)
            if score >= threshold and score > best_score:
                best_key, best_score = key, score

        if best_key is None:
            return None

        # The entry may have expired or been evicted since the scan
        entry = self._store.record_similar_hit(best_key)
        if entry is None:
            return None
        logger.info("Similar cache entry found: %s (similarity %.1f%%)", best_key, best_score * 100)
        return SimilarMatch(key=best_key, payload=entry.payload, similarity=best_score)

    @staticmethod
    def score(digest_a: str, digest_b: str) -> float:
        """Character-position agreement normalized by the longer digest."""
        if digest_a == digest_b:
            return 1.0
        longest = max(len(digest_a), len(digest_b))
        if longest == 0:
            return 0.0
        matches = sum(1 for a, b in zip(digest_a, digest_b) if a == b)
        return matches / longest
