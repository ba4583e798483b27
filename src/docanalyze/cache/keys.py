"""Cache key generation: content-addressed, model- and parameter-aware."""

from __future__ import annotations

import hashlib
import json
from typing import Any

from pydantic import BaseModel

_KEY_HASH_CHARS = 16


def build_cache_key(
    content: str,
    model: str,
    provider: str,
    sampling: BaseModel | dict[str, Any] | None = None,
    extra: dict[str, Any] | None = None,
) -> str:
    """Derive a stable cache key for a completion request.

    The key is ``{provider}_{model}_{hash}`` where the hash is the first 16 hex
    chars of a SHA256 over a sorted-JSON serialization of every input. Changing
    the model, provider, any sampling parameter or any extra parameter changes
    the key even for identical content.
    """
    if isinstance(sampling, BaseModel):
        sampling = sampling.model_dump()
    payload = {
        "content": normalize_content(content),
        "model": model,
        "provider": provider,
        "sampling": sampling or {},
        "extra": extra or {},
    }
    serialized = json.dumps(payload, sort_keys=True, default=str, ensure_ascii=False)
    digest = hashlib.sha256(serialized.encode("utf-8")).hexdigest()
    return f"{provider}_{model}_{digest[:_KEY_HASH_CHARS]}"


def hash_content(content: str) -> str:
    """Digest of request content, stored on entries for similarity lookups."""
    normalized = normalize_content(content)
    return hashlib.md5(normalized.encode("utf-8"), usedforsecurity=False).hexdigest()


def normalize_content(content: str) -> str:
    """Unify line endings and strip surrounding whitespace."""
    return content.replace("\r\n", "\n").replace("\r", "\n").strip()
