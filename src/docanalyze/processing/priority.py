"""Task preparation: priority heuristics, token estimates, chunking."""

from __future__ import annotations

import logging
import math

from docanalyze.types import DocumentTask

logger = logging.getLogger(__name__)

# Checked in order; first keyword found in the lowercased name wins
_NAME_PRIORITIES: list[tuple[tuple[str, ...], int]] = [
    (("readme", "overview"), 1),
    (("plan", "spec", "requirement", "needs"), 2),
    (("design", "architecture", "technical", "detail"), 3),
]

# (exclusive upper bound on content length, priority)
_LENGTH_PRIORITIES: list[tuple[int, int]] = [
    (1000, 2),
    (5000, 3),
    (10000, 4),
]
_LOWEST_PRIORITY = 5

_CHARS_PER_TOKEN = 3


def calculate_priority(display_name: str, content: str) -> int:
    """Guess a priority (1 highest, 5 lowest) from the file name and length."""
    name = display_name.lower()
    for keywords, priority in _NAME_PRIORITIES:
        if any(keyword in name for keyword in keywords):
            return priority

    length = len(content)
    for bound, priority in _LENGTH_PRIORITIES:
        if length < bound:
            return priority
    return _LOWEST_PRIORITY


def estimate_tokens(content: str) -> int:
    """Rough token count: the larger of word count and chars / 3."""
    words = len(content.split())
    return max(words, math.ceil(len(content) / _CHARS_PER_TOKEN))


def split_large_document(task: DocumentTask, max_chunk_size: int = 8000) -> list[DocumentTask]:
    """Split a task's content into ordered chunks of at most ``max_chunk_size`` chars.

    Chunks inherit the parent's priority and carry ``parent_id`` so results
    can be recombined by the caller. Tasks within the limit are returned as-is.
    """
    if max_chunk_size < 1:
        raise ValueError("max_chunk_size must be >= 1")
    content = task.content
    if len(content) <= max_chunk_size:
        return [task]

    total = math.ceil(len(content) / max_chunk_size)
    chunks: list[DocumentTask] = []
    for i in range(total):
        piece = content[i * max_chunk_size : (i + 1) * max_chunk_size]
        chunks.append(
            DocumentTask(
                id=f"{task.id}_chunk_{i + 1}",
                display_name=f"{task.name} ({i + 1}/{total})",
                content=piece,
                priority=task.priority,
                estimated_tokens=estimate_tokens(piece),
                parent_id=task.id,
                chunk_index=i,
                chunk_count=total,
            )
        )

    logger.info("Split %s into %d chunks", task.name, total)
    return chunks


def prepare_tasks(
    tasks: list[DocumentTask],
    chunk_threshold: int,
    split_large: bool = True,
) -> list[DocumentTask]:
    """Fill in missing priorities and token estimates, then split oversized tasks."""
    prepared: list[DocumentTask] = []
    for task in tasks:
        updates: dict[str, int] = {}
        if task.priority is None:
            updates["priority"] = calculate_priority(task.name, task.content)
        if task.estimated_tokens is None:
            updates["estimated_tokens"] = estimate_tokens(task.content)
        if updates:
            task = task.model_copy(update=updates)
        if split_large:
            prepared.extend(split_large_document(task, chunk_threshold))
        else:
            prepared.append(task)
    return prepared


def create_batches(tasks: list[DocumentTask], batch_size: int) -> list[list[DocumentTask]]:
    return [tasks[i : i + batch_size] for i in range(0, len(tasks), batch_size)]
