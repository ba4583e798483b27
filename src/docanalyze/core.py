"""Top-level entry points: DocAnalyzer, analyze_documents(), load_tasks()."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from pathlib import Path
from typing import Any

from docanalyze.cache.keys import hash_content
from docanalyze.cache.store import CacheStore
from docanalyze.config.hierarchy import load_config_hierarchy
from docanalyze.config.schema import (
    CacheOptions,
    ProcessingOptions,
    build_cache_options,
    build_model_config,
    build_processing_options,
)
from docanalyze.processing.scheduler import BatchScheduler, RemoteCompletion
from docanalyze.remote.client import AsyncCompletionClient
from docanalyze.remote.prompt import DEFAULT_TEMPLATE, make_prompt_builder
from docanalyze.types import (
    CompletionResponse,
    DocumentTask,
    ModelConfig,
    ProcessingResult,
    SamplingParams,
)

logger = logging.getLogger(__name__)

SUPPORTED_SUFFIXES = {".txt", ".md", ".markdown", ".rst", ".csv", ".json", ".yaml", ".yml"}


class DocAnalyzer:
    """Composition root: one cache, one scheduler, one remote backend.

    Pass ``remote`` to use any async ``(provider, model, prompt, sampling)``
    callable; otherwise an OpenAI-compatible client is created on first use.
    """

    def __init__(
        self,
        remote: RemoteCompletion | None = None,
        api_key: str | None = None,
        base_url: str | None = None,
        model_config: ModelConfig | None = None,
        options: ProcessingOptions | None = None,
        cache_options: CacheOptions | None = None,
        cache: CacheStore | None = None,
        prompt_template: str = DEFAULT_TEMPLATE,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url
        self._client: AsyncCompletionClient | None = None
        self._remote = remote
        self._cache = cache or CacheStore(cache_options)
        self._scheduler = BatchScheduler(
            self._call_remote,
            model_config=model_config,
            options=options,
            cache=self._cache,
            prompt_builder=make_prompt_builder(prompt_template),
            cache_extra={"template": hash_content(prompt_template)[:12]},
            sleep=sleep,
        )

    @classmethod
    def from_config(
        cls,
        config: dict[str, Any] | None = None,
        remote: RemoteCompletion | None = None,
        **kwargs: Any,
    ) -> DocAnalyzer:
        """Build from a merged config dict (defaults to ``load_config_hierarchy()``)."""
        config = config if config is not None else load_config_hierarchy()
        return cls(
            remote=remote,
            api_key=config.get("api_key"),
            base_url=config.get("base_url"),
            model_config=build_model_config(config),
            options=build_processing_options(config),
            cache_options=build_cache_options(config),
            **kwargs,
        )

    @property
    def cache(self) -> CacheStore:
        return self._cache

    @property
    def scheduler(self) -> BatchScheduler:
        return self._scheduler

    async def process_documents(
        self,
        tasks: list[DocumentTask],
        options: ProcessingOptions | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> ProcessingResult:
        if self._cache.enabled:
            self._cache.start_sweeper()
        return await self._scheduler.process_documents(
            tasks, options=options, cancel_event=cancel_event
        )

    async def close(self) -> None:
        await self._cache.stop_sweeper()
        if self._client:
            await self._client.close()
            self._client = None

    async def __aenter__(self) -> DocAnalyzer:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def _call_remote(
        self,
        provider: str,
        model: str,
        prompt: str,
        sampling: SamplingParams,
    ) -> CompletionResponse:
        if self._remote is not None:
            return await self._remote(provider, model, prompt, sampling)
        return await self._get_client().complete(provider, model, prompt, sampling)

    def _get_client(self) -> AsyncCompletionClient:
        if self._client is None:
            self._client = AsyncCompletionClient(api_key=self._api_key, base_url=self._base_url)
        return self._client


def load_tasks(paths: Iterable[str | Path]) -> list[DocumentTask]:
    """Read text documents into tasks. Directories are expanded one level.

    Empty files are skipped; priority and token estimates are left for the
    scheduler to fill in.
    """
    files: list[Path] = []
    for raw in paths:
        path = Path(raw)
        if path.is_dir():
            files.extend(
                f for f in sorted(path.iterdir())
                if f.is_file() and f.suffix.lower() in SUPPORTED_SUFFIXES
            )
        else:
            files.append(path)

    tasks: list[DocumentTask] = []
    for file in files:
        content = file.read_text(encoding="utf-8", errors="replace")
        if not content.strip():
            logger.warning("Skipping empty document %s", file)
            continue
        tasks.append(DocumentTask(id=file.name, display_name=file.name, content=content))
    return tasks


# ── Module-level convenience functions ──


def analyze_documents(
    tasks: list[DocumentTask],
    remote: RemoteCompletion | None = None,
    config: dict[str, Any] | None = None,
) -> ProcessingResult:
    """Process tasks with a fresh analyzer (sync wrapper)."""

    async def _run() -> ProcessingResult:
        async with DocAnalyzer.from_config(config, remote=remote) as analyzer:
            return await analyzer.process_documents(tasks)

    return asyncio.run(_run())
