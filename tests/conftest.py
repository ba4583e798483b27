import asyncio
import os

import pytest

from docanalyze.errors.exceptions import TransientError
from docanalyze.types import CompletionResponse, DocumentTask, TokenUsage


class FakeClock:
    """Manually advanced wall clock."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Async sleep stand-in that records requested delays and only yields."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        await asyncio.sleep(0)


class StubRemote:
    """Remote completion stub.

    ``failures`` maps a prompt substring to how many times calls whose prompt
    contains it should fail before succeeding.
    """

    def __init__(self, failures=None, delay: float = 0.0, cost: float = 0.001):
        self.failures = dict(failures or {})
        self.delay = delay
        self.cost = cost
        self.calls: list[str] = []
        self.active = 0
        self.max_active = 0

    async def __call__(self, provider, model, prompt, sampling):
        self.calls.append(prompt)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delay)
            for marker, remaining in self.failures.items():
                if marker in prompt and remaining > 0:
                    self.failures[marker] = remaining - 1
                    raise TransientError(f"stub failure for {marker}")
            return CompletionResponse(
                content=f"analysis: {prompt[:30]}",
                model=model,
                provider=provider,
                usage=TokenUsage(input_tokens=100, output_tokens=50),
                cost=self.cost,
            )
        finally:
            self.active -= 1


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def stub_remote():
    return StubRemote()


@pytest.fixture
def make_remote():
    """Factory for StubRemote with custom failures, delay or cost."""
    return StubRemote


@pytest.fixture
def make_tasks():
    """Factory for ``n`` small tasks with distinct content."""

    def _make(n: int, **kwargs) -> list[DocumentTask]:
        return [
            DocumentTask(id=f"task-{i}", content=f"Document body number {i:03d}", **kwargs)
            for i in range(1, n + 1)
        ]

    return _make


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep user/project config files and DOCANALYZE_* env out of tests."""
    from docanalyze.config import hierarchy

    monkeypatch.setattr(hierarchy, "_GLOBAL_CONFIG_PATH", tmp_path / "no-global.yaml")
    monkeypatch.chdir(tmp_path)
    for key in list(os.environ):
        if key.startswith("DOCANALYZE_") or key in ("OPENAI_API_KEY", "OPENAI_BASE_URL"):
            monkeypatch.delenv(key, raising=False)
