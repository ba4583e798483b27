"""Tests for CLI commands."""

import json

import pytest
from click.testing import CliRunner

from docanalyze import core
from docanalyze.cli import cli
from docanalyze.errors.exceptions import TransientError
from docanalyze.types import CompletionResponse, TokenUsage


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def docs(tmp_path):
    folder = tmp_path / "docs"
    folder.mkdir()
    (folder / "README.md").write_text("# Project\nA short overview.")
    (folder / "notes.txt").write_text("Meeting notes. " * 20)
    return folder


@pytest.fixture
def fake_client(monkeypatch):
    """Replace the OpenAI-backed client; returns the list of prompts sent."""
    prompts: list[str] = []
    failing: set[str] = set()

    class FakeClient:
        def __init__(self, api_key=None, base_url=None):
            pass

        async def complete(self, provider, model, prompt, sampling):
            prompts.append(prompt)
            if any(marker in prompt for marker in failing):
                raise TransientError("upstream unavailable")
            return CompletionResponse(
                content="analysis",
                model=model,
                provider=provider,
                usage=TokenUsage(input_tokens=10, output_tokens=5),
                cost=0.001,
            )

        async def close(self):
            pass

    monkeypatch.setattr(core, "AsyncCompletionClient", FakeClient)
    return prompts, failing


class TestCLIGroup:
    def test_help(self, runner):
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "docanalyze" in result.output

    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0


class TestProcessCommand:
    def test_help(self, runner):
        result = runner.invoke(cli, ["process", "--help"])
        assert result.exit_code == 0
        assert "--concurrency" in result.output
        assert "--cache-file" in result.output
        assert "--output" in result.output

    def test_missing_input(self, runner):
        result = runner.invoke(cli, ["process"])
        assert result.exit_code != 0

    def test_nonexistent_path(self, runner):
        result = runner.invoke(cli, ["process", "nonexistent_dir"])
        assert result.exit_code != 0

    def test_process_and_snapshot(self, runner, docs, tmp_path, fake_client):
        prompts, _ = fake_client
        cache_file = tmp_path / "cache.json"
        result = runner.invoke(cli, ["process", str(docs), "--cache-file", str(cache_file)])
        assert result.exit_code == 0, result.output
        assert "Processing Summary" in result.output
        assert len(prompts) == 2
        assert cache_file.exists()

    def test_second_run_uses_snapshot(self, runner, docs, tmp_path, fake_client):
        prompts, _ = fake_client
        args = ["process", str(docs), "--cache-file", str(tmp_path / "cache.json")]
        runner.invoke(cli, args)
        result = runner.invoke(cli, args)
        assert result.exit_code == 0, result.output
        assert len(prompts) == 2

    def test_no_cache(self, runner, docs, tmp_path, fake_client):
        prompts, _ = fake_client
        cache_file = tmp_path / "cache.json"
        args = ["process", str(docs), "--no-cache", "--cache-file", str(cache_file)]
        runner.invoke(cli, args)
        runner.invoke(cli, args)
        assert len(prompts) == 4
        assert not cache_file.exists()

    def test_json_output(self, runner, docs, tmp_path, fake_client):
        out = tmp_path / "result.json"
        result = runner.invoke(
            cli,
            ["process", str(docs), "--cache-file", str(tmp_path / "c.json"), "-o", str(out)],
        )
        assert result.exit_code == 0, result.output
        data = json.loads(out.read_text())
        assert {c["task_id"] for c in data["completed"]} == {"README.md", "notes.txt"}

    def test_failures_exit_nonzero(self, runner, docs, tmp_path, fake_client):
        _, failing = fake_client
        failing.add("Meeting notes")
        result = runner.invoke(
            cli,
            [
                "process",
                str(docs),
                "--retries",
                "0",
                "--cache-file",
                str(tmp_path / "c.json"),
            ],
        )
        assert result.exit_code == 1
        assert "Failed Tasks" in result.output

    def test_invalid_concurrency(self, runner, docs, tmp_path, fake_client):
        result = runner.invoke(
            cli,
            ["process", str(docs), "--concurrency", "0", "--cache-file", str(tmp_path / "c.json")],
        )
        assert result.exit_code == 2
        assert "Configuration error" in result.output

    def test_empty_directory(self, runner, tmp_path, fake_client):
        empty = tmp_path / "empty"
        empty.mkdir()
        result = runner.invoke(cli, ["process", str(empty)])
        assert result.exit_code == 0
        assert "No supported documents" in result.output


class TestPlanCommand:
    def test_shows_plan(self, runner, docs):
        result = runner.invoke(cli, ["plan", str(docs)])
        assert result.exit_code == 0
        assert "Processing Plan" in result.output
        assert result.output.index("README.md") < result.output.index("notes.txt")

    def test_invalid_batch_size(self, runner, docs):
        result = runner.invoke(cli, ["plan", str(docs), "--batch-size", "0"])
        assert result.exit_code == 2


class TestCacheCommands:
    def test_cache_help(self, runner):
        result = runner.invoke(cli, ["cache", "--help"])
        assert result.exit_code == 0
        assert "stats" in result.output
        assert "clear" in result.output

    def test_cache_stats_missing_file(self, runner, tmp_path):
        result = runner.invoke(cli, ["cache", "stats", "--cache-file", str(tmp_path / "none")])
        assert result.exit_code == 0
        assert "Cache Statistics" in result.output

    def test_cache_stats_after_run(self, runner, docs, tmp_path, fake_client):
        cache_file = str(tmp_path / "cache.json")
        runner.invoke(cli, ["process", str(docs), "--cache-file", cache_file])
        result = runner.invoke(cli, ["cache", "stats", "--cache-file", cache_file])
        assert result.exit_code == 0
        assert "Entries" in result.output

    def test_cache_clear_needs_confirmation(self, runner, tmp_path):
        result = runner.invoke(
            cli, ["cache", "clear", "--cache-file", str(tmp_path / "c.json")], input="n\n"
        )
        assert result.exit_code != 0  # Aborted

    def test_cache_clear_with_yes(self, runner, tmp_path):
        cache_file = tmp_path / "cache.json"
        cache_file.write_text("{}")
        result = runner.invoke(cli, ["cache", "clear", "--cache-file", str(cache_file), "--yes"])
        assert result.exit_code == 0
        assert "cleared" in result.output.lower()
        assert not cache_file.exists()
