"""Click CLI for docanalyze: batch document analysis with response caching."""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from docanalyze.config.hierarchy import load_config_hierarchy
from docanalyze.errors.exceptions import DocAnalyzeError
from docanalyze.types import CompletionResponse, ProcessingResult

console = Console()
error_console = Console(stderr=True)

_DEFAULT_CACHE_FILE = Path.home() / ".docanalyze" / "cache.json"


def _setup_logging(verbosity: int, default_level: str = "WARNING") -> None:
    """Configure logging based on verbosity level."""
    level = getattr(logging, str(default_level).upper(), logging.WARNING)
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=error_console, show_time=False, show_path=False)],
    )


@click.group()
@click.version_option(package_name="docanalyze")
def cli() -> None:
    """docanalyze: cached, parallel AI analysis of documents."""


@cli.command()
@click.argument("paths", nargs=-1, required=True, type=click.Path(exists=True))
@click.option("--provider", type=str, default=None, help="Completion provider name.")
@click.option("--model", type=str, default=None, help="Model to analyze with.")
@click.option("--concurrency", type=int, default=None, help="Max in-flight remote calls.")
@click.option("--batch-size", type=int, default=None, help="Tasks per batch.")
@click.option("--timeout", type=float, default=None, help="Per-attempt timeout (seconds).")
@click.option("--retries", type=int, default=None, help="Retries after a failed attempt.")
@click.option(
    "--priority/--no-priority", default=None, help="Dispatch high-priority documents first."
)
@click.option("--similarity/--no-similarity", default=None, help="Reuse near-duplicate responses.")
@click.option("--no-cache", is_flag=True, default=False, help="Disable the response cache.")
@click.option(
    "--cache-file",
    type=click.Path(dir_okay=False),
    default=str(_DEFAULT_CACHE_FILE),
    show_default=True,
    help="Cache snapshot loaded before and saved after the run.",
)
@click.option("-o", "--output", type=click.Path(dir_okay=False), help="Write results as JSON.")
@click.option("-v", "--verbose", count=True, help="Increase verbosity (-v info, -vv debug).")
def process(
    paths: tuple[str, ...],
    provider: str | None,
    model: str | None,
    concurrency: int | None,
    batch_size: int | None,
    timeout: float | None,
    retries: int | None,
    priority: bool | None,
    similarity: bool | None,
    no_cache: bool,
    cache_file: str,
    output: str | None,
    verbose: int,
) -> None:
    """Analyze documents under PATHS."""
    from docanalyze.core import DocAnalyzer, load_tasks

    config = load_config_hierarchy(
        provider=provider,
        model=model,
        max_concurrency=concurrency,
        batch_size=batch_size,
        timeout_seconds=timeout,
        retry_attempts=retries,
        priority_based=priority,
        similarity_enabled=similarity,
        cache_disabled=no_cache or None,
    )
    _setup_logging(verbose, config.get("log_level", "WARNING"))

    tasks = load_tasks(paths)
    if not tasks:
        error_console.print("[yellow]No supported documents found.[/yellow]")
        return

    try:
        analyzer = DocAnalyzer.from_config(config)
    except DocAnalyzeError as e:
        error_console.print(f"[red]Configuration error:[/red] {escape(str(e))}")
        sys.exit(2)

    if analyzer.cache.enabled:
        analyzer.cache.load_snapshot(cache_file)

    async def _run():
        try:
            return await analyzer.process_documents(tasks)
        finally:
            await analyzer.close()

    try:
        result = asyncio.run(_run())
    except DocAnalyzeError as e:
        error_console.print(f"[red]Error:[/red] {escape(str(e))}")
        sys.exit(1)

    if analyzer.cache.enabled:
        analyzer.cache.save_snapshot(cache_file)

    if output:
        Path(output).write_text(result.model_dump_json(indent=2), encoding="utf-8")
        console.print(f"[green]Written to {output}[/green]")

    _print_summary(result)
    if result.failed:
        sys.exit(1)


def _print_summary(result: ProcessingResult) -> None:
    """Print a run summary and any failures."""
    table = Table(title="Processing Summary", show_header=True)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Completed", str(len(result.completed)))
    table.add_row("Failed", str(len(result.failed)))
    table.add_row("Cache hits", f"{result.cache.hits} (+{result.cache.similar_hits} similar)")
    table.add_row("Cache misses", str(result.cache.misses))
    table.add_row("Tokens", f"{result.total_tokens:,}")
    table.add_row("Cost", f"${result.total_cost:.4f} (saved ${result.cache.cost_saved:.4f})")
    table.add_row("Elapsed", f"{result.total_elapsed_seconds:.2f}s")
    perf = result.performance
    table.add_row("Throughput", f"{perf.throughput_per_second:.2f} docs/s")
    table.add_row("Avg latency", f"{perf.average_latency:.2f}s")
    table.add_row("Utilization", f"{perf.concurrency_utilization:.0%}")
    console.print(table)

    if result.failed:
        failures = Table(title="Failed Tasks", show_header=True)
        failures.add_column("Task")
        failures.add_column("Type")
        failures.add_column("Retries")
        failures.add_column("Error")
        for failed in result.failed:
            failures.add_row(
                failed.display_name or failed.task_id,
                failed.error_type,
                str(failed.retries_used),
                escape(failed.error),
            )
        console.print(failures)


@cli.command()
@click.argument("paths", nargs=-1, required=True, type=click.Path(exists=True))
@click.option("--batch-size", type=int, default=None, help="Tasks per batch.")
@click.option("--chunk-threshold", type=int, default=None, help="Split documents above this size.")
@click.option(
    "--priority/--no-priority", default=None, help="Dispatch high-priority documents first."
)
def plan(
    paths: tuple[str, ...],
    batch_size: int | None,
    chunk_threshold: int | None,
    priority: bool | None,
) -> None:
    """Show how documents would be prioritized, split and batched."""
    from docanalyze.config.schema import build_processing_options
    from docanalyze.core import load_tasks
    from docanalyze.processing.scheduler import BatchScheduler

    config = load_config_hierarchy(
        batch_size=batch_size,
        chunk_threshold=chunk_threshold,
        priority_based=priority,
    )
    try:
        options = build_processing_options(config)
        scheduler = BatchScheduler(_no_remote, options=options)
        batches = scheduler.plan(load_tasks(paths))
    except DocAnalyzeError as e:
        error_console.print(f"[red]Error:[/red] {escape(str(e))}")
        sys.exit(2)

    table = Table(title="Processing Plan", show_header=True)
    table.add_column("Batch", style="cyan")
    table.add_column("Task")
    table.add_column("Priority")
    table.add_column("Est. tokens")
    for number, batch in enumerate(batches, 1):
        for task in batch:
            table.add_row(str(number), task.name, str(task.priority), f"{task.estimated_tokens:,}")
    console.print(table)


async def _no_remote(*args: object) -> CompletionResponse:
    raise RuntimeError("plan never calls the remote service")


@cli.group()
def cache() -> None:
    """Cache snapshot commands."""


@cache.command("stats")
@click.option(
    "--cache-file",
    type=click.Path(dir_okay=False),
    default=str(_DEFAULT_CACHE_FILE),
    show_default=True,
)
def cache_stats(cache_file: str) -> None:
    """Show statistics for a cache snapshot."""
    from docanalyze.cache.store import CacheStore

    store = CacheStore()
    store.load_snapshot(cache_file)
    stats = store.stats()

    table = Table(title="Cache Statistics", show_header=True)
    table.add_column("Metric", style="cyan")
    table.add_column("Value")
    table.add_row("Entries", str(stats.entries))
    table.add_row("Size (KB)", f"{stats.total_bytes / 1024:.1f}")
    table.add_row("Hits", str(stats.hits))
    table.add_row("Similar hits", str(stats.similar_hits))
    table.add_row("Misses", str(stats.misses))
    table.add_row("Hit rate", f"{stats.hit_rate:.1%}")
    table.add_row("Avg access count", f"{stats.average_access_count:.2f}")
    table.add_row("Oldest entry", f"{stats.oldest_entry_age / 3600:.1f}h")
    table.add_row("Cost saved", f"${stats.estimated_cost_savings:.4f}")
    console.print(table)


@cache.command("clear")
@click.option(
    "--cache-file",
    type=click.Path(dir_okay=False),
    default=str(_DEFAULT_CACHE_FILE),
    show_default=True,
)
@click.confirmation_option(prompt="Are you sure you want to clear the cache?")
def cache_clear(cache_file: str) -> None:
    """Delete a cache snapshot."""
    path = Path(cache_file)
    if path.exists():
        path.unlink()
    console.print("[green]Cache cleared.[/green]")


def main() -> None:
    """Entry point for the CLI."""
    cli()
