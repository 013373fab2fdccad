"""Typer CLI entrypoint for catalog-crawler."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional, Sequence

import typer
from rich import box
from rich.console import Console
from rich.table import Table

from .config import ConfigRepository, CrawlerConfig
from .engine import (
    BatchResult,
    BatchScheduler,
    ExtractedRecord,
    FetchCoordinator,
    FetchRequest,
    HealthSnapshot,
    ListingResult,
    RetryPolicy,
    TargetKind,
    ThreadPoolManager,
    build_extractor,
)
from .engine.exporter import build_exporter
from .errors import CrawlerError
from .infra import SQLiteJobStore, SQLiteManager
from .logging_conf import component_logger, configure_logging, log_dir, tail_log
from .ui import BatchProgress

app = typer.Typer(help="catalog-crawler command line", no_args_is_help=True, rich_markup_mode=None)
log_app = typer.Typer(name="log", help="Read log files", no_args_is_help=True)

console = Console()


@dataclass
class AppState:
    repository: ConfigRepository
    config: CrawlerConfig
    coordinator: FetchCoordinator
    scheduler: BatchScheduler
    storage: SQLiteManager


def build_state(verbose: bool) -> AppState:
    repository = ConfigRepository()
    config = repository.load_config()
    configure_logging(verbose=verbose)
    storage = SQLiteManager()
    store = SQLiteJobStore(storage, repository.jobs_db_path())
    thread_pool = ThreadPoolManager(config.extraction.workers)
    coordinator = FetchCoordinator.from_config(
        config,
        store,
        extractor=build_extractor(config.extraction),
        thread_pool=thread_pool,
        logger=component_logger("coordinator"),
    )
    scheduler = BatchScheduler(
        coordinator,
        thread_pool=thread_pool,
        default_concurrency=config.batch.concurrency,
        default_delay=config.batch.delay_ms / 1000,
        logger=component_logger("batch"),
    )
    return AppState(
        repository=repository,
        config=config,
        coordinator=coordinator,
        scheduler=scheduler,
        storage=storage,
    )


def _get_state(ctx: typer.Context) -> AppState:
    state = ctx.obj
    if state is None:
        state = build_state(verbose=False)
        ctx.obj = state
    return state


@contextmanager
def _crawler_errors() -> Iterator[None]:
    try:
        yield
    except CrawlerError as exc:
        console.print(f"{exc.__class__.__name__}: {exc}", style="red")
        raise typer.Exit(code=1) from exc


def _export(state: AppState, name: str, fmt: Optional[str], records: Sequence[ExtractedRecord]) -> None:
    if not fmt:
        return
    try:
        exporter = build_exporter(state.repository.outputs_path(), name, fmt)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--output") from exc
    with exporter:
        rows = sum(exporter.export_record(record) for record in records)
    target = getattr(exporter, "path", None)
    console.print(f"Exported {rows} rows" + (f" to {target}" if target else ""), style="green")


def _read_batch_file(path: Path, kind: TargetKind) -> list[FetchRequest]:
    """Parse one ``URL [SOURCE_ID]`` per line; blank lines and ``#`` comments are skipped."""

    requests: list[FetchRequest] = []
    for line in path.read_text(encoding="utf-8").splitlines():
        text = line.strip()
        if not text or text.startswith("#"):
            continue
        parts = text.split(maxsplit=1)
        requests.append(
            FetchRequest(url=parts[0], kind=kind, source_id=parts[1].strip() if len(parts) > 1 else None)
        )
    return requests


def _render_batch(result: BatchResult) -> Table:
    table = Table(title=f"Batch · {result.total} items", box=box.SIMPLE_HEAD)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Succeeded", str(result.success_count))
    table.add_row("Failed", str(result.failure_count))
    table.add_row("Success rate", result.success_rate)
    table.add_row("Duration", f"{result.duration_ms} ms")
    if result.cancelled:
        table.add_row("Cancelled", "yes")
    return table


def _render_health(snapshot: HealthSnapshot, include_cache: bool) -> Table:
    style = "green" if snapshot.status == "healthy" else "yellow"
    table = Table(title=f"Health · {snapshot.status}", box=box.SIMPLE_HEAD, title_style=style)
    table.add_column("Metric", style="cyan")
    table.add_column("Value")
    table.add_row("Pending jobs", str(snapshot.pending_jobs))
    table.add_row("Completed (24h)", str(snapshot.completed_jobs_last_24h))
    table.add_row("Failed (24h)", str(snapshot.failed_jobs_last_24h))
    table.add_row("Avg duration", f"{snapshot.avg_duration_ms:.2f} ms")
    if include_cache:
        # the cache lives in this process only
        table.add_row("Cache hit rate", f"{snapshot.cache_hit_rate:.2f}%")
        table.add_row("Cache size", str(snapshot.cache_size))
    table.add_row("Checked at", snapshot.last_check.isoformat())
    return table


app.add_typer(log_app, name="log")


@app.callback()
def main(
    ctx: typer.Context, verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging")
) -> None:
    if ctx.obj is None:
        ctx.obj = build_state(verbose)


@app.command("navigation", help="Fetch the site navigation.")
def navigation(
    ctx: typer.Context,
    site_url: Optional[str] = typer.Option(None, "--site-url", help="Override the configured site URL."),
    output: Optional[str] = typer.Option(None, "--output", help="Export format: jsonl, csv or sqlite."),
) -> None:
    state = _get_state(ctx)
    with _crawler_errors():
        record = state.coordinator.fetch(site_url or state.config.site_url, TargetKind.NAVIGATION)
    table = Table(title=f"Navigation · {record.result_count} links", box=box.SIMPLE_HEAD)
    table.add_column("Title", style="cyan")
    table.add_column("URL", overflow="fold")
    for item in record.items:
        table.add_row(item.title, item.url)
    console.print(table)
    _export(state, "navigation", output, [record])


@app.command("category", help="Fetch the product listing of a category page.")
def category(
    ctx: typer.Context,
    url: str = typer.Argument(..., help="Category page URL."),
    title: str = typer.Option("", "--title", help="Category title shown in the output."),
    output: Optional[str] = typer.Option(None, "--output", help="Export format: jsonl, csv or sqlite."),
) -> None:
    state = _get_state(ctx)
    with _crawler_errors():
        page = state.coordinator.fetch_category(url, title or url)
    table = Table(title=f"{page.title} · {page.count} products", box=box.SIMPLE_HEAD)
    table.add_column("Title", style="cyan", overflow="fold")
    table.add_column("Author", style="magenta")
    table.add_column("Price", style="green")
    table.add_column("URL", overflow="fold")
    for product in page.products:
        table.add_row(product.title or "-", product.author or "-", product.price or "-", product.url or "-")
    console.print(table)
    _export(state, "category", output, [ListingResult(products=page.products)])


@app.command("product", help="Fetch a product detail page.")
def product(
    ctx: typer.Context,
    url: str = typer.Argument(..., help="Product page URL."),
    source_id: Optional[str] = typer.Option(None, "--source-id", help="Caller-side product id."),
    output: Optional[str] = typer.Option(None, "--output", help="Export format: jsonl, csv or sqlite."),
) -> None:
    state = _get_state(ctx)
    with _crawler_errors():
        record = state.coordinator.fetch(url, TargetKind.PRODUCT_DETAIL, source_id=source_id)
    detail = record.detail
    table = Table(title=detail.title or url, box=box.SIMPLE_HEAD, show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value", overflow="fold")
    table.add_row("Author", detail.author or "-")
    table.add_row("Price", detail.price or "-")
    table.add_row("Rating", f"{detail.rating_avg:g}")
    table.add_row("Reviews", str(len(detail.reviews)))
    for key, value in detail.metadata.items():
        table.add_row(key, value or "-")
    console.print(table)
    _export(state, "product", output, [record])


@app.command("batch", help="Fetch every URL listed in FILE in waves.")
def batch(
    ctx: typer.Context,
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="One URL (and optional source id) per line."),
    kind: TargetKind = typer.Option(TargetKind.PRODUCT_DETAIL, "--kind", help="Target kind of every URL."),
    concurrency: Optional[int] = typer.Option(None, "--concurrency", min=1, help="Items per wave."),
    delay_ms: Optional[int] = typer.Option(None, "--delay-ms", min=0, help="Pause between waves."),
    retries: Optional[int] = typer.Option(None, "--retries", min=0, help="Retries per item."),
    output: Optional[str] = typer.Option(None, "--output", help="Export format: jsonl, csv or sqlite."),
) -> None:
    state = _get_state(ctx)
    requests = _read_batch_file(file, kind)
    if not requests:
        console.print("No URLs found in batch file.", style="yellow")
        raise typer.Exit(code=0)
    retry_config = state.config.retry
    retry = RetryPolicy(
        max_retries=retry_config.max_retries if retries is None else retries,
        backoff_ms=retry_config.backoff_ms,
    )
    progress = BatchProgress(label=kind.value)
    progress.start(total=len(requests))
    try:
        result = state.scheduler.run_batch(
            requests,
            concurrency=concurrency,
            inter_batch_delay=None if delay_ms is None else delay_ms / 1000,
            retry=retry,
            on_settled=progress,
        )
    finally:
        progress.close()
    console.print(_render_batch(result))
    console.print(_render_health(state.coordinator.health(), include_cache=True))
    for failure in result.failures:
        console.print(f"✗ {failure.url}: {failure.error_type}: {failure.error_message}", style="red")
    _export(state, f"batch-{kind.value}", output, result.successes)
    if result.failure_count and not result.success_count:
        raise typer.Exit(code=1)


@app.command("job", help="Show the status of a job.")
def job(ctx: typer.Context, job_id: str = typer.Argument(..., help="Job id.")) -> None:
    state = _get_state(ctx)
    with _crawler_errors():
        found = state.coordinator.job_status(job_id)
    table = Table(title=f"Job {found.id}", box=box.SIMPLE_HEAD, show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value", overflow="fold")
    table.add_row("URL", found.target_url)
    table.add_row("Kind", found.target_kind.value)
    table.add_row("Status", found.status.value)
    table.add_row("Started", str(found.started_at or "-"))
    table.add_row("Finished", str(found.finished_at or "-"))
    table.add_row("Duration", f"{found.duration_ms} ms")
    table.add_row("Results", str(found.result_count))
    table.add_row("Retries", f"{found.retry_count}/{found.max_retries}")
    if found.error_message:
        table.add_row("Error", found.error_message)
    console.print(table)


@app.command("health", help="Show job health for the last 24 hours.")
def health(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    console.print(_render_health(state.coordinator.health(), include_cache=False))


@log_app.command("tail", help="Show the last lines of the crawler log.")
def log_tail(
    lines: int = typer.Option(100, "--lines", "-n", min=1, help="Number of lines."),
    errors: bool = typer.Option(False, "--errors", help="Read error.log instead of crawler.log."),
) -> None:
    path = log_dir() / ("error.log" if errors else "crawler.log")
    content = tail_log(path, lines)
    if not content:
        console.print("No log entries yet.", style="dim")
        return
    console.print(f"{path.name} · last {len(content)} lines", style="cyan")
    console.print("".join(content), markup=False, highlight=False)


def cli() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    cli()
