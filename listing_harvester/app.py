"""Typer CLI entrypoint for listing-harvester."""

from __future__ import annotations

import time
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

import typer
from rich import box
from rich.console import Console
from rich.table import Table

from .config import ConfigRepository, GlobalConfig, ScheduleConfig, ScheduleType, SourceDescriptor
from .engine import PageCache, RateLimitedFetcher, ReconciliationStore, StoreStats
from .engine.records import BackgroundFetchStatus
from .errors import HarvesterError
from .infra import UserAgentPool, open_storage
from .logging_conf import available_logs, configure_logging, find_log, source_logger, tail_log
from .orchestrator import SourceOrchestrator
from .scheduler import HarvestScheduler
from .ui import ProgressReporter

app = typer.Typer(
    help="listing-harvester command line tool",
    no_args_is_help=True,
    rich_markup_mode=None,
)
source_app = typer.Typer(name="source", help="Source catalog commands", no_args_is_help=True, rich_markup_mode=None)
data_app = typer.Typer(name="data", help="Accumulated record commands", no_args_is_help=True, rich_markup_mode=None)
log_app = typer.Typer(name="log", help="Log viewing commands", no_args_is_help=True, rich_markup_mode=None)

console = Console()


@dataclass
class AppState:
    repository: ConfigRepository
    global_config: GlobalConfig
    fetcher: RateLimitedFetcher
    store: ReconciliationStore
    orchestrator: SourceOrchestrator
    scheduler: HarvestScheduler

    def close(self) -> None:
        self.scheduler.shutdown()
        self.orchestrator.shutdown()
        self.fetcher.close()


def build_state(verbose: bool) -> AppState:
    configure_logging(verbose=verbose)
    repository = ConfigRepository()
    global_config = repository.load_global_config()
    fetcher = RateLimitedFetcher(
        global_config.fetch,
        cache=PageCache(global_config.cache_ttl_seconds),
        ua_pool=UserAgentPool.from_config(global_config),
    )
    storage = open_storage(global_config.storage.backend, repository.storage_path())
    store = ReconciliationStore(storage)
    orchestrator = SourceOrchestrator(
        repository.load_catalog(),
        fetcher,
        store,
        error_history_limit=global_config.error_history_limit,
        progress_queue_size=global_config.progress_queue_size,
        log_factory=source_logger,
    )
    return AppState(
        repository=repository,
        global_config=global_config,
        fetcher=fetcher,
        store=store,
        orchestrator=orchestrator,
        scheduler=HarvestScheduler(),
    )


def _get_state(ctx: typer.Context) -> AppState:
    state = ctx.obj
    if state is None:
        state = build_state(verbose=False)
        ctx.obj = state
        ctx.call_on_close(state.close)
    return state


def _format_schedule(schedule: ScheduleConfig) -> str:
    if schedule.value in (None, "", [], {}):
        return schedule.type.value
    if schedule.type is ScheduleType.INTERVAL and isinstance(schedule.value, (int, float)):
        return f"interval ({schedule.value}s)"
    return f"{schedule.type.value} ({schedule.value})"


def _render_sources_table(sources: Sequence[SourceDescriptor]) -> Table:
    table = Table(title=f"Sources · {len(sources)} total", box=box.SIMPLE_HEAD)
    table.add_column("Priority", justify="right", style="yellow")
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Kind", style="magenta")
    table.add_column("Enabled")
    table.add_column("Pages", justify="right")
    table.add_column("Per page", justify="right")
    table.add_column("Description", style="dim", overflow="fold")
    for source in sources:
        table.add_row(
            str(source.priority),
            source.name,
            source.kind.value,
            "[green]yes[/]" if source.enabled else "[red]no[/]",
            str(source.max_pages),
            str(source.per_page),
            source.description,
        )
    return table


def _render_stats_table(stats: StoreStats, top: int = 10) -> Table:
    table = Table(title="Accumulated records", box=box.SIMPLE_HEAD, show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Total", str(stats.total_count))
    table.add_row("With website", str(stats.with_website))
    table.add_row("Without website", str(stats.without_website))
    table.add_row("Last updated", stats.last_updated.isoformat() if stats.last_updated else "-")
    for label, counts in (("Industry", stats.by_industry), ("Location", stats.by_location)):
        ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))[:top]
        table.add_row(label, ", ".join(f"{key} ({value})" for key, value in ranked) or "-")
    return table


def _render_run_summary(status: BackgroundFetchStatus, candidates: int | None = None) -> Table:
    table = Table(title="Run summary", box=box.SIMPLE_HEAD, show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value")
    table.add_row("State", status.state.value)
    table.add_row("Sources", f"{status.completed_sources}/{status.total_sources}")
    if candidates is not None:
        table.add_row("Candidates", str(candidates))
    table.add_row("Errors", str(len(status.errors)))
    return table


def _print_errors(errors: Iterable[str], limit: int = 5) -> None:
    recent = list(errors)[-limit:]
    for entry in recent:
        console.print(f"  • {entry}", style="red")


app.add_typer(source_app, name="source", help="Inspect and toggle catalog sources")
app.add_typer(data_app, name="data", help="Inspect, clean and move accumulated records")
app.add_typer(log_app, name="log", help="View log files")


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging"),
) -> None:
    if ctx.invoked_subcommand == "log":
        configure_logging(verbose=verbose)
        return
    state = build_state(verbose)
    ctx.obj = state
    ctx.call_on_close(state.close)


# ----------------------------------------------------------------------
# source
# ----------------------------------------------------------------------
@source_app.command("list", help="Show the catalog in run order.")
def source_list(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    sources = state.orchestrator.list_sources()
    if not sources:
        console.print("The catalog is empty.", style="yellow")
        raise typer.Exit(code=0)
    console.print(_render_sources_table(sources))
    console.print(f"Catalog: {state.repository.catalog_file()}", style="dim")


def _toggle(ctx: typer.Context, name: str, enabled: bool) -> None:
    state = _get_state(ctx)
    try:
        state.repository.set_source_enabled(name, enabled)
        state.orchestrator.set_enabled(name, enabled)
    except KeyError:
        console.print(f"Unknown source: {name}", style="red")
        raise typer.Exit(code=1)
    console.print(f"{name} {'enabled' if enabled else 'disabled'}.", style="green")


@source_app.command("enable", help="Enable a source.")
def source_enable(ctx: typer.Context, name: str = typer.Argument(..., help="Source name")) -> None:
    _toggle(ctx, name, True)


@source_app.command("disable", help="Disable a source.")
def source_disable(ctx: typer.Context, name: str = typer.Argument(..., help="Source name")) -> None:
    _toggle(ctx, name, False)


# ----------------------------------------------------------------------
# run
# ----------------------------------------------------------------------
@app.command("run", help="Harvest sources in priority order and merge the results.")
def run(
    ctx: typer.Context,
    sources: Optional[List[str]] = typer.Option(None, "--source", "-s", help="Restrict to these sources."),
    background: bool = typer.Option(False, "--background", help="Run on the worker thread and poll status."),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Give up at the next source boundary after S seconds."),
    progress: bool = typer.Option(True, "--progress/--no-progress", help="Render a progress bar."),
) -> None:
    state = _get_state(ctx)
    orchestrator = state.orchestrator
    selection = list(sources) if sources else None
    reporter = ProgressReporter(enabled=progress and state.global_config.enable_progress_bar, console=console)
    try:
        selected = orchestrator.select_sources(selection)
    except KeyError as exc:
        console.print(str(exc.args[0]), style="red")
        raise typer.Exit(code=1)
    reporter.start(len(selected))
    try:
        if background:
            if not orchestrator.start_background(selection, reporter, timeout=timeout):
                console.print("A run is already in progress.", style="yellow")
                raise typer.Exit(code=1)
            while not orchestrator.wait_background(timeout=0.5):
                pass
            candidates = None
        else:
            collected = orchestrator.run_once(selection, reporter, timeout=timeout)
            state.store.merge(collected)
            candidates = len(collected)
    except HarvesterError as exc:
        console.print(f"Run failed: {exc}", style="red")
        raise typer.Exit(code=1)
    finally:
        reporter.close()

    status = orchestrator.get_background_status()
    console.print(_render_run_summary(status, candidates))
    if status.errors:
        console.print("Recent errors:", style="yellow")
        _print_errors(status.errors)
    console.print(f"Accumulated records: {len(state.store)}", style="green")


@app.command("schedule", help="Run harvesting periodically until interrupted.")
def schedule(
    ctx: typer.Context,
    duration: Optional[float] = typer.Option(None, "--duration", help="Stop after S seconds (default: run forever)."),
) -> None:
    state = _get_state(ctx)
    plan = state.global_config.schedule
    state.scheduler.schedule_harvest(plan, state.orchestrator.start_background)
    state.scheduler.start()
    console.print(f"Scheduled harvesting: {_format_schedule(plan)}. Press Ctrl+C to stop.", style="cyan")
    deadline = time.monotonic() + duration if duration is not None else None
    try:
        while deadline is None or time.monotonic() < deadline:
            time.sleep(1.0)
    except KeyboardInterrupt:
        console.print("Stopping scheduler…", style="yellow")
    finally:
        state.scheduler.shutdown()
        state.orchestrator.stop_background()


# ----------------------------------------------------------------------
# data
# ----------------------------------------------------------------------
@data_app.command("stats", help="Show accumulated record statistics.")
def data_stats(ctx: typer.Context, top: int = typer.Option(10, "--top", help="Buckets per breakdown.")) -> None:
    state = _get_state(ctx)
    console.print(_render_stats_table(state.store.stats(), top=top))


@data_app.command("clear", help="Delete every accumulated record.")
def data_clear(
    ctx: typer.Context,
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation."),
) -> None:
    state = _get_state(ctx)
    if not yes and not typer.confirm(f"Delete all {len(state.store)} records?", default=False):
        raise typer.Exit(code=0)
    state.store.clear()
    console.print("Accumulated records cleared.", style="green")


@data_app.command("purge", help="Delete records that came from a given source.")
def data_purge(
    ctx: typer.Context,
    source: str = typer.Option(..., "--source", "-s", help="Source name to purge."),
) -> None:
    state = _get_state(ctx)
    before = len(state.store)
    remainder = state.store.remove_where(lambda record: record.source_name == source)
    console.print(f"Removed {before - len(remainder)} records; {len(remainder)} remain.", style="green")


@data_app.command("export", help="Write accumulated records to a JSON file.")
def data_export(
    ctx: typer.Context,
    path: Optional[Path] = typer.Argument(None, help="Target file (default: exports dir)."),
) -> None:
    state = _get_state(ctx)
    if path is None:
        stamp = time.strftime("%Y%m%d-%H%M%S")
        path = state.repository.exports_path() / f"records-{stamp}.json"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(state.store.export_json(), encoding="utf-8")
    console.print(f"Exported {len(state.store)} records to {path}", style="green")


@data_app.command("import", help="Merge records from an exported JSON file.")
def data_import(ctx: typer.Context, path: Path = typer.Argument(..., help="Export file to merge.")) -> None:
    state = _get_state(ctx)
    if not path.exists():
        console.print(f"File not found: {path}", style="red")
        raise typer.Exit(code=1)
    if not state.store.import_json(path.read_text(encoding="utf-8")):
        console.print(f"Not a valid export document: {path}", style="red")
        raise typer.Exit(code=1)
    console.print(f"Imported records; {len(state.store)} accumulated.", style="green")


# ----------------------------------------------------------------------
# log
# ----------------------------------------------------------------------
@log_app.command("list", help="List available log files.")
def log_list() -> None:
    logs = list(available_logs())
    if not logs:
        console.print("No log files yet.", style="dim")
        return
    table = Table(box=box.SIMPLE_HEAD)
    table.add_column("File", style="green")
    table.add_column("Size", justify="right")
    for path in logs:
        table.add_row(path.name, str(path.stat().st_size))
    console.print(table)


@log_app.command("show", help="Show the tail of a log (harvester, error, or a source name).")
def log_show(
    name: str = typer.Argument("harvester", help="Log name or source name."),
    tail: int = typer.Option(100, "--tail", help="Number of lines."),
) -> None:
    path = find_log(name)
    lines = tail_log(path, tail) if path is not None else []
    if not lines:
        console.print(f"No log lines for {name}.", style="dim")
        return
    console.print(f"{path.name} · last {len(lines)} lines", style="cyan")
    console.print("".join(lines), markup=False, highlight=False)


def cli() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    cli()
