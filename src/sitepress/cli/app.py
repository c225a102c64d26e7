"""Command line interface for Sitepress."""

from __future__ import annotations

import json
import logging
import pathlib
from typing import List, Optional

import typer
import yaml
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table, box

from sitepress import get_version
from sitepress.cache import CacheStore
from sitepress.config import Config, EnvCredentialStore, load_config
from sitepress.content import ContentGraph, ContentIndex
from sitepress.core import ProgressReporter, RunLease
from sitepress.core.orchestrator import Orchestrator, RunResult
from sitepress.logging import configure_logging
from sitepress.storage import Database

EXIT_CODES = {"completed": 0, "failed": 1, "already_running": 2}

console = Console()


def _load_environment(env_file: Optional[pathlib.Path]) -> None:
    """Load environment variables from .env files."""

    if env_file is not None:
        load_dotenv(dotenv_path=env_file, override=True)
    else:
        load_dotenv(override=False)


def _prepare_logging(
    config: Config,
    override_path: Optional[pathlib.Path],
    override_level: Optional[str],
    verbose: bool,
) -> logging.Logger:
    configured_path = override_path or config.logging.path
    configured_level = (override_level or config.logging.level).upper()
    return configure_logging(
        log_path=configured_path,
        level=configured_level,
        mirror_to_console=verbose,
    )


def _open_database(config: Config) -> Database:
    database = Database(config.state.path, max_log_entries=config.state.max_log_entries)
    database.initialize()
    return database


def _load_graph(config: Config) -> ContentGraph:
    manifest = config.content.manifest
    if manifest is None:
        return ContentIndex()
    try:
        return ContentIndex.from_file(manifest)
    except (OSError, ValueError) as exc:
        raise typer.BadParameter(f"Unable to load content manifest {manifest}: {exc}") from exc


def _read_urls(urls: Optional[List[str]], urls_file: Optional[pathlib.Path]) -> list[str]:
    collected = list(urls or [])
    if urls_file is not None:
        try:
            lines = urls_file.read_text(encoding="utf-8").splitlines()
        except OSError as exc:
            raise typer.BadParameter(f"Unable to read {urls_file}: {exc}", param_hint="--urls-file") from exc
        stripped = (line.strip() for line in lines)
        collected.extend(line for line in stripped if line and not line.startswith("#"))
    return collected


app = typer.Typer(
    name="sitepress",
    help="Generate a static snapshot of a site and publish it.",
    no_args_is_help=True,
    add_completion=False,
)

config_app = typer.Typer(help="Configuration utilities.", no_args_is_help=True)
cache_app = typer.Typer(help="Render cache maintenance.", no_args_is_help=True)
app.add_typer(config_app, name="config")
app.add_typer(cache_app, name="cache")


def _version_callback(value: bool) -> None:
    """Print the package version and exit when requested."""

    if value:
        typer.echo(get_version())
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[pathlib.Path] = typer.Option(
        None,
        "--config",
        metavar="PATH",
        help="Path to YAML configuration file (used exclusively).",
    ),
    env_file: Optional[pathlib.Path] = typer.Option(
        None,
        "--env-file",
        metavar="PATH",
        help="Load environment variables from .env-style file before execution.",
    ),
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        metavar="LEVEL",
        help="Override the configured log level (debug, info, warn, error).",
    ),
    log_path: Optional[pathlib.Path] = typer.Option(
        None,
        "--log-path",
        metavar="PATH",
        help="Override the base directory or file for log output.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Mirror log records to stderr.",
    ),
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show Sitepress version and exit.",
    ),
) -> None:
    """CLI root; loads environment, configuration and logging."""

    ctx.ensure_object(dict)
    _load_environment(env_file)

    try:
        config_obj = load_config(config)
    except (FileNotFoundError, ValueError) as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc

    try:
        logger = _prepare_logging(config_obj, log_path, log_level, verbose)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--log-level") from exc
    ctx.obj.update({"config": config_obj, "config_path": config, "logger": logger})


@app.command()
def run(
    ctx: typer.Context,
    url: Optional[List[str]] = typer.Option(
        None,
        "--url",
        metavar="URL",
        help="URL to generate. May be provided multiple times.",
    ),
    urls_file: Optional[pathlib.Path] = typer.Option(
        None,
        "--urls-file",
        metavar="PATH",
        help="File with one URL per line ('#' starts a comment).",
    ),
) -> None:
    """Run one generation: fetch, transform, copy assets, publish."""

    config: Config = ctx.obj["config"]
    logger: logging.Logger = ctx.obj["logger"]
    targets = _read_urls(url, urls_file)
    if not targets and config.site.site_url:
        targets = [config.site.effective_home_url]

    orchestrator = Orchestrator(
        config=config,
        database=_open_database(config),
        logger=logger,
        graph=_load_graph(config),
        credentials=EnvCredentialStore(),
    )
    result = orchestrator.run(targets)
    _print_run_result(result)
    raise typer.Exit(code=EXIT_CODES[result.status])


def _print_run_result(result: RunResult) -> None:
    if result.status == "already_running":
        console.print("[yellow]Another generation run is already in progress.[/yellow]")
        return

    table = Table(box=box.SIMPLE, show_header=False)
    table.add_row("Run", result.run_id)
    table.add_row("Status", result.status)
    table.add_row("Pages", str(len(result.artifacts)))
    table.add_row("Fetched", str(result.fetched))
    table.add_row("From cache", str(result.from_cache))
    table.add_row("Failed URLs", str(len(result.failed_urls)))
    for sink in result.sink_results:
        marker = "[green]ok[/green]" if sink.ok else "[red]failed[/red]"
        table.add_row(f"Sink {sink.name}", f"{marker} {sink.message}")
    if result.error:
        table.add_row("Error", f"[red]{result.error}[/red]")
    console.print(table)


@app.command()
def status(ctx: typer.Context) -> None:
    """Show the progress record and whether a run is active."""

    config: Config = ctx.obj["config"]
    logger: logging.Logger = ctx.obj["logger"]
    database = _open_database(config)
    progress = ProgressReporter(database, logger).get_progress()
    running = RunLease(database, logger).is_held()

    table = Table(title="Sitepress status", box=box.SIMPLE)
    table.add_column("Field")
    table.add_column("Value")
    table.add_row("Running", "yes" if running else "no")
    table.add_row("Status", progress.status or "--")
    table.add_row("Progress", f"{progress.percentage}%")
    table.add_row("Step", f"{progress.current}/{progress.total}")
    table.add_row("Log entries", str(database.count_logs()))
    console.print(table)


@app.command()
def logs(
    ctx: typer.Context,
    offset: int = typer.Option(0, "--offset", min=0, help="Skip the first N entries."),
    clear: bool = typer.Option(False, "--clear", help="Clear the run log instead of printing it."),
) -> None:
    """Print or clear the run log."""

    config: Config = ctx.obj["config"]
    reporter = ProgressReporter(_open_database(config), ctx.obj["logger"])

    if clear:
        if not reporter.clear_logs():
            typer.echo("Cannot clear logs while a run is active.", err=True)
            raise typer.Exit(code=1)
        typer.echo("Logs cleared.")
        return

    for entry in reporter.get_logs(offset):
        style = "red" if entry.is_error else "default"
        console.print(
            f"{entry.timestamp} {entry.message}",
            style=style,
            markup=False,
            highlight=False,
            soft_wrap=True,
        )


def _cache_store(ctx: typer.Context) -> CacheStore:
    config: Config = ctx.obj["config"]
    return CacheStore(
        directory=config.cache.path,
        graph=_load_graph(config),
        logger=ctx.obj["logger"],
        max_dependencies=config.cache.max_dependencies,
    )


@cache_app.command("stats")
def cache_stats(ctx: typer.Context) -> None:
    """Show the number and total size of cached pages."""

    stats = _cache_store(ctx).stats()
    typer.echo(f"entries={stats.count} bytes={stats.total_bytes}")


@cache_app.command("clear")
def cache_clear(ctx: typer.Context) -> None:
    """Delete every cached page."""

    deleted = _cache_store(ctx).clear_all()
    typer.echo(f"Deleted {deleted} cache file(s).")


@cache_app.command("invalidate")
def cache_invalidate(
    ctx: typer.Context,
    entity: int = typer.Option(..., "--entity", metavar="ID", help="Content entity that changed."),
) -> None:
    """Drop records for a changed entity and advance the cache epoch."""

    store = _cache_store(ctx)
    deleted = store.clear_by_entity(entity)
    store.advance_epoch()
    typer.echo(f"Invalidated {deleted} record(s) for entity {entity}.")


@config_app.command("show")
def config_show(
    ctx: typer.Context,
    format: str = typer.Option(
        "yaml",
        "--format",
        help="Output format (yaml or json).",
    ),
) -> None:
    """Show the effective configuration for this invocation."""

    config: Config = ctx.obj["config"]

    normalized_format = format.strip().lower()
    if normalized_format not in {"yaml", "json"}:
        raise typer.BadParameter("Format must be 'yaml' or 'json'.", param_hint="--format")

    data = config.model_dump()
    if normalized_format == "json":
        typer.echo(json.dumps(data, indent=2))
    else:
        typer.echo(yaml.safe_dump(data, sort_keys=False))
