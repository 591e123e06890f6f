# src/testlaser/cli/cache_cmds.py

import json
from pathlib import Path

import click
import structlog

from testlaser.cache import RunCacheStore
from testlaser.cli.utils import logging_options, project_options, setup_logging_from_context
from testlaser.config import load_config
from testlaser.exceptions import ConfigurationError
from testlaser.telemetry import StructLogger

log: StructLogger = structlog.get_logger("cli.cache")


def _open_store(ctx: click.Context, project_dir: Path | None, config_path: Path | None) -> RunCacheStore:
    project_dir = (project_dir or Path.cwd()).resolve()
    try:
        config = load_config(config_path, project_dir=project_dir)
    except ConfigurationError as e:
        log.error("Failed to load or validate configuration", error=str(e))
        click.echo(f"Error: Configuration problem: {e}", err=True)
        ctx.exit(1)
    return RunCacheStore(project_dir / config.cache.file_name)


@click.group(name="cache")
def cache_cli():
    """Commands for inspecting and resetting the run cache."""
    pass


@cache_cli.command(name="show")
@project_options
@logging_options
@click.pass_context
def show_cache(ctx: click.Context, project_dir: Path | None, config_path: Path | None, **kwargs):
    """Display the cached result of the last full run."""
    setup_logging_from_context(
        ctx,
        local_log_level=kwargs.get("log_level"),
        local_log_file=kwargs.get("log_file"),
        local_json_logs=kwargs.get("json_logs"),
    )
    store = _open_store(ctx, project_dir, config_path)
    cache_load = store.load()

    if not cache_load.found:
        click.echo(f"No cache file at '{store.path}'.")
        return
    if not cache_load.ok:
        click.echo(f"Cache file at '{store.path}' is unusable ({cache_load.error}); it will be ignored.", err=True)
        return

    click.echo(json.dumps(cache_load.record.to_json(), indent=2))


@cache_cli.command(name="clear")
@project_options
@logging_options
@click.pass_context
def clear_cache(ctx: click.Context, project_dir: Path | None, config_path: Path | None, **kwargs):
    """Delete the run cache so the next run starts without history."""
    setup_logging_from_context(
        ctx,
        local_log_level=kwargs.get("log_level"),
        local_log_file=kwargs.get("log_file"),
        local_json_logs=kwargs.get("json_logs"),
    )
    store = _open_store(ctx, project_dir, config_path)
    try:
        removed = store.clear()
    except OSError as e:
        log.error("Failed to delete cache file", error=str(e))
        click.echo(f"Error: Could not delete '{store.path}': {e}", err=True)
        ctx.exit(1)

    if removed:
        click.echo(f"Removed '{store.path}'.")
    else:
        click.echo("No cache file to remove.")

# 🔼⚙️
