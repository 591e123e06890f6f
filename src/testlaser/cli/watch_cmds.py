# src/testlaser/cli/watch_cmds.py
#

import asyncio
import logging
from pathlib import Path

import click
import structlog
from rich.console import Console

from testlaser.cli.utils import (
    build_orchestrator,
    load_project_config,
    logging_options,
    project_options,
    setup_logging_from_context,
)
from testlaser.config import RUNNER_PRESETS
from testlaser.exceptions import ConfigurationError
from testlaser.runtime.watch import run_watch
from testlaser.telemetry import StructLogger

log: StructLogger = structlog.get_logger("cli.watch")


@click.command(name="watch", context_settings={"ignore_unknown_options": True})
@click.option(
    "--runner",
    type=click.Choice(sorted(RUNNER_PRESETS), case_sensitive=False),
    default=None,
    help="Runner preset to use (overrides config).",
)
@project_options
@logging_options
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@click.pass_context
def watch_cli(
    ctx: click.Context,
    runner: str | None,
    config_path: Path | None,
    project_dir: Path | None,
    args: tuple[str, ...],
    **kwargs,
):
    """Rerun tests on file changes until the full suite passes.

    Failing runs switch to rerunning only the failed tests; once those pass,
    the full suite runs again immediately to confirm.
    """
    setup_logging_from_context(
        ctx,
        local_log_level=kwargs.get("log_level"),
        local_log_file=kwargs.get("log_file"),
        local_json_logs=kwargs.get("json_logs"),
    )
    project_dir = (project_dir or Path.cwd()).resolve()
    console = Console()

    try:
        config = load_project_config(project_dir, config_path, runner)
    except ConfigurationError as e:
        log.error("Failed to load or validate configuration", error=str(e))
        click.echo(f"Error: Configuration problem: {e}", err=True)
        ctx.exit(1)

    orchestrator, reporter = build_orchestrator(project_dir, config, console)
    log.info("Initializing watch mode...", project_dir=str(project_dir), emoji_key="watch")

    try:
        exit_code = asyncio.run(run_watch(orchestrator, reporter, args=args))
    except KeyboardInterrupt:
        log.warning("Watch mode stopped by KeyboardInterrupt (CTRL-C).")
        exit_code = 130
    finally:
        logging.shutdown()

    log.info("'watch' command finished.", exit_code=exit_code)
    ctx.exit(exit_code)

# 🔼⚙️
