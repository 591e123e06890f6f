# src/testlaser/cli/run_cmds.py

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
from testlaser.exceptions import ConfigurationError, ProcessCrashError, RerunSelectionError
from testlaser.runtime.orchestrator import RunRequest
from testlaser.telemetry import StructLogger

log: StructLogger = structlog.get_logger("cli.run")


@click.command(name="run", context_settings={"ignore_unknown_options": True})
@click.option("--rerun-failed", is_flag=True, help="Run only the tests that failed in the last full run.")
@click.option("--debug", is_flag=True, help="Print raw runner events and stderr instead of the progress bar.")
@click.option(
    "--filter-by-name",
    "filter_names",
    multiple=True,
    metavar="NAME",
    help="Run only tests with exactly this full name (repeatable).",
)
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
def run_cli(
    ctx: click.Context,
    rerun_failed: bool,
    debug: bool,
    filter_names: tuple[str, ...],
    runner: str | None,
    config_path: Path | None,
    project_dir: Path | None,
    args: tuple[str, ...],
    **kwargs,
):
    """Run the test suite once with live progress.

    Extra ARGS (test files, runner flags) are passed to the test runner.
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
    request = RunRequest(args=args, filter_names=filter_names, rerun_failed=rerun_failed, debug=debug)
    log.info("Executing 'run' command", project_dir=str(project_dir), rerun_failed=rerun_failed)

    try:
        result = asyncio.run(orchestrator.run(request))
    except RerunSelectionError as e:
        reporter.report_error(e)
        ctx.exit(1)
    except ProcessCrashError as e:
        reporter.report_crash(e)
        ctx.exit(1)
    except KeyboardInterrupt:
        log.warning("Run interrupted by KeyboardInterrupt (CTRL-C).")
        ctx.exit(130)
    finally:
        logging.shutdown()

    ctx.exit(0 if result.success else 1)

# 🔼⚙️
