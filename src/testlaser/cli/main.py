# src/testlaser/cli/main.py

"""
Main CLI entry point for testlaser using Click.
Handles global options like logging level.
"""

import click
import structlog

from testlaser import __version__
from testlaser.cli.cache_cmds import cache_cli
from testlaser.cli.run_cmds import run_cli
from testlaser.cli.utils import logging_options, setup_logging_from_context
from testlaser.cli.watch_cmds import watch_cli
from testlaser.telemetry import StructLogger

log: StructLogger = structlog.get_logger("cli.main")


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(__version__, "-V", "--version", package_name="testlaser")
@logging_options
@click.pass_context
def cli(
    ctx: click.Context,
    log_level: str | None,
    log_file: str | None,
    json_logs: bool | None,
):
    """
    testlaser: live progress, run cache and watch mode for machine-readable test runners.

    Wraps `flutter test --machine` (or `dart test --reporter json`), shows a
    live progress bar, remembers failures and reruns only those on request.
    """
    ctx.ensure_object(dict)

    ctx.obj["LOG_LEVEL"] = log_level
    ctx.obj["LOG_FILE"] = log_file
    ctx.obj["JSON_LOGS"] = json_logs if json_logs is not None else False

    setup_logging_from_context(ctx, default_log_level="WARNING")
    log.debug(
        "Main CLI group initialized",
        log_level=log_level,
        log_file=log_file,
        json_logs=json_logs,
    )


cli.add_command(cache_cli)
cli.add_command(run_cli)
cli.add_command(watch_cli)

if __name__ == "__main__":
    cli()

# 🖥️⚙️
