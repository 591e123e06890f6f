# src/testlaser/cli/utils.py

import logging
from pathlib import Path
from typing import Any

import attrs
import click
import structlog
from rich.console import Console

from testlaser.config import TestLaserConfig, load_config
from testlaser.progress import NullProgressSink, ProgressSink, RichProgressSink
from testlaser.reporting import TerminalReporter
from testlaser.runtime.orchestrator import RunOrchestrator
from testlaser.telemetry.logger import setup_logging as core_setup_logging
from testlaser.testing import resolve_runner_config

log = structlog.get_logger("cli.utils")

LOG_LEVEL_CHOICES = click.Choice(list(logging._nameToLevel.keys()), case_sensitive=False)


def logging_options(f):
    """Decorator to add logging options to any command."""
    f = click.option(
        "-l",
        "--log-level",
        type=LOG_LEVEL_CHOICES,
        default=None,
        envvar="TESTLASER_LOG_LEVEL",
        help="Set the logging level (overrides config file).",
    )(f)
    f = click.option(
        "--log-file",
        type=click.Path(dir_okay=False, writable=True, resolve_path=True),
        default=None,
        envvar="TESTLASER_LOG_FILE",
        help="Path to write logs to a file (JSON format).",
    )(f)
    f = click.option(
        "--json-logs",
        is_flag=True,
        default=None,
        envvar="TESTLASER_JSON_LOGS",
        help="Output console logs as JSON.",
    )(f)
    return f


def project_options(f):
    """Decorator for options that locate the project and its configuration."""
    f = click.option(
        "-c",
        "--config-path",
        type=click.Path(exists=True, file_okay=True, dir_okay=False, readable=True, path_type=Path),
        default=None,
        envvar="TESTLASER_CONF",
        show_envvar=True,
        help="Path to a testlaser.toml file (default: <project-dir>/testlaser.toml if present).",
    )(f)
    f = click.option(
        "-C",
        "--project-dir",
        type=click.Path(exists=True, file_okay=False, dir_okay=True, path_type=Path),
        default=None,
        help="Project directory to run tests in (default: current directory).",
    )(f)
    return f


def setup_logging_from_context(
    ctx: click.Context,
    local_log_level: str | None = None,
    local_log_file: str | None = None,
    local_json_logs: bool | None = None,
    default_log_level: str = "WARNING",
) -> None:
    """
    Setup logging using context values, allowing local overrides.
    """
    obj = ctx.obj or {}
    log_level_str = local_log_level or obj.get("LOG_LEVEL") or default_log_level
    log_file_path = local_log_file or obj.get("LOG_FILE")
    use_json_logs = local_json_logs if local_json_logs is not None else obj.get("JSON_LOGS", False)

    numeric_level = logging.getLevelName(log_level_str.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.WARNING
        log_level_str = "WARNING"

    core_setup_logging(
        level=numeric_level,
        json_logs=use_json_logs,
        log_file=log_file_path,
    )

    log.debug(
        "CLI logging initialized via utils",
        level=log_level_str,
        file=log_file_path or "console",
        json=use_json_logs,
    )


def load_project_config(project_dir: Path, config_path: Path | None, runner: str | None) -> TestLaserConfig:
    """Loads configuration and applies a --runner override. Raises ConfigurationError."""
    config = load_config(config_path, project_dir=project_dir)
    runner_config = resolve_runner_config(config.runner, runner)
    if runner_config is not config.runner:
        config = attrs.evolve(config, runner=runner_config)
    return config


def make_progress_factory(console: Console):
    def _factory(previous_duration: float) -> ProgressSink:
        if not console.is_terminal:
            return NullProgressSink()
        return RichProgressSink(console=console, previous_duration=previous_duration)

    return _factory


def build_orchestrator(
    project_dir: Path,
    config: TestLaserConfig,
    console: Console,
    **overrides: Any,
) -> tuple[RunOrchestrator, TerminalReporter]:
    reporter = TerminalReporter(console=console, project_dir=project_dir)
    orchestrator = RunOrchestrator(
        project_dir=project_dir,
        config=config,
        reporter=reporter,
        progress_factory=make_progress_factory(console),
        **overrides,
    )
    return orchestrator, reporter

# ⚙️🛠️
