#
# config/loader.py
#
"""
Loads `testlaser.toml` into the attrs configuration models.
"""

import os
import tomllib
from pathlib import Path
from typing import Any

import attrs
import structlog

from testlaser.config.models import (
    CacheConfig,
    GlobalConfig,
    RunnerConfig,
    TestLaserConfig,
    WatchConfig,
)
from testlaser.exceptions import ConfigurationError
from testlaser.telemetry import StructLogger

log: StructLogger = structlog.get_logger("config.loader")

CONFIG_FILE_NAME = "testlaser.toml"
ENV_RUNNER = "TESTLASER_RUNNER"
ENV_DEBOUNCE = "TESTLASER_DEBOUNCE"


def _section(data: dict[str, Any], name: str, path: Path) -> dict[str, Any]:
    value = data.get(name, {})
    if not isinstance(value, dict):
        raise ConfigurationError(f"Section [{name}] must be a table", path=str(path))
    return value


def _build(model: type, values: dict[str, Any], section: str, path: Path) -> Any:
    known = {a.name for a in attrs.fields(model)}
    unknown = sorted(set(values) - known)
    if unknown:
        raise ConfigurationError(f"Unknown keys in [{section}]: {', '.join(unknown)}", path=str(path))
    try:
        return model(**values)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid [{section}] section: {e}", path=str(path), details=e) from e


def _apply_env_overrides(config: TestLaserConfig) -> TestLaserConfig:
    runner_env = os.environ.get(ENV_RUNNER)
    if runner_env:
        log.debug("Applying runner override from environment", preset=runner_env)
        try:
            config = attrs.evolve(config, runner=attrs.evolve(config.runner, preset=runner_env))
        except ValueError as e:
            raise ConfigurationError(f"Invalid {ENV_RUNNER}: {e}", details=e) from e

    debounce_env = os.environ.get(ENV_DEBOUNCE)
    if debounce_env:
        try:
            debounce = float(debounce_env)
            config = attrs.evolve(config, watch=attrs.evolve(config.watch, debounce_seconds=debounce))
        except ValueError as e:
            raise ConfigurationError(f"Invalid {ENV_DEBOUNCE}: {e}", details=e) from e
    return config


def load_config(config_path: Path | None = None, project_dir: Path | None = None) -> TestLaserConfig:
    """
    Loads configuration, falling back to defaults when no file exists.

    Args:
        config_path: Explicit config file. Must exist when given.
        project_dir: Directory searched for `testlaser.toml` when no explicit
            path is given. Defaults to the current directory.

    Raises:
        ConfigurationError: If the file cannot be parsed or fails validation.
    """
    if config_path is None:
        candidate = (project_dir or Path.cwd()) / CONFIG_FILE_NAME
        if not candidate.is_file():
            log.debug("No config file found, using defaults", searched=str(candidate))
            return _apply_env_overrides(TestLaserConfig())
        config_path = candidate

    load_log = log.bind(config_path=str(config_path))
    load_log.debug("Loading configuration file")
    try:
        with config_path.open("rb") as f:
            data = tomllib.load(f)
    except FileNotFoundError as e:
        raise ConfigurationError("Config file not found", path=str(config_path), details=e) from e
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigurationError(f"Failed to parse config file: {e}", path=str(config_path), details=e) from e

    config = TestLaserConfig(
        runner=_build(RunnerConfig, _section(data, "runner", config_path), "runner", config_path),
        cache=_build(CacheConfig, _section(data, "cache", config_path), "cache", config_path),
        watch=_build(WatchConfig, _section(data, "watch", config_path), "watch", config_path),
        global_config=_build(GlobalConfig, _section(data, "global", config_path), "global", config_path),
    )
    load_log.info("Configuration loaded", runner=config.runner.preset)
    return _apply_env_overrides(config)


# 🔼⚙️
