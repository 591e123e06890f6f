#
# config/models.py
#
"""
Attrs-based data models for testlaser configuration structure.
"""

import logging
from typing import Any

from attrs import define, field

DEFAULT_CACHE_FILE_NAME = ".testlaser.cache"
DEFAULT_IGNORE_DIRS: tuple[str, ...] = (
    "build",
    ".dart_tool",
    ".git",
    ".idea",
    ".vscode",
    ".fvm",
    "__pycache__",
)
DEFAULT_DEBOUNCE_SECONDS = 0.5

# Argument prefixes that make each runner emit the line-delimited JSON protocol.
RUNNER_PRESETS: dict[str, tuple[str, ...]] = {
    "flutter": ("flutter", "test", "--machine"),
    "fvm": ("fvm", "flutter", "test", "--machine"),
    "dart": ("dart", "test", "--reporter", "json"),
}


# --- Validators ---
def _validate_log_level(inst: Any, attr: Any, value: str) -> None:
    """Validator for standard logging level names."""
    valid = logging._nameToLevel.keys()
    if value.upper() not in valid:
        raise ValueError(f"Invalid log_level '{value}'. Must be one of {list(valid)}.")


def _validate_positive_number(inst: Any, attr: Any, value: float) -> None:
    if isinstance(value, bool) or not isinstance(value, int | float) or value <= 0:
        raise ValueError(f"Field '{attr.name}' must be a positive number, got {value!r}")


def _validate_preset(inst: Any, attr: Any, value: str) -> None:
    if value not in RUNNER_PRESETS:
        raise ValueError(f"Unknown runner preset '{value}'. Available presets: {sorted(RUNNER_PRESETS)}")


def _validate_str_tuple(inst: Any, attr: Any, value: tuple[str, ...] | None) -> None:
    if value is None:
        return
    if not all(isinstance(item, str) for item in value):
        raise ValueError(f"Field '{attr.name}' must be a list of strings, got {value!r}")


def _to_tuple(value: Any) -> Any:
    if isinstance(value, list):
        return tuple(value)
    return value


@define(frozen=True, slots=True)
class RunnerConfig:
    """Which external test process to start and how."""
    preset: str = field(default="flutter", validator=_validate_preset)
    command: tuple[str, ...] | None = field(default=None, converter=_to_tuple, validator=_validate_str_tuple)
    extra_args: tuple[str, ...] = field(factory=tuple, converter=_to_tuple, validator=_validate_str_tuple)

    @property
    def base_command(self) -> list[str]:
        prefix = self.command if self.command else RUNNER_PRESETS[self.preset]
        return [*prefix, *self.extra_args]


@define(frozen=True, slots=True)
class CacheConfig:
    """Where the run cache lives, relative to the project directory."""
    file_name: str = field(default=DEFAULT_CACHE_FILE_NAME)


@define(frozen=True, slots=True)
class WatchConfig:
    """Settings for the watch-mode driver."""
    debounce_seconds: float = field(default=DEFAULT_DEBOUNCE_SECONDS, validator=_validate_positive_number)
    ignore_dirs: tuple[str, ...] = field(
        default=DEFAULT_IGNORE_DIRS, converter=_to_tuple, validator=_validate_str_tuple
    )
    paths: tuple[str, ...] = field(factory=tuple, converter=_to_tuple, validator=_validate_str_tuple)


@define(frozen=True, slots=True)
class GlobalConfig:
    """Global default settings for testlaser."""
    log_level: str = field(default="WARNING", validator=_validate_log_level)

    @property
    def numeric_log_level(self) -> int:
        return logging.getLevelName(self.log_level.upper())


@define(frozen=True, slots=True)
class TestLaserConfig:
    """Root configuration object for the testlaser application."""
    __test__ = False

    runner: RunnerConfig = field(factory=RunnerConfig)
    cache: CacheConfig = field(factory=CacheConfig)
    watch: WatchConfig = field(factory=WatchConfig)
    global_config: GlobalConfig = field(factory=GlobalConfig, metadata={"toml_name": "global"})


# 🔼⚙️
