#
# config/__init__.py
#
"""
Configuration handling sub-package for testlaser.

Exports the loading function and core configuration model.
"""

from .loader import CONFIG_FILE_NAME, load_config
from .models import (
    RUNNER_PRESETS,
    CacheConfig,
    GlobalConfig,
    RunnerConfig,
    TestLaserConfig,
    WatchConfig,
)

__all__ = [
    "CONFIG_FILE_NAME",
    "RUNNER_PRESETS",
    "CacheConfig",
    "GlobalConfig",
    "RunnerConfig",
    "TestLaserConfig",
    "WatchConfig",
    "load_config",
]

# 🔼⚙️
