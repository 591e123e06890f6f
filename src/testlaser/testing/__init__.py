#
# src/testlaser/testing/__init__.py
#
"""
External test process sub-package for testlaser.
"""
from .factory import build_command, name_filter_args, rerun_args, resolve_runner_config
from .protocols import TestProcess, TestProcessLauncher
from .subprocess_runner import SubprocessLauncher

__all__ = [
    "SubprocessLauncher",
    "TestProcess",
    "TestProcessLauncher",
    "build_command",
    "name_filter_args",
    "rerun_args",
    "resolve_runner_config",
]

# 🔼⚙️
