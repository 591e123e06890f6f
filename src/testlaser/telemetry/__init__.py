#
# src/testlaser/telemetry/__init__.py
#
"""
Logging setup for testlaser.
"""

from .logger import StructLogger, setup_logging

__all__ = ["StructLogger", "setup_logging"]

# 🔼⚙️
