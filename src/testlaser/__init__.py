#
# src/testlaser/__init__.py
#
"""
testlaser: a live progress front-end, run cache and watch driver for
machine-readable test runners.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("testlaser")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

__all__ = ["__version__"]

# 🔼⚙️
