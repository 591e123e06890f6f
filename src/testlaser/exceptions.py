#
# src/testlaser/exceptions.py
#
"""
Exception hierarchy for testlaser.
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from testlaser.aggregator import RunResult


class TestLaserError(Exception):
    """Base class for all testlaser errors."""

    __test__ = False


class ConfigurationError(TestLaserError):
    """Raised when the configuration file or a runner selection is invalid."""

    def __init__(self, message: str, path: str | None = None, details: Exception | None = None):
        self.path = path
        self.details = details
        full_message = message
        if path:
            full_message += f" (Config: '{path}')"
        super().__init__(full_message)
        if details and hasattr(self, "add_note"):
            self.add_note(f"Original error: {type(details).__name__}: {details}")


class RerunSelectionError(TestLaserError):
    """Raised when failed tests cannot be mapped back to any test file."""

    def __init__(self, message: str, failed_count: int = 0):
        self.failed_count = failed_count
        super().__init__(message)


class ProcessCrashError(TestLaserError):
    """
    Raised when the external test process failed before running any test.

    This is distinct from a test failure: the process exited non-zero
    without reporting a single test, or could not be started at all.
    """

    def __init__(
        self,
        message: str,
        exit_code: int,
        stderr_lines: list[str] | None = None,
        result: "RunResult | None" = None,
    ):
        self.exit_code = exit_code
        self.stderr_lines = list(stderr_lines or [])
        self.result = result
        super().__init__(message)


# 🔼⚙️
