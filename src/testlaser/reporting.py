# src/testlaser/reporting.py

"""
Human-facing output: run summaries, crash reports and watch-mode notices.
"""

import json
from pathlib import Path
from typing import Any, Protocol

import structlog
from rich.console import Console
from rich.markup import escape

from testlaser.aggregator import FailureRecord, RunResult
from testlaser.cache import display_path, uri_to_path
from testlaser.exceptions import ProcessCrashError, TestLaserError
from testlaser.progress import format_duration
from testlaser.state import WatchState
from testlaser.telemetry import StructLogger

log: StructLogger = structlog.get_logger("reporting")

TOOL_COMMAND = "testlaser run"
RULE = "-" * 50


def single_quote(text: str) -> str:
    """Wraps text in single quotes for a POSIX shell."""
    return "'" + text.replace("'", "'\\''") + "'"


def rerun_command(failure: FailureRecord, project_dir: Path | None = None) -> str | None:
    """The command line that re-executes exactly this failed test."""
    if not failure.test.source_location:
        return None
    path = uri_to_path(failure.test.source_location)
    if path is None:
        return None
    relative = display_path(path, project_dir)
    return f"{TOOL_COMMAND} {single_quote(relative)} --filter-by-name {single_quote(failure.test.name)}"


class RunReporter(Protocol):
    """Everything the orchestrator and watch driver tell the user."""

    def announce_rerun(self, test_count: int, file_count: int) -> None: ...

    def nothing_to_rerun(self) -> None: ...

    def report(self, result: RunResult) -> None: ...

    def report_crash(self, error: ProcessCrashError) -> None: ...

    def report_error(self, error: TestLaserError) -> None: ...

    def echo_event(self, data: dict[str, Any]) -> None: ...

    def echo_stderr(self, line: str) -> None: ...

    def watch_waiting(self, state: WatchState) -> None: ...

    def watch_triggered(self, paths: list[str], state: WatchState) -> None: ...

    def watch_passed(self) -> None: ...


class TerminalReporter:
    """Renders reports with a rich Console."""

    def __init__(self, console: Console | None = None, project_dir: Path | None = None):
        self.console = console or Console()
        self.project_dir = project_dir

    def announce_rerun(self, test_count: int, file_count: int) -> None:
        self.console.print(f"[yellow]Rerunning {test_count} failed tests across {file_count} files...[/]")

    def nothing_to_rerun(self) -> None:
        self.console.print("[yellow]No failed tests found in the last run. Nothing to rerun.[/]")

    def _print_failure(self, failure: FailureRecord) -> None:
        location = failure.test.source_location
        path = uri_to_path(location) if location else None
        file_name = path.name if path else "Unknown File"
        # Runners may join group names into the test name with commas.
        leaf_name = failure.test.name.split(",")[-1].strip()

        self.console.print(f"[red]\\[{escape(file_name)}] {escape(leaf_name)}[/]")
        self.console.print("  " + escape(failure.primary_error).replace("\n", "\n  "))

        command = rerun_command(failure, self.project_dir)
        if command:
            self.console.print("\n  To run this test again:")
            self.console.print(f"  [yellow]{escape(command)}[/]")
        self.console.print()

    def report(self, result: RunResult) -> None:
        self.console.print()
        self.console.print(RULE)
        self.console.print("[bold] Test Run Summary [/]")
        self.console.print(RULE)

        if result.failures:
            self.console.print("\n[bold red] FAILED TESTS: [/]\n")
            for failure in result.failures:
                self._print_failure(failure)

        total = max(result.total_tests, result.observed_count)
        self.console.print(
            f"[green]{result.passed_count} passed[/], "
            f"[red]{result.failed_count} failed[/], "
            f"[yellow]{result.skipped_count} skipped[/], "
            f"Total: {total}, Duration: {format_duration(result.duration)}"
        )
        self.console.print(RULE)

        if result.failures:
            self.console.print(f"To rerun only the failed tests, use: [yellow]`{TOOL_COMMAND} --rerun-failed`[/]")
            self.console.print(RULE)

    def report_crash(self, error: ProcessCrashError) -> None:
        self.console.print()
        self.console.print(RULE)
        self.console.print("[bold red] Test runner failed to start or crashed. [/]")
        self.console.print(escape(str(error)))

        if error.stderr_lines:
            self.console.print("\n[bold red]Error Output:[/]")
            for line in error.stderr_lines:
                self.console.print(escape(line))
        else:
            self.console.print("\nPossible reasons:")
            self.console.print(" - A problem with the project's dependencies or test setup.")
            self.console.print(' - No "test" directory found in the current folder.')
        self.console.print(RULE)

    def report_error(self, error: TestLaserError) -> None:
        self.console.print(f"[red]{escape(str(error))}[/]")

    def echo_event(self, data: dict[str, Any]) -> None:
        self.console.print("[DEBUG]", markup=False)
        self.console.print(json.dumps(data, indent=2), markup=False, highlight=False)

    def echo_stderr(self, line: str) -> None:
        self.console.print(f"[red]\\[TEST RUNNER ERROR] {escape(line)}[/]")

    def watch_waiting(self, state: WatchState) -> None:
        next_run = "failed tests" if state == WatchState.NEEDS_FAILED_RUN else "all tests"
        self.console.print(f"[dim]👀 Waiting for changes... (next: {next_run}, Ctrl+C to exit)[/]")

    def watch_triggered(self, paths: list[str], state: WatchState) -> None:
        shown = ", ".join(paths[:3])
        more = f" (+{len(paths) - 3} more)" if len(paths) > 3 else ""
        self.console.print(f"[dim]📝 Changed: {escape(shown)}{more}[/]")

    def watch_passed(self) -> None:
        self.console.print("[bold green]🎉 Full test suite passed. Leaving watch mode.[/]")


# 🔼⚙️
