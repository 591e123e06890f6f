#
# src/testlaser/progress.py
#
"""
Live progress display fed by aggregator snapshots.
"""

from typing import Protocol, runtime_checkable

import structlog
from rich.console import Console
from rich.progress import BarColumn, Progress, TaskID, TaskProgressColumn, TextColumn

from testlaser.aggregator import RunSnapshot
from testlaser.telemetry import StructLogger

log: StructLogger = structlog.get_logger("progress")


def format_duration(seconds: float) -> str:
    """Formats seconds as MM:SS (minutes wrap at one hour)."""
    total = max(0, int(seconds))
    minutes, secs = divmod(total, 60)
    return f"{minutes % 60:02d}:{secs:02d}"


@runtime_checkable
class ProgressSink(Protocol):
    """Receives snapshots while a run streams. Must never raise."""

    def start(self, snapshot: RunSnapshot) -> None: ...

    def update(self, snapshot: RunSnapshot) -> None: ...

    def stop(self) -> None: ...


class NullProgressSink:
    """Discards every update. Used in debug mode and non-interactive output."""

    def start(self, snapshot: RunSnapshot) -> None:
        pass

    def update(self, snapshot: RunSnapshot) -> None:
        pass

    def stop(self) -> None:
        pass


class RichProgressSink:
    """Sticky footer with counters, elapsed vs. previous run time and a bar."""

    def __init__(self, console: Console | None = None, previous_duration: float = 0.0):
        self.console = console or Console()
        self.previous_duration = previous_duration
        self._progress: Progress | None = None
        self._task: TaskID | None = None

    def _status_text(self, snapshot: RunSnapshot) -> str:
        return (
            f"Passed: [green]{snapshot.passed}[/], "
            f"Failed: [red]{snapshot.failed}[/], "
            f"Skipped: [yellow]{snapshot.skipped}[/], "
            f"Total: {snapshot.total_expected} | "
            f"Time: {format_duration(snapshot.elapsed)} / {format_duration(self.previous_duration)}"
        )

    def start(self, snapshot: RunSnapshot) -> None:
        self._progress = Progress(
            TextColumn("{task.fields[status]}"),
            BarColumn(bar_width=None, complete_style="green", finished_style="green"),
            TaskProgressColumn(),
            console=self.console,
            transient=True,
            expand=True,
        )
        self._task = self._progress.add_task("tests", total=None, status=self._status_text(snapshot))
        self._progress.start()
        self.update(snapshot)

    def update(self, snapshot: RunSnapshot) -> None:
        if self._progress is None or self._task is None:
            return
        total = snapshot.total_expected or None
        completed = snapshot.completed if total is None else min(snapshot.completed, total)
        self._progress.update(self._task, total=total, completed=completed, status=self._status_text(snapshot))

    def stop(self) -> None:
        if self._progress is None:
            return
        try:
            self._progress.stop()
        finally:
            self._progress = None
            self._task = None


# 🔼⚙️
