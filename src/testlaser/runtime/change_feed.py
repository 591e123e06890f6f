# src/testlaser/runtime/change_feed.py
"""
Filters, holds and debounces file-change notifications for watch mode.
"""
import asyncio
from pathlib import Path

import structlog
from attrs import define, field

from testlaser.telemetry import StructLogger

log: StructLogger = structlog.get_logger("runtime.change_feed")


@define(frozen=True, slots=True)
class ChangeEvent:
    """A single file-change notification. Only the path matters."""
    path: str = field()


class ChangeFilter:
    """Rejects paths the tool itself writes, so runs cannot retrigger themselves."""

    def __init__(self, project_dir: Path, cache_file: Path, ignore_dirs: tuple[str, ...] | list[str]):
        self.project_dir = project_dir.resolve()
        self.cache_file = cache_file.resolve()
        self.ignore_dirs = frozenset(ignore_dirs)

    def accepts(self, path: str) -> bool:
        candidate = Path(path)
        if not candidate.is_absolute():
            candidate = self.project_dir / candidate
        candidate = candidate.resolve()

        # Covers the cache file and its temporary sibling.
        if candidate.parent == self.cache_file.parent and candidate.name.startswith(self.cache_file.name):
            return False
        try:
            relative = candidate.relative_to(self.project_dir)
        except ValueError:
            return True
        return not any(part in self.ignore_dirs for part in relative.parts)


class ChangeFeed:
    """
    Queue of qualifying change events with pause/resume and a debounced wait.

    While paused, accepted events are held rather than dropped and are
    released into the queue on resume.
    """

    def __init__(self, change_filter: ChangeFilter, debounce_seconds: float):
        self.change_filter = change_filter
        self.debounce_seconds = debounce_seconds
        self._queue: asyncio.Queue[ChangeEvent] = asyncio.Queue()
        self._held: list[ChangeEvent] = []
        self._paused = False

    @property
    def is_paused(self) -> bool:
        return self._paused

    @property
    def pending(self) -> int:
        return self._queue.qsize() + len(self._held)

    def submit(self, event: ChangeEvent) -> bool:
        """Accepts an event from the change source. Must run on the event loop thread."""
        if not self.change_filter.accepts(event.path):
            log.debug("Ignoring change to excluded path", path=event.path)
            return False
        if self._paused:
            self._held.append(event)
            return True
        self._queue.put_nowait(event)
        return True

    def pause(self) -> None:
        log.debug("Pausing change delivery")
        self._paused = True

    def resume(self) -> None:
        log.debug("Resuming change delivery", held=len(self._held))
        self._paused = False
        held, self._held = self._held, []
        for event in held:
            self._queue.put_nowait(event)

    async def wait_for_trigger(self) -> list[ChangeEvent]:
        """
        Waits for a change, then for a quiet period with no further changes.

        Every change arriving during the quiet period restarts it. Returns
        the whole batch in arrival order.
        """
        batch = [await self._queue.get()]
        loop = asyncio.get_running_loop()
        quiet = asyncio.Event()
        handle: asyncio.TimerHandle | None = None

        def _arm() -> None:
            nonlocal handle
            if handle is not None:
                handle.cancel()
            handle = loop.call_later(self.debounce_seconds, quiet.set)

        _arm()
        tasks: set[asyncio.Task] = set()
        try:
            while not quiet.is_set():
                get_task = asyncio.create_task(self._queue.get())
                quiet_task = asyncio.create_task(quiet.wait())
                tasks = {get_task, quiet_task}
                done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
                for task in pending:
                    task.cancel()
                if get_task in done:
                    batch.append(get_task.result())
                    _arm()
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            if handle is not None:
                handle.cancel()

        log.debug("Debounced change batch ready", changes=len(batch), delay=self.debounce_seconds)
        return batch


# 🔼⚙️
