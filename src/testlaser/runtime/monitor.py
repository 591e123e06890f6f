# src/testlaser/runtime/monitor.py

"""
Watchdog-backed source of file-change notifications for watch mode.
"""

import asyncio
from pathlib import Path

import structlog
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from testlaser.runtime.change_feed import ChangeEvent, ChangeFeed
from testlaser.telemetry import StructLogger

log: StructLogger = structlog.get_logger("runtime.monitor")


class _ForwardingHandler(FileSystemEventHandler):
    """Runs on the observer thread; hands events over to the event loop."""

    def __init__(self, feed: ChangeFeed, loop: asyncio.AbstractEventLoop):
        self._feed = feed
        self._loop = loop

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type in ("opened", "closed_no_write"):
            return
        paths = [event.src_path]
        dest_path = getattr(event, "dest_path", "")
        if dest_path:
            paths.append(dest_path)
        for path in paths:
            if isinstance(path, bytes):
                path = path.decode("utf-8", errors="replace")
            self._loop.call_soon_threadsafe(self._feed.submit, ChangeEvent(path=path))


class ChangeMonitor:
    """Schedules a recursive watchdog observer for each watched root."""

    def __init__(self, feed: ChangeFeed, roots: list[Path]):
        self.feed = feed
        self.roots = roots
        self._observer: Observer | None = None

    @property
    def is_running(self) -> bool:
        return self._observer is not None and self._observer.is_alive()

    def start(self) -> None:
        loop = asyncio.get_running_loop()
        handler = _ForwardingHandler(self.feed, loop)
        observer = Observer()
        for root in self.roots:
            observer.schedule(handler, str(root), recursive=True)
            log.info("File watcher scheduled", path=str(root), emoji_key="watch")
        observer.start()
        self._observer = observer

    def stop(self) -> None:
        if self._observer is None:
            return
        observer, self._observer = self._observer, None
        if observer.is_alive():
            observer.stop()
            observer.join()
        log.debug("File watcher stopped")


# 🔼⚙️
