# src/testlaser/runtime/watch.py

"""
Watch-mode driver: alternates full and failed-only runs on file changes
until a full run passes.
"""

from pathlib import Path
from typing import Protocol

import structlog

from testlaser.aggregator import RunResult
from testlaser.exceptions import ProcessCrashError, RerunSelectionError
from testlaser.reporting import RunReporter
from testlaser.runtime.change_feed import ChangeFeed, ChangeFilter
from testlaser.runtime.monitor import ChangeMonitor
from testlaser.runtime.orchestrator import RunOrchestrator, RunRequest
from testlaser.state import WatchSession, WatchState
from testlaser.telemetry import StructLogger

log: StructLogger = structlog.get_logger("runtime.watch")


class RunExecutor(Protocol):
    async def run(self, request: RunRequest) -> RunResult: ...


class WatchDriver:
    """
    Runs the NeedsFullRun / NeedsFailedRun state machine.

    A failed-only run that passes re-enters the loop immediately for a
    verification full run; every other outcome waits for the next debounced
    change. Only a passing full run ends the session.
    """

    def __init__(
        self,
        executor: RunExecutor,
        feed: ChangeFeed,
        reporter: RunReporter,
        args: tuple[str, ...] = (),
        session: WatchSession | None = None,
    ):
        self.executor = executor
        self.feed = feed
        self.reporter = reporter
        self.args = tuple(args)
        self.session = session or WatchSession()

    async def run(self) -> int:
        """Drives runs until a full run passes. Returns the process exit code."""
        log.info("Watch session started", state=self.session.state.name, emoji_key="watch")
        try:
            while True:
                if await self._run_cycle():
                    log.info("Full run passed, ending watch session", runs=self.session.run_count)
                    self.reporter.watch_passed()
                    return 0

                self.reporter.watch_waiting(self.session.state)
                batch = await self.feed.wait_for_trigger()
                paths = [event.path for event in batch]
                self.session.record_trigger(paths)
                self.reporter.watch_triggered(paths, self.session.state)
        except ProcessCrashError as e:
            log.error("Test runner crashed, leaving watch mode", exit_code=e.exit_code)
            self.reporter.report_crash(e)
            return 1
        except RerunSelectionError as e:
            log.error("Cannot select failed tests, leaving watch mode", error=str(e))
            self.reporter.report_error(e)
            return 1

    async def _run_cycle(self) -> bool:
        """Executes the run(s) one trigger calls for. True means the session is done."""
        self.feed.pause()
        try:
            while True:
                if self.session.state is WatchState.NEEDS_FULL_RUN:
                    result = await self._execute(RunRequest.full(self.args))
                    if result.success:
                        return True
                    self.session.transition(WatchState.NEEDS_FAILED_RUN)
                    return False

                result = await self._execute(RunRequest.failed_only())
                if not result.success:
                    return False
                # Failed tests now pass: verify with a full run right away.
                self.session.transition(WatchState.NEEDS_FULL_RUN)
        finally:
            self.feed.resume()

    async def _execute(self, request: RunRequest) -> RunResult:
        self.session.record_run()
        log.debug(
            "Starting watch run",
            run=self.session.run_count,
            rerun_failed=request.rerun_failed,
        )
        return await self.executor.run(request)


async def run_watch(
    orchestrator: RunOrchestrator,
    reporter: RunReporter,
    args: tuple[str, ...] = (),
    roots: list[Path] | None = None,
) -> int:
    """Wires the filesystem monitor, change feed and driver around an orchestrator."""
    config = orchestrator.config
    project_dir = orchestrator.project_dir
    change_filter = ChangeFilter(
        project_dir=project_dir,
        cache_file=orchestrator.cache_store.path,
        ignore_dirs=config.watch.ignore_dirs,
    )
    feed = ChangeFeed(change_filter, debounce_seconds=config.watch.debounce_seconds)
    watch_roots = roots or [project_dir / p for p in config.watch.paths] or [project_dir]
    monitor = ChangeMonitor(feed, watch_roots)

    monitor.start()
    try:
        driver = WatchDriver(orchestrator, feed, reporter, args=args)
        return await driver.run()
    finally:
        monitor.stop()


# 🔼⚙️
