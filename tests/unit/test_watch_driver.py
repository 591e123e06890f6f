# tests/unit/test_watch_driver.py

"""Unit tests for the watch-mode driver and its change feed."""

import asyncio
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from testlaser.aggregator import FailureRecord, RunResult, RunSnapshot
from testlaser.events import TestIdentity
from testlaser.exceptions import ProcessCrashError, RerunSelectionError
from testlaser.runtime.change_feed import ChangeEvent, ChangeFeed, ChangeFilter
from testlaser.runtime.orchestrator import RunRequest
from testlaser.runtime.watch import WatchDriver
from testlaser.state import WatchSession, WatchState


def passed() -> RunResult:
    return RunResult(snapshot=RunSnapshot(passed=1, total_expected=1), exit_code=0, duration=0.0)


def failed() -> RunResult:
    failure = FailureRecord(test=TestIdentity(id=1, name="broken"), raw_error="boom")
    return RunResult(
        snapshot=RunSnapshot(failed=1, total_expected=1),
        exit_code=1,
        duration=0.0,
        failures=(failure,),
    )


class ScriptedExecutor:
    """Returns queued outcomes and records each request."""

    def __init__(self, feed: ChangeFeed, *outcomes: RunResult | Exception):
        self.feed = feed
        self.outcomes = list(outcomes)
        self.requests: list[RunRequest] = []
        self.paused_during_run: list[bool] = []
        self.during_run = None

    async def run(self, request: RunRequest) -> RunResult:
        self.requests.append(request)
        self.paused_during_run.append(self.feed.is_paused)
        if self.during_run:
            self.during_run()
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture
def change_filter(tmp_path: Path) -> ChangeFilter:
    return ChangeFilter(
        project_dir=tmp_path,
        cache_file=tmp_path / ".testlaser.cache",
        ignore_dirs=("build", ".dart_tool"),
    )


@pytest.fixture
def feed(change_filter: ChangeFilter) -> ChangeFeed:
    return ChangeFeed(change_filter, debounce_seconds=0.01)


class TestChangeFilter:
    def test_accepts_source_files(self, change_filter: ChangeFilter, tmp_path: Path) -> None:
        assert change_filter.accepts(str(tmp_path / "lib" / "main.dart"))
        assert change_filter.accepts("test/widget_test.dart")

    def test_rejects_cache_file_and_temp_sibling(self, change_filter: ChangeFilter, tmp_path: Path) -> None:
        assert not change_filter.accepts(str(tmp_path / ".testlaser.cache"))
        assert not change_filter.accepts(str(tmp_path / ".testlaser.cache.tmp"))

    def test_rejects_ignored_directories(self, change_filter: ChangeFilter, tmp_path: Path) -> None:
        assert not change_filter.accepts(str(tmp_path / "build" / "app.dill"))
        assert not change_filter.accepts(str(tmp_path / ".dart_tool" / "package_config.json"))

    def test_paths_outside_project_are_accepted(self, change_filter: ChangeFilter, tmp_path: Path) -> None:
        assert change_filter.accepts(str(tmp_path.parent / "shared" / "build" / "lib.dart"))


@pytest.mark.asyncio
class TestChangeFeed:
    async def test_filtered_events_are_not_queued(self, feed: ChangeFeed, tmp_path: Path) -> None:
        assert not feed.submit(ChangeEvent(str(tmp_path / ".testlaser.cache")))
        assert feed.pending == 0

    async def test_events_are_held_while_paused(self, feed: ChangeFeed) -> None:
        feed.pause()
        assert feed.submit(ChangeEvent("lib/a.dart"))
        assert feed.pending == 1

        feed.resume()
        batch = await asyncio.wait_for(feed.wait_for_trigger(), timeout=1)

        assert [e.path for e in batch] == ["lib/a.dart"]

    async def test_burst_collapses_into_one_batch(self, feed: ChangeFeed) -> None:
        for name in ("a", "b", "c"):
            feed.submit(ChangeEvent(f"lib/{name}.dart"))

        batch = await asyncio.wait_for(feed.wait_for_trigger(), timeout=1)

        assert [e.path for e in batch] == ["lib/a.dart", "lib/b.dart", "lib/c.dart"]
        assert feed.pending == 0

    async def test_changes_during_quiet_period_extend_the_batch(self, change_filter: ChangeFilter) -> None:
        feed = ChangeFeed(change_filter, debounce_seconds=0.05)
        feed.submit(ChangeEvent("lib/first.dart"))
        loop = asyncio.get_running_loop()
        loop.call_later(0.02, feed.submit, ChangeEvent("lib/second.dart"))

        batch = await asyncio.wait_for(feed.wait_for_trigger(), timeout=1)

        assert [e.path for e in batch] == ["lib/first.dart", "lib/second.dart"]

    async def test_waits_until_a_change_arrives(self, feed: ChangeFeed) -> None:
        waiter = asyncio.create_task(feed.wait_for_trigger())
        await asyncio.sleep(0.03)
        assert not waiter.done()

        feed.submit(ChangeEvent("lib/late.dart"))
        batch = await asyncio.wait_for(waiter, timeout=1)

        assert [e.path for e in batch] == ["lib/late.dart"]


@pytest.mark.asyncio
class TestWatchDriver:
    async def test_passing_first_run_ends_session(self, feed: ChangeFeed) -> None:
        reporter = MagicMock()
        executor = ScriptedExecutor(feed, passed())
        driver = WatchDriver(executor, feed, reporter, args=("test/a_test.dart",))

        assert await driver.run() == 0

        assert executor.requests == [RunRequest.full(("test/a_test.dart",))]
        reporter.watch_passed.assert_called_once()
        reporter.watch_waiting.assert_not_called()

    async def test_failed_run_then_verification_full_run(self, feed: ChangeFeed) -> None:
        reporter = MagicMock()
        executor = ScriptedExecutor(feed, failed(), passed(), passed())
        session = WatchSession()
        driver = WatchDriver(executor, feed, reporter, session=session)

        feed.submit(ChangeEvent("lib/fix.dart"))
        assert await asyncio.wait_for(driver.run(), timeout=2) == 0

        assert [r.rerun_failed for r in executor.requests] == [False, True, False]
        assert session.transitions == [
            (WatchState.NEEDS_FULL_RUN, WatchState.NEEDS_FAILED_RUN),
            (WatchState.NEEDS_FAILED_RUN, WatchState.NEEDS_FULL_RUN),
        ]
        assert session.run_count == 3
        assert session.trigger_count == 1
        assert session.last_changed_paths == ["lib/fix.dart"]
        reporter.watch_waiting.assert_called_once_with(WatchState.NEEDS_FAILED_RUN)

    async def test_failing_rerun_stays_on_failed_tests(self, feed: ChangeFeed) -> None:
        reporter = MagicMock()
        executor = ScriptedExecutor(feed, failed(), failed(), passed(), passed())
        session = WatchSession()
        driver = WatchDriver(executor, feed, reporter, session=session)

        async def feed_changes() -> None:
            while session.run_count < 4:
                if feed.pending == 0:
                    feed.submit(ChangeEvent("lib/fix.dart"))
                await asyncio.sleep(0.02)

        changer = asyncio.create_task(feed_changes())
        try:
            assert await asyncio.wait_for(driver.run(), timeout=2) == 0
        finally:
            changer.cancel()

        assert [r.rerun_failed for r in executor.requests] == [False, True, True, False]
        assert session.trigger_count == 2

    async def test_failed_full_run_waits_for_a_change(self, feed: ChangeFeed) -> None:
        executor = ScriptedExecutor(feed, failed())
        driver = WatchDriver(executor, feed, MagicMock())

        task = asyncio.create_task(driver.run())
        await asyncio.sleep(0.05)

        assert not task.done()
        assert len(executor.requests) == 1
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    async def test_feed_is_paused_during_runs(self, feed: ChangeFeed) -> None:
        executor = ScriptedExecutor(feed, failed(), passed(), passed())
        executor.during_run = lambda: feed.submit(ChangeEvent("lib/generated.dart"))
        driver = WatchDriver(executor, feed, MagicMock())

        # The change written during the first run triggers the rerun.
        assert await asyncio.wait_for(driver.run(), timeout=2) == 0

        assert executor.paused_during_run == [True, True, True]
        assert not feed.is_paused

    async def test_crash_exits_with_error(self, feed: ChangeFeed) -> None:
        reporter = MagicMock()
        crash = ProcessCrashError("exited", exit_code=1, stderr_lines=["boom"])
        driver = WatchDriver(ScriptedExecutor(feed, crash), feed, reporter)

        assert await driver.run() == 1

        reporter.report_crash.assert_called_once_with(crash)
        assert not feed.is_paused

    async def test_unselectable_failures_exit_with_error(self, feed: ChangeFeed) -> None:
        reporter = MagicMock()
        error = RerunSelectionError("no paths", failed_count=2)
        executor = ScriptedExecutor(feed, failed(), error)
        driver = WatchDriver(executor, feed, reporter)

        feed.submit(ChangeEvent("lib/fix.dart"))
        assert await asyncio.wait_for(driver.run(), timeout=2) == 1

        reporter.report_error.assert_called_once_with(error)
