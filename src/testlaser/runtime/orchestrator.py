# src/testlaser/runtime/orchestrator.py

"""
Runs the external test process once, from argument building to the final
report and cache update.
"""

import asyncio
import time
from collections.abc import Callable
from enum import Enum, auto
from pathlib import Path

import structlog
from attrs import define, field

from testlaser.aggregator import RunAggregator, RunResult
from testlaser.cache import CacheRecord, RunCacheStore, select_rerun_targets
from testlaser.config import TestLaserConfig
from testlaser.events import decode_object, parse_json_object
from testlaser.exceptions import ProcessCrashError
from testlaser.progress import NullProgressSink, ProgressSink
from testlaser.reporting import RunReporter
from testlaser.telemetry import StructLogger
from testlaser.testing import (
    SubprocessLauncher,
    TestProcess,
    TestProcessLauncher,
    build_command,
    name_filter_args,
    rerun_args,
)

log: StructLogger = structlog.get_logger("runtime.orchestrator")

ProgressFactory = Callable[[float], ProgressSink]


class RunPhase(Enum):
    IDLE = auto()
    STARTING = auto()
    STREAMING = auto()
    DRAINING = auto()
    FINALIZING = auto()
    DONE = auto()


@define(frozen=True, slots=True)
class RunRequest:
    """Everything one invocation asks for."""

    args: tuple[str, ...] = field(factory=tuple, converter=tuple)
    filter_names: tuple[str, ...] = field(factory=tuple, converter=tuple)
    rerun_failed: bool = field(default=False)
    debug: bool = field(default=False)

    @classmethod
    def full(cls, args: tuple[str, ...] = (), debug: bool = False) -> "RunRequest":
        return cls(args=args, debug=debug)

    @classmethod
    def failed_only(cls, debug: bool = False) -> "RunRequest":
        return cls(rerun_failed=True, debug=debug)


def _null_progress(previous_duration: float) -> ProgressSink:
    return NullProgressSink()


class RunOrchestrator:
    """Owns one end-to-end execution of the external test runner."""

    def __init__(
        self,
        project_dir: Path,
        config: TestLaserConfig,
        reporter: RunReporter,
        launcher: TestProcessLauncher | None = None,
        progress_factory: ProgressFactory | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.project_dir = project_dir
        self.config = config
        self.reporter = reporter
        self.launcher = launcher or SubprocessLauncher()
        self.progress_factory = progress_factory or _null_progress
        self.clock = clock
        self.cache_store = RunCacheStore(project_dir / config.cache.file_name)
        self.phase = RunPhase.IDLE

    def _set_phase(self, phase: RunPhase) -> None:
        log.debug("Run phase changed", old_phase=self.phase.name, new_phase=phase.name)
        self.phase = phase

    async def run(self, request: RunRequest) -> RunResult:
        """
        Executes one run and returns its result.

        Raises:
            RerunSelectionError: Rerun requested but no failure maps to a file.
            ProcessCrashError: The runner failed without reporting any test.
        """
        run_log = log.bind(rerun_failed=request.rerun_failed, debug=request.debug)
        self._set_phase(RunPhase.STARTING)
        try:
            cache_load = self.cache_store.load()
            if not cache_load.ok:
                run_log.info("Proceeding without run history", cache_error=cache_load.error, emoji_key="cache")
            record = cache_load.record

            if request.rerun_failed:
                if not record.failed_tests:
                    run_log.info("No failed tests cached, nothing to rerun")
                    self.reporter.nothing_to_rerun()
                    return RunResult.nothing_to_run()
                targets = select_rerun_targets(record, self.project_dir)
                args = rerun_args(targets.file_paths, targets.pattern)
                estimate = targets.test_count
                self.reporter.announce_rerun(targets.test_count, len(targets.files))
            else:
                args = [*request.args, *name_filter_args(request.filter_names)]
                estimate = record.total_tests

            command = build_command(self.config.runner, args)
            process = await self.launcher.start(command, self.project_dir)

            aggregator = RunAggregator(expected_total=estimate, clock=self.clock)
            sink = NullProgressSink() if request.debug else self.progress_factory(float(record.last_duration_seconds))
            stderr_buffer: list[str] = []
            exit_code = await self._stream(process, aggregator, sink, stderr_buffer, request.debug)

            self._set_phase(RunPhase.FINALIZING)
            result = aggregator.finalize(exit_code)
            run_log.info(
                "Run finished",
                exit_code=exit_code,
                passed=result.passed_count,
                failed=result.failed_count,
                skipped=result.skipped_count,
                duration=round(result.duration, 2),
            )

            if result.crashed:
                run_log.error("Test runner exited before running any tests", exit_code=exit_code)
                raise ProcessCrashError(
                    f"The command exited with code {exit_code} before running any tests.",
                    exit_code=exit_code,
                    stderr_lines=stderr_buffer,
                    result=result,
                )

            # Rerun runs only see a subset; the failure list must survive them.
            if not request.rerun_failed:
                write = self.cache_store.write(CacheRecord.from_result(result))
                if not write.ok:
                    run_log.warning("Run history not saved", cache_error=write.error, emoji_key="cache")

            self.reporter.report(result)
            return result
        finally:
            self._set_phase(RunPhase.DONE)

    async def _stream(
        self,
        process: TestProcess,
        aggregator: RunAggregator,
        sink: ProgressSink,
        stderr_buffer: list[str],
        debug: bool,
    ) -> int:
        self._set_phase(RunPhase.STREAMING)
        sink.start(aggregator.snapshot())
        stdout_task = asyncio.create_task(self._consume_stdout(process, aggregator, sink, debug))
        stderr_task = asyncio.create_task(self._consume_stderr(process, stderr_buffer, debug))
        exit_code: int | None = None
        try:
            await stdout_task
            self._set_phase(RunPhase.DRAINING)
            exit_code = await process.wait()
            await stderr_task
            return exit_code
        finally:
            for task in (stdout_task, stderr_task):
                if not task.done():
                    task.cancel()
            await asyncio.gather(stdout_task, stderr_task, return_exceptions=True)
            if exit_code is None:
                # Streaming failed or was cancelled: the child must not outlive the run.
                log.warning("Stopping test process after aborted stream")
                process.kill()
                await process.wait()
            sink.stop()

    async def _consume_stdout(
        self, process: TestProcess, aggregator: RunAggregator, sink: ProgressSink, debug: bool
    ) -> None:
        async for line in process.stdout_lines():
            data = parse_json_object(line)
            if data is None:
                continue
            if debug:
                self.reporter.echo_event(data)
            event = decode_object(data)
            if event is None:
                continue
            sink.update(aggregator.apply(event))

    async def _consume_stderr(self, process: TestProcess, buffer: list[str], debug: bool) -> None:
        async for line in process.stderr_lines():
            if debug:
                self.reporter.echo_stderr(line)
            else:
                buffer.append(line)


# 🔼⚙️
