#
# src/testlaser/aggregator.py
#
"""
Folds decoded runner events into running counters and a final RunResult.

One RunAggregator lives for exactly one run. It owns every piece of
mutable run state (active tests, buffered diagnostics, outcome lists) so
the whole pipeline can be exercised without a real subprocess.
"""

import time
from collections.abc import Callable, Iterable

import structlog
from attrs import define, field

from testlaser.events import (
    DiagnosticEvent,
    DoneEvent,
    Event,
    GroupEvent,
    TestDoneEvent,
    TestIdentity,
    TestStartEvent,
)
from testlaser.telemetry import StructLogger

log: StructLogger = structlog.get_logger("aggregator")

NO_DIAGNOSTIC = "No diagnostic captured"
# Flutter frames exceptions as "══╡ EXCEPTION CAUGHT BY FLUTTER TEST FRAMEWORK ╞══".
EXCEPTION_MARKER = "EXCEPTION CAUGHT BY"
STACK_MARKER = "When the exception was thrown, this was the stack"


def extract_primary_error(text: str) -> str:
    """
    Returns the short, assertion-level part of a runner diagnostic.

    The primary error is the block of lines following the first exception
    marker line, up to the first blank line or the stack-trace marker. Text
    without a marker is returned unchanged.
    """
    lines = text.splitlines()
    for index, line in enumerate(lines):
        if EXCEPTION_MARKER not in line:
            continue
        body: list[str] = []
        for detail in lines[index + 1 :]:
            if not detail.strip() or STACK_MARKER in detail:
                break
            body.append(detail.rstrip())
        primary = "\n".join(body).strip()
        return primary or text
    return text


@define(frozen=True, slots=True)
class RunSnapshot:
    """Immutable point-in-time view of a run's counters."""

    passed: int = field(default=0)
    failed: int = field(default=0)
    skipped: int = field(default=0)
    total_expected: int = field(default=0)
    elapsed: float = field(default=0.0)

    @property
    def completed(self) -> int:
        return self.passed + self.failed + self.skipped

    @property
    def progress(self) -> float:
        """Completion fraction, clamped to 1.0 when a runner over-reports."""
        if self.total_expected <= 0:
            return 0.0
        return min(1.0, self.completed / self.total_expected)


@define(frozen=True, slots=True)
class FailureRecord:
    test: TestIdentity = field()
    raw_error: str = field()
    stack_trace: str | None = field(default=None)

    @property
    def primary_error(self) -> str:
        return extract_primary_error(self.raw_error)


@define(frozen=True, slots=True)
class RunResult:
    """Terminal outcome of one orchestrated run."""

    snapshot: RunSnapshot = field()
    exit_code: int = field()
    duration: float = field()
    total_tests: int = field(default=0)
    failures: tuple[FailureRecord, ...] = field(factory=tuple)
    passed: tuple[TestIdentity, ...] = field(factory=tuple)
    skipped: tuple[TestIdentity, ...] = field(factory=tuple)
    incomplete: tuple[TestIdentity, ...] = field(factory=tuple)
    launched: bool = field(default=True)

    @property
    def passed_count(self) -> int:
        return self.snapshot.passed

    @property
    def failed_count(self) -> int:
        return self.snapshot.failed

    @property
    def skipped_count(self) -> int:
        return self.snapshot.skipped

    @property
    def observed_count(self) -> int:
        return self.snapshot.completed

    @property
    def crashed(self) -> bool:
        """Non-zero exit without a single observed test."""
        return self.launched and self.exit_code != 0 and self.observed_count == 0

    @property
    def success(self) -> bool:
        return self.exit_code == 0 and not self.failures

    @classmethod
    def nothing_to_run(cls) -> "RunResult":
        return cls(snapshot=RunSnapshot(), exit_code=0, duration=0.0, launched=False)


class RunAggregator:
    """Consumes events for one run and produces snapshots and a RunResult."""

    def __init__(self, expected_total: int = 0, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._started_at = clock()
        self._estimate = max(0, expected_total)
        self._discovered_total = 0
        self._active: dict[int, TestIdentity] = {}
        self._diagnostics: dict[int, list[DiagnosticEvent]] = {}
        self._passed: list[TestIdentity] = []
        self._skipped: list[TestIdentity] = []
        self._failures: list[FailureRecord] = []
        self._reported_success: bool | None = None
        self._finalized = False

    @property
    def discovered_total(self) -> int:
        return self._discovered_total

    @property
    def total_expected(self) -> int:
        return max(self._estimate, self._discovered_total)

    @property
    def reported_success(self) -> bool | None:
        return self._reported_success

    def snapshot(self) -> RunSnapshot:
        return RunSnapshot(
            passed=len(self._passed),
            failed=len(self._failures),
            skipped=len(self._skipped),
            total_expected=self.total_expected,
            elapsed=self._clock() - self._started_at,
        )

    def apply(self, event: Event) -> RunSnapshot:
        """Applies one event and returns the resulting snapshot."""
        if self._finalized:
            raise RuntimeError("Cannot apply events to a finalized aggregator")

        if isinstance(event, GroupEvent):
            # Nested groups are already counted in their root's rollup.
            if event.is_root and event.test_count:
                self._discovered_total += event.test_count
        elif isinstance(event, TestStartEvent):
            self._active[event.test.id] = event.test
        elif isinstance(event, DiagnosticEvent):
            self._buffer_diagnostic(event)
        elif isinstance(event, TestDoneEvent):
            self._complete(event)
        elif isinstance(event, DoneEvent):
            self._reported_success = event.success
        return self.snapshot()

    def apply_all(self, events: Iterable[Event]) -> RunSnapshot:
        snapshot = self.snapshot()
        for event in events:
            snapshot = self.apply(event)
        return snapshot

    def _buffer_diagnostic(self, event: DiagnosticEvent) -> None:
        if event.test_id not in self._active:
            log.debug("Diagnostic for inactive test ignored", test_id=event.test_id, kind=event.kind)
            return
        self._diagnostics.setdefault(event.test_id, []).append(event)

    def _complete(self, event: TestDoneEvent) -> None:
        identity = self._active.pop(event.test_id, None)
        diagnostics = self._diagnostics.pop(event.test_id, [])
        if identity is None:
            log.debug("testDone for unknown test ignored", test_id=event.test_id)
            return

        if event.hidden:
            return
        if event.skipped:
            self._skipped.append(identity)
        elif event.result == "success":
            self._passed.append(identity)
        elif event.is_failure:
            raw_error, stack_trace = self._select_diagnostic(diagnostics)
            self._failures.append(FailureRecord(test=identity, raw_error=raw_error, stack_trace=stack_trace))

    @staticmethod
    def _select_diagnostic(diagnostics: list[DiagnosticEvent]) -> tuple[str, str | None]:
        errors = [d for d in diagnostics if d.kind == "error"]
        stack_trace = errors[0].stack_trace if errors else None

        for diagnostic in diagnostics:
            if EXCEPTION_MARKER in diagnostic.text:
                return diagnostic.text, stack_trace
        if errors:
            return errors[0].text, stack_trace
        if diagnostics:
            return diagnostics[0].text, stack_trace
        return NO_DIAGNOSTIC, stack_trace

    def finalize(self, exit_code: int) -> RunResult:
        """Builds the RunResult. Must be called once, after the stream is drained."""
        if self._finalized:
            raise RuntimeError("RunAggregator.finalize() called twice")
        self._finalized = True

        snapshot = self.snapshot()
        incomplete = tuple(self._active.values())
        if incomplete:
            log.debug(
                "Tests started but never finished",
                count=len(incomplete),
                tests=[t.name for t in incomplete],
            )
        if self.total_expected and snapshot.completed > self.total_expected:
            log.debug(
                "Runner reported more completions than expected",
                completed=snapshot.completed,
                total_expected=self.total_expected,
            )

        return RunResult(
            snapshot=snapshot,
            exit_code=exit_code,
            duration=snapshot.elapsed,
            total_tests=self._discovered_total or self._estimate,
            failures=tuple(self._failures),
            passed=tuple(self._passed),
            skipped=tuple(self._skipped),
            incomplete=incomplete,
        )


# 🔼⚙️
