#
# tests/unit/test_aggregator.py
#
"""Tests for folding runner events into snapshots and run results."""

import pytest
from conftest import done_line, error_line, group_line, print_line, start_line

from testlaser.aggregator import (
    NO_DIAGNOSTIC,
    RunAggregator,
    RunSnapshot,
    extract_primary_error,
)
from testlaser.events import decode_line


def fixed_clock():
    return 0.0


def run_lines(lines: list[str], expected_total: int = 0, exit_code: int = 0):
    aggregator = RunAggregator(expected_total=expected_total, clock=fixed_clock)
    for line in lines:
        event = decode_line(line)
        if event is not None:
            aggregator.apply(event)
    return aggregator.finalize(exit_code)


MIXED_RUN = [
    group_line(3),
    start_line(1, "passes", "file:///app/test/a_test.dart"),
    done_line(1, "success"),
    start_line(2, "fails", "file:///app/test/a_test.dart"),
    error_line(2, "expected true, got false"),
    done_line(2, "failure"),
    start_line(3, "is skipped", "file:///app/test/a_test.dart"),
    done_line(3, "success", skipped=True),
]


class TestRunAggregator:
    def test_mixed_outcomes(self) -> None:
        result = run_lines(MIXED_RUN, exit_code=1)

        assert (result.passed_count, result.failed_count, result.skipped_count) == (1, 1, 1)
        assert result.total_tests == 3
        assert [f.test.name for f in result.failures] == ["fails"]
        assert result.failures[0].primary_error == "expected true, got false"
        assert not result.success
        assert not result.crashed

    def test_same_events_give_identical_results(self) -> None:
        assert run_lines(MIXED_RUN, exit_code=1) == run_lines(MIXED_RUN, exit_code=1)

    def test_only_root_groups_count_towards_total(self) -> None:
        aggregator = RunAggregator(clock=fixed_clock)
        aggregator.apply(decode_line(group_line(4, group_id=1)))
        aggregator.apply(decode_line(group_line(2, parent_id=1, group_id=2)))
        aggregator.apply(decode_line(group_line(3, group_id=3)))
        assert aggregator.discovered_total == 7
        assert aggregator.snapshot().total_expected == 7

    def test_estimate_is_used_until_discovery_exceeds_it(self) -> None:
        aggregator = RunAggregator(expected_total=10, clock=fixed_clock)
        assert aggregator.apply(decode_line(group_line(4))).total_expected == 10
        assert aggregator.apply(decode_line(group_line(8, group_id=2))).total_expected == 12

    def test_hidden_tests_are_not_counted(self) -> None:
        result = run_lines(
            [
                start_line(1, "loading /app/test/a_test.dart"),
                done_line(1, "success", hidden=True),
                start_line(2, "real test"),
                done_line(2, "success"),
            ]
        )
        assert result.observed_count == 1
        assert [t.name for t in result.passed] == ["real test"]

    def test_counts_equal_distinct_non_hidden_done_events(self) -> None:
        result = run_lines(
            [
                start_line(1, "a"),
                done_line(1, "success"),
                done_line(1, "success"),  # duplicate completion
                done_line(99, "failure"),  # never started
                start_line(2, "b"),
                done_line(2, "error"),
            ],
            exit_code=1,
        )
        assert result.observed_count == 2

    def test_failure_without_diagnostic_uses_sentinel(self) -> None:
        result = run_lines([start_line(1, "silent"), done_line(1, "failure")], exit_code=1)
        assert result.failures[0].raw_error == NO_DIAGNOSTIC

    def test_diagnostic_after_done_is_ignored(self) -> None:
        result = run_lines(
            [start_line(1, "late"), done_line(1, "failure"), error_line(1, "too late")],
            exit_code=1,
        )
        assert result.failures[0].raw_error == NO_DIAGNOSTIC

    def test_marker_diagnostic_preferred_over_generic_error(self) -> None:
        dump = "══╡ EXCEPTION CAUGHT BY FLUTTER TEST FRAMEWORK ╞══\nExpected: exactly one\n  Actual: none\n\nmore"
        result = run_lines(
            [
                start_line(1, "widget"),
                print_line(1, dump),
                error_line(1, "Test failed. See exception logs above.", "#0 stack"),
                done_line(1, "failure"),
            ],
            exit_code=1,
        )
        failure = result.failures[0]
        assert failure.raw_error == dump
        assert failure.primary_error == "Expected: exactly one\n  Actual: none"
        assert failure.stack_trace == "#0 stack"

    def test_first_error_wins_without_marker(self) -> None:
        result = run_lines(
            [
                start_line(1, "t"),
                print_line(1, "some print"),
                error_line(1, "first"),
                error_line(1, "second"),
                done_line(1, "error"),
            ],
            exit_code=1,
        )
        assert result.failures[0].raw_error == "first"

    def test_started_but_unfinished_tests_are_incomplete(self) -> None:
        result = run_lines([start_line(1, "hangs"), start_line(2, "ok"), done_line(2, "success")])
        assert [t.name for t in result.incomplete] == ["hangs"]
        assert result.observed_count == 1

    def test_crash_requires_nonzero_exit_and_no_tests(self) -> None:
        assert run_lines([], exit_code=1).crashed
        assert not run_lines([], exit_code=0).crashed
        assert not run_lines([start_line(1, "a"), done_line(1, "failure")], exit_code=1).crashed

    def test_snapshot_counts_are_monotonic(self) -> None:
        aggregator = RunAggregator(clock=fixed_clock)
        previous = aggregator.snapshot()
        for line in MIXED_RUN:
            snapshot = aggregator.apply(decode_line(line))
            assert snapshot.passed >= previous.passed
            assert snapshot.failed >= previous.failed
            assert snapshot.skipped >= previous.skipped
            previous = snapshot

    def test_finalize_twice_raises(self) -> None:
        aggregator = RunAggregator(clock=fixed_clock)
        aggregator.finalize(0)
        with pytest.raises(RuntimeError):
            aggregator.finalize(0)

    def test_elapsed_and_duration_come_from_clock(self) -> None:
        ticks = iter([100.0, 102.5, 104.0])
        aggregator = RunAggregator(clock=lambda: next(ticks))
        assert aggregator.snapshot().elapsed == 2.5
        assert aggregator.finalize(0).duration == 4.0


class TestRunSnapshot:
    def test_progress_is_clamped_when_over_reported(self) -> None:
        snapshot = RunSnapshot(passed=5, failed=1, skipped=0, total_expected=4)
        assert snapshot.completed == 6
        assert snapshot.progress == 1.0

    def test_progress_without_total(self) -> None:
        assert RunSnapshot(passed=3).progress == 0.0

    def test_partial_progress(self) -> None:
        assert RunSnapshot(passed=1, skipped=1, total_expected=8).progress == 0.25


class TestExtractPrimaryError:
    def test_block_after_marker_until_blank_line(self) -> None:
        text = (
            "══╡ EXCEPTION CAUGHT BY FLUTTER TEST FRAMEWORK ╞════\n"
            "The following TestFailure was thrown running a test:  \n"
            "Expected: true\n"
            "\n"
            "When the exception was thrown, this was the stack:\n"
            "#0 main\n"
        )
        assert extract_primary_error(text) == "The following TestFailure was thrown running a test:\nExpected: true"

    def test_block_stops_at_stack_marker(self) -> None:
        text = (
            "══╡ EXCEPTION CAUGHT BY WIDGETS LIBRARY ╞════\n"
            "Null check operator used on a null value\n"
            "When the exception was thrown, this was the stack:\n"
            "#0 build\n"
        )
        assert extract_primary_error(text) == "Null check operator used on a null value"

    def test_text_without_marker_is_returned_verbatim(self) -> None:
        text = "Expected: <true>\n  Actual: <false>\n"
        assert extract_primary_error(text) == text

    def test_marker_without_body_falls_back_to_full_text(self) -> None:
        text = "══╡ EXCEPTION CAUGHT BY FLUTTER TEST FRAMEWORK ╞════\n\nrest"
        assert extract_primary_error(text) == text
