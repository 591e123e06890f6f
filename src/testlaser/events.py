#
# src/testlaser/events.py
#
"""
Decodes the line-delimited JSON event stream emitted by machine-readable
test runners (`flutter test --machine`, `dart test --reporter json`).

Only the event kinds the aggregator needs are decoded. Anything else,
including non-JSON diagnostic text that runners interleave on stdout,
decodes to ``None``.
"""

import json
from typing import Any, TypeAlias

import structlog
from attrs import define, field

from testlaser.telemetry import StructLogger

log: StructLogger = structlog.get_logger("events")


@define(frozen=True, slots=True)
class TestIdentity:
    """
    Correlation key for one test within a single run's event stream.

    `id` is only unique within one process run; runners reuse ids across
    separate invocations.
    """

    __test__ = False

    id: int = field()
    name: str = field()
    source_location: str | None = field(default=None)


@define(frozen=True, slots=True)
class GroupEvent:
    parent_id: int | None = field(default=None)
    test_count: int | None = field(default=None)

    @property
    def is_root(self) -> bool:
        return self.parent_id is None


@define(frozen=True, slots=True)
class TestStartEvent:
    __test__ = False

    test: TestIdentity = field()


@define(frozen=True, slots=True)
class TestDoneEvent:
    __test__ = False

    test_id: int = field()
    result: str = field()
    skipped: bool = field(default=False)
    hidden: bool = field(default=False)

    @property
    def is_failure(self) -> bool:
        return self.result in ("failure", "error")


@define(frozen=True, slots=True)
class DiagnosticEvent:
    """Error or print output attached to a still-running test."""

    test_id: int = field()
    text: str = field()
    kind: str = field(default="error")  # "error" or "print"
    stack_trace: str | None = field(default=None)


@define(frozen=True, slots=True)
class DoneEvent:
    success: bool | None = field(default=None)


Event: TypeAlias = GroupEvent | TestStartEvent | TestDoneEvent | DiagnosticEvent | DoneEvent

TEST_RESULTS = frozenset({"success", "failure", "error"})


def _opt_int(value: Any) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"expected int, got {type(value).__name__}")
    return value


def _req_int(value: Any) -> int:
    result = _opt_int(value)
    if result is None:
        raise TypeError("missing required int")
    return result


def _opt_str(value: Any) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise TypeError(f"expected str, got {type(value).__name__}")
    return value


def _req_str(value: Any) -> str:
    result = _opt_str(value)
    if result is None:
        raise TypeError("missing required str")
    return result


def _flag(value: Any) -> bool:
    if value is None:
        return False
    if not isinstance(value, bool):
        raise TypeError(f"expected bool, got {type(value).__name__}")
    return value


def _decode_group(data: dict[str, Any]) -> GroupEvent:
    group = data.get("group")
    if not isinstance(group, dict):
        raise TypeError("group event without group object")
    return GroupEvent(parent_id=_opt_int(group.get("parentID")), test_count=_opt_int(group.get("testCount")))


def _decode_test_start(data: dict[str, Any]) -> TestStartEvent:
    test = data.get("test")
    if not isinstance(test, dict):
        raise TypeError("testStart event without test object")
    # root_url points at the test file when url points into a helper.
    location = _opt_str(test.get("root_url")) or _opt_str(test.get("url"))
    identity = TestIdentity(id=_req_int(test.get("id")), name=_req_str(test.get("name")), source_location=location)
    return TestStartEvent(test=identity)


def _decode_test_done(data: dict[str, Any]) -> TestDoneEvent:
    result = _req_str(data.get("result"))
    if result not in TEST_RESULTS:
        raise ValueError(f"unknown test result '{result}'")
    return TestDoneEvent(
        test_id=_req_int(data.get("testID")),
        result=result,
        skipped=_flag(data.get("skipped")),
        hidden=_flag(data.get("hidden")),
    )


def _decode_error(data: dict[str, Any]) -> DiagnosticEvent:
    return DiagnosticEvent(
        test_id=_req_int(data.get("testID")),
        text=_req_str(data.get("error")),
        kind="error",
        stack_trace=_opt_str(data.get("stackTrace")),
    )


def _decode_print(data: dict[str, Any]) -> DiagnosticEvent:
    return DiagnosticEvent(test_id=_req_int(data.get("testID")), text=_req_str(data.get("message")), kind="print")


def _decode_done(data: dict[str, Any]) -> DoneEvent:
    success = data.get("success")
    return DoneEvent(success=success if isinstance(success, bool) else None)


_DECODERS = {
    "group": _decode_group,
    "testStart": _decode_test_start,
    "testDone": _decode_test_done,
    "error": _decode_error,
    "print": _decode_print,
    "done": _decode_done,
}


def parse_json_object(line: str) -> dict[str, Any] | None:
    """Returns the JSON object on `line`, or None for anything else."""
    stripped = line.strip()
    if not stripped.startswith("{"):
        return None
    try:
        data = json.loads(stripped)
    except (ValueError, RecursionError):
        # RecursionError: pathologically nested arrays or objects.
        return None
    return data if isinstance(data, dict) else None


def decode_object(data: dict[str, Any]) -> Event | None:
    event_type = data.get("type")
    decoder = _DECODERS.get(event_type) if isinstance(event_type, str) else None
    if decoder is None:
        return None
    try:
        return decoder(data)
    except (TypeError, ValueError) as e:
        log.debug("Dropping malformed event", event_type=data.get("type"), error=str(e))
        return None


def decode_line(line: str) -> Event | None:
    """
    Turns one line of runner output into a typed event.

    Never raises: malformed JSON, unknown event kinds and events missing
    required fields all yield None.
    """
    data = parse_json_object(line)
    if data is None:
        return None
    return decode_object(data)


# 🔼⚙️
