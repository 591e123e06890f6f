import json
from collections.abc import AsyncIterator
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from testlaser.config import TestLaserConfig
from testlaser.reporting import TerminalReporter


def group_line(test_count: int | None, parent_id: int | None = None, group_id: int = 1) -> str:
    return json.dumps(
        {"type": "group", "group": {"id": group_id, "parentID": parent_id, "testCount": test_count}}
    )


def start_line(test_id: int, name: str, url: str | None = None) -> str:
    return json.dumps({"type": "testStart", "test": {"id": test_id, "name": name, "url": url}})


def done_line(test_id: int, result: str = "success", skipped: bool = False, hidden: bool = False) -> str:
    return json.dumps(
        {"type": "testDone", "testID": test_id, "result": result, "skipped": skipped, "hidden": hidden}
    )


def error_line(test_id: int, error: str, stack_trace: str = "") -> str:
    return json.dumps(
        {"type": "error", "testID": test_id, "error": error, "stackTrace": stack_trace, "isFailure": True}
    )


def print_line(test_id: int, message: str) -> str:
    return json.dumps({"type": "print", "testID": test_id, "message": message, "messageType": "print"})


class FakeProcess:
    """In-memory stand-in for a started test process."""

    def __init__(
        self,
        stdout: list[str],
        stderr: list[str] | None = None,
        exit_code: int = 0,
        stdout_error: Exception | None = None,
    ):
        self._stdout = stdout
        self._stderr = stderr or []
        self._exit_code = exit_code
        self._stdout_error = stdout_error
        self.waited = False
        self.killed = False

    async def _lines(self, lines: list[str], error: Exception | None = None) -> AsyncIterator[str]:
        for line in lines:
            yield line
        if error is not None:
            raise error

    def stdout_lines(self) -> AsyncIterator[str]:
        return self._lines(self._stdout, self._stdout_error)

    def stderr_lines(self) -> AsyncIterator[str]:
        return self._lines(self._stderr)

    def kill(self) -> None:
        self.killed = True

    async def wait(self) -> int:
        self.waited = True
        return self._exit_code


class FakeLauncher:
    """Records every command it is asked to start and hands out FakeProcesses."""

    def __init__(self, *processes: FakeProcess):
        self._processes = list(processes)
        self.commands: list[list[str]] = []
        self.working_dirs: list[Path] = []

    async def start(self, command: list[str], working_dir: Path) -> FakeProcess:
        self.commands.append(command)
        self.working_dirs.append(working_dir)
        return self._processes.pop(0)


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    project = tmp_path / "app"
    (project / "test").mkdir(parents=True)
    return project


@pytest.fixture
def config() -> TestLaserConfig:
    return TestLaserConfig()


@pytest.fixture
def reporter() -> MagicMock:
    return MagicMock(spec=TerminalReporter)


def file_url(project_dir: Path, relative: str) -> str:
    return (project_dir / relative).as_uri()
