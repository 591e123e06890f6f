#
# src/testlaser/cache.py
#
"""
Persistence of run metadata between invocations.

The cache file remembers the previous total test count, how long the last
full run took and which tests failed in it. It is advisory: every read or
write problem degrades to "no history" and is reported through result
objects instead of exceptions.
"""

import json
import os
import re
from pathlib import Path
from typing import Any
from urllib.parse import unquote, urlparse
from urllib.request import url2pathname

import structlog
from attrs import define, field

from testlaser.aggregator import RunResult
from testlaser.exceptions import RerunSelectionError
from testlaser.telemetry import StructLogger

log: StructLogger = structlog.get_logger("cache")

# Metacharacters of the RegExp dialects runners accept (Dart and Python agree on these).
_PATTERN_SPECIALS = re.compile(r"([\[\](){}*+?.^$|\\])")


@define(frozen=True, slots=True)
class CachedFailure:
    name: str = field()
    url: str | None = field(default=None)

    def to_json(self) -> dict[str, Any]:
        return {"name": self.name, "url": self.url}


@define(frozen=True, slots=True)
class CacheRecord:
    """What happened during the last full run."""

    total_tests: int = field(default=0)
    last_duration_seconds: int = field(default=0)
    failed_tests: tuple[CachedFailure, ...] = field(factory=tuple)

    @classmethod
    def empty(cls) -> "CacheRecord":
        return cls()

    @classmethod
    def from_result(cls, result: RunResult) -> "CacheRecord":
        return cls(
            total_tests=result.total_tests,
            last_duration_seconds=int(result.duration),
            failed_tests=tuple(
                CachedFailure(name=f.test.name, url=f.test.source_location) for f in result.failures
            ),
        )

    def to_json(self) -> dict[str, Any]:
        return {
            "totalTests": self.total_tests,
            "lastDurationInSeconds": self.last_duration_seconds,
            "failedTests": [f.to_json() for f in self.failed_tests],
        }

    @classmethod
    def from_json(cls, data: Any) -> "CacheRecord":
        """Strict inverse of to_json. Raises ValueError on any schema mismatch."""
        if not isinstance(data, dict):
            raise ValueError("cache root must be an object")

        def _int(key: str) -> int:
            value = data.get(key, 0)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"'{key}' must be an integer")
            return value

        raw_failures = data.get("failedTests", [])
        if not isinstance(raw_failures, list):
            raise ValueError("'failedTests' must be a list")
        failures = []
        for entry in raw_failures:
            if not isinstance(entry, dict) or not isinstance(entry.get("name"), str):
                raise ValueError("failed test entries need a string 'name'")
            url = entry.get("url")
            if url is not None and not isinstance(url, str):
                raise ValueError("failed test 'url' must be a string or null")
            failures.append(CachedFailure(name=entry["name"], url=url))

        return cls(
            total_tests=_int("totalTests"),
            last_duration_seconds=_int("lastDurationInSeconds"),
            failed_tests=tuple(failures),
        )


@define(frozen=True, slots=True)
class CacheLoad:
    """Outcome of reading the cache. `record` is always usable."""

    record: CacheRecord = field(factory=CacheRecord)
    error: str | None = field(default=None)
    found: bool = field(default=False)

    @property
    def ok(self) -> bool:
        return self.error is None


@define(frozen=True, slots=True)
class CacheWrite:
    ok: bool = field()
    error: str | None = field(default=None)


class RunCacheStore:
    """Reads and writes the JSON cache file for one project directory."""

    def __init__(self, path: Path):
        self.path = path

    @property
    def temp_path(self) -> Path:
        return self.path.with_name(self.path.name + ".tmp")

    def load(self) -> CacheLoad:
        cache_log = log.bind(cache_file=str(self.path))
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            cache_log.debug("No cache file yet")
            return CacheLoad()
        except (OSError, UnicodeDecodeError) as e:
            cache_log.warning("Cache file unreadable, ignoring it", error=str(e), emoji_key="cache")
            return CacheLoad(error=f"unreadable: {e}", found=True)

        if not text.strip():
            return CacheLoad(found=True)
        try:
            record = CacheRecord.from_json(json.loads(text))
        except (ValueError, RecursionError) as e:
            cache_log.warning("Cache file malformed, ignoring it", error=str(e), emoji_key="cache")
            return CacheLoad(error=f"malformed: {e}", found=True)

        cache_log.debug(
            "Cache loaded",
            total_tests=record.total_tests,
            failed=len(record.failed_tests),
        )
        return CacheLoad(record=record, found=True)

    def read(self) -> CacheRecord:
        """Returns the cached record, or the zero record on any problem."""
        return self.load().record

    def write(self, record: CacheRecord) -> CacheWrite:
        """Best-effort atomic write. Never raises."""
        temp_path = self.temp_path
        try:
            temp_path.write_text(json.dumps(record.to_json()), encoding="utf-8")
            os.replace(temp_path, self.path)
        except OSError as e:
            log.warning("Failed to write cache file", cache_file=str(self.path), error=str(e), emoji_key="cache")
            try:
                temp_path.unlink(missing_ok=True)
            except OSError:
                log.debug("Could not remove temporary cache file", temp_file=str(temp_path))
            return CacheWrite(ok=False, error=str(e))
        log.debug("Cache written", cache_file=str(self.path), failed=len(record.failed_tests))
        return CacheWrite(ok=True)

    def clear(self) -> bool:
        """Deletes the cache file. Returns True if a file was removed."""
        try:
            self.path.unlink()
        except FileNotFoundError:
            return False
        log.info("Cache cleared", cache_file=str(self.path))
        return True


@define(frozen=True, slots=True)
class RerunTargets:
    """Files to pass to the runner plus a name pattern matching the failed tests."""

    files: dict[str, tuple[str, ...]] = field()
    pattern: str = field()
    test_count: int = field()

    @property
    def file_paths(self) -> list[str]:
        return list(self.files)


def escape_pattern(text: str) -> str:
    return _PATTERN_SPECIALS.sub(r"\\\1", text)


def uri_to_path(uri: str) -> Path | None:
    """Converts a `file:` URI to a path. Other schemes yield None."""
    try:
        parsed = urlparse(uri)
    except ValueError:
        return None
    if parsed.scheme != "file" or not parsed.path:
        return None
    return Path(url2pathname(unquote(parsed.path)))


def display_path(path: Path, project_dir: Path | None) -> str:
    """Path relative to the project directory when inside it."""
    if project_dir is not None:
        try:
            return str(path.relative_to(project_dir))
        except ValueError:
            pass
    return str(path)


def select_rerun_targets(record: CacheRecord, project_dir: Path | None = None) -> RerunTargets:
    """
    Groups cached failures by test file and builds a whole-name pattern.

    Raises:
        RerunSelectionError: If no failure has a resolvable `file:` location.
    """
    files: dict[str, list[str]] = {}
    for failure in record.failed_tests:
        path = uri_to_path(failure.url) if failure.url else None
        if path is None:
            log.debug("Failed test has no resolvable location", test=failure.name, url=failure.url)
            continue
        files.setdefault(display_path(path, project_dir), []).append(failure.name)

    if not files:
        raise RerunSelectionError(
            "Could not find file paths for any failed tests. Cannot rerun.",
            failed_count=len(record.failed_tests),
        )

    names = "|".join(escape_pattern(f.name) for f in record.failed_tests)
    return RerunTargets(
        files={path: tuple(names_in_file) for path, names_in_file in files.items()},
        pattern=f"^({names})$",
        test_count=len(record.failed_tests),
    )


# 🔼⚙️
