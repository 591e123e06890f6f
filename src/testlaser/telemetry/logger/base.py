# src/testlaser/telemetry/logger/base.py

import logging
import sys
from typing import TextIO

import structlog
from structlog.typing import FilteringBoundLogger

from testlaser.telemetry.logger.processors import (
    add_emoji_processor,
    remove_extra_keys_processor,
)

BASE_LOGGER_NAME = "testlaser"
# Third-party loggers that flood DEBUG output during watch mode.
NOISY_LOGGERS = ("watchdog", "asyncio")


def _console_handler(stream: TextIO, json_logs: bool) -> logging.Handler:
    if json_logs:
        renderer = structlog.processors.JSONRenderer(sort_keys=True)
    else:
        isatty = getattr(stream, "isatty", None)
        renderer = structlog.dev.ConsoleRenderer(colors=bool(isatty and isatty()))
    handler = logging.StreamHandler(stream)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(processor=renderer))
    return handler


def _file_handler(log_file: str, level: int) -> logging.Handler:
    handler = logging.FileHandler(log_file, encoding="utf-8")
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(processor=structlog.processors.JSONRenderer(sort_keys=True))
    )
    handler.setLevel(level)
    return handler


def setup_logging(
    level: int = logging.WARNING,
    json_logs: bool = False,
    log_file: str | None = None,
    stream: TextIO | None = None,
) -> None:
    """
    Configures structlog on top of the stdlib root logger.

    Console records go to `stream` (stderr by default) so they never
    interleave with the progress bar and the report on stdout. A log file,
    when given, always receives JSON.
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            add_emoji_processor,
            remove_extra_keys_processor,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        handler.close()
        root_logger.removeHandler(handler)
    root_logger.setLevel(level)
    root_logger.addHandler(_console_handler(stream or sys.stderr, json_logs))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.INFO))

    slog = structlog.get_logger(BASE_LOGGER_NAME)
    if log_file:
        try:
            root_logger.addHandler(_file_handler(log_file, level))
        except OSError as e:
            slog.error("Failed to set up file logging", log_file=log_file, error=str(e))
        else:
            slog.info("File logging enabled", log_file=log_file)

    slog.debug(
        "Logging configured",
        log_level=logging.getLevelName(level),
        json_console_format=json_logs,
        log_file=log_file or "None",
    )


StructLogger = FilteringBoundLogger

# 🔼⚙️
