"""structlog configuration for the API process."""

from __future__ import annotations

import logging
import sys
from typing import IO

import structlog

from vinylscout.config import Settings, settings


class _TeeWriter:
    """Mirror log lines to stdout and to a JSON-lines file.

    If the file cannot be opened or written, logging carries on with stdout
    only and a single warning goes to stderr.
    """

    def __init__(self, file_path: str) -> None:
        self._file: IO[str] | None = None
        try:
            self._file = open(file_path, "a")  # noqa: SIM115
        except OSError as exc:
            # structlog is not configured yet at this point
            print(f"WARNING: cannot open log file {file_path!r}: {exc}", file=sys.stderr)

    def _disable(self, action: str) -> None:
        self._file = None
        print(f"WARNING: log file {action} failed, file logging disabled", file=sys.stderr)

    def write(self, data: str) -> None:
        sys.stdout.write(data)
        if self._file is None:
            return
        try:
            self._file.write(data)
            self._file.flush()
        except (OSError, ValueError):
            self._disable("write")

    def flush(self) -> None:
        sys.stdout.flush()
        if self._file is None:
            return
        try:
            self._file.flush()
        except (OSError, ValueError):
            self._disable("flush")


def configure_logging(config: Settings | None = None) -> None:
    """Console output in development, JSON lines everywhere else.

    LOG_FILE additionally tees every line into the given file.
    """
    config = config or settings
    renderer = (
        structlog.dev.ConsoleRenderer()
        if config.environment == "development"
        else structlog.processors.JSONRenderer()
    )
    level = logging.getLevelNamesMapping().get(config.log_level.upper(), logging.INFO)

    if config.log_file:
        # PrintLoggerFactory only needs write() and flush()
        logger_factory = structlog.PrintLoggerFactory(file=_TeeWriter(config.log_file))  # type: ignore[arg-type]
    else:
        logger_factory = structlog.PrintLoggerFactory()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=logger_factory,
        cache_logger_on_first_use=True,
    )
