"""
Logging for ledgerstack: the console, and one log file per stack.

The console side is configured once by main.py:

    -v / --debug / -q  >  LSTACK_LOG_LEVEL  >  WARNING

with an optional process-wide file from LSTACK_LOG_FILE /
LSTACK_LOG_FILE_LEVEL.

The stack side is ``stack_log``: while a lifecycle operation runs,
every ``ledgerstack.*`` record at DEBUG and above is appended to
``<home>/logs/<stack>.log`` tagged with the stack name, whatever the
console shows.  The file lives outside the stack directory, so it
survives a rolled-back first start and never alters the init tree.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

PACKAGE_LOGGER = "ledgerstack"

# (console format, date format) by the most verbose level they serve
_CONSOLE_FORMATS: list[tuple[int, str, str | None]] = [
    (logging.DEBUG, "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d %(message)s", "%H:%M:%S"),
    (logging.INFO, "%(asctime)s [%(name)s] %(message)s", "%H:%M:%S"),
]
_CONSOLE_DEFAULT = ("%(message)s", None)

_PROCESS_FILE_FORMAT = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d %(message)s"
_STACK_FILE_FORMAT = "%(asctime)s %(levelname)-5s [%(stack)s] %(name)s: %(message)s"
_FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"

# requests pulls these in
_HTTP_LOGGERS = ("urllib3", "charset_normalizer")


def parse_level(level: str | None, default: int = logging.WARNING) -> int:
    """Level name → numeric level; unknown or empty names give ``default``."""
    if not level:
        return default
    numeric = logging.getLevelName(level.strip().upper())
    return numeric if isinstance(numeric, int) else default


def _console_formatter(level: int) -> logging.Formatter:
    for threshold, fmt, datefmt in _CONSOLE_FORMATS:
        if level <= threshold:
            return logging.Formatter(fmt, datefmt=datefmt)
    fmt, datefmt = _CONSOLE_DEFAULT
    return logging.Formatter(fmt, datefmt=datefmt)


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
    quiet_third_party: bool = True,
) -> None:
    """Configure the root logger for one CLI invocation.

    Replaces any handlers from an earlier call, so invoking the CLI
    repeatedly in one process (tests) does not stack handlers.

    Args:
        level: Console level name.
        log_file: Optional process-wide log file.
        log_file_level: Level for ``log_file``; defaults to ``level``.
        quiet_third_party: Hold the HTTP client loggers at WARNING
            unless the console is at DEBUG.
    """
    console_level = parse_level(level)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(_console_formatter(console_level))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(console)
    root_level = console_level

    if log_file:
        file_level = parse_level(log_file_level, console_level)
        handler = logging.FileHandler(log_file, encoding="utf-8")
        handler.setLevel(file_level)
        handler.setFormatter(logging.Formatter(_PROCESS_FILE_FORMAT, datefmt=_FILE_DATEFMT))
        root.addHandler(handler)
        root_level = min(root_level, file_level)

    root.setLevel(root_level)

    if quiet_third_party and console_level > logging.DEBUG:
        for name in _HTTP_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    logging.raiseExceptions = False


class _StackTag(logging.Filter):
    def __init__(self, stack: str):
        super().__init__()
        self.stack = stack

    def filter(self, record: logging.LogRecord) -> bool:
        record.stack = self.stack
        return True


def stack_log_path(logs_dir: Path, stack: str) -> Path:
    return logs_dir / f"{stack}.log"


@contextmanager
def stack_log(logs_dir: Path, stack: str) -> Iterator[Path]:
    """Append everything ledgerstack logs meanwhile to the stack's log file.

    The package logger is opened to DEBUG for the duration; the console
    handler keeps its own level, so nothing extra reaches the terminal.
    """
    path = stack_log_path(logs_dir, stack)
    path.parent.mkdir(parents=True, exist_ok=True)

    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.addFilter(_StackTag(stack))
    handler.setFormatter(logging.Formatter(_STACK_FILE_FORMAT, datefmt=_FILE_DATEFMT))

    package = logging.getLogger(PACKAGE_LOGGER)
    previous_level = package.level
    package.addHandler(handler)
    package.setLevel(logging.DEBUG)
    try:
        yield path
    finally:
        package.removeHandler(handler)
        package.setLevel(previous_level)
        handler.close()
