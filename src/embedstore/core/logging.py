"""Logging for embedstore.

Every module logs through a child of the ``embedstore`` logger. embedstore is
a library, so that logger stays at WARNING and does not propagate to the
application's root logger unless configured otherwise:

    from embedstore.core import configure_logging, get_logger

    configure_logging(level="INFO")  # or EMBEDSTORE_LOG_LEVEL=info
    logger = get_logger(__name__)

What is logged where:
    DEBUG    single writes, clears and SQLite query plans
    INFO     hydration of a memory cache from redis, with its timing
    WARNING  falling back from an unreachable redis to a memory cache
"""

import logging
import os
import sys
import time
from pathlib import Path
from typing import Any, Optional, Union

ROOT_LOGGER = "embedstore"

CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
CONSOLE_DATE_FORMAT = "%H:%M:%S"
FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s"
FILE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LOG_LEVEL_ENV = "EMBEDSTORE_LOG_LEVEL"

# redis-py logs connection chatter at DEBUG
QUIET_LIBRARIES = ("redis",)

_configured = False


class ColoredFormatter(logging.Formatter):
    """Colors the level name on a terminal.

    Formats a copy of the record, so handlers sharing the record (a log
    file, say) never see the escape codes.
    """

    COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, fmt: str, datefmt: str, use_colors: bool = True, stream=None):
        super().__init__(fmt, datefmt)
        stream = stream if stream is not None else sys.stderr
        self.use_colors = use_colors and hasattr(stream, "isatty") and stream.isatty()

    def format(self, record: logging.LogRecord) -> str:
        if not self.use_colors:
            return super().format(record)
        colored = logging.makeLogRecord(record.__dict__)
        color = self.COLORS.get(record.levelno, "")
        colored.levelname = f"{color}{record.levelname}{self.RESET}"
        return super().format(colored)


def _resolve_level(level: Optional[Union[int, str]], quiet: bool) -> int:
    if level is None:
        level = os.environ.get(LOG_LEVEL_ENV) or (logging.ERROR if quiet else logging.WARNING)
    if isinstance(level, str):
        return getattr(logging, level.upper(), logging.WARNING)
    return level


def get_logger(name: str, level: Optional[int] = None) -> logging.Logger:
    """Logger for an embedstore module, configuring defaults on first use."""
    if not _configured:
        configure_logging()
    logger = logging.getLogger(name)
    if level is not None:
        logger.setLevel(level)
    return logger


def configure_logging(
    level: Optional[Union[int, str]] = None,
    format_string: Optional[str] = None,
    log_file: Optional[Union[str, Path]] = None,
    use_colors: bool = True,
    quiet: bool = False,
) -> None:
    """(Re)configure the ``embedstore`` logger.

    Replaces any handlers installed by an earlier call, so it is safe to
    call more than once.

    Args:
        level: Level name or number; ``$EMBEDSTORE_LOG_LEVEL`` applies when
            omitted, then WARNING
        format_string: Console format (default: :data:`CONSOLE_FORMAT`)
        log_file: Also write every record (DEBUG and up) to this file
        use_colors: Color level names when stderr is a terminal
        quiet: Default to ERROR instead of WARNING
    """
    global _configured

    level = _resolve_level(level, quiet)

    root_logger = logging.getLogger(ROOT_LOGGER)
    root_logger.setLevel(logging.DEBUG if log_file else level)
    root_logger.propagate = False
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(level)
    console.setFormatter(
        ColoredFormatter(format_string or CONSOLE_FORMAT, CONSOLE_DATE_FORMAT, use_colors=use_colors)
    )
    root_logger.addHandler(console)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, FILE_DATE_FORMAT))
        root_logger.addHandler(file_handler)

    for library in QUIET_LIBRARIES:
        logging.getLogger(library).setLevel(logging.WARNING)

    _configured = True


class LogContext:
    """Logs the start, the outcome and the duration of an operation.

    Fields passed to the constructor go on the start line; fields added with
    :meth:`set` while the operation runs go on the completion line.

    Example:
        >>> with LogContext(logger, "Hydrating memory cache", namespace="Documents") as ctx:
        ...     ctx.set(loaded=memory.hydrate(remote.full_each()))
        # Hydrating memory cache started (namespace=Documents)
        # Hydrating memory cache completed in 0.42s (loaded=1200)
    """

    def __init__(self, logger: logging.Logger, operation: str, level: int = logging.INFO, **context):
        self.logger = logger
        self.operation = operation
        self.level = level
        self.context = context
        self.results: dict[str, Any] = {}
        self.start_time: Optional[float] = None

    @staticmethod
    def _fields(values: dict) -> str:
        return f" ({', '.join(f'{k}={v}' for k, v in values.items())})" if values else ""

    def set(self, **results) -> "LogContext":
        self.results.update(results)
        return self

    def __enter__(self) -> "LogContext":
        self.start_time = time.perf_counter()
        self.logger.log(self.level, "%s started%s", self.operation, self._fields(self.context))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        elapsed = time.perf_counter() - self.start_time
        if exc_type is not None:
            self.logger.error("%s failed after %.2fs: %s", self.operation, elapsed, exc_val)
        else:
            self.logger.log(
                self.level,
                "%s completed in %.2fs%s",
                self.operation,
                elapsed,
                self._fields(self.results),
            )
        return False
