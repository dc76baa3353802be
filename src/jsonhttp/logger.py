"""
=============================================================================
LOGGING SINKS
=============================================================================

The dispatcher reports through anything with a `log(level, *values)`
method. Two sinks ship with the package, both on top of stdlib logging:

    StdLogger()            → logging.getLogger("jsonhttp")
    FileLogger("logs")     → logs/2026-10-16.log, logs/2026-10-17.log, ...

    ┌─────────────────────────────────────────────────────────────────────┐
    │   Level.DEBUG   10   logging.DEBUG                                  │
    │   Level.INFO    20   logging.INFO                                   │
    │   Level.WARN    30   logging.WARNING     coded aborts, retries      │
    │   Level.ERROR   40   logging.ERROR       unclassified faults        │
    │   Level.PANIC   50   logging.CRITICAL                               │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

import logging
import os
import traceback
from datetime import date, datetime
from enum import IntEnum
from typing import Any, Optional, Protocol


class Level(IntEnum):
    DEBUG = logging.DEBUG
    INFO = logging.INFO
    WARN = logging.WARNING
    ERROR = logging.ERROR
    PANIC = logging.CRITICAL


class Logger(Protocol):
    def log(self, level: Level, *values: Any) -> None:
        ...


def _join(values) -> str:
    return " ".join(str(v) for v in values)


class StdLogger:
    """Forwards to a stdlib logger, `jsonhttp` by default."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger("jsonhttp")

    def log(self, level: Level, *values: Any) -> None:
        self.logger.log(int(level), _join(values))


class DailyFileHandler(logging.FileHandler):
    """
    FileHandler writing to <directory>/YYYY-MM-DD.log.

    The file is switched on the first record after local midnight.
    """

    def __init__(self, directory: str, encoding: str = "utf-8"):
        os.makedirs(directory, exist_ok=True)
        self.directory = directory
        self.day = date.today()
        super().__init__(self._path_for(self.day), mode="a", encoding=encoding)

    def _path_for(self, day: date) -> str:
        return os.path.join(self.directory, f"{day:%Y-%m-%d}.log")

    def emit(self, record: logging.LogRecord) -> None:
        today = datetime.fromtimestamp(record.created).date()
        if today != self.day:
            self.acquire()
            try:
                if today != self.day:
                    self.day = today
                    if self.stream is not None:
                        self.stream.close()
                        self.stream = None
                    self.baseFilename = os.path.abspath(self._path_for(today))
            finally:
                self.release()
        super().emit(record)


class FileLogger:
    """
    Logger writing daily files under `path`.

    Records do not propagate to the root logger, so a console handler
    configured elsewhere does not duplicate them.
    """

    def __init__(self, path: str):
        self.path = path
        self.handler = DailyFileHandler(path)
        self.handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(message)s")
        )
        self.logger = logging.getLogger(f"jsonhttp.file.{os.path.abspath(path)}")
        self.logger.setLevel(logging.DEBUG)
        self.logger.propagate = False
        self.logger.addHandler(self.handler)

    @property
    def current_file(self) -> str:
        return self.handler.baseFilename

    def log(self, level: Level, *values: Any) -> None:
        self.logger.log(int(level), _join(values))

    def close(self) -> None:
        self.logger.removeHandler(self.handler)
        self.handler.close()


def log_error(logger: Logger, exc: Optional[BaseException]) -> None:
    """Log `exc` with its traceback at ERROR. Does nothing for None."""
    if exc is None:
        return
    trace = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    logger.log(Level.ERROR, f"{type(exc).__name__}: {exc}\n{trace}")
