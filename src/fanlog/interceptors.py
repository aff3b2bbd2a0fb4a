"""
Interceptors for capturing standard library logging.
"""

from __future__ import annotations

import logging
from typing import Sequence

from .core import Logger, get_logger
from .levels import Severity

# CRITICAL is deliberately mapped to ERROR: only fanlog callers may end the process.
_STDLIB_LEVELS = (
    (logging.ERROR, Severity.ERROR),
    (logging.WARNING, Severity.WARNING),
    (logging.INFO, Severity.INFO),
)


def severity_for(levelno: int) -> Severity:
    for threshold, severity in _STDLIB_LEVELS:
        if levelno >= threshold:
            return severity
    return Severity.DEBUG


class FanlogHandler(logging.Handler):
    """
    Forward standard library log records into a fanlog Logger.

    The fanlog threshold still applies on top of the stdlib logger level.
    Records are forwarded as freeform messages prefixed with the logger name.
    """

    def __init__(self, logger: Logger | None = None, level: int = logging.NOTSET):
        super().__init__(level)
        self._logger = logger

    def _target(self) -> Logger:
        return self._logger or get_logger()

    def emit(self, record: logging.LogRecord) -> None:
        try:
            if record.name == "fanlog" or record.name.startswith("fanlog."):
                return
            msg = self.format(record)
            if record.name and record.name != "root":
                msg = f"[{record.name}] {msg}"
            self._target().log(severity_for(record.levelno), msg)
        except Exception:
            self.handleError(record)


def install_stdlib_bridge(
    logger: Logger | None = None,
    *,
    level: int = logging.DEBUG,
    names: Sequence[str] = (),
) -> FanlogHandler:
    """Route the root logger (and any ``names`` loggers) through fanlog.

    Existing handlers on those loggers are removed.
    """
    handler = FanlogHandler(logger)

    root_logger = logging.getLogger()
    root_logger.handlers = []
    root_logger.setLevel(level)
    root_logger.addHandler(handler)

    for name in names:
        lg = logging.getLogger(name)
        lg.handlers = []
        lg.propagate = True

    return handler
