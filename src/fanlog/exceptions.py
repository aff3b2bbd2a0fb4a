"""
Unified exception hierarchy for fanlog.

Errors are split along three axes so callers can catch them at the right
granularity:

- configuration: the logger was used before it was set up, or set up wrongly
- record: a record could not be formatted or serialized
- sink: one or more sinks failed to accept a rendered record

The Logger facade never lets record or sink errors escape a log call; they are
reported on the ERROR path instead.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Sequence, Tuple

if TYPE_CHECKING:
    from .sinks import Sink


class FanlogError(Exception):
    """Root of all fanlog exceptions."""

    def __init__(
        self,
        message: str,
        *,
        code: str,
        details: Dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.details = details or {}


# ================================
# Configuration Errors
# ================================


class ConfigurationError(FanlogError):
    """Invalid or missing logging configuration."""

    def __init__(self, message: str, *, details: Dict[str, Any] | None = None) -> None:
        super().__init__(message, code="CONFIGURATION_ERROR", details=details)


class LoggerNotConfiguredError(ConfigurationError):
    """Raised when the default logger is requested before configure_logging()."""

    def __init__(self) -> None:
        super().__init__("Logging is not configured; call configure_logging() first")
        self.code = "LOGGER_NOT_CONFIGURED"


# ================================
# Record Errors
# ================================


class RecordError(FanlogError):
    """A log record could not be built or rendered."""

    pass


class RecordFormatError(RecordError):
    """printf-style substitution of a freeform message failed."""

    def __init__(self, *, template: str, reason: str) -> None:
        super().__init__(
            f"Failed to format log message {template!r}: {reason}",
            code="RECORD_FORMAT_ERROR",
            details={"template": template, "reason": reason},
        )


class RecordEncodeError(RecordError):
    """A structured record could not be serialized to JSON."""

    def __init__(self, *, reason: str) -> None:
        super().__init__(
            f"Failed to marshal structured log: {reason}",
            code="RECORD_ENCODE_ERROR",
            details={"reason": reason},
        )


# ================================
# Sink Errors
# ================================


class SinkError(FanlogError):
    """Base class for sink failures."""

    pass


class SinkWriteError(SinkError):
    """One or more sinks rejected a write.

    ``failures`` holds ``(sink, exception)`` pairs in sink order. Sinks not
    listed received the record.
    """

    def __init__(
        self,
        message: str,
        *,
        failures: Sequence[Tuple["Sink", BaseException]] = (),
    ) -> None:
        super().__init__(
            message,
            code="SINK_WRITE_ERROR",
            details={"failed_sinks": [type(sink).__name__ for sink, _ in failures]},
        )
        self.failures = tuple(failures)
