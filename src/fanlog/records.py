"""
Log record value type and the builder that assembles records.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Callable, Mapping, Sequence

from structlog.contextvars import get_contextvars

from .exceptions import RecordFormatError
from .levels import Severity

TRACE_ID_KEY = "trace_id"

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Metadata:
    """Process metadata stamped onto every record."""

    service: str = ""
    environment: str = ""


@dataclass(frozen=True)
class LogRecord:
    """A single log event.

    Freeform records carry ``message``; structured records carry ``fields``.
    ``fields`` is a read-only copy of the caller's mapping, without the
    injected metadata keys (the JSON formatter merges those at render time).
    """

    timestamp: datetime
    severity: Severity
    message: str | None = None
    fields: Mapping[str, Any] | None = None
    service: str = ""
    environment: str = ""
    trace_id: Any = None
    caller: str | None = None

    @property
    def is_structured(self) -> bool:
        return self.fields is not None


class RecordBuilder:
    """Builds LogRecords from freeform messages or field mappings.

    Metadata is held as one immutable value and swapped as a whole by
    set_metadata(), so a record never sees a half-updated service/environment
    pair.
    """

    def __init__(self, metadata: Metadata | None = None, *, clock: Clock | None = None) -> None:
        self._metadata = metadata or Metadata()
        self._clock = clock or utc_now
        self._lock = threading.Lock()

    @property
    def metadata(self) -> Metadata:
        return self._metadata

    def set_metadata(self, service: str, environment: str) -> None:
        with self._lock:
            self._metadata = Metadata(service=service, environment=environment)

    def build_message(
        self,
        severity: Severity,
        message: str,
        args: Sequence[Any] = (),
        *,
        caller: str | None = None,
    ) -> LogRecord:
        """Build a freeform record, applying printf-style ``args`` if given."""
        text = str(message)
        if args:
            try:
                if len(args) == 1 and isinstance(args[0], Mapping):
                    text = text % args[0]
                else:
                    text = text % tuple(args)
            except (TypeError, ValueError, KeyError) as exc:
                raise RecordFormatError(template=text, reason=str(exc)) from exc

        metadata = self._metadata
        return LogRecord(
            timestamp=self._clock(),
            severity=severity,
            message=text,
            service=metadata.service,
            environment=metadata.environment,
            caller=caller,
        )

    def build_fields(
        self,
        severity: Severity,
        fields: Mapping[str, Any],
        *,
        trace_id: Any = None,
        caller: str | None = None,
    ) -> LogRecord:
        """Build a structured record from a copy of ``fields``.

        ``trace_id`` falls back to the value bound in structlog's contextvars
        when not passed explicitly.
        """
        if trace_id is None:
            trace_id = get_contextvars().get(TRACE_ID_KEY)

        metadata = self._metadata
        return LogRecord(
            timestamp=self._clock(),
            severity=severity,
            fields=MappingProxyType(dict(fields)),
            service=metadata.service,
            environment=metadata.environment,
            trace_id=trace_id,
            caller=caller,
        )
