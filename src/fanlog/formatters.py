"""
Record formatters.

Both formatters render one LogRecord into a byte string that ends in exactly
one newline:

- PlainFormatter: ``INFO: 2026/10/16 10:30:00.123456 app.py:42: message``
- JSONFormatter: one JSON object per line (NDJSON), serialized with orjson
"""

from __future__ import annotations

from datetime import timezone
from typing import Any, Protocol

import orjson

from .exceptions import RecordEncodeError
from .records import TRACE_ID_KEY, LogRecord

PLAIN_TIMESTAMP_FORMAT = "%Y/%m/%d %H:%M:%S.%f"


def sanitize_message(message: str) -> str:
    """Collapse a message onto one line.

    One trailing newline is stripped first so it doesn't turn into a dangling
    space; every remaining newline becomes a single space.
    """
    if message.endswith("\n"):
        message = message[:-1]
    return message.replace("\n", " ")


def format_timestamp(record: LogRecord) -> str:
    """RFC 3339 timestamp in UTC, seconds precision."""
    return record.timestamp.astimezone(timezone.utc).isoformat(timespec="seconds")


def orjson_dumps(v: Any) -> bytes:
    return orjson.dumps(v, option=orjson.OPT_UTC_Z | orjson.OPT_NAIVE_UTC)


class Formatter(Protocol):
    def render(self, record: LogRecord) -> bytes: ...


class PlainFormatter:
    """Human-readable single-line renderer for freeform messages."""

    def __init__(self, timestamp_format: str = PLAIN_TIMESTAMP_FORMAT) -> None:
        self._timestamp_format = timestamp_format

    def render(self, record: LogRecord) -> bytes:
        parts = [
            f"{record.severity.value}: ",
            record.timestamp.astimezone().strftime(self._timestamp_format),
            " ",
        ]
        if record.caller:
            parts.append(f"{record.caller}: ")
        parts.append(sanitize_message(record.message or ""))
        parts.append("\n")
        return "".join(parts).encode("utf-8")


class JSONFormatter:
    """Newline-delimited JSON renderer.

    Structured records merge the caller's fields first and then write the
    injected keys over them, so a caller field named ``level`` or
    ``timestamp`` is replaced by the logger's value.
    """

    def render(self, record: LogRecord) -> bytes:
        return orjson_dumps_line(self.to_dict(record))

    def to_dict(self, record: LogRecord) -> dict[str, Any]:
        if record.is_structured:
            payload = dict(record.fields or {})
            payload["service"] = record.service
            payload["environment"] = record.environment
            payload["timestamp"] = format_timestamp(record)
            payload["level"] = record.severity.value
        else:
            payload = {
                "timestamp": format_timestamp(record),
                "level": record.severity.value,
                "message": sanitize_message(record.message or ""),
                "service": record.service,
                "environment": record.environment,
            }

        if record.trace_id is not None:
            payload[TRACE_ID_KEY] = record.trace_id
        return payload


def orjson_dumps_line(payload: dict[str, Any]) -> bytes:
    try:
        data = orjson_dumps(payload)
    except TypeError as exc:
        # orjson.JSONEncodeError subclasses TypeError
        raise RecordEncodeError(reason=str(exc)) from exc
    return data + b"\n"
