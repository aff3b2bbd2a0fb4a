"""
Render-and-broadcast stage of the pipeline.
"""

from __future__ import annotations

from .formatters import Formatter, JSONFormatter
from .records import LogRecord
from .sinks import MultiSink


class Dispatcher:
    """Owns the active sink set and the chosen formatter.

    Structured records always go through ``structured_formatter`` (JSON);
    freeform records use the configured formatter. Errors are propagated to
    the owner, which decides how to report them.
    """

    def __init__(
        self,
        sink: MultiSink,
        formatter: Formatter,
        structured_formatter: Formatter | None = None,
    ):
        self._sink = sink
        self._formatter = formatter
        self._structured_formatter = structured_formatter or JSONFormatter()

    @property
    def sink(self) -> MultiSink:
        return self._sink

    @property
    def formatter(self) -> Formatter:
        return self._formatter

    def render(self, record: LogRecord) -> bytes:
        formatter = self._structured_formatter if record.is_structured else self._formatter
        return formatter.render(record)

    def dispatch(self, record: LogRecord) -> int:
        """Render ``record`` once and write it to every sink."""
        data = self.render(record)
        return self._sink.write(data)

    def flush(self) -> None:
        self._sink.flush()

    def close(self) -> None:
        self._sink.close()
