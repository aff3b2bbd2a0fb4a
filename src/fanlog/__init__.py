"""
fanlog: level-filtered structured logging with multi-sink fan-out.

Records are rendered as plain text or newline-delimited JSON and broadcast to
every configured sink:
- console: stdout
- file: local file with size rotation, retention and gzip
- kafka: one message per record on a topic

Library: orjson for the JSON wire format, pydantic-settings for configuration,
confluent-kafka for the queue sink.
"""

from .config import FileSinkSettings, KafkaSinkSettings, LogFormat, LoggingSettings
from .core import Logger, build_logger, build_sinks, configure_logging, exit_process, get_logger, reset_logging
from .dispatcher import Dispatcher
from .exceptions import (
    ConfigurationError,
    FanlogError,
    LoggerNotConfiguredError,
    RecordEncodeError,
    RecordError,
    RecordFormatError,
    SinkError,
    SinkWriteError,
)
from .formatters import JSONFormatter, PlainFormatter, sanitize_message
from .interceptors import FanlogHandler, install_stdlib_bridge
from .levels import Severity, parse_severity, should_log
from .records import LogRecord, Metadata, RecordBuilder
from .sinks import BaseSink, KafkaSink, MultiSink, RotatingFileSink, Sink, StreamSink

__all__ = [
    "BaseSink",
    "ConfigurationError",
    "Dispatcher",
    "FanlogError",
    "FanlogHandler",
    "FileSinkSettings",
    "JSONFormatter",
    "KafkaSink",
    "KafkaSinkSettings",
    "LogFormat",
    "LogRecord",
    "Logger",
    "LoggerNotConfiguredError",
    "LoggingSettings",
    "Metadata",
    "MultiSink",
    "PlainFormatter",
    "RecordBuilder",
    "RecordEncodeError",
    "RecordError",
    "RecordFormatError",
    "RotatingFileSink",
    "Severity",
    "Sink",
    "SinkError",
    "SinkWriteError",
    "StreamSink",
    "build_logger",
    "build_sinks",
    "configure_logging",
    "exit_process",
    "get_logger",
    "install_stdlib_bridge",
    "parse_severity",
    "reset_logging",
    "sanitize_message",
    "should_log",
]
