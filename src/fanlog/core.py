"""
Core logging configuration and the Logger facade.
"""

from __future__ import annotations

import inspect
import logging
import os
import sys
import threading
from typing import Any, Callable, Mapping, NoReturn, Sequence

from .config import LogFormat, LoggingSettings
from .dispatcher import Dispatcher
from .exceptions import LoggerNotConfiguredError, RecordEncodeError, RecordFormatError, SinkWriteError
from .formatters import Formatter, JSONFormatter, PlainFormatter
from .levels import Severity, should_log
from .records import LogRecord, Metadata, RecordBuilder
from .sinks import KafkaSink, MultiSink, RotatingFileSink, Sink, StreamSink

FATAL_EXIT_CODE = 1

_INTERNAL_MODULES = ("fanlog", "logging")


def exit_process(code: int) -> NoReturn:
    """End the process with ``code`` from any thread.

    On the main thread this is ``sys.exit``. On other threads SystemExit only
    ends the thread, so the standard streams are flushed and ``os._exit``
    stops the interpreter.
    """
    if threading.current_thread() is threading.main_thread():
        sys.exit(code)
    for stream in (sys.stdout, sys.stderr):
        try:
            stream.flush()
        except (AttributeError, OSError, ValueError):
            pass
    os._exit(code)


# =============================================================================
# Logger
# =============================================================================


class Logger:
    """Level-filtered, multi-sink structured logger.

    Freeform calls take a message and optional printf-style args::

        logger.info("plain info message")
        logger.debug("this is a %s message", "debug")

    Structured calls take a field mapping and an optional trace id::

        logger.info_fields({"event": "deploy"}, trace_id="xyz-123")

    No logging call raises because of a formatting, encoding or sink failure;
    those are reported as ERROR records instead. ``fatal`` and
    ``fatal_fields`` always end the process.
    """

    def __init__(
        self,
        dispatcher: Dispatcher,
        *,
        level: str = "info",
        builder: RecordBuilder | None = None,
        exit_func: Callable[[int], Any] = exit_process,
        capture_caller: bool = False,
    ):
        self._dispatcher = dispatcher
        self._level = level
        self._builder = builder or RecordBuilder()
        self._exit = exit_func
        self._capture_caller = capture_caller

    @property
    def level(self) -> str:
        return self._level

    @property
    def dispatcher(self) -> Dispatcher:
        return self._dispatcher

    @property
    def metadata(self) -> Metadata:
        return self._builder.metadata

    def set_metadata(self, service: str, environment: str) -> None:
        self._builder.set_metadata(service, environment)

    def is_enabled_for(self, severity: Severity) -> bool:
        return should_log(self._level, severity)

    # -------------------------------------------------------------------------
    # Freeform
    # -------------------------------------------------------------------------

    def debug(self, message: str, *args: Any) -> None:
        self._log(Severity.DEBUG, message, args)

    def info(self, message: str, *args: Any) -> None:
        self._log(Severity.INFO, message, args)

    def warning(self, message: str, *args: Any) -> None:
        self._log(Severity.WARNING, message, args)

    def error(self, message: str, *args: Any) -> None:
        self._log(Severity.ERROR, message, args)

    def fatal(self, message: str, *args: Any) -> NoReturn:
        try:
            self._log(Severity.FATAL, message, args)
        finally:
            self._terminate()

    def log(self, severity: Severity, message: str, *args: Any) -> None:
        """Freeform call at an explicit severity. FATAL still terminates."""
        if severity is Severity.FATAL:
            self.fatal(message, *args)
        self._log(severity, message, args)

    # -------------------------------------------------------------------------
    # Structured
    # -------------------------------------------------------------------------

    def debug_fields(self, fields: Mapping[str, Any], *, trace_id: Any = None) -> None:
        self._log_fields(Severity.DEBUG, fields, trace_id)

    def info_fields(self, fields: Mapping[str, Any], *, trace_id: Any = None) -> None:
        self._log_fields(Severity.INFO, fields, trace_id)

    def warning_fields(self, fields: Mapping[str, Any], *, trace_id: Any = None) -> None:
        self._log_fields(Severity.WARNING, fields, trace_id)

    def error_fields(self, fields: Mapping[str, Any], *, trace_id: Any = None) -> None:
        self._log_fields(Severity.ERROR, fields, trace_id)

    def fatal_fields(self, fields: Mapping[str, Any], *, trace_id: Any = None) -> NoReturn:
        try:
            self._log_fields(Severity.FATAL, fields, trace_id)
        finally:
            self._terminate()

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def flush(self) -> None:
        self._dispatcher.flush()

    def close(self) -> None:
        self._dispatcher.close()

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _log(self, severity: Severity, message: str, args: Sequence[Any]) -> None:
        if not should_log(self._level, severity):
            return
        try:
            record = self._builder.build_message(severity, message, args, caller=self._caller())
        except RecordFormatError as exc:
            self._report(str(exc))
            return
        self._emit(record)

    def _log_fields(self, severity: Severity, fields: Mapping[str, Any], trace_id: Any) -> None:
        if not should_log(self._level, severity):
            return
        self._emit(self._builder.build_fields(severity, fields, trace_id=trace_id, caller=self._caller()))

    def _emit(self, record: LogRecord) -> None:
        try:
            self._dispatcher.dispatch(record)
        except RecordEncodeError as exc:
            self._report(str(exc))
        except SinkWriteError as exc:
            self._report(f"Failed to write log record: {exc}")

    def _report(self, message: str) -> None:
        """Write a failure notice on the ERROR path. Failures here are dropped."""
        if not should_log(self._level, Severity.ERROR):
            return
        record = self._builder.build_message(Severity.ERROR, message, caller=self._caller())
        try:
            self._dispatcher.dispatch(record)
        except (RecordEncodeError, SinkWriteError):
            pass

    def _terminate(self) -> NoReturn:
        try:
            self._dispatcher.flush()
        except SinkWriteError:
            pass
        finally:
            self._exit(FATAL_EXIT_CODE)
        raise SystemExit(FATAL_EXIT_CODE)

    def _caller(self) -> str | None:
        if not self._capture_caller:
            return None
        return infer_caller()


def infer_caller() -> str | None:
    """Return ``file.py:LINE`` of the first frame outside fanlog and stdlib logging."""
    frame = inspect.currentframe()
    if frame is None:
        return None

    frame = frame.f_back
    for _ in range(20):
        if frame is None:
            break
        module = frame.f_globals.get("__name__", "")
        if not any(module == name or module.startswith(f"{name}.") for name in _INTERNAL_MODULES):
            return f"{os.path.basename(frame.f_code.co_filename)}:{frame.f_lineno}"
        frame = frame.f_back
    return None


# =============================================================================
# Configuration Logic
# =============================================================================

_logger: Logger | None = None
_bridge: logging.Handler | None = None


def build_sinks(settings: LoggingSettings) -> list[Sink]:
    """Create the sinks enabled in ``settings``: file, console, then Kafka.

    Sinks already opened are closed again if a later one fails to build.
    """
    sinks: list[Sink] = []
    try:
        file_cfg = settings.file
        if file_cfg.enabled:
            sinks.append(
                RotatingFileSink(
                    file_cfg.path,
                    max_size_mb=file_cfg.max_size_mb,
                    max_backups=file_cfg.max_backups,
                    max_age_days=file_cfg.max_age_days,
                    compress=file_cfg.compress,
                )
            )

        if settings.console:
            sinks.append(StreamSink(sys.stdout))

        kafka_cfg = settings.kafka
        if kafka_cfg.enabled:
            sinks.append(
                KafkaSink(
                    kafka_cfg.brokers,
                    kafka_cfg.topic,
                    acks=kafka_cfg.acks,
                    flush_timeout=kafka_cfg.flush_timeout,
                    extra_config=dict(kafka_cfg.extra_config),
                )
            )
    except Exception:
        for sink in sinks:
            sink.close()
        raise

    return sinks


def build_formatter(settings: LoggingSettings) -> Formatter:
    if settings.format == LogFormat.JSON:
        return JSONFormatter()
    return PlainFormatter()


def build_logger(
    settings: LoggingSettings,
    *,
    sinks: Sequence[Sink] | None = None,
    exit_func: Callable[[int], Any] = exit_process,
) -> Logger:
    """Build a Logger from settings without installing it as the default.

    Sinks built from ``settings`` are closed with the logger. Sinks passed in
    ``sinks`` belong to the caller and are only flushed.
    """
    if sinks is None:
        multi = MultiSink(build_sinks(settings))
    else:
        multi = MultiSink(sinks, owned=())
    dispatcher = Dispatcher(multi, build_formatter(settings))
    builder = RecordBuilder(Metadata(service=settings.service_name, environment=settings.environment))
    return Logger(
        dispatcher,
        level=settings.level,
        builder=builder,
        exit_func=exit_func,
        capture_caller=settings.format == LogFormat.PLAIN,
    )


def configure_logging(
    settings: LoggingSettings | None = None,
    *,
    sinks: Sequence[Sink] | None = None,
    exit_func: Callable[[int], Any] = exit_process,
    **overrides: Any,
) -> Logger:
    """
    Configure the process logger and install it as the default.

    Call once at startup. Reconfiguring while other threads are logging is
    not supported. The previous logger is closed, which closes the sinks it
    built from settings but not the ones passed in ``sinks``.

    Args:
        settings: Full settings; read from ``FANLOG_*`` env vars when omitted
        sinks: Use these sinks instead of the ones enabled in settings
        exit_func: Called with the exit status after a FATAL record
        **overrides: Individual LoggingSettings fields (level, format, ...)

    Example:
        logger = configure_logging(level="debug", format="json", service_name="billing")
        logger.info("service started")
    """
    global _logger

    if settings is None:
        settings = LoggingSettings(**overrides)
    elif overrides:
        settings = LoggingSettings(**{**settings.model_dump(), **overrides})

    logger = build_logger(settings, sinks=sinks, exit_func=exit_func)

    previous, _logger = _logger, logger
    _uninstall_bridge()
    if settings.stdlib_bridge:
        _install_bridge()
    if previous is not None:
        previous.close()
    return logger


def get_logger() -> Logger:
    """Return the logger installed by configure_logging()."""
    if _logger is None:
        raise LoggerNotConfiguredError()
    return _logger


def reset_logging() -> None:
    """Close and uninstall the default logger."""
    global _logger
    previous, _logger = _logger, None
    _uninstall_bridge()
    if previous is not None:
        previous.close()


def _install_bridge() -> None:
    global _bridge
    from .interceptors import install_stdlib_bridge

    _bridge = install_stdlib_bridge()


def _uninstall_bridge() -> None:
    global _bridge
    if _bridge is not None:
        logging.getLogger().removeHandler(_bridge)
        _bridge = None
