"""
Logger facade and configuration lifecycle tests.

Includes the end-to-end scenarios: freeform JSON lines, printf formatting,
structured calls with trace ids, newline sanitization, threshold drops,
sink failure reporting and FATAL termination.
"""

from __future__ import annotations

import io
import os
import subprocess
import sys
import textwrap
from datetime import datetime
from pathlib import Path

import orjson
import pytest
from structlog.contextvars import bound_contextvars

from fanlog import (
    ConfigurationError,
    LoggerNotConfiguredError,
    LogFormat,
    LoggingSettings,
    MultiSink,
    RotatingFileSink,
    Severity,
    StreamSink,
    build_sinks,
    configure_logging,
    exit_process,
    get_logger,
    reset_logging,
)
from fanlog.core import FATAL_EXIT_CODE, Logger

SRC_DIR = Path(__file__).resolve().parents[2] / "src"


def json_logger(sink, level: str = "debug", **overrides) -> Logger:
    return configure_logging(level=level, format="json", console=False, sinks=[sink], **overrides)


def only_line(sink) -> dict:
    assert len(sink.writes) == 1, sink.writes
    return orjson.loads(sink.writes[0])


# ================================
# Scenarios
# ================================


class TestScenarios:
    def test_plain_info_message_json(self, buffer_sink):
        json_logger(buffer_sink).info("plain info message")
        entry = only_line(buffer_sink)
        assert entry["level"] == "INFO"
        assert "plain info message" in entry["message"]
        datetime.fromisoformat(entry["timestamp"])

    def test_formatted_debug_json(self, buffer_sink):
        json_logger(buffer_sink).debug("this is a %s message", "debug")
        entry = only_line(buffer_sink)
        assert entry["level"] == "DEBUG"
        assert entry["message"] == "this is a debug message"

    def test_structured_with_trace_id(self, buffer_sink):
        json_logger(buffer_sink).info_fields({"event": "deploy", "app": "logger-service"}, trace_id="xyz-123")
        entry = only_line(buffer_sink)
        assert entry["event"] == "deploy"
        assert entry["app"] == "logger-service"
        assert entry["trace_id"] == "xyz-123"

    def test_structured_trace_id_from_context(self, buffer_sink):
        logger = json_logger(buffer_sink)
        with bound_contextvars(trace_id="ctx-42"):
            logger.warning_fields({"event": "retry"})
        assert only_line(buffer_sink)["trace_id"] == "ctx-42"

    def test_error_with_newline(self, buffer_sink):
        json_logger(buffer_sink).error("this message has a newline\nsecond line")
        entry = only_line(buffer_sink)
        assert "\n" not in entry["message"]
        assert buffer_sink.writes[0].endswith(b"}\n")

    def test_warn_threshold_drops_debug(self, buffer_sink):
        logger = json_logger(buffer_sink, level="warn")
        logger.debug("hidden")
        logger.debug_fields({"event": "hidden"})
        logger.info("hidden too")
        assert buffer_sink.writes == []

    def test_timestamp_rfc3339(self, buffer_sink):
        json_logger(buffer_sink).warning("timestamp test")
        parsed = datetime.fromisoformat(only_line(buffer_sink)["timestamp"])
        assert parsed.tzinfo is not None


# ================================
# Logger behaviour
# ================================


class TestLogger:
    def test_every_line_ends_with_one_newline(self, buffer_sink):
        logger = json_logger(buffer_sink)
        logger.info("a\n")
        logger.info("b\n\n")
        logger.info_fields({"text": "multi\nline"})
        for line in buffer_sink.writes:
            assert line.endswith(b"\n")
            assert line.count(b"\n") == 1

    def test_structured_includes_metadata(self, buffer_sink):
        logger = json_logger(buffer_sink, service_name="billing", environment="prod")
        logger.error_fields({"event": "charge_failed", "amount": 12.5})
        entry = only_line(buffer_sink)
        assert entry["service"] == "billing"
        assert entry["environment"] == "prod"
        assert entry["level"] == "ERROR"
        assert entry["amount"] == 12.5

    def test_set_metadata_without_reconfiguring(self, buffer_sink):
        logger = json_logger(buffer_sink, service_name="old", environment="dev")
        logger.set_metadata("new", "prod")
        logger.info("x")
        entry = only_line(buffer_sink)
        assert (entry["service"], entry["environment"]) == ("new", "prod")

    def test_caller_fields_overwritten_by_injected_keys(self, buffer_sink):
        json_logger(buffer_sink, service_name="svc").info_fields({"level": "nope", "service": "spoof", "user": "u1"})
        entry = only_line(buffer_sink)
        assert entry["level"] == "INFO"
        assert entry["service"] == "svc"
        assert entry["user"] == "u1"

    def test_caller_fields_not_mutated(self, buffer_sink):
        fields = {"event": "deploy"}
        json_logger(buffer_sink).info_fields(fields, trace_id="t")
        assert fields == {"event": "deploy"}

    def test_plain_format(self, buffer_sink):
        logger = configure_logging(level="info", format="plain", console=False, sinks=[buffer_sink])
        logger.warning("disk at %d%%", 91)
        line = buffer_sink.text
        assert line.startswith("WARNING: ")
        assert "test_core.py:" in line
        assert line.endswith(": disk at 91%\n")

    def test_structured_call_renders_json_in_plain_mode(self, buffer_sink):
        logger = configure_logging(level="info", format="plain", console=False, sinks=[buffer_sink])
        logger.info_fields({"event": "deploy"})
        assert only_line(buffer_sink)["event"] == "deploy"

    def test_unknown_threshold_emits_everything(self, buffer_sink):
        logger = json_logger(buffer_sink, level="verbose")
        logger.debug("d")
        logger.info("i")
        assert [e["level"] for e in buffer_sink.json_lines()] == ["DEBUG", "INFO"]

    def test_is_enabled_for(self, buffer_sink):
        logger = json_logger(buffer_sink, level="error")
        assert not logger.is_enabled_for(Severity.WARNING)
        assert logger.is_enabled_for(Severity.ERROR)
        assert logger.is_enabled_for(Severity.FATAL)


# ================================
# Error handling
# ================================


class TestErrorHandling:
    def test_sink_failure_reported_to_healthy_sinks(self, buffer_sink, failing_sink):
        configure_logging(level="debug", format="json", console=False, sinks=[failing_sink, buffer_sink])
        logger = get_logger()

        logger.info("important")  # must not raise

        entries = buffer_sink.json_lines()
        assert entries[0]["message"] == "important"
        assert entries[1]["level"] == "ERROR"
        assert "Failed to write log record" in entries[1]["message"]
        assert "disk full" in entries[1]["message"]
        assert failing_sink.attempts == 2

    def test_unserializable_fields_reported_and_dropped(self, buffer_sink):
        logger = json_logger(buffer_sink)
        logger.info_fields({"handle": object()})
        entry = only_line(buffer_sink)
        assert entry["level"] == "ERROR"
        assert entry["message"].startswith("Failed to marshal structured log")

    def test_bad_format_args_reported(self, buffer_sink):
        logger = json_logger(buffer_sink)
        logger.info("%s and %s", "only one")
        entry = only_line(buffer_sink)
        assert entry["level"] == "ERROR"
        assert entry["message"].startswith("Failed to format log message")

    def test_all_sinks_failing_does_not_raise(self, failing_sink):
        logger = configure_logging(level="debug", console=False, sinks=[failing_sink])
        logger.error("nobody hears this")
        assert failing_sink.attempts == 2


# ================================
# FATAL
# ================================


class TestFatal:
    def test_fatal_exits_after_dispatch(self, buffer_sink):
        logger = json_logger(buffer_sink, level="error")
        with pytest.raises(SystemExit) as exc_info:
            logger.fatal("cannot continue: %s", "db down")
        assert exc_info.value.code == FATAL_EXIT_CODE
        entry = only_line(buffer_sink)
        assert entry["level"] == "FATAL"
        assert entry["message"] == "cannot continue: db down"
        assert buffer_sink.flushed >= 1

    def test_fatal_exits_even_when_sinks_fail(self, failing_sink):
        logger = configure_logging(level="debug", console=False, sinks=[failing_sink])
        with pytest.raises(SystemExit):
            logger.fatal("boom")

    def test_fatal_fields(self, buffer_sink):
        logger = json_logger(buffer_sink)
        with pytest.raises(SystemExit):
            logger.fatal_fields({"event": "panic"}, trace_id="t-9")
        entry = only_line(buffer_sink)
        assert entry["level"] == "FATAL"
        assert entry["trace_id"] == "t-9"

    def test_custom_exit_func(self, buffer_sink):
        codes = []
        logger = json_logger(buffer_sink, exit_func=codes.append)
        with pytest.raises(SystemExit):
            logger.fatal("bye")
        assert codes == [FATAL_EXIT_CODE]

    def test_log_at_fatal_terminates(self, buffer_sink):
        logger = json_logger(buffer_sink)
        with pytest.raises(SystemExit):
            logger.log(Severity.FATAL, "bye")

    def test_exit_process_on_main_thread_raises_system_exit(self):
        with pytest.raises(SystemExit) as exc_info:
            exit_process(FATAL_EXIT_CODE)
        assert exc_info.value.code == FATAL_EXIT_CODE

    def test_fatal_from_worker_thread_ends_process(self, tmp_path):
        script = tmp_path / "worker_fatal.py"
        script.write_text(
            textwrap.dedent(
                """
                import threading

                from fanlog import configure_logging

                logger = configure_logging(level="info", format="json")
                worker = threading.Thread(target=logger.fatal, args=("boom",))
                worker.start()
                worker.join()
                print("STILL RUNNING", flush=True)
                """
            )
        )
        pythonpath = os.pathsep.join(filter(None, [str(SRC_DIR), os.environ.get("PYTHONPATH")]))

        result = subprocess.run(
            [sys.executable, str(script)],
            capture_output=True,
            cwd=tmp_path,
            env={**os.environ, "PYTHONPATH": pythonpath},
            timeout=60,
        )

        assert result.returncode == FATAL_EXIT_CODE, result.stderr
        assert b"STILL RUNNING" not in result.stdout
        entry = orjson.loads(result.stdout.splitlines()[0])
        assert (entry["level"], entry["message"]) == ("FATAL", "boom")


# ================================
# Configuration lifecycle
# ================================


class TestLifecycle:
    def test_get_logger_before_configure(self):
        with pytest.raises(LoggerNotConfiguredError):
            get_logger()

    def test_configure_installs_default(self, buffer_sink):
        logger = json_logger(buffer_sink)
        assert get_logger() is logger

    def test_reconfigure_leaves_injected_sinks_open(self, buffer_sink):
        json_logger(buffer_sink)
        json_logger(io.BytesIO())
        assert not buffer_sink.closed
        assert buffer_sink.flushed == 1

    def test_reconfigure_closes_sinks_built_from_settings(self):
        logger = configure_logging(format="json", console=False, file={"enabled": True, "path": "app.log"})
        (file_sink,) = logger.dispatcher.sink.sinks
        configure_logging(console=False)
        assert isinstance(file_sink, RotatingFileSink)
        assert file_sink.closed

    def test_reset(self, buffer_sink):
        json_logger(buffer_sink)
        reset_logging()
        assert not buffer_sink.closed
        with pytest.raises(LoggerNotConfiguredError):
            get_logger()

    def test_configure_from_settings_with_overrides(self, buffer_sink):
        settings = LoggingSettings(level="error", format="plain", service_name="svc")
        logger = configure_logging(settings, sinks=[buffer_sink], format="json")
        assert logger.level == "error"
        assert logger.metadata.service == "svc"
        logger.error("x")
        assert only_line(buffer_sink)["service"] == "svc"

    def test_build_sinks_order(self, tmp_path):
        settings = LoggingSettings(file={"enabled": True, "path": str(tmp_path / "app.log")}, console=True)
        sinks = build_sinks(settings)
        assert [type(s) for s in sinks] == [RotatingFileSink, StreamSink]
        for sink in sinks:
            sink.close()

    def test_build_sinks_closes_opened_sinks_on_failure(self, monkeypatch):
        opened = []

        class TrackedFileSink(RotatingFileSink):
            def __init__(self, *args, **kwargs):
                super().__init__(*args, **kwargs)
                opened.append(self)

        monkeypatch.setattr("fanlog.core.RotatingFileSink", TrackedFileSink)
        settings = LoggingSettings(
            console=False,
            file={"enabled": True},
            kafka={"enabled": True, "brokers": ["localhost:9092"]},
        )
        with pytest.raises(ConfigurationError, match="topic"):
            build_sinks(settings)
        assert len(opened) == 1
        assert opened[0].closed

    def test_build_sinks_console_only_by_default(self):
        sinks = build_sinks(LoggingSettings())
        assert [type(s) for s in sinks] == [StreamSink]

    def test_console_sink_end_to_end(self, capsys):
        logger = configure_logging(level="info", format="json", service_name="svc")
        logger.info("to console")
        entry = orjson.loads(capsys.readouterr().out)
        assert entry["message"] == "to console"
        assert isinstance(logger.dispatcher.sink, MultiSink)
        assert LoggingSettings().format == LogFormat.PLAIN
