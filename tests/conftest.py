from __future__ import annotations

import os
import threading
from datetime import datetime, timezone

import orjson
import pytest

from fanlog import reset_logging

FIXED_TIME = datetime(2026, 10, 16, 8, 30, 0, 123456, tzinfo=timezone.utc)


class BufferSink:
    """In-memory sink collecting one entry per write."""

    def __init__(self) -> None:
        self.writes: list[bytes] = []
        self.closed = False
        self.flushed = 0
        self._lock = threading.Lock()

    def write(self, data: bytes) -> int:
        with self._lock:
            self.writes.append(bytes(data))
        return len(data)

    def flush(self) -> None:
        self.flushed += 1

    def close(self) -> None:
        self.closed = True

    @property
    def text(self) -> str:
        return b"".join(self.writes).decode("utf-8")

    def json_lines(self) -> list[dict]:
        return [orjson.loads(line) for line in self.writes]


class FailingSink:
    """Sink that rejects every write."""

    def __init__(self, message: str = "disk full") -> None:
        self.message = message
        self.attempts = 0

    def write(self, data: bytes) -> int:
        self.attempts += 1
        raise OSError(self.message)


@pytest.fixture(autouse=True)
def isolated_logging(tmp_path, monkeypatch):
    """Run every test in an empty directory with no FANLOG_* env and no installed logger."""
    monkeypatch.chdir(tmp_path)
    for key in list(os.environ):
        if key.startswith("FANLOG_"):
            monkeypatch.delenv(key, raising=False)
    reset_logging()
    yield
    reset_logging()


@pytest.fixture
def buffer_sink() -> BufferSink:
    return BufferSink()


@pytest.fixture
def failing_sink() -> FailingSink:
    return FailingSink()


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_TIME

