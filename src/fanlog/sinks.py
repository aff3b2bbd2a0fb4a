"""
Log sink abstractions and concrete implementations.

A sink accepts one fully rendered record per write() call and returns the
number of bytes accepted, raising on failure. The core never looks past this
interface: rotation, compression and queue delivery live entirely here.
"""

from __future__ import annotations

import gzip
import io
import os
import shutil
import sys
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Iterable, Protocol, Sequence, runtime_checkable

from confluent_kafka import KafkaException, Producer

from .exceptions import ConfigurationError, SinkWriteError


@runtime_checkable
class Sink(Protocol):
    """Anything that accepts a byte string."""

    def write(self, data: bytes) -> int: ...


# =============================================================================
# Sink Abstraction
# =============================================================================


class BaseSink(ABC):
    """Abstract base class for the bundled sinks."""

    @abstractmethod
    def write(self, data: bytes) -> int:
        """Write one rendered record. Returns the byte count written."""
        ...

    def flush(self) -> None:
        pass

    def close(self) -> None:
        pass


class StreamSink(BaseSink):
    """Console / stream sink.

    Args:
        stream: Binary or text stream. Defaults to whatever ``sys.stdout`` is
            at write time, so output captured by test harnesses still works.
    """

    def __init__(self, stream: Any = None):
        self._stream = stream

    def _current(self) -> Any:
        return self._stream if self._stream is not None else sys.stdout

    def write(self, data: bytes) -> int:
        stream = self._current()
        if isinstance(stream, io.TextIOBase):
            buffer = getattr(stream, "buffer", None)
            if buffer is None:
                stream.write(data.decode("utf-8"))
                stream.flush()
                return len(data)
            # pending text must land before our bytes
            stream.flush()
            stream = buffer
        stream.write(data)
        stream.flush()
        return len(data)

    def flush(self) -> None:
        self._current().flush()


class RotatingFileSink(BaseSink):
    """Local file sink with size-based rotation.

    When a write would push the active file past ``max_size_mb`` the file is
    renamed to a timestamped backup (``app-2026-10-16T08-30-00.000000.log``)
    and a fresh file is opened. After each rotation:

    - backups are gzip-compressed when ``compress`` is set
    - backups older than ``max_age_days`` are removed (0 keeps all ages)
    - only the newest ``max_backups`` backups are kept (0 keeps all)
    """

    BACKUP_TIME_FORMAT = "%Y-%m-%dT%H-%M-%S.%f"

    def __init__(
        self,
        path: str | Path = "app.log",
        *,
        max_size_mb: float = 10,
        max_backups: int = 5,
        max_age_days: int = 28,
        compress: bool = True,
        clock: Callable[[], datetime] | None = None,
    ):
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._max_bytes = int(max_size_mb * 1024 * 1024)
        self._max_backups = max_backups
        self._max_age = timedelta(days=max_age_days) if max_age_days > 0 else None
        self._compress = compress
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = threading.Lock()
        self._file = open(self._path, "ab")
        self._size = self._path.stat().st_size

    @property
    def path(self) -> Path:
        return self._path

    @property
    def closed(self) -> bool:
        return self._file.closed

    def write(self, data: bytes) -> int:
        with self._lock:
            if len(data) > self._max_bytes:
                raise SinkWriteError(
                    f"write length {len(data)} exceeds maximum file size {self._max_bytes}",
                    failures=((self, ValueError("record too large")),),
                )
            if self._size + len(data) > self._max_bytes:
                self._rotate()
            written = self._file.write(data)
            self._file.flush()
            self._size += written
            return written

    def _backup_name(self, when: datetime) -> Path:
        stamp = when.strftime(self.BACKUP_TIME_FORMAT)
        return self._path.with_name(f"{self._path.stem}-{stamp}{self._path.suffix}")

    def _rotate(self) -> None:
        self._file.close()
        when = self._clock().astimezone(timezone.utc)
        backup = self._backup_name(when)
        while backup.exists() or Path(f"{backup}.gz").exists():
            when += timedelta(microseconds=1)
            backup = self._backup_name(when)
        self._path.rename(backup)
        self._file = open(self._path, "ab")
        self._size = 0
        self._post_rotate()

    def backups(self) -> list[tuple[datetime, Path]]:
        """Existing backups, newest first."""
        prefix = f"{self._path.stem}-"
        found = []
        for candidate in self._path.parent.iterdir():
            name = candidate.name
            if not name.startswith(prefix):
                continue
            stamp = name[len(prefix):]
            if stamp.endswith(".gz"):
                stamp = stamp[:-3]
            if self._path.suffix:
                if not stamp.endswith(self._path.suffix):
                    continue
                stamp = stamp[: -len(self._path.suffix)]
            try:
                when = datetime.strptime(stamp, self.BACKUP_TIME_FORMAT).replace(tzinfo=timezone.utc)
            except ValueError:
                continue
            found.append((when, candidate))
        found.sort(key=lambda item: item[0], reverse=True)
        return found

    def _post_rotate(self) -> None:
        backups = self.backups()
        survivors = []
        cutoff = self._clock().astimezone(timezone.utc) - self._max_age if self._max_age else None
        for index, (when, backup) in enumerate(backups):
            too_many = self._max_backups > 0 and index >= self._max_backups
            too_old = cutoff is not None and when < cutoff
            if too_many or too_old:
                backup.unlink(missing_ok=True)
            else:
                survivors.append(backup)

        if self._compress:
            for backup in survivors:
                if backup.suffix != ".gz":
                    compress_file(backup)

    def flush(self) -> None:
        with self._lock:
            self._file.flush()

    def close(self) -> None:
        with self._lock:
            self._file.close()


def compress_file(path: Path) -> Path:
    """Gzip-compress a file in place. Returns the .gz path."""
    gz_path = Path(f"{path}.gz")
    with open(path, "rb") as f_in, gzip.open(gz_path, "wb") as f_out:
        shutil.copyfileobj(f_in, f_out)
    os.remove(path)
    return gz_path


class KafkaSink(BaseSink):
    """Kafka producer sink.

    Each write produces one message to ``topic`` and waits for the producer
    queue to drain, so a slow broker blocks the calling thread. Delivery
    guarantees (acks, partitioner, batching) are plain librdkafka options
    passed through ``extra_config``.
    """

    def __init__(
        self,
        brokers: Sequence[str],
        topic: str,
        *,
        acks: int | str = 0,
        flush_timeout: float = 10.0,
        extra_config: dict[str, Any] | None = None,
        producer: Any = None,
    ):
        if not topic:
            raise ConfigurationError("Kafka sink requires a topic")
        if producer is None and not brokers:
            raise ConfigurationError("Kafka sink requires at least one broker", details={"topic": topic})
        self._topic = topic
        self._flush_timeout = flush_timeout
        self._lock = threading.Lock()
        self._delivery_errors: list[str] = []
        # Producer is falsy while its queue is empty
        if producer is None:
            producer = Producer(self._build_config(brokers, acks, extra_config))
        self._producer = producer

    @staticmethod
    def _build_config(
        brokers: Sequence[str], acks: int | str, extra_config: dict[str, Any] | None
    ) -> dict[str, Any]:
        config: dict[str, Any] = {
            "bootstrap.servers": ",".join(brokers),
            "acks": acks,
        }
        config.update(extra_config or {})
        return config

    @property
    def topic(self) -> str:
        return self._topic

    def _delivery_callback(self, err: Any, msg: Any) -> None:
        if err:
            self._delivery_errors.append(str(err))

    def write(self, data: bytes) -> int:
        with self._lock:
            self._delivery_errors.clear()
            try:
                self._producer.produce(self._topic, value=data, callback=self._delivery_callback)
                self._producer.poll(0)
                remaining = self._producer.flush(self._flush_timeout)
            except (BufferError, KafkaException) as exc:
                raise SinkWriteError(f"Kafka produce failed: {exc}", failures=((self, exc),)) from exc

            if remaining:
                exc = TimeoutError(f"{remaining} message(s) not delivered within {self._flush_timeout}s")
                raise SinkWriteError(str(exc), failures=((self, exc),))
            if self._delivery_errors:
                exc = RuntimeError(self._delivery_errors[0])
                raise SinkWriteError(f"Kafka delivery failed: {exc}", failures=((self, exc),))
        return len(data)

    def flush(self) -> None:
        with self._lock:
            self._producer.flush(self._flush_timeout)

    def close(self) -> None:
        self.flush()


# =============================================================================
# Composite Sink
# =============================================================================


class MultiSink(BaseSink):
    """Broadcasts every write to an ordered set of child sinks.

    Each child has its own lock, so concurrent records never interleave
    within one sink. A failing child does not stop delivery to the rest;
    failures are collected and raised together once every child was tried.

    ``owned`` names the children that ``close()`` closes. Every child is
    owned when it is omitted. Unowned children are flushed on close, never
    closed.
    """

    def __init__(self, sinks: Iterable[Sink], *, owned: Iterable[Sink] | None = None):
        self._entries = tuple((sink, threading.Lock()) for sink in sinks)
        if owned is None:
            self._owned = frozenset(id(sink) for sink, _ in self._entries)
        else:
            self._owned = frozenset(id(sink) for sink in owned)

    @property
    def sinks(self) -> tuple[Sink, ...]:
        return tuple(sink for sink, _ in self._entries)

    def owns(self, sink: Sink) -> bool:
        return id(sink) in self._owned

    def __len__(self) -> int:
        return len(self._entries)

    def write(self, data: bytes) -> int:
        failures = []
        for sink, lock in self._entries:
            try:
                with lock:
                    written = sink.write(data)
            except Exception as exc:
                failures.append((sink, exc))
                continue
            if written is not None and written < len(data):
                failures.append((sink, OSError(f"short write: {written} of {len(data)} bytes")))

        self._raise_failures(failures, "failed")
        return len(data)

    def flush(self) -> None:
        failures = []
        for sink, lock in self._entries:
            self._call(sink, lock, "flush", failures)
        self._raise_failures(failures, "failed to flush")

    def close(self) -> None:
        failures = []
        for sink, lock in self._entries:
            self._call(sink, lock, "close" if self.owns(sink) else "flush", failures)
        self._raise_failures(failures, "failed to close")

    @staticmethod
    def _call(sink: Sink, lock: threading.Lock, method: str, failures: list) -> None:
        action = getattr(sink, method, None)
        if action is None:
            return
        try:
            with lock:
                action()
        except Exception as exc:
            failures.append((sink, exc))

    def _raise_failures(self, failures: list, verb: str) -> None:
        if not failures:
            return
        summary = "; ".join(f"{type(sink).__name__}: {exc}" for sink, exc in failures)
        raise SinkWriteError(
            f"{len(failures)} of {len(self._entries)} sink(s) {verb}: {summary}",
            failures=failures,
        )
