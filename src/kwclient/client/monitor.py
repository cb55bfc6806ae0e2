"""Transfer progress monitoring.

This module provides:
- TransferState: state bits of one transfer
- TransferRecord: byte accounting and rate of one transfer
- MonitoredStream: file-like wrapper counting the bytes read through it
- TransferMonitor: registry of in-flight transfers with a display thread
- human_size, format_rate, progress_bar: status line helpers

Architecture:
    ChunkedUploader / ResumableDownloader
        └─ MonitoredStream ──counts──► TransferRecord ◄──ticks── display thread ──► ProgressSink
"""

from __future__ import annotations

import io
import logging
import threading
import time
from enum import IntFlag
from typing import IO, Any

from kwclient.client.sinks import LoggingSink, ProgressSink
from kwclient.core.bitflag import BitFlag

logger = logging.getLogger(__name__)

DEFAULT_TICK = 0.2
SHORT_NAME_LENGTH = 8
BAR_WIDTH = 25
MIN_ELAPSED = 0.1

SIZE_UNITS = ("Bytes", "KB", "MB", "GB")
RATE_UNITS = ("bps", "kbps", "mbps", "gbps")


class TransferState(IntFlag):
    """State bits of a transfer."""

    NONE = 0
    ACTIVE = 1 << 0
    CLOSED = 1 << 1
    COMPLETE = 1 << 2


def _scale(value: float, units: tuple[str, ...]) -> str:
    suffix = 0
    while value >= 1000 and suffix < len(units) - 1:
        value /= 1000
        suffix += 1
    return f"{value:.1f}{units[suffix]}"


def human_size(size: int) -> str:
    """Format a byte count, e.g. 1500000 -> "1.5MB"."""
    return _scale(float(size), SIZE_UNITS)


def format_rate(bits_per_second: float) -> str:
    """Format a bit rate, e.g. 2500 -> "2.5kbps"."""
    if bits_per_second <= 0:
        return "0.0bps"
    return _scale(bits_per_second, RATE_UNITS)


def progress_bar(transferred: int, total_size: int) -> str:
    """Render a progress bar with percentage, e.g. "[░░░......] 12%"."""
    if total_size <= 0:
        percent = 100
    else:
        percent = min(100, max(0, int(transferred / total_size * 100)))
    filled = percent // 4
    bar = "░" * filled + "." * (BAR_WIDTH - filled)
    return f"[{bar}] {percent}%"


def short_name(name: str) -> str:
    """Truncate a display name for the status line."""
    if len(name) <= SHORT_NAME_LENGTH:
        return name
    return name[:SHORT_NAME_LENGTH] + "..."


class TransferRecord:
    """Progress of one transfer.

    transferred never decreases: re-reading bytes after a seek backwards
    (e.g. when a chunk is resent) moves the position but not the count.
    offset is the position the transfer started from, so the rate only
    counts bytes moved by this process.
    """

    def __init__(self, name: str, total_size: int, now: float | None = None) -> None:
        self.name = name
        self.short_name = short_name(name)
        self.total_size = total_size
        self.started = time.monotonic() if now is None else now
        self.state: BitFlag[TransferState] = BitFlag(TransferState.ACTIVE)
        self._lock = threading.Lock()
        self._transferred = 0
        self._position = 0
        self._offset = 0
        self._reading = False
        self._rate = "0.0bps"

    @property
    def transferred(self) -> int:
        with self._lock:
            return self._transferred

    @property
    def position(self) -> int:
        with self._lock:
            return self._position

    @property
    def offset(self) -> int:
        with self._lock:
            return self._offset

    @property
    def closed(self) -> bool:
        return self.state.has(TransferState.CLOSED)

    def moved_to(self, position: int) -> None:
        """Record a seek of the underlying stream."""
        with self._lock:
            if not self._reading:
                self._offset = position
            self._position = position
            self._transferred = max(self._transferred, position)

    def add(self, count: int) -> None:
        """Record count bytes read."""
        with self._lock:
            self._reading = True
            self._position += count
            self._transferred = max(self._transferred, self._position)

    def rate(self, now: float | None = None) -> str:
        """Average rate since the transfer started."""
        with self._lock:
            transferred = self._transferred
            offset = self._offset
        if transferred == 0 or self.state.has(TransferState.COMPLETE):
            return self._rate

        now = time.monotonic() if now is None else now
        elapsed = max(MIN_ELAPSED, now - self.started)
        self._rate = format_rate((transferred - offset) * 8 / elapsed)

        if self.total_size >= 0 and transferred >= self.total_size:
            self.state.set(TransferState.COMPLETE)
        return self._rate

    def status_line(self, persistent: bool = False, now: float | None = None) -> str:
        """Render the one-line status of the transfer.

        Args:
            persistent: Use the full name, for the final log line.
        """
        rate = self.rate(now)
        transferred = self.transferred
        name = self.name if persistent else self.short_name
        if self.total_size < 0:
            return f"[{name}] {rate} ({human_size(transferred)})"
        return (
            f"[{name}] {rate} {progress_bar(transferred, self.total_size)} "
            f"({human_size(transferred)}/{human_size(self.total_size)})"
        )


class MonitoredStream:
    """Readable stream that reports the bytes read through it.

    The record is closed (and its final line logged) on EOF, on a read
    error, or on finish()/close(), whichever comes first.
    """

    def __init__(self, monitor: TransferMonitor, record: TransferRecord, source: IO[bytes] | Any) -> None:
        self._monitor = monitor
        self._record = record
        self._source = source
        self._closed = False

    @property
    def record(self) -> TransferRecord:
        return self._record

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return True

    def read(self, size: int = -1) -> bytes:
        try:
            data = self._source.read(size)
        except Exception:
            self.finish()
            raise
        self._record.add(len(data))
        if not data and size != 0:
            self.finish()
        return data

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        position = self._source.seek(offset, whence)
        if position is None:
            position = self._source.tell()
        self._record.moved_to(position)
        return position

    def tell(self) -> int:
        return self._source.tell()

    def finish(self) -> None:
        """Mark the transfer closed and log its final line (once)."""
        if self._record.state.set_if_unset(TransferState.CLOSED):
            line = self._record.status_line(persistent=True)
            self._record.state.unset(TransferState.ACTIVE)
            self._monitor.sink.log(line)

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Finish the transfer and close the wrapped stream."""
        if self._closed:
            return
        self._closed = True
        self.finish()
        close = getattr(self._source, "close", None)
        if close is not None:
            close()

    def __enter__(self) -> MonitoredStream:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


class TransferMonitor:
    """Registry of in-flight transfers.

    The first transfer registered into an empty registry starts a daemon
    display thread. Every tick the thread flashes the status of each open
    transfer and drops closed ones; it exits once the registry is empty.

    Usage:
        monitor = TransferMonitor(ConsoleSink())
        with open(path, "rb") as f:
            stream = monitor.track("report.pdf", size, f)
            ...
    """

    def __init__(self, sink: ProgressSink | None = None, tick: float = DEFAULT_TICK) -> None:
        self._sink: ProgressSink = sink if sink is not None else LoggingSink()
        self._tick = tick
        self._records: list[TransferRecord] = []
        self._lock = threading.Lock()
        self._thread: threading.Thread | None = None

    @property
    def sink(self) -> ProgressSink:
        return self._sink

    @property
    def records(self) -> list[TransferRecord]:
        """Snapshot of the registered transfers."""
        with self._lock:
            return list(self._records)

    @property
    def running(self) -> bool:
        """Check if the display thread is alive."""
        with self._lock:
            return self._thread is not None and self._thread.is_alive()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def track(self, name: str, total_size: int, source: IO[bytes] | Any) -> MonitoredStream:
        """Register a transfer and wrap its byte stream.

        Args:
            name: Display name of the transfer.
            total_size: Size in bytes, or -1 if unknown.
            source: Stream the transfer reads from.

        Returns:
            Wrapped stream to read the transfer's bytes from.
        """
        record = TransferRecord(name, total_size)
        with self._lock:
            self._records.append(record)
            if self._thread is None or not self._thread.is_alive():
                self._thread = threading.Thread(
                    target=self._run,
                    name="kwclient-monitor",
                    daemon=True,
                )
                self._thread.start()
        logger.debug(f"Tracking transfer {name} ({total_size} bytes)")
        return MonitoredStream(self, record, source)

    def wait(self, timeout: float | None = None) -> bool:
        """Wait for the display thread to exit.

        Returns:
            True if no display thread is running anymore.
        """
        with self._lock:
            thread = self._thread
        if thread is not None:
            thread.join(timeout)
            return not thread.is_alive()
        return True

    def _run(self) -> None:
        """Display loop."""
        while True:
            with self._lock:
                self._records = [r for r in self._records if not r.closed]
                if not self._records:
                    self._thread = None
                    return
                active = list(self._records)

            for record in active:
                if record.state.has(TransferState.ACTIVE) and not record.closed:
                    self._sink.flash(record.status_line())

            time.sleep(self._tick)
