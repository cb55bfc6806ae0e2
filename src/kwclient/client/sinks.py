"""Output sinks for transfer progress.

This module provides:
- ProgressSink: protocol for ephemeral (flash) and persistent (log) lines
- ConsoleSink: status line on a terminal stream, overwritten with \\r
- LoggingSink: progress routed to the "kwclient" logger
- StatusLineAwareHandler: logging handler that keeps log records from
  interleaving with a ConsoleSink status line
"""

from __future__ import annotations

import logging
import sys
import threading
from typing import Protocol, TextIO, runtime_checkable


@runtime_checkable
class ProgressSink(Protocol):
    """Receives progress lines from a TransferMonitor."""

    def flash(self, line: str) -> None:
        """Show an ephemeral line, replacing the previous one."""
        ...

    def log(self, line: str) -> None:
        """Show a persistent line."""
        ...


class ConsoleSink:
    """Progress sink writing a single status line to a stream.

    flash() overwrites the current status line in place. log() clears it
    and writes a permanent line.
    """

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream if stream is not None else sys.stdout
        self._lock = threading.Lock()
        self._last_len = 0

    def flash(self, line: str) -> None:
        with self._lock:
            pad = " " * max(0, self._last_len - len(line))
            self._stream.write(f"\r{line}{pad}")
            self._stream.flush()
            self._last_len = len(line)

    def log(self, line: str) -> None:
        with self._lock:
            self._clear()
            self._stream.write(line + "\n")
            self._stream.flush()

    def clear(self) -> None:
        """Erase the current status line."""
        with self._lock:
            self._clear()
            self._stream.flush()

    def _clear(self) -> None:
        if self._last_len:
            self._stream.write("\r" + " " * self._last_len + "\r")
            self._last_len = 0


class LoggingSink:
    """Progress sink routing flash lines to DEBUG and log lines to INFO."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger("kwclient")

    def flash(self, line: str) -> None:
        self._logger.debug(line)

    def log(self, line: str) -> None:
        self._logger.info(line)


class StatusLineAwareHandler(logging.Handler):
    """Logging handler that coordinates with a ConsoleSink.

    Log records are written through the sink, so the status line is
    cleared before each record is printed.
    """

    def __init__(self, sink: ConsoleSink) -> None:
        super().__init__()
        self._sink = sink

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self._sink.log(self.format(record))
        except Exception:
            self.handleError(record)
