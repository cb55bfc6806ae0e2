"""Tests for progress sinks."""

from __future__ import annotations

import io
import logging

import pytest

from kwclient.client.sinks import ConsoleSink, LoggingSink, ProgressSink, StatusLineAwareHandler


class TestConsoleSink:
    """Tests for ConsoleSink."""

    def test_flash_overwrites(self) -> None:
        out = io.StringIO()
        sink = ConsoleSink(out)

        sink.flash("abcdef")
        sink.flash("xyz")

        assert out.getvalue() == "\rabcdef\rxyz   "

    def test_log_clears_status_line(self) -> None:
        out = io.StringIO()
        sink = ConsoleSink(out)

        sink.flash("abc")
        sink.log("done")

        assert out.getvalue() == "\rabc\r   \rdone\n"

    def test_log_without_status_line(self) -> None:
        out = io.StringIO()
        sink = ConsoleSink(out)

        sink.log("done")
        sink.clear()

        assert out.getvalue() == "done\n"

    def test_is_progress_sink(self) -> None:
        assert isinstance(ConsoleSink(io.StringIO()), ProgressSink)
        assert isinstance(LoggingSink(), ProgressSink)


class TestLoggingSink:
    """Tests for LoggingSink."""

    def test_levels(self, caplog: pytest.LogCaptureFixture) -> None:
        sink = LoggingSink(logging.getLogger("kwclient.test"))

        with caplog.at_level(logging.DEBUG, logger="kwclient.test"):
            sink.flash("in progress")
            sink.log("finished")

        levels = [(r.levelno, r.getMessage()) for r in caplog.records]
        assert levels == [(logging.DEBUG, "in progress"), (logging.INFO, "finished")]


class TestStatusLineAwareHandler:
    """Tests for StatusLineAwareHandler."""

    def test_records_go_through_sink(self) -> None:
        out = io.StringIO()
        sink = ConsoleSink(out)
        handler = StatusLineAwareHandler(sink)
        handler.setFormatter(logging.Formatter("%(levelname)s %(message)s"))
        logger = logging.getLogger("kwclient.test.handler")
        logger.propagate = False
        logger.addHandler(handler)
        try:
            sink.flash("12%")
            logger.warning("slow server")
        finally:
            logger.removeHandler(handler)
            logger.propagate = True

        assert out.getvalue() == "\r12%\r   \rWARNING slow server\n"
