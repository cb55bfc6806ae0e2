"""Shared CLI plumbing: logging, sessions and error reporting."""

from __future__ import annotations

import contextlib
import logging
import sys
from collections.abc import Iterator
from dataclasses import dataclass, field

import click

from kwclient.client.api import APIClient
from kwclient.client.auth import AuthSession
from kwclient.client.cli.config import build_session_config, get_username, load_config
from kwclient.client.errors import (
    APIError,
    ConfigurationError,
    KWClientError,
    ReauthenticationError,
)
from kwclient.client.monitor import TransferMonitor
from kwclient.client.sinks import ConsoleSink, StatusLineAwareHandler

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass
class CLIContext:
    """Options shared by every command."""

    user: str | None = None
    trace: bool = False
    verbose: bool = False
    sink: ConsoleSink = field(default_factory=ConsoleSink)

    def session(self) -> AuthSession:
        """Create the session described by the config file."""
        config = load_config()
        session_config = build_session_config(config, trace=self.trace)
        return AuthSession(session_config, get_username(config, self.user))

    def client(self) -> APIClient:
        return APIClient(self.session())

    def monitor(self) -> TransferMonitor:
        return TransferMonitor(self.sink)


def setup_logging(sink: ConsoleSink, verbose: bool = False, trace: bool = False) -> logging.Handler:
    """Configure the kwclient loggers to print through the status line sink.

    Args:
        sink: Sink owning the terminal status line.
        verbose: Log at DEBUG level.
        trace: Also log request/response traces.

    Returns:
        The installed handler.
    """
    root_logger = logging.getLogger("kwclient")
    root_logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    for handler in list(root_logger.handlers):
        if isinstance(handler, StatusLineAwareHandler):
            root_logger.removeHandler(handler)

    handler = StatusLineAwareHandler(sink)
    handler.setFormatter(logging.Formatter(LOG_FORMAT if verbose else "%(message)s"))
    root_logger.addHandler(handler)

    trace_logger = logging.getLogger("kwclient.trace")
    trace_logger.setLevel(logging.DEBUG if trace else logging.WARNING)
    return handler


def teardown_logging(handler: logging.Handler) -> None:
    """Remove a handler installed by setup_logging."""
    logging.getLogger("kwclient").removeHandler(handler)
    handler.close()


@contextlib.contextmanager
def cli_errors() -> Iterator[None]:
    """Report client errors and exit non-zero."""
    try:
        yield
    except ReauthenticationError as e:
        click.echo(f"Error: {e}", err=True)
        click.echo("Run 'kwclient login' to authenticate again.", err=True)
        sys.exit(1)
    except ConfigurationError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except APIError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(2)
    except KWClientError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


pass_context = click.make_pass_decorator(CLIContext, ensure=True)
