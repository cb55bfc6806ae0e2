"""Command-line interface for kwclient.

This module provides the main CLI entry point and assembles all commands.

Commands:
- configure: Save connection settings for a kiteworks host
- login: Authenticate and store a token
- logout: Forget the stored token
- upload: Upload a file in chunks
- resume: Resume an interrupted upload
- download: Download a file, resuming a partial download
"""

from __future__ import annotations

import click

from kwclient.client.cli.auth import configure, login, logout
from kwclient.client.cli.config import (
    get_config_dir,
    get_config_file,
    load_config,
    save_config,
)
from kwclient.client.cli.context import CLIContext, setup_logging, teardown_logging
from kwclient.client.cli.transfers import download, resume, upload


@click.group()
@click.version_option(package_name="kwclient")
@click.option("--user", default=None, help="Act for this user instead of the configured one.")
@click.option("--trace", is_flag=True, help="Log full requests and responses (tokens hidden).")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def cli(ctx: click.Context, user: str | None, trace: bool, verbose: bool) -> None:
    """kwclient - kiteworks file transfer client."""
    obj = CLIContext(user=user, trace=trace, verbose=verbose)
    ctx.obj = obj
    handler = setup_logging(obj.sink, verbose=verbose, trace=trace)
    ctx.call_on_close(lambda: teardown_logging(handler))


# Account commands
cli.add_command(configure)
cli.add_command(login)
cli.add_command(logout)

# Transfer commands
cli.add_command(upload)
cli.add_command(resume)
cli.add_command(download)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = [
    "cli",
    "main",
    "get_config_dir",
    "get_config_file",
    "load_config",
    "save_config",
]
