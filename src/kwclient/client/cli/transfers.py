"""Transfer commands for the kwclient CLI.

Commands:
- upload: Upload a file into a folder, or as a new version of a file
- resume: Resume an interrupted upload
- download: Download a file, resuming a partial download
"""

from __future__ import annotations

import sys
from pathlib import Path

import click

from kwclient.client.cli.config import get_pending_uploads, set_pending_upload
from kwclient.client.cli.context import CLIContext, cli_errors, pass_context

COPY_BUFFER = 64 * 1024


def _finish_upload(ctx: CLIContext, path: Path, upload_id: int) -> None:
    client = ctx.client()
    monitor = ctx.monitor()
    with path.open("rb") as source:
        file_id = client.upload(path.name, upload_id, source, monitor=monitor)
    monitor.wait()
    set_pending_upload(path, None)
    click.echo(f"Uploaded {path.name} (file ID {file_id})")


@click.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--folder", "folder_id", type=int, default=None, help="Folder to upload into.")
@click.option("--file", "file_id", type=int, default=None, help="File to upload a new version of.")
@pass_context
def upload(ctx: CLIContext, path: Path, folder_id: int | None, file_id: int | None) -> None:
    """Upload PATH to kiteworks.

    The upload is remembered until it completes, so an interrupted
    upload can be continued with 'kwclient resume PATH'.
    """
    if (folder_id is None) == (file_id is None):
        click.echo("Error: Specify exactly one of --folder or --file.", err=True)
        sys.exit(1)

    with cli_errors():
        client = ctx.client()
        size = path.stat().st_size
        if folder_id is not None:
            upload_id = client.initiate_upload(folder_id, path.name, size)
        else:
            assert file_id is not None
            upload_id = client.initiate_version_upload(file_id, path.name, size)
        set_pending_upload(path, upload_id)
        _finish_upload(ctx, path, upload_id)


@click.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--upload-id", type=int, default=None, help="Upload ID (default: remembered one).")
@pass_context
def resume(ctx: CLIContext, path: Path, upload_id: int | None) -> None:
    """Resume an interrupted upload of PATH."""
    if upload_id is None:
        upload_id = get_pending_uploads().get(str(path.resolve()))
    if upload_id is None:
        click.echo(f"Error: No pending upload for {path}.", err=True)
        sys.exit(1)

    with cli_errors():
        _finish_upload(ctx, path, upload_id)


@click.command()
@click.argument("file_id", type=int)
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Destination path (default: the file's name).",
)
@pass_context
def download(ctx: CLIContext, file_id: int, output: Path | None) -> None:
    """Download a file by FILE_ID.

    An existing partial destination file is continued, not restarted.
    """
    with cli_errors():
        client = ctx.client()
        info = client.file_info(file_id)
        target = output or Path(info.name)
        existing = target.stat().st_size if target.exists() else 0

        if info.size and existing >= info.size:
            click.echo(f"{target} is already complete")
            return

        monitor = ctx.monitor()
        with client.download(file_id, monitor=monitor) as stream, target.open("ab") as out:
            if existing:
                stream.seek(existing)
            while True:
                data = stream.read(COPY_BUFFER)
                if not data:
                    break
                out.write(data)
        monitor.wait()

    click.echo(f"Downloaded {info.name} to {target}")
