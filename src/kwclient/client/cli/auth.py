"""Account commands for the kwclient CLI.

Commands:
- configure: Save the host, application and user settings
- login: Authenticate through the authorization-code flow
- logout: Forget the stored token
"""

from __future__ import annotations

import click

from kwclient.client.cli.config import delete_secrets, load_config, save_config, store_secret
from kwclient.client.cli.context import CLIContext, cli_errors, pass_context
from kwclient.core.config import CLIENT_SECRET, SIGNATURE_KEY, SessionConfig


@click.command()
@click.option("--host", required=True, help="kiteworks host (e.g. files.example.com).")
@click.option("--user", "username", required=True, help="User to act for.")
@click.option("--application-id", required=True, help="Client ID of the custom application.")
@click.option("--redirect-uri", default="", help="Redirect URI of the custom application.")
@click.option("--client-secret", default=None, help="Client secret (stored in the OS keyring).")
@click.option("--signature-key", default=None, help="Signature key (stored in the OS keyring).")
@click.option("--no-verify-ssl", is_flag=True, help="Do not verify TLS certificates.")
@click.option("--proxy", "proxy_uri", default=None, help="Proxy URI for outgoing requests.")
@click.option("--chunk-size", type=int, default=None, help="Upload chunk size bound in bytes.")
@click.option("--retries", type=int, default=None, help="Retries after a failed call.")
def configure(
    host: str,
    username: str,
    application_id: str,
    redirect_uri: str,
    client_secret: str | None,
    signature_key: str | None,
    no_verify_ssl: bool,
    proxy_uri: str | None,
    chunk_size: int | None,
    retries: int | None,
) -> None:
    """Save connection settings for a kiteworks host."""
    with cli_errors():
        # Normalizes the host and validates the options.
        session_config = SessionConfig(
            host=host,
            application_id=application_id,
            redirect_uri=redirect_uri,
            verify_ssl=not no_verify_ssl,
            proxy_uri=proxy_uri,
            max_chunk_size=chunk_size or 0,
            retries=3 if retries is None else retries,
        )

    config = load_config()
    config.update({
        "host": session_config.host,
        "username": username,
        "application_id": application_id,
        "redirect_uri": redirect_uri,
        "verify_ssl": session_config.verify_ssl,
        "proxy_uri": proxy_uri,
        "max_chunk_size": chunk_size,
        "retries": retries,
    })
    save_config(config)

    if client_secret:
        store_secret(session_config.host, CLIENT_SECRET, client_secret)
    if signature_key:
        store_secret(session_config.host, SIGNATURE_KEY, signature_key)

    click.echo(f"Configured {username} on {session_config.host}")


@click.command()
@click.option("--code", default=None, help="Authorization code (prompted if omitted).")
@pass_context
def login(ctx: CLIContext, code: str | None) -> None:
    """Authenticate and store a token in the OS keyring.

    With a signature key configured, a token is minted directly.
    Otherwise, open the printed URL, sign in and paste the code.
    """
    with cli_errors():
        session = ctx.session()
        if session.config.uses_signature:
            session.authenticate_signature()
        else:
            if code is None:
                click.echo(f"Sign in at:\n  {session.authorization_url()}")
                code = click.prompt("Authorization code")
            session.authenticate(code)
    click.echo(f"Logged in as {session.username}")


@click.command()
@click.option(
    "--forget-secrets",
    is_flag=True,
    help="Also remove the client secret and signature key of the host.",
)
@pass_context
def logout(ctx: CLIContext, forget_secrets: bool) -> None:
    """Forget the stored token of the configured user."""
    with cli_errors():
        session = ctx.session()
        session.logout()
        if forget_secrets:
            delete_secrets(session.config.host)
            click.echo(f"Removed secrets of {session.config.host}")
    click.echo(f"Logged out {session.username}")
