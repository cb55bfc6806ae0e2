"""Configuration utilities for the kwclient CLI.

This module provides shared configuration functions used across CLI commands.
Settings live in ~/.kwclient/config.json; the client secret and signature
key are kept in the OS keyring, never in the config file.
"""

from __future__ import annotations

import contextlib
import json
from pathlib import Path
from typing import Any

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

from kwclient.client.errors import ConfigurationError
from kwclient.client.tokens import KEYRING_SERVICE, KeyringTokenStore
from kwclient.core.config import CLIENT_SECRET, SIGNATURE_KEY, SessionConfig

SECRETS_SERVICE = f"{KEYRING_SERVICE}-secrets"

# Config keys passed straight to SessionConfig.
SESSION_KEYS = (
    "application_id",
    "redirect_uri",
    "agent_string",
    "verify_ssl",
    "proxy_uri",
    "request_timeout",
    "connect_timeout",
    "max_chunk_size",
    "retries",
)


def get_config_dir() -> Path:
    """Get the configuration directory for kwclient.

    Returns:
        Path to ~/.kwclient.
    """
    return Path.home() / ".kwclient"


def get_config_file() -> Path:
    """Get the path to the config file."""
    return get_config_dir() / "config.json"


def load_config() -> dict[str, Any]:
    """Load configuration from config file."""
    config_file = get_config_file()
    if config_file.exists():
        return dict(json.loads(config_file.read_text()))
    return {}


def save_config(config: dict[str, Any]) -> None:
    """Save configuration to config file."""
    config_file = get_config_file()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(json.dumps(config, indent=2))


def _secret_name(host: str, name: str) -> str:
    return f"{host}:{name}"


def store_secret(host: str, name: str, value: str) -> None:
    """Store a secret of a host in the OS keyring."""
    keyring.set_password(SECRETS_SERVICE, _secret_name(host, name), value)


def load_secret(host: str, name: str) -> str:
    """Load a secret of a host from the OS keyring ("" if not stored)."""
    return keyring.get_password(SECRETS_SERVICE, _secret_name(host, name)) or ""


def delete_secrets(host: str) -> None:
    """Remove every secret stored for a host."""
    for name in (CLIENT_SECRET, SIGNATURE_KEY):
        with contextlib.suppress(PasswordDeleteError):
            keyring.delete_password(SECRETS_SERVICE, _secret_name(host, name))


def get_username(config: dict[str, Any], override: str | None = None) -> str:
    """Get the user the CLI acts for.

    Raises:
        ConfigurationError: If no user is configured.
    """
    username = override or config.get("username")
    if not username:
        raise ConfigurationError("No user configured. Run 'kwclient configure' first.")
    return str(username)


def build_session_config(config: dict[str, Any], trace: bool = False) -> SessionConfig:
    """Create the session configuration described by the config file.

    Args:
        config: Loaded CLI configuration.
        trace: Enable request/response tracing.

    Raises:
        ConfigurationError: If no host is configured or the keyring
            cannot be read.
    """
    host = config.get("host")
    if not host:
        raise ConfigurationError("No host configured. Run 'kwclient configure' first.")

    options = {key: config[key] for key in SESSION_KEYS if config.get(key) is not None}
    session_config = SessionConfig(
        host=host,
        token_store=KeyringTokenStore(f"{KEYRING_SERVICE}:{host}"),
        trace=trace,
        **options,
    )

    try:
        client_secret = load_secret(session_config.host, CLIENT_SECRET)
        signature_key = load_secret(session_config.host, SIGNATURE_KEY)
    except KeyringError as e:
        raise ConfigurationError(f"Cannot read secrets from keyring: {e}") from e

    if client_secret:
        session_config.set_client_secret(client_secret)
    if signature_key:
        session_config.set_signature(signature_key)
    return session_config


def get_pending_uploads() -> dict[str, int]:
    """Get the uploads started but not finished, keyed by local path."""
    return {k: int(v) for k, v in (load_config().get("pending_uploads") or {}).items()}


def set_pending_upload(path: Path, upload_id: int | None) -> None:
    """Remember (or forget, with None) the upload of a local file."""
    config = load_config()
    pending = dict(config.get("pending_uploads") or {})
    key = str(path.resolve())
    if upload_id is None:
        pending.pop(key, None)
    else:
        pending[key] = upload_id
    config["pending_uploads"] = pending
    save_config(config)
