"""Session configuration for kwclient.

This module defines the configuration shared by every session bound to a
kiteworks host.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from kwclient.client.errors import ConfigurationError
from kwclient.core.chunking import clamp_chunk_size
from kwclient.core.crypto import SealedSecrets

if TYPE_CHECKING:
    from kwclient.client.tokens import TokenStore

DEFAULT_AGENT = "kwclient/1.0"
DEFAULT_API_VERSION = 11

SIGNATURE_KEY = "signature_key"
CLIENT_SECRET = "client_secret"


@dataclass
class SessionConfig:
    """Configuration for talking to a kiteworks host.

    Read-only once calls are in flight. Secrets must be set with
    set_signature() and set_client_secret() before the first call.

    Attributes:
        host: Host name of the kiteworks server (e.g. "files.example.com").
        application_id: OAuth client id of the custom application.
        redirect_uri: Redirect URI registered for the custom application.
        agent_string: User-Agent header sent with every call.
        verify_ssl: Whether to verify TLS certificates.
        proxy_uri: Optional proxy for outgoing requests.
        request_timeout: Seconds to wait for the server to answer a read.
        connect_timeout: Seconds to wait for the TCP/TLS connection.
        max_chunk_size: Upload chunk size bound in bytes (clamped to 1M..68M).
        retries: Retries after a failed call (attempts = retries + 1).
        token_store: Store used to persist auth tokens (in-memory by default).
        trace: Log full request and response details to "kwclient.trace".
    """

    host: str
    application_id: str = ""
    redirect_uri: str = ""
    agent_string: str = DEFAULT_AGENT
    verify_ssl: bool = True
    proxy_uri: str | None = None
    request_timeout: float = 60.0
    connect_timeout: float = 10.0
    max_chunk_size: int = 0
    retries: int = 3
    token_store: TokenStore | None = None
    trace: bool = False
    _secrets: SealedSecrets = field(
        default_factory=SealedSecrets, init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        """Normalize host and validate wiring."""
        from kwclient.client.tokens import MemoryTokenStore, TokenStore

        host = self.host.strip()
        for scheme in ("https://", "http://"):
            if host.startswith(scheme):
                host = host[len(scheme):]
        self.host = host.rstrip("/")
        if not self.host:
            raise ConfigurationError("Host name is required")

        if not self.agent_string:
            self.agent_string = DEFAULT_AGENT
        if self.retries < 0:
            raise ConfigurationError(f"Retries cannot be negative: {self.retries}")

        self.max_chunk_size = clamp_chunk_size(self.max_chunk_size)

        if self.token_store is None:
            self.token_store = MemoryTokenStore()
        elif not isinstance(self.token_store, TokenStore):
            raise ConfigurationError(
                f"Token store {type(self.token_store).__name__} must provide "
                "save(), load() and delete()"
            )

    @property
    def base_url(self) -> str:
        """Base URL of the kiteworks server."""
        return f"https://{self.host}"

    def set_signature(self, signature_key: str) -> None:
        """Set the signature key used for signature authentication."""
        self._secrets.store(SIGNATURE_KEY, signature_key)

    def set_client_secret(self, client_secret: str) -> None:
        """Set the OAuth client secret of the custom application."""
        self._secrets.store(CLIENT_SECRET, client_secret)

    @property
    def signature_key(self) -> str:
        """Decrypted signature key, or "" if not set."""
        return self._secrets.reveal(SIGNATURE_KEY)

    @property
    def client_secret(self) -> str:
        """Decrypted client secret, or "" if not set."""
        return self._secrets.reveal(CLIENT_SECRET)

    @property
    def uses_signature(self) -> bool:
        """Check if signature authentication is configured."""
        return SIGNATURE_KEY in self._secrets
