"""Auth tokens and token stores.

This module provides:
- AuthToken: access/refresh token pair with absolute expiry
- TokenStore: protocol every token store implements
- MemoryTokenStore: process-local store (default)
- KeyringTokenStore: tokens persisted in the OS keyring

Stores raise TokenStoreError only for storage failures. A missing token is
not an error: load() returns None.
"""

from __future__ import annotations

import json
import threading
import time
from dataclasses import asdict, dataclass
from typing import Any, Protocol, runtime_checkable

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

from kwclient.client.errors import TokenStoreError

KEYRING_SERVICE = "kwclient"

# Refresh a little before the server expires the token.
EXPIRY_MARGIN = 30


@dataclass
class AuthToken:
    """kiteworks OAuth token.

    Attributes:
        access_token: Bearer token sent with every call.
        refresh_token: Token used to obtain a new access token.
        expires: Absolute expiry as Unix time (0 if unknown).
    """

    access_token: str
    refresh_token: str = ""
    expires: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AuthToken:
        """Create from a stored dictionary."""
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token") or "",
            expires=int(data.get("expires") or 0),
        )

    @classmethod
    def from_grant(cls, data: dict[str, Any], now: float | None = None) -> AuthToken:
        """Create from an /oauth/token response, where expiry is relative."""
        now = time.time() if now is None else now
        expires_in = int(data.get("expires_in") or 0)
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token") or "",
            expires=int(now) + expires_in if expires_in else 0,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to a serializable dictionary."""
        return asdict(self)

    def expired(self, now: float | None = None) -> bool:
        """Check whether the access token is expired or about to be."""
        if not self.expires:
            return False
        now = time.time() if now is None else now
        return now >= self.expires - EXPIRY_MARGIN


@runtime_checkable
class TokenStore(Protocol):
    """Persistent storage of auth tokens, keyed by username."""

    def save(self, username: str, token: AuthToken) -> None: ...

    def load(self, username: str) -> AuthToken | None: ...

    def delete(self, username: str) -> None: ...


class MemoryTokenStore:
    """Token store kept in process memory."""

    def __init__(self) -> None:
        self._tokens: dict[str, AuthToken] = {}
        self._lock = threading.Lock()

    def save(self, username: str, token: AuthToken) -> None:
        with self._lock:
            self._tokens[username] = token

    def load(self, username: str) -> AuthToken | None:
        with self._lock:
            return self._tokens.get(username)

    def delete(self, username: str) -> None:
        with self._lock:
            self._tokens.pop(username, None)

    def __contains__(self, username: str) -> bool:
        with self._lock:
            return username in self._tokens


class KeyringTokenStore:
    """Token store backed by the OS keyring.

    Tokens are stored as JSON under a service name, one entry per
    username, so several hosts can share a keyring by using distinct
    service names.
    """

    def __init__(self, service: str = KEYRING_SERVICE) -> None:
        self._service = service

    def save(self, username: str, token: AuthToken) -> None:
        try:
            keyring.set_password(self._service, username, json.dumps(token.to_dict()))
        except KeyringError as e:
            raise TokenStoreError(f"Cannot save token for {username}: {e}") from e

    def load(self, username: str) -> AuthToken | None:
        try:
            stored = keyring.get_password(self._service, username)
        except KeyringError as e:
            raise TokenStoreError(f"Cannot load token for {username}: {e}") from e
        if not stored:
            return None
        try:
            return AuthToken.from_dict(json.loads(stored))
        except (ValueError, KeyError, TypeError) as e:
            raise TokenStoreError(f"Corrupted token for {username}: {e}") from e

    def delete(self, username: str) -> None:
        try:
            keyring.delete_password(self._service, username)
        except PasswordDeleteError:
            # Nothing stored for this user.
            return
        except KeyringError as e:
            raise TokenStoreError(f"Cannot delete token for {username}: {e}") from e
