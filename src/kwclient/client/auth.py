"""Authenticated sessions against a kiteworks server.

This module provides:
- AuthSession: builds authenticated requests for one user and keeps
  that user's token fresh (signature auth, auth-code grant, refresh)
"""

from __future__ import annotations

import base64
import logging
import secrets
import time
from typing import TYPE_CHECKING, Any
from urllib.parse import urlencode

import httpx

from kwclient.client.errors import (
    APIError,
    ConfigurationError,
    ProtocolError,
    ReauthenticationError,
    TransportError,
    error_from_response,
)
from kwclient.client.tokens import AuthToken
from kwclient.client.trace import trace_request, trace_response
from kwclient.core.config import DEFAULT_API_VERSION
from kwclient.core.crypto import sign

if TYPE_CHECKING:
    from kwclient.client.tokens import TokenStore
    from kwclient.core.config import SessionConfig

logger = logging.getLogger(__name__)

TOKEN_PATH = "/oauth/token"
AUTHORIZE_PATH = "/oauth/authorize"
SCOPE = "*/*/*"
VERSION_HEADER = "X-Accellion-Version"
SIGNATURE_SEPARATOR = "|@@|"


def _b64(value: str) -> str:
    return base64.b64encode(value.encode("utf-8")).decode("ascii")


class AuthSession:
    """A kiteworks session for one user.

    The session never holds an HTTP client of its own: new_client() builds
    a fresh one from the configuration, so sessions can be shared between
    threads once the configuration's secrets are set.
    """

    def __init__(self, config: SessionConfig, username: str) -> None:
        """Initialize the session.

        Args:
            config: Shared session configuration.
            username: User the session acts for.
        """
        self._config = config
        self._username = username

    @property
    def config(self) -> SessionConfig:
        """Session configuration."""
        return self._config

    @property
    def username(self) -> str:
        """User the session acts for."""
        return self._username

    @property
    def token_store(self) -> TokenStore:
        """Token store of the configuration."""
        store = self._config.token_store
        if store is None:
            raise ConfigurationError("Session has no token store")
        return store

    def __str__(self) -> str:
        return self._username

    # === HTTP plumbing ===

    def new_client(self) -> httpx.Client:
        """Create an HTTP client for one request."""
        return httpx.Client(
            verify=self._config.verify_ssl,
            proxy=self._config.proxy_uri or None,
            timeout=httpx.Timeout(
                self._config.request_timeout,
                connect=self._config.connect_timeout,
            ),
        )

    def url(self, path: str) -> str:
        """Absolute URL of an API path."""
        if not path.startswith("/"):
            path = "/" + path
        return f"{self._config.base_url}{path}"

    def base_headers(self, api_version: int = 0) -> dict[str, str]:
        """Headers sent with every kiteworks call, without authorization."""
        return {
            VERSION_HEADER: str(api_version or DEFAULT_API_VERSION),
            "User-Agent": self._config.agent_string,
            "Referer": f"{self._config.base_url}/",
        }

    def request_headers(self, api_version: int = 0) -> dict[str, str]:
        """Headers for an authenticated call."""
        headers = self.base_headers(api_version)
        self.authorize(headers)
        return headers

    def new_request(self, method: str, path: str, api_version: int = 0) -> httpx.Request:
        """Build an authenticated request without a body."""
        return httpx.Request(
            method.upper(),
            self.url(path),
            headers=self.request_headers(api_version),
        )

    def authorize(self, headers: dict[str, str], reset: bool = False) -> None:
        """Attach the bearer token to headers."""
        headers["Authorization"] = f"Bearer {self.access_token(reset=reset)}"

    # === Tokens ===

    def access_token(self, reset: bool = False) -> str:
        """Return a usable access token, obtaining one if needed.

        Args:
            reset: Discard the stored token first (signature auth only).

        Raises:
            ConfigurationError: If no token is stored and signature auth
                is not configured.
            ReauthenticationError: If an expired token cannot be refreshed.
        """
        store = self.token_store

        if self._config.uses_signature:
            if reset:
                store.delete(self._username)
            token = store.load(self._username)
            if token is None or token.expired():
                token = self.authenticate_signature()
            return token.access_token

        token = store.load(self._username)
        if token is None:
            raise ConfigurationError(
                f"No token stored for {self._username}; authenticate first"
            )
        if token.expired():
            token = self._refresh_stored(token)
        return token.access_token

    def reauthenticate(self, headers: dict[str, str], cause: Exception) -> None:
        """Replace the bearer token in headers after a token error.

        With signature auth a new token is minted. Otherwise the stored
        token is refreshed and persisted.

        Raises:
            ReauthenticationError: If no new token can be obtained. The
                stored token has been deleted.
            TransportError: If the token endpoint cannot be reached. The
                stored token is kept.
        """
        logger.debug(f"Reauthenticating {self._username}: {cause}")

        if self._config.uses_signature:
            try:
                self.authorize(headers, reset=True)
            except (APIError, ProtocolError) as e:
                self.token_store.delete(self._username)
                raise ReauthenticationError(f"Token is no longer valid: {e}") from e
            return

        existing = self.token_store.load(self._username)
        if existing is None or not existing.refresh_token:
            self.token_store.delete(self._username)
            raise ReauthenticationError(f"Token is no longer valid: {cause}")

        token = self._refresh_stored(existing, cause)
        headers["Authorization"] = f"Bearer {token.access_token}"

    def _refresh_stored(self, token: AuthToken, cause: Exception | None = None) -> AuthToken:
        try:
            refreshed = self.refresh_token(token)
        except (APIError, ProtocolError) as e:
            self.token_store.delete(self._username)
            raise ReauthenticationError(
                f"Token is no longer valid: {cause or e}"
            ) from e
        self.token_store.save(self._username, refreshed)
        return refreshed

    def refresh_token(self, token: AuthToken) -> AuthToken:
        """Exchange a refresh token for a new token.

        Does not touch the token store.
        """
        return self._grant({
            "client_id": self._config.application_id,
            "client_secret": self._config.client_secret,
            "grant_type": "refresh_token",
            "refresh_token": token.refresh_token,
            "redirect_uri": self._config.redirect_uri,
        })

    def authenticate(self, code: str) -> AuthToken:
        """Exchange an authorization code and store the resulting token.

        Args:
            code: Code delivered to the redirect URI after the user signed in.
        """
        token = self._grant({
            "client_id": self._config.application_id,
            "client_secret": self._config.client_secret,
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self._config.redirect_uri,
        })
        self.token_store.save(self._username, token)
        return token

    def authenticate_signature(self) -> AuthToken:
        """Mint and store a token using the signature key.

        Raises:
            ConfigurationError: If no signature key is set.
        """
        signature_key = self._config.signature_key
        if not signature_key:
            raise ConfigurationError("Signature key is not set")

        client_id = self._config.application_id
        timestamp = int(time.time())
        nonce = secrets.randbelow(999999)
        base_string = SIGNATURE_SEPARATOR.join(
            [client_id, self._username, str(timestamp), str(nonce)]
        )
        code = SIGNATURE_SEPARATOR.join([
            _b64(client_id),
            _b64(self._username),
            str(timestamp),
            str(nonce),
            sign(signature_key, base_string),
        ])

        token = self._grant({
            "client_id": client_id,
            "client_secret": self._config.client_secret,
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self._config.redirect_uri,
            "scope": SCOPE,
        })
        self.token_store.save(self._username, token)
        logger.info(f"Authenticated {self._username} with signature key")
        return token

    def authorization_url(self) -> str:
        """URL where a user signs in to obtain an authorization code."""
        query = urlencode({
            "client_id": self._config.application_id,
            "redirect_uri": self._config.redirect_uri,
            "response_type": "code",
            "scope": SCOPE,
        })
        return f"{self.url(AUTHORIZE_PATH)}?{query}"

    def logout(self) -> None:
        """Forget the stored token."""
        self.token_store.delete(self._username)

    def _grant(self, form: dict[str, Any]) -> AuthToken:
        url = self.url(TOKEN_PATH)
        headers = {
            "User-Agent": self._config.agent_string,
            "Referer": f"{self._config.base_url}/",
        }
        if self._config.trace:
            trace_request(self._username, "POST", url, headers, form)

        try:
            with self.new_client() as client:
                response = client.post(url, data=form, headers=headers)
        except httpx.TransportError as e:
            raise TransportError(f"{self._config.host}: {e}") from e

        if self._config.trace:
            trace_response(f"{response.status_code} {response.reason_phrase}", response.content)

        error = error_from_response(response)
        if error is not None:
            raise error

        try:
            data = response.json()
            return AuthToken.from_grant(data)
        except (ValueError, KeyError, TypeError) as e:
            raise ProtocolError(
                f"Cannot understand token response from {self._config.host}: {e}"
            ) from e
