"""Tests for auth tokens and token stores."""

from __future__ import annotations

import json
from unittest.mock import MagicMock, patch

import pytest
from keyring.errors import KeyringError, PasswordDeleteError

from kwclient.client.errors import TokenStoreError
from kwclient.client.tokens import (
    AuthToken,
    KeyringTokenStore,
    MemoryTokenStore,
    TokenStore,
)


class TestAuthToken:
    """Tests for AuthToken."""

    def test_from_grant(self) -> None:
        """Relative expiry becomes absolute."""
        token = AuthToken.from_grant(
            {"access_token": "a", "refresh_token": "r", "expires_in": 3600}, now=1000
        )
        assert token == AuthToken("a", "r", 4600)

    def test_expired_with_margin(self) -> None:
        """Tokens count as expired shortly before the server expiry."""
        token = AuthToken("a", "r", expires=4600)
        assert not token.expired(now=4500)
        assert token.expired(now=4571)

    def test_no_expiry_never_expires(self) -> None:
        """Tokens without expiry are always usable."""
        assert not AuthToken("a").expired(now=10**12)

    def test_dict_conversion(self) -> None:
        """to_dict() and from_dict() agree."""
        token = AuthToken("a", "r", 5)
        assert AuthToken.from_dict(token.to_dict()) == token


class TestMemoryTokenStore:
    """Tests for MemoryTokenStore."""

    def test_save_load_delete(self) -> None:
        """Tokens are kept per user."""
        store = MemoryTokenStore()
        assert isinstance(store, TokenStore)
        assert store.load("bob") is None

        store.save("bob", AuthToken("a"))
        assert "bob" in store
        assert store.load("bob") == AuthToken("a")

        store.delete("bob")
        store.delete("bob")
        assert store.load("bob") is None


class TestKeyringTokenStore:
    """Tests for KeyringTokenStore with the keyring backend mocked."""

    @pytest.fixture
    def backend(self) -> MagicMock:
        with patch("kwclient.client.tokens.keyring") as mock_keyring:
            yield mock_keyring

    def test_save(self, backend: MagicMock) -> None:
        """Tokens are stored as JSON under the service name."""
        KeyringTokenStore("svc").save("bob", AuthToken("a", "r", 7))

        service, username, stored = backend.set_password.call_args.args
        assert (service, username) == ("svc", "bob")
        assert json.loads(stored) == {"access_token": "a", "refresh_token": "r", "expires": 7}

    def test_load(self, backend: MagicMock) -> None:
        """Stored JSON is parsed back into a token."""
        backend.get_password.return_value = json.dumps({"access_token": "a"})
        assert KeyringTokenStore("svc").load("bob") == AuthToken("a")

    def test_load_missing(self, backend: MagicMock) -> None:
        """A missing entry is not an error."""
        backend.get_password.return_value = None
        assert KeyringTokenStore("svc").load("bob") is None

    def test_load_corrupted(self, backend: MagicMock) -> None:
        """Corrupted entries raise TokenStoreError."""
        backend.get_password.return_value = "not json"
        with pytest.raises(TokenStoreError):
            KeyringTokenStore("svc").load("bob")

    def test_backend_failure(self, backend: MagicMock) -> None:
        """Keyring failures raise TokenStoreError."""
        backend.set_password.side_effect = KeyringError("locked")
        with pytest.raises(TokenStoreError):
            KeyringTokenStore("svc").save("bob", AuthToken("a"))

    def test_delete_missing(self, backend: MagicMock) -> None:
        """Deleting a missing entry is silently ignored."""
        backend.delete_password.side_effect = PasswordDeleteError("none")
        KeyringTokenStore("svc").delete("bob")
        backend.delete_password.assert_called_once_with("svc", "bob")
