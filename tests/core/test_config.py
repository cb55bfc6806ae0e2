"""Tests for session configuration."""

from __future__ import annotations

import pytest

from kwclient.client.errors import ConfigurationError
from kwclient.client.tokens import MemoryTokenStore
from kwclient.core.chunking import MAX_CHUNK_SIZE, MIN_CHUNK_SIZE
from kwclient.core.config import DEFAULT_AGENT, SessionConfig


class TestSessionConfig:
    """Tests for SessionConfig class."""

    def test_init_basic(self) -> None:
        """Should initialize with defaults."""
        config = SessionConfig(host="kw.example.com")
        assert config.host == "kw.example.com"
        assert config.agent_string == DEFAULT_AGENT
        assert config.verify_ssl is True
        assert config.retries == 3
        assert config.max_chunk_size == MAX_CHUNK_SIZE
        assert isinstance(config.token_store, MemoryTokenStore)

    def test_host_normalized(self) -> None:
        """Should strip scheme and trailing slash from the host."""
        config = SessionConfig(host="https://kw.example.com/")
        assert config.host == "kw.example.com"
        assert config.base_url == "https://kw.example.com"

    def test_empty_host_rejected(self) -> None:
        """A host is required."""
        with pytest.raises(ConfigurationError):
            SessionConfig(host="  ")

    def test_negative_retries_rejected(self) -> None:
        """Retries cannot be negative."""
        with pytest.raises(ConfigurationError):
            SessionConfig(host="kw.example.com", retries=-1)

    def test_chunk_size_clamped(self) -> None:
        """Chunk size bound is clamped into range."""
        assert SessionConfig(host="h", max_chunk_size=1).max_chunk_size == MIN_CHUNK_SIZE
        assert SessionConfig(host="h", max_chunk_size=10**12).max_chunk_size == MAX_CHUNK_SIZE

    def test_invalid_token_store_rejected(self) -> None:
        """Token stores must implement save/load/delete."""
        with pytest.raises(ConfigurationError):
            SessionConfig(host="h", token_store=object())  # type: ignore[arg-type]

    def test_secrets(self) -> None:
        """Secrets are kept sealed and revealed on demand."""
        config = SessionConfig(host="h")
        assert config.uses_signature is False
        assert config.client_secret == ""

        config.set_client_secret("cs")
        config.set_signature("sig")

        assert config.uses_signature is True
        assert config.client_secret == "cs"
        assert config.signature_key == "sig"
        assert "sig" not in repr(config)
