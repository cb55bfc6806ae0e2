"""Pytest fixtures shared by the kwclient tests."""

from __future__ import annotations

import pytest

from kwclient.client.api import APIClient
from kwclient.client.auth import AuthSession
from kwclient.client.tokens import AuthToken, MemoryTokenStore
from kwclient.core.config import SessionConfig

HOST = "kw.example.com"
BASE_URL = f"https://{HOST}"
USERNAME = "alice@example.com"


@pytest.fixture
def token_store() -> MemoryTokenStore:
    """Token store holding a non-expiring token for USERNAME."""
    store = MemoryTokenStore()
    store.save(USERNAME, AuthToken(access_token="tok", refresh_token="ref", expires=0))
    return store


@pytest.fixture
def config(token_store: MemoryTokenStore) -> SessionConfig:
    """Session configuration with a retry budget of 3."""
    cfg = SessionConfig(
        host=HOST,
        application_id="app-id",
        redirect_uri="https://app.example.com/callback",
        token_store=token_store,
        retries=3,
    )
    cfg.set_client_secret("client-secret")
    return cfg


@pytest.fixture
def session(config: SessionConfig) -> AuthSession:
    return AuthSession(config, USERNAME)


@pytest.fixture
def client(session: AuthSession) -> APIClient:
    return APIClient(session)


@pytest.fixture
def sleeps(monkeypatch: pytest.MonkeyPatch) -> list[float]:
    """Record retry backoff pauses instead of sleeping."""
    recorded: list[float] = []
    monkeypatch.setattr("kwclient.client.api.time.sleep", recorded.append)
    return recorded
