"""Tests for the kwclient CLI."""

from __future__ import annotations

import json
import re
from pathlib import Path

import pytest
from click.testing import CliRunner
from keyring.errors import PasswordDeleteError

from kwclient.client.cli import cli
from kwclient.client.cli.config import get_pending_uploads, load_config, save_config
from kwclient.client.tokens import AuthToken, KeyringTokenStore

HOST = "kw.example.com"
USERNAME = "alice@example.com"
TOKEN_SERVICE = f"kwclient:{HOST}"

INITIATE_URL = re.compile(r"https://kw\.example\.com/rest/folders/9/actions/initiateUpload\?.*")
UPLOADS_URL = re.compile(r".*/rest/uploads\?.*")
CHUNK_URL = re.compile(r"https://kw\.example\.com/upload/5(\?.*)?$")
INFO_URL = "https://kw.example.com/rest/files/42"
CONTENT_URL = "https://kw.example.com/rest/files/42/content"


class FakeKeyring:
    """In-memory stand-in for the keyring module."""

    def __init__(self) -> None:
        self.passwords: dict[tuple[str, str], str] = {}

    def get_password(self, service: str, username: str) -> str | None:
        return self.passwords.get((service, username))

    def set_password(self, service: str, username: str, password: str) -> None:
        self.passwords[(service, username)] = password

    def delete_password(self, service: str, username: str) -> None:
        if (service, username) not in self.passwords:
            raise PasswordDeleteError(username)
        del self.passwords[(service, username)]


@pytest.fixture
def fake_keyring(monkeypatch: pytest.MonkeyPatch) -> FakeKeyring:
    fake = FakeKeyring()
    monkeypatch.setattr("kwclient.client.cli.config.keyring", fake)
    monkeypatch.setattr("kwclient.client.tokens.keyring", fake)
    return fake


@pytest.fixture
def config_dir(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    directory = tmp_path / "config"
    monkeypatch.setattr("kwclient.client.cli.config.get_config_dir", lambda: directory)
    return directory


@pytest.fixture
def logged_in(config_dir: Path, fake_keyring: FakeKeyring) -> FakeKeyring:
    """A configured host with a stored token."""
    save_config({
        "host": HOST,
        "username": USERNAME,
        "application_id": "app-id",
        "redirect_uri": "https://app.example.com/callback",
        "retries": 0,
    })
    KeyringTokenStore(TOKEN_SERVICE).save(USERNAME, AuthToken("tok", "ref", 0))
    return fake_keyring


class TestConfigure:
    """Tests for the configure command."""

    def test_configure(self, config_dir: Path, fake_keyring: FakeKeyring) -> None:
        runner = CliRunner()
        result = runner.invoke(cli, [
            "configure",
            "--host", "https://KW.example.com/",
            "--user", USERNAME,
            "--application-id", "app-id",
            "--client-secret", "s3cret",
        ])

        assert result.exit_code == 0, result.output
        assert "Configured alice@example.com on KW.example.com" in result.output

        config = json.loads((config_dir / "config.json").read_text())
        assert config["host"] == "KW.example.com"
        assert config["username"] == USERNAME
        assert "s3cret" not in json.dumps(config)
        assert fake_keyring.passwords[("kwclient-secrets", "KW.example.com:client_secret")] == "s3cret"

    def test_invalid_retries(self, config_dir: Path, fake_keyring: FakeKeyring) -> None:
        runner = CliRunner()
        result = runner.invoke(cli, [
            "configure",
            "--host", HOST,
            "--user", USERNAME,
            "--application-id", "app-id",
            "--retries", "-1",
        ])

        assert result.exit_code == 1
        assert "Retries cannot be negative" in result.output
        assert not (config_dir / "config.json").exists()


class TestAccount:
    """Tests for login and logout."""

    def test_not_configured(self, config_dir: Path, fake_keyring: FakeKeyring) -> None:
        runner = CliRunner()
        result = runner.invoke(cli, ["logout"])

        assert result.exit_code == 1
        assert "No host configured" in result.output

    def test_login_with_code(self, httpx_mock, logged_in: FakeKeyring) -> None:  # type: ignore[no-untyped-def]
        httpx_mock.add_response(
            url="https://kw.example.com/oauth/token",
            json={"access_token": "fresh", "refresh_token": "r2", "expires_in": 3600},
        )
        runner = CliRunner()
        result = runner.invoke(cli, ["login", "--code", "abc"])

        assert result.exit_code == 0, result.output
        assert f"Logged in as {USERNAME}" in result.output
        token = KeyringTokenStore(TOKEN_SERVICE).load(USERNAME)
        assert token is not None
        assert token.access_token == "fresh"

    def test_logout(self, logged_in: FakeKeyring) -> None:
        runner = CliRunner()
        result = runner.invoke(cli, ["logout"])

        assert result.exit_code == 0, result.output
        assert f"Logged out {USERNAME}" in result.output
        assert KeyringTokenStore(TOKEN_SERVICE).load(USERNAME) is None
        assert ("kwclient-secrets", f"{HOST}:client_secret") not in logged_in.passwords

    def test_logout_forget_secrets(self, logged_in: FakeKeyring) -> None:
        """--forget-secrets also removes the host's keyring secrets."""
        logged_in.set_password("kwclient-secrets", f"{HOST}:client_secret", "s3cret")
        runner = CliRunner()
        result = runner.invoke(cli, ["logout", "--forget-secrets"])

        assert result.exit_code == 0, result.output
        assert f"Removed secrets of {HOST}" in result.output
        assert KeyringTokenStore(TOKEN_SERVICE).load(USERNAME) is None
        assert not any(service == "kwclient-secrets" for service, _ in logged_in.passwords)


class TestUpload:
    """Tests for upload and resume."""

    @pytest.mark.parametrize("args", [[], ["--folder", "9", "--file", "42"]])
    def test_requires_one_target(self, logged_in: FakeKeyring, tmp_path: Path, args: list[str]) -> None:
        path = tmp_path / "a.txt"
        path.write_bytes(b"0123456789")
        runner = CliRunner()
        result = runner.invoke(cli, ["upload", str(path), *args])

        assert result.exit_code == 1
        assert "Specify exactly one of --folder or --file" in result.output

    def test_upload(self, httpx_mock, logged_in: FakeKeyring, tmp_path: Path) -> None:  # type: ignore[no-untyped-def]
        path = tmp_path / "a.txt"
        path.write_bytes(b"0123456789")
        record = {
            "id": 5,
            "totalSize": 10,
            "totalChunks": 2,
            "uploadedSize": 0,
            "uploadedChunks": 0,
            "finished": False,
            "uri": "upload/5",
        }
        httpx_mock.add_response(url=INITIATE_URL, method="POST", json={"id": 5})
        httpx_mock.add_response(url=UPLOADS_URL, json={"data": [record]})
        httpx_mock.add_response(url=CHUNK_URL, method="POST", json={})
        httpx_mock.add_response(url=CHUNK_URL, method="POST", json={"id": 77})

        runner = CliRunner()
        result = runner.invoke(cli, ["upload", str(path), "--folder", "9"])

        assert result.exit_code == 0, result.output
        assert "Uploaded a.txt (file ID 77)" in result.output
        assert get_pending_uploads() == {}

    def test_failed_upload_stays_pending(self, httpx_mock, logged_in: FakeKeyring, tmp_path: Path) -> None:  # type: ignore[no-untyped-def]
        path = tmp_path / "a.txt"
        path.write_bytes(b"0123456789")
        httpx_mock.add_response(url=INITIATE_URL, method="POST", json={"id": 5})
        httpx_mock.add_response(url=UPLOADS_URL, json={"data": []})

        runner = CliRunner()
        result = runner.invoke(cli, ["upload", str(path), "--folder", "9"])

        assert result.exit_code == 1
        assert "Upload ID not found: 5" in result.output
        assert get_pending_uploads() == {str(path.resolve()): 5}

    def test_resume_without_pending_upload(self, logged_in: FakeKeyring, tmp_path: Path) -> None:
        path = tmp_path / "a.txt"
        path.write_bytes(b"0123456789")
        runner = CliRunner()
        result = runner.invoke(cli, ["resume", str(path)])

        assert result.exit_code == 1
        assert "No pending upload" in result.output

    def test_resume_finished_upload(self, httpx_mock, logged_in: FakeKeyring, tmp_path: Path) -> None:  # type: ignore[no-untyped-def]
        path = tmp_path / "a.txt"
        path.write_bytes(b"0123456789")
        config = load_config()
        config["pending_uploads"] = {str(path.resolve()): 5}
        save_config(config)
        httpx_mock.add_response(
            url=UPLOADS_URL,
            json={"data": [{
                "id": 5,
                "totalSize": 10,
                "totalChunks": 2,
                "uploadedSize": 10,
                "uploadedChunks": 2,
                "finished": True,
                "uri": "upload/5",
                "fileId": 77,
            }]},
        )

        runner = CliRunner()
        result = runner.invoke(cli, ["resume", str(path)])

        assert result.exit_code == 0, result.output
        assert "Uploaded a.txt (file ID 77)" in result.output
        assert get_pending_uploads() == {}


class TestDownload:
    """Tests for the download command."""

    def test_download(self, httpx_mock, logged_in: FakeKeyring, tmp_path: Path) -> None:  # type: ignore[no-untyped-def]
        target = tmp_path / "out.txt"
        for _ in range(2):
            httpx_mock.add_response(url=INFO_URL, json={"id": 42, "name": "a.txt", "size": 11})
        httpx_mock.add_response(url=CONTENT_URL, content=b"hello world")

        runner = CliRunner()
        result = runner.invoke(cli, ["download", "42", "-o", str(target)])

        assert result.exit_code == 0, result.output
        assert f"Downloaded a.txt to {target}" in result.output
        assert target.read_bytes() == b"hello world"

    def test_resume_partial_download(self, httpx_mock, logged_in: FakeKeyring, tmp_path: Path) -> None:  # type: ignore[no-untyped-def]
        target = tmp_path / "out.txt"
        target.write_bytes(b"hello ")
        for _ in range(2):
            httpx_mock.add_response(url=INFO_URL, json={"id": 42, "name": "a.txt", "size": 11})
        httpx_mock.add_response(
            url=CONTENT_URL,
            status_code=206,
            headers={"Content-Range": "bytes 6-10/11"},
            content=b"world",
        )

        runner = CliRunner()
        result = runner.invoke(cli, ["download", "42", "-o", str(target)])

        assert result.exit_code == 0, result.output
        assert target.read_bytes() == b"hello world"
        content_request = httpx_mock.get_requests(url=CONTENT_URL)[0]
        assert content_request.headers["Range"] == "bytes=6-"

    def test_already_complete(self, httpx_mock, logged_in: FakeKeyring, tmp_path: Path) -> None:  # type: ignore[no-untyped-def]
        target = tmp_path / "out.txt"
        target.write_bytes(b"hello world")
        httpx_mock.add_response(url=INFO_URL, json={"id": 42, "name": "a.txt", "size": 11})

        runner = CliRunner()
        result = runner.invoke(cli, ["download", "42", "-o", str(target)])

        assert result.exit_code == 0, result.output
        assert "already complete" in result.output

    def test_missing_file(self, httpx_mock, logged_in: FakeKeyring) -> None:  # type: ignore[no-untyped-def]
        httpx_mock.add_response(
            url=INFO_URL,
            status_code=404,
            json={"errors": [{"code": "ERR_ENTITY_NOT_FOUND", "message": "Not found"}]},
        )

        runner = CliRunner()
        result = runner.invoke(cli, ["download", "42"])

        assert result.exit_code == 2
        assert "Not found. (kiteworks:ERR_ENTITY_NOT_FOUND)" in result.output
