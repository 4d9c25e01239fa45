"""Unit tests for the GitHub identity client."""

from __future__ import annotations

import secrets
import typing as typ

import httpx
import pytest

from gensync.identity import (
    GitHubIdentityClient,
    GitHubIdentityConfig,
    IdentityAPIError,
    IdentityConfigError,
)

_TOKEN = secrets.token_hex(8)
_BASE_URL = "https://github.example.test"


def _make_client(
    responses: dict[str, tuple[int, typ.Any]],
) -> tuple[GitHubIdentityClient, list[httpx.Request]]:
    requests: list[httpx.Request] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        status, payload = responses[request.url.path]
        if isinstance(payload, bytes):
            return httpx.Response(status_code=status, content=payload)
        return httpx.Response(status_code=status, json=payload)

    http_client = httpx.AsyncClient(transport=httpx.MockTransport(_handler))
    client = GitHubIdentityClient(
        GitHubIdentityConfig(token=_TOKEN, api_base_url=_BASE_URL),
        http_client=http_client,
    )
    return client, requests


@pytest.mark.asyncio
async def test_login_from_auth_id_reads_user_by_id() -> None:
    """The numeric account id resolves to its login."""
    client, requests = _make_client({"/user/42": (200, {"login": "alice", "id": 42})})

    login = await client.login_from_auth_id("42")

    assert login == "alice"
    assert [str(request.url) for request in requests] == [f"{_BASE_URL}/user/42"]
    assert requests[0].method == "GET"


@pytest.mark.asyncio
async def test_keys_from_login_keeps_key_material_in_order() -> None:
    """Only the second whitespace-separated field of each key is returned."""
    client, _ = _make_client(
        {
            "/users/alice/keys": (
                200,
                [
                    {"id": 1, "key": "ssh-ed25519 AAAAkey1"},
                    {"id": 2, "key": "ssh-rsa AAAAkey2 comment"},
                ],
            )
        }
    )

    keys = await client.keys_from_login("alice")

    assert keys == ["AAAAkey1", "AAAAkey2"]


@pytest.mark.asyncio
async def test_keys_from_login_without_keys_is_empty() -> None:
    """A user without public keys yields an empty list."""
    client, _ = _make_client({"/users/alice/keys": (200, [])})

    assert await client.keys_from_login("alice") == []


@pytest.mark.asyncio
async def test_key_without_material_is_rejected() -> None:
    """A key entry with a single field is a malformed payload."""
    client, _ = _make_client({"/users/alice/keys": (200, [{"key": "broken"}])})

    with pytest.raises(IdentityAPIError, match="no key material"):
        await client.keys_from_login("alice")


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [404, 500])
async def test_http_errors_carry_status(status: int) -> None:
    """Non-2xx responses raise with the response status attached."""
    client, _ = _make_client({"/user/7": (status, {"message": "nope"})})

    with pytest.raises(IdentityAPIError) as excinfo:
        await client.login_from_auth_id("7")

    assert excinfo.value.status_code == status


@pytest.mark.asyncio
async def test_missing_login_is_unexpected_payload() -> None:
    """A user payload without ``login`` is rejected."""
    client, _ = _make_client({"/user/7": (200, {"id": 7})})

    with pytest.raises(IdentityAPIError, match="malformed"):
        await client.login_from_auth_id("7")


@pytest.mark.asyncio
async def test_non_json_body_is_unexpected_payload() -> None:
    """A body that is not JSON is rejected."""
    client, _ = _make_client({"/user/7": (200, b"<html></html>")})

    with pytest.raises(IdentityAPIError, match="malformed"):
        await client.login_from_auth_id("7")


@pytest.mark.asyncio
async def test_transport_failure_has_no_status() -> None:
    """Connection failures are wrapped without a status code."""

    def _handler(request: httpx.Request) -> httpx.Response:
        message = "connection refused"
        raise httpx.ConnectError(message, request=request)

    client = GitHubIdentityClient(
        GitHubIdentityConfig(token=_TOKEN, api_base_url=_BASE_URL),
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(_handler)),
    )

    with pytest.raises(IdentityAPIError, match="connection refused") as excinfo:
        await client.login_from_auth_id("1")

    assert excinfo.value.status_code is None


@pytest.mark.asyncio
async def test_injected_client_is_not_closed() -> None:
    """aclose leaves a caller-provided HTTP client open."""
    http_client = httpx.AsyncClient()
    client = GitHubIdentityClient(
        GitHubIdentityConfig(token=_TOKEN), http_client=http_client
    )

    await client.aclose()

    assert not http_client.is_closed
    await http_client.aclose()


def test_empty_token_is_rejected() -> None:
    """A whitespace-only token cannot authenticate."""
    with pytest.raises(IdentityConfigError, match="non-empty"):
        GitHubIdentityClient(GitHubIdentityConfig(token="   "))


class TestGitHubIdentityConfig:
    """Tests for environment-driven configuration."""

    def test_from_env_requires_token(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """GENSYNC_GITHUB_TOKEN must be set."""
        monkeypatch.delenv("GENSYNC_GITHUB_TOKEN", raising=False)

        with pytest.raises(IdentityConfigError, match="GENSYNC_GITHUB_TOKEN"):
            GitHubIdentityConfig.from_env()

    def test_from_env_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Only the token is required."""
        monkeypatch.setenv("GENSYNC_GITHUB_TOKEN", _TOKEN)
        monkeypatch.delenv("GENSYNC_GITHUB_API_URL", raising=False)

        config = GitHubIdentityConfig.from_env()

        assert config.token == _TOKEN
        assert config.api_base_url == "https://api.github.com"

    def test_from_env_overrides_base_url(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """GENSYNC_GITHUB_API_URL points at an enterprise host."""
        monkeypatch.setenv("GENSYNC_GITHUB_TOKEN", _TOKEN)
        monkeypatch.setenv("GENSYNC_GITHUB_API_URL", "https://ghe.example/api/v3/")

        config = GitHubIdentityConfig.from_env()

        assert config.api_base_url == "https://ghe.example/api/v3"
