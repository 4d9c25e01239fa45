"""GitHub identity adapter used by user provisioning."""

from __future__ import annotations

import dataclasses
import os
import typing as typ
import urllib.parse

import httpx
import msgspec

from .errors import IdentityAPIError, IdentityConfigError

_HTTP_ERROR_STATUS_THRESHOLD = 400


class IdentityAdapter(typ.Protocol):
    """Resolve external account identifiers and public keys."""

    async def login_from_auth_id(self, auth_id: str) -> str:
        """Return the login name for the provider account ``auth_id``."""
        ...

    async def keys_from_login(self, login: str) -> list[str]:
        """Return the public SSH key material registered for ``login``."""
        ...


@dataclasses.dataclass(frozen=True, slots=True)
class GitHubIdentityConfig:
    """Configuration for the GitHub REST identity client."""

    token: str
    api_base_url: str = "https://api.github.com"
    timeout_s: float = 20.0
    user_agent: str = "gensync/0.1"

    @classmethod
    def from_env(cls) -> GitHubIdentityConfig:
        """Build configuration from ``GENSYNC_GITHUB_*`` variables.

        ``GENSYNC_GITHUB_TOKEN`` is required; ``GENSYNC_GITHUB_API_URL``
        overrides the API base URL.
        """
        token = os.environ.get("GENSYNC_GITHUB_TOKEN", "").strip()
        if not token:
            raise IdentityConfigError.missing_token()
        base_url = os.environ.get("GENSYNC_GITHUB_API_URL", "").strip()
        if base_url:
            return cls(token=token, api_base_url=base_url.rstrip("/"))
        return cls(token=token)


class _GitHubUser(msgspec.Struct):
    login: str
    id: int | None = None


class _GitHubKey(msgspec.Struct):
    key: str
    id: int | None = None


class GitHubIdentityClient:
    """GitHub REST v3 implementation of :class:`IdentityAdapter`.

    Parameters
    ----------
    config
        Token and endpoint settings.
    http_client
        Optional httpx.AsyncClient for testing. If not provided, the
        instance creates and owns its own client.

    """

    def __init__(
        self,
        config: GitHubIdentityConfig,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialise the client with the provided API configuration."""
        if not config.token.strip():
            raise IdentityConfigError.empty_token()

        self._config = config
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=config.timeout_s,
            headers={
                "Authorization": f"Bearer {config.token}",
                "User-Agent": config.user_agent,
                "Accept": "application/vnd.github+json",
            },
        )

    async def aclose(self) -> None:
        """Close any owned HTTP resources."""
        if self._owns_client:
            await self._client.aclose()

    async def login_from_auth_id(self, auth_id: str) -> str:
        """Return the login of the GitHub account with numeric id ``auth_id``.

        Raises
        ------
        IdentityAPIError
            If the request fails or the response has no ``login``.

        """
        path = f"/user/{urllib.parse.quote(str(auth_id), safe='')}"
        user = await self._get(path, _GitHubUser)
        return user.login

    async def keys_from_login(self, login: str) -> list[str]:
        """Return the key material of each public key of ``login``.

        GitHub reports keys as ``"<type> <material>"``; only the material is
        kept, in the order the API returns them.
        """
        path = f"/users/{urllib.parse.quote(login, safe='')}/keys"
        keys = await self._get(path, list[_GitHubKey])
        material: list[str] = []
        for entry in keys:
            parts = entry.key.split()
            if len(parts) < 2:  # noqa: PLR2004
                raise IdentityAPIError.unexpected_payload(
                    path, f"key {entry.key!r} has no key material"
                )
            material.append(parts[1])
        return material

    async def _get[T](self, path: str, response_type: type[T]) -> T:
        try:
            response = await self._client.get(f"{self._config.api_base_url}{path}")
        except httpx.RequestError as exc:
            raise IdentityAPIError.transport_error(path, exc) from exc
        if response.status_code >= _HTTP_ERROR_STATUS_THRESHOLD:
            raise IdentityAPIError.http_error(path, response.status_code)
        try:
            return msgspec.json.decode(response.content, type=response_type)
        except msgspec.DecodeError as exc:
            raise IdentityAPIError.unexpected_payload(path, str(exc)) from exc


__all__ = ["GitHubIdentityClient", "GitHubIdentityConfig", "IdentityAdapter"]
