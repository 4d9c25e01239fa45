"""Client for the account provisioning gateway.

The gateway is a shared-secret JSON API. Every endpoint accepts a POST body
and answers with an envelope ``{"Success": bool, "Error": str, "Content":
any}``. Both operations used here are idempotent: creating an account that
already exists is reported as :class:`GatewayResult` with ``already_exists``
set, and adding keys is a set-union on the gateway side.
"""

from __future__ import annotations

import dataclasses
import os
import typing as typ

import httpx
import msgspec

from .errors import GatewayAPIError, GatewayConfigError

_HTTP_CONFLICT = 409
_HTTP_ERROR_STATUS_THRESHOLD = 400
_ALREADY_EXISTS_MARKER = "already exists"

CREATE_ACCOUNT_PATH = "/v1/users/create"
ADD_KEYS_PATH = "/v1/users/addKeys"


@dataclasses.dataclass(frozen=True, slots=True)
class GatewayResult:
    """Outcome of an idempotent gateway call."""

    already_exists: bool = False


class ProvisioningGateway(typ.Protocol):
    """Create accounts and register keys on the hosting platform."""

    async def create_account(self, name: str) -> GatewayResult:
        """Create the account ``name``; an existing account is not an error."""
        ...

    async def add_keys(self, name: str, keys: typ.Sequence[str]) -> GatewayResult:
        """Add ``keys`` to the account ``name``."""
        ...


@dataclasses.dataclass(frozen=True, slots=True)
class GatewayConfig:
    """Configuration for the provisioning gateway client."""

    base_url: str
    shared_secret: str
    secret_header: str = "X-Gateway-Shared-Secret"
    timeout_s: float = 20.0

    @classmethod
    def from_env(cls) -> GatewayConfig:
        """Build configuration from ``GENSYNC_GATEWAY_*`` variables.

        ``GENSYNC_GATEWAY_URL`` and ``GENSYNC_GATEWAY_SECRET`` are required;
        ``GENSYNC_GATEWAY_SECRET_HEADER`` overrides the header name.
        """
        base_url = os.environ.get("GENSYNC_GATEWAY_URL", "").strip()
        if not base_url:
            raise GatewayConfigError.missing_url()
        secret = os.environ.get("GENSYNC_GATEWAY_SECRET", "").strip()
        if not secret:
            raise GatewayConfigError.missing_secret()
        header = os.environ.get("GENSYNC_GATEWAY_SECRET_HEADER", "").strip()
        if header:
            return cls(
                base_url=base_url.rstrip("/"),
                shared_secret=secret,
                secret_header=header,
            )
        return cls(base_url=base_url.rstrip("/"), shared_secret=secret)


class _Envelope(msgspec.Struct, rename="pascal"):
    success: bool
    error: str = ""
    content: typ.Any = None


class _CreateAccountRequest(msgspec.Struct, rename="pascal"):
    name: str


class _AddKeysRequest(msgspec.Struct, rename="pascal"):
    name: str
    keys: list[str]


class GatewayClient:
    """HTTP implementation of :class:`ProvisioningGateway`."""

    def __init__(
        self,
        config: GatewayConfig,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialise the client with the gateway endpoint and secret."""
        self._config = config
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=config.timeout_s)

    async def aclose(self) -> None:
        """Close any owned HTTP resources."""
        if self._owns_client:
            await self._client.aclose()

    async def create_account(self, name: str) -> GatewayResult:
        """Create the account ``name``.

        An HTTP 409 or an envelope error mentioning that the account already
        exists is treated as success.

        Raises
        ------
        GatewayAPIError
            For any other failure.

        """
        try:
            await self._call(CREATE_ACCOUNT_PATH, _CreateAccountRequest(name=name))
        except GatewayAPIError as exc:
            if _is_already_exists(exc):
                return GatewayResult(already_exists=True)
            raise
        return GatewayResult()

    async def add_keys(self, name: str, keys: typ.Sequence[str]) -> GatewayResult:
        """Register ``keys`` on the account ``name``.

        Raises
        ------
        GatewayAPIError
            If the gateway reports a failure.

        """
        await self._call(ADD_KEYS_PATH, _AddKeysRequest(name=name, keys=list(keys)))
        return GatewayResult()

    async def _call(self, path: str, body: msgspec.Struct) -> typ.Any:  # noqa: ANN401
        """POST ``body`` and return the envelope content."""
        try:
            response = await self._client.post(
                f"{self._config.base_url}{path}",
                content=msgspec.json.encode(body),
                headers={
                    self._config.secret_header: self._config.shared_secret,
                    "Content-Type": "application/json",
                },
            )
        except httpx.RequestError as exc:
            raise GatewayAPIError.transport_error(path, exc) from exc

        envelope = _decode_envelope(response.content)
        if response.status_code >= _HTTP_ERROR_STATUS_THRESHOLD:
            if envelope is not None and envelope.error:
                raise GatewayAPIError.rejected(
                    path, envelope.error, status_code=response.status_code
                )
            raise GatewayAPIError.http_error(path, response.status_code)
        if envelope is None:
            raise GatewayAPIError.invalid_envelope(path, response.text[:200])
        if not envelope.success:
            raise GatewayAPIError.rejected(
                path, envelope.error or "unspecified error"
            )
        return envelope.content


def _decode_envelope(body: bytes) -> _Envelope | None:
    try:
        return msgspec.json.decode(body, type=_Envelope)
    except msgspec.DecodeError:
        return None


def _is_already_exists(exc: GatewayAPIError) -> bool:
    if exc.status_code == _HTTP_CONFLICT:
        return True
    return _ALREADY_EXISTS_MARKER in str(exc).lower()


__all__ = [
    "ADD_KEYS_PATH",
    "CREATE_ACCOUNT_PATH",
    "GatewayClient",
    "GatewayConfig",
    "GatewayResult",
    "ProvisioningGateway",
]
