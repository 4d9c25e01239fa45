"""Provisioning gateway errors."""

from __future__ import annotations

from gensync.errors import ConfigError, ExternalCallError


class GatewayAPIError(ExternalCallError):
    """Raised when the provisioning gateway rejects or fails a request."""

    @classmethod
    def http_error(cls, endpoint: str, status_code: int) -> GatewayAPIError:
        """Return an error for non-2xx HTTP responses."""
        return cls(
            f"Gateway HTTP {status_code} for {endpoint}", status_code=status_code
        )

    @classmethod
    def transport_error(cls, endpoint: str, exc: Exception) -> GatewayAPIError:
        """Return an error for a request that never produced a response."""
        return cls(f"Gateway request to {endpoint} failed: {exc}")

    @classmethod
    def rejected(
        cls, endpoint: str, message: str, *, status_code: int | None = None
    ) -> GatewayAPIError:
        """Return an error for an envelope reporting ``Success: false``."""
        return cls(f"Gateway {endpoint} failed: {message}", status_code=status_code)

    @classmethod
    def invalid_envelope(cls, endpoint: str, detail: str) -> GatewayAPIError:
        """Return an error for a response body that is not an envelope."""
        return cls(f"Gateway {endpoint} returned an invalid envelope: {detail}")


class GatewayConfigError(ConfigError):
    """Raised when gateway client configuration is invalid."""

    @classmethod
    def missing_url(cls) -> GatewayConfigError:
        """Return an error when no gateway URL is configured."""
        return cls("GENSYNC_GATEWAY_URL is required for the provisioning gateway")

    @classmethod
    def missing_secret(cls) -> GatewayConfigError:
        """Return an error when no shared secret is configured."""
        return cls("GENSYNC_GATEWAY_SECRET is required for the provisioning gateway")
