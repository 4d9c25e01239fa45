"""Identity adapter errors."""

from __future__ import annotations

from gensync.errors import ConfigError, ExternalCallError


class IdentityAPIError(ExternalCallError):
    """Raised when the identity provider returns an error or a bad payload."""

    @classmethod
    def http_error(cls, path: str, status_code: int) -> IdentityAPIError:
        """Return an error for non-2xx HTTP responses."""
        return cls(f"GitHub API HTTP {status_code} for {path}", status_code=status_code)

    @classmethod
    def transport_error(cls, path: str, exc: Exception) -> IdentityAPIError:
        """Return an error for a request that never produced a response."""
        return cls(f"GitHub API request to {path} failed: {exc}")

    @classmethod
    def unexpected_payload(cls, path: str, detail: str) -> IdentityAPIError:
        """Return an error for a response missing expected fields."""
        return cls(f"GitHub API response for {path} is malformed: {detail}")


class IdentityConfigError(ConfigError):
    """Raised when identity client configuration is invalid."""

    @classmethod
    def missing_token(cls) -> IdentityConfigError:
        """Return an error when no GitHub token is configured."""
        return cls("GENSYNC_GITHUB_TOKEN is required for the GitHub API")

    @classmethod
    def empty_token(cls) -> IdentityConfigError:
        """Return an error when the provided token is empty."""
        return cls("GitHub token must be non-empty")
