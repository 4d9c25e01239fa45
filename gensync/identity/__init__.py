"""External identity resolution for provisioned users."""

from __future__ import annotations

from .client import GitHubIdentityClient, GitHubIdentityConfig, IdentityAdapter
from .errors import IdentityAPIError, IdentityConfigError

__all__ = [
    "GitHubIdentityClient",
    "GitHubIdentityConfig",
    "IdentityAPIError",
    "IdentityAdapter",
    "IdentityConfigError",
]
