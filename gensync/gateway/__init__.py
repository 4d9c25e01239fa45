"""Account provisioning gateway client."""

from __future__ import annotations

from .client import (
    ADD_KEYS_PATH,
    CREATE_ACCOUNT_PATH,
    GatewayClient,
    GatewayConfig,
    GatewayResult,
    ProvisioningGateway,
)
from .errors import GatewayAPIError, GatewayConfigError

__all__ = [
    "ADD_KEYS_PATH",
    "CREATE_ACCOUNT_PATH",
    "GatewayAPIError",
    "GatewayClient",
    "GatewayConfig",
    "GatewayConfigError",
    "GatewayResult",
    "ProvisioningGateway",
]
