"""Onboard authenticated users onto the hosting platform."""

from __future__ import annotations

from .machine import ProvisioningResult, UserProvisioner
from .models import AUTHENTICATED_GROUP, UserStatus, classify_user

__all__ = [
    "AUTHENTICATED_GROUP",
    "ProvisioningResult",
    "UserProvisioner",
    "UserStatus",
    "classify_user",
]
