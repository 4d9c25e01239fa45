"""User records as seen by the provisioning state machine."""

from __future__ import annotations

import enum
import typing as typ

from gensync.errors import InvariantViolation

if typ.TYPE_CHECKING:
    from gensync.feed.events import Record

AUTHENTICATED_GROUP = "authenticated"
USERS_TABLE = "users"
USERS_AUTH_TABLE = "users_auth"
AUTH_USER_FIELD = "user_id"
AUTH_PROVIDER_ID_FIELD = "provider_id"


class UserStatus(enum.StrEnum):
    """Provisioning status stored at ``data.status``."""

    NEW = "new"
    API_WAIT = "apiWait"
    READY = "ready"
    UNMANAGED = "unmanaged"
    DELETED = "deleted"


def classify_user(user: Record) -> UserStatus:
    """Return the provisioning status of ``user``.

    Users outside the ``authenticated`` group are unmanaged whatever their
    stored data says; authenticated users without ``data`` are new.

    Raises
    ------
    InvariantViolation
        If ``data.status`` is missing or not a known status.

    """
    groups = user.get("groups") or ()
    if AUTHENTICATED_GROUP not in groups:
        return UserStatus.UNMANAGED
    data = user.get("data")
    if not data:
        return UserStatus.NEW
    status = data.get("status") if isinstance(data, dict) else None
    try:
        return UserStatus(status)
    except ValueError:
        raise InvariantViolation.unknown_status(
            str(user.get("id")), status
        ) from None


__all__ = [
    "AUTHENTICATED_GROUP",
    "AUTH_PROVIDER_ID_FIELD",
    "AUTH_USER_FIELD",
    "USERS_AUTH_TABLE",
    "USERS_TABLE",
    "UserStatus",
    "classify_user",
]
