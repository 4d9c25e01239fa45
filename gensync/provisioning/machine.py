"""User provisioning state machine.

The machine watches the destination ``users`` feed and advances each managed
user one step per observed event:

``new``
    resolve the GitHub login from the user's single auth mapping and store it
    with status ``apiWait``.
``apiWait``
    fetch the user's public keys, create the hosting account, register the
    keys, then store status ``ready`` with the keys.

Each write produces a change event that re-enters the machine, which is what
drives the next step. Events can be stale: the users table sync job writes
the same rows concurrently. Before acting the machine re-reads the stored
user, and each status write only lands if the row is still at the status the
step started from, so ``ready`` and ``deleted`` are never rewritten. Every
external call is idempotent, so a user left at ``apiWait`` by a crash is
simply retried from the initial snapshot of the next run.
"""

from __future__ import annotations

import dataclasses
import typing as typ

from gensync.errors import FeedError, InvariantViolation
from gensync.feed.events import (
    Added,
    Changed,
    FeedFailed,
    Initial,
    Removed,
    StateChanged,
    record_id,
)
from gensync.logging import get_logger, log_debug, log_info
from gensync.observability import SyncEventLogger
from gensync.store.selectors import ById
from gensync.store.summary import ensure_clean

from .models import (
    AUTH_PROVIDER_ID_FIELD,
    AUTH_USER_FIELD,
    USERS_AUTH_TABLE,
    USERS_TABLE,
    UserStatus,
    classify_user,
)

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from gensync.feed.events import ChangeEvent, Record
    from gensync.gateway.client import ProvisioningGateway
    from gensync.generation import Generation
    from gensync.identity.client import IdentityAdapter
    from gensync.store.services import DocumentStore

logger = get_logger(__name__)

_MISSING = "missing"
_CHANGED = "changed"


@dataclasses.dataclass(frozen=True, slots=True)
class ProvisioningResult:
    """Transition counts for a provisioning run whose feed ended."""

    to_api_wait: int = 0
    to_ready: int = 0
    accounts_already_existed: int = 0
    stale_events: int = 0


@dataclasses.dataclass(slots=True)
class _Counters:
    to_api_wait: int = 0
    to_ready: int = 0
    accounts_already_existed: int = 0
    stale_events: int = 0


class UserProvisioner:
    """Drive managed users from ``new`` to ``ready``."""

    def __init__(
        self,
        store: DocumentStore,
        identity: IdentityAdapter,
        gateway: ProvisioningGateway,
        *,
        event_logger: SyncEventLogger | None = None,
    ) -> None:
        """Bind the machine to the destination store and external services."""
        self._store = store
        self._identity = identity
        self._gateway = gateway
        self._event_logger = event_logger or SyncEventLogger()

    async def run(
        self, generation: Generation, feed: cabc.AsyncIterable[ChangeEvent]
    ) -> ProvisioningResult:
        """Consume the users feed until it ends.

        Raises
        ------
        FeedError
            If the feed reports an error.
        InvariantViolation
            If a user's status cannot be classified or its auth mapping is
            not unique.
        ExternalCallError
            If the identity provider or the gateway fails.
        WriteError
            If a status write is not clean.

        """
        counters = _Counters()
        async for event in feed:
            match event:
                case Initial(new_value=user) | Added(new_value=user) | Changed(
                    new_value=user
                ):
                    await self._advance(generation, user, counters)
                case Removed() | StateChanged():
                    continue
                case FeedFailed(error=reason):
                    raise FeedError(USERS_TABLE, reason)
                case _:
                    typ.assert_never(event)
        return ProvisioningResult(
            to_api_wait=counters.to_api_wait,
            to_ready=counters.to_ready,
            accounts_already_existed=counters.accounts_already_existed,
            stale_events=counters.stale_events,
        )

    async def _advance(
        self, generation: Generation, user: Record, counters: _Counters
    ) -> None:
        status = classify_user(user)
        user_id = record_id(user)
        if not isinstance(user_id, str):
            raise InvariantViolation.missing_field(USERS_TABLE, "user", "id")

        match status:
            case UserStatus.NEW | UserStatus.API_WAIT:
                pass
            case UserStatus.READY | UserStatus.UNMANAGED | UserStatus.DELETED:
                log_debug(logger, "User %s is %s; nothing to do", user_id, status)
                return
            case _:
                typ.assert_never(status)

        # The event may predate writes made by this machine or the users job.
        current = await self._store.get(USERS_TABLE, user_id)
        found = _MISSING if current is None else classify_user(current)
        if current is None or found is not status:
            self._log_stale(generation, user_id, status, found, counters)
            return

        if status is UserStatus.NEW:
            moved = await self._resolve_login(user_id)
            to_status = UserStatus.API_WAIT
        else:
            moved, existed = await self._provision_account(user_id, current)
            to_status = UserStatus.READY
            counters.accounts_already_existed += int(existed)

        if not moved:
            self._log_stale(generation, user_id, status, _CHANGED, counters)
            return
        if to_status is UserStatus.API_WAIT:
            counters.to_api_wait += 1
        else:
            counters.to_ready += 1
        self._log_transition(generation, user_id, status, to_status)

    async def _resolve_login(self, user_id: str) -> bool:
        """Store the GitHub login for ``user_id`` and move it to apiWait.

        Returns False when the stored user left ``new`` before the write.
        """
        mappings = await self._store.find(USERS_AUTH_TABLE, AUTH_USER_FIELD, user_id)
        if len(mappings) != 1:
            raise InvariantViolation.auth_mapping_cardinality(user_id, len(mappings))
        provider_id = mappings[0].get(AUTH_PROVIDER_ID_FIELD)
        if provider_id is None:
            raise InvariantViolation.missing_field(
                USERS_AUTH_TABLE, "auth mapping", AUTH_PROVIDER_ID_FIELD
            )

        login = await self._identity.login_from_auth_id(str(provider_id))
        summary = await self._store.update(
            USERS_TABLE,
            ById(user_id),
            {
                "data": {
                    "githubLogin": login,
                    "githubId": str(provider_id),
                    "status": UserStatus.API_WAIT.value,
                }
            },
            expect=_still(UserStatus.NEW),
        )
        ensure_clean(summary, table=USERS_TABLE, operation="resolve login")
        return summary.conflicted == 0

    async def _provision_account(self, user_id: str, user: Record) -> tuple[bool, bool]:
        """Create the account, register keys, then mark ``user_id`` ready.

        Returns whether the ready status was written and whether the account
        already existed on the gateway.
        """
        data = user.get("data") or {}
        login = data.get("githubLogin")
        if not isinstance(login, str) or not login:
            raise InvariantViolation.missing_login(user_id)

        keys = await self._identity.keys_from_login(login)
        created = await self._gateway.create_account(user_id)
        if created.already_exists:
            log_info(logger, "Account for user %s already exists", user_id)
        await self._gateway.add_keys(user_id, keys)

        summary = await self._store.update(
            USERS_TABLE,
            ById(user_id),
            {"data": {"status": UserStatus.READY.value, "keys": keys}},
            expect=_still(UserStatus.API_WAIT),
        )
        ensure_clean(summary, table=USERS_TABLE, operation="mark ready")
        return (summary.conflicted == 0, created.already_exists)

    def _log_transition(
        self,
        generation: Generation,
        user_id: str,
        from_status: UserStatus,
        to_status: UserStatus,
    ) -> None:
        self._event_logger.log_user_transition(
            user_id=user_id,
            from_status=from_status,
            to_status=to_status,
            generation=generation,
        )

    def _log_stale(
        self,
        generation: Generation,
        user_id: str,
        expected: UserStatus,
        found: str,
        counters: _Counters,
    ) -> None:
        counters.stale_events += 1
        self._event_logger.log_user_stale(
            user_id=user_id, expected=expected, found=found, generation=generation
        )


def _still(status: UserStatus) -> cabc.Callable[[Record], bool]:
    """Return a guard accepting only users currently at ``status``."""

    def check(current: Record) -> bool:
        return classify_user(current) is status

    return check


__all__ = ["ProvisioningResult", "UserProvisioner"]
