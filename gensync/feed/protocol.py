"""Interface consumed by the replicator and the provisioning machine."""

from __future__ import annotations

import typing as typ

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from .events import ChangeEvent


class ChangeFeedSource(typ.Protocol):
    """Produce an ordered change feed for a named table."""

    def subscribe(
        self, table: str, *, include_initial: bool = True
    ) -> cabc.AsyncIterator[ChangeEvent]:
        """Yield ``initial`` events, then ``state=ready``, then live changes.

        The iterator may end with a single ``error`` event. Events for one
        subscription are never reordered or delivered concurrently.
        """
        ...
