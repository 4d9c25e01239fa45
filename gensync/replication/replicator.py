"""Generic change-feed replicator with a stale-generation sweep.

The replicator consumes one table's change feed and applies each event to a
destination table through caller-supplied operations. Every applied record is
tagged with the run's generation; once the feed reports ``ready`` the
replicator removes every tagged row carrying any other generation, which
catches rows deleted from the source while no run was live.
"""

from __future__ import annotations

import dataclasses
import typing as typ

from gensync.errors import FeedError, InvariantViolation
from gensync.feed.events import (
    Added,
    Changed,
    FeedFailed,
    FeedState,
    Initial,
    Record,
    RecordId,
    Removed,
    StateChanged,
    record_id,
)
from gensync.logging import get_logger, log_debug
from gensync.observability import SyncEventLogger
from gensync.store.selectors import ById, Selector, StaleGeneration
from gensync.store.summary import ensure_clean

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from gensync.feed.events import ChangeEvent
    from gensync.generation import Generation
    from gensync.store.services import DocumentStore
    from gensync.store.summary import WriteSummary

logger = get_logger(__name__)


class ApplyOp(typ.Protocol):
    """Write one source record into a destination table."""

    async def __call__(
        self,
        store: DocumentStore,
        generation: Generation,
        table: str,
        record: Record,
    ) -> WriteSummary:
        """Apply ``record`` under ``generation``."""
        ...


class RemoveOp(typ.Protocol):
    """Remove the rows matched by a selector from a destination table."""

    async def __call__(
        self,
        store: DocumentStore,
        generation: Generation,
        table: str,
        selector: Selector,
    ) -> WriteSummary:
        """Remove the rows matched by ``selector``."""
        ...


@dataclasses.dataclass(frozen=True, slots=True)
class ReplicationResult:
    """Summary of a replication run whose feed ended."""

    table: str
    applied: int = 0
    removed: int = 0
    swept: int = 0
    ready_seen: bool = False


@dataclasses.dataclass(slots=True)
class _Counters:
    applied: int = 0
    removed: int = 0
    swept: int = 0
    ready_seen: bool = False


class Replicator:
    """Apply a change feed to one destination table.

    Writes are awaited one at a time, so a slow destination slows the
    consumption of the feed rather than queueing events in memory.
    """

    def __init__(
        self,
        store: DocumentStore,
        *,
        event_logger: SyncEventLogger | None = None,
    ) -> None:
        """Bind the replicator to the destination store."""
        self._store = store
        self._event_logger = event_logger or SyncEventLogger()

    async def run(  # noqa: PLR0913
        self,
        generation: Generation,
        source_feed: cabc.AsyncIterable[ChangeEvent],
        table: str,
        apply_op: ApplyOp,
        remove_op: RemoveOp,
        *,
        job_name: str | None = None,
    ) -> ReplicationResult:
        """Consume ``source_feed`` until it ends, mirroring it into ``table``.

        Raises
        ------
        FeedError
            If the feed reports an error.
        WriteError
            If any write reports errors or skipped rows.
        InvariantViolation
            If an event's record carries no identifier.

        """
        name = job_name or table
        counters = _Counters()
        async for event in source_feed:
            await self._handle(event, generation, table, apply_op, remove_op, counters)
            if isinstance(event, StateChanged) and event.state is FeedState.READY:
                self._event_logger.log_feed_ready(
                    job=name, generation=generation, applied=counters.applied
                )

        result = ReplicationResult(
            table=table,
            applied=counters.applied,
            removed=counters.removed,
            swept=counters.swept,
            ready_seen=counters.ready_seen,
        )
        self._event_logger.log_job_completed(
            job=name,
            generation=generation,
            applied=result.applied,
            removed=result.removed,
        )
        return result

    async def _handle(  # noqa: PLR0913
        self,
        event: ChangeEvent,
        generation: Generation,
        table: str,
        apply_op: ApplyOp,
        remove_op: RemoveOp,
        counters: _Counters,
    ) -> None:
        match event:
            case Initial(new_value=record) | Added(new_value=record) | Changed(
                new_value=record
            ):
                _require_id(record, table, event)
                summary = await apply_op(self._store, generation, table, record)
                ensure_clean(summary, table=table, operation="apply")
                counters.applied += 1
            case Removed(old_value=record):
                identifier = _require_id(record, table, event)
                summary = await remove_op(
                    self._store, generation, table, ById(identifier)
                )
                ensure_clean(summary, table=table, operation="remove")
                counters.removed += 1
            case StateChanged(state=FeedState.READY):
                counters.ready_seen = True
                summary = await remove_op(
                    self._store, generation, table, StaleGeneration(generation)
                )
                ensure_clean(summary, table=table, operation="sweep")
                counters.swept += summary.deleted + summary.replaced
                self._event_logger.log_sweep_completed(
                    job=table, generation=generation, summary=summary
                )
            case StateChanged(state=state):
                log_debug(logger, "Feed for %s reported state %s", table, state)
            case FeedFailed(error=reason):
                raise FeedError(table, reason)
            case _:
                typ.assert_never(event)


def _require_id(record: Record, table: str, event: ChangeEvent) -> RecordId:
    identifier = record_id(record)
    if identifier is None:
        field = "old_val.id" if isinstance(event, Removed) else "new_val.id"
        raise InvariantViolation.missing_field(table, type(event).__name__, field)
    return identifier


__all__ = ["ApplyOp", "RemoveOp", "ReplicationResult", "Replicator"]
