"""Change feed over a document table and its change log.

A subscription reads the table and the change-log head for that table in a
single snapshot transaction, delivers the rows as ``initial`` events, reports
``ready``, then tails the change log from the snapshot's head onwards. Rows
written concurrently with the snapshot therefore appear either in the
snapshot or in the tail, never in neither.
"""

from __future__ import annotations

import asyncio
import typing as typ

import msgspec
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from gensync.feed.events import (
    ChangeEvent,
    FeedFailed,
    FeedState,
    Initial,
    Record,
    StateChanged,
    decode_change,
)
from gensync.logging import get_logger, log_debug, log_warning
from gensync.store.storage import (
    ChangeLogEntry,
    ChangeLogHead,
    decode_record_key,
    document_model,
    make_record,
)

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from sqlalchemy import Row
    from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

logger = get_logger(__name__)

# Dialects whose default isolation gives each statement its own snapshot.
_SNAPSHOT_ISOLATION: dict[str, str] = {"postgresql": "REPEATABLE READ"}


class SqlChangeFeed:
    """:class:`~gensync.feed.protocol.ChangeFeedSource` backed by SQLAlchemy."""

    def __init__(
        self,
        engine: AsyncEngine,
        *,
        poll_interval: float = 1.0,
        batch_size: int = 500,
        sleep: cabc.Callable[[float], cabc.Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Bind the feed to a cluster engine."""
        self._engine = engine
        self._poll_interval = poll_interval
        self._batch_size = batch_size
        self._sleep = sleep

    async def subscribe(
        self, table: str, *, include_initial: bool = True
    ) -> cabc.AsyncIterator[ChangeEvent]:
        """Yield the snapshot, ``ready``, then live changes for ``table``."""
        document_model(table)
        try:
            cursor, records = await self._snapshot(
                table, include_initial=include_initial
            )
        except SQLAlchemyError as exc:
            log_warning(logger, "Snapshot of %s failed: %s", table, exc)
            yield FeedFailed(error=f"snapshot of {table} failed: {exc}")
            return

        log_debug(
            logger, "Snapshot of %s: %d rows at seq %d", table, len(records), cursor
        )
        for record in records:
            yield Initial(new_value=record)
        yield StateChanged(state=FeedState.READY)

        while True:
            try:
                entries = await self._read_since(table, cursor)
            except SQLAlchemyError as exc:
                log_warning(logger, "Tailing %s failed: %s", table, exc)
                yield FeedFailed(error=f"reading changes of {table} failed: {exc}")
                return

            if not entries:
                await self._sleep(self._poll_interval)
                continue

            for entry in entries:
                try:
                    event = _entry_event(entry)
                except msgspec.ValidationError as exc:
                    yield FeedFailed(
                        error=f"malformed change {table}#{entry.seq}: {exc}"
                    )
                    return
                cursor = entry.seq
                yield event

    async def _snapshot(
        self, table: str, *, include_initial: bool
    ) -> tuple[int, list[Record]]:
        model = document_model(table)
        async with self._engine.connect() as conn:
            await _use_snapshot_isolation(conn)
            async with conn.begin():
                head = await conn.scalar(
                    select(ChangeLogHead.last_seq).where(
                        ChangeLogHead.table_name == table
                    )
                )
                records: list[Record] = []
                if include_initial:
                    result = await conn.execute(
                        select(model.key, model.generation, model.body).order_by(
                            model.key
                        )
                    )
                    records = [
                        make_record(
                            decode_record_key(row.key), row.generation, row.body or {}
                        )
                        for row in result
                    ]
        return (head or 0, records)

    async def _read_since(self, table: str, cursor: int) -> list[Row[typ.Any]]:
        async with self._engine.connect() as conn:
            result = await conn.execute(
                select(
                    ChangeLogEntry.seq,
                    ChangeLogEntry.kind,
                    ChangeLogEntry.old_value,
                    ChangeLogEntry.new_value,
                )
                .where(ChangeLogEntry.table_name == table, ChangeLogEntry.seq > cursor)
                .order_by(ChangeLogEntry.seq)
                .limit(self._batch_size)
            )
            return list(result.all())


async def _use_snapshot_isolation(conn: AsyncConnection) -> None:
    isolation = _SNAPSHOT_ISOLATION.get(conn.dialect.name)
    if isolation is not None:
        await conn.execution_options(isolation_level=isolation)


def _entry_event(entry: Row[typ.Any]) -> ChangeEvent:
    payload: dict[str, typ.Any] = {"type": entry.kind}
    if entry.old_value is not None:
        payload["old_val"] = entry.old_value
    if entry.new_value is not None:
        payload["new_val"] = entry.new_value
    return decode_change(payload)
