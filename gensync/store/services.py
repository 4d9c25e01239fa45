"""Document store operations used by replication and provisioning.

Each operation runs in its own transaction, locks the rows it rewrites,
appends one change-log entry per changed row in the same transaction, and
returns a :class:`~gensync.store.summary.WriteSummary`. Operations report
missing targets and unwritable records through the summary rather than by
raising, so callers decide what is fatal.
"""

from __future__ import annotations

import typing as typ

import msgspec
from sqlalchemy import select

from gensync.feed.events import RECORD_ID_FIELD, ChangeKind, Record, RecordId, record_id
from gensync.store.selectors import ById, Selector, StaleGeneration
from gensync.store.storage import (
    ChangeLogEntry,
    ChangeLogHead,
    DocumentModel,
    document_model,
    encode_record_key,
    make_record,
    split_record,
)
from gensync.store.summary import WriteSummary

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from sqlalchemy import Select
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    type SessionFactory = async_sessionmaker[AsyncSession]

type _Change = tuple[ChangeKind, Record | None, Record | None]


def merge_patch(
    base: typ.Mapping[str, typ.Any], patch: typ.Mapping[str, typ.Any]
) -> Record:
    """Return ``base`` with ``patch`` merged in; nested mappings merge recursively."""
    merged: Record = dict(base)
    for key, value in patch.items():
        current = merged.get(key)
        if isinstance(value, dict) and isinstance(current, dict):
            merged[key] = merge_patch(current, value)
        else:
            merged[key] = value
    return merged


def _normalise(value: typ.Mapping[str, typ.Any]) -> Record:
    """Return a JSON-safe deep copy; sets and tuples become lists."""
    builtins = msgspec.to_builtins(dict(value))
    if not isinstance(builtins, dict):  # pragma: no cover - dict in, dict out
        msg = "record must be a mapping"
        raise TypeError(msg)
    return builtins


def _selected_rows(model: DocumentModel, selector: Selector) -> Select[typ.Any]:
    stmt = select(model)
    match selector:
        case ById(record_id=identifier):
            stmt = stmt.where(model.key == encode_record_key(identifier))
        case StaleGeneration(current=generation):
            stmt = stmt.where(
                model.generation.is_not(None), model.generation != generation
            )
        case _:
            typ.assert_never(selector)
    return stmt.order_by(model.key).with_for_update()


def _missing_target(selector: Selector) -> WriteSummary:
    """Summarise an operation whose selector matched nothing."""
    if isinstance(selector, ById):
        return WriteSummary(skipped=1)
    return WriteSummary()


class DocumentStore:
    """Read and write JSON document tables on one cluster."""

    def __init__(self, session_factory: SessionFactory) -> None:
        """Bind the store to a cluster's session factory."""
        self._session_factory = session_factory

    async def upsert(
        self, table: str, record: typ.Mapping[str, typ.Any]
    ) -> WriteSummary:
        """Insert ``record`` or replace the row with the same ``id`` wholesale."""
        model = document_model(table)
        try:
            normalised = _normalise(record)
        except TypeError as exc:
            return WriteSummary.refused(str(exc))
        identifier = record_id(normalised)
        if identifier is None:
            return WriteSummary.refused(f"record has no usable {RECORD_ID_FIELD}")

        key = encode_record_key(identifier)
        generation, body = split_record(normalised)
        new_record = make_record(identifier, generation, body)
        async with self._session_factory() as session, session.begin():
            row = await session.get(model, key, with_for_update=True)
            if row is None:
                session.add(model(key=key, generation=generation, body=body))
                await self._append_changes(
                    session, table, [(ChangeKind.ADD, None, new_record)]
                )
                return WriteSummary(inserted=1)

            old_record = row.to_record()
            if old_record == new_record:
                return WriteSummary(unchanged=1)
            row.generation = generation
            row.body = body
            await self._append_changes(
                session, table, [(ChangeKind.CHANGE, old_record, new_record)]
            )
        return WriteSummary(replaced=1)

    async def update(
        self,
        table: str,
        selector: Selector,
        patch: typ.Mapping[str, typ.Any],
        *,
        expect: cabc.Callable[[Record], bool] | None = None,
    ) -> WriteSummary:
        """Deep-merge ``patch`` into every selected row.

        A ``generation`` key in the patch retags the row. The identifier
        cannot be patched. When ``expect`` is given it sees each locked row
        before the merge; rows it rejects are left untouched and counted as
        ``conflicted``, which turns the update into a compare-and-set.
        """
        model = document_model(table)
        try:
            normalised_patch = _normalise(patch)
        except TypeError as exc:
            return WriteSummary.refused(str(exc))
        if RECORD_ID_FIELD in normalised_patch:
            return WriteSummary.refused(f"patch may not change {RECORD_ID_FIELD}")

        async with self._session_factory() as session, session.begin():
            rows = (await session.scalars(_selected_rows(model, selector))).all()
            if not rows:
                return _missing_target(selector)

            summary = WriteSummary()
            changes: list[_Change] = []
            for row in rows:
                old_record = row.to_record()
                if expect is not None and not expect(old_record):
                    summary += WriteSummary(conflicted=1)
                    continue
                new_record = merge_patch(old_record, normalised_patch)
                if new_record == old_record:
                    summary += WriteSummary(unchanged=1)
                    continue
                row.generation, row.body = split_record(new_record)
                changes.append((ChangeKind.CHANGE, old_record, new_record))
                summary += WriteSummary(replaced=1)
            await self._append_changes(session, table, changes)
        return summary

    async def delete(self, table: str, selector: Selector) -> WriteSummary:
        """Delete every selected row."""
        model = document_model(table)
        async with self._session_factory() as session, session.begin():
            rows = (await session.scalars(_selected_rows(model, selector))).all()
            if not rows:
                return _missing_target(selector)

            changes: list[_Change] = []
            for row in rows:
                changes.append((ChangeKind.REMOVE, row.to_record(), None))
                await session.delete(row)
            await self._append_changes(session, table, changes)
        return WriteSummary(deleted=len(rows))

    async def get(self, table: str, identifier: RecordId) -> Record | None:
        """Return the record with ``identifier``, or ``None``."""
        model = document_model(table)
        async with self._session_factory() as session:
            row = await session.get(model, encode_record_key(identifier))
            return None if row is None else row.to_record()

    async def find(self, table: str, field: str, value: str) -> list[Record]:
        """Return records whose top-level ``field`` equals ``value``."""
        model = document_model(table)
        async with self._session_factory() as session:
            rows = await session.scalars(
                select(model)
                .where(model.body[field].as_string() == value)
                .order_by(model.key)
            )
            return [row.to_record() for row in rows]

    async def list_records(self, table: str) -> list[Record]:
        """Return every record in ``table`` ordered by identifier."""
        model = document_model(table)
        async with self._session_factory() as session:
            rows = await session.scalars(select(model).order_by(model.key))
            return [row.to_record() for row in rows]

    @staticmethod
    async def _append_changes(
        session: AsyncSession, table: str, changes: list[_Change]
    ) -> None:
        """Append change-log entries under the table's head lock."""
        if not changes:
            return
        head = await session.get(ChangeLogHead, table, with_for_update=True)
        if head is None:
            head = ChangeLogHead(table_name=table, last_seq=0)
            session.add(head)
        for kind, old_record, new_record in changes:
            head.last_seq += 1
            session.add(
                ChangeLogEntry(
                    table_name=table,
                    seq=head.last_seq,
                    kind=kind.value,
                    old_value=old_record,
                    new_value=new_record,
                )
            )
