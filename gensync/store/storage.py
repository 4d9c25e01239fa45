"""Persistence models for mirrored document tables and their change log."""

from __future__ import annotations

import datetime as dt
import typing as typ

import msgspec
from sqlalchemy import JSON, DateTime, Integer, String, event, select
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from gensync.feed.events import RECORD_ID_FIELD, Record, RecordId
from gensync.generation import GENERATION_FIELD
from gensync.store.errors import NaiveDatetimeError, UnknownTableError

if typ.TYPE_CHECKING:
    from sqlalchemy.engine import URL, Dialect
    from sqlalchemy.ext.asyncio import AsyncEngine


def utcnow() -> dt.datetime:
    """Return an aware UTC timestamp suitable for DB defaults."""
    return dt.datetime.now(dt.UTC)


class Base(DeclarativeBase):
    """Declarative base shared by source and destination clusters."""


class UTCDateTime(TypeDecorator[dt.datetime]):
    """DateTime that keeps UTC tzinfo on every backend, SQLite included."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(
        self, value: dt.datetime | None, dialect: Dialect
    ) -> dt.datetime | None:
        """Reject naive datetimes and store aware values in UTC."""
        if value is None:
            return None
        if value.tzinfo is None:
            raise NaiveDatetimeError
        return value.astimezone(dt.UTC)

    def process_result_value(
        self, value: dt.datetime | None, dialect: Dialect
    ) -> dt.datetime | None:
        """Return aware UTC datetimes."""
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=dt.UTC)
        return value.astimezone(dt.UTC)


class DocumentMixin:
    """Columns shared by every document table.

    ``key`` is the record identifier in its canonical JSON encoding (see
    :func:`encode_record_key`), ``generation`` the tag of the run that last
    wrote the row (``NULL`` for rows no table sync job owns), and ``body``
    every other field of the record.
    """

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    generation: Mapped[str | None] = mapped_column(
        String(64), default=None, index=True
    )
    body: Mapped[dict[str, typ.Any]] = mapped_column(JSON, default=dict)
    updated_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime(), default=utcnow, onupdate=utcnow
    )

    def to_record(self) -> Record:
        """Return the row as a record, generation tag included when set."""
        return make_record(decode_record_key(self.key), self.generation, self.body)


class ProjectDocument(DocumentMixin, Base):
    """Project configuration rows."""

    __tablename__ = "projects"


class DomainDocument(DocumentMixin, Base):
    """Domain-to-project mapping rows."""

    __tablename__ = "domains"


class UserDocument(DocumentMixin, Base):
    """User rows: provisioned users on the source, web accounts on the destination."""

    __tablename__ = "users"


class UserAuthDocument(DocumentMixin, Base):
    """Links a destination user to its external authentication account."""

    __tablename__ = "users_auth"


class ChangeLogHead(Base):
    """Last change-log sequence number issued for a table.

    Writers lock this row for the duration of their transaction, so sequence
    numbers for a table become visible to readers in commit order.
    """

    __tablename__ = "changelog_heads"

    table_name: Mapped[str] = mapped_column(String(64), primary_key=True)
    last_seq: Mapped[int] = mapped_column(Integer, default=0)


class ChangeLogEntry(Base):
    """Append-only record of one row change in a document table."""

    __tablename__ = "changelog"

    table_name: Mapped[str] = mapped_column(String(64), primary_key=True)
    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    kind: Mapped[str] = mapped_column(String(16))
    old_value: Mapped[dict[str, typ.Any] | None] = mapped_column(JSON, default=None)
    new_value: Mapped[dict[str, typ.Any] | None] = mapped_column(JSON, default=None)
    recorded_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow)


type DocumentModel = type[
    ProjectDocument | DomainDocument | UserDocument | UserAuthDocument
]

DOCUMENT_MODELS: dict[str, DocumentModel] = {
    model.__tablename__: model
    for model in (ProjectDocument, DomainDocument, UserDocument, UserAuthDocument)
}


def document_model(table: str) -> DocumentModel:
    """Return the mapped class for ``table``.

    Raises
    ------
    UnknownTableError
        If ``table`` is not a document table.

    """
    try:
        return DOCUMENT_MODELS[table]
    except KeyError:
        raise UnknownTableError(table) from None


def encode_record_key(identifier: RecordId) -> str:
    """Return the primary-key text for ``identifier``.

    The key is the compact JSON encoding, so ``"7"``, ``7`` and ``["a", "b"]``
    never collide and each decodes back to the identifier it came from.
    """
    return msgspec.json.encode(identifier).decode()


def decode_record_key(key: str) -> RecordId:
    """Return the identifier stored as ``key``."""
    return msgspec.json.decode(key)


def make_record(
    identifier: RecordId, generation: str | None, body: typ.Mapping[str, typ.Any]
) -> Record:
    """Assemble a record from the stored columns."""
    record: Record = {RECORD_ID_FIELD: identifier, **body}
    if generation is not None:
        record[GENERATION_FIELD] = generation
    return record


def split_record(record: typ.Mapping[str, typ.Any]) -> tuple[str | None, Record]:
    """Split a record into its generation tag and the JSON body."""
    body = {
        key: value
        for key, value in record.items()
        if key not in {RECORD_ID_FIELD, GENERATION_FIELD}
    }
    generation = record.get(GENERATION_FIELD)
    return (generation if isinstance(generation, str) else None, body)


async def init_document_storage(engine: AsyncEngine) -> None:
    """Create the document tables and seed one change-log head per table."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        existing = set(
            (await conn.scalars(select(ChangeLogHead.table_name))).all()
        )
        missing = [
            {"table_name": table, "last_seq": 0}
            for table in DOCUMENT_MODELS
            if table not in existing
        ]
        if missing:
            await conn.execute(ChangeLogHead.__table__.insert(), missing)


def create_document_engine(
    url: str | URL,
    **engine_kwargs: typ.Any,  # noqa: ANN401
) -> AsyncEngine:
    """Create an async engine for a cluster holding document tables.

    On SQLite every transaction starts with ``BEGIN IMMEDIATE`` so that the
    read-modify-write of a change-log head is serialised the way ``SELECT
    ... FOR UPDATE`` serialises it on PostgreSQL.
    """
    engine = create_async_engine(url, **engine_kwargs)
    if engine.dialect.name == "sqlite":
        _serialise_sqlite_writers(engine)
    return engine


def _serialise_sqlite_writers(engine: AsyncEngine) -> None:
    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_transactions(
        dbapi_connection: typ.Any,  # noqa: ANN401
        connection_record: typ.Any,  # noqa: ANN401
    ) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn: typ.Any) -> None:  # noqa: ANN401
        conn.exec_driver_sql("BEGIN IMMEDIATE")
