"""Table sync jobs: which tables are mirrored and how.

Projects and domains are plain mirrors: every source record replaces the
destination row wholesale and removals delete it. Users are mirrored onto
rows the destination already owns, so the user job only marks the account
ready with the source's key set and soft-deletes instead of removing.
"""

from __future__ import annotations

import dataclasses
import typing as typ

from gensync.generation import GENERATION_FIELD
from gensync.store.selectors import ById

if typ.TYPE_CHECKING:
    from gensync.feed.events import Record
    from gensync.generation import Generation
    from gensync.replication.replicator import ApplyOp, RemoveOp
    from gensync.store.selectors import Selector
    from gensync.store.services import DocumentStore
    from gensync.store.summary import WriteSummary

SOURCE_KEYS_FIELD = "public_ssh_keys"
STATUS_READY = "ready"
STATUS_DELETED = "deleted"


async def mirror_upsert(
    store: DocumentStore, generation: Generation, table: str, record: Record
) -> WriteSummary:
    """Replace the destination row with ``record`` tagged by ``generation``."""
    return await store.upsert(table, {**record, GENERATION_FIELD: generation})


async def hard_delete(
    store: DocumentStore, generation: Generation, table: str, selector: Selector
) -> WriteSummary:
    """Delete the selected destination rows."""
    del generation
    return await store.delete(table, selector)


async def user_mark_ready(
    store: DocumentStore, generation: Generation, table: str, record: Record
) -> WriteSummary:
    """Mark the destination user ready with the source user's key set.

    Other ``data`` fields of the destination user are kept.
    """
    keys = list(record.get(SOURCE_KEYS_FIELD) or [])
    return await store.update(
        table,
        ById(record["id"]),
        {
            GENERATION_FIELD: generation,
            "data": {"status": STATUS_READY, "keys": keys},
        },
    )


async def user_soft_delete(
    store: DocumentStore, generation: Generation, table: str, selector: Selector
) -> WriteSummary:
    """Mark the selected destination users deleted without removing them."""
    return await store.update(
        table,
        selector,
        {GENERATION_FIELD: generation, "data": {"status": STATUS_DELETED}},
    )


@dataclasses.dataclass(frozen=True, slots=True)
class TableSyncJob:
    """One mirrored table and the policies used to write it."""

    name: str
    source_table: str
    destination_table: str
    apply_op: ApplyOp
    remove_op: RemoveOp


SYNC_JOBS: tuple[TableSyncJob, ...] = (
    TableSyncJob(
        name="users",
        source_table="users",
        destination_table="users",
        apply_op=user_mark_ready,
        remove_op=user_soft_delete,
    ),
    TableSyncJob(
        name="projects",
        source_table="projects",
        destination_table="projects",
        apply_op=mirror_upsert,
        remove_op=hard_delete,
    ),
    TableSyncJob(
        name="domains",
        source_table="domains",
        destination_table="domains",
        apply_op=mirror_upsert,
        remove_op=hard_delete,
    ),
)

__all__ = [
    "SOURCE_KEYS_FIELD",
    "SYNC_JOBS",
    "TableSyncJob",
    "hard_delete",
    "mirror_upsert",
    "user_mark_ready",
    "user_soft_delete",
]
