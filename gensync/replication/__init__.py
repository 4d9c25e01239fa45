"""Mirror source tables into the destination cluster."""

from __future__ import annotations

from .jobs import (
    SYNC_JOBS,
    TableSyncJob,
    hard_delete,
    mirror_upsert,
    user_mark_ready,
    user_soft_delete,
)
from .replicator import ApplyOp, RemoveOp, ReplicationResult, Replicator

__all__ = [
    "SYNC_JOBS",
    "ApplyOp",
    "RemoveOp",
    "ReplicationResult",
    "Replicator",
    "TableSyncJob",
    "hard_delete",
    "mirror_upsert",
    "user_mark_ready",
    "user_soft_delete",
]
