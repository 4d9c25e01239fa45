"""Unit tests for the per-table apply and remove policies."""

from __future__ import annotations

import typing as typ

import pytest

from gensync.feed import FeedState, Initial, Removed, StateChanged
from gensync.generation import Generation
from gensync.replication import (
    SYNC_JOBS,
    Replicator,
    hard_delete,
    mirror_upsert,
    user_mark_ready,
    user_soft_delete,
)
from gensync.store import ById, StaleGeneration, WriteSummary
from tests.helpers.feeds import iterate

if typ.TYPE_CHECKING:
    from gensync.store import DocumentStore

G1 = Generation("g-1")
G2 = Generation("g-2")


def test_sync_jobs_cover_mirrored_tables() -> None:
    """Projects, domains and users are mirrored with the expected policies."""
    policies = {job.name: (job.apply_op, job.remove_op) for job in SYNC_JOBS}

    assert policies == {
        "projects": (mirror_upsert, hard_delete),
        "domains": (mirror_upsert, hard_delete),
        "users": (user_mark_ready, user_soft_delete),
    }
    assert all(job.source_table == job.destination_table for job in SYNC_JOBS)


@pytest.mark.asyncio
async def test_mirror_upsert_tags_generation(store: DocumentStore) -> None:
    """The mirrored record carries the run's generation."""
    summary = await mirror_upsert(store, G1, "domains", {"id": "d1", "name": "x"})

    assert summary == WriteSummary(inserted=1)
    assert await store.get("domains", "d1") == {
        "id": "d1",
        "generation": G1,
        "name": "x",
    }


@pytest.mark.asyncio
async def test_mirror_upsert_overrides_source_generation(store: DocumentStore) -> None:
    """A generation field in the source record never survives the mirror."""
    await mirror_upsert(store, G2, "projects", {"id": "p1", "generation": "bogus"})

    record = await store.get("projects", "p1")

    assert record is not None
    assert record["generation"] == G2


@pytest.mark.asyncio
async def test_user_mark_ready_keeps_other_data(store: DocumentStore) -> None:
    """Marking ready sets status and keys but keeps the rest of ``data``."""
    await store.upsert(
        "users",
        {
            "id": "u1",
            "groups": ["authenticated"],
            "data": {"githubLogin": "alice", "keys": ["stale"], "status": "apiWait"},
        },
    )

    summary = await user_mark_ready(
        store, G1, "users", {"id": "u1", "public_ssh_keys": ["k1", "k2"]}
    )

    assert summary == WriteSummary(replaced=1)
    assert await store.get("users", "u1") == {
        "id": "u1",
        "generation": G1,
        "groups": ["authenticated"],
        "data": {"githubLogin": "alice", "keys": ["k1", "k2"], "status": "ready"},
    }


@pytest.mark.asyncio
async def test_user_mark_ready_requires_destination_user(store: DocumentStore) -> None:
    """Users are never created by the mirror; a missing user is skipped."""
    summary = await user_mark_ready(store, G1, "users", {"id": "nobody"})

    assert summary == WriteSummary(skipped=1)


@pytest.mark.asyncio
async def test_user_soft_delete_marks_deleted(store: DocumentStore) -> None:
    """Removing a user keeps the row and marks it deleted."""
    await store.upsert("users", {"id": "u1", "data": {"status": "ready"}})

    summary = await user_soft_delete(store, G1, "users", ById("u1"))

    assert summary == WriteSummary(replaced=1)
    assert await store.get("users", "u1") == {
        "id": "u1",
        "generation": G1,
        "data": {"status": "deleted"},
    }


@pytest.mark.asyncio
async def test_user_sweep_soft_deletes_stale_users_only(store: DocumentStore) -> None:
    """The users sweep soft-deletes stale tagged users and ignores untagged ones."""
    await store.upsert("users", {"id": "kept", "generation": G2, "data": {}})
    await store.upsert("users", {"id": "gone", "generation": G1, "data": {}})
    await store.upsert("users", {"id": "in-flight", "data": {"status": "apiWait"}})

    summary = await user_soft_delete(store, G2, "users", StaleGeneration(G2))

    assert summary == WriteSummary(replaced=1)
    gone = await store.get("users", "gone")
    in_flight = await store.get("users", "in-flight")
    assert gone is not None
    assert gone["data"] == {"status": "deleted"}
    assert in_flight == {"id": "in-flight", "data": {"status": "apiWait"}}


@pytest.mark.asyncio
async def test_user_job_through_replicator(store: DocumentStore) -> None:
    """The users job marks present users ready and soft-deletes removed ones."""
    await store.upsert("users", {"id": "u1", "groups": ["authenticated"]})
    await store.upsert("users", {"id": "u2", "groups": ["authenticated"]})
    job = next(job for job in SYNC_JOBS if job.name == "users")

    result = await Replicator(store).run(
        G1,
        iterate(
            [
                Initial(new_value={"id": "u1", "public_ssh_keys": ["k1"]}),
                Initial(new_value={"id": "u2", "public_ssh_keys": []}),
                StateChanged(state=FeedState.READY),
                Removed(old_value={"id": "u2"}),
            ]
        ),
        job.destination_table,
        job.apply_op,
        job.remove_op,
        job_name=job.name,
    )

    assert result.applied == 2
    assert result.removed == 1
    u1 = await store.get("users", "u1")
    u2 = await store.get("users", "u2")
    assert u1 is not None
    assert u2 is not None
    assert u1["data"] == {"status": "ready", "keys": ["k1"]}
    assert u2["data"] == {"status": "deleted", "keys": []}
