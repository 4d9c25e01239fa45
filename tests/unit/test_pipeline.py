"""Unit tests for whole-generation pipeline runs."""

from __future__ import annotations

import typing as typ

import pytest
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import async_sessionmaker

from gensync.config import ClusterConfig, ClusterRole, SyncConfig
from gensync.errors import FeedError
from gensync.feed import FeedFailed, FeedState, Initial, StateChanged
from gensync.generation import Generation
from gensync.identity import IdentityConfigError
from gensync.pipeline import Pipeline, open_pipeline
from gensync.provisioning import ProvisioningResult
from gensync.store import DocumentStore, create_document_engine
from tests.helpers.fakes import FakeGateway, FakeIdentity
from tests.helpers.feeds import DrainingFeed, StaticChangeFeed

if typ.TYPE_CHECKING:
    from pathlib import Path

    from sqlalchemy.ext.asyncio import AsyncEngine

G1 = Generation("g-1")
G2 = Generation("g-2")


@pytest.mark.asyncio
async def test_generation_mirrors_tables_and_provisions_users(
    source_engine: AsyncEngine,
    source_store: DocumentStore,
    engine: AsyncEngine,
    store: DocumentStore,
) -> None:
    """One run mirrors projects and domains, sweeps, and provisions users."""
    await source_store.upsert("projects", {"id": "p1", "name": "demo"})
    await source_store.upsert("domains", {"id": "d1", "domain": "demo.example"})
    await store.upsert("projects", {"id": "old", "generation": G1})
    await store.upsert("users", {"id": "u1", "groups": ["authenticated"]})
    await store.upsert(
        "users_auth", {"id": "a1", "user_id": "u1", "provider_id": "42"}
    )
    identity = FakeIdentity(logins={"42": "alice"}, keys={"alice": ["ssh-key-1"]})
    gateway = FakeGateway()

    result = await Pipeline(
        DrainingFeed(source_engine),
        DrainingFeed(engine),
        store,
        identity,
        gateway,
    ).run(G2)

    assert result.generation == G2
    assert set(result.replications) == {"projects", "domains", "users"}
    assert result.replications["projects"].swept == 1
    assert result.provisioning == ProvisioningResult(to_api_wait=1, to_ready=1)
    assert await store.list_records("projects") == [
        {"id": "p1", "generation": G2, "name": "demo"}
    ]
    assert await store.list_records("domains") == [
        {"id": "d1", "generation": G2, "domain": "demo.example"}
    ]
    user = await store.get("users", "u1")
    assert user is not None
    assert user["data"]["status"] == "ready"
    assert gateway.accounts == {"u1": {"ssh-key-1"}}


@pytest.mark.asyncio
async def test_any_failure_fails_the_generation(store: DocumentStore) -> None:
    """A failing job surfaces through the task group."""
    source = StaticChangeFeed(
        {
            "projects": [
                Initial(new_value={"id": "p1"}),
                StateChanged(state=FeedState.READY),
            ],
            "domains": [FeedFailed(error="replica lag")],
        }
    )
    destination = StaticChangeFeed({})

    with pytest.raises(ExceptionGroup) as excinfo:
        await Pipeline(
            source, destination, store, FakeIdentity(), FakeGateway()
        ).run(G1)

    assert excinfo.group_contains(FeedError, match="domains")
    assert destination.subscriptions == ["users"]
    assert sorted(source.subscriptions) == ["domains", "projects", "users"]


def _sqlite_config(tmp_path: Path) -> SyncConfig:
    return SyncConfig(
        source=ClusterConfig(
            role=ClusterRole.SOURCE,
            url=make_url(f"sqlite+aiosqlite:///{tmp_path / 'src.db'}"),
        ),
        destination=ClusterConfig(
            role=ClusterRole.DESTINATION,
            url=make_url(f"sqlite+aiosqlite:///{tmp_path / 'dst.db'}"),
        ),
    )


@pytest.mark.asyncio
async def test_open_pipeline_prepares_both_clusters(tmp_path: Path) -> None:
    """Opening a pipeline creates the document tables on both sides."""
    config = _sqlite_config(tmp_path)

    async with open_pipeline(
        config, identity=FakeIdentity(), gateway=FakeGateway()
    ) as pipeline:
        assert isinstance(pipeline, Pipeline)

    for cluster in (config.source, config.destination):
        cluster_engine = create_document_engine(cluster.url)
        try:
            cluster_store = DocumentStore(async_sessionmaker(cluster_engine))
            assert await cluster_store.list_records("users") == []
        finally:
            await cluster_engine.dispose()


@pytest.mark.asyncio
async def test_open_pipeline_requires_identity_configuration(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Without injected clients the GitHub token must be configured."""
    monkeypatch.delenv("GENSYNC_GITHUB_TOKEN", raising=False)

    with pytest.raises(IdentityConfigError):
        async with open_pipeline(_sqlite_config(tmp_path), gateway=FakeGateway()):
            pass
