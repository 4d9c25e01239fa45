"""Shared fixtures for BDD feature tests.

Steps run their coroutines through :func:`tests.helpers.runner.run_async`,
which starts a new event loop per call, so the clusters here use
``NullPool`` and never hand a connection from one loop to the next.
"""

from __future__ import annotations

import dataclasses
import typing as typ

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlalchemy.pool import NullPool

from gensync.store import DocumentStore, create_document_engine, init_document_storage
from tests.helpers.runner import run_async

if typ.TYPE_CHECKING:
    from pathlib import Path

    from sqlalchemy.ext.asyncio import AsyncEngine


@dataclasses.dataclass(frozen=True, slots=True)
class Cluster:
    """An engine and a document store over one throwaway database."""

    engine: AsyncEngine
    store: DocumentStore


def _open_cluster(path: Path) -> Cluster:
    engine = create_document_engine(f"sqlite+aiosqlite:///{path}", poolclass=NullPool)
    run_async(lambda: init_document_storage(engine))
    return Cluster(
        engine=engine,
        store=DocumentStore(async_sessionmaker(engine, expire_on_commit=False)),
    )


@pytest.fixture
def clusters(tmp_path: Path) -> typ.Iterator[tuple[Cluster, Cluster]]:
    """Yield ``(source, destination)`` clusters for a scenario."""
    source = _open_cluster(tmp_path / "source.db")
    destination = _open_cluster(tmp_path / "destination.db")
    try:
        yield source, destination
    finally:
        run_async(source.engine.dispose)
        run_async(destination.engine.dispose)
