"""Shared fixtures for unit and feature tests."""

from __future__ import annotations

import contextlib
import logging
import os
import socket
import typing as typ

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from gensync.store import DocumentStore, create_document_engine, init_document_storage

if typ.TYPE_CHECKING:
    from pathlib import Path

try:
    from py_pglite import PGliteConfig, PGliteManager

    _PGLITE_AVAILABLE = True
except ImportError:  # pragma: no cover - optional dependency
    _PGLITE_AVAILABLE = False

logger = logging.getLogger(__name__)


def _should_use_pglite() -> bool:
    """Return True when tests were asked to run against py-pglite Postgres."""
    target = os.getenv("GENSYNC_TEST_DB", "sqlite").lower()
    return target == "pglite" and _PGLITE_AVAILABLE


def _find_free_port() -> int:
    """Find an available TCP port for a temporary Postgres instance."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@contextlib.asynccontextmanager
async def _pglite_engine(work_dir: Path) -> typ.AsyncIterator[AsyncEngine]:
    """Start a py-pglite Postgres and yield an async engine bound to it."""
    port = _find_free_port()
    config = PGliteConfig(
        use_tcp=True, tcp_host="127.0.0.1", tcp_port=port, work_dir=work_dir
    )

    with PGliteManager(config):
        url = (
            f"postgresql+asyncpg://postgres:postgres@{config.tcp_host}:"
            f"{config.tcp_port}/postgres"
        )
        engine = create_document_engine(url)
        try:
            yield engine
        finally:
            await engine.dispose()


@contextlib.asynccontextmanager
async def open_cluster(tmp_path: Path, name: str) -> typ.AsyncIterator[AsyncEngine]:
    """Yield an engine for a throwaway cluster with document tables created."""
    if _should_use_pglite():
        async with _pglite_engine(tmp_path / f"pglite-{name}") as engine:
            await init_document_storage(engine)
            yield engine
        return

    engine = create_document_engine(f"sqlite+aiosqlite:///{tmp_path / f'{name}.db'}")
    try:
        await init_document_storage(engine)
        yield engine
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def engine(tmp_path: Path) -> typ.AsyncIterator[AsyncEngine]:
    """Yield the destination cluster engine for a test."""
    async with open_cluster(tmp_path, "destination") as cluster:
        yield cluster


@pytest_asyncio.fixture
async def source_engine(tmp_path: Path) -> typ.AsyncIterator[AsyncEngine]:
    """Yield a second, independent cluster acting as the replication source."""
    async with open_cluster(tmp_path, "source") as cluster:
        yield cluster


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Return a session factory bound to the destination cluster."""
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
def store(session_factory: async_sessionmaker[AsyncSession]) -> DocumentStore:
    """Return a document store over the destination cluster."""
    return DocumentStore(session_factory)


@pytest.fixture
def source_store(source_engine: AsyncEngine) -> DocumentStore:
    """Return a document store over the source cluster."""
    return DocumentStore(async_sessionmaker(source_engine, expire_on_commit=False))
