"""One generation of the sync service: every table job plus provisioning.

A pipeline runs each :data:`~gensync.replication.jobs.SYNC_JOBS` entry and
the user provisioning machine concurrently inside one task group. The first
failure cancels every other task and propagates, so a generation either runs
as a whole or not at all.
"""

from __future__ import annotations

import asyncio
import contextlib
import dataclasses
import typing as typ

from sqlalchemy.ext.asyncio import async_sessionmaker

from gensync.gateway import GatewayClient, GatewayConfig
from gensync.identity import GitHubIdentityClient, GitHubIdentityConfig
from gensync.observability import SyncEventLogger
from gensync.provisioning import UserProvisioner
from gensync.provisioning.models import USERS_TABLE
from gensync.replication import SYNC_JOBS, Replicator
from gensync.store import (
    DocumentStore,
    SqlChangeFeed,
    create_document_engine,
    init_document_storage,
)

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from gensync.config import SyncConfig
    from gensync.feed.protocol import ChangeFeedSource
    from gensync.gateway import ProvisioningGateway
    from gensync.generation import Generation
    from gensync.identity import IdentityAdapter
    from gensync.provisioning import ProvisioningResult
    from gensync.replication import ReplicationResult, TableSyncJob

PROVISIONING_TASK = "provisioning"


@dataclasses.dataclass(frozen=True, slots=True)
class PipelineResult:
    """Results of a generation whose feeds all ended."""

    generation: str
    replications: dict[str, ReplicationResult]
    provisioning: ProvisioningResult


class Pipeline:
    """Run the table sync jobs and the provisioning machine for a generation."""

    def __init__(  # noqa: PLR0913
        self,
        source_feed: ChangeFeedSource,
        destination_feed: ChangeFeedSource,
        destination_store: DocumentStore,
        identity: IdentityAdapter,
        gateway: ProvisioningGateway,
        *,
        jobs: typ.Sequence[TableSyncJob] = SYNC_JOBS,
        event_logger: SyncEventLogger | None = None,
    ) -> None:
        """Wire the feeds, the destination store and the external services."""
        self._source_feed = source_feed
        self._destination_feed = destination_feed
        self._store = destination_store
        self._identity = identity
        self._gateway = gateway
        self._jobs = tuple(jobs)
        self._event_logger = event_logger or SyncEventLogger()

    async def run(self, generation: Generation) -> PipelineResult:
        """Run every job under ``generation`` until all feeds end.

        Raises
        ------
        ExceptionGroup
            Wrapping the first failure of any job; the other jobs are
            cancelled.

        """
        self._event_logger.log_run_started(
            generation=generation,
            jobs=[*(job.name for job in self._jobs), PROVISIONING_TASK],
        )
        replicator = Replicator(self._store, event_logger=self._event_logger)
        provisioner = UserProvisioner(
            self._store,
            self._identity,
            self._gateway,
            event_logger=self._event_logger,
        )

        async with asyncio.TaskGroup() as group:
            replication_tasks = {
                job.name: group.create_task(
                    replicator.run(
                        generation,
                        self._source_feed.subscribe(job.source_table),
                        job.destination_table,
                        job.apply_op,
                        job.remove_op,
                        job_name=job.name,
                    ),
                    name=f"sync-{job.name}",
                )
                for job in self._jobs
            }
            provisioning_task = group.create_task(
                provisioner.run(
                    generation, self._destination_feed.subscribe(USERS_TABLE)
                ),
                name=PROVISIONING_TASK,
            )

        return PipelineResult(
            generation=generation,
            replications={
                name: task.result() for name, task in replication_tasks.items()
            },
            provisioning=provisioning_task.result(),
        )


@contextlib.asynccontextmanager
async def open_pipeline(
    config: SyncConfig,
    *,
    identity: IdentityAdapter | None = None,
    gateway: ProvisioningGateway | None = None,
    event_logger: SyncEventLogger | None = None,
) -> cabc.AsyncIterator[Pipeline]:
    """Connect to both clusters and yield a ready :class:`Pipeline`.

    Identity and gateway clients are built from the environment unless
    supplied. Everything opened here is closed on exit.
    """
    async with contextlib.AsyncExitStack() as stack:
        source_engine = create_document_engine(config.source.url)
        stack.push_async_callback(source_engine.dispose)
        destination_engine = create_document_engine(config.destination.url)
        stack.push_async_callback(destination_engine.dispose)

        await init_document_storage(source_engine)
        await init_document_storage(destination_engine)

        if identity is None:
            github = GitHubIdentityClient(GitHubIdentityConfig.from_env())
            stack.push_async_callback(github.aclose)
            identity = github
        if gateway is None:
            gateway_client = GatewayClient(GatewayConfig.from_env())
            stack.push_async_callback(gateway_client.aclose)
            gateway = gateway_client

        poll_interval = config.feed_poll_interval_s
        yield Pipeline(
            SqlChangeFeed(source_engine, poll_interval=poll_interval),
            SqlChangeFeed(destination_engine, poll_interval=poll_interval),
            DocumentStore(
                async_sessionmaker(destination_engine, expire_on_commit=False)
            ),
            identity,
            gateway,
            event_logger=event_logger,
        )


def pipeline_runner(
    config: SyncConfig,
    **pipeline_kwargs: typ.Any,  # noqa: ANN401
) -> cabc.Callable[[Generation], cabc.Awaitable[PipelineResult]]:
    """Return a callable that opens a fresh pipeline for each generation."""

    async def run_generation(generation: Generation) -> PipelineResult:
        async with open_pipeline(config, **pipeline_kwargs) as pipeline:
            return await pipeline.run(generation)

    return run_generation


__all__ = ["Pipeline", "PipelineResult", "open_pipeline", "pipeline_runner"]
