"""gensync runtime entrypoint.

Reads configuration from the environment, configures logging, and runs the
supervisor until it returns an exit code:

- ``GENSYNC_LOG_LEVEL``: Log level (default ``INFO``)
- ``GENSYNC_SOURCE_*`` / ``GENSYNC_DESTINATION_*``: cluster connections
- ``GENSYNC_GITHUB_TOKEN``: GitHub API token
- ``GENSYNC_GATEWAY_URL`` / ``GENSYNC_GATEWAY_SECRET``: provisioning gateway
- ``GENSYNC_FEED_POLL_INTERVAL_S``, ``GENSYNC_RESTART_DELAY_S``,
  ``GENSYNC_MIN_UPTIME_S``: timing knobs

Run the service directly with ``python -m gensync.runtime`` or the
``gensync`` console script.
"""

from __future__ import annotations

import asyncio
import os

from gensync.config import SyncConfig
from gensync.errors import ConfigError
from gensync.gateway import GatewayClient, GatewayConfig
from gensync.identity import GitHubIdentityClient, GitHubIdentityConfig
from gensync.logging import (
    configure_logging,
    get_logger,
    log_error,
    log_info,
    log_warning,
)
from gensync.pipeline import pipeline_runner
from gensync.supervisor import Supervisor

__all__ = ["main", "serve"]

logger = get_logger(__name__)


async def serve(
    config: SyncConfig,
    identity_config: GitHubIdentityConfig,
    gateway_config: GatewayConfig,
) -> int:
    """Run the supervisor with process-lifetime HTTP clients."""
    identity = GitHubIdentityClient(identity_config)
    gateway = GatewayClient(gateway_config)
    try:
        supervisor = Supervisor(
            pipeline_runner(config, identity=identity, gateway=gateway),
            restart_delay=config.restart_delay_s,
            min_uptime=config.min_uptime_s,
        )
        return await supervisor.serve()
    finally:
        await gateway.aclose()
        await identity.aclose()


def main() -> None:
    """Start the sync service and exit with the supervisor's exit code."""
    log_level_str = os.environ.get("GENSYNC_LOG_LEVEL", "INFO")
    normalized_level, invalid_level = configure_logging(log_level_str)
    if invalid_level:
        log_warning(
            logger,
            "Invalid GENSYNC_LOG_LEVEL %r, falling back to %s",
            log_level_str,
            normalized_level,
        )

    try:
        config = SyncConfig.from_env()
        identity_config = GitHubIdentityConfig.from_env()
        gateway_config = GatewayConfig.from_env()
    except ConfigError as exc:
        # Configuration errors need no traceback.
        log_error(logger, "Invalid configuration: %s", exc)
        raise SystemExit(1) from exc

    log_info(
        logger,
        "Starting gensync (source=%s destination=%s log_level=%s)",
        config.source.url.render_as_string(hide_password=True),
        config.destination.url.render_as_string(hide_password=True),
        normalized_level,
    )
    raise SystemExit(asyncio.run(serve(config, identity_config, gateway_config)))


if __name__ == "__main__":
    main()
