"""Environment configuration for the sync service.

Usage
-----
Load both cluster connections and the runtime knobs:

>>> import os
>>> os.environ["GENSYNC_SOURCE_URL"] = "sqlite+aiosqlite:///source.db"
>>> os.environ["GENSYNC_DESTINATION_URL"] = "sqlite+aiosqlite:///dest.db"
>>> config = SyncConfig.from_env()
>>> config.min_uptime_s
300.0

"""

from __future__ import annotations

import dataclasses as dc
import enum
import os

from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import ArgumentError

from gensync.errors import ConfigError

_DEFAULT_DRIVER = "postgresql+asyncpg"
_DEFAULT_PORT = 5432
_MAX_PORT = 65535


class ClusterRole(enum.StrEnum):
    """Which side of the replication a cluster is on."""

    SOURCE = "source"
    DESTINATION = "destination"


def _env(name: str) -> str:
    return os.environ.get(name, "").strip()


def _parse_positive_float(env_var: str, default: float) -> float:
    """Read a positive number env var, falling back to a default."""
    raw = _env(env_var)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigError.invalid(env_var, raw, "a number") from exc
    if value <= 0:
        raise ConfigError.invalid(env_var, raw, "positive")
    return value


def _parse_port(env_var: str) -> int:
    raw = _env(env_var)
    if not raw:
        return _DEFAULT_PORT
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigError.invalid(env_var, raw, "an integer") from exc
    if not 0 < value <= _MAX_PORT:
        raise ConfigError.invalid(env_var, raw, f"between 1 and {_MAX_PORT}")
    return value


@dc.dataclass(frozen=True, slots=True)
class ClusterConfig:
    """Connection settings for one database cluster.

    Attributes
    ----------
    role
        Whether this is the source or the destination cluster.
    url
        SQLAlchemy URL passed to ``create_async_engine``.

    """

    role: ClusterRole
    url: URL

    @classmethod
    def from_env(cls, role: ClusterRole) -> ClusterConfig:
        """Create configuration for ``role`` from environment variables.

        ``GENSYNC_<ROLE>_URL`` wins when set. Otherwise the URL is assembled
        for ``postgresql+asyncpg`` from ``GENSYNC_<ROLE>_HOST``, ``_PORT``,
        ``_DATABASE``, ``_USER`` and ``_PASSWORD``.

        Raises
        ------
        ConfigError
            If the URL or the port cannot be parsed.

        """
        prefix = f"GENSYNC_{role.value.upper()}"
        raw_url = _env(f"{prefix}_URL")
        if raw_url:
            try:
                return cls(role=role, url=make_url(raw_url))
            except ArgumentError as exc:
                raise ConfigError.invalid(
                    f"{prefix}_URL", raw_url, "a SQLAlchemy URL"
                ) from exc

        url = URL.create(
            _DEFAULT_DRIVER,
            username=_env(f"{prefix}_USER") or "gensync",
            password=_env(f"{prefix}_PASSWORD") or None,
            host=_env(f"{prefix}_HOST") or "localhost",
            port=_parse_port(f"{prefix}_PORT"),
            database=_env(f"{prefix}_DATABASE") or role.value,
        )
        return cls(role=role, url=url)


@dc.dataclass(frozen=True, slots=True)
class SyncConfig:
    """Runtime configuration for the sync service.

    Attributes
    ----------
    source
        Cluster the tables are read from.
    destination
        Cluster the tables are mirrored into and users are provisioned from.
    feed_poll_interval_s
        Delay between change-log polls when a feed has nothing pending.
    restart_delay_s
        Delay before restarting a failed run.
    min_uptime_s
        A failure sooner than this after process start exits the process.

    """

    source: ClusterConfig
    destination: ClusterConfig
    feed_poll_interval_s: float = 1.0
    restart_delay_s: float = 5.0
    min_uptime_s: float = 300.0

    @classmethod
    def from_env(cls) -> SyncConfig:
        """Create configuration from ``GENSYNC_*`` environment variables.

        Raises
        ------
        ConfigError
            If any variable is malformed.

        """
        return cls(
            source=ClusterConfig.from_env(ClusterRole.SOURCE),
            destination=ClusterConfig.from_env(ClusterRole.DESTINATION),
            feed_poll_interval_s=_parse_positive_float(
                "GENSYNC_FEED_POLL_INTERVAL_S", 1.0
            ),
            restart_delay_s=_parse_positive_float("GENSYNC_RESTART_DELAY_S", 5.0),
            min_uptime_s=_parse_positive_float("GENSYNC_MIN_UPTIME_S", 300.0),
        )


__all__ = ["ClusterConfig", "ClusterRole", "SyncConfig"]
