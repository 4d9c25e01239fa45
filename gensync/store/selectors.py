"""Row selectors accepted by update and delete operations."""

from __future__ import annotations

import dataclasses
import typing as typ

from gensync.feed.events import RecordId  # noqa: TC001
from gensync.generation import Generation  # noqa: TC001


@dataclasses.dataclass(frozen=True, slots=True)
class ById:
    """Select the single row with ``record_id``."""

    record_id: RecordId


@dataclasses.dataclass(frozen=True, slots=True)
class StaleGeneration:
    """Select every tagged row whose generation differs from ``current``.

    Rows without a generation tag are never selected: they are not owned by
    a table sync job.
    """

    current: Generation


Selector: typ.TypeAlias = ById | StaleGeneration

__all__ = ["ById", "Selector", "StaleGeneration"]
