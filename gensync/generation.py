"""Generation tokens that tag every row written during a replication run."""

from __future__ import annotations

import typing as typ
import uuid

if typ.TYPE_CHECKING:
    import collections.abc as cabc

Generation = typ.NewType("Generation", str)

GENERATION_FIELD = "generation"


class GenerationClock:
    """Mint one opaque generation per top-level run.

    The clock is owned by the supervisor and passed nowhere else; each run
    receives its generation as an explicit argument.

    Examples
    --------
    >>> clock = GenerationClock(id_factory=lambda: "g-1")
    >>> clock.tick()
    'g-1'

    """

    def __init__(self, *, id_factory: cabc.Callable[[], object] = uuid.uuid4) -> None:
        """Create a clock backed by ``id_factory`` (UUID4 by default)."""
        self._id_factory = id_factory

    def tick(self) -> Generation:
        """Return a fresh generation token."""
        return Generation(str(self._id_factory()))


__all__ = ["GENERATION_FIELD", "Generation", "GenerationClock"]
