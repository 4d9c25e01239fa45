"""Write summaries returned by every document store operation."""

from __future__ import annotations

import dataclasses

from gensync.errors import WriteError


@dataclasses.dataclass(frozen=True, slots=True)
class WriteSummary:
    """Row counts for one write operation.

    ``skipped`` counts single-row operations whose target row did not exist;
    ``errors`` counts records the store refused to write. A clean write has
    both at zero. ``conflicted`` counts rows a guarded update declined
    because they no longer matched what the caller expected; such a write is
    still clean.
    """

    inserted: int = 0
    replaced: int = 0
    unchanged: int = 0
    deleted: int = 0
    skipped: int = 0
    errors: int = 0
    conflicted: int = 0
    first_error: str | None = None

    @property
    def is_clean(self) -> bool:
        """Return True when nothing was skipped and nothing failed."""
        return self.errors == 0 and self.skipped == 0

    @property
    def changed(self) -> int:
        """Return the number of rows whose stored content changed."""
        return self.inserted + self.replaced + self.deleted

    @classmethod
    def refused(cls, reason: str) -> WriteSummary:
        """Return a summary for a single record the store would not write."""
        return cls(errors=1, first_error=reason)

    def __add__(self, other: WriteSummary) -> WriteSummary:
        """Combine two summaries, keeping the earliest error message."""
        return WriteSummary(
            inserted=self.inserted + other.inserted,
            replaced=self.replaced + other.replaced,
            unchanged=self.unchanged + other.unchanged,
            deleted=self.deleted + other.deleted,
            skipped=self.skipped + other.skipped,
            errors=self.errors + other.errors,
            conflicted=self.conflicted + other.conflicted,
            first_error=self.first_error or other.first_error,
        )


def ensure_clean(summary: WriteSummary, *, table: str, operation: str) -> WriteSummary:
    """Return ``summary`` unchanged or raise :class:`WriteError`.

    Raises
    ------
    WriteError
        If the summary reports any error or skipped row.

    """
    if not summary.is_clean:
        raise WriteError(table, operation, summary)
    return summary
