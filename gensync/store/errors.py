"""Errors raised by the document store itself."""

from __future__ import annotations


class UnknownTableError(ValueError):
    """Raised when an operation names a table that is not a document table."""

    def __init__(self, table: str) -> None:
        """Record the unknown table name."""
        self.table = table
        super().__init__(f"Unknown document table: {table}")


class NaiveDatetimeError(ValueError):
    """Raised when a timestamp column receives a naive datetime."""

    def __init__(self) -> None:
        """Attach a fixed message."""
        super().__init__("timestamps must be timezone aware")
