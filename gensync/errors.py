"""Error taxonomy for replication and provisioning runs.

Every error here is fatal for the current run: nothing retries an individual
event. The supervisor restarts the whole pipeline with a fresh generation,
which is safe because every write is idempotent.
"""

from __future__ import annotations

import typing as typ

if typ.TYPE_CHECKING:
    from gensync.store.summary import WriteSummary


class SyncError(Exception):
    """Base class for gensync runtime errors."""


class FeedError(SyncError):
    """Raised when a change feed reports ``type=error``."""

    def __init__(self, table: str, reason: str) -> None:
        """Record the table whose feed failed and the reported reason."""
        self.table = table
        self.reason = reason
        super().__init__(f"Change feed for {table} failed: {reason}")


class WriteError(SyncError):
    """Raised when a write summary reports errors or skipped rows."""

    def __init__(self, table: str, operation: str, summary: WriteSummary) -> None:
        """Attach the offending summary for diagnostics."""
        self.table = table
        self.operation = operation
        self.summary = summary
        detail = f"errors={summary.errors} skipped={summary.skipped}"
        if summary.first_error:
            detail = f"{detail} first_error={summary.first_error!r}"
        super().__init__(f"{operation} on {table} was not clean: {detail}")


class ExternalCallError(SyncError):
    """Raised when an identity or provisioning call fails."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        """Initialise with a message and optional HTTP status code."""
        self.status_code = status_code
        super().__init__(message)


class InvariantViolation(SyncError):  # noqa: N818 - name mirrors the data-model term
    """Raised when stored data breaks an assumption of the data model."""

    @classmethod
    def unknown_status(cls, user_id: str, status: object) -> InvariantViolation:
        """Return an error for a user whose status cannot be classified."""
        return cls(f"User {user_id} has unclassifiable status {status!r}")

    @classmethod
    def auth_mapping_cardinality(cls, user_id: str, count: int) -> InvariantViolation:
        """Return an error for a user without exactly one auth mapping."""
        return cls(
            f"Expected exactly one auth mapping for user {user_id}, found {count}"
        )

    @classmethod
    def missing_login(cls, user_id: str) -> InvariantViolation:
        """Return an error for an apiWait user with no stored login."""
        return cls(f"User {user_id} is waiting on provisioning without githubLogin")

    @classmethod
    def missing_field(cls, table: str, event: str, field: str) -> InvariantViolation:
        """Return an error for an event whose record lacks a required field."""
        return cls(f"{event} event on {table} is missing {field}")

    @classmethod
    def overlapping_run(cls, active: str, requested: str) -> InvariantViolation:
        """Return an error when a second run starts while one is active."""
        return cls(f"Generation {requested} requested while {active} is still active")


class ConfigError(ValueError):
    """Raised when environment configuration is missing or malformed."""

    @classmethod
    def missing(cls, env_var: str) -> ConfigError:
        """Return an error for a required variable that is unset."""
        return cls(f"{env_var} is required")

    @classmethod
    def invalid(cls, env_var: str, raw: str, expected: str) -> ConfigError:
        """Return an error for a variable with an unusable value."""
        return cls(f"{env_var} must be {expected}, got: {raw!r}")


__all__ = [
    "ConfigError",
    "ExternalCallError",
    "FeedError",
    "InvariantViolation",
    "SyncError",
    "WriteError",
]
