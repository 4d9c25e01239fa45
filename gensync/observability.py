"""Structured lifecycle events for replication runs.

Events are single femtologging lines of the form
``[event.type] key=value key=value`` so log aggregators can parse them
without a JSON formatter. Failures carry an :class:`ErrorCategory` for alert
routing.

Usage
-----
>>> events = SyncEventLogger()
>>> events.log_feed_ready(job="projects", generation="g-1", applied=3)

"""

from __future__ import annotations

import enum
import typing as typ

from sqlalchemy.exc import InterfaceError, OperationalError, SQLAlchemyError

from gensync.errors import (
    ConfigError,
    ExternalCallError,
    FeedError,
    InvariantViolation,
    WriteError,
)
from gensync.logging import get_logger, log_error, log_info, log_warning

if typ.TYPE_CHECKING:
    from gensync.store.summary import WriteSummary

logger = get_logger(__name__)

_HTTP_SERVER_ERROR_THRESHOLD = 500


class SyncEventType(enum.StrEnum):
    """Structured log event identifiers."""

    RUN_STARTED = "sync.run.started"
    RUN_FAILED = "sync.run.failed"
    FEED_READY = "sync.feed.ready"
    SWEEP_COMPLETED = "sync.sweep.completed"
    JOB_COMPLETED = "sync.job.completed"
    USER_TRANSITION = "provisioning.user.transition"
    USER_STALE = "provisioning.user.stale"
    RESTART_SCHEDULED = "supervisor.restart.scheduled"
    SUPERVISOR_EXIT = "supervisor.exit"


class ErrorCategory(enum.StrEnum):
    """Categories for failure classification in alerts."""

    FEED = "feed"
    WRITE = "write"
    EXTERNAL_TRANSIENT = "external_transient"
    EXTERNAL_CLIENT = "external_client"
    INVARIANT = "invariant"
    CONFIGURATION = "configuration"
    DATABASE_CONNECTIVITY = "database_connectivity"
    DATABASE_ERROR = "database_error"
    UNKNOWN = "unknown"


_EXCEPTION_CATEGORY_MAP: tuple[tuple[type[BaseException], ErrorCategory], ...] = (
    (FeedError, ErrorCategory.FEED),
    (WriteError, ErrorCategory.WRITE),
    (InvariantViolation, ErrorCategory.INVARIANT),
    (ConfigError, ErrorCategory.CONFIGURATION),
    (OperationalError, ErrorCategory.DATABASE_CONNECTIVITY),
    (InterfaceError, ErrorCategory.DATABASE_CONNECTIVITY),
    (SQLAlchemyError, ErrorCategory.DATABASE_ERROR),
)


def root_causes(exc: BaseException) -> list[BaseException]:
    """Flatten exception groups raised by task groups into their leaves."""
    if isinstance(exc, BaseExceptionGroup):
        leaves: list[BaseException] = []
        for inner in exc.exceptions:
            leaves.extend(root_causes(inner))
        return leaves
    return [exc]


def categorize_error(exc: BaseException) -> ErrorCategory:
    """Categorize an exception, looking through exception groups.

    External call failures with a 5xx status (or no status at all, as for
    network errors) are transient; other external failures are client
    errors.
    """
    leaf = root_causes(exc)[0]
    if isinstance(leaf, ExternalCallError):
        if leaf.status_code is None or leaf.status_code >= _HTTP_SERVER_ERROR_THRESHOLD:
            return ErrorCategory.EXTERNAL_TRANSIENT
        return ErrorCategory.EXTERNAL_CLIENT

    for exc_type, category in _EXCEPTION_CATEGORY_MAP:
        if isinstance(leaf, exc_type):
            return category
    return ErrorCategory.UNKNOWN


class SyncEventLogger:
    """Emit structured replication, provisioning and supervisor events."""

    def log_run_started(self, *, generation: str, jobs: typ.Sequence[str]) -> None:
        """Log the start of a pipeline run."""
        log_info(
            logger,
            "[%s] generation=%s jobs=%s",
            SyncEventType.RUN_STARTED,
            generation,
            ",".join(jobs),
        )

    def log_run_failed(
        self, *, generation: str, error: BaseException, uptime_s: float
    ) -> None:
        """Log a failed run with its category and traceback."""
        leaf = root_causes(error)[0]
        log_error(
            logger,
            "[%s] generation=%s uptime_seconds=%.3f error_type=%s "
            "error_category=%s error_message=%s",
            SyncEventType.RUN_FAILED,
            generation,
            uptime_s,
            type(leaf).__name__,
            categorize_error(error),
            str(leaf),
            exc_info=leaf,
        )

    def log_feed_ready(self, *, job: str, generation: str, applied: int) -> None:
        """Log that a job's initial backfill has been applied."""
        log_info(
            logger,
            "[%s] job=%s generation=%s applied=%d",
            SyncEventType.FEED_READY,
            job,
            generation,
            applied,
        )

    def log_sweep_completed(
        self, *, job: str, generation: str, summary: WriteSummary
    ) -> None:
        """Log the outcome of a stale-generation sweep."""
        log_info(
            logger,
            "[%s] job=%s generation=%s deleted=%d replaced=%d unchanged=%d",
            SyncEventType.SWEEP_COMPLETED,
            job,
            generation,
            summary.deleted,
            summary.replaced,
            summary.unchanged,
        )

    def log_job_completed(
        self, *, job: str, generation: str, applied: int, removed: int
    ) -> None:
        """Log a job whose feed ended."""
        log_warning(
            logger,
            "[%s] job=%s generation=%s applied=%d removed=%d",
            SyncEventType.JOB_COMPLETED,
            job,
            generation,
            applied,
            removed,
        )

    def log_user_transition(
        self, *, user_id: str, from_status: str, to_status: str, generation: str
    ) -> None:
        """Log a provisioning state transition."""
        log_info(
            logger,
            "[%s] user_id=%s from=%s to=%s generation=%s",
            SyncEventType.USER_TRANSITION,
            user_id,
            from_status,
            to_status,
            generation,
        )

    def log_user_stale(
        self, *, user_id: str, expected: str, found: str, generation: str
    ) -> None:
        """Log an event skipped because the stored user moved on."""
        log_info(
            logger,
            "[%s] user_id=%s expected=%s found=%s generation=%s",
            SyncEventType.USER_STALE,
            user_id,
            expected,
            found,
            generation,
        )

    def log_restart_scheduled(self, *, delay_s: float) -> None:
        """Log that the supervisor will restart the pipeline."""
        log_warning(
            logger,
            "[%s] delay_seconds=%.1f",
            SyncEventType.RESTART_SCHEDULED,
            delay_s,
        )

    def log_supervisor_exit(self, *, exit_code: int, uptime_s: float) -> None:
        """Log the supervisor giving up or finishing."""
        emit = log_error if exit_code else log_info
        emit(
            logger,
            "[%s] exit_code=%d uptime_seconds=%.3f",
            SyncEventType.SUPERVISOR_EXIT,
            exit_code,
            uptime_s,
        )
