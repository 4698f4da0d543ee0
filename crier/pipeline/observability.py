"""Observability primitives for notification cycles.

Provides structured logging and error categorization for cycle throughput,
per-issue failures, and checkpoint trouble. Every event is a single
``[event.type] key=value ...`` line suitable for log aggregators.
"""

from __future__ import annotations

import dataclasses
import enum
import typing as typ

from crier.errors import (
    CheckpointStoreError,
    ConfigurationError,
    MalformedDataError,
    TransportError,
)
from crier.logging import get_logger, log_error, log_info, log_warning

if typ.TYPE_CHECKING:
    import datetime as dt

    from crier.tracker.models import ChangeEvent

    from .dispatcher import CycleSummary, IssueOutcome

logger = get_logger(__name__)

# HTTP status code threshold for server errors (5xx)
_HTTP_SERVER_ERROR_THRESHOLD = 500


class DispatchEventType(enum.StrEnum):
    """Structured log event types for notification cycles."""

    CYCLE_STARTED = "notify.cycle.started"
    CYCLE_COMPLETED = "notify.cycle.completed"
    CYCLE_ABORTED = "notify.cycle.aborted"
    ISSUE_PROCESSED = "notify.issue.processed"
    ISSUE_FAILED = "notify.issue.failed"
    CHECKPOINT_READ_FAILED = "notify.checkpoint.read_failed"
    CHECKPOINT_WRITE_FAILED = "notify.checkpoint.write_failed"
    PENDING_DROPPED = "notify.pending.dropped"


class ErrorCategory(enum.StrEnum):
    """Categories for error classification in alerts."""

    TRANSIENT = "transient"
    CLIENT_ERROR = "client_error"
    MALFORMED_DATA = "malformed_data"
    CHECKPOINT_STORE = "checkpoint_store"
    CONFIGURATION = "configuration"
    UNKNOWN = "unknown"


@dataclasses.dataclass(frozen=True, slots=True)
class CycleContext:
    """Shared context for a single notification cycle."""

    started_at: dt.datetime
    feed_position: dt.datetime | None = None


_EXCEPTION_CATEGORY_MAP: tuple[tuple[type[BaseException], ErrorCategory], ...] = (
    (MalformedDataError, ErrorCategory.MALFORMED_DATA),
    (CheckpointStoreError, ErrorCategory.CHECKPOINT_STORE),
    (ConfigurationError, ErrorCategory.CONFIGURATION),
)


def categorize_error(exc: BaseException) -> ErrorCategory:
    """Categorize an exception for alerting purposes.

    Returns:
        ErrorCategory indicating the type of failure for alert routing.

    """
    # Timeouts and connection failures carry no status code and are transient.
    if isinstance(exc, TransportError):
        if (
            exc.status_code is None
            or exc.status_code >= _HTTP_SERVER_ERROR_THRESHOLD
        ):
            return ErrorCategory.TRANSIENT
        return ErrorCategory.CLIENT_ERROR

    for exc_type, category in _EXCEPTION_CATEGORY_MAP:
        if isinstance(exc, exc_type):
            return category

    return ErrorCategory.UNKNOWN


def _iso(value: dt.datetime | None) -> str | None:
    return None if value is None else value.isoformat()


class DispatchEventLogger:
    """Emit structured dispatcher events through femtologging.

    Successful work is logged at INFO, skipped or dropped work at WARNING,
    and failures at ERROR with the exception attached.
    """

    def log_cycle_started(self, context: CycleContext) -> None:
        """Log cycle start with the feed position it resumes from."""
        log_info(
            logger,
            "[%s] started_at=%s feed_position=%s",
            DispatchEventType.CYCLE_STARTED,
            context.started_at.isoformat(),
            _iso(context.feed_position),
        )

    def log_cycle_completed(
        self,
        context: CycleContext,
        summary: CycleSummary,
        duration: dt.timedelta,
    ) -> None:
        """Log cycle completion with per-state counts."""
        log_info(
            logger,
            "[%s] duration_seconds=%.3f events_processed=%d notified=%d "
            "created=%d unchanged=%d failed=%d messages_posted=%d "
            "messages_failed=%d feed_position=%s",
            DispatchEventType.CYCLE_COMPLETED,
            duration.total_seconds(),
            summary.processed,
            summary.notified,
            summary.created,
            summary.unchanged,
            summary.failed,
            summary.messages_posted,
            summary.messages_failed,
            _iso(summary.feed_position),
        )

    def log_cycle_aborted(
        self, context: CycleContext, stage: str, error: BaseException
    ) -> None:
        """Log a cycle that stopped before processing any event."""
        log_error(
            logger,
            "[%s] started_at=%s stage=%s error_type=%s error_category=%s "
            "error_message=%s",
            DispatchEventType.CYCLE_ABORTED,
            context.started_at.isoformat(),
            stage,
            type(error).__name__,
            categorize_error(error),
            str(error),
            exc_info=error,
        )

    def log_issue_processed(self, outcome: IssueOutcome) -> None:
        """Log the terminal state reached by one issue."""
        log_info(
            logger,
            "[%s] issue=%s state=%s published=%s since=%s edits=%d "
            "messages_posted=%d messages_failed=%d checkpoint=%s",
            DispatchEventType.ISSUE_PROCESSED,
            outcome.event.issue.key,
            outcome.state,
            outcome.event.published.isoformat(),
            _iso(outcome.since),
            outcome.edits,
            outcome.messages_posted,
            outcome.messages_failed,
            _iso(outcome.checkpoint),
        )

    def log_issue_failed(
        self, event: ChangeEvent, stage: str, error: BaseException
    ) -> None:
        """Log a contained per-issue failure."""
        log_error(
            logger,
            "[%s] issue=%s stage=%s error_type=%s error_category=%s "
            "error_message=%s",
            DispatchEventType.ISSUE_FAILED,
            event.issue.key,
            stage,
            type(error).__name__,
            categorize_error(error),
            str(error),
            exc_info=error,
        )

    def log_checkpoint_read_failed(self, key: str, error: BaseException) -> None:
        """Log a checkpoint read replaced by an in-memory fallback."""
        log_warning(
            logger,
            "[%s] checkpoint=%s error_type=%s error_message=%s",
            DispatchEventType.CHECKPOINT_READ_FAILED,
            key,
            type(error).__name__,
            str(error),
        )

    def log_checkpoint_write_failed(self, key: str, error: BaseException) -> None:
        """Log a checkpoint write that did not persist."""
        log_error(
            logger,
            "[%s] checkpoint=%s error_type=%s error_message=%s",
            DispatchEventType.CHECKPOINT_WRITE_FAILED,
            key,
            type(error).__name__,
            str(error),
            exc_info=error,
        )

    def log_pending_dropped(self, event: ChangeEvent, attempts: int) -> None:
        """Log an issue removed from the retry queue after repeated failures."""
        log_warning(
            logger,
            "[%s] issue=%s published=%s attempts=%d",
            DispatchEventType.PENDING_DROPPED,
            event.issue.key,
            event.published.isoformat(),
            attempts,
        )
