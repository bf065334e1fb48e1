"""Structured observability events for context processing runs."""

from __future__ import annotations

import enum
import typing as typ

from contextkeeper.logging import get_logger, log_error, log_info, log_warning

if typ.TYPE_CHECKING:
    import datetime as dt

    from contextkeeper.knowledge.models import ProcessingResult

logger = get_logger(__name__)


class ProcessingEventType(enum.StrEnum):
    """Structured log event types for context processing."""

    RUN_COMPLETED = "processing.run.completed"
    CAPABILITY_RETRY = "processing.capability.retry"
    CAPABILITY_FAILED = "processing.capability.failed"


class ProcessingEventLogger:
    """Emit structured processing events via femtologging.

    Runs are logged at INFO, retries at WARNING and exhausted capabilities at
    ERROR.
    """

    def log_run_completed(
        self,
        result: ProcessingResult,
        *,
        batches: int,
        duration: dt.timedelta,
    ) -> None:
        """Log a finished ``process_events`` call with entity counts."""
        log_info(
            logger,
            "[%s] processed_events=%d batches=%d duration_seconds=%.3f "
            "decisions=%d discussions=%d features=%d files=%d "
            "relationships=%d errors=%d",
            ProcessingEventType.RUN_COMPLETED,
            result.processed_events,
            batches,
            duration.total_seconds(),
            len(result.decisions),
            len(result.discussion_summaries),
            len(result.feature_contexts),
            len(result.file_contexts),
            len(result.relationships),
            len(result.errors),
        )

    def log_capability_retry(
        self,
        *,
        capability: str,
        attempt: int,
        max_attempts: int,
        error: BaseException,
    ) -> None:
        """Log a failed attempt that will be retried."""
        log_warning(
            logger,
            "[%s] capability=%s attempt=%d max_attempts=%d "
            "error_type=%s error_message=%s",
            ProcessingEventType.CAPABILITY_RETRY,
            capability,
            attempt,
            max_attempts,
            type(error).__name__,
            str(error),
        )

    def log_capability_failed(
        self,
        *,
        capability: str,
        attempts: int,
        event_count: int,
        error: BaseException,
    ) -> None:
        """Log a capability whose attempts are exhausted."""
        log_error(
            logger,
            "[%s] capability=%s attempts=%d affected_events=%d "
            "error_type=%s error_message=%s",
            ProcessingEventType.CAPABILITY_FAILED,
            capability,
            attempts,
            event_count,
            type(error).__name__,
            str(error),
            exc_info=error,
        )
