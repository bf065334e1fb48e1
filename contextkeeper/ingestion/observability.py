"""Observability primitives for ingestion orchestration.

Provides structured logging and error categorization for ingestion cycles and
task supervision. All events are emitted as ``[event.type] key=value`` log
messages suitable for parsing by log aggregators.
"""

from __future__ import annotations

import dataclasses
import enum
import typing as typ

from sqlalchemy.exc import (
    IntegrityError,
    InterfaceError,
    OperationalError,
    SQLAlchemyError,
)

from contextkeeper.connectors.errors import (
    ConnectorAlreadyRegisteredError,
    ConnectorError,
    ConnectorNotFoundError,
)
from contextkeeper.knowledge.errors import (
    ExtractorConfigError,
    KnowledgeExtractionError,
    OpenAIConfigError,
)
from contextkeeper.logging import get_logger, log_error, log_info, log_warning
from contextkeeper.processing.errors import ProcessorConfigError
from contextkeeper.storage.errors import StoreError

from .errors import ConnectorUnavailableError, IngestionCycleError

if typ.TYPE_CHECKING:
    import datetime as dt

logger = get_logger(__name__)


class IngestionEventType(enum.StrEnum):
    """Structured log event types for ingestion observability."""

    CYCLE_STARTED = "ingestion.cycle.started"
    CYCLE_COMPLETED = "ingestion.cycle.completed"
    CYCLE_FAILED = "ingestion.cycle.failed"
    TASK_STARTED = "ingestion.task.started"
    TASK_STOPPED = "ingestion.task.stopped"
    TASK_STOP_TIMED_OUT = "ingestion.task.stop_timed_out"
    TASK_FAILED = "ingestion.task.failed"
    INTEGRATION_START_FAILED = "ingestion.integration.start_failed"


class ErrorCategory(enum.StrEnum):
    """Categories for error classification in alerts."""

    TRANSIENT = "transient"
    CLIENT_ERROR = "client_error"
    CONFIGURATION = "configuration"
    DATABASE_CONNECTIVITY = "database_connectivity"
    DATA_INTEGRITY = "data_integrity"
    DATABASE_ERROR = "database_error"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


@dataclasses.dataclass(frozen=True, slots=True)
class CycleContext:
    """Shared context for a single ingestion cycle."""

    integration_id: str
    project_id: str
    platform: str
    started_at: dt.datetime


@dataclasses.dataclass(frozen=True, slots=True)
class CycleStats:
    """Counts reported when a cycle completes."""

    fetched: int
    new_events: int
    processed: int
    entities: int
    relationships: int
    processing_errors: int


_EXCEPTION_CATEGORY_MAP: tuple[tuple[type[BaseException], ErrorCategory], ...] = (
    (TimeoutError, ErrorCategory.TIMEOUT),
    (ConnectorUnavailableError, ErrorCategory.CONFIGURATION),
    (ConnectorNotFoundError, ErrorCategory.CONFIGURATION),
    (ConnectorAlreadyRegisteredError, ErrorCategory.CONFIGURATION),
    (ProcessorConfigError, ErrorCategory.CONFIGURATION),
    (ExtractorConfigError, ErrorCategory.CONFIGURATION),
    (OpenAIConfigError, ErrorCategory.CONFIGURATION),
    (StoreError, ErrorCategory.CLIENT_ERROR),
    (OperationalError, ErrorCategory.DATABASE_CONNECTIVITY),
    (InterfaceError, ErrorCategory.DATABASE_CONNECTIVITY),
    (IntegrityError, ErrorCategory.DATA_INTEGRITY),
    (SQLAlchemyError, ErrorCategory.DATABASE_ERROR),
)


def categorize_error(exc: BaseException) -> ErrorCategory:
    """Categorize an exception for alerting purposes.

    ``IngestionCycleError`` is categorized by its cause. Connector and
    extraction errors are transient when they are retryable and client
    errors otherwise.

    Returns
    -------
    ErrorCategory
        The type of failure for alert routing.

    """
    if isinstance(exc, IngestionCycleError) and exc.__cause__ is not None:
        return categorize_error(exc.__cause__)

    if isinstance(exc, ConnectorError | KnowledgeExtractionError):
        return ErrorCategory.TRANSIENT if exc.retryable else ErrorCategory.CLIENT_ERROR

    for exc_type, category in _EXCEPTION_CATEGORY_MAP:
        if isinstance(exc, exc_type):
            return category

    return ErrorCategory.UNKNOWN


class IngestionEventLogger:
    """Emit structured ingestion events via femtologging.

    Cycles and task transitions are logged at INFO, start failures at
    WARNING and failed cycles or crashed tasks at ERROR.
    """

    def log_cycle_started(self, context: CycleContext) -> None:
        """Log ingestion cycle start."""
        log_info(
            logger,
            "[%s] integration_id=%s project_id=%s platform=%s started_at=%s",
            IngestionEventType.CYCLE_STARTED,
            context.integration_id,
            context.project_id,
            context.platform,
            context.started_at.isoformat(),
        )

    def log_cycle_completed(
        self,
        context: CycleContext,
        stats: CycleStats,
        duration: dt.timedelta,
    ) -> None:
        """Log a successful cycle with its counts."""
        log_info(
            logger,
            "[%s] integration_id=%s platform=%s duration_seconds=%.3f "
            "fetched=%d new_events=%d processed=%d entities=%d "
            "relationships=%d processing_errors=%d",
            IngestionEventType.CYCLE_COMPLETED,
            context.integration_id,
            context.platform,
            duration.total_seconds(),
            stats.fetched,
            stats.new_events,
            stats.processed,
            stats.entities,
            stats.relationships,
            stats.processing_errors,
        )

    def log_cycle_failed(
        self,
        context: CycleContext,
        error: BaseException,
        duration: dt.timedelta,
    ) -> None:
        """Log a failed cycle with error categorization."""
        log_error(
            logger,
            "[%s] integration_id=%s platform=%s duration_seconds=%.3f "
            "error_type=%s error_category=%s error_message=%s",
            IngestionEventType.CYCLE_FAILED,
            context.integration_id,
            context.platform,
            duration.total_seconds(),
            type(error).__name__,
            categorize_error(error),
            str(error),
            exc_info=error,
        )

    def log_task_started(self, integration_id: str, platform: str) -> None:
        """Log that a supervised task was scheduled."""
        log_info(
            logger,
            "[%s] integration_id=%s platform=%s",
            IngestionEventType.TASK_STARTED,
            integration_id,
            platform,
        )

    def log_task_stopped(self, integration_id: str, *, reason: str) -> None:
        """Log that a supervised task exited."""
        log_info(
            logger,
            "[%s] integration_id=%s reason=%s",
            IngestionEventType.TASK_STOPPED,
            integration_id,
            reason,
        )

    def log_task_stop_timed_out(
        self, integration_id: str, timeout: dt.timedelta
    ) -> None:
        """Log a task that was still running when its stop timed out."""
        log_warning(
            logger,
            "[%s] integration_id=%s timeout_s=%.3f",
            IngestionEventType.TASK_STOP_TIMED_OUT,
            integration_id,
            timeout.total_seconds(),
        )

    def log_task_failed(self, integration_id: str, error: BaseException) -> None:
        """Log a supervised task that ended with an unexpected exception."""
        log_error(
            logger,
            "[%s] integration_id=%s error_type=%s error_category=%s "
            "error_message=%s",
            IngestionEventType.TASK_FAILED,
            integration_id,
            type(error).__name__,
            categorize_error(error),
            str(error),
            exc_info=error,
        )

    def log_integration_start_failed(
        self, integration_id: str, error: BaseException
    ) -> None:
        """Log an integration that could not be started."""
        log_warning(
            logger,
            "[%s] integration_id=%s error_type=%s error_category=%s "
            "error_message=%s",
            IngestionEventType.INTEGRATION_START_FAILED,
            integration_id,
            type(error).__name__,
            categorize_error(error),
            str(error),
        )
