"""Ingestion orchestration: task supervision, checkpoints and health."""

from __future__ import annotations

from .checkpoint import SyncCheckpoint
from .config import OrchestratorConfig
from .dedupe import deduplicate_events
from .errors import (
    ConnectorUnavailableError,
    CyclePhase,
    IngestionCycleError,
    IntegrationNotActiveError,
)
from .factory import build_orchestrator
from .health import (
    IngestionHealth,
    IntegrationCondition,
    IntegrationHealth,
    OverallStatus,
    TaskState,
    classify_integration,
    overall_status,
    summarize_health,
)
from .observability import (
    ErrorCategory,
    IngestionEventLogger,
    IngestionEventType,
    categorize_error,
)
from .orchestrator import (
    CycleOutcome,
    IngestionOrchestrator,
    ProjectIngestionStartSummary,
)

__all__ = [
    "ConnectorUnavailableError",
    "CycleOutcome",
    "CyclePhase",
    "ErrorCategory",
    "IngestionCycleError",
    "IngestionEventLogger",
    "IngestionEventType",
    "IngestionHealth",
    "IngestionOrchestrator",
    "IntegrationCondition",
    "IntegrationHealth",
    "IntegrationNotActiveError",
    "OrchestratorConfig",
    "OverallStatus",
    "ProjectIngestionStartSummary",
    "SyncCheckpoint",
    "TaskState",
    "build_orchestrator",
    "categorize_error",
    "classify_integration",
    "deduplicate_events",
    "overall_status",
    "summarize_health",
]
