"""Derived ingestion health for a project's integrations.

Health is never stored: it is recomputed from integration rows, data source
rows and the orchestrator's live task states whenever it is requested.
"""

from __future__ import annotations

import dataclasses
import enum
import typing as typ

from contextkeeper.storage.records import IntegrationStatus

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    import datetime as dt

    from contextkeeper.storage.models import DataSourceInfo, IntegrationInfo

_FAILED_SYNC_STATUSES = frozenset({"error", "failed"})
_INGESTING_STATUSES = frozenset({IntegrationStatus.ACTIVE, IntegrationStatus.ERROR})


class TaskState(enum.StrEnum):
    """Lifecycle of a supervised per-integration ingestion task."""

    INACTIVE = "inactive"
    STARTING = "starting"
    RUNNING = "running"
    IDLE = "idle"
    ERROR = "error"
    STOPPED = "stopped"


class IntegrationCondition(enum.StrEnum):
    """Health of a single integration."""

    HEALTHY = "healthy"
    FAILED = "failed"
    INACTIVE = "inactive"
    PENDING = "pending"


class OverallStatus(enum.StrEnum):
    """Project-level ingestion health."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    DOWN = "down"


@dataclasses.dataclass(frozen=True, slots=True)
class IntegrationHealth:
    """Health detail for one integration."""

    integration_id: str
    platform: str
    status: IntegrationCondition
    task_state: TaskState
    last_sync_at: dt.datetime | None
    last_sync_status: str | None
    error_message: str | None
    next_sync_at: dt.datetime | None
    data_source_count: int
    active_data_sources: int


@dataclasses.dataclass(frozen=True, slots=True)
class IngestionHealth:
    """Aggregate ingestion health for a project."""

    project_id: str
    overall_status: OverallStatus
    active_integrations: int
    healthy_integrations: int
    failed_integrations: int
    last_sync_at: dt.datetime | None
    integrations: tuple[IntegrationHealth, ...]


def is_failed(integration: IntegrationInfo) -> bool:
    """Return whether the integration's stored state reports a failure."""
    return integration.status is IntegrationStatus.ERROR or (
        integration.last_sync_status or ""
    ).lower() in _FAILED_SYNC_STATUSES


def classify_integration(integration: IntegrationInfo) -> IntegrationCondition:
    """Derive an integration's condition from its stored status fields."""
    if is_failed(integration):
        return IntegrationCondition.FAILED
    match integration.status:
        case IntegrationStatus.INACTIVE:
            return IntegrationCondition.INACTIVE
        case IntegrationStatus.PENDING:
            return IntegrationCondition.PENDING
        case _:
            return IntegrationCondition.HEALTHY


def overall_status(*, total: int, failed: int) -> OverallStatus:
    """Combine integration counts into a project-level status.

    No failures (including no integrations at all) is healthy; every
    integration failed is down; anything else is degraded. Inactive and
    pending integrations count towards ``total`` but never as failed.

    Examples
    --------
    >>> overall_status(total=2, failed=1)
    <OverallStatus.DEGRADED: 'degraded'>

    """
    if failed == 0:
        return OverallStatus.HEALTHY
    if failed >= total:
        return OverallStatus.DOWN
    return OverallStatus.DEGRADED


def summarize_health(
    project_id: str,
    integrations: cabc.Sequence[IntegrationInfo],
    data_sources: cabc.Sequence[DataSourceInfo],
    task_states: cabc.Mapping[str, TaskState],
    *,
    default_interval: dt.timedelta,
) -> IngestionHealth:
    """Build the health summary for one project.

    An integration counts as active while it is configured to ingest (status
    ``active`` or ``error``) and as failed when its status is ``error`` or its
    last sync reported a failure.
    """
    sources_by_integration: dict[str, list[DataSourceInfo]] = {}
    for source in data_sources:
        sources_by_integration.setdefault(source.integration_id, []).append(source)

    details: list[IntegrationHealth] = []
    active = healthy = failed = 0
    latest_sync: dt.datetime | None = None
    for integration in integrations:
        condition = classify_integration(integration)
        if integration.status in _INGESTING_STATUSES:
            active += 1
        if condition is IntegrationCondition.FAILED:
            failed += 1
        elif condition is IntegrationCondition.HEALTHY:
            healthy += 1
        if integration.last_sync_at is not None and (
            latest_sync is None or integration.last_sync_at > latest_sync
        ):
            latest_sync = integration.last_sync_at

        task_state = task_states.get(integration.id, TaskState.INACTIVE)
        interval = integration.sync_interval or default_interval
        scheduled = task_state in {TaskState.RUNNING, TaskState.IDLE}
        sources = sources_by_integration.get(integration.id, [])
        details.append(
            IntegrationHealth(
                integration_id=integration.id,
                platform=integration.platform,
                status=condition,
                task_state=task_state,
                last_sync_at=integration.last_sync_at,
                last_sync_status=integration.last_sync_status,
                error_message=integration.error_message,
                next_sync_at=(
                    integration.last_sync_at + interval
                    if scheduled and integration.last_sync_at is not None
                    else None
                ),
                data_source_count=len(sources),
                active_data_sources=sum(1 for s in sources if s.is_selected),
            )
        )

    return IngestionHealth(
        project_id=project_id,
        overall_status=overall_status(total=len(integrations), failed=failed),
        active_integrations=active,
        healthy_integrations=healthy,
        failed_integrations=failed,
        last_sync_at=latest_sync,
        integrations=tuple(details),
    )
