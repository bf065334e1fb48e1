"""Unit tests for derived ingestion health."""

from __future__ import annotations

import dataclasses
import datetime as dt

import pytest

from contextkeeper.ingestion import (
    IntegrationCondition,
    OverallStatus,
    TaskState,
    classify_integration,
    overall_status,
    summarize_health,
)
from contextkeeper.storage import DataSourceInfo, IntegrationInfo, IntegrationStatus

_T0 = dt.datetime(2024, 7, 1, 12, 0, tzinfo=dt.UTC)
_INTERVAL = dt.timedelta(minutes=5)


def _integration(
    integration_id: str,
    *,
    status: IntegrationStatus = IntegrationStatus.ACTIVE,
    last_sync_at: dt.datetime | None = None,
    last_sync_status: str | None = None,
    sync_interval: dt.timedelta | None = None,
) -> IntegrationInfo:
    return IntegrationInfo(
        id=integration_id,
        project_id="project-1",
        platform=f"platform-{integration_id}",
        status=status,
        sync_checkpoint={},
        configuration={},
        last_sync_at=last_sync_at,
        last_sync_status=last_sync_status,
        error_message="boom" if status is IntegrationStatus.ERROR else None,
        sync_interval=sync_interval,
        created_at=_T0,
        updated_at=_T0,
    )


def _source(integration_id: str, name: str, *, selected: bool) -> DataSourceInfo:
    return DataSourceInfo(
        id=f"{integration_id}-{name}",
        project_id="project-1",
        integration_id=integration_id,
        source_type="repository",
        source_id=name,
        name=name,
        is_selected=selected,
        last_sync_at=None,
        created_at=_T0,
    )


class TestClassifyIntegration:
    """Conditions derived from stored integration fields."""

    @pytest.mark.parametrize(
        ("status", "last_sync_status", "expected"),
        [
            (IntegrationStatus.ACTIVE, "success", IntegrationCondition.HEALTHY),
            (IntegrationStatus.ACTIVE, None, IntegrationCondition.HEALTHY),
            (IntegrationStatus.ERROR, None, IntegrationCondition.FAILED),
            (IntegrationStatus.ACTIVE, "error", IntegrationCondition.FAILED),
            (IntegrationStatus.ACTIVE, "FAILED", IntegrationCondition.FAILED),
            (IntegrationStatus.INACTIVE, None, IntegrationCondition.INACTIVE),
            (IntegrationStatus.PENDING, None, IntegrationCondition.PENDING),
        ],
    )
    def test_condition(
        self,
        status: IntegrationStatus,
        last_sync_status: str | None,
        expected: IntegrationCondition,
    ) -> None:
        """Error status or a failed last sync marks an integration failed."""
        integration = _integration(
            "a", status=status, last_sync_status=last_sync_status
        )

        assert classify_integration(integration) is expected


@pytest.mark.parametrize(
    ("total", "failed", "expected"),
    [
        (0, 0, OverallStatus.HEALTHY),
        (3, 0, OverallStatus.HEALTHY),
        (3, 1, OverallStatus.DEGRADED),
        (2, 1, OverallStatus.DEGRADED),
        (2, 2, OverallStatus.DOWN),
    ],
)
def test_overall_status(total: int, failed: int, expected: OverallStatus) -> None:
    """Only a project whose every integration failed is down."""
    assert overall_status(total=total, failed=failed) is expected


class TestSummarizeHealth:
    """Project-level health aggregation."""

    def test_mixed_project_is_degraded(self) -> None:
        """One healthy and one failed integration degrade the project."""
        integrations = [
            _integration("a", last_sync_at=_T0, last_sync_status="success"),
            _integration(
                "b",
                status=IntegrationStatus.ERROR,
                last_sync_at=_T0 - dt.timedelta(hours=1),
                last_sync_status="error",
            ),
            _integration("c", status=IntegrationStatus.INACTIVE),
        ]

        health = summarize_health(
            "project-1", integrations, [], {}, default_interval=_INTERVAL
        )

        assert health.overall_status is OverallStatus.DEGRADED
        assert health.active_integrations == 2
        assert health.healthy_integrations == 1
        assert health.failed_integrations == 1
        assert health.last_sync_at == _T0

    def test_failed_beside_inactive_is_degraded(self) -> None:
        """An inactive integration keeps a failed sibling from meaning down."""
        integrations = [
            _integration(
                "a", status=IntegrationStatus.ERROR, last_sync_status="error"
            ),
            _integration("b", status=IntegrationStatus.INACTIVE),
        ]

        health = summarize_health(
            "project-1", integrations, [], {}, default_interval=_INTERVAL
        )

        assert health.overall_status is OverallStatus.DEGRADED
        assert health.healthy_integrations == 0
        assert health.failed_integrations == 1

    def test_every_integration_failed_is_down(self) -> None:
        """Nothing left working means the project is down."""
        integrations = [
            _integration("a", status=IntegrationStatus.ERROR),
            _integration("b", last_sync_status="failed"),
        ]

        health = summarize_health(
            "project-1", integrations, [], {}, default_interval=_INTERVAL
        )

        assert health.overall_status is OverallStatus.DOWN
        assert health.failed_integrations == 2

    def test_no_integrations_is_healthy(self) -> None:
        """An empty project has nothing failing."""
        health = summarize_health("project-1", [], [], {}, default_interval=_INTERVAL)

        assert health.overall_status is OverallStatus.HEALTHY
        assert health.integrations == ()
        assert health.last_sync_at is None

    def test_counts_selected_data_sources(self) -> None:
        """Data sources are counted per integration, selected ones separately."""
        sources = [
            _source("a", "api", selected=True),
            _source("a", "web", selected=False),
            _source("b", "general", selected=True),
        ]

        health = summarize_health(
            "project-1",
            [_integration("a"), _integration("b")],
            sources,
            {},
            default_interval=_INTERVAL,
        )

        detail = {item.integration_id: item for item in health.integrations}
        assert (detail["a"].data_source_count, detail["a"].active_data_sources) == (
            2,
            1,
        )
        assert detail["b"].data_source_count == 1

    @pytest.mark.parametrize(
        ("state", "scheduled"),
        [
            (TaskState.IDLE, True),
            (TaskState.RUNNING, True),
            (TaskState.ERROR, False),
            (TaskState.STOPPED, False),
        ],
    )
    def test_next_sync_only_for_live_tasks(
        self, state: TaskState, scheduled: bool
    ) -> None:
        """A next sync time is reported only while a task is live."""
        integration = _integration("a", last_sync_at=_T0)

        health = summarize_health(
            "project-1", [integration], [], {"a": state}, default_interval=_INTERVAL
        )

        expected = _T0 + _INTERVAL if scheduled else None
        assert health.integrations[0].next_sync_at == expected
        assert health.integrations[0].task_state is state

    def test_integration_interval_overrides_default(self) -> None:
        """A per-integration sync interval wins over the default."""
        integration = dataclasses.replace(
            _integration("a", last_sync_at=_T0),
            sync_interval=dt.timedelta(hours=1),
        )

        health = summarize_health(
            "project-1",
            [integration],
            [],
            {"a": TaskState.IDLE},
            default_interval=_INTERVAL,
        )

        assert health.integrations[0].next_sync_at == _T0 + dt.timedelta(hours=1)

    def test_missing_task_state_is_inactive(self) -> None:
        """Integrations without a task report the inactive task state."""
        health = summarize_health(
            "project-1", [_integration("a")], [], {}, default_interval=_INTERVAL
        )

        assert health.integrations[0].task_state is TaskState.INACTIVE
