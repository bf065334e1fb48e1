"""Unit tests for starting, stopping and supervising ingestion tasks."""

from __future__ import annotations

import asyncio
import dataclasses
import datetime as dt
import typing as typ

import pytest
import pytest_asyncio

from contextkeeper.connectors import ConnectorError, ConnectorRegistry
from contextkeeper.ingestion import (
    IngestionEventType,
    IngestionOrchestrator,
    IntegrationNotActiveError,
    OrchestratorConfig,
    OverallStatus,
    TaskState,
)
from contextkeeper.knowledge import HeuristicKnowledgeExtractor
from contextkeeper.processing import ContextProcessor, ProcessorConfig
from contextkeeper.storage import (
    IntegrationStatus,
    ProjectNotFoundError,
    SqlAlchemyRepositoryStore,
)
from tests.helpers.events import raw_activity
from tests.helpers.fakes import FakeConnector
from tests.helpers.femtologging_capture import capture_femto_logs

if typ.TYPE_CHECKING:
    import collections.abc as cabc


@dataclasses.dataclass(slots=True)
class LifecycleHarness:
    """A project with GitHub and Slack integrations under one orchestrator."""

    store: SqlAlchemyRepositoryStore
    orchestrator: IngestionOrchestrator
    github: FakeConnector
    slack: FakeConnector
    project_id: str
    github_id: str
    slack_id: str


async def wait_for(
    predicate: cabc.Callable[[], bool], *, timeout: float = 2.0
) -> None:
    """Poll ``predicate`` on the event loop until it holds."""
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0.01)


@pytest_asyncio.fixture
async def harness(
    store: SqlAlchemyRepositoryStore,
) -> cabc.AsyncIterator[LifecycleHarness]:
    """Provide an orchestrator that is closed after the test."""
    project = await store.create_project("Payments")
    github = await store.create_integration(project.id, "github")
    slack = await store.create_integration(project.id, "slack")
    github_connector = FakeConnector("github", raw_activity(3))
    slack_connector = FakeConnector("slack", raw_activity(2, prefix="msg"))
    orchestrator = IngestionOrchestrator(
        store,
        ConnectorRegistry({"github": github_connector, "slack": slack_connector}),
        ContextProcessor(
            HeuristicKnowledgeExtractor(),
            config=ProcessorConfig(retry_delay=dt.timedelta(0)),
        ),
    )
    try:
        yield LifecycleHarness(
            store=store,
            orchestrator=orchestrator,
            github=github_connector,
            slack=slack_connector,
            project_id=project.id,
            github_id=github.id,
            slack_id=slack.id,
        )
    finally:
        await orchestrator.aclose()


class TestStartProjectIngestion:
    """Starting every active integration of a project."""

    @pytest.mark.asyncio
    async def test_starts_active_integrations(self, harness: LifecycleHarness) -> None:
        """Each active integration gets a task that completes a first cycle."""
        orchestrator = harness.orchestrator

        summary = await orchestrator.start_project_ingestion(harness.project_id)

        assert sorted(summary.started) == sorted([harness.github_id, harness.slack_id])
        assert summary.failed == {}
        await wait_for(
            lambda: orchestrator.task_state(harness.github_id) is TaskState.IDLE
        )
        checkpoint = await harness.store.get_sync_checkpoint(harness.github_id)
        assert checkpoint["total_events_processed"] == 3

    @pytest.mark.asyncio
    async def test_second_start_is_idempotent(self, harness: LifecycleHarness) -> None:
        """Running integrations are reported rather than started twice."""
        orchestrator = harness.orchestrator
        await orchestrator.start_project_ingestion(harness.project_id)

        summary = await orchestrator.start_project_ingestion(harness.project_id)

        assert summary.started == []
        assert sorted(summary.already_running) == sorted(
            [harness.github_id, harness.slack_id]
        )
        started = await orchestrator.start_integration_ingestion(harness.github_id)
        assert started is False

    @pytest.mark.asyncio
    async def test_concurrent_starts_schedule_one_task_each(
        self, harness: LifecycleHarness
    ) -> None:
        """Racing starts for one project never duplicate a task."""
        orchestrator = harness.orchestrator

        first, second = await asyncio.gather(
            orchestrator.start_project_ingestion(harness.project_id),
            orchestrator.start_project_ingestion(harness.project_id),
        )

        expected = sorted([harness.github_id, harness.slack_id])
        assert sorted(first.started + second.started) == expected
        assert sorted(first.already_running + second.already_running) == expected
        assert orchestrator.running_integrations() == expected
        await wait_for(
            lambda: orchestrator.task_state(harness.github_id) is TaskState.IDLE
        )
        assert len(harness.github.fetch_calls) == 1

    @pytest.mark.asyncio
    async def test_skips_integrations_that_are_not_active(
        self, harness: LifecycleHarness
    ) -> None:
        """Inactive integrations are left alone."""
        await harness.store.update_integration_status(
            harness.slack_id, IntegrationStatus.INACTIVE
        )

        summary = await harness.orchestrator.start_project_ingestion(
            harness.project_id
        )

        assert summary.started == [harness.github_id]
        assert not harness.orchestrator.is_running(harness.slack_id)

    @pytest.mark.asyncio
    async def test_missing_connector_is_reported_not_raised(
        self, harness: LifecycleHarness
    ) -> None:
        """An integration without a connector is marked errored."""
        jira = await harness.store.create_integration(harness.project_id, "jira")

        with capture_femto_logs("contextkeeper.ingestion.observability") as capture:
            summary = await harness.orchestrator.start_project_ingestion(
                harness.project_id
            )
            capture.wait_for_event(IngestionEventType.INTEGRATION_START_FAILED)

        assert list(summary.failed) == [jira.id]
        assert "jira" in summary.failed[jira.id]
        assert harness.orchestrator.task_state(jira.id) is TaskState.ERROR
        stored = await harness.store.get_integration(jira.id)
        assert stored.status is IntegrationStatus.ERROR
        health = await harness.orchestrator.get_ingestion_health(harness.project_id)
        assert health.failed_integrations == 1
        assert health.overall_status is OverallStatus.DEGRADED

    @pytest.mark.asyncio
    async def test_unknown_project_raises(self, harness: LifecycleHarness) -> None:
        """Starting an unknown project is an error."""
        with pytest.raises(ProjectNotFoundError):
            await harness.orchestrator.start_project_ingestion("missing-project")


class TestStartSingleIntegration:
    """Starting one integration directly or via a data source."""

    @pytest.mark.asyncio
    async def test_inactive_integration_cannot_start(
        self, harness: LifecycleHarness
    ) -> None:
        """Only active integrations may be started."""
        await harness.store.update_integration_status(
            harness.github_id, IntegrationStatus.PENDING
        )

        with pytest.raises(IntegrationNotActiveError):
            await harness.orchestrator.start_integration_ingestion(harness.github_id)

    @pytest.mark.asyncio
    async def test_data_source_starts_its_integration(
        self, harness: LifecycleHarness
    ) -> None:
        """A data source start resolves to its owning integration."""
        source = await harness.store.add_data_source(
            harness.slack_id,
            source_type="channel",
            source_id="C123",
            name="#payments",
        )

        started = await harness.orchestrator.start_data_source_ingestion(source.id)

        assert started is True
        assert harness.orchestrator.running_integrations() == [harness.slack_id]

    @pytest.mark.asyncio
    async def test_task_start_is_logged(self, harness: LifecycleHarness) -> None:
        """Task starts are logged with the platform."""
        with capture_femto_logs("contextkeeper.ingestion.observability") as capture:
            await harness.orchestrator.start_integration_ingestion(harness.github_id)
            record = capture.wait_for_event(IngestionEventType.TASK_STARTED)

        assert record.level == "INFO"
        assert "platform=github" in record.message


class TestStopAndRetry:
    """Cancellation, shutdown and recovery."""

    @pytest.mark.asyncio
    async def test_stop_cancels_running_task(self, harness: LifecycleHarness) -> None:
        """A stopped integration has no task and a stopped state."""
        orchestrator = harness.orchestrator
        await orchestrator.start_integration_ingestion(harness.github_id)

        assert await orchestrator.stop_integration_ingestion(harness.github_id)

        assert not orchestrator.is_running(harness.github_id)
        assert orchestrator.task_state(harness.github_id) is TaskState.STOPPED
        assert not await orchestrator.stop_integration_ingestion(harness.github_id)

    @pytest.mark.asyncio
    async def test_stop_mid_cycle_keeps_checkpoint(
        self, harness: LifecycleHarness
    ) -> None:
        """Cancelling during a fetch persists nothing and marks nothing failed."""
        harness.github.gate = asyncio.Event()
        orchestrator = harness.orchestrator
        await orchestrator.start_integration_ingestion(harness.github_id)
        await asyncio.wait_for(harness.github.fetch_started.wait(), timeout=2.0)

        await orchestrator.stop_integration_ingestion(harness.github_id)

        assert await harness.store.get_sync_checkpoint(harness.github_id) == {}
        integration = await harness.store.get_integration(harness.github_id)
        assert integration.status is IntegrationStatus.ACTIVE
        assert integration.last_sync_status is None

    @pytest.mark.asyncio
    async def test_stop_project_returns_stopped_ids(
        self, harness: LifecycleHarness
    ) -> None:
        """Stopping a project cancels every one of its tasks."""
        orchestrator = harness.orchestrator
        await orchestrator.start_project_ingestion(harness.project_id)

        stopped = await orchestrator.stop_project_ingestion(harness.project_id)

        assert stopped == sorted([harness.github_id, harness.slack_id])
        assert orchestrator.running_integrations() == []

    @pytest.mark.asyncio
    async def test_aclose_cancels_everything(self, harness: LifecycleHarness) -> None:
        """Shutdown leaves no running tasks."""
        orchestrator = harness.orchestrator
        await orchestrator.start_project_ingestion(harness.project_id)

        await orchestrator.aclose()

        assert orchestrator.running_integrations() == []
        assert orchestrator.task_state(harness.slack_id) is TaskState.STOPPED

    @pytest.mark.asyncio
    async def test_stop_releases_cycle_lock(self, harness: LifecycleHarness) -> None:
        """Stopped integrations leave no cycle lock behind."""
        orchestrator = harness.orchestrator
        await orchestrator.start_integration_ingestion(harness.github_id)
        await wait_for(
            lambda: orchestrator.task_state(harness.github_id) is TaskState.IDLE
        )
        assert harness.github_id in orchestrator._cycle_locks

        await orchestrator.stop_integration_ingestion(harness.github_id)

        assert harness.github_id not in orchestrator._cycle_locks

    @pytest.mark.asyncio
    async def test_aclose_releases_cycle_locks(self, harness: LifecycleHarness) -> None:
        """Locks taken by direct cycles are dropped on shutdown."""
        orchestrator = harness.orchestrator
        await orchestrator.run_ingestion_cycle(harness.github_id)
        await orchestrator.run_ingestion_cycle(harness.slack_id)

        await orchestrator.aclose()

        assert orchestrator._cycle_locks == {}

    @pytest.mark.asyncio
    async def test_stop_timeout_keeps_task_registered(
        self, harness: LifecycleHarness
    ) -> None:
        """A task that outlives the shutdown timeout is not reported stopped."""
        connector = FakeConnector("github", raw_activity(3))
        connector.gate = asyncio.Event()
        connector.ignore_cancellation = True
        orchestrator = IngestionOrchestrator(
            harness.store,
            ConnectorRegistry({"github": connector}),
            ContextProcessor(HeuristicKnowledgeExtractor()),
            config=OrchestratorConfig(shutdown_timeout=dt.timedelta(milliseconds=200)),
        )
        await orchestrator.start_integration_ingestion(harness.github_id)
        await asyncio.wait_for(connector.fetch_started.wait(), timeout=2.0)

        with capture_femto_logs("contextkeeper.ingestion.observability") as capture:
            assert await orchestrator.stop_integration_ingestion(harness.github_id)
            record = capture.wait_for_event(IngestionEventType.TASK_STOP_TIMED_OUT)

        assert record.level == "WARN"
        assert orchestrator.is_running(harness.github_id)
        assert orchestrator.task_state(harness.github_id) is TaskState.RUNNING
        assert harness.github_id in orchestrator._cycle_locks

        connector.ignore_cancellation = False
        await orchestrator.aclose()

        assert not orchestrator.is_running(harness.github_id)
        assert orchestrator.task_state(harness.github_id) is TaskState.STOPPED
        assert orchestrator._cycle_locks == {}

    @pytest.mark.asyncio
    async def test_failed_cycle_ends_task_until_retried(
        self, harness: LifecycleHarness
    ) -> None:
        """A failing integration stays errored until it is retried."""
        orchestrator = harness.orchestrator
        harness.github.fetch_error = ConnectorError.fetch_failed("github", "down")
        await orchestrator.start_integration_ingestion(harness.github_id)
        await wait_for(
            lambda: orchestrator.task_state(harness.github_id) is TaskState.ERROR
            and not orchestrator.is_running(harness.github_id)
        )
        failed = await harness.store.get_integration(harness.github_id)
        assert failed.status is IntegrationStatus.ERROR

        harness.github.fetch_error = None
        assert await orchestrator.retry_failed_ingestion(harness.github_id)
        await wait_for(
            lambda: orchestrator.task_state(harness.github_id) is TaskState.IDLE
        )

        recovered = await harness.store.get_integration(harness.github_id)
        assert recovered.status is IntegrationStatus.ACTIVE
        assert recovered.last_sync_status == "success"
        assert recovered.error_message is None


class TestHealth:
    """Health reporting for supervised integrations."""

    @pytest.mark.asyncio
    async def test_idle_integrations_report_next_sync(
        self, harness: LifecycleHarness
    ) -> None:
        """After a successful cycle the next sync time is known."""
        orchestrator = harness.orchestrator
        await orchestrator.start_project_ingestion(harness.project_id)
        await wait_for(
            lambda: all(
                orchestrator.task_state(i) is TaskState.IDLE
                for i in (harness.github_id, harness.slack_id)
            )
        )

        health = await orchestrator.get_ingestion_health(harness.project_id)

        assert health.overall_status is OverallStatus.HEALTHY
        assert health.active_integrations == 2
        assert health.healthy_integrations == 2
        assert all(item.next_sync_at is not None for item in health.integrations)

    @pytest.mark.asyncio
    async def test_unknown_project_health_raises(
        self, harness: LifecycleHarness
    ) -> None:
        """Health is only available for known projects."""
        with pytest.raises(ProjectNotFoundError):
            await harness.orchestrator.get_ingestion_health("missing-project")
