"""Supervision of per-integration ingestion tasks.

The orchestrator owns one asyncio task per actively ingesting integration.
Each task runs ingestion cycles back to back, sleeping for the connector's
recommended interval in between. A cycle reads the stored checkpoint, fetches
events since the last sync (minus an overlap window), drops events whose IDs
the checkpoint already records, normalizes and processes the rest, and then
persists the knowledge together with the advanced checkpoint in a single
store transaction. A cycle that fails or is cancelled leaves the checkpoint
exactly as it was.
"""

from __future__ import annotations

import asyncio
import dataclasses
import datetime as dt
import time
import typing as typ

from contextkeeper.common.time import utcnow
from contextkeeper.connectors.errors import ConnectorNotFoundError
from contextkeeper.events import with_utc_timestamp
from contextkeeper.knowledge.models import ProcessingResult
from contextkeeper.storage.records import IntegrationStatus, SyncStatus

from .checkpoint import SyncCheckpoint
from .config import OrchestratorConfig
from .dedupe import deduplicate_events
from .errors import (
    ConnectorUnavailableError,
    CyclePhase,
    IngestionCycleError,
    IntegrationNotActiveError,
)
from .health import IngestionHealth, TaskState, summarize_health
from .observability import CycleContext, CycleStats, IngestionEventLogger

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from contextkeeper.connectors import ConnectorRegistry, PlatformConnector
    from contextkeeper.processing import ContextProcessor
    from contextkeeper.storage import IntegrationInfo, RepositoryStore


@dataclasses.dataclass(slots=True)
class _IngestionTask:
    """Handle for one supervised integration task."""

    integration_id: str
    project_id: str
    platform: str
    task: asyncio.Task[None]


@dataclasses.dataclass(frozen=True, slots=True)
class CycleOutcome:
    """Summary of one successful ingestion cycle."""

    integration_id: str
    fetched: int
    new_events: int
    result: ProcessingResult
    checkpoint: SyncCheckpoint

    @property
    def processed_events(self) -> int:
        """Return the number of events handed to the processor."""
        return self.result.processed_events


@dataclasses.dataclass(slots=True)
class ProjectIngestionStartSummary:
    """Outcome of ``start_project_ingestion`` per integration."""

    project_id: str
    started: list[str] = dataclasses.field(default_factory=list)
    already_running: list[str] = dataclasses.field(default_factory=list)
    failed: dict[str, str] = dataclasses.field(default_factory=dict)


def _entity_count(result: ProcessingResult) -> int:
    return (
        len(result.decisions)
        + len(result.discussion_summaries)
        + len(result.feature_contexts)
        + len(result.file_contexts)
    )


class IngestionOrchestrator:
    """Start, stop and supervise ingestion for project integrations.

    Parameters
    ----------
    store:
        Repository store holding projects, integrations and checkpoints.
    connectors:
        Registry resolving an integration's platform to its connector.
    processor:
        Context processor that extracts knowledge from normalized events.
    config:
        Fetch, checkpoint and scheduling knobs. Defaults to
        ``OrchestratorConfig()``.
    event_logger:
        Structured event logger. Defaults to ``IngestionEventLogger()``.

    """

    def __init__(
        self,
        store: RepositoryStore,
        connectors: ConnectorRegistry,
        processor: ContextProcessor,
        *,
        config: OrchestratorConfig | None = None,
        event_logger: IngestionEventLogger | None = None,
    ) -> None:
        """Configure the orchestrator with its collaborators."""
        self._store = store
        self._connectors = connectors
        self._processor = processor
        self._config = config or OrchestratorConfig()
        self._event_logger = event_logger or IngestionEventLogger()
        self._tasks: dict[str, _IngestionTask] = {}
        self._states: dict[str, TaskState] = {}
        self._tasks_lock = asyncio.Lock()
        self._cycle_locks: dict[str, asyncio.Lock] = {}

    @property
    def config(self) -> OrchestratorConfig:
        """Return the active orchestrator configuration."""
        return self._config

    def is_running(self, integration_id: str) -> bool:
        """Return whether a task is currently supervising the integration."""
        entry = self._tasks.get(integration_id)
        return entry is not None and not entry.task.done()

    def running_integrations(self) -> list[str]:
        """Return the IDs of integrations with a live task."""
        return sorted(i for i, e in self._tasks.items() if not e.task.done())

    def task_state(self, integration_id: str) -> TaskState:
        """Return the last known task state of an integration."""
        return self._states.get(integration_id, TaskState.INACTIVE)

    # Lifecycle

    async def start_project_ingestion(
        self, project_id: str
    ) -> ProjectIngestionStartSummary:
        """Start a task for every active integration of a project.

        Returns once the tasks are scheduled. Integrations whose platform has
        no connector are marked as errored and reported in the summary rather
        than raised.

        Raises
        ------
        ProjectNotFoundError
            If the project does not exist.

        """
        await self._store.get_project(project_id)
        integrations = await self._store.list_integrations(
            project_id, status=IntegrationStatus.ACTIVE
        )
        summary = ProjectIngestionStartSummary(project_id=project_id)
        for integration in integrations:
            try:
                started = await self._start(integration)
            except ConnectorUnavailableError as exc:
                self._event_logger.log_integration_start_failed(integration.id, exc)
                await self._store.record_sync_result(
                    integration.id,
                    status=SyncStatus.ERROR,
                    error_message=str(exc),
                    integration_status=IntegrationStatus.ERROR,
                )
                self._states[integration.id] = TaskState.ERROR
                summary.failed[integration.id] = str(exc)
                continue
            if started:
                summary.started.append(integration.id)
            else:
                summary.already_running.append(integration.id)
        return summary

    async def start_integration_ingestion(self, integration_id: str) -> bool:
        """Start the task for one integration.

        Returns
        -------
        bool
            ``True`` if a task was started, ``False`` if one was already
            running.

        Raises
        ------
        IntegrationNotFoundError
            If the integration does not exist.
        IntegrationNotActiveError
            If the integration's status is not ``active``.
        ConnectorUnavailableError
            If no connector is registered for its platform.

        """
        integration = await self._store.get_integration(integration_id)
        if not integration.is_active:
            raise IntegrationNotActiveError(integration_id, integration.status)
        return await self._start(integration)

    async def start_data_source_ingestion(self, data_source_id: str) -> bool:
        """Start ingestion for the integration that owns a data source."""
        data_source = await self._store.get_data_source(data_source_id)
        return await self.start_integration_ingestion(data_source.integration_id)

    async def stop_integration_ingestion(self, integration_id: str) -> bool:
        """Cancel an integration's task and wait for it to exit.

        Returns ``False`` if no task was running. A task that outlives
        ``shutdown_timeout`` stays registered and keeps its state.
        """
        async with self._tasks_lock:
            entry = self._tasks.pop(integration_id, None)
        if entry is None:
            return False
        await self._cancel_and_wait([entry])
        self._discard_cycle_locks([integration_id])
        return True

    async def stop_project_ingestion(self, project_id: str) -> list[str]:
        """Cancel every task of a project and return the stopped IDs."""
        async with self._tasks_lock:
            entries = [e for e in self._tasks.values() if e.project_id == project_id]
            for entry in entries:
                del self._tasks[entry.integration_id]
        await self._cancel_and_wait(entries)
        self._discard_cycle_locks(entry.integration_id for entry in entries)
        return sorted(entry.integration_id for entry in entries)

    async def retry_failed_ingestion(self, integration_id: str) -> bool:
        """Reset an errored integration to active and start it again."""
        await self.stop_integration_ingestion(integration_id)
        await self._store.reset_integration(integration_id)
        return await self.start_integration_ingestion(integration_id)

    async def aclose(self) -> None:
        """Cancel all tasks and wait up to ``shutdown_timeout`` for them."""
        async with self._tasks_lock:
            entries = list(self._tasks.values())
            self._tasks.clear()
        await self._cancel_and_wait(entries)
        self._discard_cycle_locks(list(self._cycle_locks))

    async def _start(self, integration: IntegrationInfo) -> bool:
        connector = self._connector_for(integration)
        async with self._tasks_lock:
            if self.is_running(integration.id):
                return False
            self._states[integration.id] = TaskState.STARTING
            task = asyncio.create_task(
                self._supervise(integration, connector),
                name=f"ingestion-{integration.id}",
            )
            entry = _IngestionTask(
                integration_id=integration.id,
                project_id=integration.project_id,
                platform=integration.platform,
                task=task,
            )
            self._tasks[integration.id] = entry
            task.add_done_callback(lambda t: self._on_task_done(entry, t))
        self._event_logger.log_task_started(integration.id, integration.platform)
        return True

    async def _cancel_and_wait(self, entries: cabc.Sequence[_IngestionTask]) -> None:
        """Cancel ``entries`` and wait up to ``shutdown_timeout`` for them.

        Tasks still running after the timeout keep their state and are
        registered again so a later stop or ``aclose`` can retry.
        """
        tasks = [entry.task for entry in entries if not entry.task.done()]
        for task in tasks:
            task.cancel()
        timeout = self._config.shutdown_timeout
        if tasks:
            await asyncio.wait(tasks, timeout=timeout.total_seconds())
        lingering = [entry for entry in entries if not entry.task.done()]
        for entry in entries:
            if entry.task.done():
                self._states[entry.integration_id] = TaskState.STOPPED
        if not lingering:
            return
        async with self._tasks_lock:
            for entry in lingering:
                if not entry.task.done():
                    self._tasks.setdefault(entry.integration_id, entry)
        for entry in lingering:
            self._event_logger.log_task_stop_timed_out(entry.integration_id, timeout)

    def _discard_cycle_locks(self, integration_ids: cabc.Iterable[str]) -> None:
        for integration_id in integration_ids:
            lock = self._cycle_locks.get(integration_id)
            if lock is not None and not lock.locked():
                del self._cycle_locks[integration_id]

    def _on_task_done(self, entry: _IngestionTask, task: asyncio.Task[None]) -> None:
        if self._tasks.get(entry.integration_id) is entry:
            del self._tasks[entry.integration_id]
        if task.cancelled():
            self._states[entry.integration_id] = TaskState.STOPPED
            self._event_logger.log_task_stopped(
                entry.integration_id, reason="cancelled"
            )
            return
        error = task.exception()
        if error is not None:
            self._states[entry.integration_id] = TaskState.ERROR
            self._event_logger.log_task_failed(entry.integration_id, error)
            return
        reason = (
            "cycle_failed"
            if self._states.get(entry.integration_id) is TaskState.ERROR
            else "completed"
        )
        self._event_logger.log_task_stopped(entry.integration_id, reason=reason)

    async def _supervise(
        self, integration: IntegrationInfo, connector: PlatformConnector
    ) -> None:
        """Run cycles until cancelled or a cycle fails."""
        integration_id = integration.id
        while True:
            self._states[integration_id] = TaskState.RUNNING
            try:
                outcome = await self.run_ingestion_cycle(integration_id)
            except IngestionCycleError:
                self._states[integration_id] = TaskState.ERROR
                return
            self._states[integration_id] = TaskState.IDLE
            delay = self._next_delay(
                connector,
                outcome.checkpoint.last_sync_time,
                integration.sync_interval,
            )
            await asyncio.sleep(delay.total_seconds())

    def _next_delay(
        self,
        connector: PlatformConnector,
        last_sync: dt.datetime | None,
        integration_interval: dt.timedelta | None,
    ) -> dt.timedelta:
        recommended = connector.schedule_sync(last_sync)
        if recommended > dt.timedelta(0):
            return recommended
        return integration_interval or self._config.sync_interval

    def _connector_for(self, integration: IntegrationInfo) -> PlatformConnector:
        try:
            return self._connectors.get(integration.platform)
        except ConnectorNotFoundError as exc:
            raise ConnectorUnavailableError(
                integration.id, integration.platform
            ) from exc

    # Cycles

    async def run_ingestion_cycle(self, integration_id: str) -> CycleOutcome:
        """Run one fetch, dedupe, normalize, process and persist cycle.

        Cycles for the same integration never overlap. On success the
        extracted knowledge and the advanced checkpoint are committed
        together; on failure the checkpoint is left unchanged and the
        integration is marked as errored.

        Raises
        ------
        IngestionCycleError
            If any phase fails. The original exception is chained.
        asyncio.CancelledError
            If the cycle is cancelled; nothing is persisted.

        """
        lock = self._cycle_locks.setdefault(integration_id, asyncio.Lock())
        async with lock:
            return await self._run_cycle(integration_id)

    async def _run_cycle(self, integration_id: str) -> CycleOutcome:
        try:
            integration = await self._store.get_integration(integration_id)
        except Exception as exc:
            error = IngestionCycleError.wrap(integration_id, CyclePhase.LOAD, exc)
            raise error from exc
        try:
            connector = self._connector_for(integration)
        except ConnectorUnavailableError as exc:
            await self._mark_failed(integration_id, exc)
            error = IngestionCycleError.wrap(integration_id, CyclePhase.LOAD, exc)
            raise error from exc

        started_at = utcnow()
        started = time.monotonic()
        context = CycleContext(
            integration_id=integration_id,
            project_id=integration.project_id,
            platform=integration.platform,
            started_at=started_at,
        )
        self._event_logger.log_cycle_started(context)
        phase = CyclePhase.FETCH
        try:
            checkpoint = SyncCheckpoint.from_mapping(integration.sync_checkpoint)
            since = checkpoint.fetch_since(
                started_at,
                initial_lookback=self._config.initial_lookback,
                overlap=self._config.overlap,
            )
            async with asyncio.timeout(self._config.connector_timeout.total_seconds()):
                fetched = [
                    with_utc_timestamp(event)
                    for event in await connector.fetch_events(
                        since, self._config.fetch_limit
                    )
                ]
            fresh = deduplicate_events(fetched, checkpoint.processed_event_ids)

            result = ProcessingResult(processed_events=0)
            if fresh:
                phase = CyclePhase.NORMALIZE
                async with asyncio.timeout(
                    self._config.connector_timeout.total_seconds()
                ):
                    normalized = [
                        with_utc_timestamp(event)
                        for event in await connector.normalize_data(fresh)
                    ]
                phase = CyclePhase.PROCESS
                result = await self._processor.process_events(normalized)

            phase = CyclePhase.PERSIST
            synced_at = utcnow()
            advanced = checkpoint.advance(
                fresh,
                processed_count=result.processed_events,
                now=synced_at,
                window=self._config.processed_id_window,
            )
            await self._store.commit_ingestion_cycle(
                integration_id,
                result=result,
                checkpoint=advanced.to_mapping(),
                synced_at=synced_at,
            )
        except Exception as exc:
            duration = dt.timedelta(seconds=time.monotonic() - started)
            error = IngestionCycleError.wrap(integration_id, phase, exc)
            error.__cause__ = exc
            self._event_logger.log_cycle_failed(context, error, duration)
            await self._mark_failed(integration_id, error)
            raise error from exc

        self._event_logger.log_cycle_completed(
            context,
            CycleStats(
                fetched=len(fetched),
                new_events=len(fresh),
                processed=result.processed_events,
                entities=_entity_count(result),
                relationships=len(result.relationships),
                processing_errors=len(result.errors),
            ),
            dt.timedelta(seconds=time.monotonic() - started),
        )
        return CycleOutcome(
            integration_id=integration_id,
            fetched=len(fetched),
            new_events=len(fresh),
            result=result,
            checkpoint=advanced,
        )

    async def _mark_failed(self, integration_id: str, error: BaseException) -> None:
        await self._store.record_sync_result(
            integration_id,
            status=SyncStatus.ERROR,
            error_message=str(error),
            integration_status=IntegrationStatus.ERROR,
        )

    # Queries

    async def get_ingestion_health(self, project_id: str) -> IngestionHealth:
        """Return the derived ingestion health of a project.

        Raises
        ------
        ProjectNotFoundError
            If the project does not exist.

        """
        integrations = await self._store.list_integrations(project_id)
        data_sources = await self._store.list_data_sources(project_id)
        return summarize_health(
            project_id,
            integrations,
            data_sources,
            dict(self._states),
            default_interval=self._config.sync_interval,
        )

    async def get_sync_checkpoint(self, integration_id: str) -> dict[str, typ.Any]:
        """Return the stored checkpoint mapping of an integration."""
        return await self._store.get_sync_checkpoint(integration_id)

    async def update_sync_checkpoint(
        self,
        integration_id: str,
        checkpoint: cabc.Mapping[str, typ.Any],
    ) -> None:
        """Replace the stored checkpoint mapping of an integration.

        The mapping is stored as given; callers merge before calling.
        """
        async with self._cycle_locks.setdefault(integration_id, asyncio.Lock()):
            await self._store.replace_sync_checkpoint(integration_id, checkpoint)
