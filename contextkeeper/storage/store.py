"""Repository store for projects, integrations, checkpoints and knowledge.

``RepositoryStore`` is the contract the ingestion orchestrator depends on;
``SqlAlchemyRepositoryStore`` implements it over an async session factory.
Every method opens its own session, so callers never hold ORM instances and
only see the immutable DTOs from :mod:`contextkeeper.storage.models`.
"""

from __future__ import annotations

import collections.abc as cabc
import datetime as dt
import typing as typ

import msgspec
from sqlalchemy import delete, select

from contextkeeper.common.time import utcnow
from contextkeeper.knowledge.merge import (
    merge_decision,
    merge_feature,
    merge_file,
    merge_summary,
)
from contextkeeper.knowledge.models import (
    ENTITY_STRUCTS,
    DecisionRecord,
    DiscussionSummary,
    EntityType,
    FeatureContext,
    FileContextHistory,
    Relationship,
)

from .errors import (
    DataSourceNotFoundError,
    IntegrationNotFoundError,
    ProjectNotFoundError,
)
from .models import DataSourceInfo, IntegrationInfo, ProjectInfo
from .records import (
    IntegrationStatus,
    KnowledgeEntityRecord,
    KnowledgeRelationshipRecord,
    ProjectDataSource,
    ProjectIntegration,
    ProjectWorkspace,
    SyncStatus,
)

if typ.TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from contextkeeper.knowledge.models import KnowledgeEntity, ProcessingResult

    type SessionFactory = async_sessionmaker[AsyncSession]


class RepositoryStore(typ.Protocol):
    """Persistence operations consumed by the ingestion orchestrator."""

    async def get_project(self, project_id: str) -> ProjectInfo:
        """Return the project or raise ``ProjectNotFoundError``."""
        ...

    async def list_integrations(
        self,
        project_id: str,
        *,
        status: IntegrationStatus | None = None,
    ) -> list[IntegrationInfo]:
        """Return the project's integrations, optionally filtered by status."""
        ...

    async def get_integration(self, integration_id: str) -> IntegrationInfo:
        """Return the integration or raise ``IntegrationNotFoundError``."""
        ...

    async def get_data_source(self, data_source_id: str) -> DataSourceInfo:
        """Return the data source or raise ``DataSourceNotFoundError``."""
        ...

    async def list_data_sources(self, project_id: str) -> list[DataSourceInfo]:
        """Return every data source of the project."""
        ...

    async def get_sync_checkpoint(self, integration_id: str) -> dict[str, typ.Any]:
        """Return a copy of the integration's checkpoint mapping."""
        ...

    async def replace_sync_checkpoint(
        self,
        integration_id: str,
        checkpoint: cabc.Mapping[str, typ.Any],
    ) -> None:
        """Replace the integration's checkpoint mapping wholesale."""
        ...

    async def record_sync_result(
        self,
        integration_id: str,
        *,
        status: SyncStatus,
        error_message: str | None = None,
        integration_status: IntegrationStatus | None = None,
    ) -> None:
        """Record the outcome of a cycle without touching the checkpoint."""
        ...

    async def reset_integration(self, integration_id: str) -> None:
        """Return an errored integration to active and clear its error."""
        ...

    async def commit_ingestion_cycle(
        self,
        integration_id: str,
        *,
        result: ProcessingResult,
        checkpoint: cabc.Mapping[str, typ.Any],
        synced_at: dt.datetime,
    ) -> None:
        """Persist a cycle's entities, relationships and checkpoint atomically."""
        ...


def _project_info(record: ProjectWorkspace) -> ProjectInfo:
    return ProjectInfo(
        id=record.id,
        name=record.name,
        description=record.description,
        owner_id=record.owner_id,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def _integration_info(record: ProjectIntegration) -> IntegrationInfo:
    interval = record.sync_interval_seconds
    return IntegrationInfo(
        id=record.id,
        project_id=record.project_id,
        platform=record.platform,
        status=IntegrationStatus(record.status),
        sync_checkpoint=dict(record.sync_checkpoint or {}),
        configuration=dict(record.configuration or {}),
        last_sync_at=record.last_sync_at,
        last_sync_status=record.last_sync_status,
        error_message=record.error_message,
        sync_interval=None if interval is None else dt.timedelta(seconds=interval),
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def _data_source_info(record: ProjectDataSource) -> DataSourceInfo:
    return DataSourceInfo(
        id=record.id,
        project_id=record.project_id,
        integration_id=record.integration_id,
        source_type=record.source_type,
        source_id=record.source_id,
        name=record.name,
        is_selected=record.is_selected,
        last_sync_at=record.last_sync_at,
        created_at=record.created_at,
    )


def _entity_platform(entity: KnowledgeEntity) -> str:
    match entity:
        case DecisionRecord(platform_source=platform):
            return platform
        case DiscussionSummary(platform=platform):
            return platform
        case FeatureContext(platforms=platforms):
            return platforms[0] if platforms else ""
        case FileContextHistory(platform_sources=sources):
            return next(iter(sources), "")


def _merge_entity(
    existing: KnowledgeEntity, incoming: KnowledgeEntity
) -> KnowledgeEntity:
    match (existing, incoming):
        case (DecisionRecord(), DecisionRecord()):
            return merge_decision(existing, incoming)
        case (DiscussionSummary(), DiscussionSummary()):
            return merge_summary(existing, incoming)
        case (FeatureContext(), FeatureContext()):
            return merge_feature(existing, incoming)
        case (FileContextHistory(), FileContextHistory()):
            return merge_file(existing, incoming)
        case _:
            return incoming


class SqlAlchemyRepositoryStore:
    """``RepositoryStore`` backed by SQLAlchemy async sessions.

    Parameters
    ----------
    session_factory:
        Async session factory bound to an engine whose schema was created by
        :func:`contextkeeper.storage.records.init_storage`.

    """

    def __init__(self, session_factory: SessionFactory) -> None:
        """Configure the store with an async session factory."""
        self._session_factory = session_factory

    # Projects

    async def create_project(
        self,
        name: str,
        *,
        description: str = "",
        owner_id: str = "",
        project_id: str | None = None,
    ) -> ProjectInfo:
        """Create a project workspace and return it."""
        async with self._session_factory() as session, session.begin():
            record = ProjectWorkspace(
                name=name, description=description, owner_id=owner_id
            )
            if project_id is not None:
                record.id = project_id
            session.add(record)
            await session.flush()
            return _project_info(record)

    async def get_project(self, project_id: str) -> ProjectInfo:
        """Return the project or raise ``ProjectNotFoundError``."""
        async with self._session_factory() as session:
            record = await session.get(ProjectWorkspace, project_id)
            if record is None:
                raise ProjectNotFoundError(project_id)
            return _project_info(record)

    async def list_projects(self) -> list[ProjectInfo]:
        """Return every project ordered by creation time."""
        async with self._session_factory() as session:
            records = await session.scalars(
                select(ProjectWorkspace).order_by(ProjectWorkspace.created_at)
            )
            return [_project_info(record) for record in records]

    async def delete_project(self, project_id: str) -> None:
        """Delete a project with its integrations, sources and knowledge."""
        async with self._session_factory() as session, session.begin():
            record = await session.get(ProjectWorkspace, project_id)
            if record is None:
                raise ProjectNotFoundError(project_id)
            for model in (
                KnowledgeRelationshipRecord,
                KnowledgeEntityRecord,
                ProjectDataSource,
                ProjectIntegration,
            ):
                await session.execute(
                    delete(model).where(model.project_id == project_id)
                )
            await session.delete(record)

    # Integrations

    async def create_integration(  # noqa: PLR0913
        self,
        project_id: str,
        platform: str,
        *,
        status: IntegrationStatus = IntegrationStatus.ACTIVE,
        configuration: cabc.Mapping[str, typ.Any] | None = None,
        sync_checkpoint: cabc.Mapping[str, typ.Any] | None = None,
        sync_interval: dt.timedelta | None = None,
    ) -> IntegrationInfo:
        """Create an integration for ``platform`` under a project."""
        async with self._session_factory() as session, session.begin():
            if await session.get(ProjectWorkspace, project_id) is None:
                raise ProjectNotFoundError(project_id)
            record = ProjectIntegration(
                project_id=project_id,
                platform=platform,
                status=status.value,
                configuration=dict(configuration or {}),
                sync_checkpoint=dict(sync_checkpoint or {}),
                sync_interval_seconds=(
                    None
                    if sync_interval is None
                    else int(sync_interval.total_seconds())
                ),
            )
            session.add(record)
            await session.flush()
            return _integration_info(record)

    async def get_integration(self, integration_id: str) -> IntegrationInfo:
        """Return the integration or raise ``IntegrationNotFoundError``."""
        async with self._session_factory() as session:
            record = await session.get(ProjectIntegration, integration_id)
            if record is None:
                raise IntegrationNotFoundError(integration_id)
            return _integration_info(record)

    async def list_integrations(
        self,
        project_id: str,
        *,
        status: IntegrationStatus | None = None,
    ) -> list[IntegrationInfo]:
        """Return the project's integrations, optionally filtered by status."""
        async with self._session_factory() as session:
            if await session.get(ProjectWorkspace, project_id) is None:
                raise ProjectNotFoundError(project_id)
            stmt = (
                select(ProjectIntegration)
                .where(ProjectIntegration.project_id == project_id)
                .order_by(ProjectIntegration.created_at, ProjectIntegration.platform)
            )
            if status is not None:
                stmt = stmt.where(ProjectIntegration.status == status.value)
            records = await session.scalars(stmt)
            return [_integration_info(record) for record in records]

    async def update_integration_status(
        self,
        integration_id: str,
        status: IntegrationStatus,
        *,
        error_message: str | None = None,
    ) -> IntegrationInfo:
        """Set an integration's status and error message."""
        async with self._session_factory() as session, session.begin():
            record = await self._require_integration(session, integration_id)
            record.status = status.value
            record.error_message = error_message
            await session.flush()
            return _integration_info(record)

    async def delete_integration(self, integration_id: str) -> None:
        """Delete an integration and its data sources."""
        async with self._session_factory() as session, session.begin():
            record = await self._require_integration(session, integration_id)
            await session.execute(
                delete(ProjectDataSource).where(
                    ProjectDataSource.integration_id == integration_id
                )
            )
            await session.delete(record)

    # Data sources

    async def add_data_source(  # noqa: PLR0913
        self,
        integration_id: str,
        *,
        source_type: str,
        source_id: str,
        name: str,
        is_selected: bool = True,
    ) -> DataSourceInfo:
        """Attach a data source to an integration."""
        async with self._session_factory() as session, session.begin():
            integration = await self._require_integration(session, integration_id)
            record = ProjectDataSource(
                project_id=integration.project_id,
                integration_id=integration_id,
                source_type=source_type,
                source_id=source_id,
                name=name,
                is_selected=is_selected,
            )
            session.add(record)
            await session.flush()
            return _data_source_info(record)

    async def get_data_source(self, data_source_id: str) -> DataSourceInfo:
        """Return the data source or raise ``DataSourceNotFoundError``."""
        async with self._session_factory() as session:
            record = await session.get(ProjectDataSource, data_source_id)
            if record is None:
                raise DataSourceNotFoundError(data_source_id)
            return _data_source_info(record)

    async def list_data_sources(self, project_id: str) -> list[DataSourceInfo]:
        """Return every data source of the project."""
        async with self._session_factory() as session:
            records = await session.scalars(
                select(ProjectDataSource)
                .where(ProjectDataSource.project_id == project_id)
                .order_by(ProjectDataSource.created_at, ProjectDataSource.name)
            )
            return [_data_source_info(record) for record in records]

    async def set_data_source_selected(
        self, data_source_id: str, *, is_selected: bool
    ) -> DataSourceInfo:
        """Select or deselect a data source for ingestion."""
        async with self._session_factory() as session, session.begin():
            record = await session.get(ProjectDataSource, data_source_id)
            if record is None:
                raise DataSourceNotFoundError(data_source_id)
            record.is_selected = is_selected
            await session.flush()
            return _data_source_info(record)

    # Checkpoints and sync status

    async def get_sync_checkpoint(self, integration_id: str) -> dict[str, typ.Any]:
        """Return a copy of the integration's checkpoint mapping."""
        async with self._session_factory() as session:
            record = await self._require_integration(session, integration_id)
            return dict(record.sync_checkpoint or {})

    async def replace_sync_checkpoint(
        self,
        integration_id: str,
        checkpoint: cabc.Mapping[str, typ.Any],
    ) -> None:
        """Replace the integration's checkpoint mapping wholesale."""
        async with self._session_factory() as session, session.begin():
            record = await self._require_integration(session, integration_id)
            record.sync_checkpoint = dict(checkpoint)

    async def record_sync_result(
        self,
        integration_id: str,
        *,
        status: SyncStatus,
        error_message: str | None = None,
        integration_status: IntegrationStatus | None = None,
    ) -> None:
        """Record the outcome of a cycle without touching the checkpoint."""
        async with self._session_factory() as session, session.begin():
            record = await self._require_integration(session, integration_id)
            record.last_sync_status = status.value
            record.error_message = error_message
            if integration_status is not None:
                record.status = integration_status.value

    async def reset_integration(self, integration_id: str) -> None:
        """Return an errored integration to active and clear its error."""
        async with self._session_factory() as session, session.begin():
            record = await self._require_integration(session, integration_id)
            record.status = IntegrationStatus.ACTIVE.value
            record.error_message = None
            if record.last_sync_status == SyncStatus.ERROR:
                record.last_sync_status = None

    async def commit_ingestion_cycle(
        self,
        integration_id: str,
        *,
        result: ProcessingResult,
        checkpoint: cabc.Mapping[str, typ.Any],
        synced_at: dt.datetime,
    ) -> None:
        """Persist a cycle's entities, relationships and checkpoint atomically.

        Entities already stored under the same ID are merged with the new
        sighting, so knowledge accumulates across cycles. Relationships are
        replaced by ID.
        """
        async with self._session_factory() as session, session.begin():
            integration = await self._require_integration(session, integration_id)
            project_id = integration.project_id
            for entity_type, entity in result.iter_entities():
                await self._upsert_entity(session, project_id, entity_type, entity)
            for relationship in result.relationships:
                await session.merge(
                    KnowledgeRelationshipRecord(
                        project_id=project_id,
                        relationship_id=relationship.id,
                        source_type=relationship.source_type,
                        source_id=relationship.source_id,
                        target_type=relationship.target_type,
                        target_id=relationship.target_id,
                        relationship_type=relationship.type.value,
                        strength=relationship.strength,
                        payload=msgspec.to_builtins(relationship),
                    )
                )
            integration.sync_checkpoint = dict(checkpoint)
            integration.last_sync_at = synced_at
            integration.last_sync_status = SyncStatus.SUCCESS.value
            integration.error_message = None
            data_sources = await session.scalars(
                select(ProjectDataSource).where(
                    ProjectDataSource.integration_id == integration_id,
                    ProjectDataSource.is_selected.is_(True),
                )
            )
            for data_source in data_sources:
                data_source.last_sync_at = synced_at

    # Knowledge

    async def list_entities(
        self,
        project_id: str,
        entity_type: EntityType | None = None,
    ) -> list[KnowledgeEntity]:
        """Return stored entities rehydrated as msgspec structs."""
        async with self._session_factory() as session:
            stmt = (
                select(KnowledgeEntityRecord)
                .where(KnowledgeEntityRecord.project_id == project_id)
                .order_by(
                    KnowledgeEntityRecord.entity_type, KnowledgeEntityRecord.entity_id
                )
            )
            if entity_type is not None:
                stmt = stmt.where(
                    KnowledgeEntityRecord.entity_type == entity_type.value
                )
            records = await session.scalars(stmt)
            return [
                msgspec.convert(
                    record.payload, ENTITY_STRUCTS[EntityType(record.entity_type)]
                )
                for record in records
            ]

    async def list_relationships(self, project_id: str) -> list[Relationship]:
        """Return stored relationships rehydrated as msgspec structs."""
        async with self._session_factory() as session:
            records = await session.scalars(
                select(KnowledgeRelationshipRecord)
                .where(KnowledgeRelationshipRecord.project_id == project_id)
                .order_by(KnowledgeRelationshipRecord.relationship_id)
            )
            return [msgspec.convert(record.payload, Relationship) for record in records]

    async def _upsert_entity(
        self,
        session: AsyncSession,
        project_id: str,
        entity_type: EntityType,
        entity: KnowledgeEntity,
    ) -> None:
        existing = await session.get(
            KnowledgeEntityRecord, (project_id, entity_type.value, entity.id)
        )
        if existing is None:
            session.add(
                KnowledgeEntityRecord(
                    project_id=project_id,
                    entity_type=entity_type.value,
                    entity_id=entity.id,
                    platform=_entity_platform(entity),
                    payload=msgspec.to_builtins(entity),
                )
            )
            return
        stored = msgspec.convert(existing.payload, ENTITY_STRUCTS[entity_type])
        merged = _merge_entity(stored, entity)
        existing.payload = msgspec.to_builtins(merged)
        existing.updated_at = utcnow()

    async def _require_integration(
        self, session: AsyncSession, integration_id: str
    ) -> ProjectIntegration:
        record = await session.get(ProjectIntegration, integration_id)
        if record is None:
            raise IntegrationNotFoundError(integration_id)
        return record
