"""Durable storage for projects, integrations, checkpoints and knowledge."""

from __future__ import annotations

from .errors import (
    DataSourceNotFoundError,
    IntegrationNotFoundError,
    ProjectNotFoundError,
    StoreError,
    TimezoneAwareRequiredError,
)
from .models import DataSourceInfo, IntegrationInfo, ProjectInfo
from .records import (
    Base,
    IntegrationStatus,
    KnowledgeEntityRecord,
    KnowledgeRelationshipRecord,
    ProjectDataSource,
    ProjectIntegration,
    ProjectWorkspace,
    SyncStatus,
    UTCDateTime,
    init_storage,
)
from .store import RepositoryStore, SqlAlchemyRepositoryStore

__all__ = [
    "Base",
    "DataSourceInfo",
    "DataSourceNotFoundError",
    "IntegrationInfo",
    "IntegrationNotFoundError",
    "IntegrationStatus",
    "KnowledgeEntityRecord",
    "KnowledgeRelationshipRecord",
    "ProjectDataSource",
    "ProjectInfo",
    "ProjectIntegration",
    "ProjectNotFoundError",
    "ProjectWorkspace",
    "RepositoryStore",
    "SqlAlchemyRepositoryStore",
    "StoreError",
    "SyncStatus",
    "TimezoneAwareRequiredError",
    "UTCDateTime",
    "init_storage",
]
