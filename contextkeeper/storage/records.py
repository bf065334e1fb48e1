"""Persistence models for projects, integrations and extracted knowledge.

Models keep to portable SQLAlchemy types so the same code works with SQLite
in tests and PostgreSQL in production. Checkpoints, connector configuration
and entity payloads are JSON columns holding msgspec builtins.
"""

from __future__ import annotations

import datetime as dt
import enum
import typing as typ
import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from contextkeeper.common.time import utcnow

from .errors import TimezoneAwareRequiredError

if typ.TYPE_CHECKING:
    from sqlalchemy.engine import Dialect
    from sqlalchemy.ext.asyncio import AsyncEngine


class IntegrationStatus(enum.StrEnum):
    """Stored lifecycle status of a project integration."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    ERROR = "error"
    PENDING = "pending"


class SyncStatus(enum.StrEnum):
    """Outcome of the most recent ingestion cycle."""

    SUCCESS = "success"
    ERROR = "error"


class Base(DeclarativeBase):
    """Base declarative class for contextkeeper persistence."""


class UTCDateTime(TypeDecorator[dt.datetime]):
    """DateTime wrapper that round-trips UTC tzinfo even on SQLite."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(
        self, value: dt.datetime | None, dialect: Dialect
    ) -> dt.datetime | None:
        """Force bound datetime values to UTC with tzinfo."""
        if value is None:
            return None
        if value.tzinfo is None:
            raise TimezoneAwareRequiredError.for_column()
        return value.astimezone(dt.UTC)

    def process_result_value(
        self, value: dt.datetime | None, dialect: Dialect
    ) -> dt.datetime | None:
        """Ensure result datetimes are UTC and timezone aware."""
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=dt.UTC)
        return value.astimezone(dt.UTC)


def _new_id() -> str:
    return str(uuid.uuid4())


class ProjectWorkspace(Base):
    """Project whose platform activity is ingested together."""

    __tablename__ = "project_workspaces"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(255))
    description: Mapped[str] = mapped_column(Text(), default="")
    owner_id: Mapped[str] = mapped_column(String(255), default="")
    created_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow)
    updated_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime(), default=utcnow, onupdate=utcnow
    )


class ProjectIntegration(Base):
    """Configured connection between a project and one platform."""

    __tablename__ = "project_integrations"
    __table_args__ = (
        UniqueConstraint("project_id", "platform", name="uq_integration_platform"),
        Index("ix_project_integrations_project", "project_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    project_id: Mapped[str] = mapped_column(
        ForeignKey("project_workspaces.id", ondelete="CASCADE")
    )
    platform: Mapped[str] = mapped_column(String(64))
    status: Mapped[str] = mapped_column(
        String(16), default=IntegrationStatus.PENDING.value
    )
    sync_checkpoint: Mapped[dict[str, typ.Any]] = mapped_column(JSON, default=dict)
    configuration: Mapped[dict[str, typ.Any]] = mapped_column(JSON, default=dict)
    last_sync_at: Mapped[dt.datetime | None] = mapped_column(
        UTCDateTime(), default=None
    )
    last_sync_status: Mapped[str | None] = mapped_column(String(16), default=None)
    error_message: Mapped[str | None] = mapped_column(Text(), default=None)
    sync_interval_seconds: Mapped[int | None] = mapped_column(Integer, default=None)
    created_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow)
    updated_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime(), default=utcnow, onupdate=utcnow
    )


class ProjectDataSource(Base):
    """Repository, channel or board selected for ingestion."""

    __tablename__ = "project_data_sources"
    __table_args__ = (
        UniqueConstraint(
            "integration_id", "source_type", "source_id", name="uq_data_source"
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    project_id: Mapped[str] = mapped_column(
        ForeignKey("project_workspaces.id", ondelete="CASCADE")
    )
    integration_id: Mapped[str] = mapped_column(
        ForeignKey("project_integrations.id", ondelete="CASCADE")
    )
    source_type: Mapped[str] = mapped_column(String(64))
    source_id: Mapped[str] = mapped_column(String(255))
    name: Mapped[str] = mapped_column(String(255))
    is_selected: Mapped[bool] = mapped_column(Boolean, default=True)
    last_sync_at: Mapped[dt.datetime | None] = mapped_column(
        UTCDateTime(), default=None
    )
    created_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow)


class KnowledgeEntityRecord(Base):
    """Extracted knowledge entity stored as a msgspec payload."""

    __tablename__ = "knowledge_entities"
    __table_args__ = (Index("ix_knowledge_entities_type", "project_id", "entity_type"),)

    project_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    entity_type: Mapped[str] = mapped_column(String(32), primary_key=True)
    entity_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    platform: Mapped[str] = mapped_column(String(64), default="")
    payload: Mapped[dict[str, typ.Any]] = mapped_column(JSON)
    updated_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime(), default=utcnow, onupdate=utcnow
    )


class KnowledgeRelationshipRecord(Base):
    """Relationship between two knowledge endpoints."""

    __tablename__ = "knowledge_relationships"
    __table_args__ = (
        Index("ix_knowledge_relationships_source", "project_id", "source_id"),
        Index("ix_knowledge_relationships_target", "project_id", "target_id"),
    )

    project_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    relationship_id: Mapped[str] = mapped_column(String(512), primary_key=True)
    source_type: Mapped[str] = mapped_column(String(32))
    source_id: Mapped[str] = mapped_column(String(255))
    target_type: Mapped[str] = mapped_column(String(32))
    target_id: Mapped[str] = mapped_column(String(255))
    relationship_type: Mapped[str] = mapped_column(String(32))
    strength: Mapped[float] = mapped_column(Float)
    payload: Mapped[dict[str, typ.Any]] = mapped_column(JSON)


async def init_storage(engine: AsyncEngine) -> None:
    """Create all tables registered with Base if they are absent."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
