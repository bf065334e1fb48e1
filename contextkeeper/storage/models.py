"""Data transfer objects returned by the repository store."""

from __future__ import annotations

import dataclasses
import datetime as dt
import typing as typ

from .records import IntegrationStatus


@dataclasses.dataclass(slots=True, frozen=True)
class ProjectInfo:
    """Lightweight view of a project workspace."""

    id: str
    name: str
    description: str
    owner_id: str
    created_at: dt.datetime
    updated_at: dt.datetime


@dataclasses.dataclass(slots=True, frozen=True)
class IntegrationInfo:
    """Lightweight view of a project integration.

    ``sync_checkpoint`` is a copy of the stored mapping; mutating it has no
    effect on the store.
    """

    id: str
    project_id: str
    platform: str
    status: IntegrationStatus
    sync_checkpoint: dict[str, typ.Any]
    configuration: dict[str, typ.Any]
    last_sync_at: dt.datetime | None
    last_sync_status: str | None
    error_message: str | None
    sync_interval: dt.timedelta | None
    created_at: dt.datetime
    updated_at: dt.datetime

    @property
    def is_active(self) -> bool:
        """Return whether the integration should have a running task."""
        return self.status is IntegrationStatus.ACTIVE


@dataclasses.dataclass(slots=True, frozen=True)
class DataSourceInfo:
    """Lightweight view of a project data source."""

    id: str
    project_id: str
    integration_id: str
    source_type: str
    source_id: str
    name: str
    is_selected: bool
    last_sync_at: dt.datetime | None
    created_at: dt.datetime
