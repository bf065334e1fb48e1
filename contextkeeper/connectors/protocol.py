"""PlatformConnector protocol implemented by each source platform adapter."""

from __future__ import annotations

import typing as typ

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    import datetime as dt

    from contextkeeper.events import NormalizedEvent, RawEvent

    from .models import AuthConfig, AuthResult, PlatformInfo


@typ.runtime_checkable
class PlatformConnector(typ.Protocol):
    """Adapter between one collaboration platform and the orchestrator.

    ``fetch_events`` and ``normalize_data`` may raise
    :class:`~contextkeeper.connectors.errors.ConnectorError`; any failure is
    fatal to the current ingestion cycle of that integration only.
    """

    async def authenticate(self, config: AuthConfig) -> AuthResult:
        """Authorize the connector with ``config``."""
        ...

    async def fetch_events(
        self, since: dt.datetime, limit: int
    ) -> cabc.Sequence[RawEvent]:
        """Return at most ``limit`` raw events that happened after ``since``."""
        ...

    async def normalize_data(
        self, raw_events: cabc.Sequence[RawEvent]
    ) -> cabc.Sequence[NormalizedEvent]:
        """Convert raw platform events into normalized events."""
        ...

    def schedule_sync(self, last_sync: dt.datetime | None) -> dt.timedelta:
        """Recommend the delay before the next sync cycle."""
        ...

    def describe_platform(self) -> PlatformInfo:
        """Return the platform tag, display name and connector version."""
        ...
