"""Per-integration sync checkpoint.

The checkpoint is stored as a plain JSON mapping on the integration row.
``SyncCheckpoint`` reads that mapping leniently (missing or malformed values
fall back to empty defaults) and writes it back with unknown keys preserved,
so fields written by other tools survive a round trip through the
orchestrator.
"""

from __future__ import annotations

import datetime as dt
import typing as typ

import msgspec

from contextkeeper.common.time import ensure_utc, format_timestamp, parse_timestamp
from contextkeeper.knowledge.text import unique

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from contextkeeper.events import RawEvent

LAST_SYNC_TIME = "last_sync_time"
TOTAL_EVENTS_PROCESSED = "total_events_processed"
LATEST_EVENT_TIMESTAMP = "latest_event_timestamp"
PROCESSED_EVENT_IDS = "processed_event_ids"
LAST_BATCH_SIZE = "last_batch_size"

_KNOWN_KEYS = frozenset(
    {
        LAST_SYNC_TIME,
        TOTAL_EVENTS_PROCESSED,
        LATEST_EVENT_TIMESTAMP,
        PROCESSED_EVENT_IDS,
        LAST_BATCH_SIZE,
    }
)


def _non_negative_int(value: object) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return max(value, 0)
    if isinstance(value, float) and value.is_integer():
        return max(int(value), 0)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return 0


def _id_list(value: object) -> tuple[str, ...]:
    if isinstance(value, str) or not isinstance(value, list | tuple):
        return ()
    return unique(str(item) for item in value if item is not None)


class SyncCheckpoint(msgspec.Struct, kw_only=True, frozen=True):
    """Durable ingestion cursor and deduplication window.

    Attributes
    ----------
    last_sync_time
        When the last successful cycle finished; ``None`` before the first.
    total_events_processed
        Running count of events handed to the processor. Never decreases.
    latest_event_timestamp
        Newest event timestamp seen so far.
    processed_event_ids
        Platform IDs already processed, newest first, bounded by the
        orchestrator's window.
    last_batch_size
        Number of events processed by the last successful cycle.
    extra
        Keys this class does not interpret, written back unchanged.

    """

    last_sync_time: dt.datetime | None = None
    total_events_processed: int = 0
    latest_event_timestamp: dt.datetime | None = None
    processed_event_ids: tuple[str, ...] = ()
    last_batch_size: int = 0
    extra: dict[str, typ.Any] = msgspec.field(default_factory=dict)

    @classmethod
    def from_mapping(
        cls, mapping: cabc.Mapping[str, typ.Any] | None
    ) -> SyncCheckpoint:
        """Build a checkpoint from a stored mapping, tolerating bad values."""
        if not mapping:
            return cls()
        return cls(
            last_sync_time=parse_timestamp(mapping.get(LAST_SYNC_TIME)),
            total_events_processed=_non_negative_int(
                mapping.get(TOTAL_EVENTS_PROCESSED)
            ),
            latest_event_timestamp=parse_timestamp(
                mapping.get(LATEST_EVENT_TIMESTAMP)
            ),
            processed_event_ids=_id_list(mapping.get(PROCESSED_EVENT_IDS)),
            last_batch_size=_non_negative_int(mapping.get(LAST_BATCH_SIZE)),
            extra={k: v for k, v in mapping.items() if k not in _KNOWN_KEYS},
        )

    def to_mapping(self) -> dict[str, typ.Any]:
        """Return the JSON-compatible mapping stored on the integration."""
        return {
            **self.extra,
            LAST_SYNC_TIME: format_timestamp(self.last_sync_time),
            TOTAL_EVENTS_PROCESSED: self.total_events_processed,
            LATEST_EVENT_TIMESTAMP: format_timestamp(self.latest_event_timestamp),
            PROCESSED_EVENT_IDS: list(self.processed_event_ids),
            LAST_BATCH_SIZE: self.last_batch_size,
        }

    def fetch_since(
        self,
        now: dt.datetime,
        *,
        initial_lookback: dt.timedelta,
        overlap: dt.timedelta,
    ) -> dt.datetime:
        """Return the timestamp the next fetch should start from."""
        if self.last_sync_time is None:
            return now - initial_lookback
        return self.last_sync_time - overlap

    def advance(
        self,
        events: cabc.Sequence[RawEvent],
        *,
        processed_count: int,
        now: dt.datetime,
        window: int,
    ) -> SyncCheckpoint:
        """Return the checkpoint after a successful cycle over ``events``.

        The new IDs are placed ahead of the retained ones, newest event
        first, and the combined list is truncated to ``window`` entries.
        """
        newest_first = sorted(
            events, key=lambda event: ensure_utc(event.timestamp), reverse=True
        )
        ids = unique(
            (*(event.id for event in newest_first), *self.processed_event_ids)
        )[:window]
        latest = self.latest_event_timestamp
        if latest is not None:
            latest = ensure_utc(latest)
        for event in events:
            stamp = ensure_utc(event.timestamp)
            if latest is None or stamp > latest:
                latest = stamp
        return msgspec.structs.replace(
            self,
            last_sync_time=now,
            total_events_processed=self.total_events_processed + processed_count,
            latest_event_timestamp=latest,
            processed_event_ids=ids,
            last_batch_size=processed_count,
        )
