"""Platform-agnostic event structures exchanged between connectors and processors."""

from __future__ import annotations

import collections.abc as cabc
import datetime as dt
import enum
import math

import msgspec

from contextkeeper.common.time import ensure_utc

type MetadataValue = (
    str
    | int
    | float
    | bool
    | None
    | list[MetadataValue]
    | dict[str, MetadataValue]
)
type Metadata = dict[str, MetadataValue]


class EventType(enum.StrEnum):
    """Kinds of activity a connector can emit."""

    PULL_REQUEST = "pull_request"
    ISSUE = "issue"
    COMMIT = "commit"
    MESSAGE = "message"
    THREAD = "thread"
    DISCUSSION = "discussion"


def _coerce_value(value: object, depth: int) -> MetadataValue:
    if value is None or isinstance(value, str | bool | int):
        return value
    if isinstance(value, float):
        # JSON has no representation for NaN or infinity.
        return value if math.isfinite(value) else str(value)
    if isinstance(value, dt.datetime | dt.date):
        return value.isoformat()
    if isinstance(value, enum.Enum):
        return _coerce_value(value.value, depth)
    if depth <= 0:
        return str(value)
    if isinstance(value, cabc.Mapping):
        return {str(k): _coerce_value(v, depth - 1) for k, v in value.items()}
    if isinstance(value, cabc.Iterable) and not isinstance(value, bytes | bytearray):
        return [_coerce_value(item, depth - 1) for item in value]
    return str(value)


def coerce_metadata(
    raw: cabc.Mapping[object, object] | None,
    *,
    max_depth: int = 8,
) -> Metadata:
    """Return a JSON-safe copy of an arbitrary metadata mapping.

    Connectors hand over whatever their platform SDK produced. Keys are
    stringified, timestamps become ISO 8601 strings, sequences become lists,
    and anything else (including values nested deeper than ``max_depth``) is
    rendered with ``str`` so the result always fits ``MetadataValue``.

    Examples
    --------
    >>> coerce_metadata({"pr": 12, "labels": ("bug", "ui"), 3: object})["labels"]
    ['bug', 'ui']

    """
    if not raw:
        return {}
    return {str(key): _coerce_value(value, max_depth) for key, value in raw.items()}


class RawEvent(msgspec.Struct, kw_only=True, frozen=True):
    """Platform-specific activity as fetched by a connector.

    Attributes
    ----------
    id
        Identifier unique within the source platform.
    type
        Platform-native event kind (for example ``pull_request`` or
        ``message``).
    timestamp
        When the activity happened on the platform.
    author
        Display name or handle of the actor; may be empty.
    content
        Free text body; may be empty.
    platform
        Platform tag such as ``github`` or ``slack``.
    references
        File paths, ticket keys or URLs mentioned by the event.
    metadata
        Open-ended platform payload.

    """

    id: str
    type: str
    timestamp: dt.datetime
    platform: str
    author: str = ""
    content: str = ""
    title: str = ""
    references: tuple[str, ...] = ()
    metadata: Metadata = msgspec.field(default_factory=dict)


class NormalizedEvent(msgspec.Struct, kw_only=True, frozen=True):
    """Platform-agnostic representation of one activity item.

    Instances are immutable once a connector produces them. ``platform_id`` is
    the deduplication key and is unique per platform.
    """

    platform_id: str
    event_type: EventType
    timestamp: dt.datetime
    platform: str
    author: str = ""
    content: str = ""
    title: str = ""
    file_refs: tuple[str, ...] = ()
    feature_refs: tuple[str, ...] = ()
    thread_id: str | None = None
    metadata: Metadata = msgspec.field(default_factory=dict)


def with_utc_timestamp[E: (RawEvent, NormalizedEvent)](event: E) -> E:
    """Return ``event`` with an aware UTC timestamp.

    Connectors may emit naive timestamps; they are taken as UTC so events
    from different platforms and stored checkpoints stay comparable.
    """
    if event.timestamp.tzinfo is dt.UTC:
        return event
    return msgspec.structs.replace(event, timestamp=ensure_utc(event.timestamp))
