"""Event contracts shared by connectors, the orchestrator and the processor."""

from __future__ import annotations

from .models import (
    EventType,
    Metadata,
    MetadataValue,
    NormalizedEvent,
    RawEvent,
    coerce_metadata,
    with_utc_timestamp,
)

__all__ = [
    "EventType",
    "Metadata",
    "MetadataValue",
    "NormalizedEvent",
    "RawEvent",
    "coerce_metadata",
    "with_utc_timestamp",
]
