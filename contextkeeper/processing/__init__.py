"""Context processing: batched knowledge extraction and relationship synthesis."""

from __future__ import annotations

from .config import ProcessorConfig
from .errors import ProcessorConfigError, is_retryable_error
from .observability import ProcessingEventLogger, ProcessingEventType
from .processor import (
    ContextProcessor,
    group_discussions,
    group_file_references,
    group_threads,
    partition_batches,
)
from .relationships import EntitySet, clamp_strength, synthesize_relationships

__all__ = [
    "ContextProcessor",
    "EntitySet",
    "ProcessingEventLogger",
    "ProcessingEventType",
    "ProcessorConfig",
    "ProcessorConfigError",
    "clamp_strength",
    "group_discussions",
    "group_file_references",
    "group_threads",
    "is_retryable_error",
    "partition_batches",
    "synthesize_relationships",
]
