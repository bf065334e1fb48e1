"""Knowledge entities and relationships produced by the context processor.

Entities are immutable msgspec structs with deterministic identifiers so the
same activity always yields the same IDs, whichever batch it was processed
in. Relationship endpoints are modelled as a tagged union: ``EntityRef``
points at an entity that exists in the same result, while ``CrossPlatformRef``
names a virtual node (a platform pair, an external decision, a contributor)
that has no entity of its own.
"""

from __future__ import annotations

import datetime as dt
import enum
import typing as typ

import msgspec


class EntityType(enum.StrEnum):
    """Kinds of knowledge entity that a relationship may reference."""

    DECISION = "decision"
    DISCUSSION = "discussion"
    FEATURE = "feature"
    FILE = "file"


CROSS_PLATFORM = "cross_platform"


class RelationshipType(enum.StrEnum):
    """Edge labels emitted by relationship synthesis."""

    RELATES_TO = "relates_to"
    RELATES_TO_FILE = "relates_to_file"
    INTRODUCED_BY = "introduced_by"
    DISCUSSED_IN = "discussed_in"
    CONTRIBUTED_BY = "contributed_by"
    DISCUSSED_ACROSS = "discussed_across"


class DecisionStatus(enum.StrEnum):
    """Lifecycle of an engineering decision."""

    ACTIVE = "active"
    SUPERSEDED = "superseded"
    DEPRECATED = "deprecated"


class FeatureStatus(enum.StrEnum):
    """Development stage inferred for a feature."""

    PLANNED = "planned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    DEPRECATED = "deprecated"


class DecisionRecord(msgspec.Struct, kw_only=True, frozen=True):
    """An engineering decision extracted from discussion or review activity."""

    id: str
    title: str
    decision: str
    platform_source: str
    created_at: dt.datetime
    rationale: str = ""
    alternatives: tuple[str, ...] = ()
    consequences: tuple[str, ...] = ()
    status: DecisionStatus = DecisionStatus.ACTIVE
    source_event_ids: tuple[str, ...] = ()
    participants: tuple[str, ...] = ()


class DiscussionSummary(msgspec.Struct, kw_only=True, frozen=True):
    """Condensed view of a conversation thread."""

    id: str
    thread_id: str
    platform: str
    summary: str
    created_at: dt.datetime
    participants: tuple[str, ...] = ()
    key_points: tuple[str, ...] = ()
    action_items: tuple[str, ...] = ()
    file_references: tuple[str, ...] = ()
    feature_references: tuple[str, ...] = ()
    source_event_ids: tuple[str, ...] = ()


class FeatureContext(msgspec.Struct, kw_only=True, frozen=True):
    """Development history of a named feature."""

    id: str
    feature_name: str
    created_at: dt.datetime
    updated_at: dt.datetime
    description: str = ""
    status: FeatureStatus = FeatureStatus.IN_PROGRESS
    contributors: tuple[str, ...] = ()
    related_files: tuple[str, ...] = ()
    discussions: tuple[str, ...] = ()
    decisions: tuple[str, ...] = ()
    platforms: tuple[str, ...] = ()


class FileContextHistory(msgspec.Struct, kw_only=True, frozen=True):
    """Change and discussion history of a single file path.

    ``platform_sources`` maps each platform tag to the platform IDs of the
    events on that platform that referenced the file.
    """

    id: str
    file_path: str
    created_at: dt.datetime
    change_reason: str = ""
    discussion_context: str = ""
    related_decisions: tuple[str, ...] = ()
    contributors: tuple[str, ...] = ()
    platform_sources: dict[str, tuple[str, ...]] = msgspec.field(
        default_factory=dict
    )


type KnowledgeEntity = (
    DecisionRecord | DiscussionSummary | FeatureContext | FileContextHistory
)


class EntityRef(msgspec.Struct, kw_only=True, frozen=True, tag="entity"):
    """Relationship endpoint that resolves to an entity in the same result."""

    entity_type: EntityType
    entity_id: str


class CrossPlatformRef(msgspec.Struct, kw_only=True, frozen=True, tag=CROSS_PLATFORM):
    """Relationship endpoint for a virtual node outside the entity set."""

    key: str
    platforms: tuple[str, ...] = ()


type Endpoint = EntityRef | CrossPlatformRef


class Relationship(msgspec.Struct, kw_only=True, frozen=True):
    """Typed, weighted edge between two knowledge endpoints."""

    id: str
    source: EntityRef | CrossPlatformRef
    target: EntityRef | CrossPlatformRef
    type: RelationshipType
    strength: float
    created_at: dt.datetime
    metadata: dict[str, str] = msgspec.field(default_factory=dict)

    @property
    def source_type(self) -> str:
        """Return the entity type of the source, or the cross-platform tag."""
        return _endpoint_type(self.source)

    @property
    def source_id(self) -> str:
        """Return the entity ID of the source, or the cross-platform key."""
        return _endpoint_id(self.source)

    @property
    def target_type(self) -> str:
        """Return the entity type of the target, or the cross-platform tag."""
        return _endpoint_type(self.target)

    @property
    def target_id(self) -> str:
        """Return the entity ID of the target, or the cross-platform key."""
        return _endpoint_id(self.target)


def _endpoint_type(endpoint: Endpoint) -> str:
    match endpoint:
        case EntityRef(entity_type=entity_type):
            return str(entity_type)
        case CrossPlatformRef():
            return CROSS_PLATFORM


def _endpoint_id(endpoint: Endpoint) -> str:
    match endpoint:
        case EntityRef(entity_id=entity_id):
            return entity_id
        case CrossPlatformRef(key=key):
            return key


class ProcessingError(msgspec.Struct, kw_only=True, frozen=True):
    """Recoverable failure attributed to one input event."""

    event_id: str
    platform: str
    error: str
    timestamp: dt.datetime
    retryable: bool = False
    capability: str | None = None


class ProcessingResult(msgspec.Struct, kw_only=True, frozen=True):
    """Aggregate outcome of one ``ContextProcessor.process_events`` call."""

    processed_events: int
    decisions: tuple[DecisionRecord, ...] = ()
    discussion_summaries: tuple[DiscussionSummary, ...] = ()
    feature_contexts: tuple[FeatureContext, ...] = ()
    file_contexts: tuple[FileContextHistory, ...] = ()
    relationships: tuple[Relationship, ...] = ()
    errors: tuple[ProcessingError, ...] = ()

    def entity_index(self) -> dict[EntityType, frozenset[str]]:
        """Return the IDs of every entity in this result keyed by type."""
        return {
            EntityType.DECISION: frozenset(d.id for d in self.decisions),
            EntityType.DISCUSSION: frozenset(
                s.id for s in self.discussion_summaries
            ),
            EntityType.FEATURE: frozenset(f.id for f in self.feature_contexts),
            EntityType.FILE: frozenset(f.id for f in self.file_contexts),
        }

    def resolves(self, endpoint: Endpoint) -> bool:
        """Return whether ``endpoint`` is cross-platform or names an entity here."""
        if isinstance(endpoint, CrossPlatformRef):
            return True
        return endpoint.entity_id in self.entity_index()[endpoint.entity_type]

    def iter_entities(self) -> typ.Iterator[tuple[EntityType, KnowledgeEntity]]:
        """Yield every entity with its type, in result order."""
        for decision in self.decisions:
            yield (EntityType.DECISION, decision)
        for summary in self.discussion_summaries:
            yield (EntityType.DISCUSSION, summary)
        for feature in self.feature_contexts:
            yield (EntityType.FEATURE, feature)
        for file_context in self.file_contexts:
            yield (EntityType.FILE, file_context)


ENTITY_STRUCTS: dict[EntityType, type[KnowledgeEntity]] = {
    EntityType.DECISION: DecisionRecord,
    EntityType.DISCUSSION: DiscussionSummary,
    EntityType.FEATURE: FeatureContext,
    EntityType.FILE: FileContextHistory,
}
