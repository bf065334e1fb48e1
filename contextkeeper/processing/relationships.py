"""Relationship synthesis over the merged entities of one processing run.

Synthesis runs once, after every batch has been extracted and merged, so the
edges depend only on the final entity set and never on batch boundaries.
Entity endpoints always reference an entity present in the same result;
anything that cannot be resolved (a decision named by a file history but not
extracted, a platform pair) becomes a ``CrossPlatformRef``.
"""

from __future__ import annotations

import collections
import dataclasses
import datetime as dt
import itertools
import typing as typ

from contextkeeper.common.slug import slugify
from contextkeeper.knowledge.models import (
    CrossPlatformRef,
    EntityRef,
    EntityType,
    Relationship,
    RelationshipType,
)
from contextkeeper.knowledge.text import (
    common_words,
    extract_keywords,
    file_extension,
)

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from contextkeeper.knowledge.models import (
        DecisionRecord,
        DiscussionSummary,
        FeatureContext,
        FileContextHistory,
    )

_FEATURE_FILE_STRENGTH = 0.9
_DISCUSSION_DECISION_STRENGTH = 0.8
_CONTRIBUTOR_STRENGTH = 0.7
_CROSS_PLATFORM_STRENGTH = 0.8
_LINKED_DECISION_FLOOR = 0.5
_UNRESOLVED_DECISION_STRENGTH = 0.5

_PATH_MENTION_WEIGHT = 0.5
_EXTENSION_WEIGHT = 0.2
_KEYWORD_WEIGHT = 0.1
_FEATURE_MENTION_WEIGHT = 0.6
_PARTICIPANT_WEIGHT = 0.2
_PROXIMITY_WEIGHT = 0.2
_PROXIMITY_WINDOW = dt.timedelta(days=7)

# Caps the pairwise contributor edges per person at n * (n - 1) / 2.
MAX_CONTRIBUTOR_ENTITIES = 50


@dataclasses.dataclass(frozen=True, slots=True)
class EntitySet:
    """The merged entities a relationship pass runs over."""

    decisions: cabc.Sequence[DecisionRecord]
    summaries: cabc.Sequence[DiscussionSummary]
    features: cabc.Sequence[FeatureContext]
    files: cabc.Sequence[FileContextHistory]


def clamp_strength(value: float) -> float:
    """Clamp a similarity score into ``[0.0, 1.0]``."""
    return min(1.0, max(0.0, value))


def decision_file_strength(decision: DecisionRecord, file: FileContextHistory) -> float:
    """Score how strongly a decision concerns a file.

    A path mention scores 0.5, a mention of the file's extension 0.2, and
    each keyword shared with the file's discussion context 0.1.
    """
    text = decision.decision.lower()
    strength = 0.0
    if file.file_path.lower() in text:
        strength += _PATH_MENTION_WEIGHT
    extension = file_extension(file.file_path).lower()
    if extension and extension in text:
        strength += _EXTENSION_WEIGHT
    shared = common_words(
        extract_keywords(decision.decision),
        extract_keywords(file.discussion_context),
    )
    strength += len(shared) * _KEYWORD_WEIGHT
    return clamp_strength(strength)


def _names_feature(decision: DecisionRecord, feature: FeatureContext) -> bool:
    name = feature.feature_name.lower()
    return bool(name) and (
        name in decision.decision.lower() or name in decision.title.lower()
    )


def _shared_count(first: cabc.Iterable[str], second: cabc.Iterable[str]) -> int:
    return len(set(filter(None, first)) & set(filter(None, second)))


def decision_feature_strength(
    decision: DecisionRecord, feature: FeatureContext
) -> float:
    """Score how strongly a decision shaped a feature.

    Naming the feature scores 0.6, each shared participant 0.2, and being
    made within a week of the feature's first appearance (either side) 0.2.
    """
    strength = 0.0
    if _names_feature(decision, feature):
        strength += _FEATURE_MENTION_WEIGHT
    shared = _shared_count(decision.participants, feature.contributors)
    strength += shared * _PARTICIPANT_WEIGHT
    if abs(decision.created_at - feature.created_at) <= _PROXIMITY_WINDOW:
        strength += _PROXIMITY_WEIGHT
    return clamp_strength(strength)


def _discusses(summary: DiscussionSummary, decision: DecisionRecord) -> bool:
    if set(summary.source_event_ids) & set(decision.source_event_ids):
        return True
    if _shared_count(summary.participants, decision.participants):
        return True
    title = decision.title.strip().lower()
    return bool(title) and title in summary.summary.lower()


class _RelationshipCollector:
    """Collect relationships in emission order, keeping the first per ID."""

    def __init__(self) -> None:
        self._relationships: dict[str, Relationship] = {}

    def add(  # noqa: PLR0913
        self,
        relationship_id: str,
        source: EntityRef | CrossPlatformRef,
        target: EntityRef | CrossPlatformRef,
        relationship_type: RelationshipType,
        strength: float,
        created_at: dt.datetime,
        metadata: dict[str, str] | None = None,
    ) -> None:
        if relationship_id in self._relationships:
            return
        self._relationships[relationship_id] = Relationship(
            id=relationship_id,
            source=source,
            target=target,
            type=relationship_type,
            strength=clamp_strength(strength),
            created_at=created_at,
            metadata=metadata or {},
        )

    def build(self) -> list[Relationship]:
        return list(self._relationships.values())


def _decision_file_edges(entities: EntitySet, out: _RelationshipCollector) -> None:
    decisions_by_id = {decision.id: decision for decision in entities.decisions}
    for decision in entities.decisions:
        for file in entities.files:
            linked = decision.id in file.related_decisions
            if not linked and file.file_path.lower() not in decision.decision.lower():
                continue
            strength = decision_file_strength(decision, file)
            if linked:
                strength = max(strength, _LINKED_DECISION_FLOOR)
            out.add(
                f"rel-{decision.id}-{file.id}",
                EntityRef(entity_type=EntityType.DECISION, entity_id=decision.id),
                EntityRef(entity_type=EntityType.FILE, entity_id=file.id),
                RelationshipType.RELATES_TO,
                strength,
                max(decision.created_at, file.created_at),
                {"decision_title": decision.title, "file_path": file.file_path},
            )
    for file in entities.files:
        for reference in file.related_decisions:
            if reference in decisions_by_id:
                continue
            out.add(
                f"rel-{file.id}-unresolved-{slugify(reference)}",
                EntityRef(entity_type=EntityType.FILE, entity_id=file.id),
                CrossPlatformRef(
                    key=f"decision:{reference}",
                    platforms=tuple(file.platform_sources),
                ),
                RelationshipType.RELATES_TO,
                _UNRESOLVED_DECISION_STRENGTH,
                file.created_at,
                {"file_path": file.file_path, "decision_reference": reference},
            )


def _feature_file_edges(entities: EntitySet, out: _RelationshipCollector) -> None:
    files_by_path = {file.file_path: file for file in entities.files}
    for feature in entities.features:
        for path in feature.related_files:
            file = files_by_path.get(path)
            if file is None:
                continue
            out.add(
                f"rel-{feature.id}-{file.id}",
                EntityRef(entity_type=EntityType.FEATURE, entity_id=feature.id),
                EntityRef(entity_type=EntityType.FILE, entity_id=file.id),
                RelationshipType.RELATES_TO_FILE,
                _FEATURE_FILE_STRENGTH,
                max(feature.created_at, file.created_at),
                {"feature_name": feature.feature_name, "file_path": file.file_path},
            )


def _decision_feature_edges(entities: EntitySet, out: _RelationshipCollector) -> None:
    for decision in entities.decisions:
        for feature in entities.features:
            related = _names_feature(decision, feature) or _shared_count(
                decision.participants, feature.contributors
            )
            if not related:
                continue
            out.add(
                f"rel-{decision.id}-{feature.id}",
                EntityRef(entity_type=EntityType.DECISION, entity_id=decision.id),
                EntityRef(entity_type=EntityType.FEATURE, entity_id=feature.id),
                RelationshipType.INTRODUCED_BY,
                decision_feature_strength(decision, feature),
                max(decision.created_at, feature.created_at),
                {
                    "decision_title": decision.title,
                    "feature_name": feature.feature_name,
                },
            )


def _discussion_decision_edges(
    entities: EntitySet, out: _RelationshipCollector
) -> None:
    for summary in entities.summaries:
        for decision in entities.decisions:
            if not _discusses(summary, decision):
                continue
            out.add(
                f"rel-{summary.id}-{decision.id}",
                EntityRef(entity_type=EntityType.DISCUSSION, entity_id=summary.id),
                EntityRef(entity_type=EntityType.DECISION, entity_id=decision.id),
                RelationshipType.DISCUSSED_IN,
                _DISCUSSION_DECISION_STRENGTH,
                max(summary.created_at, decision.created_at),
                {
                    "thread_id": summary.thread_id,
                    "decision_title": decision.title,
                    "platform": summary.platform,
                },
            )


def _contributor_edges(entities: EntitySet, out: _RelationshipCollector) -> None:
    activity: dict[str, list[tuple[EntityRef, dt.datetime]]] = (
        collections.defaultdict(list)
    )

    def record(
        people: cabc.Iterable[str], ref: EntityRef, created_at: dt.datetime
    ) -> None:
        for person in dict.fromkeys(p.strip() for p in people):
            if person and len(activity[person]) < MAX_CONTRIBUTOR_ENTITIES:
                activity[person].append((ref, created_at))

    for decision in entities.decisions:
        record(
            decision.participants,
            EntityRef(entity_type=EntityType.DECISION, entity_id=decision.id),
            decision.created_at,
        )
    for feature in entities.features:
        record(
            feature.contributors,
            EntityRef(entity_type=EntityType.FEATURE, entity_id=feature.id),
            feature.created_at,
        )
    for file in entities.files:
        record(
            file.contributors,
            EntityRef(entity_type=EntityType.FILE, entity_id=file.id),
            file.created_at,
        )

    for person, entries in activity.items():
        person_slug = slugify(person)
        for (first, first_at), (second, second_at) in itertools.combinations(
            entries, 2
        ):
            out.add(
                f"contrib-{person_slug}-{first.entity_id}-{second.entity_id}",
                first,
                second,
                RelationshipType.CONTRIBUTED_BY,
                _CONTRIBUTOR_STRENGTH,
                max(first_at, second_at),
                {"contributor": person},
            )


def _cross_platform_edges(entities: EntitySet, out: _RelationshipCollector) -> None:
    sightings: list[tuple[EntityRef, tuple[str, ...], dt.datetime, dict[str, str]]] = [
        (
            EntityRef(entity_type=EntityType.FILE, entity_id=file.id),
            tuple(file.platform_sources),
            file.created_at,
            {"file_path": file.file_path},
        )
        for file in entities.files
    ]
    sightings.extend(
        (
            EntityRef(entity_type=EntityType.FEATURE, entity_id=feature.id),
            feature.platforms,
            feature.created_at,
            {"feature_name": feature.feature_name},
        )
        for feature in entities.features
    )
    for ref, platforms, created_at, metadata in sightings:
        distinct = sorted({p for p in platforms if p})
        for first, second in itertools.combinations(distinct, 2):
            out.add(
                f"cross-{ref.entity_id}-{slugify(first)}-{slugify(second)}",
                ref,
                CrossPlatformRef(key=f"{first}-{second}", platforms=(first, second)),
                RelationshipType.DISCUSSED_ACROSS,
                _CROSS_PLATFORM_STRENGTH,
                created_at,
                {**metadata, "platforms": f"{first},{second}"},
            )


def synthesize_relationships(entities: EntitySet) -> list[Relationship]:
    """Derive every relationship between the given entities.

    Rules are applied in a fixed order (decision-file, feature-file,
    decision-feature, discussion-decision, shared contributors, cross
    platform) and the first edge emitted for an ID wins, so the output order
    is stable for a stable entity order.

    Parameters
    ----------
    entities
        Merged decisions, discussion summaries, features and file histories.

    Returns
    -------
    list[Relationship]
        Relationships with strengths clamped to ``[0.0, 1.0]``.

    """
    collector = _RelationshipCollector()
    _decision_file_edges(entities, collector)
    _feature_file_edges(entities, collector)
    _decision_feature_edges(entities, collector)
    _discussion_decision_edges(entities, collector)
    _contributor_edges(entities, collector)
    _cross_platform_edges(entities, collector)
    return collector.build()
