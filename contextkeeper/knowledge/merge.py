"""Merge rules that fold repeated sightings of an entity into one record.

The same entity can be reported more than once: by two events in a batch, or
by two batches of a single processing run. Every rule here keeps the first
sighting's scalar fields, unions sequences in first-seen order, and widens
timestamps, so folding is associative and the outcome does not depend on how
events were split into batches.
"""

from __future__ import annotations

from contextkeeper.knowledge.models import (
    DecisionRecord,
    DiscussionSummary,
    FeatureContext,
    FileContextHistory,
)
from contextkeeper.knowledge.text import unique

# Prefix cap without an ellipsis marker.
DISCUSSION_CONTEXT_LIMIT = 4000


def join_context(first: str, second: str) -> str:
    """Join two discussion contexts and cap the result."""
    joined = f"{first}\n{second}" if first and second else first or second
    return joined[:DISCUSSION_CONTEXT_LIMIT]


def merge_decision(first: DecisionRecord, later: DecisionRecord) -> DecisionRecord:
    """Fold a later sighting of a decision into the first one."""
    return DecisionRecord(
        id=first.id,
        title=first.title,
        decision=first.decision,
        rationale=first.rationale or later.rationale,
        alternatives=unique((*first.alternatives, *later.alternatives)),
        consequences=unique((*first.consequences, *later.consequences)),
        status=first.status,
        platform_source=first.platform_source,
        source_event_ids=unique((*first.source_event_ids, *later.source_event_ids)),
        participants=unique((*first.participants, *later.participants)),
        created_at=min(first.created_at, later.created_at),
    )


def merge_summary(
    first: DiscussionSummary, later: DiscussionSummary
) -> DiscussionSummary:
    """Fold a later summary of the same thread into the first one."""
    return DiscussionSummary(
        id=first.id,
        thread_id=first.thread_id,
        platform=first.platform,
        summary=first.summary or later.summary,
        participants=unique((*first.participants, *later.participants)),
        key_points=unique((*first.key_points, *later.key_points)),
        action_items=unique((*first.action_items, *later.action_items)),
        file_references=unique((*first.file_references, *later.file_references)),
        feature_references=unique(
            (*first.feature_references, *later.feature_references)
        ),
        source_event_ids=unique((*first.source_event_ids, *later.source_event_ids)),
        created_at=min(first.created_at, later.created_at),
    )


def merge_feature(first: FeatureContext, later: FeatureContext) -> FeatureContext:
    """Fold a later sighting of a feature into the first one."""
    return FeatureContext(
        id=first.id,
        feature_name=first.feature_name,
        description=first.description or later.description,
        status=first.status,
        contributors=unique((*first.contributors, *later.contributors)),
        related_files=unique((*first.related_files, *later.related_files)),
        discussions=unique((*first.discussions, *later.discussions)),
        decisions=unique((*first.decisions, *later.decisions)),
        platforms=unique((*first.platforms, *later.platforms)),
        created_at=min(first.created_at, later.created_at),
        updated_at=max(first.updated_at, later.updated_at),
    )


def merge_file(
    first: FileContextHistory, later: FileContextHistory
) -> FileContextHistory:
    """Fold a later history of the same path into the first one."""
    sources: dict[str, tuple[str, ...]] = dict(first.platform_sources)
    for platform, ids in later.platform_sources.items():
        sources[platform] = unique((*sources.get(platform, ()), *ids))
    return FileContextHistory(
        id=first.id,
        file_path=first.file_path,
        change_reason=first.change_reason or later.change_reason,
        discussion_context=join_context(
            first.discussion_context, later.discussion_context
        ),
        related_decisions=unique((*first.related_decisions, *later.related_decisions)),
        contributors=unique((*first.contributors, *later.contributors)),
        platform_sources=sources,
        created_at=min(first.created_at, later.created_at),
    )
