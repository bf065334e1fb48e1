"""Rule-based implementation of the KnowledgeExtractor protocol."""

from __future__ import annotations

import re
import typing as typ

from contextkeeper.common.slug import slugify
from contextkeeper.knowledge.merge import (
    DISCUSSION_CONTEXT_LIMIT,
    merge_feature,
    merge_file,
)
from contextkeeper.knowledge.models import (
    DecisionRecord,
    DecisionStatus,
    DiscussionSummary,
    FeatureContext,
    FeatureStatus,
    FileContextHistory,
)
from contextkeeper.knowledge.text import (
    contains_any,
    first_sentence,
    sentences,
    truncate,
    unique,
)

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from contextkeeper.events import NormalizedEvent

DECISION_KEYWORDS = (
    "decided",
    "decision",
    "we should",
    "let's use",
    "going with",
    "agreed",
    "consensus",
    "resolved",
    "conclusion",
    "final decision",
)
_RATIONALE_KEYWORDS = ("because", "since", "due to", "reason", "rationale")
_ACTION_KEYWORDS = ("todo", "action", "need to", "should", "must", "will")

_ALTERNATIVE_PATTERNS = (
    re.compile(r"(?i)alternatives?:?\s*(.+)"),
    re.compile(r"(?i)other options?:?\s*(.+)"),
    re.compile(r"(?i)could also:?\s*(.+)"),
)
_CONSEQUENCE_PATTERNS = (
    re.compile(r"(?i)consequences?:?\s*(.+)"),
    re.compile(r"(?i)impact:?\s*(.+)"),
    re.compile(r"(?i)this means:?\s*(.+)"),
)
_FEATURE_PATTERNS = (
    re.compile(r"(?i)\bfeature[:\s]+([a-z0-9][a-z0-9 \-_]*)"),
    re.compile(r"(?i)\bimplement[:\s]+([a-z0-9][a-z0-9 \-_]*)"),
    re.compile(r"(?i)\badd[:\s]+([a-z0-9][a-z0-9 \-_]*)"),
)
_CHANGE_REASON_PATTERNS = (
    re.compile(r"(?i)changed because:?\s*(.+)"),
    re.compile(r"(?i)updated to:?\s*(.+)"),
    re.compile(r"(?i)modified for:?\s*(.+)"),
)
_KEY_POINT_PREFIX = re.compile(r"^(?:[-*] |\d+\.)")
_LEADING_ARTICLE = re.compile(r"(?i)^(?:the|a|an)\s+")

_TITLE_LIMIT = 100
_SUMMARY_LIMIT = 500
_SUMMARY_EVENT_LIMIT = 3
_FEATURE_NAME_MAX_WORDS = 5
_FEATURE_NAME_LIMIT = 100
_DESCRIPTION_BEFORE = 50
_DESCRIPTION_AFTER = 100


def is_decision(content: str) -> bool:
    """Return whether ``content`` reads like a recorded decision."""
    return contains_any(content, DECISION_KEYWORDS)


def decision_id(event: NormalizedEvent) -> str:
    """Return the deterministic decision ID for ``event``."""
    return f"decision-{slugify(event.platform)}-{slugify(event.platform_id)}"


def feature_id(name: str) -> str:
    """Return the deterministic feature ID for a feature name."""
    return f"feature-{slugify(name)}"


def file_id(path: str) -> str:
    """Return the deterministic file-context ID for a path."""
    return f"file-{slugify(path)}"


def summary_id(platform: str, thread_id: str) -> str:
    """Return the deterministic discussion-summary ID for a thread."""
    return f"summary-{slugify(platform)}-{slugify(thread_id)}"


def _first_group(patterns: cabc.Iterable[re.Pattern[str]], content: str) -> list[str]:
    matches: list[str] = []
    for pattern in patterns:
        found = pattern.search(content)
        if found is not None and found.group(1).strip():
            matches.append(found.group(1).strip())
    return matches


def _rationale(content: str) -> str:
    lowered = content.lower()
    for keyword in _RATIONALE_KEYWORDS:
        index = lowered.find(keyword)
        if index != -1:
            return first_sentence(content[index:])
    return ""


def _decision_status(content: str) -> DecisionStatus:
    lowered = content.lower()
    if "supersede" in lowered:
        return DecisionStatus.SUPERSEDED
    if "deprecat" in lowered:
        return DecisionStatus.DEPRECATED
    return DecisionStatus.ACTIVE


def _feature_status(content: str) -> FeatureStatus:
    lowered = content.lower()
    if "deprecated" in lowered:
        return FeatureStatus.DEPRECATED
    if "completed" in lowered or "done" in lowered:
        return FeatureStatus.COMPLETED
    if "working on" in lowered or "in progress" in lowered:
        return FeatureStatus.IN_PROGRESS
    if "planning" in lowered or "will" in lowered:
        return FeatureStatus.PLANNED
    return FeatureStatus.IN_PROGRESS


def _feature_names(event: NormalizedEvent) -> list[str]:
    names: list[str] = []
    for raw in _first_group(_FEATURE_PATTERNS, event.content):
        words = _LEADING_ARTICLE.sub("", raw).split()[:_FEATURE_NAME_MAX_WORDS]
        name = " ".join(words)
        if name and len(name) < _FEATURE_NAME_LIMIT:
            names.append(name)
    names.extend(ref.strip() for ref in event.feature_refs if ref.strip())
    return names


def _feature_description(content: str, name: str) -> str:
    index = content.lower().find(name.lower())
    if index == -1:
        return ""
    start = max(0, index - _DESCRIPTION_BEFORE)
    end = min(len(content), index + len(name) + _DESCRIPTION_AFTER)
    return content[start:end].strip()


def _change_reason(content: str) -> str:
    matches = _first_group(_CHANGE_REASON_PATTERNS, content)
    if matches:
        return matches[0]
    return first_sentence(content) or "File modification discussed"


def _key_points(events: cabc.Sequence[NormalizedEvent]) -> list[str]:
    points: list[str] = []
    for event in events:
        for line in event.content.splitlines():
            stripped = line.strip()
            if _KEY_POINT_PREFIX.match(stripped):
                points.append(stripped)
    return points


def _action_items(events: cabc.Sequence[NormalizedEvent]) -> list[str]:
    items: list[str] = []
    for event in events:
        event_sentences = sentences(event.content)
        for keyword in _ACTION_KEYWORDS:
            for sentence in event_sentences:
                if keyword in sentence.lower():
                    items.append(sentence)
                    break
    return list(unique(items))


def _summary_text(events: cabc.Sequence[NormalizedEvent]) -> str:
    parts = [first_sentence(e.content) for e in events[:_SUMMARY_EVENT_LIMIT]]
    return truncate(". ".join(part for part in parts if part), _SUMMARY_LIMIT)


class HeuristicKnowledgeExtractor:
    """Deterministic keyword and pattern based knowledge extractor.

    Useful for development, tests, and as a fallback when no model backend is
    configured. Every entity ID is derived from event content, so the same
    events always yield the same entities.

    Heuristics
    ----------
    - Decisions: events whose content contains a decision keyword such as
      "decided", "agreed" or "going with". The title is the first sentence.
    - Discussions: participants, the first sentences of the first three
      events, bullet key points and action-keyword sentences.
    - Features: explicit ``feature_refs`` plus "feature:", "implement" and
      "add" mentions, keyed by slugged name.
    - Files: one context per referenced path, accumulating contributors and
      the platforms that discussed it.

    Examples
    --------
    >>> import asyncio
    >>> extractor = HeuristicKnowledgeExtractor()
    >>> asyncio.run(extractor.extract_decisions([]))
    []

    """

    async def extract_decisions(
        self,
        events: cabc.Sequence[NormalizedEvent],
    ) -> list[DecisionRecord]:
        """Return one decision per event that contains decision language."""
        decisions: list[DecisionRecord] = []
        for event in events:
            if not is_decision(event.content):
                continue
            decisions.append(
                DecisionRecord(
                    id=decision_id(event),
                    title=truncate(first_sentence(event.content), _TITLE_LIMIT)
                    or "Decision",
                    decision=event.content,
                    rationale=_rationale(event.content),
                    alternatives=tuple(
                        _first_group(_ALTERNATIVE_PATTERNS, event.content)
                    ),
                    consequences=tuple(
                        _first_group(_CONSEQUENCE_PATTERNS, event.content)
                    ),
                    status=_decision_status(event.content),
                    platform_source=event.platform,
                    source_event_ids=(event.platform_id,),
                    participants=unique([event.author]),
                    created_at=event.timestamp,
                )
            )
        return decisions

    async def summarize_discussion(
        self,
        events: cabc.Sequence[NormalizedEvent],
    ) -> DiscussionSummary | None:
        """Summarize a thread, keyed by its first event's thread ID."""
        if not events:
            return None
        head = events[0]
        thread_id = head.thread_id or head.platform_id
        return DiscussionSummary(
            id=summary_id(head.platform, thread_id),
            thread_id=thread_id,
            platform=head.platform,
            participants=unique(e.author for e in events),
            summary=_summary_text(events),
            key_points=tuple(_key_points(events)),
            action_items=tuple(_action_items(events)),
            file_references=unique(ref for e in events for ref in e.file_refs),
            feature_references=unique(ref for e in events for ref in e.feature_refs),
            source_event_ids=unique(e.platform_id for e in events),
            created_at=min(e.timestamp for e in events),
        )

    async def identify_features(
        self,
        events: cabc.Sequence[NormalizedEvent],
    ) -> list[FeatureContext]:
        """Return features in first-mention order, merged by slugged name."""
        features: dict[str, FeatureContext] = {}
        for event in events:
            for name in _feature_names(event):
                candidate = FeatureContext(
                    id=feature_id(name),
                    feature_name=name,
                    description=_feature_description(event.content, name),
                    status=_feature_status(event.content),
                    contributors=unique([event.author]),
                    related_files=unique(event.file_refs),
                    discussions=(event.platform_id,),
                    platforms=(event.platform,),
                    created_at=event.timestamp,
                    updated_at=event.timestamp,
                )
                existing = features.get(candidate.id)
                features[candidate.id] = (
                    candidate
                    if existing is None
                    else merge_feature(existing, candidate)
                )
        return list(features.values())

    async def analyze_file_context(
        self,
        events: cabc.Sequence[NormalizedEvent],
    ) -> list[FileContextHistory]:
        """Return file histories in first-reference order."""
        files: dict[str, FileContextHistory] = {}
        for event in events:
            related = (decision_id(event),) if is_decision(event.content) else ()
            for path in unique(event.file_refs):
                candidate = FileContextHistory(
                    id=file_id(path),
                    file_path=path,
                    change_reason=_change_reason(event.content),
                    discussion_context=event.content[:DISCUSSION_CONTEXT_LIMIT],
                    related_decisions=related,
                    contributors=unique([event.author]),
                    platform_sources={event.platform: (event.platform_id,)},
                    created_at=event.timestamp,
                )
                existing = files.get(candidate.id)
                files[candidate.id] = (
                    candidate if existing is None else merge_file(existing, candidate)
                )
        return list(files.values())


