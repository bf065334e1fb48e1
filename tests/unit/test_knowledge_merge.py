"""Unit tests for folding repeated entity sightings."""

from __future__ import annotations

import datetime as dt

from contextkeeper.knowledge import DecisionRecord, FileContextHistory
from contextkeeper.knowledge.merge import (
    DISCUSSION_CONTEXT_LIMIT,
    join_context,
    merge_decision,
    merge_file,
)

_T0 = dt.datetime(2024, 7, 1, 9, 0, tzinfo=dt.UTC)


def _decision(
    *, minutes: int, rationale: str = "", participants: tuple[str, ...] = ()
) -> DecisionRecord:
    return DecisionRecord(
        id="decision-slack-1",
        title=f"Title seen at {minutes}",
        decision="Use Postgres",
        platform_source="slack",
        created_at=_T0 + dt.timedelta(minutes=minutes),
        rationale=rationale,
        source_event_ids=(f"evt-{minutes}",),
        participants=participants,
    )


def _file(
    platform: str, event_id: str, *, author: str, context: str = ""
) -> FileContextHistory:
    return FileContextHistory(
        id="file-src-app-py",
        file_path="src/app.py",
        created_at=_T0,
        discussion_context=context,
        contributors=(author,),
        platform_sources={platform: (event_id,)},
    )


def test_merge_decision_keeps_first_scalars_and_unions_sequences() -> None:
    """Titles come from the first sighting; missing rationale is filled."""
    first = _decision(minutes=10, participants=("alice",))
    later = _decision(minutes=0, rationale="It scales", participants=("bob", "alice"))

    merged = merge_decision(first, later)

    assert merged.title == "Title seen at 10"
    assert merged.rationale == "It scales"
    assert merged.participants == ("alice", "bob")
    assert merged.source_event_ids == ("evt-10", "evt-0")
    assert merged.created_at == _T0


def test_merge_file_is_associative() -> None:
    """Folding three histories gives the same record in either grouping."""
    a = _file("github", "pr-1", author="alice", context="first")
    b = _file("slack", "msg-1", author="bob", context="second")
    c = _file("github", "pr-2", author="alice", context="third")

    left = merge_file(merge_file(a, b), c)
    right = merge_file(a, merge_file(b, c))

    assert left == right
    assert left.platform_sources == {"github": ("pr-1", "pr-2"), "slack": ("msg-1",)}
    assert left.contributors == ("alice", "bob")
    assert left.discussion_context == "first\nsecond\nthird"


def test_join_context_caps_length() -> None:
    """Joined discussion context never exceeds the cap."""
    joined = join_context("a" * DISCUSSION_CONTEXT_LIMIT, "b" * 10)

    assert len(joined) == DISCUSSION_CONTEXT_LIMIT
    assert join_context("", "only") == "only"
