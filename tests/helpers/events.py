"""Deterministic raw and normalized event builders for tests.

Examples
--------
>>> event = make_event("msg-1", content="We decided to use Postgres.")
>>> event.platform
'slack'

"""

from __future__ import annotations

import datetime as dt
import typing as typ

from contextkeeper.common.time import utcnow
from contextkeeper.events import EventType, NormalizedEvent, RawEvent

if typ.TYPE_CHECKING:
    import collections.abc as cabc

BASE_TIME = dt.datetime(2024, 7, 1, 9, 0, tzinfo=dt.UTC)


def make_event(  # noqa: PLR0913
    platform_id: str,
    *,
    content: str = "",
    platform: str = "slack",
    author: str = "alice",
    event_type: EventType = EventType.MESSAGE,
    minutes: int = 0,
    file_refs: cabc.Sequence[str] = (),
    feature_refs: cabc.Sequence[str] = (),
    thread_id: str | None = None,
    title: str = "",
) -> NormalizedEvent:
    """Build a normalized event ``minutes`` after ``BASE_TIME``."""
    return NormalizedEvent(
        platform_id=platform_id,
        event_type=event_type,
        timestamp=BASE_TIME + dt.timedelta(minutes=minutes),
        platform=platform,
        author=author,
        content=content,
        title=title,
        file_refs=tuple(file_refs),
        feature_refs=tuple(feature_refs),
        thread_id=thread_id,
    )


def make_raw_event(  # noqa: PLR0913
    event_id: str,
    *,
    content: str = "",
    platform: str = "github",
    author: str = "alice",
    event_type: str = "pull_request",
    minutes_ago: int = 30,
    references: cabc.Sequence[str] = (),
    thread_id: str | None = None,
) -> RawEvent:
    """Build a raw event timestamped ``minutes_ago`` before now."""
    metadata: dict[str, typ.Any] = {}
    if thread_id is not None:
        metadata["thread_id"] = thread_id
    return RawEvent(
        id=event_id,
        type=event_type,
        timestamp=utcnow() - dt.timedelta(minutes=minutes_ago),
        platform=platform,
        author=author,
        content=content,
        references=tuple(references),
        metadata=metadata,
    )


def normalize_raw_event(raw: RawEvent) -> NormalizedEvent:
    """Map a raw event onto the normalized shape the way a connector would."""
    try:
        event_type = EventType(raw.type)
    except ValueError:
        event_type = EventType.MESSAGE
    thread_id = raw.metadata.get("thread_id")
    return NormalizedEvent(
        platform_id=raw.id,
        event_type=event_type,
        timestamp=raw.timestamp,
        platform=raw.platform,
        author=raw.author,
        content=raw.content,
        title=raw.title,
        file_refs=raw.references,
        thread_id=thread_id if isinstance(thread_id, str) else None,
        metadata=dict(raw.metadata),
    )


def raw_activity(
    count: int, *, prefix: str = "pr", platform: str = "github"
) -> list[RawEvent]:
    """Build ``count`` raw events with distinct IDs, oldest first."""
    return [
        make_raw_event(
            f"{prefix}-{index}",
            platform=platform,
            content=f"Review comment {index} on src/module_{index % 5}.py",
            author=f"dev-{index % 3}",
            minutes_ago=count - index + 10,
            references=(f"src/module_{index % 5}.py",),
        )
        for index in range(count)
    ]


def sample_conversation() -> list[NormalizedEvent]:
    """Return a small multi-platform stream with decisions, files and a thread."""
    return [
        make_event(
            "slack-1",
            content=(
                "We decided to use Postgres for the session store because it "
                "already backs src/db/session.py."
            ),
            author="alice",
            file_refs=("src/db/session.py",),
            thread_id="thread-db",
        ),
        make_event(
            "slack-2",
            content="Agreed, we will ship the feature: dark mode toggle",
            author="bob",
            minutes=5,
            thread_id="thread-db",
        ),
        make_event(
            "gh-10",
            content="Implement dark mode toggle",
            platform="github",
            author="bob",
            event_type=EventType.PULL_REQUEST,
            minutes=60,
            file_refs=("src/ui/theme.ts",),
        ),
        make_event(
            "gh-11",
            content="Updated to: pool connections in src/db/session.py",
            platform="github",
            author="alice",
            event_type=EventType.COMMIT,
            minutes=90,
            file_refs=("src/db/session.py",),
        ),
    ]
