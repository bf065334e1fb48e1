"""Prompt templates for the OpenAI-compatible knowledge extractor."""

from __future__ import annotations

import typing as typ

import msgspec

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from contextkeeper.events import NormalizedEvent

# Event bodies beyond this length are cut before being sent to the model.
_CONTENT_LIMIT = 2000

SYSTEM_PROMPT = """\
You are a software engineering knowledge analyst. You read activity from \
source-control and chat platforms (pull requests, issues, commits, messages, \
threads) and extract durable project knowledge.

Always respond with a single valid JSON object matching the structure \
requested in the user message. Use only information present in the events. \
Reference events only by the "id" values you were given. Return empty arrays \
when nothing qualifies rather than inventing content.
"""

DECISIONS_INSTRUCTIONS = """\
Identify engineering decisions: statements where a team settled on an \
approach, technology, or policy. Respond with:

{"decisions": [{"title": "short title", "decision": "what was decided", \
"rationale": "why", "alternatives": ["..."], "consequences": ["..."], \
"status": "active" | "superseded" | "deprecated", \
"source_event_ids": ["event id"]}]}
"""

SUMMARY_INSTRUCTIONS = """\
Summarize this conversation thread. Respond with:

{"summary": "2-3 sentence summary", "key_points": ["..."], \
"action_items": ["..."]}
"""

FEATURES_INSTRUCTIONS = """\
Identify product features that these events discuss, implement, or change. \
Use short, stable feature names. Respond with:

{"features": [{"name": "feature name", "description": "one sentence", \
"status": "planned" | "in_progress" | "completed" | "deprecated", \
"source_event_ids": ["event id"]}]}
"""

FILES_INSTRUCTIONS = """\
For each file path referenced by these events, explain why it changed. Only \
use paths that appear in an event's "file_refs". Respond with:

{"files": [{"path": "file path", "change_reason": "one sentence", \
"related_decisions": ["decision title or id"]}]}
"""


class _PromptEvent(msgspec.Struct, kw_only=True, frozen=True):
    id: str
    type: str
    platform: str
    author: str
    timestamp: str
    title: str
    content: str
    file_refs: tuple[str, ...]
    feature_refs: tuple[str, ...]
    thread_id: str | None


def _prompt_event(event: NormalizedEvent) -> _PromptEvent:
    return _PromptEvent(
        id=event.platform_id,
        type=str(event.event_type),
        platform=event.platform,
        author=event.author,
        timestamp=event.timestamp.isoformat(),
        title=event.title,
        content=event.content[:_CONTENT_LIMIT],
        file_refs=event.file_refs,
        feature_refs=event.feature_refs,
        thread_id=event.thread_id,
    )


def build_user_prompt(
    instructions: str,
    events: cabc.Sequence[NormalizedEvent],
) -> str:
    """Render task instructions followed by the events as a JSON array.

    Parameters
    ----------
    instructions
        Capability-specific task description and response schema.
    events
        Events to analyse, in order.

    Returns
    -------
    str
        Complete user message content.

    """
    payload = msgspec.json.encode([_prompt_event(event) for event in events])
    return f"{instructions}\n## Events\n\n{payload.decode('utf-8')}\n"
