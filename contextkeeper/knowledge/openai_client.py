"""OpenAI-compatible implementation of the KnowledgeExtractor protocol."""

from __future__ import annotations

import json
import typing as typ

import httpx
import msgspec

from contextkeeper.knowledge.errors import (
    OpenAIAPIError,
    OpenAIConfigError,
    OpenAIResponseShapeError,
)
from contextkeeper.knowledge.heuristic import (
    decision_id,
    feature_id,
    file_id,
    summary_id,
)
from contextkeeper.knowledge.merge import DISCUSSION_CONTEXT_LIMIT
from contextkeeper.knowledge.models import (
    DecisionRecord,
    DecisionStatus,
    DiscussionSummary,
    FeatureContext,
    FeatureStatus,
    FileContextHistory,
)
from contextkeeper.knowledge.prompts import (
    DECISIONS_INSTRUCTIONS,
    FEATURES_INSTRUCTIONS,
    FILES_INSTRUCTIONS,
    SUMMARY_INSTRUCTIONS,
    SYSTEM_PROMPT,
    build_user_prompt,
)
from contextkeeper.knowledge.text import unique

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from contextkeeper.events import NormalizedEvent
    from contextkeeper.knowledge.config import OpenAIExtractorConfig

_HTTP_ERROR_STATUS_THRESHOLD = 400
_HTTP_RATE_LIMITED = 429
_TITLE_LIMIT = 100


def _get_retry_after(response: httpx.Response) -> int | None:
    """Extract Retry-After header value if present and numeric."""
    retry_after = response.headers.get("Retry-After")
    if retry_after and retry_after.isdigit():
        return int(retry_after)
    return None


def _get_nested(data: dict[str, object], *keys: str) -> object:
    """Traverse nested dict path, returning None for missing keys."""
    current: object = data
    for key in keys:
        if not isinstance(current, dict):
            return None
        current_dict = typ.cast("dict[str, object]", current)
        current = current_dict.get(key)
    return current


class LLMDecision(msgspec.Struct, kw_only=True):
    """One decision as returned by the model."""

    title: str
    decision: str
    rationale: str = ""
    alternatives: list[str] = msgspec.field(default_factory=list)
    consequences: list[str] = msgspec.field(default_factory=list)
    status: str = "active"
    source_event_ids: list[str] = msgspec.field(default_factory=list)


class LLMDecisionsResponse(msgspec.Struct, kw_only=True):
    """Parsed decision extraction response."""

    decisions: list[LLMDecision] = msgspec.field(default_factory=list)


class LLMSummaryResponse(msgspec.Struct, kw_only=True):
    """Parsed discussion summary response."""

    summary: str
    key_points: list[str] = msgspec.field(default_factory=list)
    action_items: list[str] = msgspec.field(default_factory=list)


class LLMFeature(msgspec.Struct, kw_only=True):
    """One feature as returned by the model."""

    name: str
    description: str = ""
    status: str = "in_progress"
    source_event_ids: list[str] = msgspec.field(default_factory=list)


class LLMFeaturesResponse(msgspec.Struct, kw_only=True):
    """Parsed feature identification response."""

    features: list[LLMFeature] = msgspec.field(default_factory=list)


class LLMFile(msgspec.Struct, kw_only=True):
    """One file context as returned by the model."""

    path: str
    change_reason: str = ""
    related_decisions: list[str] = msgspec.field(default_factory=list)


class LLMFilesResponse(msgspec.Struct, kw_only=True):
    """Parsed file context response."""

    files: list[LLMFile] = msgspec.field(default_factory=list)


def _parse_enum[E: (DecisionStatus, FeatureStatus)](
    raw: str, enum_type: type[E], default: E
) -> E:
    normalised = raw.strip().lower().replace("-", "_").replace(" ", "_")
    try:
        return enum_type(normalised)
    except ValueError:
        return default


def _source_events(
    events: cabc.Sequence[NormalizedEvent], ids: cabc.Iterable[str]
) -> list[NormalizedEvent]:
    """Return the events named by ``ids``, in input order."""
    wanted = set(ids)
    return [event for event in events if event.platform_id in wanted]


class OpenAIKnowledgeExtractor:
    """OpenAI-compatible implementation of the KnowledgeExtractor protocol.

    Each capability is one chat completion with a JSON-object response. The
    model supplies the judgement (what counts as a decision, how to phrase a
    summary); identifiers, participants, platforms and timestamps are always
    derived from the input events so entity IDs match the heuristic backend.

    Parameters
    ----------
    config
        Configuration for the OpenAI API client.
    http_client
        Optional httpx.AsyncClient for testing. If not provided,
        the instance creates and owns its own client.

    """

    def __init__(
        self,
        config: OpenAIExtractorConfig,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialise the client with configuration."""
        if not config.api_key.strip():
            raise OpenAIConfigError.empty_api_key()

        self._config = config
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=config.timeout_s,
            headers={
                "Authorization": f"Bearer {config.api_key}",
                "Content-Type": "application/json",
            },
        )

    @property
    def config(self) -> OpenAIExtractorConfig:
        """Read-only access to the client configuration."""
        return self._config

    async def aclose(self) -> None:
        """Close any owned HTTP resources."""
        if self._owns_client:
            await self._client.aclose()

    async def extract_decisions(
        self,
        events: cabc.Sequence[NormalizedEvent],
    ) -> list[DecisionRecord]:
        """Ask the model for decisions and anchor them to source events.

        Decisions whose ``source_event_ids`` match no input event are
        attributed to the first event of the batch.
        """
        if not events:
            return []
        parsed = await self._complete(
            DECISIONS_INSTRUCTIONS, events, LLMDecisionsResponse
        )
        decisions: dict[str, DecisionRecord] = {}
        for item in parsed.decisions:
            sources = _source_events(events, item.source_event_ids) or [events[0]]
            anchor = sources[0]
            record = DecisionRecord(
                id=decision_id(anchor),
                title=item.title.strip()[:_TITLE_LIMIT] or "Decision",
                decision=item.decision,
                rationale=item.rationale,
                alternatives=unique(item.alternatives),
                consequences=unique(item.consequences),
                status=_parse_enum(item.status, DecisionStatus, DecisionStatus.ACTIVE),
                platform_source=anchor.platform,
                source_event_ids=unique(e.platform_id for e in sources),
                participants=unique(e.author for e in sources),
                created_at=min(e.timestamp for e in sources),
            )
            decisions.setdefault(record.id, record)
        return list(decisions.values())

    async def summarize_discussion(
        self,
        events: cabc.Sequence[NormalizedEvent],
    ) -> DiscussionSummary | None:
        """Ask the model to summarize a thread."""
        if not events:
            return None
        parsed = await self._complete(SUMMARY_INSTRUCTIONS, events, LLMSummaryResponse)
        head = events[0]
        thread_id = head.thread_id or head.platform_id
        return DiscussionSummary(
            id=summary_id(head.platform, thread_id),
            thread_id=thread_id,
            platform=head.platform,
            summary=parsed.summary,
            participants=unique(e.author for e in events),
            key_points=unique(parsed.key_points),
            action_items=unique(parsed.action_items),
            file_references=unique(ref for e in events for ref in e.file_refs),
            feature_references=unique(ref for e in events for ref in e.feature_refs),
            source_event_ids=unique(e.platform_id for e in events),
            created_at=min(e.timestamp for e in events),
        )

    async def identify_features(
        self,
        events: cabc.Sequence[NormalizedEvent],
    ) -> list[FeatureContext]:
        """Ask the model for features and attach contributors and files."""
        if not events:
            return []
        parsed = await self._complete(
            FEATURES_INSTRUCTIONS, events, LLMFeaturesResponse
        )
        features: dict[str, FeatureContext] = {}
        for item in parsed.features:
            name = item.name.strip()
            if not name:
                continue
            sources = _source_events(events, item.source_event_ids) or list(events)
            feature = FeatureContext(
                id=feature_id(name),
                feature_name=name,
                description=item.description,
                status=_parse_enum(
                    item.status, FeatureStatus, FeatureStatus.IN_PROGRESS
                ),
                contributors=unique(e.author for e in sources),
                related_files=unique(ref for e in sources for ref in e.file_refs),
                discussions=unique(e.platform_id for e in sources),
                platforms=unique(e.platform for e in sources),
                created_at=min(e.timestamp for e in sources),
                updated_at=max(e.timestamp for e in sources),
            )
            features.setdefault(feature.id, feature)
        return list(features.values())

    async def analyze_file_context(
        self,
        events: cabc.Sequence[NormalizedEvent],
    ) -> list[FileContextHistory]:
        """Ask the model why each referenced file changed.

        Paths that no input event references are discarded.
        """
        referencing = [event for event in events if event.file_refs]
        if not referencing:
            return []
        parsed = await self._complete(FILES_INSTRUCTIONS, referencing, LLMFilesResponse)
        files: dict[str, FileContextHistory] = {}
        for item in parsed.files:
            sources = [e for e in referencing if item.path in e.file_refs]
            if not sources:
                continue
            platform_sources: dict[str, tuple[str, ...]] = {}
            for event in sources:
                platform_sources[event.platform] = (
                    *platform_sources.get(event.platform, ()),
                    event.platform_id,
                )
            context = "\n".join(e.content for e in sources if e.content)
            file_context = FileContextHistory(
                id=file_id(item.path),
                file_path=item.path,
                change_reason=item.change_reason,
                discussion_context=context[:DISCUSSION_CONTEXT_LIMIT],
                related_decisions=unique(item.related_decisions),
                contributors=unique(e.author for e in sources),
                platform_sources=platform_sources,
                created_at=min(e.timestamp for e in sources),
            )
            files.setdefault(file_context.id, file_context)
        return list(files.values())

    async def _complete[T](
        self,
        instructions: str,
        events: cabc.Sequence[NormalizedEvent],
        response_type: type[T],
    ) -> T:
        """Run one chat completion and decode the JSON reply."""
        user_prompt = build_user_prompt(instructions, events)
        content = await self._call_chat_completion(user_prompt)
        try:
            return msgspec.json.decode(content, type=response_type)
        except msgspec.DecodeError as exc:
            raise OpenAIResponseShapeError.invalid_json(content) from exc

    async def _call_chat_completion(self, user_prompt: str) -> str:
        """Call the chat completions endpoint and return assistant content."""
        payload = self._build_payload(user_prompt)
        response = await self._send_request(payload)
        self._check_response_errors(response)
        return self._parse_json_response(response)

    def _build_payload(self, user_prompt: str) -> dict[str, object]:
        return {
            "model": self._config.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": self._config.temperature,
            "max_tokens": self._config.max_tokens,
            "response_format": {"type": "json_object"},
        }

    async def _send_request(
        self,
        payload: dict[str, object],
    ) -> httpx.Response:
        """Perform HTTP POST request to the chat completions endpoint.

        Raises
        ------
        OpenAIAPIError
            If a timeout or network error occurs.

        """
        try:
            return await self._client.post(
                self._config.endpoint,
                json=payload,
            )
        except httpx.TimeoutException as exc:
            raise OpenAIAPIError.timeout() from exc
        except httpx.RequestError as exc:
            raise OpenAIAPIError.network_error(str(exc)) from exc

    def _check_response_errors(self, response: httpx.Response) -> None:
        if response.status_code == _HTTP_RATE_LIMITED:
            raise OpenAIAPIError.rate_limited(_get_retry_after(response))

        if response.status_code >= _HTTP_ERROR_STATUS_THRESHOLD:
            raise OpenAIAPIError.http_error(response.status_code)

    def _parse_json_response(self, response: httpx.Response) -> str:
        """Parse the JSON body and extract assistant message content.

        Raises
        ------
        OpenAIResponseShapeError
            If the response is not valid JSON or missing expected fields.

        """
        try:
            data = response.json()
        except json.JSONDecodeError as exc:
            raise OpenAIResponseShapeError.invalid_json(response.text) from exc
        if not isinstance(data, dict):
            raise OpenAIResponseShapeError.missing("choices")

        choices = data.get("choices")
        if not isinstance(choices, list) or not choices:
            raise OpenAIResponseShapeError.missing("choices")

        first_choice = choices[0]
        if not isinstance(first_choice, dict):
            raise OpenAIResponseShapeError.missing("choices[0]")

        first_choice_dict = typ.cast("dict[str, object]", first_choice)
        content = _get_nested(first_choice_dict, "message", "content")
        if not isinstance(content, str):
            raise OpenAIResponseShapeError.missing("choices[0].message.content")

        return content
