"""Batched, fault-tolerant knowledge extraction over normalized events.

``ContextProcessor`` splits its input into contiguous batches and runs the four
extraction capabilities against each batch. Every capability call is timed
out and retried independently; once its attempts are exhausted the affected
events are recorded as ``ProcessingError`` entries and processing moves on.
Entities reported by several batches are merged by their deterministic IDs,
and relationships are synthesized once over the merged set.
"""

from __future__ import annotations

import asyncio
import dataclasses
import datetime as dt
import time
import typing as typ

from contextkeeper.common.time import utcnow
from contextkeeper.events import with_utc_timestamp
from contextkeeper.knowledge.merge import (
    merge_decision,
    merge_feature,
    merge_file,
    merge_summary,
)
from contextkeeper.knowledge.models import ProcessingError, ProcessingResult
from contextkeeper.knowledge.protocol import KnowledgeExtractor

from .config import ProcessorConfig
from .errors import ProcessorConfigError, is_retryable_error
from .observability import ProcessingEventLogger
from .relationships import EntitySet, synthesize_relationships

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from contextkeeper.events import NormalizedEvent
    from contextkeeper.knowledge.models import (
        DecisionRecord,
        DiscussionSummary,
        FeatureContext,
        FileContextHistory,
    )

type ThreadKey = tuple[str, str]

_MIN_GROUP_EVENTS = 2


class _HasId(typ.Protocol):
    @property
    def id(self) -> str: ...


@dataclasses.dataclass(slots=True)
class _Accumulator:
    """Entities keyed by ID in first-seen order, merged on repeat sightings."""

    decisions: dict[str, DecisionRecord] = dataclasses.field(default_factory=dict)
    summaries: dict[str, DiscussionSummary] = dataclasses.field(default_factory=dict)
    features: dict[str, FeatureContext] = dataclasses.field(default_factory=dict)
    files: dict[str, FileContextHistory] = dataclasses.field(default_factory=dict)
    errors: list[ProcessingError] = dataclasses.field(default_factory=list)

    def add_decisions(self, records: cabc.Iterable[DecisionRecord]) -> None:
        _fold(self.decisions, records, merge_decision)

    def add_summary(self, summary: DiscussionSummary) -> None:
        _fold(self.summaries, (summary,), merge_summary)

    def add_features(self, features: cabc.Iterable[FeatureContext]) -> None:
        _fold(self.features, features, merge_feature)

    def add_files(self, files: cabc.Iterable[FileContextHistory]) -> None:
        _fold(self.files, files, merge_file)

    def entity_set(self) -> EntitySet:
        return EntitySet(
            decisions=tuple(self.decisions.values()),
            summaries=tuple(self.summaries.values()),
            features=tuple(self.features.values()),
            files=tuple(self.files.values()),
        )


def _fold[T: _HasId](
    into: dict[str, T],
    items: cabc.Iterable[T],
    merge: cabc.Callable[[T, T], T],
) -> None:
    for item in items:
        existing = into.get(item.id)
        into[item.id] = item if existing is None else merge(existing, item)


def partition_batches[T](items: cabc.Sequence[T], batch_size: int) -> list[list[T]]:
    """Split ``items`` into contiguous batches of at most ``batch_size``.

    Examples
    --------
    >>> partition_batches([1, 2, 3, 4, 5], 2)
    [[1, 2], [3, 4], [5]]

    """
    if batch_size < 1:
        msg = f"batch_size must be positive, got: {batch_size}"
        raise ValueError(msg)
    return [
        list(items[start : start + batch_size])
        for start in range(0, len(items), batch_size)
    ]


def _by_first_index(
    events: cabc.Sequence[NormalizedEvent],
    groups: cabc.Iterable[list[int]],
) -> dict[int, list[list[NormalizedEvent]]]:
    by_start: dict[int, list[list[NormalizedEvent]]] = {}
    for indices in groups:
        if len(indices) < _MIN_GROUP_EVENTS:
            continue
        by_start.setdefault(indices[0], []).append([events[i] for i in indices])
    return by_start


def group_threads(
    events: cabc.Sequence[NormalizedEvent],
) -> dict[int, list[list[NormalizedEvent]]]:
    """Group threaded events and key each thread by its first event's index.

    Threads are grouped over the whole input so a conversation split across
    batches is still summarized once and in full. Only threads with at least
    two events are returned.
    """
    threads: dict[ThreadKey, list[int]] = {}
    for index, event in enumerate(events):
        if event.thread_id:
            threads.setdefault((event.platform, event.thread_id), []).append(index)
    return _by_first_index(events, threads.values())


def group_file_references(
    events: cabc.Sequence[NormalizedEvent],
) -> dict[int, list[list[NormalizedEvent]]]:
    """Group unthreaded events by their first file reference.

    Pull requests, commits and issues that touch the same file form one
    discussion even without a shared thread. Groups span platforms, are keyed
    by their first event's index and need at least two events.
    """
    files: dict[str, list[int]] = {}
    for index, event in enumerate(events):
        if event.thread_id or not event.file_refs or not event.file_refs[0]:
            continue
        files.setdefault(event.file_refs[0], []).append(index)
    return _by_first_index(events, files.values())


def group_discussions(
    events: cabc.Sequence[NormalizedEvent],
) -> dict[int, list[list[NormalizedEvent]]]:
    """Return thread groups followed by file-reference groups per start index."""
    groups = group_threads(events)
    for start, file_groups in group_file_references(events).items():
        groups.setdefault(start, []).extend(file_groups)
    return groups


class ContextProcessor:
    """Turn normalized events into knowledge entities and relationships.

    Parameters
    ----------
    extractor
        Implementation of the four extraction capabilities.
    config
        Batching and retry policy. Defaults to ``ProcessorConfig()``.
    event_logger
        Structured event logger. Defaults to a fresh ``ProcessingEventLogger``.

    Raises
    ------
    ProcessorConfigError
        If ``extractor`` is ``None`` or does not implement
        ``KnowledgeExtractor``.

    """

    def __init__(
        self,
        extractor: KnowledgeExtractor,
        *,
        config: ProcessorConfig | None = None,
        event_logger: ProcessingEventLogger | None = None,
    ) -> None:
        """Validate the extractor and store the processing policy."""
        if extractor is None:
            raise ProcessorConfigError.missing_extractor()
        if not isinstance(extractor, KnowledgeExtractor):
            raise ProcessorConfigError.invalid_extractor(type(extractor).__name__)
        self._extractor = extractor
        self._config = config or ProcessorConfig()
        self._event_logger = event_logger or ProcessingEventLogger()

    @property
    def config(self) -> ProcessorConfig:
        """Return the active processing policy."""
        return self._config

    async def process_events(
        self, events: cabc.Iterable[NormalizedEvent]
    ) -> ProcessingResult:
        """Extract knowledge from ``events``.

        The call fails only on cancellation. Capability failures are retried
        and then reported in ``ProcessingResult.errors``; every input event is
        counted in ``processed_events`` whatever its content.

        Parameters
        ----------
        events
            Normalized events in the order they should be processed.

        Returns
        -------
        ProcessingResult
            Merged entities, synthesized relationships and per-event errors.

        """
        started_at = time.monotonic()
        items = [with_utc_timestamp(event) for event in events]
        discussions = group_discussions(items)
        acc = _Accumulator()
        batches = partition_batches(items, self._config.batch_size)

        offset = 0
        for batch in batches:
            batch_discussions = [
                group
                for index in range(offset, offset + len(batch))
                for group in discussions.get(index, ())
            ]
            await self._process_batch(batch, batch_discussions, acc)
            offset += len(batch)

        entities = acc.entity_set()
        result = ProcessingResult(
            processed_events=len(items),
            decisions=tuple(entities.decisions),
            discussion_summaries=tuple(entities.summaries),
            feature_contexts=tuple(entities.features),
            file_contexts=tuple(entities.files),
            relationships=tuple(synthesize_relationships(entities)),
            errors=tuple(acc.errors),
        )
        self._event_logger.log_run_completed(
            result,
            batches=len(batches),
            duration=dt.timedelta(seconds=time.monotonic() - started_at),
        )
        return result

    async def _process_batch(
        self,
        batch: list[NormalizedEvent],
        discussions: list[list[NormalizedEvent]],
        acc: _Accumulator,
    ) -> None:
        extractor = self._extractor

        decisions = await self._invoke(
            "extract_decisions", batch, extractor.extract_decisions, acc
        )
        if decisions is not None:
            acc.add_decisions(decisions)

        for group in discussions:
            summary = await self._invoke(
                "summarize_discussion", group, extractor.summarize_discussion, acc
            )
            if summary is not None:
                acc.add_summary(summary)

        features = await self._invoke(
            "identify_features", batch, extractor.identify_features, acc
        )
        if features is not None:
            acc.add_features(features)

        files = await self._invoke(
            "analyze_file_context", batch, extractor.analyze_file_context, acc
        )
        if files is not None:
            acc.add_files(files)

    async def _invoke[T](
        self,
        capability: str,
        events: list[NormalizedEvent],
        call: cabc.Callable[[list[NormalizedEvent]], cabc.Awaitable[T]],
        acc: _Accumulator,
    ) -> T | None:
        """Run one capability with timeout and fixed-delay retries.

        Returns ``None`` after recording one ``ProcessingError`` per event
        when every attempt fails.
        """
        max_attempts = self._config.max_retries + 1
        timeout_s = self._config.extraction_timeout.total_seconds()
        attempt = 0
        while True:
            attempt += 1
            try:
                async with asyncio.timeout(timeout_s):
                    return await call(events)
            except Exception as exc:  # noqa: BLE001 - recorded per event
                if attempt >= max_attempts or not is_retryable_error(exc):
                    self._record_failure(capability, events, attempt, exc, acc)
                    return None
                self._event_logger.log_capability_retry(
                    capability=capability,
                    attempt=attempt,
                    max_attempts=max_attempts,
                    error=exc,
                )
            await asyncio.sleep(self._config.retry_delay.total_seconds())

    def _record_failure(
        self,
        capability: str,
        events: list[NormalizedEvent],
        attempts: int,
        exc: Exception,
        acc: _Accumulator,
    ) -> None:
        self._event_logger.log_capability_failed(
            capability=capability,
            attempts=attempts,
            event_count=len(events),
            error=exc,
        )
        message = (
            f"{capability} failed after {attempts} attempt(s): "
            f"{type(exc).__name__}: {exc}"
        )
        now = utcnow()
        acc.errors.extend(
            ProcessingError(
                event_id=event.platform_id,
                platform=event.platform,
                error=message,
                timestamp=now,
                retryable=False,
                capability=capability,
            )
            for event in events
        )
