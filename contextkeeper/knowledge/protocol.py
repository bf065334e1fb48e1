"""KnowledgeExtractor protocol consumed by the context processor."""

from __future__ import annotations

import typing as typ

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from contextkeeper.events import NormalizedEvent
    from contextkeeper.knowledge.models import (
        DecisionRecord,
        DiscussionSummary,
        FeatureContext,
        FileContextHistory,
    )


@typ.runtime_checkable
class KnowledgeExtractor(typ.Protocol):
    """Protocol for turning normalized events into knowledge entities.

    Each operation is an independent unit of work: the context processor
    times out, retries and records failures for every capability separately,
    so an implementation should raise rather than return partial output.
    Raising :class:`~contextkeeper.knowledge.errors.KnowledgeExtractionError`
    with ``retryable=False`` stops further attempts for that unit.

    The protocol is runtime_checkable so the processor can reject objects that
    do not implement it when it is constructed.

    Examples
    --------
    >>> from contextkeeper.knowledge import HeuristicKnowledgeExtractor
    >>> isinstance(HeuristicKnowledgeExtractor(), KnowledgeExtractor)
    True

    """

    async def extract_decisions(
        self,
        events: cabc.Sequence[NormalizedEvent],
    ) -> list[DecisionRecord]:
        """Return the engineering decisions recorded in ``events``."""
        ...

    async def summarize_discussion(
        self,
        events: cabc.Sequence[NormalizedEvent],
    ) -> DiscussionSummary | None:
        """Summarize one conversation thread, or return ``None`` if empty."""
        ...

    async def identify_features(
        self,
        events: cabc.Sequence[NormalizedEvent],
    ) -> list[FeatureContext]:
        """Return the features that ``events`` mention or advance."""
        ...

    async def analyze_file_context(
        self,
        events: cabc.Sequence[NormalizedEvent],
    ) -> list[FileContextHistory]:
        """Return per-file change and discussion context for ``events``."""
        ...
