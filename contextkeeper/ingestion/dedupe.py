"""Deduplication of fetched events against a checkpoint's processed IDs."""

from __future__ import annotations

import typing as typ

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from contextkeeper.events import RawEvent


def deduplicate_events(
    events: cabc.Iterable[RawEvent],
    processed_ids: cabc.Iterable[str],
) -> list[RawEvent]:
    """Return events whose IDs are neither processed nor repeated.

    Surviving events keep their fetch order. An ID delivered twice in the
    same batch survives only once.

    Examples
    --------
    >>> import datetime as dt
    >>> from contextkeeper.events import RawEvent
    >>> now = dt.datetime(2024, 1, 1, tzinfo=dt.UTC)
    >>> batch = [
    ...     RawEvent(id=f"event-{n}", type="message", timestamp=now, platform="slack")
    ...     for n in (1, 2, 3)
    ... ]
    >>> [e.id for e in deduplicate_events(batch, ["event-1", "event-2"])]
    ['event-3']

    """
    seen = set(processed_ids)
    survivors: list[RawEvent] = []
    for event in events:
        if event.id in seen:
            continue
        seen.add(event.id)
        survivors.append(event)
    return survivors
