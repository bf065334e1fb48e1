"""Configuration for the ingestion orchestrator."""

from __future__ import annotations

import dataclasses as dc
import datetime as dt

from contextkeeper.common.env import parse_int, parse_seconds

_SECONDS_PER_HOUR = 3600


@dc.dataclass(frozen=True, slots=True)
class OrchestratorConfig:
    """Runtime knobs for per-integration ingestion tasks.

    Attributes
    ----------
    fetch_limit
        Maximum raw events requested from a connector per cycle.
    initial_lookback
        How far back the first cycle of a new integration fetches.
    overlap
        Window subtracted from ``last_sync_time`` to tolerate clock skew and
        late-arriving events; redelivered events are removed by deduplication.
    processed_id_window
        Number of newest platform IDs retained in a checkpoint.
    connector_timeout
        Upper bound on each connector call.
    sync_interval
        Pause between cycles when neither the connector nor the integration
        recommends one.
    shutdown_timeout
        How long ``aclose`` waits for cancelled tasks to finish.

    """

    fetch_limit: int = 1000
    initial_lookback: dt.timedelta = dt.timedelta(hours=24)
    overlap: dt.timedelta = dt.timedelta(minutes=5)
    processed_id_window: int = 10_000
    connector_timeout: dt.timedelta = dt.timedelta(seconds=30)
    sync_interval: dt.timedelta = dt.timedelta(minutes=5)
    shutdown_timeout: dt.timedelta = dt.timedelta(seconds=10)

    def __post_init__(self) -> None:
        """Reject values that would stall ingestion or lose dedup state."""
        if self.fetch_limit < 1:
            msg = f"fetch_limit must be positive, got: {self.fetch_limit}"
            raise ValueError(msg)
        if self.processed_id_window < self.fetch_limit:
            msg = (
                "processed_id_window must be at least fetch_limit, got: "
                f"{self.processed_id_window} < {self.fetch_limit}"
            )
            raise ValueError(msg)
        if self.connector_timeout <= dt.timedelta(0):
            msg = f"connector_timeout must be positive, got: {self.connector_timeout}"
            raise ValueError(msg)
        if self.sync_interval <= dt.timedelta(0):
            msg = f"sync_interval must be positive, got: {self.sync_interval}"
            raise ValueError(msg)

    @classmethod
    def from_env(cls) -> OrchestratorConfig:
        """Create configuration from ``CONTEXTKEEPER_*`` environment variables.

        Reads ``CONTEXTKEEPER_FETCH_LIMIT``,
        ``CONTEXTKEEPER_INITIAL_LOOKBACK_HOURS``,
        ``CONTEXTKEEPER_OVERLAP_SECONDS``,
        ``CONTEXTKEEPER_PROCESSED_ID_WINDOW``,
        ``CONTEXTKEEPER_CONNECTOR_TIMEOUT_SECONDS``,
        ``CONTEXTKEEPER_SYNC_INTERVAL_SECONDS`` and
        ``CONTEXTKEEPER_SHUTDOWN_TIMEOUT_SECONDS``. Unset or blank variables
        fall back to the defaults.

        Raises
        ------
        ValueError
            If a variable is malformed or out of range.

        """
        defaults = cls()
        return cls(
            fetch_limit=parse_int(
                "CONTEXTKEEPER_FETCH_LIMIT", defaults.fetch_limit, minimum=1
            ),
            initial_lookback=parse_seconds(
                "CONTEXTKEEPER_INITIAL_LOOKBACK_HOURS",
                defaults.initial_lookback,
                scale=_SECONDS_PER_HOUR,
            ),
            overlap=parse_seconds("CONTEXTKEEPER_OVERLAP_SECONDS", defaults.overlap),
            processed_id_window=parse_int(
                "CONTEXTKEEPER_PROCESSED_ID_WINDOW",
                defaults.processed_id_window,
                minimum=1,
            ),
            connector_timeout=parse_seconds(
                "CONTEXTKEEPER_CONNECTOR_TIMEOUT_SECONDS", defaults.connector_timeout
            ),
            sync_interval=parse_seconds(
                "CONTEXTKEEPER_SYNC_INTERVAL_SECONDS", defaults.sync_interval
            ),
            shutdown_timeout=parse_seconds(
                "CONTEXTKEEPER_SHUTDOWN_TIMEOUT_SECONDS", defaults.shutdown_timeout
            ),
        )
