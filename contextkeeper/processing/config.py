"""Configuration for the context processor.

Usage
-----
Create a configuration with defaults:

>>> config = ProcessorConfig()
>>> config.batch_size
100

Or load from environment variables:

>>> import os
>>> os.environ["CONTEXTKEEPER_BATCH_SIZE"] = "25"
>>> ProcessorConfig.from_env().batch_size
25

"""

from __future__ import annotations

import dataclasses as dc
import datetime as dt

from contextkeeper.common.env import parse_int, parse_seconds


@dc.dataclass(frozen=True, slots=True)
class ProcessorConfig:
    """Batching and retry policy for ``ContextProcessor``.

    Attributes
    ----------
    batch_size
        Maximum number of events per batch. Default is 100.
    max_retries
        Extra attempts per failing capability call after the first one.
        Zero disables retries. Default is 3.
    retry_delay
        Fixed pause between attempts. Default is two seconds.
    extraction_timeout
        Upper bound on a single capability call. Default is 30 seconds.

    """

    batch_size: int = 100
    max_retries: int = 3
    retry_delay: dt.timedelta = dt.timedelta(seconds=2)
    extraction_timeout: dt.timedelta = dt.timedelta(seconds=30)

    def __post_init__(self) -> None:
        """Reject values that would stall or skip processing."""
        if self.batch_size < 1:
            msg = f"batch_size must be positive, got: {self.batch_size}"
            raise ValueError(msg)
        if self.max_retries < 0:
            msg = f"max_retries must not be negative, got: {self.max_retries}"
            raise ValueError(msg)
        if self.retry_delay < dt.timedelta(0):
            msg = f"retry_delay must not be negative, got: {self.retry_delay}"
            raise ValueError(msg)
        if self.extraction_timeout <= dt.timedelta(0):
            msg = f"extraction_timeout must be positive, got: {self.extraction_timeout}"
            raise ValueError(msg)

    @classmethod
    def from_env(cls) -> ProcessorConfig:
        """Create configuration from environment variables.

        Reads the following environment variables:

        - ``CONTEXTKEEPER_BATCH_SIZE``: Events per batch (positive integer).
        - ``CONTEXTKEEPER_MAX_RETRIES``: Retries per capability (zero or more).
        - ``CONTEXTKEEPER_RETRY_DELAY_SECONDS``: Pause between attempts.
        - ``CONTEXTKEEPER_EXTRACTION_TIMEOUT_SECONDS``: Per-call timeout.

        Unset or blank variables fall back to the defaults.

        Raises
        ------
        ValueError
            If a variable is set to a malformed or out-of-range value.

        """
        defaults = cls()
        return cls(
            batch_size=parse_int(
                "CONTEXTKEEPER_BATCH_SIZE", defaults.batch_size, minimum=1
            ),
            max_retries=parse_int(
                "CONTEXTKEEPER_MAX_RETRIES", defaults.max_retries, minimum=0
            ),
            retry_delay=parse_seconds(
                "CONTEXTKEEPER_RETRY_DELAY_SECONDS", defaults.retry_delay
            ),
            extraction_timeout=parse_seconds(
                "CONTEXTKEEPER_EXTRACTION_TIMEOUT_SECONDS",
                defaults.extraction_timeout,
            ),
        )
