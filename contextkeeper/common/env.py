"""Environment variable parsing shared by configuration dataclasses.

Every helper treats an unset or blank variable as "use the default" and
raises ``ValueError`` naming the variable for anything malformed.
"""

from __future__ import annotations

import datetime as dt
import os


def parse_int(env_var: str, default: int, *, minimum: int) -> int:
    """Read an integer env var no smaller than ``minimum``."""
    raw = os.environ.get(env_var, "")
    if not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        msg = f"{env_var} must be an integer, got: {raw!r}"
        raise ValueError(msg) from exc
    if value < minimum:
        msg = f"{env_var} must be at least {minimum}, got: {value}"
        raise ValueError(msg)
    return value


def parse_seconds(
    env_var: str,
    default: dt.timedelta,
    *,
    scale: float = 1.0,
) -> dt.timedelta:
    """Read a non-negative duration, expressed in ``scale`` seconds per unit.

    Examples
    --------
    >>> import os
    >>> os.environ["EXAMPLE_LOOKBACK_HOURS"] = "2"
    >>> parse_seconds("EXAMPLE_LOOKBACK_HOURS", dt.timedelta(0), scale=3600)
    datetime.timedelta(seconds=7200)

    """
    raw = os.environ.get(env_var, "")
    if not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        msg = f"{env_var} must be a number, got: {raw!r}"
        raise ValueError(msg) from exc
    if value < 0:
        msg = f"{env_var} must not be negative, got: {value}"
        raise ValueError(msg)
    return dt.timedelta(seconds=value * scale)
