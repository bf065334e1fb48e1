"""Logging helpers for femtologging integration.

All contextkeeper modules obtain loggers through this module and emit
pre-formatted messages, so percent-style interpolation happens once and the
femtologging worker thread only ever sees final strings.

Example:
>>> from contextkeeper.logging import get_logger, log_info
>>> logger = get_logger(__name__)
>>> log_info(logger, "Started %s", "orchestrator")

"""

from __future__ import annotations

import enum
import os
import typing as typ

from femtologging import basicConfig, get_logger

LOG_LEVEL_ENV_VAR = "CONTEXTKEEPER_LOG_LEVEL"
_DEFAULT_LEVEL = "INFO"


class LogLevel(enum.StrEnum):
    """Level names femtologging accepts."""

    TRACE = "TRACE"
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


def normalize_log_level(level: str | None) -> tuple[str, bool]:
    """Return the upper-cased level and whether ``level`` was rejected.

    Blank and unknown values select ``INFO`` and are flagged as invalid.
    """
    normalized = (level or "").strip().upper()
    if normalized in LogLevel.__members__:
        return (normalized, False)
    return (_DEFAULT_LEVEL, True)


def configure_logging(level: str, *, force: bool = False) -> tuple[str, bool]:
    """Apply ``level`` to femtologging's root configuration.

    Parameters
    ----------
    level : str
        Raw level name, normalised with ``normalize_log_level``.
    force : bool, optional
        Replace handlers that are already installed.

    Returns
    -------
    tuple[str, bool]
        The level applied and whether the input was rejected.

    """
    normalized, invalid = normalize_log_level(level)
    basicConfig(level=normalized, force=force)
    return (normalized, invalid)


def configure_logging_from_env(*, force: bool = False) -> str:
    """Configure femtologging from ``CONTEXTKEEPER_LOG_LEVEL``.

    An unset variable silently selects ``INFO``; an unrecognised value also
    selects ``INFO`` and emits a warning naming the rejected value.
    """
    raw_level = os.environ.get(LOG_LEVEL_ENV_VAR, _DEFAULT_LEVEL)
    normalized, invalid = configure_logging(raw_level, force=force)
    if invalid:
        log_warning(
            get_logger(__name__),
            "Invalid %s %r; defaulting to INFO",
            LOG_LEVEL_ENV_VAR,
            raw_level,
        )
    return normalized


class _SupportsLog(typ.Protocol):
    """Protocol for femtologging-compatible loggers."""

    def log(
        self,
        level: str,
        message: str,
        /,
        *,
        exc_info: object | None = None,
        stack_info: bool = False,
    ) -> str | None: ...


def _emit(
    logger: _SupportsLog,
    level: str,
    template: str,
    args: tuple[object, ...],
    exc_info: object | None,
) -> None:
    logger.log(level, template % args, exc_info=exc_info, stack_info=False)


def log_info(
    logger: _SupportsLog,
    template: str,
    *args: object,
    exc_info: object | None = None,
) -> None:
    """Log ``template % args`` at INFO."""
    _emit(logger, "INFO", template, args, exc_info)


def log_warning(
    logger: _SupportsLog,
    template: str,
    *args: object,
    exc_info: object | None = None,
) -> None:
    """Log ``template % args`` at WARNING.

    Used for recoverable conditions such as retried extraction calls and
    integrations that could not be started.
    """
    _emit(logger, "WARNING", template, args, exc_info)


def log_error(
    logger: _SupportsLog,
    template: str,
    *args: object,
    exc_info: object | None = None,
) -> None:
    """Log ``template % args`` at ERROR, attaching ``exc_info`` when given."""
    _emit(logger, "ERROR", template, args, exc_info)


__all__ = [
    "LOG_LEVEL_ENV_VAR",
    "LogLevel",
    "configure_logging",
    "configure_logging_from_env",
    "get_logger",
    "log_error",
    "log_info",
    "log_warning",
    "normalize_log_level",
]
