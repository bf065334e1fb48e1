"""Errors raised by the context processor and retry classification."""

from __future__ import annotations


class ProcessorConfigError(Exception):
    """Raised when a ``ContextProcessor`` is constructed with invalid collaborators.

    This is the only error ``ContextProcessor`` raises on its own account;
    event-level and extraction failures are recorded in the result instead.
    """

    @classmethod
    def missing_extractor(cls) -> ProcessorConfigError:
        """Create error for a ``None`` knowledge extractor."""
        return cls("ContextProcessor requires a knowledge extractor")

    @classmethod
    def invalid_extractor(cls, type_name: str) -> ProcessorConfigError:
        """Create error for an object that does not implement the protocol."""
        msg = (
            f"{type_name} does not implement KnowledgeExtractor: expected "
            "extract_decisions, summarize_discussion, identify_features and "
            "analyze_file_context"
        )
        return cls(msg)


def is_retryable_error(exc: BaseException) -> bool:
    """Return whether repeating the failed call may succeed.

    Timeouts are retryable. Exceptions that carry a boolean ``retryable``
    attribute (extractor and connector errors) decide for themselves.
    Anything else is treated as retryable.
    """
    if isinstance(exc, TimeoutError):
        return True
    retryable = getattr(exc, "retryable", None)
    if isinstance(retryable, bool):
        return retryable
    return True
