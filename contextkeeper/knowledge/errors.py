"""Custom exceptions for knowledge extraction backends."""

from __future__ import annotations

import typing as typ

if typ.TYPE_CHECKING:
    import collections.abc as cabc

# Content preview length for error messages
_CONTENT_PREVIEW_LIMIT = 100

_HTTP_RATE_LIMITED = 429
_HTTP_SERVER_ERROR_THRESHOLD = 500


class KnowledgeExtractionError(Exception):
    """Base exception for extraction failures.

    Attributes
    ----------
    retryable
        Whether repeating the same call may succeed. The context processor
        stops retrying a capability as soon as it sees ``False``.

    """

    def __init__(self, message: str, *, retryable: bool = True) -> None:
        """Initialise the error with message and retryability."""
        self.retryable = retryable
        super().__init__(message)


class OpenAIAPIError(KnowledgeExtractionError):
    """Raised when the OpenAI-compatible API returns an error response.

    Attributes
    ----------
    status_code
        HTTP status code from the API response, if available.

    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        retryable: bool = True,
    ) -> None:
        """Initialise the error with message and optional status code."""
        self.status_code = status_code
        super().__init__(message, retryable=retryable)

    @classmethod
    def http_error(cls, status_code: int) -> OpenAIAPIError:
        """Create error for HTTP error responses.

        Server errors are retryable; other client errors are not.
        """
        msg = f"OpenAI API HTTP error {status_code}"
        return cls(
            msg,
            status_code=status_code,
            retryable=status_code >= _HTTP_SERVER_ERROR_THRESHOLD,
        )

    @classmethod
    def rate_limited(cls, retry_after: int | None = None) -> OpenAIAPIError:
        """Create error for rate limit (429) responses.

        Parameters
        ----------
        retry_after
            Seconds to wait before retrying, from Retry-After header.

        Returns
        -------
        OpenAIAPIError
            Error indicating rate limiting.

        """
        msg = "OpenAI API rate limited"
        if retry_after is not None:
            msg = f"{msg}, retry after {retry_after}s"
        return cls(msg, status_code=_HTTP_RATE_LIMITED)

    @classmethod
    def timeout(cls) -> OpenAIAPIError:
        """Create error for request timeouts."""
        return cls("OpenAI API request timed out")

    @classmethod
    def network_error(cls, detail: str) -> OpenAIAPIError:
        """Create error for network failures (DNS, connection, TLS, etc.)."""
        msg = f"OpenAI API network error: {detail}"
        return cls(msg)


class OpenAIResponseShapeError(KnowledgeExtractionError):
    """Raised when a model response is missing expected fields or malformed."""

    @classmethod
    def missing(cls, field: str) -> OpenAIResponseShapeError:
        """Create error for missing response field.

        Parameters
        ----------
        field
            Name or path of the missing field.

        Returns
        -------
        OpenAIResponseShapeError
            Error with field context.

        """
        msg = f"OpenAI response missing expected field: {field}"
        return cls(msg, retryable=False)

    @classmethod
    def invalid_json(cls, content: str) -> OpenAIResponseShapeError:
        """Create error for invalid JSON in response content.

        The error is retryable: a later completion may be well formed.
        """
        if len(content) > _CONTENT_PREVIEW_LIMIT:
            preview = content[:_CONTENT_PREVIEW_LIMIT] + "..."
        else:
            preview = content
        msg = f"Failed to parse JSON from response: {preview}"
        return cls(msg)


class OpenAIConfigError(Exception):
    """Raised when OpenAI client configuration is invalid."""

    @classmethod
    def missing_api_key(cls) -> OpenAIConfigError:
        """Create error for missing API key environment variable."""
        return cls("CONTEXTKEEPER_OPENAI_API_KEY environment variable is required")

    @classmethod
    def empty_api_key(cls) -> OpenAIConfigError:
        """Create error for empty API key."""
        return cls("OpenAI API key must be non-empty")


class ExtractorConfigError(Exception):
    """Raised when extractor factory configuration is invalid."""

    @classmethod
    def invalid_backend(
        cls, name: str, valid_backends: cabc.Iterable[str]
    ) -> ExtractorConfigError:
        """Create error for unrecognized backend name.

        Parameters
        ----------
        name
            The invalid backend name that was provided.
        valid_backends
            Iterable of valid backend names.

        Returns
        -------
        ExtractorConfigError
            Error listing valid backend options.

        """
        valid_backends_str = ", ".join(f"'{b}'" for b in sorted(valid_backends))
        message = (
            f"Invalid knowledge extractor backend '{name}'. "
            f"Valid options are: {valid_backends_str}"
        )
        return cls(message)

    @classmethod
    def invalid_parameter(
        cls, parameter_name: str, value: str, constraint: str
    ) -> ExtractorConfigError:
        """Create error for an invalid configuration parameter value."""
        message = f"Invalid {parameter_name} '{value}'. {constraint}"
        return cls(message)
