"""Errors raised by platform connectors and the connector registry."""

from __future__ import annotations


class ConnectorError(RuntimeError):
    """Raised when a platform connector cannot complete a call.

    ``retryable`` tells the orchestrator whether the next scheduled cycle may
    succeed without operator action.
    """

    def __init__(
        self,
        message: str,
        *,
        platform: str = "",
        retryable: bool = True,
    ) -> None:
        """Initialise with a message, the platform tag and retryability."""
        self.platform = platform
        self.retryable = retryable
        super().__init__(message)

    @classmethod
    def fetch_failed(cls, platform: str, reason: str) -> ConnectorError:
        """Return a retryable error for a failed fetch."""
        return cls(f"{platform} fetch failed: {reason}", platform=platform)

    @classmethod
    def normalize_failed(cls, platform: str, reason: str) -> ConnectorError:
        """Return a non-retryable error for events that cannot be normalized."""
        return cls(
            f"{platform} normalization failed: {reason}",
            platform=platform,
            retryable=False,
        )

    @classmethod
    def authentication_failed(cls, platform: str, reason: str) -> ConnectorError:
        """Return a non-retryable error for rejected credentials."""
        return cls(
            f"{platform} authentication failed: {reason}",
            platform=platform,
            retryable=False,
        )


class ConnectorNotFoundError(LookupError):
    """Raised when no connector is registered for a platform."""

    def __init__(self, platform: str) -> None:
        """Initialise with the missing platform tag."""
        self.platform = platform
        super().__init__(f"No connector registered for platform: {platform}")


class ConnectorAlreadyRegisteredError(ValueError):
    """Raised when a second connector is registered for a platform."""

    def __init__(self, platform: str) -> None:
        """Initialise with the duplicated platform tag."""
        self.platform = platform
        super().__init__(f"Connector already registered for platform: {platform}")
