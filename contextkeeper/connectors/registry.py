"""Registry of platform connectors keyed by platform tag."""

from __future__ import annotations

import typing as typ

from contextkeeper.logging import get_logger, log_info

from .errors import ConnectorAlreadyRegisteredError, ConnectorNotFoundError
from .protocol import PlatformConnector

if typ.TYPE_CHECKING:
    import collections.abc as cabc

logger = get_logger(__name__)


class ConnectorRegistry:
    """Hold one connector per platform.

    Examples
    --------
    >>> registry = ConnectorRegistry()
    >>> "github" in registry
    False

    """

    def __init__(
        self, connectors: cabc.Mapping[str, PlatformConnector] | None = None
    ) -> None:
        """Initialise, optionally pre-registering ``connectors``."""
        self._connectors: dict[str, PlatformConnector] = {}
        for platform, connector in (connectors or {}).items():
            self.register(platform, connector)

    def register(
        self,
        platform: str,
        connector: PlatformConnector,
        *,
        replace: bool = False,
    ) -> None:
        """Register ``connector`` for ``platform``.

        Raises
        ------
        TypeError
            If ``connector`` does not implement ``PlatformConnector``.
        ConnectorAlreadyRegisteredError
            If the platform already has a connector and ``replace`` is false.

        """
        if not isinstance(connector, PlatformConnector):
            msg = f"{type(connector).__name__} does not implement PlatformConnector"
            raise TypeError(msg)
        key = platform.strip().lower()
        if key in self._connectors and not replace:
            raise ConnectorAlreadyRegisteredError(key)
        self._connectors[key] = connector
        log_info(logger, "Registered connector for platform %s", key)

    def get(self, platform: str) -> PlatformConnector:
        """Return the connector for ``platform``.

        Raises
        ------
        ConnectorNotFoundError
            If no connector is registered for the platform.

        """
        key = platform.strip().lower()
        try:
            return self._connectors[key]
        except KeyError:
            raise ConnectorNotFoundError(key) from None

    def unregister(self, platform: str) -> None:
        """Remove the connector for ``platform``, if any."""
        self._connectors.pop(platform.strip().lower(), None)

    def platforms(self) -> list[str]:
        """Return registered platform tags in sorted order."""
        return sorted(self._connectors)

    def __contains__(self, platform: object) -> bool:
        """Return whether ``platform`` has a registered connector."""
        return (
            isinstance(platform, str)
            and platform.strip().lower() in self._connectors
        )

    def __len__(self) -> int:
        """Return the number of registered connectors."""
        return len(self._connectors)
