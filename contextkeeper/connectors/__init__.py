"""Platform connector contract and registry."""

from __future__ import annotations

from contextkeeper.events import RawEvent

from .errors import (
    ConnectorAlreadyRegisteredError,
    ConnectorError,
    ConnectorNotFoundError,
)
from .models import AuthConfig, AuthResult, PlatformInfo
from .protocol import PlatformConnector
from .registry import ConnectorRegistry

__all__ = [
    "AuthConfig",
    "AuthResult",
    "ConnectorAlreadyRegisteredError",
    "ConnectorError",
    "ConnectorNotFoundError",
    "ConnectorRegistry",
    "PlatformConnector",
    "PlatformInfo",
    "RawEvent",
]
