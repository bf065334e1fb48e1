"""Value types exchanged with platform connectors."""

from __future__ import annotations

import dataclasses
import datetime as dt

import msgspec

from contextkeeper.events.models import Metadata


@dataclasses.dataclass(frozen=True, slots=True)
class AuthConfig:
    """Credentials and options used to authorize an integration.

    Attributes
    ----------
    platform
        Platform tag the credentials belong to.
    credentials
        Opaque secrets (tokens, client IDs); excluded from ``repr``.
    settings
        Non-secret connector options such as workspace or organisation IDs.

    """

    platform: str
    credentials: dict[str, str] = dataclasses.field(default_factory=dict, repr=False)
    settings: Metadata = dataclasses.field(default_factory=dict)


class AuthResult(msgspec.Struct, kw_only=True, frozen=True):
    """Outcome of a connector authentication attempt."""

    success: bool
    account: str = ""
    expires_at: dt.datetime | None = None
    scopes: tuple[str, ...] = ()
    error: str | None = None


class PlatformInfo(msgspec.Struct, kw_only=True, frozen=True):
    """Self-description reported by a connector."""

    name: str
    display_name: str
    version: str
