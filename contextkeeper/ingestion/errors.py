"""Errors raised by the ingestion orchestrator."""

from __future__ import annotations

import enum


class CyclePhase(enum.StrEnum):
    """Step of an ingestion cycle at which a failure occurred."""

    LOAD = "load"
    FETCH = "fetch"
    NORMALIZE = "normalize"
    PROCESS = "process"
    PERSIST = "persist"


class IngestionCycleError(RuntimeError):
    """Raised when a cycle fails before its checkpoint could be advanced.

    The checkpoint is left untouched; the original exception is chained as
    ``__cause__``.
    """

    def __init__(
        self,
        integration_id: str,
        phase: CyclePhase,
        reason: str,
    ) -> None:
        """Initialise with the integration, failing phase and reason."""
        self.integration_id = integration_id
        self.phase = phase
        self.reason = reason
        super().__init__(
            f"Ingestion cycle for {integration_id} failed during {phase}: {reason}"
        )

    @classmethod
    def wrap(
        cls, integration_id: str, phase: CyclePhase, exc: BaseException
    ) -> IngestionCycleError:
        """Return an error describing ``exc`` raised during ``phase``."""
        return cls(integration_id, phase, f"{type(exc).__name__}: {exc}")


class ConnectorUnavailableError(LookupError):
    """Raised when an integration's platform has no registered connector."""

    def __init__(self, integration_id: str, platform: str) -> None:
        """Initialise with the integration and its platform."""
        self.integration_id = integration_id
        self.platform = platform
        super().__init__(
            f"No connector registered for platform {platform} "
            f"(integration {integration_id})"
        )


class IntegrationNotActiveError(RuntimeError):
    """Raised when starting an integration whose status is not ``active``."""

    def __init__(self, integration_id: str, status: str) -> None:
        """Initialise with the integration and its current status."""
        self.integration_id = integration_id
        self.status = status
        super().__init__(
            f"Integration {integration_id} is {status}; only active integrations "
            "can be started"
        )
