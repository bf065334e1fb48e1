"""Errors raised by the repository store."""

from __future__ import annotations


class StoreError(Exception):
    """Base class for repository store errors."""


class ProjectNotFoundError(StoreError):
    """Raised when a project workspace cannot be found by ID."""

    def __init__(self, project_id: str) -> None:
        """Initialise with the missing project ID."""
        self.project_id = project_id
        super().__init__(f"Project not found: {project_id}")


class IntegrationNotFoundError(StoreError):
    """Raised when a project integration cannot be found by ID."""

    def __init__(self, integration_id: str) -> None:
        """Initialise with the missing integration ID."""
        self.integration_id = integration_id
        super().__init__(f"Integration not found: {integration_id}")


class DataSourceNotFoundError(StoreError):
    """Raised when a project data source cannot be found by ID."""

    def __init__(self, data_source_id: str) -> None:
        """Initialise with the missing data source ID."""
        self.data_source_id = data_source_id
        super().__init__(f"Data source not found: {data_source_id}")


class TimezoneAwareRequiredError(ValueError):
    """Raised when a naive datetime is bound to a UTC column."""

    def __init__(self, column: str) -> None:
        """Attach a consistent message for the failing column."""
        super().__init__(f"{column} must be timezone aware")

    @classmethod
    def for_column(cls, column: str | None = None) -> TimezoneAwareRequiredError:
        """Return an error naming the column, or a generic one."""
        return cls(column or "datetime value")
