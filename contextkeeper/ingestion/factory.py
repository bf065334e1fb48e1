"""Factory for building an ``IngestionOrchestrator`` from the environment.

Usage
-----
Build an orchestrator over an existing session factory::

    from contextkeeper.ingestion.factory import build_orchestrator

    orchestrator = build_orchestrator(session_factory, registry)

"""

from __future__ import annotations

import typing as typ

from contextkeeper.knowledge import create_knowledge_extractor
from contextkeeper.processing import (
    ContextProcessor,
    ProcessingEventLogger,
    ProcessorConfig,
)
from contextkeeper.storage import SqlAlchemyRepositoryStore

from .config import OrchestratorConfig
from .observability import IngestionEventLogger
from .orchestrator import IngestionOrchestrator

if typ.TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from contextkeeper.connectors import ConnectorRegistry

__all__ = ["build_orchestrator"]


def build_orchestrator(
    session_factory: async_sessionmaker[AsyncSession],
    connectors: ConnectorRegistry,
) -> IngestionOrchestrator:
    """Build an ``IngestionOrchestrator`` from environment configuration.

    Selects the knowledge extraction backend, processor policy and
    orchestrator knobs from ``CONTEXTKEEPER_*`` variables and wires them to
    a SQLAlchemy-backed store.

    Parameters
    ----------
    session_factory
        Async session factory for database access.
    connectors
        Registry of platform connectors.

    Returns
    -------
    IngestionOrchestrator
        Orchestrator ready to start project ingestion.

    Raises
    ------
    ValueError
        If a configuration variable is malformed.
    ExtractorConfigError
        If the extractor backend is unknown or misconfigured.

    """
    processor = ContextProcessor(
        create_knowledge_extractor(),
        config=ProcessorConfig.from_env(),
        event_logger=ProcessingEventLogger(),
    )
    return IngestionOrchestrator(
        SqlAlchemyRepositoryStore(session_factory),
        connectors,
        processor,
        config=OrchestratorConfig.from_env(),
        event_logger=IngestionEventLogger(),
    )
