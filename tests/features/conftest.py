"""Shared fixtures for BDD feature tests.

Step definitions drive async code through ``asyncio.run``, so each step
runs on its own event loop. The database fixture here therefore uses a
``NullPool`` engine: connections are opened per session and never carried
from one loop to the next.
"""

from __future__ import annotations

import asyncio
import typing as typ

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from contextkeeper.storage import init_storage

if typ.TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture
def bdd_session_factory(
    tmp_path: Path,
) -> typ.Iterator[async_sessionmaker[AsyncSession]]:
    """Yield a session factory over a per-scenario SQLite database."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'contextkeeper_bdd.db'}",
        poolclass=NullPool,
    )
    asyncio.run(init_storage(engine))
    try:
        yield async_sessionmaker(engine, expire_on_commit=False)
    finally:
        asyncio.run(engine.dispose())
