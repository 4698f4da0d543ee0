"""Shared fixtures for unit tests."""

from __future__ import annotations

import typing as typ

import dramatiq
import pytest_asyncio
from dramatiq.brokers.stub import StubBroker
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from crier.checkpoints import init_checkpoint_storage

if typ.TYPE_CHECKING:
    from pathlib import Path

# Actors bind to the global broker when their module is imported.
dramatiq.set_broker(StubBroker())


async def _setup_sqlite(tmp_path: Path) -> AsyncEngine:
    """Create a SQLite engine and initialise the checkpoint tables."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'crier_test.db'}")
    try:
        await init_checkpoint_storage(engine)
    except Exception:
        await engine.dispose()
        raise
    return engine


@pytest_asyncio.fixture
async def session_factory(
    tmp_path: Path,
) -> typ.AsyncIterator[async_sessionmaker[AsyncSession]]:
    """Yield a fresh async session factory backed by sqlite."""
    engine = await _setup_sqlite(tmp_path)
    factory = async_sessionmaker(engine, expire_on_commit=False)
    try:
        yield factory
    finally:
        await engine.dispose()
