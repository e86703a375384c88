"""
Async database session management using SQLAlchemy 2.0.

Two session flavours are provided:

- ``get_db_session`` / ``DbSession``: request-scoped, committed on success.
  Audit events are emitted through the caller's session of this kind so that
  the audit row and the business change share one transaction.
- ``verification_session`` / ``VerificationDbSession``: read-only
  ``REPEATABLE READ`` transaction, so a paged chain sweep sees one consistent
  snapshot of a partition while appends continue.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from auditchain.core.config import get_settings

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


async def init_db() -> None:
    """
    Create the engine and session factory.

    Called from the application lifespan and by the operator tools.
    """
    global _engine, _session_factory

    settings = get_settings()

    _engine = create_async_engine(
        str(settings.database_url),
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        pool_timeout=settings.database_pool_timeout,
        pool_pre_ping=True,
        echo=settings.debug,
    )
    _session_factory = async_sessionmaker(
        bind=_engine,
        expire_on_commit=False,
        autoflush=False,
    )


async def close_db() -> None:
    """Dispose the engine and its connection pool."""
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None


def _require_factory() -> async_sessionmaker[AsyncSession]:
    if _session_factory is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _session_factory


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency that provides a read-write session.

    Commits when the request succeeds and rolls back otherwise, taking any
    audit events flushed during the request with it.
    """
    async with _require_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def verification_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Open a read-only snapshot session for chain verification.

    Every page read within the session observes the same committed state, so
    a sweep never mixes rows from before and after a concurrent append.
    """
    async with _require_factory()() as session:
        await session.connection(execution_options={"isolation_level": "REPEATABLE READ"})
        await session.execute(text("SET TRANSACTION READ ONLY"))
        try:
            yield session
        finally:
            await session.rollback()


async def get_verification_session() -> AsyncGenerator[AsyncSession, None]:
    """Dependency wrapper around :func:`verification_session`."""
    async with verification_session() as session:
        yield session


DbSession = Annotated[AsyncSession, Depends(get_db_session)]
VerificationDbSession = Annotated[AsyncSession, Depends(get_verification_session)]
