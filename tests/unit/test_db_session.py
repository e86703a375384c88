"""Tests for database session helpers."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from auditchain.db import session as db_session
from auditchain.db.session import get_db_session, verification_session


def _factory(session: AsyncMock) -> MagicMock:
    factory = MagicMock()
    factory.return_value.__aenter__.return_value = session
    return factory


@pytest.mark.asyncio
async def test_uninitialized_database_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(db_session, "_session_factory", None)

    with pytest.raises(RuntimeError, match="init_db"):
        async with verification_session():
            pass


@pytest.mark.asyncio
async def test_verification_session_is_read_only_snapshot(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    session = AsyncMock()
    monkeypatch.setattr(db_session, "_session_factory", _factory(session))

    async with verification_session() as opened:
        assert opened is session

    session.connection.assert_awaited_once_with(
        execution_options={"isolation_level": "REPEATABLE READ"}
    )
    assert "READ ONLY" in str(session.execute.await_args.args[0])
    session.rollback.assert_awaited_once()
    session.commit.assert_not_awaited()


@pytest.mark.asyncio
async def test_request_session_commits(monkeypatch: pytest.MonkeyPatch) -> None:
    session = AsyncMock()
    monkeypatch.setattr(db_session, "_session_factory", _factory(session))

    sessions = get_db_session()
    assert await sessions.__anext__() is session
    with pytest.raises(StopAsyncIteration):
        await sessions.__anext__()

    session.commit.assert_awaited_once()
    session.rollback.assert_not_awaited()


@pytest.mark.asyncio
async def test_request_session_rolls_back_on_error(monkeypatch: pytest.MonkeyPatch) -> None:
    session = AsyncMock()
    monkeypatch.setattr(db_session, "_session_factory", _factory(session))

    sessions = get_db_session()
    await sessions.__anext__()
    with pytest.raises(ValueError, match="boom"):
        await sessions.athrow(ValueError("boom"))

    session.rollback.assert_awaited_once()
    session.commit.assert_not_awaited()
