"""Unit tests for paged partition verification."""

from __future__ import annotations

from dataclasses import asdict
from datetime import UTC, datetime, timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from auditchain.core.audit import build_audit_event
from auditchain.core.config import Settings
from auditchain.core.crypto.hash_chain import GENESIS_HASH
from auditchain.core.crypto.verification import ChainFailure
from auditchain.modules.audit.service import AuditChainService


def _stored_chain(count: int, partition_key: str = "org-1") -> list[SimpleNamespace]:
    rows: list[SimpleNamespace] = []
    prior = GENESIS_HASH
    base = datetime(2024, 1, 1, tzinfo=UTC)
    for i in range(count):
        record = build_audit_event(
            {
                "actor": "u1",
                "event_type": "invoice_updated",
                "entity": "invoice",
                "operation": "update",
                "new_data": {"amount": i},
            },
            prior,
            now=base + timedelta(minutes=i),
        )
        rows.append(
            SimpleNamespace(**asdict(record), partition_key=partition_key, chain_sequence=i)
        )
        prior = record.chain_hash
    return rows


def _scalars_result(values: list[object]) -> SimpleNamespace:
    return SimpleNamespace(
        scalars=lambda: SimpleNamespace(all=lambda: values),
    )


def _service(session: AsyncMock, batch_size: int = 2) -> AuditChainService:
    return AuditChainService(session, settings=Settings(audit_verify_batch_size=batch_size))


@pytest.mark.asyncio
async def test_verify_partition_pages_through_chain() -> None:
    rows = _stored_chain(5)
    session = AsyncMock()
    session.execute = AsyncMock(
        side_effect=[
            _scalars_result(rows[0:2]),
            _scalars_result(rows[2:4]),
            _scalars_result(rows[4:]),
        ]
    )

    result = await _service(session).verify_partition("org-1")

    assert result.is_valid
    assert result.verified_count == 5
    assert result.last_chain_hash == rows[-1].chain_hash
    assert session.execute.await_count == 3


@pytest.mark.asyncio
async def test_verify_partition_stops_on_empty_page() -> None:
    rows = _stored_chain(4)
    session = AsyncMock()
    session.execute = AsyncMock(
        side_effect=[
            _scalars_result(rows[0:2]),
            _scalars_result(rows[2:4]),
            _scalars_result([]),
        ]
    )

    result = await _service(session).verify_partition("org-1")

    assert result.is_valid
    assert result.verified_count == 4
    assert session.execute.await_count == 3


@pytest.mark.asyncio
async def test_verify_partition_reports_break_in_later_page() -> None:
    rows = _stored_chain(5)
    rows[3].new_data = {"amount": 1000}
    session = AsyncMock()
    session.execute = AsyncMock(
        side_effect=[_scalars_result(rows[0:2]), _scalars_result(rows[2:4])]
    )

    result = await _service(session).verify_partition("org-1")

    assert not result.is_valid
    assert result.first_break_at == 3
    assert result.failure is ChainFailure.PAYLOAD_TAMPERED
    assert result.verified_count == 3
    assert result.last_chain_hash == rows[2].chain_hash
    assert session.execute.await_count == 2


@pytest.mark.asyncio
async def test_verify_partition_resumes_from_checkpoint() -> None:
    rows = _stored_chain(5)
    session = AsyncMock()
    session.execute = AsyncMock(
        side_effect=[_scalars_result(rows[2:4]), _scalars_result(rows[4:])]
    )

    result = await _service(session).verify_partition(
        "org-1",
        start_index=2,
        prior_chain_hash=rows[1].chain_hash,
    )

    assert result.is_valid
    assert result.verified_count == 3
    assert result.last_chain_hash == rows[-1].chain_hash


@pytest.mark.asyncio
async def test_verify_partition_empty() -> None:
    session = AsyncMock()
    session.execute = AsyncMock(return_value=_scalars_result([]))

    result = await _service(session).verify_partition("org-1")

    assert result.is_valid
    assert result.verified_count == 0
    assert result.last_chain_hash == GENESIS_HASH


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("start_index", "prior_chain_hash", "message"),
    [
        (-1, None, "start_index"),
        (3, None, "prior_chain_hash is required"),
        (0, "not-a-hash", "64-character"),
    ],
)
async def test_verify_partition_rejects_bad_resume_parameters(
    start_index: int,
    prior_chain_hash: str | None,
    message: str,
) -> None:
    session = AsyncMock()

    with pytest.raises(ValueError, match=message):
        await _service(session).verify_partition(
            "org-1",
            start_index=start_index,
            prior_chain_hash=prior_chain_hash,
        )

    session.execute.assert_not_awaited()


@pytest.mark.asyncio
async def test_list_partitions() -> None:
    session = AsyncMock()
    session.execute = AsyncMock(return_value=_scalars_result(["global", "org-1"]))

    assert await _service(session).list_partitions() == ["global", "org-1"]


@pytest.mark.asyncio
async def test_verify_single_event_against_predecessor() -> None:
    rows = _stored_chain(2)
    session = AsyncMock()
    session.execute = AsyncMock(
        return_value=SimpleNamespace(scalar_one_or_none=lambda: rows[0].chain_hash)
    )

    assert await _service(session).verify_single_event(rows[1])


@pytest.mark.asyncio
async def test_verify_single_genesis_event() -> None:
    rows = _stored_chain(1)
    session = AsyncMock()
    session.execute = AsyncMock(return_value=SimpleNamespace(scalar_one_or_none=lambda: None))

    assert await _service(session).verify_single_event(rows[0])


@pytest.mark.asyncio
async def test_verify_single_tampered_event() -> None:
    rows = _stored_chain(2)
    tampered = SimpleNamespace(**{**vars(rows[1]), "operation": "delete"})
    session = AsyncMock()
    session.execute = AsyncMock(
        return_value=SimpleNamespace(scalar_one_or_none=lambda: rows[0].chain_hash)
    )

    assert not await _service(session).verify_single_event(tampered)


@pytest.mark.asyncio
async def test_get_event() -> None:
    row = _stored_chain(1)[0]
    session = AsyncMock()
    session.get = AsyncMock(return_value=row)

    assert await _service(session).get_event(row.id) is row

