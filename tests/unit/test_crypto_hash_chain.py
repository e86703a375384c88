"""Tests for crypto hash chain module."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone
from types import SimpleNamespace

from auditchain.core.crypto.hash_chain import (
    GENESIS_HASH,
    HASHED_FIELDS,
    compute_chain_hash,
    compute_payload_hash,
    digest,
    format_created_at,
    hash_payload,
    is_chain_hash,
)


def _event(**overrides: object) -> SimpleNamespace:
    fields: dict[str, object] = {
        "actor": "u1",
        "event_type": "invoice_created",
        "entity": "invoice",
        "entity_id": None,
        "operation": "create",
        "old_data": None,
        "new_data": {"b": 1, "a": "x"},
        "created_at": datetime(2024, 1, 1, tzinfo=UTC),
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


class TestDigest:
    """Tests for the SHA-256 digest helper."""

    def test_known_vectors(self) -> None:
        assert digest("") == "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
        assert digest("abc") == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"

    def test_str_and_bytes_agree(self) -> None:
        assert digest("héllo") == digest("héllo".encode())

    def test_lowercase_hex(self) -> None:
        value = digest("payload")
        assert len(value) == 64
        assert is_chain_hash(value)


class TestIsChainHash:
    def test_genesis(self) -> None:
        assert is_chain_hash(GENESIS_HASH)

    def test_rejects_malformed(self) -> None:
        assert not is_chain_hash("abc")
        assert not is_chain_hash("A" * 64)
        assert not is_chain_hash("g" * 64)
        assert not is_chain_hash(None)


class TestFormatCreatedAt:
    def test_millisecond_precision(self) -> None:
        value = datetime(2024, 1, 2, 3, 4, 5, 678901, tzinfo=UTC)
        assert format_created_at(value) == "2024-01-02T03:04:05.678Z"

    def test_naive_is_utc(self) -> None:
        assert format_created_at(datetime(2024, 1, 2, 3, 4, 5)) == "2024-01-02T03:04:05.000Z"

    def test_offset_is_converted(self) -> None:
        value = datetime(2024, 1, 2, 5, 4, 5, tzinfo=timezone(timedelta(hours=2)))
        assert format_created_at(value) == "2024-01-02T03:04:05.000Z"


class TestHashPayload:
    def test_contains_every_hashed_field(self) -> None:
        assert set(hash_payload(_event())) == set(HASHED_FIELDS)

    def test_canonical_payload(self) -> None:
        expected = (
            '{"actor":"u1","createdAt":"2024-01-01T00:00:00.000Z","entity":"invoice",'
            '"entityId":null,"eventType":"invoice_created","newData":{"a":"x","b":1},'
            '"oldData":null,"operation":"create"}'
        )
        assert compute_payload_hash(hash_payload(_event())) == digest(expected)

    def test_payload_hash_ignores_key_order(self) -> None:
        left = compute_payload_hash(hash_payload(_event(new_data={"a": "x", "b": 1})))
        right = compute_payload_hash(hash_payload(_event(new_data={"b": 1, "a": "x"})))
        assert left == right

    def test_any_field_changes_the_hash(self) -> None:
        base = compute_payload_hash(hash_payload(_event()))
        assert compute_payload_hash(hash_payload(_event(actor="u2"))) != base
        assert compute_payload_hash(hash_payload(_event(entity_id="inv-1"))) != base
        later = datetime(2024, 1, 1, 0, 0, 0, 1000, tzinfo=UTC)
        assert compute_payload_hash(hash_payload(_event(created_at=later))) != base


class TestComputeChainHash:
    def test_formula(self) -> None:
        payload_hash = digest("payload")
        assert compute_chain_hash(payload_hash, GENESIS_HASH) == digest(
            payload_hash + GENESIS_HASH
        )

    def test_depends_on_prior(self) -> None:
        payload_hash = digest("payload")
        assert compute_chain_hash(payload_hash, GENESIS_HASH) != compute_chain_hash(
            payload_hash, "a" * 64
        )
