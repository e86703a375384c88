"""
Audit event recording for tamper-evident compliance tracking.

Provides ``build_audit_event()`` for assembling a hash-chained audit record
from caller fields, and ``emit_audit_event()`` for appending it to the
``audit_events`` table of a chain partition.

Audit writes share the caller's session and transaction: the audit record and
the business change are committed together or not at all. Validation and
store errors propagate so that a mutation never commits without its audit
trail.

Appends to the same partition are serialized by a transaction-scoped
PostgreSQL advisory lock taken before the partition head is read, so two
writers can never link to the same predecessor.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import desc, select, text

from auditchain.core.config import get_settings
from auditchain.core.crypto.canonicalization import InvalidInputError, canonicalize
from auditchain.core.crypto.hash_chain import (
    GENESIS_HASH,
    compute_chain_hash,
    compute_payload_hash,
    hash_payload,
    is_chain_hash,
)
from auditchain.core.logging import get_logger
from auditchain.db.models import AuditEvent

logger = get_logger(__name__)

REQUIRED_FIELDS: tuple[str, ...] = ("actor", "event_type", "entity", "operation")
OPTIONAL_STRING_FIELDS: tuple[str, ...] = ("entity_id", "run_id")
SNAPSHOT_FIELDS: tuple[str, ...] = ("old_data", "new_data")

# Mirrors the column widths of ``audit_events``.
_MAX_LENGTHS: dict[str, int] = {
    "actor": 255,
    "event_type": 100,
    "entity": 100,
    "operation": 50,
    "entity_id": 255,
    "run_id": 255,
    "partition_key": 255,
}


class AuditValidationError(ValueError):
    """Raised when an audit event lacks required fields or carries invalid ones."""


@dataclass(frozen=True)
class AuditRecord:
    """A fully populated audit event, ready to be persisted."""

    id: UUID
    actor: str
    event_type: str
    entity: str
    operation: str
    entity_id: str | None
    old_data: Any
    new_data: Any
    run_id: str | None
    created_at: datetime
    payload_hash: str
    chain_hash: str


@dataclass(frozen=True)
class ChainHead:
    """Last link of a partition chain."""

    chain_hash: str = GENESIS_HASH
    sequence: int = -1
    created_at: datetime | None = None

    @property
    def is_genesis(self) -> bool:
        return self.sequence < 0


def _as_utc_millis(value: datetime) -> datetime:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    value = value.astimezone(UTC)
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)


def _check_length(name: str, value: str) -> None:
    limit = _MAX_LENGTHS[name]
    if len(value) > limit:
        raise AuditValidationError(f"Audit field {name!r} exceeds {limit} characters")


def _validate_fields(raw: Mapping[str, Any]) -> dict[str, Any]:
    """Check caller-supplied fields and return them with ids coerced to str."""
    known = set(REQUIRED_FIELDS) | set(OPTIONAL_STRING_FIELDS) | set(SNAPSHOT_FIELDS)
    unknown = sorted(str(name) for name in raw if name not in known)
    if unknown:
        raise AuditValidationError(f"Unknown audit event fields: {', '.join(unknown)}")

    missing = [
        name
        for name in REQUIRED_FIELDS
        if not isinstance(raw.get(name), str) or not raw[name].strip()
    ]
    if missing:
        raise AuditValidationError(
            f"Audit event is missing required fields: {', '.join(missing)}"
        )

    fields: dict[str, Any] = {name: raw[name] for name in REQUIRED_FIELDS}
    for name in OPTIONAL_STRING_FIELDS:
        value = raw.get(name)
        if isinstance(value, UUID) or (isinstance(value, int) and not isinstance(value, bool)):
            value = str(value)
        if value is not None and not isinstance(value, str):
            raise AuditValidationError(
                f"Audit field {name!r} must be a string, got {type(value).__name__}"
            )
        fields[name] = value

    for name, value in fields.items():
        if value is not None:
            _check_length(name, value)

    for name in SNAPSHOT_FIELDS:
        fields[name] = raw.get(name)
    return fields


def _integral_as_int(text: str) -> int | float:
    value = float(text)
    return int(value) if value.is_integer() else value


def _normalize_snapshot(value: Any) -> Any:
    """Return the snapshot in the form it is hashed and stored.

    Strings are NFC, non-finite numbers are ``None`` and integral floats are
    exact ints. PostgreSQL JSONB prints numerics without an exponent, so a
    float such as ``1e21`` comes back as the integer
    ``1000000000000000000000``; hashing the int form keeps the stored row
    verifiable after a read.
    """
    if value is None:
        return None
    return json.loads(canonicalize(value), parse_float=_integral_as_int)


def build_audit_event(
    raw: Mapping[str, Any],
    prior_chain_hash: str,
    *,
    now: datetime | None = None,
    event_id: UUID | None = None,
) -> AuditRecord:
    """Assemble a hash-chained audit record.

    Parameters
    ----------
    raw:
        Caller fields: ``actor``, ``event_type``, ``entity``, ``operation``
        (required), ``entity_id``, ``run_id``, ``old_data``, ``new_data``.
    prior_chain_hash:
        ``chain_hash`` of the partition head, or ``GENESIS_HASH`` for the
        first event of a partition.
    now:
        Creation time; defaults to the current UTC time. Truncated to
        milliseconds.
    event_id:
        Identifier to assign; a fresh UUID4 by default.

    Raises
    ------
    AuditValidationError
        If required fields are missing or blank, a field has the wrong type,
        or ``prior_chain_hash`` is not a SHA-256 hex digest.
    InvalidInputError
        If a snapshot contains a cycle or a non-canonicalizable value.
    """
    fields = _validate_fields(raw)
    if not is_chain_hash(prior_chain_hash):
        raise AuditValidationError("prior_chain_hash must be a 64-character hex SHA-256 digest")

    old_data = _normalize_snapshot(fields["old_data"])
    new_data = _normalize_snapshot(fields["new_data"])
    created_at = _as_utc_millis(now if now is not None else datetime.now(UTC))

    unsigned = AuditRecord(
        id=event_id or uuid4(),
        actor=fields["actor"],
        event_type=fields["event_type"],
        entity=fields["entity"],
        operation=fields["operation"],
        entity_id=fields["entity_id"],
        old_data=old_data,
        new_data=new_data,
        run_id=fields["run_id"],
        created_at=created_at,
        payload_hash="",
        chain_hash="",
    )
    payload_hash = compute_payload_hash(hash_payload(unsigned))
    chain_hash = compute_chain_hash(payload_hash, prior_chain_hash)

    return replace(unsigned, payload_hash=payload_hash, chain_hash=chain_hash)


async def lock_partition(db_session: Any, partition_key: str) -> None:
    """Take the transaction-scoped advisory lock guarding a partition head."""
    await db_session.execute(
        text("SELECT pg_advisory_xact_lock(hashtext(:partition_key))"),
        {"partition_key": partition_key},
    )


async def read_chain_head(
    db_session: Any,
    partition_key: str,
    *,
    lock: bool = False,
) -> ChainHead:
    """Return the last link of a partition, or the genesis head when empty.

    With ``lock=True`` the partition lock is acquired first; it is held until
    the surrounding transaction ends.
    """
    if lock:
        await lock_partition(db_session, partition_key)

    result = await db_session.execute(
        select(
            AuditEvent.chain_hash,
            AuditEvent.chain_sequence,
            AuditEvent.created_at,
        )
        .where(AuditEvent.partition_key == partition_key)
        .order_by(desc(AuditEvent.chain_sequence))
        .limit(1)
    )
    row = result.first()
    if row is None:
        return ChainHead()
    return ChainHead(
        chain_hash=str(row[0]),
        sequence=int(row[1]),
        created_at=_as_utc_millis(row[2]) if row[2] is not None else None,
    )


async def last_chain_hash(db_session: Any, partition_key: str) -> str:
    """Return the partition's last ``chain_hash`` (or genesis) under its lock."""
    head = await read_chain_head(db_session, partition_key, lock=True)
    return head.chain_hash


def _record_to_row(record: AuditRecord, *, partition_key: str, chain_sequence: int) -> AuditEvent:
    return AuditEvent(
        id=record.id,
        partition_key=partition_key,
        chain_sequence=chain_sequence,
        run_id=record.run_id,
        actor=record.actor,
        event_type=record.event_type,
        entity=record.entity,
        entity_id=record.entity_id,
        operation=record.operation,
        old_data=record.old_data,
        new_data=record.new_data,
        payload_hash=record.payload_hash,
        chain_hash=record.chain_hash,
        created_at=record.created_at,
    )


async def emit_audit_event(
    *,
    db_session: Any,
    actor: str,
    event_type: str,
    entity: str,
    operation: str,
    entity_id: str | UUID | None = None,
    old_data: Any = None,
    new_data: Any = None,
    run_id: str | None = None,
    partition_key: str | None = None,
) -> AuditEvent:
    """
    Append a hash-chained audit event to a partition.

    Parameters
    ----------
    db_session:
        The ``AsyncSession`` of the business transaction. The caller commits;
        the partition lock is released when that transaction ends.
    actor:
        Principal that caused the event: user id, service name, or ``"system"``.
    event_type:
        Classification, e.g. ``"payment_allocated"``, ``"role_changed"``.
    entity:
        Audited table or aggregate, e.g. ``"monthly_invoices"``.
    operation:
        Short verb, e.g. ``"create"``, ``"update"``, ``"allocate"``.
    entity_id:
        Primary key of the affected entity.
    old_data, new_data:
        Before/after snapshots relevant to the operation.
    run_id:
        Optional correlation id of the logical operation.
    partition_key:
        Chain partition, typically the organization id. Defaults to
        ``AUDIT_DEFAULT_PARTITION``.

    Returns
    -------
    AuditEvent
        The flushed row.

    Raises
    ------
    AuditValidationError, InvalidInputError
        On invalid caller input; nothing is written.
    """
    partition = partition_key or get_settings().audit_default_partition
    raw: dict[str, Any] = {
        "actor": actor,
        "event_type": event_type,
        "entity": entity,
        "operation": operation,
        "entity_id": entity_id,
        "old_data": old_data,
        "new_data": new_data,
        "run_id": run_id,
    }

    try:
        _check_length("partition_key", partition)
        _validate_fields(raw)
    except AuditValidationError as exc:
        logger.warning(
            "audit_event_rejected",
            partition_key=partition,
            event_type=event_type,
            entity=entity,
            reason=str(exc),
        )
        raise

    head = await read_chain_head(db_session, partition, lock=True)

    now = _as_utc_millis(datetime.now(UTC))
    if head.created_at is not None and now < head.created_at:
        # Keep created_at monotonic across app servers with skewed clocks
        now = head.created_at

    try:
        record = build_audit_event(raw, head.chain_hash, now=now)
    except InvalidInputError as exc:
        logger.warning(
            "audit_event_rejected",
            partition_key=partition,
            event_type=event_type,
            entity=entity,
            reason=str(exc),
        )
        raise

    event = _record_to_row(record, partition_key=partition, chain_sequence=head.sequence + 1)
    db_session.add(event)
    await db_session.flush()

    logger.info(
        "audit_event_appended",
        partition_key=partition,
        chain_sequence=event.chain_sequence,
        event_type=record.event_type,
        entity=record.entity,
        entity_id=record.entity_id,
        run_id=record.run_id,
    )
    return event
