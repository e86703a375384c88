"""
SHA-256 hash chaining for sequential audit event integrity.

Each event carries two digests:

- ``payload_hash = SHA256(canonicalize(payload))`` over the event's logical
  content, independent of its position in the chain;
- ``chain_hash = SHA256(payload_hash + prior_chain_hash)``, binding the event
  to its predecessor in the same partition.

Modifying, reordering or deleting any event invalidates every later
``chain_hash`` of the partition.
"""

from __future__ import annotations

import hashlib
import re
from datetime import UTC, datetime
from typing import Any, Protocol

from auditchain.core.crypto.canonicalization import CanonicalValue, canonicalize

# Convenience constant for the genesis (first) event in a chain.
GENESIS_HASH: str = "0" * 64

# Keys of the hashed payload mapping. Changing this set invalidates every
# previously issued hash and requires a new partition.
HASHED_FIELDS: tuple[str, ...] = (
    "actor",
    "eventType",
    "entity",
    "entityId",
    "operation",
    "oldData",
    "newData",
    "createdAt",
)

_HEX_DIGEST = re.compile(r"[0-9a-f]{64}")


class HashableEvent(Protocol):
    """Attributes of an audit event that feed the payload hash."""

    actor: str
    event_type: str
    entity: str
    entity_id: str | None
    operation: str
    old_data: Any
    new_data: Any
    created_at: datetime


def digest(data: str | bytes) -> str:
    """Return the hex-encoded SHA-256 digest of ``data``.

    Strings are hashed over their UTF-8 encoding.
    """
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def is_chain_hash(value: object) -> bool:
    """Return ``True`` if ``value`` looks like a lowercase hex SHA-256 digest."""
    return isinstance(value, str) and _HEX_DIGEST.fullmatch(value) is not None


def format_created_at(value: datetime) -> str:
    """Render a timestamp as ISO-8601 UTC with millisecond precision.

    Naive datetimes are taken to be UTC. Sub-millisecond digits are dropped,
    matching the precision assigned by the event builder.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    value = value.astimezone(UTC)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def hash_payload(event: HashableEvent) -> dict[str, CanonicalValue]:
    """Build the mapping covered by ``payload_hash`` for an event.

    All hashed keys are always present; absent values are ``None``.
    """
    return {
        "actor": event.actor,
        "eventType": event.event_type,
        "entity": event.entity,
        "entityId": event.entity_id,
        "operation": event.operation,
        "oldData": event.old_data,
        "newData": event.new_data,
        "createdAt": format_created_at(event.created_at),
    }


def compute_payload_hash(payload: CanonicalValue) -> str:
    """Compute the content digest of a canonicalizable payload."""
    return digest(canonicalize(payload))


def compute_chain_hash(payload_hash: str, prior_chain_hash: str) -> str:
    """Link a payload hash to the previous chain hash of its partition.

    Parameters
    ----------
    payload_hash:
        Hex-encoded payload digest of the event being linked.
    prior_chain_hash:
        ``chain_hash`` of the previous event in the same partition, or
        :data:`GENESIS_HASH` for the first event.

    Returns
    -------
    str
        Hex-encoded SHA-256 digest of ``payload_hash + prior_chain_hash``.
    """
    return digest(payload_hash + prior_chain_hash)
