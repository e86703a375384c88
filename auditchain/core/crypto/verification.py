"""
Audit chain and event verification utilities.

Provides functions to verify the integrity of hash chains, both individual
events and full sequences. These are pure functions operating on any objects
exposing the audit event attributes (ORM rows or :class:`AuditRecord`),
decoupled from the database layer.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

from auditchain.core.crypto.canonicalization import InvalidInputError
from auditchain.core.crypto.hash_chain import (
    GENESIS_HASH,
    HashableEvent,
    compute_chain_hash,
    compute_payload_hash,
    hash_payload,
)


class ChainFailure(str, Enum):
    """Kind of integrity violation found at the first diverging event."""

    PAYLOAD_TAMPERED = "payload_tampered"
    CHAIN_BROKEN = "chain_broken"


class ChainedEvent(HashableEvent, Protocol):
    """An audit event carrying its stored digests."""

    payload_hash: str | None
    chain_hash: str | None


@dataclass
class ChainVerificationResult:
    """Result of verifying a hash chain.

    Attributes
    ----------
    is_valid:
        ``True`` if every verified event is intact.
    verified_count:
        Number of events successfully verified before the first break.
    first_break_at:
        Absolute index (``start_index`` + offset) of the first diverging
        event, or ``None``.
    failure:
        Kind of the first violation, or ``None``.
    errors:
        Human-readable description of the violation.
    last_chain_hash:
        ``chain_hash`` of the last verified event (the supplied prior hash if
        none verified). Pass it back as ``prior_chain_hash`` to resume.
    """

    is_valid: bool = True
    verified_count: int = 0
    first_break_at: int | None = None
    failure: ChainFailure | None = None
    errors: list[str] = field(default_factory=list)
    last_chain_hash: str = GENESIS_HASH

    def mark_broken(self, index: int, failure: ChainFailure, message: str) -> None:
        self.is_valid = False
        self.first_break_at = index
        self.failure = failure
        self.errors.append(f"Event at index {index}: {message}")


def _recompute_payload_hash(event: HashableEvent) -> tuple[str | None, str | None]:
    """Return ``(payload_hash, error)`` for an event's stored fields."""
    try:
        return compute_payload_hash(hash_payload(event)), None
    except (InvalidInputError, AttributeError, TypeError, ValueError) as exc:
        return None, f"stored fields are not hashable ({exc})"


def verify_event(event: ChainedEvent, prior_chain_hash: str | None) -> bool:
    """Verify a single event's digests against its claimed predecessor.

    Parameters
    ----------
    event:
        Event carrying ``payload_hash``, ``chain_hash`` and its content fields.
    prior_chain_hash:
        ``chain_hash`` of the previous event, or ``None`` for the genesis event.

    Returns
    -------
    bool
        ``True`` if both stored digests match their recomputed values.
    """
    if event.payload_hash is None or event.chain_hash is None:
        return False
    recomputed, _ = _recompute_payload_hash(event)
    if recomputed is None or recomputed != event.payload_hash:
        return False
    effective_prior = prior_chain_hash if prior_chain_hash is not None else GENESIS_HASH
    return compute_chain_hash(recomputed, effective_prior) == event.chain_hash


def verify_hash_chain(
    events: Iterable[ChainedEvent],
    *,
    prior_chain_hash: str = GENESIS_HASH,
    start_index: int = 0,
) -> ChainVerificationResult:
    """Verify the integrity of an ordered sequence of chained audit events.

    Events must belong to one partition and be ordered by ``chain_sequence``
    (ascending). For every event the payload digest is recomputed from the
    stored fields, then the chain digest is recomputed from that payload
    digest and the previous event's stored ``chain_hash``. Verification stops
    at the first violation; later links are defined in terms of the broken one.

    Parameters
    ----------
    events:
        Ordered events. Consumed lazily, so a streamed result set works.
    prior_chain_hash:
        Trusted ``chain_hash`` of the event preceding ``events[0]``;
        :data:`GENESIS_HASH` when verifying from the start of the partition.
    start_index:
        Absolute index of ``events[0]`` in the partition, used for reporting.

    Returns
    -------
    ChainVerificationResult
        Detailed verification outcome.
    """
    result = ChainVerificationResult(last_chain_hash=prior_chain_hash)
    expected_prior = prior_chain_hash

    for offset, event in enumerate(events):
        index = start_index + offset

        stored_payload_hash = event.payload_hash
        if stored_payload_hash is None:
            result.mark_broken(index, ChainFailure.PAYLOAD_TAMPERED, "missing payload_hash")
            break

        recomputed, error = _recompute_payload_hash(event)
        if recomputed is None:
            result.mark_broken(
                index, ChainFailure.PAYLOAD_TAMPERED, error or "unhashable payload"
            )
            break
        if recomputed != stored_payload_hash:
            result.mark_broken(
                index,
                ChainFailure.PAYLOAD_TAMPERED,
                f"payload_hash mismatch (stored={stored_payload_hash!r}, "
                f"recomputed={recomputed!r})",
            )
            break

        stored_chain_hash = event.chain_hash
        expected_chain_hash = compute_chain_hash(recomputed, expected_prior)
        if stored_chain_hash != expected_chain_hash:
            result.mark_broken(
                index,
                ChainFailure.CHAIN_BROKEN,
                f"chain_hash mismatch (stored={stored_chain_hash!r}, "
                f"expected={expected_chain_hash!r})",
            )
            break

        result.verified_count += 1
        result.last_chain_hash = expected_chain_hash
        expected_prior = expected_chain_hash

    return result
