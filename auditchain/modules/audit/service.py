"""Service layer for verifying stored audit hash chains."""

from __future__ import annotations

from collections.abc import Sequence
from uuid import UUID

from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from auditchain.core.config import Settings, get_settings
from auditchain.core.crypto.hash_chain import GENESIS_HASH, is_chain_hash
from auditchain.core.crypto.verification import (
    ChainVerificationResult,
    verify_event,
    verify_hash_chain,
)
from auditchain.core.logging import get_logger
from auditchain.db.models import AuditEvent

logger = get_logger(__name__)


class AuditChainService:
    """Replay persisted audit partitions through the chain verifier."""

    def __init__(self, session: AsyncSession, *, settings: Settings | None = None) -> None:
        self._session = session
        self._settings = settings or get_settings()

    async def list_partitions(self) -> list[str]:
        """Return every partition key that has at least one event."""
        result = await self._session.execute(
            select(AuditEvent.partition_key).distinct().order_by(AuditEvent.partition_key)
        )
        return [str(key) for key in result.scalars().all()]

    async def verify_partition(
        self,
        partition_key: str,
        *,
        start_index: int = 0,
        prior_chain_hash: str | None = None,
    ) -> ChainVerificationResult:
        """Verify a partition chain page by page.

        Parameters
        ----------
        partition_key:
            Partition to verify.
        start_index:
            Zero-based position to resume from. ``0`` verifies from genesis.
        prior_chain_hash:
            Trusted ``chain_hash`` of the event at ``start_index - 1``.
            Required when ``start_index > 0``.

        Raises
        ------
        ValueError
            If the resume parameters are inconsistent.
        """
        if start_index < 0:
            raise ValueError("start_index must be >= 0")
        if start_index > 0 and prior_chain_hash is None:
            raise ValueError("prior_chain_hash is required when start_index > 0")
        prior = prior_chain_hash if prior_chain_hash is not None else GENESIS_HASH
        if not is_chain_hash(prior):
            raise ValueError("prior_chain_hash must be a 64-character hex SHA-256 digest")

        batch_size = max(1, int(self._settings.audit_verify_batch_size))
        result = ChainVerificationResult(last_chain_hash=prior)
        next_index = start_index
        after_sequence: int | None = None

        while True:
            events = await self._load_page(
                partition_key,
                offset=start_index if after_sequence is None else 0,
                after_sequence=after_sequence,
                limit=batch_size,
            )
            if not events:
                break

            page = verify_hash_chain(
                events,
                prior_chain_hash=result.last_chain_hash,
                start_index=next_index,
            )
            result.verified_count += page.verified_count
            result.last_chain_hash = page.last_chain_hash
            if not page.is_valid:
                result.is_valid = False
                result.first_break_at = page.first_break_at
                result.failure = page.failure
                result.errors.extend(page.errors)
                break

            next_index += len(events)
            after_sequence = int(events[-1].chain_sequence)
            if len(events) < batch_size:
                break

        if result.is_valid:
            logger.info(
                "audit_chain_verified",
                partition_key=partition_key,
                start_index=start_index,
                verified_count=result.verified_count,
                last_chain_hash=result.last_chain_hash,
            )
        else:
            logger.error(
                "audit_chain_integrity_violation",
                partition_key=partition_key,
                first_break_at=result.first_break_at,
                failure=result.failure.value if result.failure else None,
                verified_count=result.verified_count,
            )
        return result

    async def get_event(self, event_id: UUID) -> AuditEvent | None:
        """Load a single audit event by id."""
        return await self._session.get(AuditEvent, event_id)

    async def verify_single_event(self, event: AuditEvent) -> bool:
        """Verify one stored event against its stored predecessor."""
        result = await self._session.execute(
            select(AuditEvent.chain_hash)
            .where(
                AuditEvent.partition_key == event.partition_key,
                AuditEvent.chain_sequence < event.chain_sequence,
            )
            .order_by(desc(AuditEvent.chain_sequence))
            .limit(1)
        )
        prior = result.scalar_one_or_none()
        is_valid = verify_event(event, str(prior) if prior is not None else None)
        if not is_valid:
            logger.error(
                "audit_chain_integrity_violation",
                partition_key=event.partition_key,
                event_id=str(event.id),
                chain_sequence=event.chain_sequence,
            )
        return is_valid

    async def _load_page(
        self,
        partition_key: str,
        *,
        offset: int,
        after_sequence: int | None,
        limit: int,
    ) -> Sequence[AuditEvent]:
        query = select(AuditEvent).where(AuditEvent.partition_key == partition_key)
        if after_sequence is not None:
            query = query.where(AuditEvent.chain_sequence > after_sequence)
        query = query.order_by(AuditEvent.chain_sequence.asc()).offset(offset).limit(limit)
        result = await self._session.execute(query)
        return list(result.scalars().all())
