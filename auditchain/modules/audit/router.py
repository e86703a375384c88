"""Operator audit trail endpoints for event listing and chain verification."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status
from sqlalchemy import func, select

from auditchain.core.security import Operator
from auditchain.db.models import AuditEvent
from auditchain.db.session import DbSession, VerificationDbSession
from auditchain.modules.audit.schemas import (
    AuditEventListResponse,
    AuditEventResponse,
    ChainVerificationResponse,
    EventVerificationResponse,
)
from auditchain.modules.audit.service import AuditChainService

router = APIRouter()


@router.get("/events", response_model=AuditEventListResponse)
async def list_audit_events(
    db: DbSession,
    _operator: Operator,
    partition_key: str | None = Query(None, description="Filter by partition"),
    entity: str | None = Query(None, description="Filter by entity"),
    entity_id: str | None = Query(None, description="Filter by entity id"),
    event_type: str | None = Query(None, description="Filter by event type"),
    run_id: str | None = Query(None, description="Filter by correlation id"),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=200, description="Items per page"),
) -> AuditEventListResponse:
    """List audit events with optional filters, newest first."""
    filters = []
    if partition_key is not None:
        filters.append(AuditEvent.partition_key == partition_key)
    if entity is not None:
        filters.append(AuditEvent.entity == entity)
    if entity_id is not None:
        filters.append(AuditEvent.entity_id == entity_id)
    if event_type is not None:
        filters.append(AuditEvent.event_type == event_type)
    if run_id is not None:
        filters.append(AuditEvent.run_id == run_id)

    total_result = await db.execute(select(func.count()).select_from(AuditEvent).where(*filters))
    total = total_result.scalar() or 0

    query = (
        select(AuditEvent)
        .where(*filters)
        .order_by(AuditEvent.created_at.desc(), AuditEvent.chain_sequence.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    result = await db.execute(query)
    events = result.scalars().all()

    return AuditEventListResponse(
        items=[AuditEventResponse.model_validate(event) for event in events],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/verify/chain", response_model=ChainVerificationResponse)
async def verify_chain(
    db: VerificationDbSession,
    _operator: Operator,
    partition_key: str = Query(..., min_length=1, description="Partition to verify"),
    start_index: int = Query(0, ge=0, description="Resume position within the partition"),
    prior_chain_hash: str | None = Query(
        None,
        description="Trusted chain_hash of the event before start_index",
    ),
) -> ChainVerificationResponse:
    """Verify the hash chain integrity of a partition."""
    service = AuditChainService(db)
    try:
        result = await service.verify_partition(
            partition_key,
            start_index=start_index,
            prior_chain_hash=prior_chain_hash,
        )
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(exc),
        ) from exc

    return ChainVerificationResponse(
        is_valid=result.is_valid,
        verified_count=result.verified_count,
        first_break_at=result.first_break_at,
        failure=result.failure,
        errors=result.errors,
        last_chain_hash=result.last_chain_hash,
        partition_key=partition_key,
        start_index=start_index,
    )


@router.get(
    "/verify/event/{event_id}",
    response_model=EventVerificationResponse,
)
async def verify_single_event(
    db: VerificationDbSession,
    _operator: Operator,
    event_id: UUID,
) -> EventVerificationResponse:
    """Verify a single audit event against its stored predecessor."""
    service = AuditChainService(db)
    event = await service.get_event(event_id)
    if event is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Audit event not found",
        )

    is_valid = await service.verify_single_event(event)

    return EventVerificationResponse(
        is_valid=is_valid,
        event_id=event_id,
        partition_key=event.partition_key,
        chain_sequence=event.chain_sequence,
        chain_hash=event.chain_hash,
    )
