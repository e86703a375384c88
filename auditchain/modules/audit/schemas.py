"""Pydantic schemas for audit trail API responses."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from auditchain.core.crypto.verification import ChainFailure


class AuditEventResponse(BaseModel):
    """Single audit event in API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    partition_key: str
    chain_sequence: int
    run_id: str | None = None
    actor: str
    event_type: str
    entity: str
    entity_id: str | None = None
    operation: str
    old_data: Any = None
    new_data: Any = None
    payload_hash: str
    chain_hash: str
    created_at: datetime


class AuditEventListResponse(BaseModel):
    """Paginated list of audit events."""

    items: list[AuditEventResponse]
    total: int
    page: int
    page_size: int


class ChainVerificationResponse(BaseModel):
    """Result of verifying the audit hash chain of a partition."""

    is_valid: bool
    verified_count: int
    first_break_at: int | None = None
    failure: ChainFailure | None = None
    errors: list[str]
    last_chain_hash: str
    partition_key: str
    start_index: int = 0


class EventVerificationResponse(BaseModel):
    """Result of verifying a single audit event."""

    is_valid: bool
    event_id: UUID
    partition_key: str
    chain_sequence: int
    chain_hash: str | None = None
