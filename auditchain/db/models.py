"""
SQLAlchemy ORM models for the audit event ledger.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import BigInteger, DateTime, Index, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""


class AuditEvent(Base):
    """
    Append-only, hash-chained audit record of a sensitive state mutation.

    Rows are written once by ``emit_audit_event`` and never updated; the
    migration installs a trigger rejecting UPDATE and DELETE.
    """

    __tablename__ = "audit_events"

    id: Mapped[UUID] = mapped_column(primary_key=True)
    partition_key: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Chain lineage, e.g. organization id or 'global'",
    )
    chain_sequence: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        comment="Zero-based position within the partition chain",
    )
    run_id: Mapped[str | None] = mapped_column(
        String(255),
        comment="Correlation id of the logical operation (not hashed)",
    )
    actor: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="User id, service name, or 'system'",
    )
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    entity: Mapped[str] = mapped_column(String(100), nullable=False)
    entity_id: Mapped[str | None] = mapped_column(String(255))
    operation: Mapped[str] = mapped_column(String(50), nullable=False)
    old_data: Mapped[Any] = mapped_column(JSONB(none_as_null=True), nullable=True)
    new_data: Mapped[Any] = mapped_column(JSONB(none_as_null=True), nullable=True)
    payload_hash: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="SHA-256 of the canonical event payload",
    )
    chain_hash: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="SHA-256 of payload_hash + previous chain_hash",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="Server-assigned, millisecond precision, part of the payload hash",
    )

    __table_args__ = (
        UniqueConstraint(
            "partition_key",
            "chain_sequence",
            name="uq_audit_events_partition_sequence",
        ),
        Index("ix_audit_events_entity", "entity", "entity_id"),
        Index("ix_audit_events_event_type", "event_type"),
        Index("ix_audit_events_run_id", "run_id"),
        Index("ix_audit_events_created_at", "created_at"),
    )
