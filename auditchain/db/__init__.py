"""Audit ledger persistence: ORM model and async session management."""

from auditchain.db.models import AuditEvent, Base
from auditchain.db.session import (
    DbSession,
    VerificationDbSession,
    close_db,
    get_db_session,
    get_verification_session,
    init_db,
    verification_session,
)

__all__ = [
    "AuditEvent",
    "Base",
    "DbSession",
    "VerificationDbSession",
    "close_db",
    "get_db_session",
    "get_verification_session",
    "init_db",
    "verification_session",
]
