"""
Operator authentication for the audit verification endpoints.

Verification results are security-relevant, so the endpoints are gated by a
shared bearer token (``AUDIT_OPERATOR_TOKEN``) and stay disabled until one is
configured.
"""

import hmac
from typing import Annotated

from fastapi import Depends, Header, HTTPException, status

from auditchain.core.config import get_settings


async def require_operator(authorization: str | None = Header(default=None)) -> str:
    """Validate the operator bearer token and return it."""
    settings = get_settings()
    if not settings.audit_operator_token:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="AUDIT_OPERATOR_TOKEN is not configured",
        )

    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing operator token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    provided = authorization.removeprefix("Bearer ")
    expected = settings.audit_operator_token.encode("utf-8")
    if not hmac.compare_digest(provided.encode("utf-8"), expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid operator token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return provided


Operator = Annotated[str, Depends(require_operator)]
