"""
Tenant context for request handling.

The upstream authentication layer verifies the caller's token and places a
TenantContext on request.state.tenant_context. Everything in this service
reads the tenant from there, never from the request body or query string.
"""

import logging
from typing import Optional

from fastapi import Request, HTTPException, status

logger = logging.getLogger(__name__)


class TenantContext:
    """Immutable tenant context established by authentication."""

    def __init__(
        self,
        tenant_id: str,
        user_id: Optional[str] = None,
        roles: Optional[list[str]] = None,
    ):
        if not tenant_id:
            raise ValueError("tenant_id cannot be empty")
        self.tenant_id = tenant_id
        self.user_id = user_id
        self.roles = roles or []

    def __repr__(self) -> str:
        return f"<TenantContext(tenant_id={self.tenant_id}, user_id={self.user_id})>"


def get_tenant_context(request: Request) -> TenantContext:
    """
    Extract tenant context from request state.

    Raises 403 if tenant context is missing.
    Use this in route handlers to access tenant_id.
    """
    if not hasattr(request.state, "tenant_context"):
        logger.error("Route handler accessed without tenant context", extra={
            "path": request.url.path
        })
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Tenant context not available"
        )

    return request.state.tenant_context
