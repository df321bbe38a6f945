"""
Platform-level request context.
"""

from treniko.platform.tenant_context import TenantContext, get_tenant_context

__all__ = ["TenantContext", "get_tenant_context"]
