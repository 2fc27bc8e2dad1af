"""Tenant context manager for ensuring tenant isolation."""

from contextvars import ContextVar
from typing import Optional

# Context variable for the current organization (tenant)
organization_id_var: ContextVar[Optional[int]] = ContextVar("organization_id", default=None)


def set_tenant_context(organization_id: int | None) -> None:
    """Set the current tenant context.

    Args:
        organization_id: Organization ID to set in context
    """
    organization_id_var.set(organization_id)


def get_tenant_context() -> int | None:
    """Get the current tenant context.

    Returns:
        Current organization ID or None
    """
    return organization_id_var.get()


def clear_tenant_context() -> None:
    """Clear the current tenant context."""
    organization_id_var.set(None)
