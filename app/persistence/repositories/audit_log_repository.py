"""Audit log repository."""

from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.persistence.models.audit_log import AuditAction, AuditLog


class AuditLogRepository:
    """Repository for audit log operations.

    Note: This repository does NOT extend BaseRepository because audit
    entries may have no organization (platform-level actions).
    """

    def __init__(self, session: AsyncSession):
        """Initialize audit log repository."""
        self.session = session

    async def create(
        self,
        action: str | AuditAction,
        user_id: int | None = None,
        user_email: str | None = None,
        organization_id: int | None = None,
        resource_type: str | None = None,
        resource_id: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> AuditLog:
        """Create and commit a new audit log entry.

        Args:
            action: The action being logged (AuditAction enum or string)
            user_id: ID of user performing the action
            user_email: Email of user (denormalized for historical record)
            organization_id: ID of organization affected
            resource_type: Type of resource affected (e.g., "client_merge_log")
            resource_id: ID of the specific resource
            details: Additional action-specific details as JSON

        Returns:
            The created AuditLog entry
        """
        action_str = action.value if isinstance(action, AuditAction) else action

        audit_log = AuditLog(
            action=action_str,
            user_id=user_id,
            user_email=user_email,
            organization_id=organization_id,
            resource_type=resource_type,
            resource_id=resource_id,
            details=details,
        )

        self.session.add(audit_log)
        await self.session.commit()
        await self.session.refresh(audit_log)
        return audit_log

    async def list_by_organization(
        self,
        organization_id: int,
        skip: int = 0,
        limit: int = 100,
        action: str | None = None,
    ) -> list[AuditLog]:
        """List audit logs for a specific organization, newest first."""
        stmt = select(AuditLog).where(AuditLog.organization_id == organization_id)

        if action:
            stmt = stmt.where(AuditLog.action == action)

        stmt = stmt.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).offset(skip).limit(limit)

        result = await self.session.execute(stmt)
        return list(result.scalars().all())
