"""Audit logging service for merge and undo operations."""

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.persistence.models.audit_log import AuditAction
from app.persistence.repositories.audit_log_repository import AuditLogRepository

logger = logging.getLogger(__name__)


class AuditService:
    """Service for creating audit log entries.

    Audit writes happen after the merge transaction has committed or rolled
    back, on a session of their own. A failed audit write is logged and dropped; it
    never affects the operation being audited.

    Usage:
        audit = AuditService(AsyncSessionLocal)
        background_tasks.add_task(audit.log_client_merged, org_id, user_id, email, ...)
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        """Initialize audit service."""
        self.session_factory = session_factory

    async def log(
        self,
        action: AuditAction | str,
        organization_id: int | None = None,
        user_id: int | None = None,
        user_email: str | None = None,
        resource_type: str | None = None,
        resource_id: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Create an audit log entry.

        Args:
            action: The action being logged
            organization_id: Organization affected
            user_id: The user performing the action
            user_email: Email of that user (denormalized)
            resource_type: Type of resource affected
            resource_id: ID of the specific resource
            details: Additional action-specific details
        """
        try:
            async with self.session_factory() as session:
                await AuditLogRepository(session).create(
                    action=action,
                    user_id=user_id,
                    user_email=user_email,
                    organization_id=organization_id,
                    resource_type=resource_type,
                    resource_id=resource_id,
                    details=details,
                )
        except Exception as e:
            # Don't let audit logging failures break the application
            logger.error(f"Failed to create audit log: {e}", extra={"action": str(action)})

    async def log_client_merged(
        self,
        organization_id: int,
        user_id: int,
        user_email: str | None,
        merge_log_id: int,
        primary_client_id: int,
        secondary_client_ids: list[int],
        reparented_counts: dict[str, int],
        flattened_clients: int = 0,
    ) -> None:
        """Log a completed merge."""
        await self.log(
            action=AuditAction.CLIENT_MERGED,
            organization_id=organization_id,
            user_id=user_id,
            user_email=user_email,
            resource_type="client_merge_log",
            resource_id=merge_log_id,
            details={
                "primary_client_id": primary_client_id,
                "secondary_client_ids": secondary_client_ids,
                "reparented_counts": reparented_counts,
                "flattened_clients": flattened_clients,
            },
        )

    async def log_client_merge_undone(
        self,
        organization_id: int,
        user_id: int,
        user_email: str | None,
        merge_log_id: int,
        restored_client_ids: list[int],
    ) -> None:
        """Log a completed undo."""
        await self.log(
            action=AuditAction.CLIENT_MERGE_UNDONE,
            organization_id=organization_id,
            user_id=user_id,
            user_email=user_email,
            resource_type="client_merge_log",
            resource_id=merge_log_id,
            details={"restored_client_ids": restored_client_ids},
        )

    async def log_rejected(
        self,
        organization_id: int,
        user_id: int,
        user_email: str | None,
        operation: str,
        error_kind: str,
        message: str,
        resource_id: int | None = None,
    ) -> None:
        """Log a merge or undo that was refused."""
        await self.log(
            action=AuditAction.CLIENT_MERGE_REJECTED,
            organization_id=organization_id,
            user_id=user_id,
            user_email=user_email,
            resource_type="client_merge_log",
            resource_id=resource_id,
            details={"operation": operation, "error_kind": error_kind, "message": message},
        )
