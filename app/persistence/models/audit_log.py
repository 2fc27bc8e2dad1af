"""Audit log model for tracking sensitive operations."""

from enum import Enum

from sqlalchemy import Column, DateTime, ForeignKey, Integer, JSON, String
from sqlalchemy.orm import relationship

from app.core.clock import utcnow
from app.persistence.database import Base


class AuditAction(str, Enum):
    """Types of auditable actions."""

    CLIENT_MERGED = "client_merged"
    CLIENT_MERGE_UNDONE = "client_merge_undone"
    CLIENT_MERGE_REJECTED = "client_merge_rejected"


class AuditLog(Base):
    """Audit log for tracking who did what to which organization's data."""

    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)

    # Who performed the action
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    user_email = Column(String(255), nullable=True)  # Denormalized for historical records

    # Which organization was affected
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=True, index=True)

    # What action was performed
    action = Column(String(100), nullable=False, index=True)

    # What resource was affected
    resource_type = Column(String(100), nullable=True)  # e.g., "client_merge_log"
    resource_id = Column(Integer, nullable=True)

    details = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    user = relationship("User", foreign_keys=[user_id])

    def __repr__(self) -> str:
        return (
            f"<AuditLog(id={self.id}, action={self.action}, "
            f"user_id={self.user_id}, organization_id={self.organization_id})>"
        )
