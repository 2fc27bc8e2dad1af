"""Domain services."""

from app.domain.services.audit_service import AuditService
from app.domain.services.client_merge_service import ClientMergeService, MergeResult, UndoResult

__all__ = ["AuditService", "ClientMergeService", "MergeResult", "UndoResult"]
