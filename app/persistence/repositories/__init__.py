"""Repository implementations."""

from app.persistence.repositories.audit_log_repository import AuditLogRepository
from app.persistence.repositories.base import BaseRepository
from app.persistence.repositories.client_merge_log_repository import ClientMergeLogRepository
from app.persistence.repositories.client_repository import ClientRepository
from app.persistence.repositories.user_repository import UserRepository

__all__ = [
    "AuditLogRepository",
    "BaseRepository",
    "ClientMergeLogRepository",
    "ClientRepository",
    "UserRepository",
]
