"""Database models."""

from app.persistence.models.appointment import Appointment, ArchivedAppointment, ExternalAppointment
from app.persistence.models.audit_log import AuditAction, AuditLog
from app.persistence.models.balance import BalanceTransaction, ClientBalance
from app.persistence.models.client import Client, ClientStatus
from app.persistence.models.client_merge_log import ClientMergeLog, ClientMergeLogMember
from app.persistence.models.client_note import ClientNote
from app.persistence.models.loyalty import ClientLoyaltyPoints, PointsTransaction
from app.persistence.models.organization import Organization, User
from app.persistence.models.promotion_redemption import PromotionRedemption
from app.persistence.models.refund_record import RefundRecord
from app.persistence.models.voucher import Voucher

__all__ = [
    "Appointment",
    "ArchivedAppointment",
    "AuditAction",
    "AuditLog",
    "BalanceTransaction",
    "Client",
    "ClientBalance",
    "ClientLoyaltyPoints",
    "ClientMergeLog",
    "ClientMergeLogMember",
    "ClientNote",
    "ClientStatus",
    "ExternalAppointment",
    "Organization",
    "PointsTransaction",
    "PromotionRedemption",
    "RefundRecord",
    "User",
    "Voucher",
]
