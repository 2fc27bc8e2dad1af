"""Refund record model."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String

from app.core.clock import utcnow
from app.persistence.database import Base


class RefundRecord(Base):
    """Refund issued to a client."""

    __tablename__ = "refund_records"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=True, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=True)
    amount = Column(Numeric(10, 2), nullable=False)
    reason = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<RefundRecord(id={self.id}, client_id={self.client_id}, amount={self.amount})>"
