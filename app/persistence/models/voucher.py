"""Voucher model."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String

from app.core.clock import utcnow
from app.persistence.database import Base


class Voucher(Base):
    """Gift voucher; references the client it was issued to and the one who redeemed it."""

    __tablename__ = "vouchers"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    code = Column(String(50), nullable=False)
    value = Column(Numeric(10, 2), nullable=False)
    issued_to_client_id = Column(Integer, ForeignKey("clients.id"), nullable=True, index=True)
    redeemed_by_client_id = Column(Integer, ForeignKey("clients.id"), nullable=True, index=True)
    redeemed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<Voucher(id={self.id}, code={self.code})>"
