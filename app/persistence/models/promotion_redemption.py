"""Promotion redemption model."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String

from app.core.clock import utcnow
from app.persistence.database import Base


class PromotionRedemption(Base):
    """Record of a client redeeming a promotion code."""

    __tablename__ = "promotion_redemptions"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=True, index=True)
    promotion_code = Column(String(50), nullable=False)
    redeemed_at = Column(DateTime, default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<PromotionRedemption(id={self.id}, client_id={self.client_id}, code={self.promotion_code})>"
