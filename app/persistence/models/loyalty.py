"""Loyalty points models."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String

from app.core.clock import utcnow
from app.persistence.database import Base


class ClientLoyaltyPoints(Base):
    """Running loyalty points balance, one row per client."""

    __tablename__ = "client_loyalty_points"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=True, index=True)
    points_balance = Column(Integer, default=0, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<ClientLoyaltyPoints(client_id={self.client_id}, points_balance={self.points_balance})>"


class PointsTransaction(Base):
    """A single loyalty points earn or redeem event."""

    __tablename__ = "points_transactions"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=True, index=True)
    points = Column(Integer, nullable=False)
    reason = Column(String(100), nullable=True)  # 'visit', 'referral', 'redemption', etc.
    created_at = Column(DateTime, default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<PointsTransaction(id={self.id}, client_id={self.client_id}, points={self.points})>"
